from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import RequestStatus, SubmitterType
from .model import ScrapDetails, ScrapRequest


class ScrapRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def create(
        self,
        *,
        submitter_type: SubmitterType,
        submitter_id: int,
        submitter_name: str,
        details: ScrapDetails,
        source_asset_id: Optional[int] = None,
    ) -> int:
        raise NotImplementedError

    def get(self, scrap_id: int) -> Optional[ScrapRequest]:
        raise NotImplementedError

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        submitter_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[ScrapRequest]:
        raise NotImplementedError

    def update_pending(self, *, scrap_id: int, details: ScrapDetails) -> bool:
        raise NotImplementedError

    def delete(self, scrap_id: int) -> bool:
        raise NotImplementedError

    def decide(
        self,
        *,
        scrap_id: int,
        status: RequestStatus,
        decided_by: int,
        admin_response: Optional[str],
    ) -> bool:
        raise NotImplementedError

    def count_by_status(self, status: RequestStatus) -> int:
        raise NotImplementedError

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import RequestStatus
from .model import AssetRequest, NewAsset


class AssetRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def list_asset_numbers(self) -> Sequence[str]:
        raise NotImplementedError

    def create(
        self,
        *,
        asset_number: str,
        asset: NewAsset,
        status: RequestStatus = RequestStatus.PENDING,
        approved_by: Optional[int] = None,
        admin_notes: Optional[str] = None,
    ) -> int:
        """Insert a row; raises ConflictError when ``asset_number`` is taken."""
        raise NotImplementedError

    def get(self, asset_id: int) -> Optional[AssetRequest]:
        raise NotImplementedError

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[AssetRequest]:
        raise NotImplementedError

    def decide(
        self,
        *,
        asset_id: int,
        status: RequestStatus,
        decided_by: int,
        admin_notes: Optional[str],
    ) -> bool:
        raise NotImplementedError

    def delete(self, asset_id: int) -> bool:
        raise NotImplementedError

    def count_by_status(self, status: RequestStatus) -> int:
        raise NotImplementedError

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import RequestStatus
from .model import MaintenanceDetails, MaintenanceRequest


class MaintenanceRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        """Status, created_at and updated_at of every row in ``statuses``, uncapped."""
        raise NotImplementedError

    def create(self, *, staff_id: int, details: MaintenanceDetails) -> int:
        raise NotImplementedError

    def get(self, request_id: int) -> Optional[MaintenanceRequest]:
        raise NotImplementedError

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        branch: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[MaintenanceRequest]:
        raise NotImplementedError

    def update_pending(self, *, request_id: int, details: MaintenanceDetails) -> bool:
        raise NotImplementedError

    def delete(self, request_id: int) -> bool:
        raise NotImplementedError

    def decide(
        self,
        *,
        request_id: int,
        status: RequestStatus,
        decided_by: int,
        admin_notes: Optional[str],
        rejection_reason: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError

    def count_by_status(self, status: RequestStatus) -> int:
        raise NotImplementedError

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import TaskPriority, TicketCategory, TicketStatus
from .model import SupportTicket


class SupportTicketRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def list_ticket_numbers(self, prefix: str) -> Sequence[str]:
        raise NotImplementedError

    def create(
        self,
        *,
        ticket_no: str,
        staff_id: int,
        category: TicketCategory,
        subject: str,
        description: str,
        priority: TaskPriority,
    ) -> int:
        raise NotImplementedError

    def get(self, ticket_id: int) -> Optional[SupportTicket]:
        raise NotImplementedError

    def list(
        self,
        *,
        staff_id: Optional[int] = None,
        status: Optional[TicketStatus] = None,
        limit: int = 200,
    ) -> Sequence[SupportTicket]:
        raise NotImplementedError

    def update(
        self,
        *,
        ticket_id: int,
        status: TicketStatus,
        admin_response: Optional[str],
        responded_by: Optional[int],
    ) -> bool:
        """Set status and (when given) the response; resolved_at is stamped on resolve/close."""
        raise NotImplementedError

    def count_by_status(self, status: TicketStatus) -> int:
        raise NotImplementedError

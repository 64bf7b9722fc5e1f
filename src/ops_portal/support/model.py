from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import TaskPriority, TicketCategory, TicketStatus


@dataclass(frozen=True)
class SupportTicket:
    ticket_id: int
    ticket_no: str
    staff_id: int
    subject: str
    description: str
    category: TicketCategory = TicketCategory.OTHER
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TicketStatus = TicketStatus.OPEN
    admin_response: Optional[str] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    staff_name: Optional[str] = None
    staff_role: Optional[str] = None

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import now_utc
from ..common.logger import get_logger
from ..common.sequences import next_number
from ..common.serialization import to_jsonable
from ..common.validators import optional_text, require_enum, require_non_empty
from ..core.constants import DEFAULT_LIST_LIMIT, NUMBER_MAX_ATTEMPTS, TICKET_NUMBER_DIGITS, TICKET_NUMBER_PREFIX
from ..core.enums import ChangeEvent, Role, TaskPriority, TicketCategory, TicketStatus
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..notifications.fanout import Fanout
from .model import SupportTicket
from .repository import SupportTicketRepository

log = get_logger(__name__)

TABLE = "support_tickets"
EMAIL_DOMAIN = "support"
_DONE = {TicketStatus.RESOLVED, TicketStatus.CLOSED}


def ticket_prefix(year: int) -> str:
    return f"{TICKET_NUMBER_PREFIX}-{int(year)}-"


def email_data(ticket: SupportTicket) -> dict:
    data = to_jsonable(ticket)
    data.pop("description", None)
    return data


class SupportService:
    def __init__(self, tickets: SupportTicketRepository, fanout: Fanout):
        self._tickets = tickets
        self._fanout = fanout

    def get(self, ticket_id: int) -> SupportTicket:
        ticket = self._tickets.get(int(ticket_id))
        if not ticket:
            raise NotFoundError("Support ticket not found")
        return ticket

    def create(
        self,
        *,
        current_role: Role,
        user_id: int,
        subject: str,
        description: str,
        category: str = TicketCategory.OTHER.value,
        priority: str = TaskPriority.MEDIUM.value,
    ) -> int:
        subject = require_non_empty(subject, "Subject")
        description = require_non_empty(description, "Description")
        category_v = require_enum(TicketCategory, category or TicketCategory.OTHER.value, "Category")
        priority_v = require_enum(TaskPriority, priority or TaskPriority.MEDIUM.value, "Priority")

        prefix = ticket_prefix(now_utc().year)
        existing = self._tickets.list_ticket_numbers(prefix)
        for attempt in range(NUMBER_MAX_ATTEMPTS):
            ticket_no = next_number(prefix, existing, digits=TICKET_NUMBER_DIGITS, bump=attempt)
            try:
                ticket_id = self._tickets.create(
                    ticket_no=ticket_no,
                    staff_id=int(user_id),
                    category=category_v,
                    subject=subject,
                    description=description,
                    priority=priority_v,
                )
            except ConflictError:
                log.info("ticket number %s taken, retrying", ticket_no)
                continue
            break
        else:
            raise ConflictError("Could not allocate a unique ticket number, please retry")

        ticket = self.get(ticket_id)
        self._fanout.changed(TABLE, ChangeEvent.INSERT, ticket_id, {"status": ticket.status.value})
        who = ticket.staff_name or ("An admin" if current_role == Role.ADMIN else "A staff member")
        self._fanout.notify_admins(
            type="support_ticket",
            title="New support ticket",
            message=f"{who} opened {ticket.ticket_no}: {subject}",
            reference_id=ticket_id,
            reference_table=TABLE,
            metadata={"status": ticket.status.value, "priority": priority_v.value},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "new_ticket", email_data(ticket), description=description)
        return ticket_id

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        status: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[SupportTicket]:
        status_v = require_enum(TicketStatus, status, "Status") if status else None
        staff_id = None if current_role == Role.ADMIN else int(user_id)
        return self._tickets.list(staff_id=staff_id, status=status_v, limit=int(limit))

    def badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._tickets.badge_rows(statuses=statuses, owner_id=owner_id)

    def open_count(self) -> int:
        return self._tickets.count_by_status(TicketStatus.OPEN)

    def respond(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        ticket_id: int,
        status: str,
        admin_response: str = "",
    ) -> SupportTicket:
        """Admin status change with an optional reply; the owner hears about resolutions."""
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can respond to support tickets")

        status_v = require_enum(TicketStatus, status, "Status")
        response = optional_text(admin_response)
        ticket = self.get(ticket_id)
        if ticket.status in _DONE and status_v in _DONE:
            raise ValidationError("This support ticket has already been resolved")

        self._tickets.update(
            ticket_id=ticket.ticket_id,
            status=status_v,
            admin_response=response,
            responded_by=int(admin_user_id) if response or status_v in _DONE else None,
        )
        updated = self.get(ticket.ticket_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, ticket.ticket_id, {"status": status_v.value})

        if status_v in _DONE or response:
            self._fanout.notify_user(
                ticket.staff_id,
                type="support_ticket_update",
                title=f"Support ticket {status_v.value.replace('_', ' ')}",
                message=f"{ticket.ticket_no}: {response or 'Status changed to ' + status_v.value.replace('_', ' ')}",
                reference_id=ticket.ticket_id,
                reference_table=TABLE,
                metadata={"status": status_v.value},
            )
        if status_v == TicketStatus.RESOLVED:
            self._fanout.email_user(
                EMAIL_DOMAIN, "resolved", email_data(updated), updated.staff_id, adminResponse=updated.admin_response
            )
        return updated

    def resolve(
        self, *, current_role: Role, admin_user_id: int, ticket_id: int, admin_response: str
    ) -> SupportTicket:
        return self.respond(
            current_role=current_role,
            admin_user_id=admin_user_id,
            ticket_id=ticket_id,
            status=TicketStatus.RESOLVED.value,
            admin_response=require_non_empty(admin_response, "Response"),
        )

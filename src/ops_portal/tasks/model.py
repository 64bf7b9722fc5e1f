from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Tuple

from ..core.enums import RequestStatus, TaskPriority, TaskStatus


@dataclass(frozen=True)
class TaskDelegation:
    delegation_id: int
    task_id: int
    from_staff_id: int
    to_staff_id: int
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    from_name: Optional[str] = None
    to_name: Optional[str] = None


@dataclass(frozen=True)
class Task:
    task_id: int
    task_no: str
    title: str
    assigned_to: int
    created_by: int
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[date] = None
    delegation_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assignee_name: Optional[str] = None
    delegations: Tuple[TaskDelegation, ...] = ()

    @property
    def display_number(self) -> str:
        """``T001`` or, once delegated, ``T001.<delegation count>``."""
        if not self.delegation_count:
            return self.task_no
        return f"{self.task_no}.{self.delegation_count}"

    @property
    def original_assignee_name(self) -> Optional[str]:
        return self.delegations[0].from_name if self.delegations else None

    @property
    def delegation_chain(self) -> Optional[str]:
        """``Delegated: A → B → C`` or None when never delegated."""
        if not self.delegations:
            return None
        parts = [self.delegations[0].from_name or "Unknown"]
        parts.extend(d.to_name or "Unknown" for d in self.delegations)
        return "Delegated: " + " → ".join(parts)

    @property
    def latest_delegation_reason(self) -> Optional[str]:
        return self.delegations[-1].notes if self.delegations else None


@dataclass(frozen=True)
class TaskReschedule:
    reschedule_id: int
    task_id: int
    staff_id: int
    requested_new_date: date
    reason: str
    current_due_date: Optional[date] = None
    status: RequestStatus = RequestStatus.PENDING
    admin_id: Optional[int] = None
    admin_response: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    task_no: Optional[str] = None
    title: Optional[str] = None
    staff_name: Optional[str] = None


@dataclass(frozen=True)
class TaskProof:
    """Evidence a staff member uploads for a task, awaiting admin verification."""

    proof_id: int
    task_id: int
    staff_id: int
    status: TaskStatus
    proof_url: str
    notes: Optional[str] = None
    verification_status: RequestStatus = RequestStatus.PENDING
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    task_no: Optional[str] = None
    title: Optional[str] = None
    staff_name: Optional[str] = None

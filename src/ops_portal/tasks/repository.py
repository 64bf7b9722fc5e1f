from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import RequestStatus, TaskPriority, TaskStatus
from .model import Task, TaskProof, TaskReschedule


class TaskRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def list_task_numbers(self) -> Sequence[str]:
        raise NotImplementedError

    def create(
        self,
        *,
        task_no: str,
        title: str,
        description: Optional[str],
        assigned_to: int,
        created_by: int,
        priority: TaskPriority,
        due_date: Optional[date],
    ) -> int:
        """Raises ConflictError when ``task_no`` is taken."""
        raise NotImplementedError

    def get(self, task_id: int) -> Optional[Task]:
        raise NotImplementedError

    def list(
        self,
        *,
        assigned_to: Optional[int] = None,
        status: Optional[TaskStatus] = None,
        limit: int = 200,
    ) -> Sequence[Task]:
        raise NotImplementedError

    def update_status(self, *, task_id: int, status: TaskStatus) -> bool:
        raise NotImplementedError

    def delegate(self, *, task_id: int, from_staff_id: int, to_staff_id: int, notes: Optional[str]) -> bool:
        """Hand the task over; only succeeds while ``from_staff_id`` still holds it."""
        raise NotImplementedError

    def set_due_date(self, *, task_id: int, due_date: date) -> bool:
        raise NotImplementedError

    def delete(self, task_id: int) -> bool:
        raise NotImplementedError


class RescheduleRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def create(
        self,
        *,
        task_id: int,
        staff_id: int,
        current_due_date: Optional[date],
        requested_new_date: date,
        reason: str,
    ) -> int:
        raise NotImplementedError

    def get(self, reschedule_id: int) -> Optional[TaskReschedule]:
        raise NotImplementedError

    def list(
        self,
        *,
        status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        task_id: Optional[int] = None,
        limit: int = 200,
    ) -> Sequence[TaskReschedule]:
        raise NotImplementedError

    def decide(
        self,
        *,
        reschedule_id: int,
        status: RequestStatus,
        admin_id: int,
        admin_response: Optional[str],
    ) -> bool:
        raise NotImplementedError

    def count_by_status(self, status: RequestStatus) -> int:
        raise NotImplementedError


class TaskProofRepository(Protocol):
    def badge_rows(self, *, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        raise NotImplementedError

    def create(
        self,
        *,
        task_id: int,
        staff_id: int,
        status: TaskStatus,
        proof_url: str,
        notes: Optional[str],
    ) -> int:
        raise NotImplementedError

    def get(self, proof_id: int) -> Optional[TaskProof]:
        raise NotImplementedError

    def list(
        self,
        *,
        verification_status: Optional[RequestStatus] = None,
        staff_id: Optional[int] = None,
        task_id: Optional[int] = None,
        limit: int = 200,
    ) -> Sequence[TaskProof]:
        raise NotImplementedError

    def verify(
        self,
        *,
        proof_id: int,
        verification_status: RequestStatus,
        verified_by: int,
        verification_notes: Optional[str],
    ) -> bool:
        """Only succeeds while the proof is still pending."""
        raise NotImplementedError

    def count_by_status(self, verification_status: RequestStatus) -> int:
        raise NotImplementedError

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import parse_iso_date, parse_optional_date
from ..common.logger import get_logger
from ..common.sequences import next_number
from ..common.validators import optional_text, require_enum, require_non_empty
from ..core.constants import DEFAULT_LIST_LIMIT, NUMBER_MAX_ATTEMPTS, RECORD_NUMBER_DIGITS, TASK_NUMBER_PREFIX
from ..core.enums import ChangeEvent, RequestStatus, Role, TaskPriority, TaskStatus
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..notifications.fanout import Fanout
from ..users.model import User
from ..users.service import UserService
from .model import Task, TaskReschedule
from .repository import RescheduleRepository, TaskRepository

log = get_logger(__name__)

TABLE = "tasks"
DELEGATION_TABLE = "task_delegations"
RESCHEDULE_TABLE = "task_reschedules"
EMAIL_DOMAIN = "task"
RESCHEDULE_EMAIL_DOMAIN = "reschedule"

_CLOSED = {TaskStatus.COMPLETED, TaskStatus.CANCELLED}


def task_email_data(task: Task) -> dict:
    return {
        "task_id": task.task_id,
        "task_no": task.display_number,
        "title": task.title,
        "description": task.description,
        "priority": task.priority.value,
        "status": task.status.value,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "assignee_name": task.assignee_name,
    }


def reschedule_email_data(r: TaskReschedule) -> dict:
    return {
        "reschedule_id": r.reschedule_id,
        "task_id": r.task_id,
        "task_no": r.task_no,
        "title": r.title,
        "current_due_date": r.current_due_date.isoformat() if r.current_due_date else None,
        "requested_new_date": r.requested_new_date.isoformat(),
        "status": r.status.value,
        "staff_name": r.staff_name,
    }


class TaskService:
    """Task assignment, status, delegation and due-date reschedule requests."""

    def __init__(
        self,
        tasks: TaskRepository,
        reschedules: RescheduleRepository,
        users: UserService,
        fanout: Fanout,
    ):
        self._tasks = tasks
        self._reschedules = reschedules
        self._users = users
        self._fanout = fanout

    def _active_staff(self, user_id, what: str) -> User:
        try:
            user = self._users.get(int(user_id))
        except (TypeError, ValueError):
            raise ValidationError(f"Please choose a valid {what}")
        if user.role != Role.STAFF or not user.is_active:
            raise ValidationError(f"The selected {what} is not an active staff member")
        return user

    def get(self, task_id: int) -> Task:
        task = self._tasks.get(int(task_id))
        if not task:
            raise NotFoundError("Task not found")
        return task

    def get_reschedule(self, reschedule_id: int) -> TaskReschedule:
        r = self._reschedules.get(int(reschedule_id))
        if not r:
            raise NotFoundError("Reschedule request not found")
        return r

    # --- tasks ---

    def create(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        title: str,
        assigned_to,
        description: str = "",
        priority: str = TaskPriority.MEDIUM.value,
        due_date: str = "",
    ) -> int:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can assign tasks")

        title = require_non_empty(title, "Title")
        priority_v = require_enum(TaskPriority, priority, "Priority")
        due = parse_optional_date(due_date)
        assignee = self._active_staff(assigned_to, "assignee")

        existing = self._tasks.list_task_numbers()
        for attempt in range(NUMBER_MAX_ATTEMPTS):
            task_no = next_number(TASK_NUMBER_PREFIX, existing, digits=RECORD_NUMBER_DIGITS, bump=attempt)
            try:
                task_id = self._tasks.create(
                    task_no=task_no,
                    title=title,
                    description=optional_text(description),
                    assigned_to=assignee.user_id,
                    created_by=int(admin_user_id),
                    priority=priority_v,
                    due_date=due,
                )
            except ConflictError:
                log.info("task number %s taken, retrying", task_no)
                continue
            break
        else:
            raise ConflictError("Could not allocate a unique task number, please retry")

        task = self.get(task_id)
        self._fanout.changed(TABLE, ChangeEvent.INSERT, task_id, {"task_no": task.task_no})
        self._fanout.notify_user(
            assignee.user_id,
            type="task_assigned",
            title="New task assigned",
            message=f"{task.task_no}: {task.title}",
            reference_id=task_id,
            reference_table=TABLE,
            metadata={"status": task.status.value, "priority": task.priority.value},
        )
        self._fanout.email_user(EMAIL_DOMAIN, "assigned", task_email_data(task), assignee.user_id)
        return task_id

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        status: Optional[str] = None,
        assigned_to=None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[Task]:
        status_v = require_enum(TaskStatus, status, "Status") if status else None
        if current_role == Role.ADMIN:
            owner = int(assigned_to) if assigned_to not in (None, "") else None
        else:
            owner = int(user_id)
        return self._tasks.list(assigned_to=owner, status=status_v, limit=int(limit))

    def badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._tasks.badge_rows(statuses=statuses, owner_id=owner_id)

    def update_status(self, *, current_role: Role, user_id: int, task_id: int, status: str) -> Task:
        task = self.get(task_id)
        new_status = require_enum(TaskStatus, status, "Status")
        if current_role != Role.ADMIN:
            if task.assigned_to != int(user_id):
                raise AuthorizationError("You can only update tasks assigned to you")
            if new_status == TaskStatus.CANCELLED:
                raise AuthorizationError("Only admins can cancel tasks")
        if task.status == new_status:
            return task

        if not self._tasks.update_status(task_id=task.task_id, status=new_status):
            raise ValidationError("Failed to update task status")

        updated = self.get(task.task_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, task.task_id, {"status": new_status.value})

        label = new_status.value.replace("_", " ")
        if current_role == Role.ADMIN:
            self._fanout.notify_user(
                task.assigned_to,
                type="task_status_update",
                title="Task status changed",
                message=f"{updated.display_number} is now {label}.",
                reference_id=task.task_id,
                reference_table=TABLE,
                metadata={"status": new_status.value},
            )
        else:
            self._fanout.notify_admins(
                type="task_status_update",
                title="Task status changed",
                message=f"{updated.assignee_name or 'Staff'} marked {updated.display_number} as {label}.",
                reference_id=task.task_id,
                reference_table=TABLE,
                metadata={"status": new_status.value},
            )
        self._fanout.email_admins(EMAIL_DOMAIN, "status_changed", task_email_data(updated))
        return updated

    def delegate(self, *, current_role: Role, user_id: int, task_id: int, to_staff_id, notes: str = "") -> Task:
        task = self.get(task_id)
        if current_role != Role.ADMIN and task.assigned_to != int(user_id):
            raise AuthorizationError("You can only delegate tasks assigned to you")
        if task.status in _CLOSED:
            raise ValidationError("Closed tasks cannot be delegated")

        target = self._active_staff(to_staff_id, "staff member")
        if target.user_id == task.assigned_to:
            raise ValidationError("The task is already assigned to this staff member")

        if not self._tasks.delegate(
            task_id=task.task_id,
            from_staff_id=task.assigned_to,
            to_staff_id=target.user_id,
            notes=optional_text(notes),
        ):
            raise ValidationError("This task was reassigned in the meantime, please reload")

        delegated = self.get(task.task_id)
        self._fanout.changed(DELEGATION_TABLE, ChangeEvent.INSERT, task.task_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, task.task_id, {"assigned_to": target.user_id})

        self._fanout.notify_user(
            target.user_id,
            type="task_delegated",
            title="Task delegated to you",
            message=f"{delegated.display_number}: {delegated.title}",
            reference_id=task.task_id,
            reference_table=TABLE,
            metadata={"from_staff_id": task.assigned_to, "notes": optional_text(notes)},
        )
        self._fanout.email_user(
            EMAIL_DOMAIN, "delegated", task_email_data(delegated), target.user_id, notes=optional_text(notes)
        )
        return delegated

    def delete(self, *, current_role: Role, task_id: int) -> None:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can delete tasks")
        task = self.get(task_id)
        if not self._tasks.delete(task.task_id):
            raise ValidationError("Failed to delete task")
        self._fanout.changed(TABLE, ChangeEvent.DELETE, task.task_id)

    # --- reschedules ---

    def request_reschedule(
        self,
        *,
        current_role: Role,
        user_id: int,
        task_id: int,
        requested_new_date: str,
        reason: str,
    ) -> int:
        task = self.get(task_id)
        if task.assigned_to != int(user_id):
            raise AuthorizationError("You can only reschedule tasks assigned to you")
        if task.status in _CLOSED:
            raise ValidationError("Closed tasks cannot be rescheduled")

        new_date: date = parse_iso_date(requested_new_date)
        if task.due_date and new_date == task.due_date:
            raise ValidationError("The requested date is the current due date")
        reason = require_non_empty(reason, "Reason")

        if self._reschedules.list(task_id=task.task_id, status=RequestStatus.PENDING, limit=1):
            raise ValidationError("A reschedule request for this task is already pending")

        reschedule_id = self._reschedules.create(
            task_id=task.task_id,
            staff_id=int(user_id),
            current_due_date=task.due_date,
            requested_new_date=new_date,
            reason=reason,
        )
        r = self.get_reschedule(reschedule_id)
        self._fanout.changed(RESCHEDULE_TABLE, ChangeEvent.INSERT, reschedule_id, {"status": r.status.value})
        self._fanout.notify_admins(
            type="task_reschedule_request",
            title="Task reschedule requested",
            message=f"{r.staff_name or 'Staff'} asked to move {task.display_number} to {new_date.isoformat()}",
            reference_id=reschedule_id,
            reference_table=RESCHEDULE_TABLE,
            metadata={"status": r.status.value, "task_id": task.task_id},
        )
        self._fanout.email_admins(RESCHEDULE_EMAIL_DOMAIN, "new_reschedule", reschedule_email_data(r), reason=reason)
        return reschedule_id

    def list_reschedules(
        self,
        *,
        current_role: Role,
        user_id: int,
        status: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[TaskReschedule]:
        status_v = require_enum(RequestStatus, status, "Status") if status else None
        staff_id = None if current_role == Role.ADMIN else int(user_id)
        return self._reschedules.list(status=status_v, staff_id=staff_id, limit=int(limit))

    def reschedule_badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._reschedules.badge_rows(statuses=statuses, owner_id=owner_id)

    def pending_reschedule_count(self) -> int:
        return self._reschedules.count_by_status(RequestStatus.PENDING)

    def _decide_reschedule(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        reschedule_id: int,
        status: RequestStatus,
        admin_response: str,
    ) -> TaskReschedule:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can review reschedule requests")

        r = self.get_reschedule(reschedule_id)
        response = optional_text(admin_response)
        if not self._reschedules.decide(
            reschedule_id=r.reschedule_id,
            status=status,
            admin_id=int(admin_user_id),
            admin_response=response,
        ):
            raise ValidationError("This reschedule request has already been processed")

        if status == RequestStatus.APPROVED:
            self._tasks.set_due_date(task_id=r.task_id, due_date=r.requested_new_date)
            self._fanout.changed(TABLE, ChangeEvent.UPDATE, r.task_id, {"due_date": r.requested_new_date})

        decided = self.get_reschedule(r.reschedule_id)
        self._fanout.changed(RESCHEDULE_TABLE, ChangeEvent.UPDATE, r.reschedule_id, {"status": status.value})

        verb = "approved" if status == RequestStatus.APPROVED else "rejected"
        self._fanout.notify_user(
            r.staff_id,
            type=f"task_reschedule_{verb}",
            title=f"Reschedule request {verb}",
            message=f"Your request to move {r.task_no} to {r.requested_new_date.isoformat()} was {verb}.",
            reference_id=r.reschedule_id,
            reference_table=RESCHEDULE_TABLE,
            metadata={"status": status.value, "task_id": r.task_id, "admin_response": response},
        )
        self._fanout.email_user(
            RESCHEDULE_EMAIL_DOMAIN,
            f"reschedule_{verb}",
            reschedule_email_data(decided),
            r.staff_id,
            adminResponse=response,
        )
        return decided

    def approve_reschedule(
        self, *, current_role: Role, admin_user_id: int, reschedule_id: int, admin_response: str = ""
    ) -> TaskReschedule:
        return self._decide_reschedule(
            current_role=current_role,
            admin_user_id=admin_user_id,
            reschedule_id=reschedule_id,
            status=RequestStatus.APPROVED,
            admin_response=admin_response,
        )

    def reject_reschedule(
        self, *, current_role: Role, admin_user_id: int, reschedule_id: int, admin_response: str = ""
    ) -> TaskReschedule:
        return self._decide_reschedule(
            current_role=current_role,
            admin_user_id=admin_user_id,
            reschedule_id=reschedule_id,
            status=RequestStatus.REJECTED,
            admin_response=admin_response,
        )

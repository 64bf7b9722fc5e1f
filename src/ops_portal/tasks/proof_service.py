from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..common.logger import get_logger
from ..common.validators import optional_text, require_enum, require_non_empty
from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import ChangeEvent, RequestStatus, Role, TaskStatus
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..notifications.fanout import Fanout
from .model import TaskProof
from .repository import TaskProofRepository, TaskRepository

log = get_logger(__name__)

TABLE = "task_update_proofs"
EMAIL_DOMAIN = "proof"


def proof_email_data(p: TaskProof) -> dict:
    return {
        "proof_id": p.proof_id,
        "task_id": p.task_id,
        "task_no": p.task_no,
        "title": p.title,
        "status": p.status.value,
        "proof_url": p.proof_url,
        "notes": p.notes,
        "verification_status": p.verification_status.value,
        "staff_name": p.staff_name,
    }


class TaskProofService:
    """Proof uploads against a task and their admin verification."""

    def __init__(self, tasks: TaskRepository, proofs: TaskProofRepository, fanout: Fanout):
        self._tasks = tasks
        self._proofs = proofs
        self._fanout = fanout

    def get(self, proof_id: int) -> TaskProof:
        proof = self._proofs.get(int(proof_id))
        if not proof:
            raise NotFoundError("Task proof not found")
        return proof

    def upload(
        self,
        *,
        current_role: Role,
        user_id: int,
        task_id: int,
        status: str,
        proof_url: str,
        notes: str = "",
    ) -> int:
        task = self._tasks.get(int(task_id))
        if not task:
            raise NotFoundError("Task not found")
        if current_role != Role.STAFF or task.assigned_to != int(user_id):
            raise AuthorizationError("Only the assigned staff member can upload proof for this task")

        status_v = require_enum(TaskStatus, status, "Status")
        url = require_non_empty(proof_url, "Proof link")
        if not url.lower().startswith(("http://", "https://")):
            raise ValidationError("Proof link must be an http(s) URL")

        proof_id = self._proofs.create(
            task_id=task.task_id,
            staff_id=int(user_id),
            status=status_v,
            proof_url=url,
            notes=optional_text(notes),
        )
        proof = self.get(proof_id)
        self._fanout.changed(TABLE, ChangeEvent.INSERT, proof_id, {"verification_status": RequestStatus.PENDING.value})

        who = proof.staff_name or "A staff member"
        self._fanout.notify_admins(
            type="task_proof_upload",
            title="Task proof needs verification",
            message=f'{who} uploaded proof for "{task.title}" ({task.display_number})',
            reference_id=proof_id,
            reference_table=TABLE,
            metadata={"task_id": task.task_id, "status": status_v.value},
        )
        self._fanout.email_admins(EMAIL_DOMAIN, "proof_uploaded", proof_email_data(proof))
        return proof_id

    def list(
        self,
        *,
        current_role: Role,
        user_id: int,
        task_id: Optional[int] = None,
        verification_status: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[TaskProof]:
        status_v = require_enum(RequestStatus, verification_status, "Verification status") if verification_status else None
        staff_id = None if current_role == Role.ADMIN else int(user_id)
        return self._proofs.list(
            verification_status=status_v,
            staff_id=staff_id,
            task_id=int(task_id) if task_id else None,
            limit=int(limit),
        )

    def badge_rows(self, statuses: Iterable[str], owner_id: Optional[int] = None) -> Sequence[dict]:
        return self._proofs.badge_rows(statuses=statuses, owner_id=owner_id)

    def pending_count(self) -> int:
        return self._proofs.count_by_status(RequestStatus.PENDING)

    def verify(
        self,
        *,
        current_role: Role,
        admin_user_id: int,
        proof_id: int,
        approved: bool,
        verification_notes: str = "",
    ) -> TaskProof:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can verify task proofs")

        notes = optional_text(verification_notes)
        if not approved and not notes:
            raise ValidationError("Please give a reason for rejecting this proof")

        proof = self.get(proof_id)
        outcome = RequestStatus.APPROVED if approved else RequestStatus.REJECTED
        if not self._proofs.verify(
            proof_id=proof.proof_id,
            verification_status=outcome,
            verified_by=int(admin_user_id),
            verification_notes=notes,
        ):
            raise ValidationError("This proof has already been verified")

        verified = self.get(proof.proof_id)
        log.info("task proof %s %s by admin %s", proof.proof_id, outcome.value, admin_user_id)
        self._fanout.changed(TABLE, ChangeEvent.UPDATE, proof.proof_id, {"verification_status": outcome.value})

        word = "approved" if approved else "rejected"
        message = f'Your proof for "{proof.title}" was {word}.'
        if notes:
            message += f" Notes: {notes}"
        self._fanout.notify_user(
            proof.staff_id,
            type="task_proof_verified" if approved else "task_proof_rejected",
            title=f"Task proof {word}",
            message=message,
            reference_id=proof.proof_id,
            reference_table=TABLE,
            metadata={"task_id": proof.task_id, "verification_status": outcome.value},
        )
        self._fanout.email_user(
            EMAIL_DOMAIN,
            f"proof_{word}",
            proof_email_data(verified),
            verified.staff_id,
            verificationNotes=notes,
        )
        return verified

from __future__ import annotations

from dataclasses import replace

import pytest

from ops_portal.core.enums import RequestStatus, Role, TaskStatus
from ops_portal.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ops_portal.tasks.model import Task, TaskProof
from ops_portal.tasks.proof_service import TaskProofService


class FakeFanout:
    def __init__(self):
        self.changes = []
        self.user_notes = []
        self.admin_notes = []
        self.emails = []

    def changed(self, table, event, record_id, new=None):
        self.changes.append((table, event, record_id))

    def notify_user(self, user_id, **kw):
        self.user_notes.append((user_id, kw))

    def notify_admins(self, **kw):
        self.admin_notes.append(kw)
        return 1

    def email_admins(self, domain, type, record, **extra):
        self.emails.append((domain, type, None, extra))
        return 1

    def email_user(self, domain, type, record, user_id, **extra):
        self.emails.append((domain, type, user_id, extra))
        return True


class FakeTasks:
    def __init__(self):
        self.items = {3: Task(task_id=3, task_no="T003", title="Count stock", assigned_to=7, created_by=1)}

    def get(self, task_id):
        return self.items.get(task_id)


class FakeProofs:
    def __init__(self):
        self.items: dict[int, TaskProof] = {}

    def create(self, *, task_id, staff_id, status, proof_url, notes):
        pid = len(self.items) + 1
        self.items[pid] = TaskProof(
            proof_id=pid,
            task_id=task_id,
            staff_id=staff_id,
            status=status,
            proof_url=proof_url,
            notes=notes,
            task_no="T003",
            title="Count stock",
            staff_name="Asha",
        )
        return pid

    def get(self, proof_id):
        return self.items.get(proof_id)

    def list(self, *, verification_status=None, staff_id=None, task_id=None, limit=200):
        return [
            p
            for p in self.items.values()
            if (staff_id is None or p.staff_id == staff_id) and (task_id is None or p.task_id == task_id)
        ]

    def verify(self, *, proof_id, verification_status, verified_by, verification_notes):
        p = self.items.get(proof_id)
        if not p or p.verification_status != RequestStatus.PENDING:
            return False
        self.items[proof_id] = replace(
            p,
            verification_status=verification_status,
            verified_by=verified_by,
            verification_notes=verification_notes,
        )
        return True

    def count_by_status(self, verification_status):
        return sum(1 for p in self.items.values() if p.verification_status == verification_status)


@pytest.fixture()
def env():
    proofs, fanout = FakeProofs(), FakeFanout()
    return TaskProofService(FakeTasks(), proofs, fanout), proofs, fanout


def _upload(svc, **kw):
    data = {
        "current_role": Role.STAFF,
        "user_id": 7,
        "task_id": 3,
        "status": "completed",
        "proof_url": "https://drive.example.com/p/1",
    }
    data.update(kw)
    return svc.upload(**data)


def test_upload_notifies_and_emails_admins(env):
    svc, proofs, fanout = env
    pid = _upload(svc, notes="shelf photo")

    assert proofs.items[pid].status == TaskStatus.COMPLETED
    assert fanout.admin_notes[0]["type"] == "task_proof_upload"
    assert "Count stock" in fanout.admin_notes[0]["message"]
    assert fanout.emails[0][:2] == ("proof", "proof_uploaded")
    assert fanout.changes[0][0] == "task_update_proofs"
    assert svc.pending_count() == 1


def test_upload_requires_assignee_and_valid_link(env):
    svc, _, _ = env
    with pytest.raises(AuthorizationError):
        _upload(svc, user_id=8)
    with pytest.raises(AuthorizationError):
        _upload(svc, current_role=Role.ADMIN, user_id=7)
    with pytest.raises(NotFoundError):
        _upload(svc, task_id=99)
    with pytest.raises(ValidationError):
        _upload(svc, proof_url="ftp://files/p1")
    with pytest.raises(ValidationError):
        _upload(svc, status="done")


def test_verify_approves_once_and_tells_the_staff_member(env):
    svc, _, fanout = env
    pid = _upload(svc)

    with pytest.raises(AuthorizationError):
        svc.verify(current_role=Role.STAFF, admin_user_id=7, proof_id=pid, approved=True)

    proof = svc.verify(current_role=Role.ADMIN, admin_user_id=1, proof_id=pid, approved=True, verification_notes="ok")
    assert proof.verification_status == RequestStatus.APPROVED
    assert fanout.user_notes[-1][0] == 7
    assert fanout.user_notes[-1][1]["type"] == "task_proof_verified"
    assert fanout.emails[-1] == ("proof", "proof_approved", 7, {"verificationNotes": "ok"})

    with pytest.raises(ValidationError, match="already been verified"):
        svc.verify(current_role=Role.ADMIN, admin_user_id=1, proof_id=pid, approved=True)


def test_reject_needs_a_reason(env):
    svc, _, fanout = env
    pid = _upload(svc)

    with pytest.raises(ValidationError):
        svc.verify(current_role=Role.ADMIN, admin_user_id=1, proof_id=pid, approved=False)

    proof = svc.verify(
        current_role=Role.ADMIN, admin_user_id=1, proof_id=pid, approved=False, verification_notes="blurry photo"
    )
    assert proof.verification_status == RequestStatus.REJECTED
    assert fanout.user_notes[-1][1]["type"] == "task_proof_rejected"
    assert "blurry photo" in fanout.user_notes[-1][1]["message"]
    assert fanout.emails[-1][:3] == ("proof", "proof_rejected", 7)


def test_staff_only_list_their_own_proofs(env):
    svc, proofs, _ = env
    _upload(svc)
    proofs.create(task_id=3, staff_id=8, status=TaskStatus.IN_PROGRESS, proof_url="https://x.io/2", notes=None)

    assert len(svc.list(current_role=Role.ADMIN, user_id=1)) == 2
    assert [p.staff_id for p in svc.list(current_role=Role.STAFF, user_id=8)] == [8]

from __future__ import annotations

from flask import Flask, request

from ..common.serialization import to_jsonable
from ..common.web import admin_required, current_role, current_user_id, json_action, login_required, ok, payload
from ..container import Container
from ..core.enums import Role
from .model import Task


def _task_view(task: Task) -> dict:
    data = to_jsonable(task)
    data.update(
        display_number=task.display_number,
        delegation_chain=task.delegation_chain,
        original_assignee_name=task.original_assignee_name,
        latest_delegation_reason=task.latest_delegation_reason,
    )
    return data


def register(app: Flask, container: Container) -> None:
    service = container.task_service

    @app.route("/api/tasks", methods=["GET"], endpoint="list_tasks")
    @login_required
    @json_action("Failed to load tasks")
    def list_tasks():
        role, user_id = current_role(), current_user_id()
        status = request.args.get("status") or None
        assigned_to = request.args.get("assigned_to") or None
        group = "tasks" if role == Role.ADMIN else "staff-tasks"
        items = container.cache.get_or_load(
            (group, role.value, user_id, status, assigned_to),
            lambda: [
                _task_view(t)
                for t in service.list(current_role=role, user_id=user_id, status=status, assigned_to=assigned_to)
            ],
        )
        return ok(items)

    @app.route("/api/tasks", methods=["POST"], endpoint="create_task")
    @admin_required
    @json_action("System error while assigning task")
    def create_task():
        data = payload()
        task_id = service.create(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            title=data.get("title", ""),
            assigned_to=data.get("assigned_to"),
            description=data.get("description", ""),
            priority=data.get("priority") or "medium",
            due_date=data.get("due_date", ""),
        )
        return ok({"task_id": task_id}, "Task assigned", 201)

    @app.route("/api/tasks/<int:task_id>", methods=["GET"], endpoint="get_task")
    @login_required
    @json_action("Failed to load task")
    def get_task(task_id: int):
        return ok(_task_view(service.get(task_id)))

    @app.route("/api/tasks/<int:task_id>", methods=["DELETE"], endpoint="delete_task")
    @admin_required
    @json_action("System error while deleting task")
    def delete_task(task_id: int):
        service.delete(current_role=current_role(), task_id=task_id)
        return ok(message="Task deleted")

    @app.route("/api/tasks/<int:task_id>/status", methods=["POST"], endpoint="update_task_status")
    @login_required
    @json_action("System error while updating task")
    def update_task_status(task_id: int):
        task = service.update_status(
            current_role=current_role(),
            user_id=current_user_id(),
            task_id=task_id,
            status=payload().get("status", ""),
        )
        return ok(_task_view(task), "Task status updated")

    @app.route("/api/tasks/<int:task_id>/delegate", methods=["POST"], endpoint="delegate_task")
    @login_required
    @json_action("System error while delegating task")
    def delegate_task(task_id: int):
        data = payload()
        task = service.delegate(
            current_role=current_role(),
            user_id=current_user_id(),
            task_id=task_id,
            to_staff_id=data.get("to_staff_id"),
            notes=data.get("notes", ""),
        )
        return ok(_task_view(task), "Task delegated")

    @app.route("/api/tasks/<int:task_id>/reschedule", methods=["POST"], endpoint="request_reschedule")
    @login_required
    @json_action("System error while requesting reschedule")
    def request_reschedule(task_id: int):
        data = payload()
        reschedule_id = service.request_reschedule(
            current_role=current_role(),
            user_id=current_user_id(),
            task_id=task_id,
            requested_new_date=data.get("requested_new_date", ""),
            reason=data.get("reason", ""),
        )
        return ok({"reschedule_id": reschedule_id}, "Reschedule request submitted", 201)

    @app.route("/api/task-reschedules", methods=["GET"], endpoint="list_reschedules")
    @login_required
    @json_action("Failed to load reschedule requests")
    def list_reschedules():
        role, user_id = current_role(), current_user_id()
        status = request.args.get("status") or None
        items = container.cache.get_or_load(
            ("task-reschedules", role.value, user_id, status),
            lambda: list(service.list_reschedules(current_role=role, user_id=user_id, status=status)),
        )
        return ok(items)

    @app.route("/api/task-reschedules/pending-count", methods=["GET"], endpoint="reschedule_pending_count")
    @admin_required
    @json_action("Failed to load pending count")
    def reschedule_pending_count():
        n = container.cache.get_or_load(("task-reschedules", "pending-count"), service.pending_reschedule_count)
        return ok({"count": n})

    @app.route("/api/task-reschedules/<int:reschedule_id>/approve", methods=["POST"], endpoint="approve_reschedule")
    @admin_required
    @json_action("System error while approving reschedule")
    def approve_reschedule(reschedule_id: int):
        r = service.approve_reschedule(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            reschedule_id=reschedule_id,
            admin_response=payload().get("admin_response", ""),
        )
        return ok(r, "Reschedule approved")

    @app.route("/api/task-reschedules/<int:reschedule_id>/reject", methods=["POST"], endpoint="reject_reschedule")
    @admin_required
    @json_action("System error while rejecting reschedule")
    def reject_reschedule(reschedule_id: int):
        r = service.reject_reschedule(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            reschedule_id=reschedule_id,
            admin_response=payload().get("admin_response", ""),
        )
        return ok(r, "Reschedule rejected")

    proofs = container.task_proof_service

    @app.route("/api/tasks/<int:task_id>/proofs", methods=["POST"], endpoint="upload_task_proof")
    @login_required
    @json_action("System error while uploading task proof")
    def upload_task_proof(task_id: int):
        data = payload()
        proof_id = proofs.upload(
            current_role=current_role(),
            user_id=current_user_id(),
            task_id=task_id,
            status=data.get("status", ""),
            proof_url=data.get("proof_url", ""),
            notes=data.get("notes", ""),
        )
        return ok({"proof_id": proof_id}, "Proof uploaded", 201)

    @app.route("/api/task-proofs", methods=["GET"], endpoint="list_task_proofs")
    @login_required
    @json_action("Failed to load task proofs")
    def list_task_proofs():
        role, user_id = current_role(), current_user_id()
        task_id = request.args.get("task_id", type=int)
        status = request.args.get("verification_status") or None
        items = container.cache.get_or_load(
            ("task-proofs", role.value, user_id, task_id, status),
            lambda: list(
                proofs.list(current_role=role, user_id=user_id, task_id=task_id, verification_status=status)
            ),
        )
        return ok(items)

    @app.route("/api/task-proofs/pending-count", methods=["GET"], endpoint="task_proof_pending_count")
    @admin_required
    @json_action("Failed to load pending count")
    def task_proof_pending_count():
        n = container.cache.get_or_load(("task-proofs-pending-count",), proofs.pending_count)
        return ok({"count": n})

    @app.route("/api/task-proofs/<int:proof_id>/approve", methods=["POST"], endpoint="approve_task_proof")
    @admin_required
    @json_action("System error while verifying task proof")
    def approve_task_proof(proof_id: int):
        p = proofs.verify(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            proof_id=proof_id,
            approved=True,
            verification_notes=payload().get("verification_notes", ""),
        )
        return ok(p, "Proof approved")

    @app.route("/api/task-proofs/<int:proof_id>/reject", methods=["POST"], endpoint="reject_task_proof")
    @admin_required
    @json_action("System error while verifying task proof")
    def reject_task_proof(proof_id: int):
        p = proofs.verify(
            current_role=current_role(),
            admin_user_id=current_user_id(),
            proof_id=proof_id,
            approved=False,
            verification_notes=payload().get("verification_notes", ""),
        )
        return ok(p, "Proof rejected")

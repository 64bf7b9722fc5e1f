from __future__ import annotations

from dataclasses import replace

import pytest
from werkzeug.security import generate_password_hash

from ops_portal.core.enums import ChangeEvent, Role
from ops_portal.core.exceptions import AuthenticationError, AuthorizationError, ValidationError
from ops_portal.sync.feed import ChangeFeed
from ops_portal.users.model import User
from ops_portal.users.service import AuthService, UserService


class FakeUsersRepo:
    def __init__(self):
        self.users: dict[int, User] = {}
        self._next = 1

    def add(self, **kw) -> User:
        uid = self._next
        self._next += 1
        user = User(user_id=uid, **kw)
        self.users[uid] = user
        return user

    def get_by_id(self, user_id):
        return self.users.get(int(user_id))

    def get_by_username(self, username):
        return next((u for u in self.users.values() if u.username == username), None)

    def create_user(self, *, full_name, username, email, password_hash, role, branch, department, designation):
        return self.add(
            full_name=full_name,
            username=username,
            email=email,
            password_hash=password_hash,
            role=role,
            branch=branch,
            department=department,
            designation=designation,
        ).user_id

    def set_active(self, user_id, *, is_active):
        self.users[user_id] = replace(self.users[user_id], is_active=is_active)
        return True

    def list_by_role(self, role, *, active_only=True, branch=None):
        return [
            u
            for u in self.users.values()
            if u.role == role and (u.is_active or not active_only) and (branch is None or u.branch == branch)
        ]


@pytest.fixture()
def repo():
    r = FakeUsersRepo()
    r.add(
        full_name="Admin",
        username="admin",
        password_hash=generate_password_hash("admin123"),
        role=Role.ADMIN,
        email="admin@example.com",
    )
    return r


def test_authenticate_checks_hash_and_active_flag(repo):
    auth = AuthService(repo)

    s_user = auth.authenticate(" admin ", "admin123")
    assert s_user.role == Role.ADMIN

    with pytest.raises(AuthenticationError):
        auth.authenticate("admin", "wrong")
    with pytest.raises(AuthenticationError):
        auth.authenticate("nobody", "admin123")

    repo.set_active(1, is_active=False)
    with pytest.raises(AuthenticationError):
        auth.authenticate("admin", "admin123")


def test_placeholder_hash_never_authenticates(repo):
    repo.add(full_name="Legacy", username="legacy", password_hash="not-a-hash", role=Role.STAFF)
    with pytest.raises(AuthenticationError):
        AuthService(repo).authenticate("legacy", "not-a-hash")


def test_admin_creates_staff_who_can_sign_in(repo):
    feed = ChangeFeed()
    events = []
    feed.subscribe("users", events.append)
    svc = UserService(repo, feed)

    uid = svc.create_staff(
        current_role=Role.ADMIN, full_name="Asha", username="asha", password="secret1", branch="Kochi"
    )

    assert AuthService(repo).authenticate("asha", "secret1").user_id == uid
    assert events[0].event == ChangeEvent.INSERT
    assert svc.count_active_staff() == 1


def test_create_staff_rules(repo):
    svc = UserService(repo)
    with pytest.raises(AuthorizationError):
        svc.create_staff(current_role=Role.STAFF, full_name="X", username="x", password="secret1")
    with pytest.raises(ValidationError):
        svc.create_staff(current_role=Role.ADMIN, full_name="X", username="admin", password="secret1")
    with pytest.raises(ValidationError):
        svc.create_staff(current_role=Role.ADMIN, full_name="X", username="x", password="123")
    with pytest.raises(ValidationError):
        svc.create_staff(current_role=Role.ADMIN, full_name="X", username="x", password="secret1", email="nope")


def test_deactivate_staff_only(repo):
    svc = UserService(repo)
    uid = svc.create_staff(current_role=Role.ADMIN, full_name="Asha", username="asha", password="secret1")

    with pytest.raises(ValidationError):
        svc.deactivate_staff(current_role=Role.ADMIN, current_user_id=1, user_id=1)

    svc.deactivate_staff(current_role=Role.ADMIN, current_user_id=1, user_id=uid)
    assert svc.list_staff() == []
    assert svc.admin_emails() == ["admin@example.com"]

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from werkzeug.security import check_password_hash, generate_password_hash

from ..common.logger import get_logger
from ..common.validators import optional_text, require_min_length, require_non_empty
from ..core.enums import ChangeEvent, Role
from ..core.exceptions import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from ..sync.feed import ChangeFeed
from .model import User
from .repository import UserRepository

log = get_logger(__name__)


@dataclass(frozen=True)
class SessionUser:
    """What we store into the Flask session after login."""

    user_id: int
    full_name: str
    role: Role
    email: Optional[str]
    branch: Optional[str]


class AuthService:
    """Use case: authenticate user (login)."""

    def __init__(self, users: UserRepository):
        self._users = users

    def authenticate(self, username: str, password: str) -> SessionUser:
        user = self._users.get_by_username((username or "").strip())
        if not user or not user.is_active:
            raise AuthenticationError("Invalid username or password")

        try:
            ok = check_password_hash(user.password_hash, password or "")
        except ValueError:
            # placeholder or corrupted hashes
            ok = False

        if not ok:
            log.info("failed login for %s", user.username)
            raise AuthenticationError("Invalid username or password")

        return SessionUser(
            user_id=user.user_id,
            full_name=user.full_name,
            role=user.role,
            email=user.email,
            branch=user.branch,
        )


class UserService:
    """Use case: manage staff accounts and look up notification recipients."""

    def __init__(self, users: UserRepository, feed: Optional[ChangeFeed] = None):
        self._users = users
        self._feed = feed

    def get(self, user_id: int) -> User:
        user = self._users.get_by_id(int(user_id))
        if not user:
            raise NotFoundError("User not found")
        return user

    def find(self, user_id: Optional[int]) -> Optional[User]:
        if user_id is None:
            return None
        return self._users.get_by_id(int(user_id))

    def create_staff(
        self,
        *,
        current_role: Role,
        full_name: str,
        username: str,
        password: str,
        email: str = "",
        branch: str = "",
        department: str = "",
        designation: str = "",
        role: Role = Role.STAFF,
    ) -> int:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can create accounts")

        full_name = require_non_empty(full_name, "Full name")
        username = require_non_empty(username, "Username")
        require_min_length(password, "Password", 6)
        email_v = optional_text(email)
        if email_v and "@" not in email_v:
            raise ValidationError("Email is not valid")

        if self._users.get_by_username(username):
            raise ValidationError("Username already exists")

        user_id = self._users.create_user(
            full_name=full_name,
            username=username,
            email=email_v,
            password_hash=generate_password_hash(password),
            role=role,
            branch=optional_text(branch),
            department=optional_text(department),
            designation=optional_text(designation),
        )
        if self._feed:
            self._feed.emit("users", ChangeEvent.INSERT, user_id)
        return user_id

    def deactivate_staff(self, *, current_role: Role, current_user_id: int, user_id: int) -> None:
        if current_role != Role.ADMIN:
            raise AuthorizationError("Only admins can deactivate accounts")
        if int(user_id) == int(current_user_id):
            raise ValidationError("You cannot deactivate your own account")

        user = self.get(user_id)
        if user.role == Role.ADMIN:
            raise ValidationError("Admin accounts cannot be deactivated here")

        if not self._users.set_active(user.user_id, is_active=False):
            raise ValidationError("Failed to deactivate account")
        if self._feed:
            self._feed.emit("users", ChangeEvent.UPDATE, user.user_id, {"is_active": False})

    def list_staff(self, *, branch: Optional[str] = None, active_only: bool = True) -> Sequence[User]:
        return self._users.list_by_role(Role.STAFF, active_only=active_only, branch=branch)

    def list_admins(self) -> Sequence[User]:
        return self._users.list_by_role(Role.ADMIN)

    def admin_emails(self) -> list[str]:
        """Distinct admin email addresses, in listing order."""
        seen: list[str] = []
        for admin in self.list_admins():
            if admin.email and admin.email not in seen:
                seen.append(admin.email)
        return seen

    def count_active_staff(self) -> int:
        return len(self.list_staff())

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class User:
    """Portal account (admin or staff).

    Plain data object: no DB access here.
    """

    user_id: int
    full_name: str
    username: str
    password_hash: str
    role: Role
    email: Optional[str] = None
    branch: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    is_active: bool = True

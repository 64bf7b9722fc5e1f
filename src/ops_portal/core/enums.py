from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User role used for authorization."""

    ADMIN = "admin"
    STAFF = "staff"


class RequestStatus(str, Enum):
    """Approval status shared by maintenance, asset, scrap and reschedule requests."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PurchaseStatus(str, Enum):
    """Purchase requisition lifecycle.

    pending -> verification_pending -> awaiting_final_verification -> completed,
    with rejected reachable from pending, and a failed final verification
    falling back to verification_pending.
    """

    PENDING = "pending"
    VERIFICATION_PENDING = "verification_pending"
    AWAITING_FINAL_VERIFICATION = "awaiting_final_verification"
    COMPLETED = "completed"
    REJECTED = "rejected"


class RequestType(str, Enum):
    SYSTEM = "system"
    COMMON = "common"


class ItemCondition(str, Enum):
    NEW = "new"
    REFURBISHED = "refurbished"
    USED = "used"


class RunningStatus(str, Enum):
    RUNNING = "running"
    NOT_RUNNING = "not_running"


class AssetSource(str, Enum):
    MANUAL = "manual"
    MAINTENANCE = "maintenance"
    PURCHASE = "purchase"


class SubmitterType(str, Enum):
    STAFF = "staff"
    ADMIN = "admin"


class ScrapCondition(str, Enum):
    WORKING = "working"
    DAMAGED = "damaged"
    BEYOND_REPAIR = "beyond_repair"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class AttendanceStatus(str, Enum):
    ACTIVE = "active"
    LOGGED_OUT = "logged_out"


class ChangeEvent(str, Enum):
    """Row-level change event kinds delivered by the change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class TicketCategory(str, Enum):
    BUG = "bug"
    FEATURE = "feature"
    QUESTION = "question"
    OTHER = "other"


class GroceryUnit(str, Enum):
    BOX = "Box"
    PCS = "Pcs"
    RIM = "Rim"
    COUNT = "Count"

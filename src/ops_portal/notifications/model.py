from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Notification:
    notification_id: int
    user_id: int
    type: str
    title: str
    message: str
    reference_id: Optional[int] = None
    reference_table: Optional[str] = None
    is_viewed: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

from __future__ import annotations

import re
from typing import Iterable, Optional


def parse_sequence(value: Optional[str], prefix: str) -> Optional[int]:
    """Numeric part of ``<prefix><digits>`` identifiers (``ASS007`` -> 7)."""
    if not value:
        return None
    m = re.fullmatch(re.escape(prefix) + r"(\d+)", value.strip())
    return int(m.group(1)) if m else None


def next_number(prefix: str, existing: Iterable[Optional[str]], *, digits: int = 3, bump: int = 0) -> str:
    """Highest existing suffix + 1 (+ ``bump`` for retries), zero padded."""
    highest = 0
    for value in existing:
        n = parse_sequence(value, prefix)
        if n is not None and n > highest:
            highest = n
    return f"{prefix}{highest + 1 + bump:0{digits}d}"

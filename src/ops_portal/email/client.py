"""Outbound email fan-out over HTTP.

Domain services call :class:`EmailNotifier` after a successful write. The
call is advisory: failures are logged and swallowed, never retried and never
undo the write that triggered them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..common.logger import get_logger
from ..core.constants import DEFAULT_EMAIL_TIMEOUT_SECONDS

log = get_logger(__name__)


def endpoint_path(domain: str) -> str:
    return f"/api/email/send-{domain}-notification"


class EmailNotifier:
    def __init__(
        self,
        base_url: str = "",
        client: Optional[httpx.Client] = None,
        *,
        timeout: float = DEFAULT_EMAIL_TIMEOUT_SECONDS,
    ) -> None:
        """Create a notifier.

        Args:
            base_url: Base URL serving the email endpoints. Empty disables sending.
            client: Optional injected httpx client for testing / transport control.
            timeout: Per-request timeout in seconds.
        """
        self._base_url = (base_url or "").rstrip("/")
        self._client = client
        self._timeout = float(timeout)

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    def send(self, domain: str, payload: Dict[str, Any]) -> bool:
        if not self.enabled:
            log.debug("email disabled, skipping %s/%s", domain, payload.get("type"))
            return False

        url = f"{self._base_url}{endpoint_path(domain)}"
        try:
            if self._client is not None:
                resp = self._client.post(url, json=payload, timeout=self._timeout)
                resp.raise_for_status()
            else:
                with httpx.Client() as client:
                    resp = client.post(url, json=payload, timeout=self._timeout)
                    resp.raise_for_status()
        except httpx.HTTPError as e:
            log.warning("email notification %s/%s failed: %s", domain, payload.get("type"), e)
            return False
        return True

    def send_to_each(self, domain: str, payload: Dict[str, Any], *, field: str, emails) -> int:
        """Send one copy per distinct address in ``emails``; returns how many succeeded."""
        sent = 0
        seen: set[str] = set()
        for email in emails:
            if not email or email in seen:
                continue
            seen.add(email)
            if self.send(domain, {**payload, field: email}):
                sent += 1
        return sent

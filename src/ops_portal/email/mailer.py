from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol, Tuple

from ..common.logger import get_logger

log = get_logger(__name__)


class Mailer(Protocol):
    def send(self, *, to_email: str, subject: str, body: str) -> Tuple[bool, str]:
        raise NotImplementedError


@dataclass(frozen=True)
class SmtpSettings:
    host: str
    port: int = 587
    user: str = ""
    password: str = ""
    sender: str = ""
    use_tls: bool = True
    timeout: float = 10.0

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender)


class SmtpMailer:
    def __init__(self, settings: SmtpSettings):
        self._settings = settings

    def send(self, *, to_email: str, subject: str, body: str) -> Tuple[bool, str]:
        s = self._settings
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = s.sender
        msg["To"] = to_email
        msg.set_content(body)

        try:
            with smtplib.SMTP(s.host, s.port, timeout=s.timeout) as smtp:
                if s.use_tls:
                    smtp.starttls()
                if s.user:
                    smtp.login(s.user, s.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            log.warning("smtp send to %s failed: %s", to_email, exc)
            return False, str(exc)[:400]
        return True, ""


class LogMailer:
    """Mailer used when SMTP is not configured: logs instead of sending."""

    def __init__(self):
        self.sent: list[dict] = []

    def send(self, *, to_email: str, subject: str, body: str) -> Tuple[bool, str]:
        self.sent.append({"to": to_email, "subject": subject, "body": body})
        log.info("email (not sent, SMTP off) to=%s subject=%s", to_email, subject)
        return True, ""


def build_mailer(settings: SmtpSettings) -> Mailer:
    if settings.configured:
        return SmtpMailer(settings)
    return LogMailer()

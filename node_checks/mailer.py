from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

import structlog


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SmtpConfig:
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    starttls: bool = True
    sender: str = ""
    timeout_seconds: float = 15.0

    @property
    def is_configured(self) -> bool:
        return bool(self.host)


def build_email(*, sender: str, to: str, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)
    return msg


def _send_sync(config: SmtpConfig, msg: EmailMessage) -> None:
    with smtplib.SMTP(config.host, int(config.port), timeout=config.timeout_seconds) as server:
        if config.starttls:
            server.starttls()
        if config.username and config.password:
            server.login(config.username, config.password)
        server.send_message(msg)


async def send_email(config: SmtpConfig, *, to: str, subject: str, body: str) -> bool:
    if not config.is_configured:
        logger.warning("SMTP not configured; skipping email", subject=subject)
        return False
    if not to:
        logger.warning("No recipient address; skipping email", subject=subject)
        return False

    sender = config.sender or config.username or to
    msg = build_email(sender=sender, to=to, subject=subject, body=body)
    try:
        await asyncio.to_thread(_send_sync, config, msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Email send failed", to=to, subject=subject, error=f"{type(exc).__name__}: {exc}")
        return False
    logger.info("Email sent", to=to, subject=subject)
    return True

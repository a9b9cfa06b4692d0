from __future__ import annotations

import os
from dataclasses import dataclass, field

from node_checks.mailer import SmtpConfig
from node_checks.slack import SlackConfig


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    s = str(raw).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


def _env_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    return str(raw).strip()


@dataclass(frozen=True)
class Settings:
    # Chat delivery. Webhook wins over token+channel when both are set.
    slack_webhook_url: str = field(default_factory=lambda: _env_str("SLACK_WEBHOOK_URL"))
    slack_token: str = field(default_factory=lambda: _env_str("SLACK_TOKEN"))
    slack_channel: str = field(default_factory=lambda: _env_str("SLACK_CHANNEL"))

    # Direct email, used only when chat is not configured.
    email_address: str = field(default_factory=lambda: _env_str("EMAIL_ADDRESS"))
    smtp_host: str = field(default_factory=lambda: _env_str("SMTP_HOST"))
    smtp_port: int = field(default_factory=lambda: _env_int("SMTP_PORT", 587))
    smtp_username: str = field(default_factory=lambda: _env_str("SMTP_USERNAME"))
    smtp_password: str = field(default_factory=lambda: _env_str("SMTP_PASSWORD"))
    smtp_starttls: bool = field(default_factory=lambda: _env_bool("SMTP_STARTTLS", True))
    email_from: str = field(default_factory=lambda: _env_str("EMAIL_FROM"))

    @property
    def slack(self) -> SlackConfig:
        return SlackConfig(
            webhook_url=self.slack_webhook_url,
            token=self.slack_token,
            channel=self.slack_channel,
        )

    @property
    def smtp(self) -> SmtpConfig:
        return SmtpConfig(
            host=self.smtp_host,
            port=self.smtp_port,
            username=self.smtp_username,
            password=self.smtp_password,
            starttls=self.smtp_starttls,
            sender=self.email_from,
        )

    def operator_email(self) -> str:
        """The session identity (SMTP login) when it is an address, else EMAIL_ADDRESS."""
        if "@" in self.smtp_username:
            return self.smtp_username
        return self.email_address

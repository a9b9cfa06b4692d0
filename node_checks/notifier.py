from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Sequence
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
import structlog

from node_checks.mailer import send_email
from node_checks.models import NotificationTarget
from node_checks.settings import Settings
from node_checks.slack import send_slack_message_chunked


logger = structlog.get_logger(__name__)

ALERT_TITLE = "Node monitoring alert"
RECOVERY_TITLE = "Node monitoring - recovered"
SYSTEM_ERROR_TITLE = "Node monitoring - system error"


def load_timezone(name: str) -> tzinfo:
    cleaned = (name or "").strip()
    if not cleaned or cleaned.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(cleaned)
    except ZoneInfoNotFoundError:
        logger.warning("Timezone not found; falling back to UTC", tz=cleaned)
        return timezone.utc


def format_timestamp(value: datetime | None, tz: tzinfo = timezone.utc) -> str:
    if value is None:
        return "n/a"
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S %Z")


def node_host(url: str) -> str:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None
    return host or url


def build_alert_subject(group: str, targets: Sequence[NotificationTarget]) -> str:
    if len(targets) == 1:
        return f"[{group}] {ALERT_TITLE}: {node_host(targets[0].url)}"
    return f"[{group}] {ALERT_TITLE}: {len(targets)} nodes"


def build_alert_message(group: str, targets: Sequence[NotificationTarget], tz: tzinfo = timezone.utc) -> str:
    lines = [f"{ALERT_TITLE} ({group}) ❌", ""]
    for target in targets:
        kind = target.error_kind.value if target.error_kind is not None else "-"
        lines.append(f"URL: {target.url}")
        lines.append(f"Status: {target.status.value}")
        lines.append(f"Error kind: {kind}")
        lines.append(f"Error detected at: {format_timestamp(target.error_detected_at, tz)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def build_recovery_subject(group: str, url: str) -> str:
    return f"[{group}] {RECOVERY_TITLE}: {node_host(url)}"


def build_recovery_message(group: str, url: str, recovered_at: datetime, tz: tzinfo = timezone.utc) -> str:
    return "\n".join(
        [
            f"Node recovered ({group}) ✅",
            "",
            f"URL: {url}",
            "Status: Running",
            f"Recovery confirmed at: {format_timestamp(recovered_at, tz)}",
            "",
            "The node is operating normally again.",
        ]
    ).strip() + "\n"


def build_system_error_message(error: BaseException) -> str:
    return f"Node monitoring run failed: {type(error).__name__}: {error}"


class Notifier:
    """Delivers alerts over exactly one channel.

    Slack is used whenever it is configured; email to the operator address is
    the fallback. Transport failures are logged and reported as ``False``.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http_client = http_client

    @property
    def channel(self) -> str | None:
        if self.settings.slack.is_configured:
            return "slack"
        if self.settings.smtp.is_configured and self.settings.operator_email():
            return "email"
        return None

    async def deliver(self, subject: str, body: str) -> bool:
        channel = self.channel
        try:
            if channel == "slack":
                ok, resps = await send_slack_message_chunked(self.http_client, self.settings.slack, body)
                logger.info("Slack notification sent", ok=ok, parts=len(resps), subject=subject)
                return ok
            if channel == "email":
                return await send_email(
                    self.settings.smtp,
                    to=self.settings.operator_email(),
                    subject=subject,
                    body=body,
                )
        except Exception as exc:
            logger.error("Notification delivery failed", channel=channel, subject=subject, error=str(exc))
            return False

        logger.warning("No notification channel configured; dropping message", subject=subject)
        return False

    async def send_alert(self, group: str, targets: Sequence[NotificationTarget], tz: tzinfo = timezone.utc) -> bool:
        if not targets:
            return False
        return await self.deliver(build_alert_subject(group, targets), build_alert_message(group, targets, tz))

    async def send_recovery(self, group: str, url: str, recovered_at: datetime, tz: tzinfo = timezone.utc) -> bool:
        return await self.deliver(
            build_recovery_subject(group, url),
            build_recovery_message(group, url, recovered_at, tz),
        )

    async def send_system_error(self, error: BaseException) -> bool:
        return await self.deliver(SYSTEM_ERROR_TITLE, build_system_error_message(error))

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog


logger = structlog.get_logger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"
# Slack truncates message text well above this; keep chunks readable.
SLACK_MAX_MESSAGE_LEN = 3900


@dataclass(frozen=True)
class SlackConfig:
    webhook_url: str = ""
    token: str = ""
    channel: str = ""

    @property
    def uses_webhook(self) -> bool:
        return bool(self.webhook_url)

    @property
    def is_configured(self) -> bool:
        return bool(self.webhook_url) or bool(self.token and self.channel)


def split_slack_message(text: str, *, max_len: int = SLACK_MAX_MESSAGE_LEN) -> list[str]:
    s = (text or "").strip()
    if not s:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while s:
        if len(s) <= max_len:
            parts.append(s)
            break
        cut = s.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        parts.append(s[:cut].rstrip())
        s = s[cut:].lstrip()
    return parts


def _redact(msg: str, config: SlackConfig) -> str:
    for secret in (config.token, config.webhook_url):
        if secret:
            msg = msg.replace(secret, "<redacted>")
    return msg


async def send_slack_message(
    client: httpx.AsyncClient,
    config: SlackConfig,
    text: str,
    *,
    timeout_seconds: float = 15.0,
) -> tuple[bool, dict]:
    """Post ``text`` through the webhook, or the bot API when no webhook is set."""
    if not config.is_configured:
        return False, {"ok": False, "error": "slack_not_configured"}

    try:
        if config.uses_webhook:
            resp = await client.post(config.webhook_url, json={"text": text}, timeout=timeout_seconds)
            ok = 200 <= resp.status_code < 300
            return ok, {"ok": ok, "status_code": resp.status_code}

        resp = await client.post(
            SLACK_POST_MESSAGE_URL,
            json={"channel": config.channel, "text": text},
            headers={"Authorization": f"Bearer {config.token}"},
            timeout=timeout_seconds,
        )
        data = resp.json()
        if not isinstance(data, dict):
            return False, {"ok": False, "status_code": resp.status_code}
        return bool(data.get("ok")), {
            "ok": bool(data.get("ok")),
            "status_code": resp.status_code,
            "error": data.get("error"),
        }
    except (httpx.HTTPError, ValueError) as e:
        return False, {"ok": False, "error": _redact(f"{type(e).__name__}: {e}", config)}


async def send_slack_message_chunked(
    client: httpx.AsyncClient,
    config: SlackConfig,
    text: str,
    *,
    max_len: int = SLACK_MAX_MESSAGE_LEN,
) -> tuple[bool, list[dict]]:
    ok_all = True
    responses: list[dict] = []
    for part in split_slack_message(text, max_len=max_len):
        ok, resp = await send_slack_message(client, config, part)
        if not ok:
            logger.warning("Slack message part failed", response=resp)
        ok_all = ok_all and ok
        responses.append(resp)
    return ok_all, responses

from __future__ import annotations

import smtplib

import pytest

import node_checks.mailer as mailer
from node_checks.mailer import SmtpConfig, build_email, send_email
from node_checks.settings import Settings


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SMTP_HOST", " smtp.example.com ")
    monkeypatch.setenv("SMTP_PORT", "not-a-number")
    monkeypatch.setenv("SMTP_STARTTLS", "off")
    monkeypatch.setenv("SMTP_USERNAME", "relay-user")
    monkeypatch.setenv("EMAIL_ADDRESS", "ops@example.com")
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("SLACK_TOKEN", raising=False)

    s = Settings()
    assert s.smtp.host == "smtp.example.com"
    assert s.smtp.port == 587
    assert s.smtp.starttls is False
    assert s.slack.is_configured is False
    # login name is not an address, so the configured one is used
    assert s.operator_email() == "ops@example.com"


def test_build_email_headers() -> None:
    msg = build_email(sender="monitor@example.com", to="ops@example.com", subject="[g] alert", body="hello")
    assert msg["To"] == "ops@example.com"
    assert msg["Subject"] == "[g] alert"
    assert "hello" in msg.get_content()


@pytest.mark.asyncio
async def test_send_email_reports_smtp_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing(config, msg):
        raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    monkeypatch.setattr(mailer, "_send_sync", failing)
    ok = await send_email(SmtpConfig(host="smtp.example.com"), to="ops@example.com", subject="s", body="b")
    assert ok is False


@pytest.mark.asyncio
async def test_send_email_skips_without_host_or_recipient(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[object] = []
    monkeypatch.setattr(mailer, "_send_sync", lambda config, msg: calls.append(msg))

    assert await send_email(SmtpConfig(), to="ops@example.com", subject="s", body="b") is False
    assert await send_email(SmtpConfig(host="smtp.example.com"), to="", subject="s", body="b") is False
    assert calls == []

    assert await send_email(SmtpConfig(host="smtp.example.com"), to="ops@example.com", subject="s", body="b") is True
    assert calls[0]["From"] == "ops@example.com"

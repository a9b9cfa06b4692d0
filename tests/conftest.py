from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

from node_checks.models import NodeRecord
from node_checks.notifier import Notifier
from node_checks.settings import Settings
from node_checks.store import SqliteNodeStore


T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier(Notifier):
    """Notifier that keeps every delivered message instead of sending it."""

    def __init__(self, *, ok: bool = True):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        super().__init__(Settings(slack_webhook_url="https://hooks.example/T/B/x"), client)
        self.ok = ok
        self.sent: list[tuple[str, str]] = []

    async def deliver(self, subject: str, body: str) -> bool:
        self.sent.append((subject, body))
        return self.ok


def assert_consistent(record: NodeRecord) -> None:
    running = record.is_running
    assert running == (record.error_kind is None)
    assert running == (record.error_detected_at is None)
    if running:
        assert record.last_notified_at is None


@pytest.fixture()
def store(tmp_path: Path):
    s = SqliteNodeStore(str(tmp_path / "state.db"))
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable

from node_checks.models import NodeRecord, NotificationTarget


NOTIFICATION_INTERVAL = timedelta(minutes=30)


def is_due(record: NodeRecord, now: datetime, *, interval: timedelta = NOTIFICATION_INTERVAL) -> bool:
    if not record.enabled or record.is_running:
        return False
    if record.last_notified_at is None:
        return True
    return (now - record.last_notified_at) >= interval


def due_targets(
    records: Iterable[NodeRecord],
    now: datetime,
    *,
    interval: timedelta = NOTIFICATION_INTERVAL,
) -> list[NotificationTarget]:
    return [
        NotificationTarget(
            url=r.url,
            status=r.status,
            error_kind=r.error_kind,
            error_detected_at=r.error_detected_at,
        )
        for r in records
        if is_due(r, now, interval=interval)
    ]


def stamp_notified(
    records: Iterable[NodeRecord],
    targets: Iterable[NotificationTarget],
    now: datetime,
) -> list[NodeRecord]:
    """Return only the records that were part of the batch, stamped with ``now``."""
    urls = {t.url for t in targets}
    return [replace(r, last_notified_at=now) for r in records if r.url in urls]

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable

import httpx
import structlog

from node_checks.block_delay import detect_block_delay, max_block_height
from node_checks.config import GroupConfig, MonitorConfig
from node_checks.models import FleetSnapshot, NodeRecord, NodeStatus, TransportError
from node_checks.notifier import Notifier, load_timezone
from node_checks.probe import REQUEST_TIMEOUT_SECONDS, probe_node
from node_checks.schedule import NOTIFICATION_INTERVAL, due_targets, stamp_notified
from node_checks.settings import Settings
from node_checks.state_machine import apply_outcome
from node_checks.store import GroupSettings, NodeStore


logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PassSummary:
    group: str
    probed: int = 0
    transport_errors: int = 0
    errors: int = 0
    delayed: int = 0
    recovered: list[str] = field(default_factory=list)
    notified: list[str] = field(default_factory=list)
    max_height: int | None = None


async def _probe_and_apply(
    record: NodeRecord,
    *,
    group: GroupConfig,
    store: NodeStore,
    client: httpx.AsyncClient,
    notifier: Notifier,
    now_fn: Callable[[], datetime],
    tz: tzinfo,
    timeout_seconds: float,
    summary: PassSummary,
) -> NodeRecord | None:
    """Probe one node and persist its next state.

    Returns the previous record when a delayed node answered healthy: whether
    it really recovered is only known after this pass's delay detection.
    """
    result = await probe_node(client, record.url, timeout_seconds=timeout_seconds)
    summary.probed += 1

    if isinstance(result.outcome, TransportError):
        summary.transport_errors += 1
        logger.warning(
            "Health check failed; state unchanged",
            group=group.name,
            url=record.url,
            error=result.outcome.detail,
        )
        return None

    now = now_fn()
    transition = apply_outcome(record, result.outcome, result.height, now=now)
    pending = None
    if record.status is NodeStatus.DELAY and transition.record.is_running:
        pending = record
    elif transition.recovered:
        await _report_recovery(record.url, group=group, notifier=notifier, now=now, tz=tz, summary=summary)

    store.save_node(transition.record)
    if not transition.record.is_running:
        logger.info(
            "Node in error state",
            group=group.name,
            url=record.url,
            status=transition.record.status.value,
            error_kind=transition.record.error_kind.value if transition.record.error_kind else None,
        )
    return pending


async def _report_recovery(
    url: str,
    *,
    group: GroupConfig,
    notifier: Notifier,
    now: datetime,
    tz: tzinfo,
    summary: PassSummary,
) -> None:
    summary.recovered.append(url)
    if group.notify:
        await notifier.send_recovery(group.name, url, now, tz)
    logger.info("Node recovered", group=group.name, url=url)


async def run_group_pass(
    group: GroupConfig,
    *,
    store: NodeStore,
    client: httpx.AsyncClient,
    notifier: Notifier,
    now_fn: Callable[[], datetime] = utc_now,
    tz: tzinfo = timezone.utc,
    timeout_seconds: float = REQUEST_TIMEOUT_SECONDS,
    notification_interval: timedelta = NOTIFICATION_INTERVAL,
) -> PassSummary:
    """Probe every enabled node of one group, then run delay detection and alerting."""
    summary = PassSummary(group=group.name)

    records = store.sync_group(group.name, {n.url: not n.disabled for n in group.nodes})
    store.write_group_settings(
        group.name,
        GroupSettings(reference_height=group.reference_height, block_delay_threshold=group.block_delay_threshold),
    )
    enabled = [r for r in records if r.enabled]
    if not enabled:
        logger.info("No enabled nodes in group", group=group.name)
        return summary

    # url -> record as it was before a healthy probe cleared its Delay status
    pending_delay: dict[str, NodeRecord] = {}
    for record in enabled:
        try:
            previous = await _probe_and_apply(
                record,
                group=group,
                store=store,
                client=client,
                notifier=notifier,
                now_fn=now_fn,
                tz=tz,
                timeout_seconds=timeout_seconds,
                summary=summary,
            )
            if previous is not None:
                pending_delay[record.url] = previous
        except Exception:
            logger.exception("Node processing failed", group=group.name, url=record.url)

    fresh = [r for r in store.list_nodes(group.name) if r.enabled]
    snapshot = FleetSnapshot(group=group.name, records=fresh, max_height=max_block_height(fresh))
    summary.max_height = snapshot.max_height

    group_settings = store.read_group_settings(group.name)
    reference = None
    if group.reference_height_source == "configured":
        reference = group_settings.reference_height
        if reference is None:
            logger.info("Configured reference height missing; skipping block delay check", group=group.name)

    if group.reference_height_source == "live" or reference is not None:
        checked = detect_block_delay(
            snapshot.records,
            group_settings.block_delay_threshold,
            now=now_fn(),
            reference_height=reference,
        )
        for before, after in zip(snapshot.records, checked):
            if after is before:
                continue
            summary.delayed += 1
            previous = pending_delay.pop(after.url, None)
            if previous is not None:
                # still behind: same incident, keep its start and notification times
                after = replace(
                    after,
                    error_detected_at=previous.error_detected_at or after.error_detected_at,
                    last_notified_at=previous.last_notified_at,
                )
            store.save_node(after)

    for url, previous in pending_delay.items():
        if previous.last_notified_at is not None:
            await _report_recovery(url, group=group, notifier=notifier, now=now_fn(), tz=tz, summary=summary)

    current = [r for r in store.list_nodes(group.name) if r.enabled]
    summary.errors = sum(1 for r in current if not r.is_running)

    if not group.notify:
        return summary

    now = now_fn()
    targets = due_targets(current, now, interval=notification_interval)
    if targets:
        sent = await notifier.send_alert(group.name, targets, tz)
        if not sent:
            logger.warning("Alert delivery failed; nodes still marked notified", group=group.name, count=len(targets))
        for record in stamp_notified(current, targets, now):
            store.save_node(record)
        summary.notified = [t.url for t in targets]

    return summary


async def run_once(
    config: MonitorConfig,
    settings: Settings,
    *,
    store: NodeStore,
    client: httpx.AsyncClient | None = None,
    notifier: Notifier | None = None,
    now_fn: Callable[[], datetime] = utc_now,
) -> list[PassSummary]:
    """Run one invocation over every configured group.

    Any uncaught failure ends this invocation only and is reported as a
    system-error alert.
    """
    own_client = client is None
    http_client = client or httpx.AsyncClient()
    notifier = notifier or Notifier(settings, http_client)
    tz = load_timezone(config.timezone)
    summaries: list[PassSummary] = []
    logger.info("Node monitoring started", groups=[g.name for g in config.groups])
    try:
        for group in config.groups:
            summary = await run_group_pass(
                group,
                store=store,
                client=http_client,
                notifier=notifier,
                now_fn=now_fn,
                tz=tz,
                timeout_seconds=config.request_timeout_seconds,
                notification_interval=timedelta(minutes=config.notification_interval_minutes),
            )
            summaries.append(summary)
            logger.info(
                "Group pass complete",
                group=summary.group,
                probed=summary.probed,
                errors=summary.errors,
                delayed=summary.delayed,
                notified=len(summary.notified),
                recovered=len(summary.recovered),
                max_height=summary.max_height,
            )
        logger.info("Node monitoring finished")
    except Exception as exc:
        logger.exception("Unexpected error during monitoring run")
        await notifier.send_system_error(exc)
    finally:
        if own_client:
            await http_client.aclose()
    return summaries

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from node_checks.models import (
    ErrorKind,
    Healthy,
    NodeRecord,
    NodeStatus,
    Outcome,
    TimedOut,
    TlsError,
    TransportError,
)


@dataclass(frozen=True)
class Transition:
    record: NodeRecord
    # True when a previously alerted node just came back; the caller owes
    # a recovery notice before persisting ``record``.
    recovered: bool = False


def mark_error(record: NodeRecord, status: NodeStatus, kind: ErrorKind, *, now: datetime) -> NodeRecord:
    """Put ``record`` into an error state.

    ``error_detected_at`` is only written when it is empty, so it keeps the
    start of the incident across kind changes (Timeout -> DB/API, ...).
    """
    if status is NodeStatus.RUNNING:
        raise ValueError("mark_error requires a non-Running status")
    detected_at = record.error_detected_at
    if detected_at is None:
        detected_at = now
    return replace(record, status=status, error_kind=kind, error_detected_at=detected_at)


def clear_error(record: NodeRecord) -> NodeRecord:
    return replace(
        record,
        status=NodeStatus.RUNNING,
        error_kind=None,
        error_detected_at=None,
        last_notified_at=None,
    )


def _clear_health_data(record: NodeRecord) -> NodeRecord:
    return replace(record, db_state="", api_state="", block_height=None)


def apply_outcome(
    record: NodeRecord,
    outcome: Outcome,
    height: int | None = None,
    *,
    now: datetime,
) -> Transition:
    if isinstance(outcome, TimedOut):
        nxt = mark_error(_clear_health_data(record), NodeStatus.ERROR, ErrorKind.TIMEOUT, now=now)
        return Transition(record=nxt)

    if isinstance(outcome, TlsError):
        nxt = mark_error(_clear_health_data(record), NodeStatus.ERROR, ErrorKind.TLS_EXPIRED, now=now)
        return Transition(record=nxt)

    if isinstance(outcome, TransportError):
        return Transition(record=record)

    if isinstance(outcome, Healthy):
        nxt = replace(record, db_state=outcome.db, api_state=outcome.api)
        if height is not None:
            nxt = replace(nxt, block_height=int(height))

        if not outcome.all_up:
            return Transition(record=mark_error(nxt, NodeStatus.ERROR, ErrorKind.DB_API, now=now))

        return Transition(record=clear_error(nxt), recovered=record.last_notified_at is not None)

    raise TypeError(f"Unknown probe outcome: {outcome!r}")

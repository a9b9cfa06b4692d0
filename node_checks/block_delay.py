from __future__ import annotations

from datetime import datetime
from typing import Iterable

import structlog

from node_checks.models import ErrorKind, NodeRecord, NodeStatus
from node_checks.state_machine import mark_error


logger = structlog.get_logger(__name__)


def max_block_height(records: Iterable[NodeRecord]) -> int | None:
    heights = [r.block_height for r in records if r.enabled and r.block_height is not None]
    return max(heights) if heights else None


def detect_block_delay(
    records: list[NodeRecord],
    threshold: int | None,
    *,
    now: datetime,
    reference_height: int | None = None,
) -> list[NodeRecord]:
    """Mark nodes trailing the fleet by more than ``threshold`` blocks.

    The reference is the live maximum among enabled records unless
    ``reference_height`` is given. Nodes without a known height are exempt.
    Returns a new list in the same order; unaffected records are returned
    as-is.
    """
    if not threshold or int(threshold) <= 0:
        return list(records)

    reference = reference_height if reference_height is not None else max_block_height(records)
    if not reference:
        return list(records)

    min_acceptable = int(reference) - int(threshold)
    out: list[NodeRecord] = []
    for record in records:
        if record.enabled and record.block_height is not None and record.block_height < min_acceptable:
            logger.info(
                "Block delay detected",
                url=record.url,
                block_height=record.block_height,
                min_acceptable=min_acceptable,
                reference_height=reference,
            )
            record = mark_error(record, NodeStatus.DELAY, ErrorKind.BLOCK_DELAY, now=now)
        out.append(record)
    return out

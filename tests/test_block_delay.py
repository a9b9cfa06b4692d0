from __future__ import annotations

from datetime import timedelta

from node_checks.block_delay import detect_block_delay, max_block_height
from node_checks.models import ErrorKind, NodeRecord, NodeStatus
from tests.conftest import T0, assert_consistent


def _node(url: str, height: int | None, **kw) -> NodeRecord:
    return NodeRecord(group="mainnet", url=url, block_height=height, **kw)


def test_max_block_height_ignores_disabled_and_unknown() -> None:
    records = [
        _node("a", 1000),
        _node("b", None),
        _node("c", 5000, enabled=False),
    ]
    assert max_block_height(records) == 1000
    assert max_block_height([_node("x", None)]) is None


def test_threshold_boundary() -> None:
    records = [_node("top", 1000), _node("lagging", 940), _node("close", 951)]
    out = detect_block_delay(records, 50, now=T0)
    by_url = {r.url: r for r in out}

    assert by_url["lagging"].status is NodeStatus.DELAY
    assert by_url["lagging"].error_kind is ErrorKind.BLOCK_DELAY
    assert by_url["lagging"].error_detected_at == T0
    assert by_url["close"].is_running
    assert by_url["top"].is_running
    # untouched records keep their identity
    assert by_url["close"] is records[2]
    for r in out:
        assert_consistent(r)


def test_exactly_at_min_acceptable_is_not_delayed() -> None:
    out = detect_block_delay([_node("top", 1000), _node("edge", 950)], 50, now=T0)
    assert all(r.is_running for r in out)


def test_no_threshold_or_no_heights_is_noop() -> None:
    records = [_node("top", 1000), _node("low", 10)]
    assert detect_block_delay(records, None, now=T0) == records
    assert detect_block_delay(records, 0, now=T0) == records
    unknown = [_node("a", None), _node("b", None)]
    assert detect_block_delay(unknown, 50, now=T0) == unknown


def test_node_without_height_is_exempt() -> None:
    out = detect_block_delay([_node("top", 1000), _node("timed-out", None)], 50, now=T0)
    assert out[1].is_running


def test_delay_keeps_existing_error_detected_at() -> None:
    first = T0 - timedelta(hours=1)
    rec = _node(
        "old",
        100,
        status=NodeStatus.ERROR,
        error_kind=ErrorKind.DB_API,
        error_detected_at=first,
    )
    out = detect_block_delay([_node("top", 1000), rec], 50, now=T0)
    assert out[1].status is NodeStatus.DELAY
    assert out[1].error_detected_at == first


def test_configured_reference_height_overrides_live_max() -> None:
    records = [_node("a", 1000), _node("b", 990)]
    out = detect_block_delay(records, 5, now=T0, reference_height=2000)
    assert all(r.status is NodeStatus.DELAY for r in out)


def test_disabled_nodes_are_not_flagged() -> None:
    out = detect_block_delay([_node("top", 1000), _node("off", 1, enabled=False)], 50, now=T0)
    assert out[1].is_running

from __future__ import annotations

import asyncio
import ssl
from typing import Any

import httpx
import structlog

from node_checks.models import Healthy, Outcome, ProbeResult, TimedOut, TlsError, TransportError


logger = structlog.get_logger(__name__)

REQUEST_TIMEOUT_SECONDS = 5.0

# Upper-case protocol names only; lower-case "ssl"/"tls" show up in host names.
_TLS_MARKERS = ("SSL", "TLS")


def _join(url: str, path: str) -> str:
    return f"{str(url or '').strip().rstrip('/')}{path}"


def _is_tls_error(exc: BaseException) -> bool:
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        if isinstance(cur, ssl.SSLError):
            return True
        msg = str(cur)
        if "certificate" in msg.lower() or any(marker in msg for marker in _TLS_MARKERS):
            return True
        cur = cur.__cause__ or cur.__context__
    return False


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"[:500]


def parse_height(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value >= 0 else None
    s = str(value).strip()
    if not s.isdigit():
        return None
    return int(s)


async def check_health(
    client: httpx.AsyncClient, url: str, *, timeout_seconds: float = REQUEST_TIMEOUT_SECONDS
) -> Outcome:
    try:
        # httpx times each phase separately; wait_for bounds the whole call.
        resp = await asyncio.wait_for(
            client.get(_join(url, "/node/health"), timeout=timeout_seconds), timeout=timeout_seconds
        )
    except (httpx.TimeoutException, asyncio.TimeoutError):
        return TimedOut()
    except httpx.HTTPError as exc:
        if _is_tls_error(exc):
            return TlsError(detail=_describe(exc))
        return TransportError(detail=_describe(exc))
    except ssl.SSLError as exc:
        return TlsError(detail=_describe(exc))
    except httpx.InvalidURL as exc:
        return TransportError(detail=_describe(exc))

    if resp.status_code != 200:
        return TransportError(detail=f"HTTP {resp.status_code}")

    try:
        data = resp.json()
    except ValueError as exc:
        return TransportError(detail=f"invalid_json: {exc}")

    status = data.get("status") if isinstance(data, dict) else None
    if not isinstance(status, dict):
        status = {}
    db = str(status.get("db") or "unknown")
    api = str(status.get("apiNode") or "unknown")
    return Healthy(db=db, api=api)


async def fetch_chain_height(
    client: httpx.AsyncClient, url: str, *, timeout_seconds: float = REQUEST_TIMEOUT_SECONDS
) -> int | None:
    try:
        resp = await asyncio.wait_for(
            client.get(_join(url, "/chain/info"), timeout=timeout_seconds), timeout=timeout_seconds
        )
    except asyncio.TimeoutError:
        logger.info("Chain info request timed out", url=url, timeout_seconds=timeout_seconds)
        return None
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.info("Chain info request failed", url=url, error=_describe(exc))
        return None
    if resp.status_code != 200:
        logger.info("Chain info returned non-200", url=url, status_code=resp.status_code)
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return parse_height(data.get("height"))


async def probe_node(
    client: httpx.AsyncClient, url: str, *, timeout_seconds: float = REQUEST_TIMEOUT_SECONDS
) -> ProbeResult:
    """Run the health call and, only when it succeeds, the chain-info call.

    Never raises: every failure of the health call is folded into the
    outcome, and a failed chain-info call just leaves ``height`` unset.
    """
    outcome = await check_health(client, url, timeout_seconds=timeout_seconds)
    if not isinstance(outcome, Healthy):
        return ProbeResult(url=url, outcome=outcome)

    height = await fetch_chain_height(client, url, timeout_seconds=timeout_seconds)
    return ProbeResult(url=url, outcome=outcome, height=height)

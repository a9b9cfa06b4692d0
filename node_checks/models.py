from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


class NodeStatus(str, Enum):
    RUNNING = "Running"
    ERROR = "Error"
    DELAY = "Delay"


class ErrorKind(str, Enum):
    TIMEOUT = "Timeout"
    DB_API = "DB/API"
    BLOCK_DELAY = "BlockDelay"
    TLS_EXPIRED = "TlsExpired"


@dataclass(frozen=True)
class NodeRecord:
    """Persisted health state of one monitored node.

    A Running record carries no error kind and no timestamps; every error
    path goes through ``state_machine.mark_error`` so ``error_detected_at``
    keeps the time the incident started.
    """

    group: str
    url: str
    id: int | None = None
    enabled: bool = True
    status: NodeStatus = NodeStatus.RUNNING
    error_kind: ErrorKind | None = None
    db_state: str = ""
    api_state: str = ""
    block_height: int | None = None
    error_detected_at: datetime | None = None
    last_notified_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self.status is NodeStatus.RUNNING


@dataclass(frozen=True)
class NotificationTarget:
    url: str
    status: NodeStatus
    error_kind: ErrorKind | None
    error_detected_at: datetime | None


# Probe outcomes. Exactly one of these describes the health call of a node.


@dataclass(frozen=True)
class TimedOut:
    pass


@dataclass(frozen=True)
class TlsError:
    detail: str = ""


@dataclass(frozen=True)
class TransportError:
    detail: str = ""


@dataclass(frozen=True)
class Healthy:
    db: str
    api: str

    @property
    def all_up(self) -> bool:
        return self.db == "up" and self.api == "up"


Outcome = Union[TimedOut, TlsError, TransportError, Healthy]


@dataclass(frozen=True)
class ProbeResult:
    url: str
    outcome: Outcome
    # Only set for Healthy outcomes whose chain-info call succeeded.
    height: int | None = None


@dataclass(frozen=True)
class FleetSnapshot:
    group: str
    records: list[NodeRecord] = field(default_factory=list)
    max_height: int | None = None

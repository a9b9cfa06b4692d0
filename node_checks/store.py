from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Protocol

from node_checks.models import ErrorKind, NodeRecord, NodeStatus


SCHEMA_VERSION = 1


@dataclass(frozen=True)
class GroupSettings:
    reference_height: int | None = None
    block_delay_threshold: int | None = None


class NodeStore(Protocol):
    def list_nodes(self, group: str) -> list[NodeRecord]: ...

    def get_node(self, group: str, url: str) -> NodeRecord | None: ...

    def save_node(self, record: NodeRecord) -> NodeRecord: ...

    def sync_group(self, group: str, configured: Mapping[str, bool]) -> list[NodeRecord]: ...

    def read_group_settings(self, group: str) -> GroupSettings: ...

    def write_group_settings(self, group: str, settings: GroupSettings) -> None: ...


def _ts_to_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _text_to_ts(value: Any) -> datetime | None:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise ValueError("Missing db_path")
    if p != ":memory:":
        Path(p).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(p, timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000;")
    return conn


def _ensure_schema_conn(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_meta (k TEXT PRIMARY KEY, v TEXT NOT NULL);")
    row = conn.execute("SELECT v FROM schema_meta WHERE k='version'").fetchone()
    cur = int(row["v"]) if row and row["v"] else 0
    if cur >= SCHEMA_VERSION:
        return
    if cur == 0:
        _apply_v1(conn)
        conn.execute("INSERT OR REPLACE INTO schema_meta (k, v) VALUES ('version', ?)", (str(SCHEMA_VERSION),))
        return
    raise RuntimeError(f"Unsupported schema version upgrade path cur={cur} target={SCHEMA_VERSION}")


def _apply_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS nodes (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          group_name TEXT NOT NULL,
          url TEXT NOT NULL,
          enabled INTEGER NOT NULL DEFAULT 1,
          status TEXT NOT NULL DEFAULT 'Running',
          error_kind TEXT,
          db_state TEXT NOT NULL DEFAULT '',
          api_state TEXT NOT NULL DEFAULT '',
          block_height INTEGER,
          error_detected_at TEXT,
          last_notified_at TEXT,
          UNIQUE(group_name, url)
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS group_settings (
          group_name TEXT PRIMARY KEY,
          reference_height INTEGER,
          block_delay_threshold INTEGER
        );
        """
    )


def _row_to_record(row: sqlite3.Row) -> NodeRecord:
    kind = row["error_kind"]
    return NodeRecord(
        id=int(row["id"]),
        group=str(row["group_name"]),
        url=str(row["url"]),
        enabled=bool(row["enabled"]),
        status=NodeStatus(row["status"]),
        error_kind=ErrorKind(kind) if kind else None,
        db_state=str(row["db_state"] or ""),
        api_state=str(row["api_state"] or ""),
        block_height=int(row["block_height"]) if row["block_height"] is not None else None,
        error_detected_at=_text_to_ts(row["error_detected_at"]),
        last_notified_at=_text_to_ts(row["last_notified_at"]),
    )


class SqliteNodeStore:
    """Node State Store backed by a single SQLite file.

    One row per (group, url). Rows are never deleted; nodes dropped from the
    configuration are only disabled.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn = _connect(db_path)
        _ensure_schema_conn(self._conn)

    def close(self) -> None:
        self._conn.close()

    def list_nodes(self, group: str) -> list[NodeRecord]:
        rows = self._conn.execute(
            "SELECT * FROM nodes WHERE group_name=? ORDER BY id",
            (group,),
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def get_node(self, group: str, url: str) -> NodeRecord | None:
        row = self._conn.execute(
            "SELECT * FROM nodes WHERE group_name=? AND url=?",
            (group, url),
        ).fetchone()
        return _row_to_record(row) if row else None

    def save_node(self, record: NodeRecord) -> NodeRecord:
        params = (
            1 if record.enabled else 0,
            record.status.value,
            record.error_kind.value if record.error_kind is not None else None,
            record.db_state or "",
            record.api_state or "",
            record.block_height,
            _ts_to_text(record.error_detected_at),
            _ts_to_text(record.last_notified_at),
        )
        self._conn.execute(
            """
            INSERT INTO nodes (
              enabled, status, error_kind, db_state, api_state, block_height,
              error_detected_at, last_notified_at, group_name, url
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(group_name, url) DO UPDATE SET
              enabled=excluded.enabled,
              status=excluded.status,
              error_kind=excluded.error_kind,
              db_state=excluded.db_state,
              api_state=excluded.api_state,
              block_height=excluded.block_height,
              error_detected_at=excluded.error_detected_at,
              last_notified_at=excluded.last_notified_at
            """,
            params + (record.group, record.url),
        )
        saved = self.get_node(record.group, record.url)
        if saved is None:
            raise RuntimeError(f"Node row vanished after save: {record.group} {record.url}")
        return saved

    def sync_group(self, group: str, configured: Mapping[str, bool]) -> list[NodeRecord]:
        """Insert new urls, apply enabled flags, and disable urls no longer configured."""
        for url, enabled in configured.items():
            self._conn.execute(
                """
                INSERT INTO nodes (group_name, url, enabled) VALUES (?, ?, ?)
                ON CONFLICT(group_name, url) DO UPDATE SET enabled=excluded.enabled
                """,
                (group, url, 1 if enabled else 0),
            )
        for record in self.list_nodes(group):
            if record.url not in configured and record.enabled:
                self._conn.execute("UPDATE nodes SET enabled=0 WHERE id=?", (record.id,))
        return self.list_nodes(group)

    def read_group_settings(self, group: str) -> GroupSettings:
        row = self._conn.execute(
            "SELECT reference_height, block_delay_threshold FROM group_settings WHERE group_name=?",
            (group,),
        ).fetchone()
        if not row:
            return GroupSettings()
        return GroupSettings(
            reference_height=int(row["reference_height"]) if row["reference_height"] is not None else None,
            block_delay_threshold=(
                int(row["block_delay_threshold"]) if row["block_delay_threshold"] is not None else None
            ),
        )

    def write_group_settings(self, group: str, settings: GroupSettings) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO group_settings (group_name, reference_height, block_delay_threshold)
            VALUES (?, ?, ?)
            """,
            (group, settings.reference_height, settings.block_delay_threshold),
        )

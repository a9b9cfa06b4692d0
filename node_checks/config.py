"""Fleet configuration: node groups, their nodes and monitoring thresholds."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


class ConfigError(ValueError):
    """Raised when the monitoring configuration cannot be used."""


class NodeEntry(BaseModel):
    """One monitored node endpoint."""
    url: str = Field(description="Base URL of the node REST gateway")
    disabled: bool = Field(default=False, description="Skip this node without removing it")

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        url = str(value or "").strip()
        if not url:
            raise ValueError("node url is empty")
        return url


class GroupConfig(BaseModel):
    """A named partition of nodes (e.g. mainnet / testnet)."""
    name: str = Field(description="Group name, also the storage key")
    notify: bool = Field(default=True, description="Send alerts for this group")
    block_delay_threshold: Optional[int] = Field(default=None, ge=0, description="Allowed lag in blocks")
    reference_height: Optional[int] = Field(default=None, ge=0, description="Manually maintained reference height")
    reference_height_source: Literal["live", "configured"] = Field(
        default="live", description="Where the block delay reference comes from"
    )
    nodes: list[NodeEntry] = Field(default_factory=list)

    @field_validator("nodes", mode="before")
    @classmethod
    def _coerce_nodes(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("nodes must be a list")
        return [{"url": item} if isinstance(item, str) else item for item in value]

    @model_validator(mode="after")
    def _unique_urls(self) -> "GroupConfig":
        seen: set[str] = set()
        for node in self.nodes:
            if node.url in seen:
                raise ValueError(f"Duplicate node url in group {self.name}: {node.url}")
            seen.add(node.url)
        return self


class MonitorConfig(BaseModel):
    """Main configuration for the node monitor."""
    interval_seconds: int = Field(default=300, ge=1, description="Seconds between monitoring passes")
    request_timeout_seconds: float = Field(default=5.0, gt=0, description="Timeout per outbound request")
    notification_interval_minutes: int = Field(default=30, ge=1, description="Re-notify interval per node")
    timezone: str = Field(default="UTC", description="Timezone used in alert messages")
    db_path: str = Field(default="data/node-monitor.db", description="SQLite state store")
    log_level: str = Field(default="INFO")
    groups: list[GroupConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_groups(self) -> "MonitorConfig":
        seen: set[str] = set()
        for group in self.groups:
            if group.name in seen:
                raise ValueError(f"Duplicate group name: {group.name}")
            seen.add(group.name)
        return self


def _env_overrides() -> dict[str, Any]:
    overrides = {
        "db_path": os.getenv("NODE_MONITOR_DB_PATH"),
        "interval_seconds": os.getenv("NODE_MONITOR_INTERVAL_SECONDS"),
        "timezone": os.getenv("NODE_MONITOR_TIMEZONE"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    out: dict[str, Any] = {}
    for key, value in overrides.items():
        if value is None or not str(value).strip():
            continue
        if key == "interval_seconds":
            try:
                value = int(value)
            except ValueError as exc:
                raise ConfigError(f"NODE_MONITOR_INTERVAL_SECONDS must be an integer, got {value!r}") from exc
        out[key] = value
    return out


def load_config(config_path: Union[str, Path, None] = None) -> MonitorConfig:
    """Load configuration from YAML, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("NODE_MONITOR_CONFIG") or DEFAULT_CONFIG_PATH
    path = Path(config_path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")

    data.update(_env_overrides())
    try:
        config = MonitorConfig(**data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    if not config.groups:
        raise ConfigError("Config must contain a non-empty 'groups' list")
    return config

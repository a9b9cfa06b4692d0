from __future__ import annotations

from pathlib import Path

import pytest

from node_checks.config import DEFAULT_CONFIG_PATH, ConfigError, load_config


def _write(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_bundled_config_loads(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("NODE_MONITOR_DB_PATH", "NODE_MONITOR_INTERVAL_SECONDS", "NODE_MONITOR_TIMEZONE", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    config = load_config(DEFAULT_CONFIG_PATH)
    names = [g.name for g in config.groups]
    assert names == ["mainnet", "testnet"]
    mainnet = config.groups[0]
    assert mainnet.notify is True
    assert mainnet.block_delay_threshold == 50
    assert any(n.disabled for n in mainnet.nodes)
    assert config.groups[1].notify is False
    assert config.request_timeout_seconds == 5.0
    assert config.notification_interval_minutes == 30


def test_string_and_mapping_node_entries(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
groups:
  - name: g
    nodes:
      - "  https://a.example:3001  "
      - url: https://b.example:3001
        disabled: true
""",
    )
    config = load_config(path)
    nodes = config.groups[0].nodes
    assert nodes[0].url == "https://a.example:3001"
    assert nodes[0].disabled is False
    assert nodes[1].disabled is True
    assert config.groups[0].reference_height_source == "live"


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, "groups:\n  - name: g\n    nodes: [https://a]\n")
    monkeypatch.setenv("NODE_MONITOR_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("NODE_MONITOR_INTERVAL_SECONDS", "60")
    monkeypatch.setenv("NODE_MONITOR_TIMEZONE", "Asia/Tokyo")
    config = load_config(path)
    assert config.db_path == str(tmp_path / "x.db")
    assert config.interval_seconds == 60
    assert config.timezone == "Asia/Tokyo"


@pytest.mark.parametrize(
    "text",
    [
        "groups: []\n",
        "- not a mapping\n",
        "groups:\n  - name: g\n    nodes: [https://a, https://a]\n",
        "groups:\n  - name: g\n  - name: g\n",
        "groups:\n  - name: g\n    nodes: ['  ']\n",
        "groups:\n  - name: g\n    block_delay_threshold: -1\n",
        "groups:\n  - name: g\n    reference_height_source: somewhere\n",
    ],
)
def test_invalid_configs_raise(tmp_path: Path, text: str) -> None:
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, text))


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")

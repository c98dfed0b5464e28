"""Configuration management for Agent Bridge.

Loads user settings from ~/.config/agentbridge/config.cfg (or a .env file
next to it). Provides BridgeSettings (host side) and DaemonSettings (agent
daemon side). Environment variables override file values.
"""

import configparser
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values

from agentbridge.core.transport import default_transport_dir

# Default location for user configuration.
CONFIG_PATH = Path.home() / ".config" / "agentbridge" / "config.cfg"

DEFAULT_RESPONSE_TIMEOUT = 30.0
DEFAULT_AGENT_TIMEOUT = 120.0
DEFAULT_AGENT_PATH = "agent"


@dataclass
class BridgeSettings:
    transport_dir: Path
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT
    poll_interval: float = 0.5


@dataclass
class DaemonSettings:
    transport_dir: Path
    agent_path: str = DEFAULT_AGENT_PATH
    agent_timeout: float = DEFAULT_AGENT_TIMEOUT
    poll_interval: float = 1.0
    stale_lock_after: float = 300.0
    heartbeat_interval: float = 5.0


def load_raw_config(path: Path = CONFIG_PATH) -> Dict[str, str]:
    """
    Load configuration values from the standard config path.

    Falls back to a .env file in the same directory when config.cfg is
    missing. Values are returned with lowercase keys for convenience.
    """
    data: Dict[str, str] = {}

    if path.exists():
        cfg = configparser.ConfigParser()
        cfg.read(path)
        if "DEFAULT" in cfg:
            data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})
        return data

    env_path = path.parent / ".env"
    if env_path.exists():
        data.update(
            {k.lower(): v for k, v in dotenv_values(env_path).items() if v is not None}
        )

    return data


def _get_float(raw: Dict[str, str], key: str, env_key: Optional[str], default: float) -> float:
    env_value = os.environ.get(env_key) if env_key else None
    if env_value is not None and str(env_value).strip() != "":
        return float(env_value)
    value = raw.get(key, "")
    if value is None or str(value).strip() == "":
        return default
    return float(value)


def _get_transport_dir(raw: Dict[str, str]) -> Path:
    if os.environ.get("AGENTBRIDGE_DIR", "").strip():
        return default_transport_dir()
    configured = raw.get("transport_dir", "").strip()
    if configured:
        return Path(configured).expanduser()
    return default_transport_dir()


def get_bridge_settings(raw: Optional[Dict[str, str]] = None) -> BridgeSettings:
    """
    Build BridgeSettings from raw configuration values.

    Raises ValueError if a numeric value cannot be parsed.
    """
    raw = load_raw_config() if raw is None else raw
    return BridgeSettings(
        transport_dir=_get_transport_dir(raw),
        response_timeout=_get_float(
            raw, "response_timeout", "AGENTBRIDGE_RESPONSE_TIMEOUT_S", DEFAULT_RESPONSE_TIMEOUT
        ),
        poll_interval=_get_float(raw, "poll_interval", None, 0.5),
    )


def get_daemon_settings(raw: Optional[Dict[str, str]] = None) -> DaemonSettings:
    """
    Build DaemonSettings from raw configuration values.

    The agent path honours AGENTBRIDGE_AGENT_PATH, then the legacy
    RUST_AGENT_PATH, then the config file.
    """
    raw = load_raw_config() if raw is None else raw

    agent_path = (
        os.environ.get("AGENTBRIDGE_AGENT_PATH")
        or os.environ.get("RUST_AGENT_PATH")
        or raw.get("agent_path", "").strip()
        or DEFAULT_AGENT_PATH
    )

    return DaemonSettings(
        transport_dir=_get_transport_dir(raw),
        agent_path=agent_path,
        agent_timeout=_get_float(
            raw, "agent_timeout", "AGENTBRIDGE_AGENT_TIMEOUT_S", DEFAULT_AGENT_TIMEOUT
        ),
        poll_interval=_get_float(raw, "daemon_poll_interval", None, 1.0),
        stale_lock_after=_get_float(raw, "stale_lock_after", None, 300.0),
        heartbeat_interval=_get_float(raw, "heartbeat_interval", None, 5.0),
    )

"""
Tests for config loading and environment overrides.
"""

import os
import unittest
import tempfile
from pathlib import Path
from unittest.mock import patch

from agentbridge.core.configs import (
    DEFAULT_AGENT_PATH,
    DEFAULT_AGENT_TIMEOUT,
    DEFAULT_RESPONSE_TIMEOUT,
    get_bridge_settings,
    get_daemon_settings,
    load_raw_config,
)

OVERRIDE_KEYS = (
    "AGENTBRIDGE_DIR",
    "AGENTBRIDGE_RESPONSE_TIMEOUT_S",
    "AGENTBRIDGE_AGENT_PATH",
    "AGENTBRIDGE_AGENT_TIMEOUT_S",
    "RUST_AGENT_PATH",
)


def _clean_env(**extra: str) -> dict:
    env = {k: v for k, v in os.environ.items() if k not in OVERRIDE_KEYS}
    env.update(extra)
    return env


class TestConfig(unittest.TestCase):
    """Test cases for configuration helpers."""

    def setUp(self):
        """Set up test environment with temporary directories."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = Path(self.temp_dir) / "config.cfg"

    def tearDown(self):
        """Clean up temporary files."""
        import shutil

        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, defaults: dict) -> None:
        import configparser

        cfg = configparser.ConfigParser()
        cfg["DEFAULT"] = defaults
        with open(self.config_file, "w") as handle:
            cfg.write(handle)

    def test_load_raw_config_lowercases_keys(self):
        self._write_config({"AGENT_PATH": "/usr/local/bin/agent", "AGENT_TIMEOUT": "90"})

        raw = load_raw_config(self.config_file)
        self.assertEqual(raw["agent_path"], "/usr/local/bin/agent")
        self.assertEqual(raw["agent_timeout"], "90")

    def test_load_raw_config_missing_file_returns_empty_dict(self):
        self.assertEqual(load_raw_config(self.config_file), {})

    def test_load_raw_config_falls_back_to_dotenv(self):
        (Path(self.temp_dir) / ".env").write_text("AGENT_PATH=/opt/agent\nRESPONSE_TIMEOUT=12\n")

        raw = load_raw_config(self.config_file)
        self.assertEqual(raw["agent_path"], "/opt/agent")
        self.assertEqual(raw["response_timeout"], "12")

    def test_cfg_wins_over_dotenv(self):
        (Path(self.temp_dir) / ".env").write_text("AGENT_PATH=/opt/agent\n")
        self._write_config({"AGENT_PATH": "/from/cfg"})

        self.assertEqual(load_raw_config(self.config_file)["agent_path"], "/from/cfg")

    def test_bridge_settings_defaults(self):
        with patch.dict(os.environ, _clean_env(), clear=True):
            settings = get_bridge_settings({})

        self.assertEqual(settings.response_timeout, DEFAULT_RESPONSE_TIMEOUT)
        self.assertEqual(settings.transport_dir, Path.home() / ".agentbridge" / "agent")

    def test_bridge_settings_from_raw(self):
        raw = {"transport_dir": self.temp_dir, "response_timeout": "5", "poll_interval": "0.1"}
        with patch.dict(os.environ, _clean_env(), clear=True):
            settings = get_bridge_settings(raw)

        self.assertEqual(settings.transport_dir, Path(self.temp_dir))
        self.assertEqual(settings.response_timeout, 5.0)
        self.assertEqual(settings.poll_interval, 0.1)

    def test_env_overrides_file_values(self):
        raw = {"transport_dir": "/from/file", "response_timeout": "5", "agent_timeout": "1"}
        env = _clean_env(
            AGENTBRIDGE_DIR=self.temp_dir,
            AGENTBRIDGE_RESPONSE_TIMEOUT_S="42",
            AGENTBRIDGE_AGENT_TIMEOUT_S="7",
        )
        with patch.dict(os.environ, env, clear=True):
            bridge = get_bridge_settings(raw)
            daemon = get_daemon_settings(raw)

        self.assertEqual(bridge.transport_dir, Path(self.temp_dir))
        self.assertEqual(bridge.response_timeout, 42.0)
        self.assertEqual(daemon.agent_timeout, 7.0)

    def test_daemon_settings_defaults(self):
        with patch.dict(os.environ, _clean_env(), clear=True):
            settings = get_daemon_settings({})

        self.assertEqual(settings.agent_path, DEFAULT_AGENT_PATH)
        self.assertEqual(settings.agent_timeout, DEFAULT_AGENT_TIMEOUT)
        self.assertGreater(settings.stale_lock_after, settings.heartbeat_interval)

    def test_daemon_poll_interval_is_separate_from_host(self):
        raw = {"poll_interval": "0.1", "daemon_poll_interval": "2.5"}
        with patch.dict(os.environ, _clean_env(), clear=True):
            self.assertEqual(get_bridge_settings(raw).poll_interval, 0.1)
            self.assertEqual(get_daemon_settings(raw).poll_interval, 2.5)

    def test_legacy_agent_path_variable(self):
        with patch.dict(os.environ, _clean_env(RUST_AGENT_PATH="/legacy/agent"), clear=True):
            settings = get_daemon_settings({"agent_path": "/from/file"})
        self.assertEqual(settings.agent_path, "/legacy/agent")

    def test_new_agent_path_variable_wins(self):
        env = _clean_env(RUST_AGENT_PATH="/legacy/agent", AGENTBRIDGE_AGENT_PATH="/new/agent")
        with patch.dict(os.environ, env, clear=True):
            settings = get_daemon_settings({})
        self.assertEqual(settings.agent_path, "/new/agent")

    def test_bad_number_raises(self):
        with patch.dict(os.environ, _clean_env(), clear=True):
            with self.assertRaises(ValueError):
                get_bridge_settings({"response_timeout": "soon"})


if __name__ == "__main__":
    unittest.main()

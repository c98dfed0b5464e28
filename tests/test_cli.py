"""
Tests for the Typer CLI commands.
"""

import logging
import shutil
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from agent_stubs import write_stub_agent
from agentbridge.core.protocol import (
    CodeSuggestion,
    RequestMessage,
    ResponseMessage,
    serialize_request,
    serialize_response,
)
from agentbridge.core.transport import TransportLocation
from agentbridge.daemon.runner import AgentRunner
from agentbridge.daemon.server import AgentDaemon
from agentbridge.ui.cli import app
from agentbridge.utils.fs import atomic_write_bytes


class TestCli(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.agent_dir = Path(self.temp_dir) / "agent"
        self.location = TransportLocation.resolve(self.agent_dir)
        self.runner = CliRunner()
        self.root_handlers = list(logging.getLogger().handlers)
        self.config = patch("agentbridge.core.configs.load_raw_config", return_value={})
        self.config.start()

    def tearDown(self):
        self.config.stop()
        root = logging.getLogger()
        for handler in list(root.handlers):
            if handler not in self.root_handlers:
                root.removeHandler(handler)
                handler.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def invoke(self, *args):
        return self.runner.invoke(app, [*args, "--dir", str(self.agent_dir)])

    def test_status_on_empty_directory(self):
        result = self.invoke("status")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Request pending", result.output)

    def test_clear(self):
        self.location.request_path.write_text("{}")
        self.location.response_path.write_text("{}")

        result = self.invoke("clear")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Cleared.", result.output)
        self.assertFalse(self.location.request_path.exists())
        self.assertFalse(self.location.response_path.exists())

    def test_check_without_response(self):
        result = self.invoke("check")
        self.assertEqual(result.exit_code, 2)
        self.assertIn("No response available", result.output)

    def test_check_with_response(self):
        atomic_write_bytes(
            self.location.response_path,
            serialize_response(ResponseMessage(response_text="Rust is a systems programming language.")),
        )
        result = self.invoke("check")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Rust is a systems programming language.", result.output)

    def test_check_prints_brackets_verbatim(self):
        response = ResponseMessage(
            response_text="Close it with [/b] then index vec[i]",
            code_suggestions=[
                CodeSuggestion(file="main.rs", code="let x = v[0];\n", language="rust", description="Index [0]")
            ],
        )
        atomic_write_bytes(self.location.response_path, serialize_response(response))

        result = self.invoke("check")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Close it with [/b] then index vec[i]", result.output)
        self.assertIn("main.rs [rust]", result.output)
        self.assertIn("Index [0]", result.output)

    def test_check_with_malformed_response(self):
        self.location.response_path.write_text("{broken")
        result = self.invoke("check")
        self.assertEqual(result.exit_code, 1)

    def test_ask_times_out_without_daemon(self):
        result = self.invoke("ask", "anyone?", "--timeout", "0.3")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("did not respond in time", result.output)

    def test_ask_with_running_daemon(self):
        agent_path = write_stub_agent(Path(self.temp_dir), "sys.stdout.write('echo: ' + prompt)\n")
        daemon = AgentDaemon(self.location, AgentRunner(agent_path), poll_interval=0.1)
        worker = threading.Thread(target=daemon.run_forever, daemon=True)
        worker.start()
        try:
            result = self.invoke("ask", "What is Rust?", "--timeout", "10")
        finally:
            daemon.stop()
            worker.join(timeout=5)

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("echo: What is Rust?", result.output)

    def test_daemon_once(self):
        agent_path = write_stub_agent(Path(self.temp_dir), "sys.stdout.write('single shot')\n")
        atomic_write_bytes(self.location.request_path, serialize_request(RequestMessage.create("q")))

        result = self.invoke("daemon", "--once", "--agent-path", agent_path)

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn(b"single shot", self.location.response_path.read_bytes())
        self.assertTrue(self.location.log_path.exists())

    def test_daemon_once_without_request(self):
        result = self.invoke("daemon", "--once", "--agent-path", "true")
        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    unittest.main()

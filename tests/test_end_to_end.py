"""
End-to-end exchanges between a Bridge and a daemon on the same directory.
"""

import shutil
import tempfile
import threading
import time
import unittest
from pathlib import Path

from agent_stubs import RUST_ANSWER, write_stub_agent
from agentbridge.bridge.client import Bridge
from agentbridge.core.protocol import ResponseMessage, RequestMessage, serialize_response
from agentbridge.core.transport import TransportLocation
from agentbridge.daemon.runner import AgentRunner
from agentbridge.daemon.server import AgentDaemon
from agentbridge.utils.fs import atomic_write_bytes


class EndToEndTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.location = TransportLocation.resolve(Path(self.temp_dir) / "agent")
        self.bridge = Bridge(self.location, poll_interval=0.05)

    def tearDown(self):
        self.bridge.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def start_daemon(self, body: str) -> AgentDaemon:
        agent_path = write_stub_agent(Path(self.temp_dir), body)
        daemon = AgentDaemon(self.location, AgentRunner(agent_path, timeout=10), poll_interval=0.1)
        worker = threading.Thread(target=daemon.run_forever, daemon=True)
        worker.start()

        def shutdown():
            daemon.stop()
            worker.join(timeout=5)

        self.addCleanup(shutdown)
        return daemon


class TestHandWrittenResponder(EndToEndTestCase):

    def test_exact_response_is_returned(self):
        expected = ResponseMessage(
            response_text="Rust is a systems programming language.",
            code_suggestions=[],
            apply_changes=False,
        )
        stop = threading.Event()

        def responder():
            # Minimal daemon: wait for the request, answer, delete it
            while not stop.is_set():
                if self.location.request_path.exists():
                    atomic_write_bytes(self.location.response_path, serialize_response(expected))
                    self.location.request_path.unlink()
                    return
                time.sleep(0.02)

        worker = threading.Thread(target=responder)
        worker.start()
        try:
            self.bridge.send_request(RequestMessage.create("What is Rust?").with_workspace("/tmp/test"))
            response = self.bridge.wait_for_response(timeout=5)
        finally:
            stop.set()
            worker.join()

        self.assertEqual(response.response_text, "Rust is a systems programming language.")
        self.assertEqual(response.code_suggestions, [])
        self.assertFalse(response.apply_changes)
        self.assertFalse(self.location.request_path.exists())

        self.bridge.clear()
        self.assertFalse(self.location.response_path.exists())


class TestWithAgentDaemon(EndToEndTestCase):

    def test_plain_answer(self):
        self.start_daemon("sys.stdout.write('Rust is a systems programming language.')\n")

        self.bridge.send_request(RequestMessage.create("What is Rust?"))
        response = self.bridge.wait_for_response(timeout=10)

        self.assertEqual(response.response_text, "Rust is a systems programming language.")
        self.assertEqual(response.code_suggestions, [])
        self.assertFalse(response.apply_changes)

    def test_fenced_answer_becomes_suggestion(self):
        self.start_daemon(f"sys.stdout.write({RUST_ANSWER!r})\n")

        self.bridge.send_request(
            RequestMessage.create("Write hello world").with_current_file("main.rs", "")
        )
        response = self.bridge.wait_for_response(timeout=10)

        self.assertEqual(len(response.code_suggestions), 1)
        suggestion = response.code_suggestions[0]
        self.assertEqual(suggestion.language, "rust")
        self.assertEqual(suggestion.code, 'fn main() {\n    println!("Hello, world!");\n}\n')
        self.assertEqual(suggestion.file, "main.rs")
        self.assertTrue(suggestion.description)
        self.assertTrue(response.apply_changes)

    def test_sequential_requests(self):
        daemon = self.start_daemon("sys.stdout.write('echo: ' + prompt)\n")

        for query in ("one", "two", "three"):
            self.bridge.send_request(RequestMessage.create(query))
            self.assertEqual(self.bridge.wait_for_response(timeout=10).response_text, f"echo: {query}")
            self.bridge.clear()

        self.assertEqual(daemon.processed_count, 3)


if __name__ == "__main__":
    unittest.main()

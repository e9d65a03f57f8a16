"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from streamserver import StreamServer, ServerConfig, RelayResult


LISTENING = "server listening for connections"


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def config(free_port: int) -> ServerConfig:
    """Loopback test configuration on a free port."""
    return ServerConfig(
        host="127.0.0.1",
        port=free_port,
        kill_timeout=1.0,
    )


class StatusRecorder:
    """Status callback that remembers every message, in order."""

    def __init__(self):
        self.messages: List[str] = []
        self.listening = threading.Event()

    def __call__(self, message: str):
        self.messages.append(message)
        if message == LISTENING:
            self.listening.set()

    def count(self, message: str) -> int:
        return self.messages.count(message)


class ServerThread:
    """Runs StreamServer.serve() in a background thread."""

    def __init__(self, command: str, config: ServerConfig):
        self.config = config
        self.status = StatusRecorder()
        self.server = StreamServer(command, self.status, config)
        self.result: Optional[RelayResult] = None
        self.error: Optional[BaseException] = None
        self._thread = threading.Thread(target=self._run, daemon=True)

    def _run(self):
        try:
            self.result = self.server.serve()
        except Exception as e:
            self.error = e

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> "ServerThread":
        """Start the server and wait until it is listening."""
        self._thread.start()
        if not self.status.listening.wait(5.0):
            raise RuntimeError(f"Server failed to start: {self.error}")
        return self

    def join(self, timeout: float = 10.0) -> bool:
        """Wait for serve() to return. True if it did."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def stop(self):
        """Unblock a server that is still waiting for its GET."""
        if not self.is_alive:
            return
        try:
            with socket.create_connection(("127.0.0.1", self.port), timeout=1.0) as s:
                s.sendall(b"GET / HTTP/1.1\r\n\r\n")
        except OSError:
            pass
        self.join(timeout=5.0)


def http_exchange(port: int, raw: bytes, timeout: float = 5.0) -> bytes:
    """Send raw request bytes and read everything until the server closes."""
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as s:
        s.sendall(raw)
        chunks = []
        while True:
            data = s.recv(4096)
            if not data:
                break
            chunks.append(data)
    return b"".join(chunks)


@pytest.fixture
def run_server(config: ServerConfig) -> Generator:
    """Factory: start a StreamServer for a command, stop it at teardown."""
    started = []

    def start(command: str) -> ServerThread:
        srv = ServerThread(command, config).start()
        started.append(srv)
        return srv

    yield start

    for srv in started:
        srv.stop()


@pytest.fixture
def exchange():
    """The http_exchange() client helper."""
    return http_exchange

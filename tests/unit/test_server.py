"""
End-to-end tests: a real StreamServer on a loopback port, real clients.
"""

import socket
import struct
import threading
import time

import pytest

from streamserver import (
    BindError,
    RelayOutcome,
    ServerConfig,
    ServerState,
    StreamServer,
    serve,
)
from streamserver.core.connection import Connection
from streamserver.http.response import STREAM_HEADERS


SETUP = [
    "socket created successfully",
    "socket successfully bound to address",
    "server listening for connections",
]

GET = b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n"
OPTIONS = b"OPTIONS / HTTP/1.1\r\nOrigin: https://example.com\r\n\r\n"


def request_status(method: str, target: str = "/", version: str = "HTTP/1.1") -> list:
    return ["connection accepted", "127.0.0.1", method, target, version]


class TestStartup:

    def test_setup_status_order(self, run_server):
        srv = run_server("printf 'ab'")

        assert srv.status.messages == SETUP
        assert srv.server.state in (ServerState.LISTENING, ServerState.ACCEPTING)

    def test_non_callable_status_rejected(self, config):
        with pytest.raises(TypeError):
            StreamServer("true", None, config)

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            StreamServer("true", print, ServerConfig(port=70000))

    def test_bind_failure_is_raised(self, config):
        messages = []
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(config.address)
            blocker.listen(1)

            with pytest.raises(BindError) as exc_info:
                serve("true", messages.append, config)

        assert exc_info.value.message.startswith("webserver (bind): ")
        assert messages == ["socket created successfully"]


class TestGet:

    def test_printf_scenario(self, run_server, exchange):
        """serve("printf 'ab'") delivers headers then exactly b"ab"."""
        srv = run_server("printf 'ab'")

        response = exchange(srv.port, GET)

        assert response == STREAM_HEADERS + b"ab"
        assert srv.join()
        assert srv.error is None
        assert srv.status.messages == SETUP + request_status("GET")
        assert srv.result.outcome is RelayOutcome.EXHAUSTED
        assert srv.result.bytes_sent == 2
        assert srv.server.state == ServerState.TERMINATED

    def test_large_output_is_byte_identical(self, run_server, exchange):
        srv = run_server("seq 1 20000")
        expected = "".join(f"{i}\n" for i in range(1, 20001)).encode()

        response = exchange(srv.port, GET)

        assert response == STREAM_HEADERS + expected
        assert srv.join()

    def test_no_output_command(self, run_server, exchange):
        """serve("false"): headers only, closed, and no "aborted"."""
        srv = run_server("false")

        response = exchange(srv.port, GET)

        assert response == STREAM_HEADERS
        assert srv.join()
        assert srv.status.count("aborted") == 0
        assert srv.result.outcome is RelayOutcome.EXHAUSTED
        assert srv.result.returncode == 1

    def test_client_cancel_aborts_once(self, run_server):
        """Closing mid-stream ends the relay with one "aborted"."""
        srv = run_server("yes")

        with socket.create_connection(("127.0.0.1", srv.port), timeout=5) as s:
            s.sendall(GET)
            received = b""
            while len(received) < len(STREAM_HEADERS) + 4096:
                data = s.recv(4096)
                assert data
                received += data

        assert received.startswith(STREAM_HEADERS)
        assert received[len(STREAM_HEADERS):].startswith(b"y\ny\n")
        assert srv.join()
        assert srv.status.count("aborted") == 1
        assert srv.status.messages[-1] == "aborted"
        assert srv.result.aborted
        # The command was reaped
        assert srv.result.returncode is not None

    def test_listening_socket_released(self, run_server, exchange, config):
        srv = run_server("true")
        exchange(srv.port, GET)
        assert srv.join()

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind(config.address)
            s.listen(1)


class TestOptions:

    def test_preflight_then_get(self, run_server, exchange):
        """OPTIONS gets headers only and the same server then serves GET."""
        srv = run_server("printf 'ab'")

        preflight = exchange(srv.port, OPTIONS)

        assert preflight == STREAM_HEADERS
        assert srv.is_alive

        response = exchange(srv.port, GET)

        assert response == STREAM_HEADERS + b"ab"
        assert srv.join()
        assert srv.status.messages == (
            SETUP + request_status("OPTIONS") + request_status("GET")
        )

    def test_repeated_preflights_identical(self, run_server, exchange):
        srv = run_server("true")

        responses = [exchange(srv.port, OPTIONS) for _ in range(3)]

        assert responses[0] == responses[1] == responses[2] == STREAM_HEADERS
        assert srv.is_alive


class TestOtherMethods:

    def test_unknown_method_is_closed(self, run_server, exchange):
        srv = run_server("printf 'ab'")

        response = exchange(srv.port, b"POST /upload HTTP/1.1\r\nContent-Length: 0\r\n\r\n")

        assert response == b""
        assert srv.is_alive
        assert srv.status.messages[-3:] == ["POST", "/upload", "HTTP/1.1"]

        assert exchange(srv.port, GET) == STREAM_HEADERS + b"ab"
        assert srv.join()

    def test_empty_request(self, run_server, exchange):
        """A client that connects and sends nothing gets a closed connection."""
        srv = run_server("true")

        with socket.create_connection(("127.0.0.1", srv.port), timeout=5) as s:
            s.shutdown(socket.SHUT_WR)
            assert s.recv(1024) == b""

        srv.stop()
        assert srv.status.messages[3:8] == request_status("", "", "")


class TestConnectionErrors:

    def test_reset_before_read_is_reported(self, run_server, exchange):
        """A client that resets right away costs one error status, not the server."""
        srv = run_server("printf 'ab'")

        s = socket.create_connection(("127.0.0.1", srv.port), timeout=5)
        s.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        s.close()

        assert exchange(srv.port, GET) == STREAM_HEADERS + b"ab"
        assert srv.join()

        messages = srv.status.messages
        assert messages[:4] == SETUP + ["connection accepted"]
        assert messages[4].startswith(
            ("server error (getsockname): ", "server error (read): ")
        )
        assert messages[5:] == request_status("GET")
        assert srv.error is None

    def test_chatty_preflight_does_not_block_get(self, run_server, exchange):
        """A client that keeps sending after OPTIONS is cut off, then GET is served."""
        srv = run_server("printf 'ab'")
        stop = threading.Event()

        def chatty_preflight():
            with socket.create_connection(("127.0.0.1", srv.port), timeout=5) as s:
                try:
                    s.sendall(OPTIONS)
                    while not stop.is_set():
                        s.sendall(b"x" * 100)
                        time.sleep(0.05)
                except OSError:
                    pass

        client = threading.Thread(target=chatty_preflight, daemon=True)
        client.start()
        try:
            time.sleep(0.3)
            response = exchange(srv.port, GET, timeout=3.0)
        finally:
            stop.set()
            client.join(2.0)

        assert response == STREAM_HEADERS + b"ab"
        assert srv.join()


class TestHeaderWriteFailure:

    @pytest.fixture
    def gone_client(self):
        """Server side of a socketpair whose client has already closed."""
        server_side, client_side = socket.socketpair()
        client_side.close()
        conn = Connection(socket=server_side, address=("127.0.0.1", 50000))
        yield conn
        conn.close()

    def test_options_reports_write_error(self, config, gone_client):
        messages = []
        server = StreamServer("true", messages.append, config)

        server._handle_options(gone_client)

        assert len(messages) == 1
        assert messages[0].startswith("server error (write): ")
        assert server.state == ServerState.INIT

    def test_get_aborts_without_spawning(self, config, gone_client, tmp_path):
        marker = tmp_path / "ran"
        messages = []
        server = StreamServer(f"touch '{marker}'", messages.append, config)

        server._handle_get(gone_client)

        assert messages == ["aborted"]
        assert server.result is None
        assert server.state != ServerState.RELAYING
        assert not marker.exists()


class TestCallbackFailure:

    def test_accepted_connection_closed_when_callback_raises(self, config):
        def on_status(message):
            if message == "connection accepted":
                raise RuntimeError("callback failed")

        server = StreamServer("true", on_status, config)
        errors = []

        def run():
            try:
                server.serve()
            except RuntimeError as e:
                errors.append(e)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()

        deadline = time.monotonic() + 5.0
        while not server._listener.is_listening and time.monotonic() < deadline:
            time.sleep(0.01)

        with socket.create_connection(("127.0.0.1", config.port), timeout=5) as s:
            s.sendall(GET)
            assert s.recv(1024) == b""

        thread.join(5.0)
        assert len(errors) == 1
        assert server.state == ServerState.TERMINATED

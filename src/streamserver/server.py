"""
=============================================================================
STREAM SERVER - THE ACCEPT / PARSE / DISPATCH LOOP
=============================================================================

This module ties the pieces together into the one public operation:

    serve(command, on_status)

It binds 0.0.0.0:8080, answers CORS preflights for as long as it takes,
then serves exactly ONE GET by streaming the command's stdout, and returns.

=============================================================================
STATE MACHINE (one serve() call)
=============================================================================

    INIT ──► BOUND ──► LISTENING ──► ACCEPTING ◄───────────────┐
                                        │                      │
                                        ▼                      │
                                     PARSING ──(error)─────────┤
                                        │                      │
                                        ▼                      │
                                   DISPATCHING ──(OPTIONS)─────┤
                                        │      ──(other)───────┘
                                        │ GET
                                        ▼
                                    RELAYING ──► TERMINATED

Only a GET (streamed to the end or aborted by the client) reaches
TERMINATED. Preflights and unknown methods go back to ACCEPTING.

=============================================================================
PER-CONNECTION FLOW
=============================================================================

    accept()                        "connection accepted"
       │
    getpeername()                   failure → ERROR status, close, next
       │
    recv(1024)  (once)              failure → ERROR status, close, next
       │
    parse first line                <ip>, <method>, <target>, <version>
       │
       ├── OPTIONS ──► headers ──► close ──► next connection
       ├── GET ──────► headers ──► relay stdout ──► close ──► return
       └── other ────► close ──► next connection

Every connection is closed by a `with conn:` block, so no path leaks a
descriptor.

=============================================================================
CONCURRENCY
=============================================================================

None, on purpose. Everything blocks on the caller's thread, there are no
timeouts, and a second client waits in the listen backlog until the GET in
progress is done. A client that connects and never sends anything stalls the
server; that is the price of the single-threaded design.

=============================================================================
"""

import logging
from enum import Enum
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection, ProcessRelay, RelayResult
from .errors import ACCEPT_ERROR, PEER_ERROR, READ_ERROR, WRITE_ERROR, format_error
from .events import StatusChannel, StatusEvent, StatusCallback
from .http import RequestLine, parse_request_line, stream_headers


logger = logging.getLogger(__name__)


class ServerState(Enum):
    """Where one serve() invocation is in its lifecycle."""
    INIT = "init"
    BOUND = "bound"
    LISTENING = "listening"
    ACCEPTING = "accepting"
    PARSING = "parsing"
    DISPATCHING = "dispatching"
    RELAYING = "relaying"
    TERMINATED = "terminated"


class StreamServer:
    """
    Single-shot HTTP server that streams a shell command's stdout.

    =========================================================================
    USAGE
    =========================================================================

        def on_status(message):
            print("status:", message)

        server = StreamServer("arecord -f cd -t raw", on_status)
        result = server.serve()     # blocks until one GET has been served

        # Browser side:
        #   const r = await fetch("http://localhost:8080");
        #   const reader = r.body.getReader();

    =========================================================================

    Args:
        command: Shell command line whose stdout becomes the response body.
        on_status: Called with a string at every lifecycle step.
        config: ServerConfig. Defaults to 0.0.0.0:8080.

    Raises:
        TypeError: on_status is not callable.
        ValueError: config is invalid.
    """

    def __init__(
        self,
        command: str,
        on_status: StatusCallback,
        config: Optional[ServerConfig] = None,
    ):
        self.status = StatusChannel(on_status)

        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self.command = command
        self.state = ServerState.INIT

        self._listener = SocketServer(self.config, self.status)
        self._headers = stream_headers(self.config.server_name)

        # Result of the GET relay, set once the server terminates
        self.result: Optional[RelayResult] = None

    @property
    def address(self) -> tuple:
        """Bound (host, port); the real port once listening."""
        return self._listener.address

    @property
    def headers(self) -> bytes:
        """The header block sent for OPTIONS and GET."""
        return self._headers

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def serve(self) -> Optional[RelayResult]:
        """
        Run the server until one GET has been served (blocking).

        Returns:
            RelayResult of the GET, or None if the client disconnected
            before the headers could be written.

        Raises:
            SocketCreateError, BindError, ListenError: setup failed.
            SpawnError: the command could not be started.
        """
        with self._listener:
            self._listener.initialize(on_bound=self._on_bound)
            self.state = ServerState.LISTENING

            try:
                while self.state != ServerState.TERMINATED:
                    self._serve_next()
            finally:
                self.state = ServerState.TERMINATED

        logger.info("Server terminated")
        return self.result

    def _on_bound(self):
        self.state = ServerState.BOUND

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _serve_next(self):
        """Accept one connection and handle it completely."""
        self.state = ServerState.ACCEPTING

        try:
            conn = self._listener.accept()
        except OSError as e:
            self._report(ACCEPT_ERROR, e)
            return

        with conn:  # Context manager ensures connection is closed
            self.status.emit(StatusEvent.accepted())
            self.state = ServerState.PARSING
            request = self._read_request(conn)
            if request is None:
                return

            self.state = ServerState.DISPATCHING
            if request.is_options:
                self._handle_options(conn)
            elif request.is_get:
                self._handle_get(conn)
                self.state = ServerState.TERMINATED
            else:
                logger.info(f"[{conn.id}] Ignoring {request.method or 'empty'} request")

    def _read_request(self, conn: Connection) -> Optional[RequestLine]:
        """
        Resolve the peer, read once, parse, and report.

        Returns:
            The parsed request line, or None after reporting an error.
        """
        try:
            peer_ip = conn.peer_address()[0]
        except OSError as e:
            self._report(PEER_ERROR, e)
            return None

        try:
            data = conn.read_request()
        except OSError as e:
            self._report(READ_ERROR, e)
            return None

        request = parse_request_line(data)
        logger.info(f"[{conn.id}] {peer_ip} \"{request}\"")
        self.status.request(peer_ip, request.method, request.target, request.version)
        return request

    def _handle_options(self, conn: Connection):
        """CORS preflight: headers only, the server keeps running."""
        if not conn.send(self._headers):
            self._report(WRITE_ERROR, conn.last_error)

    def _handle_get(self, conn: Connection):
        """
        Send headers, then relay the command's stdout until it ends.

        A client that has already gone when the headers are written gets the
        same treatment as one that leaves mid-stream: "aborted", and the
        command is never started.
        """
        if not conn.send(self._headers):
            self.status.emit(StatusEvent.aborted())
            return

        self.state = ServerState.RELAYING

        with ProcessRelay(
            self.command,
            chunk_size=self.config.chunk_size,
            kill_timeout=self.config.kill_timeout,
        ) as relay:
            relay.spawn()
            result = relay.relay(conn)

        # Leaving the with block reaped the process
        result.returncode = relay.returncode
        self.result = result

        logger.info(
            f"[{conn.id}] Relay {result.outcome.value}: {result.bytes_sent} bytes "
            f"in {result.chunks} chunks, exit status {result.returncode}"
        )

        if result.aborted:
            self.status.emit(StatusEvent.aborted())

    def _report(self, template: str, error: OSError):
        """Turn a connection-scoped OSError into an ERROR status event."""
        self.status.emit(StatusEvent.error(format_error(template, error)))


def serve(
    command: str,
    on_status: StatusCallback,
    config: Optional[ServerConfig] = None,
) -> Optional[RelayResult]:
    """
    Serve one streamed GET of `command`'s stdout, then return.

    Example:
        serve("printf 'ab'", print)

    See StreamServer for arguments, return value and errors.
    """
    return StreamServer(command, on_status, config).serve()

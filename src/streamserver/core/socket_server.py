"""
=============================================================================
LISTENING SOCKET
=============================================================================

Creates, binds and listens on the server's TCP socket, and accepts client
connections one at a time.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create an IPv4 TCP socket       → "socket created successfully"
    2. bind()      Reserve 0.0.0.0:8080             → "socket successfully bound to address"
    3. listen()    Start queueing connections      → "server listening for connections"
    4. accept()    Wait for the next client        → "connection accepted"
    5. close()     Release the port

Steps 1-3 happen once per serve() call. A failure in any of them is fatal
and raised; there is no retry. Step 4 repeats until a GET has been served.

=============================================================================
SIGPIPE
=============================================================================

Writing to a socket whose peer has gone away makes the kernel send SIGPIPE,
whose default action kills the process. A stream server hits this every
time a listener closes the tab, so it must be ignored: the write then fails
with EPIPE and the relay treats that as "client cancelled".

The Python interpreter already starts with SIGPIPE ignored. We set it again
explicitly in case an embedding application restored the default, but
only from the main thread, the only place signal handlers may be set.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Callable, Optional

from ..config import ServerConfig
from ..errors import SocketCreateError, BindError, ListenError
from ..events import StatusChannel, StatusEvent
from .connection import Connection


logger = logging.getLogger(__name__)


def ignore_sigpipe() -> bool:
    """
    Ignore SIGPIPE so broken-pipe writes surface as EPIPE errors.

    Returns:
        True if the disposition was set, False if it could not be (no
        SIGPIPE on this platform, or not called from the main thread).
    """
    if not hasattr(signal, "SIGPIPE"):
        return False
    if threading.current_thread() is not threading.main_thread():
        return False
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)
    return True


class SocketServer:
    """
    The single listening socket of one serve() invocation.

    Usage:
        with SocketServer(config, channel) as listener:
            listener.initialize()
            conn = listener.accept()

    The socket is closed when the context exits, whatever the reason.
    """

    def __init__(self, config: ServerConfig, status: StatusChannel):
        self.config = config
        self.status = status
        self._socket: Optional[socket.socket] = None
        self._listening = False

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def address(self) -> tuple:
        """
        The address actually bound.

        Differs from the config when port 0 was requested: the OS picked a
        free port and this returns it.
        """
        if self._socket is None:
            return self.config.address
        return self._socket.getsockname()

    def initialize(self, on_bound: Optional[Callable[[], None]] = None) -> socket.socket:
        """
        Create, bind and listen, reporting each step.

        Args:
            on_bound: Called once the socket is bound, before listen().

        Returns:
            The listening socket.

        Raises:
            SocketCreateError: socket() failed.
            BindError: bind() failed (port in use, permission denied, ...).
            ListenError: listen() failed.
        """
        self.bind()
        if on_bound is not None:
            on_bound()
        return self.listen()

    def bind(self) -> socket.socket:
        """Create the socket and bind it. Steps 1 and 2."""
        if ignore_sigpipe():
            logger.debug("SIGPIPE ignored")

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise SocketCreateError.from_os_error(e) from e
        self.status.emit(StatusEvent.socket_created())

        try:
            # Restarting right after a stream ended would otherwise fail with
            # "Address already in use" while the old socket sits in TIME_WAIT.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(self.config.address)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise BindError.from_os_error(e) from e
        self._socket = sock
        self.status.emit(StatusEvent.bound())
        return sock

    def listen(self) -> socket.socket:
        """Start listening on the bound socket. Step 3."""
        if self._socket is None:
            raise RuntimeError("listen() called before bind()")

        sock = self._socket
        try:
            sock.listen(self.config.backlog)
        except OSError as e:
            self.close()
            raise ListenError.from_os_error(e) from e

        self._listening = True
        host, port = sock.getsockname()
        logger.info(f"Server listening on {host}:{port}")
        self.status.emit(StatusEvent.listening())
        return sock

    def accept(self) -> Connection:
        """
        Block until a client connects.

        Returns:
            Connection wrapping the new client socket.

        Raises:
            OSError: accept() failed. Not fatal: the caller reports it and
                     calls accept() again.
        """
        if not self._listening:
            raise RuntimeError("accept() called before listen()")

        client_socket, client_address = self._socket.accept()

        conn = Connection(
            socket=client_socket,
            address=client_address,
            buffer_size=self.config.buffer_size,
        )
        logger.debug(f"[{conn.id}] Accepted connection from {client_address[0]}:{client_address[1]}")
        return conn

    def close(self):
        """Close the listening socket. Safe to call more than once."""
        if self._socket is None:
            return
        try:
            self._socket.close()
        except OSError:
            pass  # Already closed
        self._socket = None
        self._listening = False
        logger.info("Listening socket closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

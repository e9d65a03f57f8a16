"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the handful of operations
the stream server needs: find out who the peer is, read the request once,
write bytes, and close. Exactly one Connection is alive at any time.

=============================================================================
ONE READ, NOT A READ LOOP
=============================================================================

TCP is a byte stream, so a general HTTP server has to buffer until it sees
the blank line that ends the headers. This server only needs the request
line, which a browser always sends in the first segment:

    recv(1024) →  b"GET / HTTP/1.1\r\nHost: localhost:8080\r\n..."
                    ───────┬──────
                           └── all we look at

So read_request() is a single recv(). Whatever did not fit is discarded
when the connection closes.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► WRITING ──────► CLOSING ──────► CLOSED
     │             │                                ▲
     └─────────────┴────────────────────────────────┘
           (peer lookup / read failed, unknown method)

Every path ends in CLOSED: the server always uses the connection as a
context manager, so the descriptor is released even on error paths.

=============================================================================
"""

import socket
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"              # Just accepted
    READING = "reading"      # Reading the request
    WRITING = "writing"      # Sending headers or relaying the stream
    CLOSING = "closing"      # Shutdown sequence in progress
    CLOSED = "closed"        # Socket released


@dataclass
class Connection:
    """
    Represents the single active client connection.

    Attributes:
        socket: The accepted client socket.
        address: Peer (ip, port) as returned by accept().
        id: Short identifier for log lines.
        state: Current ConnectionState.
        buffer_size: Size of the single request read.
        bytes_sent: Total bytes written to the client.
        last_error: The OSError behind the last failed send(), if any.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    buffer_size: int = 1024
    drain_timeout: float = 0.5
    bytes_sent: int = 0
    last_error: Optional[OSError] = field(default=None, repr=False)

    def __post_init__(self):
        # Fully blocking: no timeouts anywhere in this server.
        self.socket.setblocking(True)

    @property
    def client_ip(self) -> str:
        """Client IP as given by accept()."""
        return self.address[0]

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def peer_address(self) -> tuple:
        """
        Resolve the peer address from the socket itself.

        accept() already returned an address, but a peer that reset the
        connection in the meantime makes getpeername() fail with ENOTCONN.
        That is the signal the server uses to drop a half-open connection
        before spending a read on it.

        Raises:
            OSError: If the socket is no longer connected.
        """
        return self.socket.getpeername()

    def read_request(self) -> bytes:
        """
        Read the request with exactly one recv().

        Returns:
            Up to buffer_size bytes. b"" if the peer closed without sending.

        Raises:
            OSError: If the read fails (e.g. connection reset).
        """
        self.state = ConnectionState.READING
        data = self.socket.recv(self.buffer_size)
        logger.debug(f"[{self.id}] Read {len(data)} request bytes")
        return data

    def send(self, data: bytes) -> bool:
        """
        Write all of data to the client.

        Uses sendall() so a partial write under backpressure is completed
        before returning. An empty chunk is a no-op.

        Returns:
            True if every byte was written, False if the peer is gone.
            A False return is how the relay learns the client cancelled.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except (BrokenPipeError, ConnectionResetError) as e:
            self.last_error = e
            logger.debug(f"[{self.id}] Peer went away: {e}")
            return False
        except OSError as e:
            self.last_error = e
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        self.bytes_sent += len(data)
        return True

    def close(self):
        """
        Close the connection. Safe to call more than once.

        shutdown(SHUT_WR) first so the client sees a clean FIN (end of
        body) rather than a reset, drain what the client still sends,
        then release the descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        try:
            # Unread request bytes left in the kernel buffer would turn
            # close() into a RST, and a RST can discard stream bytes the
            # client has not read yet. Drain briefly first, bounded in total
            # so a client that keeps sending cannot hold the server.
            deadline = time.monotonic() + self.drain_timeout
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.debug(f"[{self.id}] Drain deadline reached")
                    break
                self.socket.settimeout(remaining)
                if not self.socket.recv(1024):
                    break
        except (socket.timeout, OSError):
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.bytes_sent} bytes")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False

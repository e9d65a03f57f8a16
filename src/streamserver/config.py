"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the stream server.

The defaults ARE the protocol: port 8080 on every interface, a 1 KB request
read and a 1764 byte relay chunk. Everything lives in one dataclass so tests
and embedders can pass a different port (or port 0) without touching the
server code.

=============================================================================
WHY 1764 BYTES?
=============================================================================

The relay was built for streaming raw PCM audio out of a shell pipeline:

    44100 samples/s  x  2 channels  x  2 bytes/sample  =  176400 bytes/s

    176400 / 100  =  1764 bytes  =  441 frames of 4 bytes  =  10 ms of audio

One chunk is exactly 10 ms of CD-quality stereo, so a chunk boundary never
splits a sample frame and the client sees a smooth, evenly paced stream.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m streamserver "cmd" --port 3000                  │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── STREAM_PORT=3000 python -m streamserver "cmd"             │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
import socket
from dataclasses import dataclass, replace
from typing import Optional


DEFAULT_PORT = 8080
REQUEST_BUFFER_SIZE = 1024
RELAY_CHUNK_SIZE = 441 * 4


@dataclass
class ServerConfig:
    """
    Configuration for one server invocation.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size

    RELAY SETTINGS
    - chunk_size, kill_timeout

    IDENTITY / LOGGING
    - server_name, log_level

    =========================================================================

    The config is read, never written, while serve() is running.
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to. Every interface by default, so a browser
    page on another machine can fetch the stream.
    """

    port: int = DEFAULT_PORT
    """
    The port number to listen on.
    0 asks the OS for any free port (useful in tests).
    """

    backlog: int = socket.SOMAXCONN
    """
    Listen backlog. The platform maximum: connections that arrive while a
    GET is being relayed wait in the kernel queue.
    """

    buffer_size: int = REQUEST_BUFFER_SIZE
    """
    Bytes read from a client in the single recv() that fetches the request.
    Only the request line matters, so 1 KB is plenty.
    """

    # ─────────────────────────────────────────────────────────────────────
    # RELAY SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    chunk_size: int = RELAY_CHUNK_SIZE
    """
    Maximum bytes read from the command's stdout per relay step.
    """

    kill_timeout: float = 2.0
    """
    Seconds to wait for the command to exit: after its output ends, and
    again after SIGTERM before falling back to SIGKILL.
    """

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "webserver-c"
    """
    Value of the Server header. Clients in the wild match on it, keep it.
    """

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR). Used by the CLI.
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        STREAM_HOST        Bind address (default: 0.0.0.0)
        STREAM_PORT        Bind port (default: 8080)
        STREAM_CHUNK_SIZE  Relay chunk size in bytes (default: 1764)
        STREAM_LOG_LEVEL   Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("STREAM_HOST", "0.0.0.0"),
            port=int(os.getenv("STREAM_PORT", str(DEFAULT_PORT))),
            chunk_size=int(os.getenv("STREAM_CHUNK_SIZE", str(RELAY_CHUNK_SIZE))),
            log_level=os.getenv("STREAM_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at server construction so a bad value fails before any
        socket exists.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 0:
            raise ValueError("backlog must be >= 0")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.kill_timeout <= 0:
            raise ValueError("kill_timeout must be > 0")

    @property
    def address(self) -> tuple:
        """(host, port) tuple suitable for socket.bind()."""
        return (self.host, self.port)

    def with_overrides(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        chunk_size: Optional[int] = None,
        log_level: Optional[str] = None,
    ) -> "ServerConfig":
        """Return a copy with the given (non-None) fields replaced."""
        changes = {
            "host": host,
            "port": port,
            "chunk_size": chunk_size,
            "log_level": log_level,
        }
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Type-safe configuration with dataclass
# 2. Environment variable support (STREAM_*)
# 3. Validation at construction time (fail-fast)
# 4. Defaults that reproduce the fixed wire behaviour (0.0.0.0:8080)
# =============================================================================

"""
=============================================================================
SERVER ERRORS
=============================================================================

Every failure the server can raise carries a human-readable message that
embeds the OS error string, plus the raw errno for callers that want to
branch on it.

=============================================================================
ERROR TAXONOMY
=============================================================================

    ┌──────────────────────────┬───────────────────────────┬─────────────┐
    │ Failure                  │ Message template          │ Effect      │
    ├──────────────────────────┼───────────────────────────┼─────────────┤
    │ socket()                 │ server error (socket): …  │ raised      │
    │ bind()                   │ webserver (bind): …       │ raised      │
    │ listen()                 │ webserver (listen): …     │ raised      │
    │ spawn command            │ server error (popen): …   │ raised      │
    ├──────────────────────────┼───────────────────────────┼─────────────┤
    │ accept()                 │ server error (accept): …  │ status only │
    │ peer address             │ server error (getsockname)│ status only │
    │ recv() request           │ server error (read): …    │ status only │
    │ write OPTIONS headers    │ server error (write): …   │ status only │
    ├──────────────────────────┼───────────────────────────┼─────────────┤
    │ write during relay       │ "aborted"                 │ status only │
    └──────────────────────────┴───────────────────────────┴─────────────┘

The first group stops serve(). The second group is reported through the
status channel and the accept loop moves on. The relay write failure is
how a client cancels a stream, so it is not an error at all.

=============================================================================
"""

import os
from typing import Optional


def describe_os_error(error: OSError) -> str:
    """
    Render an OSError the way strerror() would.

    OSError.strerror is None for some errors raised by Python itself
    (socket.timeout, for instance), so fall back to str(error).
    """
    if error.errno is not None:
        return os.strerror(error.errno)
    return error.strerror or str(error)


def format_error(template: str, error: OSError) -> str:
    """Build '<template>: <strerror>' for one failed call."""
    return f"{template}: {describe_os_error(error)}"


class ServerError(Exception):
    """
    Base class for errors raised out of serve().

    Attributes:
        message: Full message, e.g. "webserver (bind): Address already in use".
        errno: The OS errno behind the failure, if any.
    """

    template = "server error"

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.errno = errno

    @classmethod
    def from_os_error(cls, error: OSError) -> "ServerError":
        """Wrap an OSError using this class's message template."""
        return cls(format_error(cls.template, error), errno=error.errno)


class SocketCreateError(ServerError):
    """The listening socket could not be created."""

    template = "server error (socket)"


class BindError(ServerError):
    """The socket could not be bound to the configured address."""

    template = "webserver (bind)"


class ListenError(ServerError):
    """listen() failed on the bound socket."""

    template = "webserver (listen)"


class SpawnError(ServerError):
    """The shell command could not be started."""

    template = "server error (popen)"


# Templates for connection-scoped failures. These never become exceptions;
# the server turns them into ERROR status events and keeps accepting.
ACCEPT_ERROR = "server error (accept)"
PEER_ERROR = "server error (getsockname)"
READ_ERROR = "server error (read)"
WRITE_ERROR = "server error (write)"

"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The low-level plumbing behind the stream server:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Creates the TCP listening socket, binds, listens                 │
    │  • Accepts one client at a time                                     │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one Connection per accept()
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Peer lookup, single request read, sendall(), close               │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ GET only
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                         PROCESS RELAY                                │
    │  • Spawns the shell command, copies stdout into the Connection      │
    │  • Reaps the process on every exit path                             │
    └─────────────────────────────────────────────────────────────────────┘

Everything runs on the caller's thread. Nothing here is shared, so nothing
needs a lock.
"""

from .socket_server import SocketServer, ignore_sigpipe
from .connection import Connection, ConnectionState
from .relay import ProcessRelay, RelayOutcome, RelayResult

__all__ = [
    "SocketServer",     # Listening socket - bind, listen, accept
    "ignore_sigpipe",
    "Connection",       # One client socket
    "ConnectionState",
    "ProcessRelay",     # Command stdout → client socket
    "RelayOutcome",
    "RelayResult",
]

"""
=============================================================================
STREAMSERVER - Stream a Shell Command's Output Over HTTP
=============================================================================

A tiny single-purpose HTTP server: the response body is whatever a shell
command writes to stdout, delivered live as it is produced.

    ┌────────────┐   stdout   ┌──────────────┐  HTTP 200, raw bytes  ┌─────────┐
    │ shell cmd  │ ─────────► │ streamserver │ ────────────────────► │ browser │
    └────────────┘            └──────────────┘   until cmd or client └─────────┘
                                                 stops

Typical use is audio: a command emits raw 16-bit stereo PCM and a web page
plays it with fetch() + a ReadableStream reader.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    streamserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m streamserver)
    ├── server.py            # StreamServer, serve()
    ├── config.py            # ServerConfig dataclass
    ├── events.py            # Status events and the callback channel
    ├── errors.py            # ServerError hierarchy
    ├── core/
    │   ├── socket_server.py # Listening socket: socket/bind/listen/accept
    │   ├── connection.py    # One client socket
    │   └── relay.py         # Command stdout → socket
    └── http/
        ├── request.py       # Request line parsing
        └── response.py      # Fixed CORS header block

=============================================================================
QUICK START
=============================================================================

    from streamserver import serve

    serve("printf 'hello'", print)     # blocks until one GET is served

    # then, from any page:
    #   fetch("http://localhost:8080").then(r => r.text())  → "hello"

=============================================================================
"""

__version__ = "1.0.0"

from .server import StreamServer, ServerState, serve
from .config import ServerConfig
from .events import StatusEvent, StatusKind, StatusChannel
from .errors import ServerError, SocketCreateError, BindError, ListenError, SpawnError
from .core import RelayOutcome, RelayResult

__all__ = [
    "StreamServer",
    "ServerState",
    "serve",
    "ServerConfig",
    "StatusEvent",
    "StatusKind",
    "StatusChannel",
    "ServerError",
    "SocketCreateError",
    "BindError",
    "ListenError",
    "SpawnError",
    "RelayOutcome",
    "RelayResult",
    "__version__",
]

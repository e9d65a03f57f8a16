"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

The server speaks just enough HTTP/1.1 to satisfy a browser's fetch():

    ┌─────────────────────────────────────────────────────────────────────┐
    │   request.py    Request line → (method, target, version)           │
    │   response.py   Fixed status line + CORS header block              │
    └─────────────────────────────────────────────────────────────────────┘

No header parsing, no bodies, no keep-alive. Everything after the header
block is raw bytes from the command.
"""

from .request import RequestLine, parse_request_line, GET, OPTIONS
from .response import StreamHeaders, STREAM_HEADERS, stream_headers, default_stream_headers

__all__ = [
    "RequestLine",
    "parse_request_line",
    "GET",
    "OPTIONS",
    "StreamHeaders",
    "STREAM_HEADERS",
    "stream_headers",
    "default_stream_headers",
]

"""
=============================================================================
STREAM RESPONSE HEADERS
=============================================================================

Both OPTIONS and GET are answered with the SAME fixed header block. For GET
the command's stdout follows it directly; for OPTIONS nothing follows.

=============================================================================
WHY THESE HEADERS?
=============================================================================

The intended client is a browser page on some other origin (or on a public
site talking to a server on the LAN) doing:

    fetch("http://localhost:8080").then(r => r.body.getReader())

    ┌───────────────────────────────────────┬────────────────────────────┐
    │ Header                                │ Purpose                    │
    ├───────────────────────────────────────┼────────────────────────────┤
    │ Access-Control-Allow-Origin: *        │ any page may read the body │
    │ Access-Control-Allow-Methods          │ preflight: OPTIONS,GET ok  │
    │ Access-Control-Allow-Headers          │ preflight: cache-control   │
    │ Access-Control-Allow-Private-Network  │ public page → private IP   │
    │ Cross-Origin-Opener-Policy            │ unsafe-none, no isolation  │
    │ Cross-Origin-Embedder-Policy          │ unsafe-none, no isolation  │
    │ Cache-Control: no-store               │ a live stream, never cache │
    │ Content-type                          │ raw bytes                  │
    └───────────────────────────────────────┴────────────────────────────┘

See https://developer.chrome.com/blog/private-network-access-preflight/

=============================================================================
NO CONTENT-LENGTH, NO CHUNKING
=============================================================================

The body length is unknown until the command exits. Instead of chunked
transfer encoding the server relies on HTTP/1.1's oldest framing rule: with
neither Content-Length nor Transfer-Encoding, the body runs until the server
closes the connection.

=============================================================================
"""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Dict


def default_stream_headers(server_name: str = "webserver-c") -> Dict[str, str]:
    """
    The header fields, in wire order.

    Header names are case-insensitive for clients, but "Content-type" keeps
    its lowercase t so the bytes match what existing clients were tested
    against.
    """
    return {
        "Server": server_name,
        "Cross-Origin-Opener-Policy": "unsafe-none",
        "Cross-Origin-Embedder-Policy": "unsafe-none",
        "Access-Control-Allow-Headers": "cache-control",
        "Access-Control-Allow-Methods": "OPTIONS,GET",
        "Cache-Control": "no-store",
        "Access-Control-Allow-Origin": "*",
        "Content-type": "application/octet-stream",
        "Access-Control-Allow-Private-Network": "true",
    }


@dataclass
class StreamHeaders:
    """
    Status line plus headers of a streamed response.

    Unlike a regular response this never carries a body or a Content-Length:
    the body (if any) is written to the socket separately, as it is produced.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=default_stream_headers)
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {self.status.value} {self.status.phrase}"

    def to_bytes(self) -> bytes:
        """
        Serialize to the exact bytes sent on the wire.

            HTTP/1.1 200 OK\\r\\n
            Server: webserver-c\\r\\n
            ...
            Access-Control-Allow-Private-Network: true\\r\\n
            \\r\\n                          ← blank line ends the headers
        """
        lines = [self.status_line]
        for name, value in self.headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")
        return "\r\n".join(lines).encode("latin-1") + b"\r\n"


def stream_headers(server_name: str = "webserver-c") -> bytes:
    """Header block for a given Server name."""
    return StreamHeaders(headers=default_stream_headers(server_name)).to_bytes()


STREAM_HEADERS = stream_headers()

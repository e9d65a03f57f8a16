"""
=============================================================================
REQUEST LINE PARSING
=============================================================================

The server only ever looks at the first line of a request. Headers and body
are read off the socket (they arrive in the same recv()) and ignored.

=============================================================================
REQUEST LINE FORMAT (RFC 7230)
=============================================================================

    METHOD SP REQUEST-TARGET SP HTTP-VERSION CRLF

    Example: "GET /stream HTTP/1.1"
             ─┬─ ───┬─── ────┬───
              │     │        │
           Method  Target  Version

=============================================================================
PERMISSIVE BY DESIGN
=============================================================================

A strict parser would reject anything that does not match the grammar. This
one never fails: it splits the first line on whitespace and takes the first
three tokens, filling any missing token with "".

    b"GET / HTTP/1.1\r\nHost: x\r\n\r\n"   →  ("GET", "/", "HTTP/1.1")
    b"OPTIONS *"                          →  ("OPTIONS", "*", "")
    b""                                   →  ("", "", "")
    b"  get   /a  b  extra\r\n"           →  ("get", "/a", "b")

Method matching is exact and case-sensitive, so "get" is an unknown method
and its connection is simply closed. A malformed request can therefore
never crash the accept loop.

The split happens on bytes (ASCII whitespace only) and each token is then
decoded as latin-1: every byte maps to one character, so decoding cannot
fail and the tokens reported to the caller round-trip exactly.

=============================================================================
"""

from dataclasses import dataclass


OPTIONS = "OPTIONS"
GET = "GET"


@dataclass(frozen=True)
class RequestLine:
    """
    The three tokens of an HTTP request line.

    Attributes:
        method: e.g. "GET". Empty if the request was empty.
        target: e.g. "/". Empty if missing.
        version: e.g. "HTTP/1.1". Empty if missing.
    """

    method: str = ""
    target: str = ""
    version: str = ""

    @property
    def is_options(self) -> bool:
        """CORS preflight."""
        return self.method == OPTIONS

    @property
    def is_get(self) -> bool:
        return self.method == GET

    def __str__(self) -> str:
        return " ".join(token for token in (self.method, self.target, self.version) if token)


def first_line(data: bytes) -> bytes:
    """Everything before the first LF (a trailing CR is whitespace to split())."""
    return data.split(b"\n", 1)[0]


def parse_request_line(data: bytes) -> RequestLine:
    """
    Parse method, target and version from raw request bytes.

    Args:
        data: Bytes from the single recv() on the client socket.

    Returns:
        RequestLine with missing tokens set to "". Never raises.
    """
    tokens = [token.decode("latin-1") for token in first_line(data).split()]
    tokens += [""] * (3 - len(tokens))
    method, target, version = tokens[:3]
    return RequestLine(method=method, target=target, version=version)

"""
=============================================================================
STATUS EVENTS
=============================================================================

The caller watches the server through a single callback that receives plain
strings. Internally every string is a typed StatusEvent so the server code
never passes ad-hoc text around and the set of things that can be reported
stays closed.

=============================================================================
EVENT STREAM FOR ONE GET
=============================================================================

    serve("printf 'ab'", log)

        SOCKET_CREATED   "socket created successfully"
        BOUND            "socket successfully bound to address"
        LISTENING        "server listening for connections"
        ACCEPTED         "connection accepted"
        PEER_INFO        "127.0.0.1"
        REQUEST_METHOD   "GET"
        REQUEST_TARGET   "/"
        REQUEST_VERSION  "HTTP/1.1"
        (ABORTED         "aborted"          only if the client hung up)

Each event is delivered synchronously, before the server starts the next
blocking call, so the callback sees a linear log of the run.

=============================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable


logger = logging.getLogger(__name__)


StatusCallback = Callable[[str], None]


class StatusKind(Enum):
    """Every kind of event the server reports."""
    SOCKET_CREATED = "socket_created"
    BOUND = "bound"
    LISTENING = "listening"
    ACCEPTED = "accepted"
    PEER_INFO = "peer_info"
    REQUEST_METHOD = "request_method"
    REQUEST_TARGET = "request_target"
    REQUEST_VERSION = "request_version"
    ABORTED = "aborted"
    ERROR = "error"


@dataclass(frozen=True)
class StatusEvent:
    """One status report: what happened, and the text the caller sees."""
    kind: StatusKind
    message: str

    @classmethod
    def socket_created(cls) -> "StatusEvent":
        return cls(StatusKind.SOCKET_CREATED, "socket created successfully")

    @classmethod
    def bound(cls) -> "StatusEvent":
        return cls(StatusKind.BOUND, "socket successfully bound to address")

    @classmethod
    def listening(cls) -> "StatusEvent":
        return cls(StatusKind.LISTENING, "server listening for connections")

    @classmethod
    def accepted(cls) -> "StatusEvent":
        return cls(StatusKind.ACCEPTED, "connection accepted")

    @classmethod
    def peer(cls, ip: str) -> "StatusEvent":
        return cls(StatusKind.PEER_INFO, ip)

    @classmethod
    def aborted(cls) -> "StatusEvent":
        return cls(StatusKind.ABORTED, "aborted")

    @classmethod
    def error(cls, message: str) -> "StatusEvent":
        return cls(StatusKind.ERROR, message)

    @property
    def is_error(self) -> bool:
        return self.kind is StatusKind.ERROR


class StatusChannel:
    """
    Write-only sink in front of the caller's callback.

    The callback's return value is ignored. If it raises, the exception
    propagates out of serve(): a broken callback is the caller's bug and
    the server does not try to work around it.

    Usage:
        channel = StatusChannel(print)
        channel.emit(StatusEvent.listening())   # prints the message
    """

    def __init__(self, on_status: StatusCallback):
        if not callable(on_status):
            raise TypeError("on_status must be callable")
        self._on_status = on_status

    def emit(self, event: StatusEvent) -> None:
        """Deliver one event to the callback, synchronously."""
        if event.is_error:
            logger.error(event.message)
        else:
            logger.debug(f"status {event.kind.value}: {event.message}")
        self._on_status(event.message)

    def request(self, ip: str, method: str, target: str, version: str) -> None:
        """Report the peer address and the three request-line tokens, in order."""
        self.emit(StatusEvent.peer(ip))
        self.emit(StatusEvent(StatusKind.REQUEST_METHOD, method))
        self.emit(StatusEvent(StatusKind.REQUEST_TARGET, target))
        self.emit(StatusEvent(StatusKind.REQUEST_VERSION, version))

# src/cardcast/errors.py
from __future__ import annotations

from typing import Optional


class CardCastError(Exception):
    """Base class for everything the card-cast client raises."""


class UnfinishedRoundError(CardCastError):
    def __init__(self, url: str):
        super().__init__(f"Round is not finished yet: {url}")
        self.url = url


class NotReadyError(CardCastError):
    """A request was sent before the open handshake completed."""


class SessionClosedError(CardCastError):
    """The socket went away while requests were still outstanding."""


class RequestTimeoutError(CardCastError):
    def __init__(self, request_id: str, timeout: float):
        super().__init__(f"No reply for request {request_id} after {timeout:g}s")
        self.request_id = request_id
        self.timeout = timeout


class ProtocolError(CardCastError):
    """
    An inbound message did not match the schema we expect.
    message_id is set when the offending frame still named a request or entity.
    """
    def __init__(self, message: str, message_id: Optional[str] = None):
        super().__init__(message)
        self.message_id = message_id


class MethodError(ProtocolError):
    def __init__(self, message_id: str, error):
        super().__init__(f"Method call {message_id} failed: {error!r}", message_id)
        self.error = error


class SnapshotError(CardCastError):
    """The scorecard page could not be fetched or carried no preloaded state."""

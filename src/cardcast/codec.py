# src/cardcast/codec.py
from __future__ import annotations

import json
import secrets
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from .errors import ProtocolError

# Outbound frames look like:   ["{\"msg\":\"connect\",...}"]
# Inbound data frames add a leading kind character: a["{\"msg\":\"added\",...}"]
_ENVELOPE_HEAD = 3
_ENVELOPE_TAIL = 2


class FrameKind(Enum):
    OPEN = "o"
    DATA = "a"
    CLOSE = "c"
    HEARTBEAT = "h"
    UNKNOWN = ""


@dataclass(frozen=True)
class Connected:
    session: Optional[str] = None


@dataclass(frozen=True)
class MethodResult:
    id: str
    result: Any = None
    error: Any = None


@dataclass(frozen=True)
class SubscriptionAdded:
    # Entity id, not the subscription id
    id: str
    collection: Optional[str]
    fields: Dict[str, Any]


@dataclass(frozen=True)
class Unrecognized:
    msg: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


ProtocolEvent = Union[Connected, MethodResult, SubscriptionAdded, Unrecognized]


def encode(message: Dict[str, Any]) -> str:
    text = json.dumps(message, separators=(",", ":"), ensure_ascii=False)
    return '["' + text.replace('"', '\\"') + '"]'


def frame_kind(frame: str) -> FrameKind:
    if not frame:
        return FrameKind.UNKNOWN
    try:
        return FrameKind(frame[0])
    except ValueError:
        return FrameKind.UNKNOWN


def _unwrap(frame: str) -> Dict[str, Any]:
    body = frame[_ENVELOPE_HEAD:len(frame) - _ENVELOPE_TAIL].replace('\\"', '"')
    try:
        message = json.loads(body)
    except ValueError as e:
        raise ProtocolError(f"Undecodable data frame: {frame[:80]!r}") from e
    if not isinstance(message, dict):
        raise ProtocolError(f"Data frame is not an object: {frame[:80]!r}")
    return message


def decode(frame: str) -> Optional[ProtocolEvent]:
    """
    Decode one inbound frame.

    Only data frames produce an event. Open, close, heartbeat and unknown frames
    return None; callers that care about them check frame_kind() first.
    Raises ProtocolError for a data frame that cannot be understood.
    """
    if frame_kind(frame) is not FrameKind.DATA:
        return None

    message = _unwrap(frame)
    msg = message.get("msg")
    message_id = message.get("id")

    if msg == "connected":
        return Connected(session=message.get("session"))

    if msg == "result":
        if not isinstance(message_id, str):
            raise ProtocolError("result message without an id")
        if "result" not in message and "error" not in message:
            raise ProtocolError(f"result message {message_id} has no result", message_id)
        return MethodResult(id=message_id, result=message.get("result"), error=message.get("error"))

    if msg == "added":
        if not isinstance(message_id, str):
            raise ProtocolError("added message without an id")
        fields = message.get("fields")
        if not isinstance(fields, dict):
            raise ProtocolError(f"added message {message_id} has no fields", message_id)
        return SubscriptionAdded(id=message_id, collection=message.get("collection"), fields=fields)

    return Unrecognized(msg=msg, payload=message)


# -----------------------------------------------------------------------------
# Random path segments and subscription ids
# -----------------------------------------------------------------------------
_LOWER_ALNUM = string.ascii_lowercase + string.digits
_ALNUM = string.ascii_letters + string.digits


def _token(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def server_id() -> str:
    return _token(string.digits, 3)


def session_token() -> str:
    return _token(_LOWER_ALNUM, 8)


def subscription_id() -> str:
    return _token(_ALNUM, 17)

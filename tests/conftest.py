"""Shared fakes for the card-cast tests.

The socket fake is injected through CardCastSession(connect=...), so no
network is touched. Frames pushed into it are delivered to the session's
reader in order.
"""
from __future__ import annotations

import asyncio
import json

import pytest

from src.cardcast.codec import encode

_CLOSED = object()


def decode_outbound(frame: str) -> dict:
    """Undo encode(): ["{\\"msg\\":...}"] -> dict."""
    assert frame.startswith('["') and frame.endswith('"]'), frame
    return json.loads(frame[2:-2].replace('\\"', '"'))


def data_frame(message: dict) -> str:
    return "a" + encode(message)


class FakeSocket:
    def __init__(self, on_send=None, auto_open: bool = True):
        self.sent: list[str] = []
        self.closed = False
        self.on_send = on_send
        self._inbound: asyncio.Queue = asyncio.Queue()
        if auto_open:
            self.push("o")

    @property
    def messages(self) -> list[dict]:
        return [decode_outbound(f) for f in self.sent]

    def push(self, frame: str) -> None:
        self._inbound.put_nowait(frame)

    def push_message(self, message: dict) -> None:
        self.push(data_frame(message))

    def hang_up(self) -> None:
        self._inbound.put_nowait(_CLOSED)

    async def send(self, frame: str) -> None:
        self.sent.append(frame)
        if self.on_send is not None:
            self.on_send(self, decode_outbound(frame))

    async def close(self) -> None:
        self.closed = True
        self.hang_up()

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbound.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


def make_connect(sock: FakeSocket):
    calls = []

    async def connect(url, **kwargs):
        calls.append(url)
        return sock

    connect.calls = calls
    return connect


class ScriptedServer:
    """
    Answers method calls with a fixed identity result and subscriptions with one
    added message per entry, in `order` if given, otherwise in request order.
    """

    def __init__(self, identities=None, entries=None, order=None, collection="ScorecardEntry"):
        self.identities = identities if identities is not None else {"users": [], "players": []}
        self.entries = entries or {}
        self.order = order
        self.collection = collection

    def __call__(self, sock: FakeSocket, message: dict) -> None:
        if message["msg"] == "connect":
            sock.push_message({"msg": "connected", "session": "s1"})
        elif message["msg"] == "method":
            sock.push_message({"msg": "result", "id": message["id"], "result": self.identities})
        elif message["msg"] == "sub":
            for entry_id in self.order or message["params"][0]:
                sock.push_message({
                    "msg": "added",
                    "collection": self.collection,
                    "id": entry_id,
                    "fields": self.entries[entry_id],
                })


@pytest.fixture
def scripted_server():
    return ScriptedServer

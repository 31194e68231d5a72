# src/cardcast/session.py
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException

from . import codec
from .codec import FrameKind
from .errors import (
    NotReadyError,
    ProtocolError,
    RequestTimeoutError,
    SessionClosedError,
)
from .registry import CorrelationRegistry, PendingRequest

logger = logging.getLogger(__name__)

DEFAULT_SYNC_URL = "wss://sync.udisc.com/sockjs"
PROTOCOL_VERSION = "1"
SUPPORTED_VERSIONS = ["1", "pre2", "pre1"]


class SessionState(Enum):
    IDLE = "idle"
    AWAITING_OPEN_FRAME = "awaiting_open_frame"
    READY = "ready"
    CLOSING = "closing"
    CLOSED = "closed"


class CardCastSession:
    """
    One socket, one handshake, one correlation registry.

    Usage:
        async with CardCastSession() as session:
            result = await session.call("users.getCardCastUsersAndPlayers", [...])

    The socket's own connect and the server's "o" open frame are separate
    steps: requests are only accepted once the open frame arrived and the
    connect message went out.
    """

    def __init__(
        self,
        sync_url: str = DEFAULT_SYNC_URL,
        open_timeout: float = 10.0,
        request_timeout: float = 20.0,
        connect: Callable[..., Awaitable[Any]] = websockets.connect,
    ):
        self.sync_url = sync_url.rstrip("/")
        self.open_timeout = open_timeout
        self.request_timeout = request_timeout
        self._connect = connect
        self._ws = None
        self._ws_closed = False
        self._reader: Optional[asyncio.Task] = None
        self._opened: Optional[asyncio.Future] = None
        self.registry = CorrelationRegistry()
        self.state = SessionState.IDLE
        self.url: Optional[str] = None

    async def __aenter__(self) -> "CardCastSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def ready(self) -> bool:
        return self.state is SessionState.READY

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def open(self) -> None:
        if self.state is not SessionState.IDLE:
            raise NotReadyError(f"Session cannot be opened from state {self.state.value}")

        self.url = f"{self.sync_url}/{codec.server_id()}/{codec.session_token()}/websocket"
        self.state = SessionState.AWAITING_OPEN_FRAME
        self._opened = asyncio.get_running_loop().create_future()
        logger.info("Opening card-cast session %s", self.url)

        try:
            try:
                self._ws = await asyncio.wait_for(
                    self._connect(self.url, open_timeout=self.open_timeout),
                    timeout=self.open_timeout,
                )
            except asyncio.TimeoutError:
                # a subclass of OSError on 3.11+
                raise
            except (OSError, WebSocketException) as e:
                logger.warning("Card-cast connect to %s failed: %s", self.url, e)
                raise SessionClosedError(f"Could not connect: {e}") from e
            self._reader = asyncio.create_task(self._read_frames())
            await asyncio.wait_for(asyncio.shield(self._opened), timeout=self.open_timeout)
        except asyncio.TimeoutError as e:
            await self.close()
            raise RequestTimeoutError("open", self.open_timeout) from e
        except BaseException:
            await self.close()
            raise

        logger.info("Card-cast session ready %s", self.url)

    async def close(self) -> None:
        # The reader may already have torn down after a close frame or end of
        # stream; the transport still needs closing then.
        if self.state is SessionState.CLOSED:
            await self._close_socket()
            return
        self.state = SessionState.CLOSING

        await self._close_socket()

        if self._reader is not None and self._reader is not asyncio.current_task():
            if not self._reader.done():
                self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass

        self._teardown(SessionClosedError("Session closed"))

    async def _close_socket(self) -> None:
        if self._ws is None or self._ws_closed:
            return
        self._ws_closed = True
        try:
            await self._ws.close()
        except Exception:
            logger.debug("close: socket close raised", exc_info=True)

    def _teardown(self, error: SessionClosedError) -> None:
        self.state = SessionState.CLOSED
        if self._opened is not None and not self._opened.done():
            self._opened.set_exception(error)
            # Nobody awaits this when the socket dies before open() ran
            self._opened.exception()
        self.registry.reject_all(error)

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------
    async def _read_frames(self) -> None:
        error = SessionClosedError("Socket closed by server")
        try:
            async for frame in self._ws:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8")
                if not await self._handle_frame(frame):
                    break
        except ConnectionClosedError as e:
            logger.warning("Card-cast socket closed with error: %s", e)
            error = SessionClosedError(f"Socket closed with error: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Card-cast reader failed")
            error = SessionClosedError(f"Socket reader failed: {e}")
        finally:
            if self.state is not SessionState.CLOSING:
                logger.info("Card-cast session %s ended", self.url)
            self._teardown(error)

    async def _handle_frame(self, frame: str) -> bool:
        """Handle one frame; returns False when the server closed the channel."""
        logger.debug("ws <- %s", frame[:200])
        kind = codec.frame_kind(frame)

        if kind is FrameKind.OPEN:
            await self._on_open_frame()
            return True
        if kind is FrameKind.CLOSE:
            logger.info("Card-cast server sent close frame: %s", frame[:200])
            return False
        if kind is not FrameKind.DATA:
            return True

        try:
            event = codec.decode(frame)
        except ProtocolError as e:
            if e.message_id is not None and self.registry.reject(e.message_id, e) is not None:
                logger.warning("Rejected request for %s: %s", e.message_id, e)
            else:
                logger.warning("Ignoring undecodable frame: %s", e)
            return True

        if isinstance(event, codec.Connected):
            logger.debug("Card-cast handshake acknowledged (session=%s)", event.session)
        elif isinstance(event, codec.Unrecognized):
            logger.debug("Ignoring message msg=%s", event.msg)
        else:
            self.registry.dispatch(event)
        return True

    async def _on_open_frame(self) -> None:
        if self.state is not SessionState.AWAITING_OPEN_FRAME:
            logger.warning("Unexpected open frame in state %s", self.state.value)
            return
        await self._send({"msg": "connect", "version": PROTOCOL_VERSION, "support": SUPPORTED_VERSIONS})
        self.state = SessionState.READY
        if self._opened is not None and not self._opened.done():
            self._opened.set_result(None)

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------
    async def _send(self, message: dict) -> None:
        frame = codec.encode(message)
        logger.debug("ws -> %s", frame[:200])
        await self._ws.send(frame)

    def _require_ready(self) -> None:
        if self.state is not SessionState.READY:
            raise NotReadyError(f"Session is not ready (state={self.state.value}); call open() first")

    async def _wait(self, pending: PendingRequest) -> Any:
        try:
            return await asyncio.wait_for(asyncio.shield(pending.future), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(pending.id, self.request_timeout) from e
        finally:
            self.registry.discard(pending)
            if not pending.future.done():
                pending.future.cancel()

    async def call(self, method: str, params: Sequence[Any]) -> Any:
        self._require_ready()
        request_id = self.registry.next_call_id()
        pending = self.registry.register_call(request_id)
        try:
            await self._send({"msg": "method", "id": request_id, "method": method, "params": list(params)})
        except BaseException:
            self.registry.discard(pending)
            pending.future.cancel()
            raise
        logger.debug("call: method=%s id=%s sent", method, request_id)
        return await self._wait(pending)

    async def subscribe(self, name: str, target_ids: Sequence[str],
                        collection: Optional[str] = None) -> List[Any]:
        """
        Subscribe to a fan-out publication and wait for one reply per target.

        Resolves with the replies' fields in arrival order.
        """
        self._require_ready()
        sub_id = codec.subscription_id()
        pending = self.registry.register_subscription(sub_id, target_ids, collection)
        if pending.settled:
            return pending.future.result()
        try:
            await self._send({"msg": "sub", "id": sub_id, "name": name, "params": [list(pending.target_ids)]})
        except BaseException:
            self.registry.discard(pending)
            pending.future.cancel()
            raise
        logger.debug("subscribe: name=%s id=%s targets=%s sent", name, sub_id, len(pending.target_ids))
        return await self._wait(pending)

# src/cardcast/registry.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from .codec import MethodResult, ProtocolEvent, SubscriptionAdded
from .errors import MethodError

logger = logging.getLogger(__name__)


class RequestKind(Enum):
    METHOD_CALL = "method"
    SUBSCRIPTION = "sub"


@dataclass
class PendingRequest:
    id: str
    kind: RequestKind
    expected_replies: int
    future: asyncio.Future
    collection: Optional[str] = None
    target_ids: List[str] = field(default_factory=list)
    received: List[Any] = field(default_factory=list)
    counted: Set[str] = field(default_factory=set)

    @property
    def complete(self) -> bool:
        return len(self.received) >= self.expected_replies

    @property
    def settled(self) -> bool:
        return self.future.done()


class CorrelationRegistry:
    """
    Tracks in-flight requests for one session and routes decoded events to them.

    Method calls are keyed by their request id. Subscription replies are tagged
    with the id of the entity they describe rather than the subscription id, so
    every target entity is also registered in a second map pointing at the same
    PendingRequest.

    Subscription results resolve in arrival order, which need not match the
    order the target ids were submitted in.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._requests: Dict[str, PendingRequest] = {}
        self._targets: Dict[str, PendingRequest] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._requests

    def _new_future(self) -> asyncio.Future:
        loop = self._loop or asyncio.get_running_loop()
        return loop.create_future()

    def next_call_id(self) -> str:
        request_id = str(self._next_id)
        self._next_id += 1
        return request_id

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------
    def register_call(self, request_id: str) -> PendingRequest:
        if request_id in self._requests:
            raise ValueError(f"Request id already pending: {request_id}")
        pending = PendingRequest(
            id=request_id,
            kind=RequestKind.METHOD_CALL,
            expected_replies=1,
            future=self._new_future(),
        )
        self._requests[request_id] = pending
        logger.debug("registry: registered method call id=%s", request_id)
        return pending

    def register_subscription(self, sub_id: str, target_ids: Iterable[str],
                              collection: Optional[str] = None) -> PendingRequest:
        if sub_id in self._requests:
            raise ValueError(f"Request id already pending: {sub_id}")

        # Duplicates would never produce a second distinct reply
        targets = list(dict.fromkeys(target_ids))
        clashes = [t for t in targets if t in self._targets]
        if clashes:
            raise ValueError(f"Target ids already owned by another subscription: {clashes}")

        pending = PendingRequest(
            id=sub_id,
            kind=RequestKind.SUBSCRIPTION,
            expected_replies=len(targets),
            future=self._new_future(),
            collection=collection,
            target_ids=targets,
        )
        if not targets:
            pending.future.set_result([])
            logger.debug("registry: subscription id=%s has no targets, resolved empty", sub_id)
            return pending

        self._requests[sub_id] = pending
        for target in targets:
            self._targets[target] = pending
        logger.debug("registry: registered subscription id=%s targets=%s collection=%s",
                     sub_id, len(targets), collection)
        return pending

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------
    def dispatch(self, event: ProtocolEvent) -> Optional[PendingRequest]:
        """
        Route one decoded event. Returns the PendingRequest it touched, or None
        if the event belonged to nothing we are waiting for.
        """
        if isinstance(event, MethodResult):
            return self._on_method_result(event)
        if isinstance(event, SubscriptionAdded):
            return self._on_added(event)
        return None

    def _on_method_result(self, event: MethodResult) -> Optional[PendingRequest]:
        pending = self._requests.get(event.id)
        if pending is None or pending.kind is not RequestKind.METHOD_CALL:
            logger.debug("registry: result for unknown request id=%s ignored", event.id)
            return None

        self.discard(pending)
        if event.error is not None:
            _settle(pending, error=MethodError(event.id, event.error))
            return pending

        pending.received.append(event.result)
        _settle(pending, value=event.result)
        return pending

    def _on_added(self, event: SubscriptionAdded) -> Optional[PendingRequest]:
        pending = self._targets.get(event.id)
        if pending is None:
            logger.debug("registry: added for untracked entity id=%s ignored", event.id)
            return None
        if pending.collection is not None and event.collection != pending.collection:
            logger.debug("registry: added id=%s collection=%s does not match %s, ignored",
                         event.id, event.collection, pending.collection)
            return None
        if event.id in pending.counted:
            logger.debug("registry: repeated added for entity id=%s ignored", event.id)
            return None

        pending.counted.add(event.id)
        pending.received.append(event.fields)
        logger.debug("registry: subscription id=%s received %s/%s",
                     pending.id, len(pending.received), pending.expected_replies)

        if pending.complete:
            self.discard(pending)
            _settle(pending, value=list(pending.received))
        return pending

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------
    def lookup(self, message_id: str) -> Optional[PendingRequest]:
        return self._requests.get(message_id) or self._targets.get(message_id)

    def discard(self, pending: PendingRequest) -> None:
        if self._requests.get(pending.id) is pending:
            del self._requests[pending.id]
        for target in pending.target_ids:
            if self._targets.get(target) is pending:
                del self._targets[target]

    def reject(self, message_id: str, error: BaseException) -> Optional[PendingRequest]:
        pending = self.lookup(message_id)
        if pending is None:
            return None
        self.discard(pending)
        _settle(pending, error=error)
        return pending

    def reject_all(self, error: BaseException) -> int:
        pending_list = list(self._requests.values())
        self._requests.clear()
        self._targets.clear()
        for pending in pending_list:
            _settle(pending, error=error)
        if pending_list:
            logger.info("registry: rejected %s pending requests (%s)", len(pending_list), error)
        return len(pending_list)


def _settle(pending: PendingRequest, value: Any = None, error: Optional[BaseException] = None) -> None:
    # The waiter may already have given up (timeout or cancellation)
    if pending.future.done():
        return
    if error is not None:
        pending.future.set_exception(error)
    else:
        pending.future.set_result(value)

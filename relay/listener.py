"""Websocket listener for the node's transaction event stream."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from relay.config import settings
from relay.errors import MalformedFrame, MalformedPayload, NotFound, UpstreamError
from relay.models import EventAttributes
from relay.schemas import TxEvent
from relay.services.events import EventInterpreter
from relay.services.resolver import AddressResolver
from relay.services.router import ChatClient, route
from relay.subscriptions import SubscriptionTable

logger = logging.getLogger(__name__)

SUBSCRIBE_REQUEST: dict[str, Any] = {
    "jsonrpc": "2.0",
    "method": "subscribe",
    "params": {"query": "tm.event='Tx'"},
    "id": 1,
}
MESSAGE_EVENT_TYPE = "message"


class ListenerState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


class RetryPolicy(Protocol):
    def next_delay(self, attempt: int) -> float:
        ...

    def reset(self) -> None:
        ...


@dataclass
class FixedDelayRetry:
    """Reconnect after the same delay every time, forever."""

    delay: float = 1.0

    def next_delay(self, attempt: int) -> float:
        return self.delay

    def reset(self) -> None:
        return None


def _dig(data: Any, *path: str) -> Any:
    current = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def parse_frame(raw: str | bytes) -> Optional[list[Any]]:
    """
    Extract the raw event list from one inbound frame.

    Returns ``None`` for frames without ``result.data.value`` (the subscribe
    acknowledgement, for one). Raises ``MalformedFrame`` when the frame is not
    JSON or the event list is missing.
    """
    try:
        envelope = json.loads(raw)
    except ValueError as exc:
        raise MalformedFrame(f"Invalid JSON: {exc}") from exc

    data = _dig(envelope, "result", "data")
    if not data or not _dig(data, "value"):
        return None
    events = _dig(data, "value", "TxResult", "result", "events")
    if not isinstance(events, list):
        raise MalformedFrame("frame has no value.TxResult.result.events list")
    return events


class StreamListener:
    """
    Owns the websocket connection and feeds each transaction event through
    the interpreter and the router.

    States: DISCONNECTED → CONNECTING → SUBSCRIBED → DISCONNECTED. Any
    transport error or close schedules a reconnect using ``retry``.
    """

    def __init__(
        self,
        url: str,
        *,
        interpreter: EventInterpreter,
        resolver: AddressResolver,
        subscriptions: SubscriptionTable,
        chat: ChatClient,
        retry: Optional[RetryPolicy] = None,
        connect: Optional[Callable[[str], Any]] = None,
        attributes_base64: Optional[bool] = None,
    ) -> None:
        self.url = url
        self.interpreter = interpreter
        self.resolver = resolver
        self.subscriptions = subscriptions
        self.chat = chat
        self.retry = retry or FixedDelayRetry(settings.reconnect_delay_seconds)
        self._connect = connect or websockets.connect
        self.attributes_base64 = (
            settings.attributes_base64 if attributes_base64 is None else attributes_base64
        )
        self.state = ListenerState.DISCONNECTED
        self.attempts = 0
        self._stopping = False

    def stop(self) -> None:
        self._stopping = True

    async def run(self) -> None:
        """Connect, subscribe, consume; reconnect until stopped or cancelled."""
        while not self._stopping:
            await self.run_once()
            if self._stopping:
                break
            self.attempts += 1
            delay = self.retry.next_delay(self.attempts)
            logger.info("Reconnecting to %s in %.1fs", self.url, delay)
            await asyncio.sleep(delay)
        self.state = ListenerState.DISCONNECTED

    async def run_once(self) -> None:
        """One connection lifetime; returns once the connection is gone."""
        self.state = ListenerState.CONNECTING
        try:
            async with self._connect(self.url) as ws:
                logger.info("Connected to WebSocket server %s", self.url)
                await ws.send(json.dumps(SUBSCRIBE_REQUEST))
                self.state = ListenerState.SUBSCRIBED
                self.attempts = 0
                self.retry.reset()
                async for message in ws:
                    await self.handle_frame(message)
                    if self._stopping:
                        break
            logger.info("WebSocket connection closed")
        except ConnectionClosed as exc:
            logger.warning(
                "WebSocket connection closed. Code: %s, Reason: %s",
                getattr(exc.rcvd, "code", None),
                getattr(exc.rcvd, "reason", ""),
            )
        except (OSError, WebSocketException) as exc:
            logger.warning("WebSocket error: %s", exc)
        except Exception:
            logger.exception("Unexpected listener failure")
        finally:
            self.state = ListenerState.DISCONNECTED

    async def handle_frame(self, raw: str | bytes) -> int:
        """Process one frame; returns the number of ``message`` events handled."""
        try:
            events = parse_frame(raw)
        except MalformedFrame as exc:
            logger.warning("Dropping frame: %s", exc)
            return 0
        if events is None:
            logger.debug("Ignoring message without value")
            return 0

        handled = 0
        for raw_event in events:
            try:
                event = TxEvent.model_validate(raw_event)
            except ValidationError as exc:
                logger.warning("Skipping malformed event: %s", exc)
                continue
            if event.type != MESSAGE_EVENT_TYPE:
                continue
            handled += 1
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception("Failed to handle %s event", event.type)
        return handled

    async def handle_event(self, event: TxEvent) -> None:
        try:
            attrs = EventAttributes.from_raw(
                event.attributes, base64_encoded=self.attributes_base64
            )
        except MalformedPayload as exc:
            logger.warning("Skipping event with undecodable attributes: %s", exc)
            return

        fragments = await self.interpreter.interpret(attrs)
        if not fragments:
            return
        owner_name = await self.owner_name(attrs)
        await route(self.subscriptions, owner_name, fragments, self.chat)

    async def owner_name(self, attrs: EventAttributes) -> str:
        """
        Display name of the repository owner the event belongs to.

        Empty when the event carries no owner, which matches only wildcard
        subscribers; a failed lookup degrades to the same.
        """
        owner = attrs.owner()
        if owner is None:
            return ""
        try:
            return await self.resolver.resolve_owner(owner)
        except (NotFound, UpstreamError) as exc:
            logger.warning("Could not resolve owner %s: %s", owner.id, exc)
            return ""

"""
Correlation Broker.

Turns one shared fire-and-forget channel into three higher-level services:

1. `send_request`: tagged request, future resolved by the matching response.
2. `register_handler`: answer inbound requests by endpoint name.
3. `subscribe` / `notify`: untagged push notifications.

The broker runs entirely on one event loop. A pending request is settled
exactly once: whichever of "response matched" or "deadline passed" happens
first removes its bookkeeping, and the other finds nothing to do.
"""

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from pydantic import ValidationError

from ..config import DEFAULT_REQUEST_TIMEOUT_MS
from ..core.errors import BrokerClosedError, RemoteHandlerError, RequestTimeoutError
from .channel import Message, MessageChannel
from .envelope import (
    REQUEST_TYPE,
    RESERVED_TYPES,
    RESPONSE_TYPE,
    RequestEnvelope,
    ResponseEnvelope,
    encode,
    push_message,
    to_wire,
)

logger = logging.getLogger(__name__)

Responder = Callable[[Any], Union[Awaitable[Any], Any]]
Subscriber = Callable[[Message], None]


@dataclass
class PendingRequest:
    """Bookkeeping for one outstanding request."""
    request_id: str
    endpoint: str
    timeout_ms: int
    future: asyncio.Future
    timeout_handle: asyncio.TimerHandle


class CorrelationBroker:
    """
    Request/response and publish/subscribe over a single message channel.

    One broker sits on each side of the channel. Several logical
    conversations share the channel; they are told apart by endpoint name,
    request id, or push-notification tag.
    """

    def __init__(
        self,
        channel: MessageChannel,
        default_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        name: str = "broker",
    ):
        self.name = name
        self.default_timeout_ms = default_timeout_ms
        self._channel = channel
        self._pending: Dict[str, PendingRequest] = {}
        self._handlers: Dict[str, Responder] = {}
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        self._detach = channel.add_listener(self._on_message)

    # --- Requests ---

    def send_request(
        self,
        endpoint: str,
        payload: Any = None,
        timeout_ms: Optional[int] = None,
    ) -> asyncio.Future:
        """
        Send a request and return a future for its response payload.

        The message is posted before this method returns. Must be called from
        the broker's event loop.

        Raises (through the future):
            RequestTimeoutError: No response within `timeout_ms`.
            RemoteHandlerError: The remote handler failed.
            BrokerClosedError: The broker was disposed first.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        if self._closed:
            future.set_exception(BrokerClosedError(f"{self.name} is disposed"))
            return future

        timeout = timeout_ms if timeout_ms is not None else self.default_timeout_ms
        request_id = str(uuid.uuid4())
        handle = loop.call_later(timeout / 1000, self._expire, request_id)
        self._pending[request_id] = PendingRequest(
            request_id=request_id,
            endpoint=endpoint,
            timeout_ms=timeout,
            future=future,
            timeout_handle=handle,
        )
        # A caller that stops waiting releases the bookkeeping.
        future.add_done_callback(lambda _: self._forget(request_id))

        envelope = RequestEnvelope(endpoint=endpoint, request_id=request_id, payload=to_wire(payload))
        logger.debug(f"[{self.name}] -> {endpoint} ({request_id})")
        try:
            self._channel.post(encode(envelope))
        except Exception as e:
            self._forget(request_id)
            if not future.done():
                future.set_exception(e)
        return future

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _expire(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        logger.warning(
            f"[{self.name}] Request {request_id} to '{pending.endpoint}' timed out "
            f"after {pending.timeout_ms}ms"
        )
        if not pending.future.done():
            pending.future.set_exception(
                RequestTimeoutError(pending.endpoint, request_id, pending.timeout_ms)
            )

    def _forget(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is not None:
            pending.timeout_handle.cancel()

    def _settle(self, envelope: ResponseEnvelope) -> None:
        pending = self._pending.pop(envelope.request_id, None)
        if pending is None:
            logger.debug(f"[{self.name}] Dropping unmatched response {envelope.request_id}")
            return

        pending.timeout_handle.cancel()
        if pending.future.done():
            return

        if envelope.error is not None:
            pending.future.set_exception(RemoteHandlerError(pending.endpoint, envelope.error))
        else:
            pending.future.set_result(envelope.payload)

    # --- Handlers ---

    def register_handler(self, endpoint: str, responder: Responder) -> None:
        """Answer requests for `endpoint`. Replaces any previous responder."""
        if endpoint in self._handlers:
            logger.debug(f"[{self.name}] Replacing handler for '{endpoint}'")
        self._handlers[endpoint] = responder

    def unregister_handler(self, endpoint: str) -> None:
        """Remove the responder for `endpoint`, if any."""
        self._handlers.pop(endpoint, None)

    def has_handler(self, endpoint: str) -> bool:
        return endpoint in self._handlers

    def _dispatch(self, envelope: RequestEnvelope) -> None:
        responder = self._handlers.get(envelope.endpoint)
        if responder is None:
            logger.warning(
                f"[{self.name}] No handler for '{envelope.endpoint}'; "
                f"dropping request {envelope.request_id}"
            )
            return

        task = asyncio.get_running_loop().create_task(self._respond(responder, envelope))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _respond(self, responder: Responder, request: RequestEnvelope) -> None:
        try:
            result = responder(request.payload)
            if inspect.isawaitable(result):
                result = await result
            # A result that cannot be serialized counts as a handler failure.
            message = encode(ResponseEnvelope(request_id=request.request_id, payload=to_wire(result)))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[{self.name}] Handler for '{request.endpoint}' failed: {e}", exc_info=True
            )
            message = encode(
                ResponseEnvelope(request_id=request.request_id, error=str(e) or type(e).__name__)
            )

        if self._closed:
            return
        try:
            self._channel.post(message)
        except Exception as e:
            logger.error(f"[{self.name}] Failed to send response {request.request_id}: {e}")

    # --- Push notifications ---

    def subscribe(self, message_type: str, listener: Subscriber) -> Callable[[], None]:
        """
        Receive push notifications tagged `message_type`.

        Listeners for one tag run in registration order.

        Returns:
            A disposer that removes this listener.
        """
        if message_type in RESERVED_TYPES:
            raise ValueError(f"Cannot subscribe to reserved message type '{message_type}'")

        listeners = self._subscribers.setdefault(message_type, [])
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def notify(self, message_type: str, fields: Optional[Dict[str, Any]] = None) -> None:
        """Post a fire-and-forget push notification."""
        if self._closed:
            logger.debug(f"[{self.name}] Ignoring '{message_type}' notification after dispose")
            return
        self._channel.post(push_message(message_type, fields))

    def _publish(self, message: Message) -> None:
        message_type = message["type"]
        listeners = self._subscribers.get(message_type)
        if not listeners:
            logger.debug(f"[{self.name}] No subscribers for '{message_type}'")
            return
        for listener in list(listeners):
            try:
                listener(message)
            except Exception as e:
                logger.error(
                    f"[{self.name}] Subscriber for '{message_type}' failed: {e}", exc_info=True
                )

    # --- Inbound routing ---

    def _on_message(self, message: Message) -> None:
        if self._closed:
            return

        message_type = message.get("type") if isinstance(message, dict) else None
        if not isinstance(message_type, str):
            logger.warning(f"[{self.name}] Dropping message without a type: {message!r}")
            return

        try:
            if message_type == RESPONSE_TYPE:
                self._settle(ResponseEnvelope.model_validate(message))
            elif message_type == REQUEST_TYPE:
                self._dispatch(RequestEnvelope.model_validate(message))
            else:
                self._publish(message)
        except ValidationError as e:
            logger.warning(f"[{self.name}] Dropping malformed '{message_type}' envelope: {e}")

    # --- Lifecycle ---

    def dispose(self) -> None:
        """Detach from the channel and release every resource. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._detach()

        pending = list(self._pending.values())
        self._pending.clear()
        for request in pending:
            request.timeout_handle.cancel()
            if not request.future.done():
                request.future.set_exception(
                    BrokerClosedError(f"{self.name} disposed with request to '{request.endpoint}' pending")
                )

        for task in list(self._tasks):
            task.cancel()

        self._handlers.clear()
        self._subscribers.clear()
        logger.debug(f"[{self.name}] Disposed")

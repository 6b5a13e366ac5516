"""
Message Channel.

The raw transport between the UI process and the host process: unordered,
at-most-once, fire-and-forget delivery of JSON objects. The broker only needs
the two operations of `MessageChannel`.

`LocalChannel` is an in-process implementation. A pair of connected ends
behaves like the real transport: delivery is asynchronous (scheduled on the
event loop), and every message is copied through JSON so that neither side
can alias the other's data.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
MessageListener = Callable[[Message], None]


class MessageChannel(Protocol):
    """Bidirectional transport for tagged JSON messages."""

    def post(self, message: Message) -> None:
        """Send a message to the other side. Never blocks."""
        ...

    def add_listener(self, listener: MessageListener) -> Callable[[], None]:
        """Receive every inbound message. Returns a disposer."""
        ...


class LocalChannel:
    """One end of an in-process channel pair."""

    def __init__(self, name: str = "local"):
        self.name = name
        self._peer: Optional["LocalChannel"] = None
        self._listeners: List[MessageListener] = []
        self._closed = False

    def connect(self, peer: "LocalChannel") -> None:
        self._peer = peer
        peer._peer = self

    def post(self, message: Message) -> None:
        if self._closed or self._peer is None:
            logger.debug(f"[{self.name}] Dropping message on unconnected channel: {message.get('type')}")
            return
        # Serialization boundary: a non-JSON payload fails here, at the sender.
        data = json.loads(json.dumps(message))
        asyncio.get_running_loop().call_soon(self._peer._deliver, data)

    def add_listener(self, listener: MessageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()

    def _deliver(self, message: Message) -> None:
        if self._closed:
            return
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception as e:
                logger.error(f"[{self.name}] Channel listener failed: {e}", exc_info=True)


def create_channel_pair(
    first: str = "ui", second: str = "host"
) -> Tuple[LocalChannel, LocalChannel]:
    """Create two connected channel ends."""
    a = LocalChannel(first)
    b = LocalChannel(second)
    a.connect(b)
    return a, b

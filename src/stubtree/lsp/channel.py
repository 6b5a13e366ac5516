"""
Message channel over the Language Server Protocol.

Channel envelopes travel as a custom JSON-RPC notification (by default
`stubtree/message`) in both directions, which gives the broker the same
fire-and-forget transport the editor webview had.
"""

import logging
from typing import Any, Callable, List

from pygls.lsp.server import LanguageServer

from ..broker.channel import Message, MessageListener
from ..config import DEFAULT_LSP_METHOD

logger = logging.getLogger(__name__)


def to_plain(value: Any) -> Any:
    """
    Convert deserialized notification params back into plain JSON data.

    pygls hands params of custom methods over as namedtuple-style objects.
    """
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if hasattr(value, "_asdict"):
        return to_plain(value._asdict())
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if hasattr(value, "__dict__") and not isinstance(value, type):
        return to_plain(vars(value))
    return value


class LspChannel:
    """`MessageChannel` carried by a pygls server's JSON-RPC connection."""

    def __init__(self, server: LanguageServer, method: str = DEFAULT_LSP_METHOD):
        self.server = server
        self.method = method
        self._listeners: List[MessageListener] = []
        server.feature(method)(self._on_notification)

    def post(self, message: Message) -> None:
        self.server.protocol.notify(self.method, message)

    def add_listener(self, listener: MessageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def _on_notification(self, params: Any) -> None:
        message = to_plain(params)
        if not isinstance(message, dict):
            logger.warning(f"Ignoring {self.method} notification with non-object params")
            return

        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception as e:
                logger.error(f"Channel listener failed: {e}", exc_info=True)

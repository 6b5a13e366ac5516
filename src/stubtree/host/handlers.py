"""
Host-side endpoints.

These answer the UI session's requests over the broker: ancestor
resolution and dependency queries against the analysis backend, prompt
generation through a pluggable builder, and editor highlighting for
`highlightDependency` push notifications.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from pydantic import ValidationError

from ..assembly.decoding import decode_target
from ..assembly.names import parent_prefix
from ..broker.broker import CorrelationBroker
from ..broker.channel import Message
from ..config import (
    DEFAULT_HIGHLIGHT_END_LINE,
    DEFAULT_HIGHLIGHT_START_LINE,
    GENERATE_PROMPT_ENDPOINT,
    GET_DEPENDENCIES_ENDPOINT,
    HIGHLIGHT_MESSAGE,
    RESOLVE_ANCESTOR_ENDPOINT,
)
from ..core.types import AncestorInfo, HighlightRequest, PromptRequest, PromptResponse
from .backend import AnalysisBackend

logger = logging.getLogger(__name__)

# Label the sidebar shows for the Fake strategy
UI_STRATEGY_LABELS = {"Fake": "Fake Object"}


class Highlighter(Protocol):
    """Editor collaborator that reveals a line range."""

    def __call__(self, file_path: str, start_line: int, end_line: int) -> Union[Awaitable[None], None]:
        ...


class PromptBuilder(Protocol):
    """Collaborator that renders a test-authoring prompt."""

    def __call__(self, request: PromptRequest) -> Union[Awaitable[str], str]:
        ...


def _line(node: Dict[str, Any], key: str, edge: str) -> Optional[int]:
    value = node.get(key)
    if value is None:
        value = ((node.get("codeLocation") or {}).get(edge) or {}).get("line")
    return value


def node_to_ancestor(name: str, node: Dict[str, Any]) -> AncestorInfo:
    """Normalize a backend node into the ancestor-resolution answer shape."""
    return AncestorInfo.model_validate({
        "name": name,
        "type": node.get("type") or node.get("nodeType") or "Unknown",
        "nodeId": node.get("id"),
        "filePath": node.get("filePath"),
        "startLine": _line(node, "startLine", "start"),
        "endLine": _line(node, "endLine", "end"),
    })


def format_for_ui(record: Dict[str, Any]) -> Dict[str, Any]:
    formatted = dict(record)
    implementation = formatted.get("implementation")
    if implementation in UI_STRATEGY_LABELS:
        formatted["implementation"] = UI_STRATEGY_LABELS[implementation]
    return formatted


class HostHandlers:
    """
    Registers the host's endpoints on a broker.

    Args:
        broker: The host end of the channel.
        backend: Source of node details and dependency records.
        highlighter: Editor range reveal; highlight pushes are logged and
            ignored without one.
        prompt_builder: Prompt renderer; prompt requests fail without one.
    """

    def __init__(
        self,
        broker: CorrelationBroker,
        backend: AnalysisBackend,
        highlighter: Optional[Highlighter] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        self.broker = broker
        self.backend = backend
        self.highlighter = highlighter
        self.prompt_builder = prompt_builder
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()

    def register_all(self) -> None:
        self.broker.register_handler(RESOLVE_ANCESTOR_ENDPOINT, self.resolve_ancestor)
        self.broker.register_handler(GET_DEPENDENCIES_ENDPOINT, self.get_dependencies)
        self.broker.register_handler(GENERATE_PROMPT_ENDPOINT, self.generate_prompt)
        if self._unsubscribe is None:
            self._unsubscribe = self.broker.subscribe(HIGHLIGHT_MESSAGE, self._on_highlight)

    def unregister_all(self) -> None:
        for endpoint in (RESOLVE_ANCESTOR_ENDPOINT, GET_DEPENDENCIES_ENDPOINT, GENERATE_PROMPT_ENDPOINT):
            self.broker.unregister_handler(endpoint)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # --- Endpoints ---

    async def resolve_ancestor(self, payload: Any) -> Optional[AncestorInfo]:
        """
        Look up an ancestor by name.

        Tries the exact id, then the first id containing the name, then the
        parent prefix of a qualified name. Backend failures count as "not found".
        """
        if not isinstance(payload, str) or not payload:
            logger.warning(f"resolve-ancestor expects a name, got {payload!r}")
            return None
        name = payload

        try:
            node = await self.backend.get_node(name)
            if node is None:
                matching = [node_id for node_id in await self.backend.list_node_ids() if name in node_id]
                if matching:
                    node = await self.backend.get_node(matching[0])
            if node is None:
                prefix = parent_prefix(name)
                if prefix:
                    node = await self.backend.get_node(prefix)
        except Exception as e:
            logger.warning(f"Backend lookup for '{name}' failed: {e}")
            return None

        if node is None:
            logger.debug(f"No backend node for '{name}'")
            return None

        try:
            info = node_to_ancestor(name, node)
        except ValidationError as e:
            logger.warning(f"Backend node for '{name}' is malformed: {e.error_count()} error(s)")
            return None

        logger.debug(f"Resolved '{name}' as {info.kind.value}")
        return info

    async def get_dependencies(self, payload: Any) -> List[Dict[str, Any]]:
        target = decode_target(payload)
        if target is None:
            raise ValueError("get-dependencies requires a target entity")

        records = await self.backend.get_dependencies(target)
        logger.info(f"Returning {len(records)} dependency record(s) for '{target.name}'")
        return [format_for_ui(record) for record in records]

    async def generate_prompt(self, payload: Any) -> PromptResponse:
        if self.prompt_builder is None:
            return PromptResponse(error="No prompt builder is configured")

        try:
            request = PromptRequest.model_validate(payload)
        except ValidationError as e:
            return PromptResponse(error=f"Invalid prompt request: {e.error_count()} error(s)")

        try:
            prompt = self.prompt_builder(request)
            if inspect.isawaitable(prompt):
                prompt = await prompt
        except Exception as e:
            logger.error(f"Prompt builder failed: {e}", exc_info=True)
            return PromptResponse(error=str(e) or type(e).__name__)

        return PromptResponse(prompt=prompt)

    # --- Push notifications ---

    def _on_highlight(self, message: Message) -> None:
        try:
            request = HighlightRequest.model_validate(message.get("dependency") or {})
        except ValidationError:
            logger.warning("Cannot highlight dependency: missing file path")
            return

        if self.highlighter is None:
            logger.info(f"No highlighter configured; ignoring highlight of '{request.name}'")
            return

        task = asyncio.ensure_future(self._highlight(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _highlight(self, request: HighlightRequest) -> None:
        start, end = effective_range(request)
        try:
            result = self.highlighter(request.file_path, start, end)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Failed to highlight '{request.name}': {e}", exc_info=True)


def effective_range(request: HighlightRequest) -> Tuple[int, int]:
    """Line range to reveal; missing lines fall back to the top of the file."""
    start = request.start_line if request.start_line is not None else DEFAULT_HIGHLIGHT_START_LINE
    end = request.end_line if request.end_line is not None else DEFAULT_HIGHLIGHT_END_LINE
    return start, end

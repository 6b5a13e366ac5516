"""
Sidebar Session.

The UI-side context object. One session owns the broker for its end of the
channel, the forest store, the assembler and the enrichment loop, and keeps
the small amount of view state the sidebar needs (displayed target,
connection status, last error).

Lifecycle is explicit: construct, `start()`, use, `dispose()`. The session is
also an async context manager.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .assembly.assembler import AssemblyResult, DependencyAssembler
from .assembly.decoding import decode_records, decode_target
from .assembly.enrichment import AncestorEnricher
from .broker.broker import CorrelationBroker
from .broker.channel import Message, MessageChannel
from .config import (
    CONNECTION_STATUS_MESSAGE,
    DEPENDENCIES_ERROR_MESSAGE,
    DEPENDENCIES_MESSAGE,
    DISPLAY_NODE_ENDPOINT,
    GENERATE_PROMPT_ENDPOINT,
    GET_DEPENDENCIES_ENDPOINT,
    HIGHLIGHT_MESSAGE,
    StubtreeConfig,
)
from .core import forest as forest_ops
from .core.errors import (
    PromptGenerationError,
    RemoteHandlerError,
    SessionStateError,
    StubtreeError,
)
from .core.store import ForestListener, ForestStore
from .core.types import (
    Forest,
    HighlightRequest,
    PromptRequest,
    PromptResponse,
    RecordSource,
    Strategy,
    TargetEntity,
)

logger = logging.getLogger(__name__)


class SidebarSession:
    """
    UI-side state and operations for one dependency sidebar.

    Attributes:
        target: The function whose dependencies are displayed, if any.
        connected: Latest backend connection status; None until reported.
        last_error: Most recent dependency-loading error message.
        loading: True while a dependency query is in flight.
    """

    def __init__(
        self,
        channel: MessageChannel,
        config: Optional[StubtreeConfig] = None,
        assembler: Optional[DependencyAssembler] = None,
    ):
        self.config = config or StubtreeConfig()
        self.broker = CorrelationBroker(
            channel, default_timeout_ms=self.config.request_timeout_ms, name="ui"
        )
        self.store = ForestStore()
        self.assembler = assembler or DependencyAssembler()
        self.enricher = AncestorEnricher(
            self.broker,
            self.store,
            self.assembler,
            timeout_ms=self.config.ancestor_timeout_ms,
        )

        self.target: Optional[TargetEntity] = None
        self.connected: Optional[bool] = None
        self.last_error: Optional[str] = None
        self.loading = False

        self._load_generation = 0
        self._unsubscribers: List[Callable[[], None]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._started = False
        self._disposed = False

    @property
    def forest(self) -> Forest:
        return self.store.forest

    def on_change(self, listener: ForestListener) -> Callable[[], None]:
        """Re-render hook: called with every new forest."""
        return self.store.on_change(listener)

    # --- Lifecycle ---

    def start(self) -> "SidebarSession":
        if self._disposed:
            raise SessionStateError("Session has been disposed")
        if self._started:
            return self
        self._started = True

        self.broker.register_handler(DISPLAY_NODE_ENDPOINT, self._handle_display_node)
        self._unsubscribers = [
            self.broker.subscribe(DEPENDENCIES_MESSAGE, self._on_dependencies),
            self.broker.subscribe(DEPENDENCIES_ERROR_MESSAGE, self._on_dependencies_error),
            self.broker.subscribe(CONNECTION_STATUS_MESSAGE, self._on_connection_status),
        ]
        logger.debug("Sidebar session started")
        return self

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True

        self.enricher.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.broker.dispose()
        logger.debug("Sidebar session disposed")

    async def __aenter__(self) -> "SidebarSession":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # --- Loading ---

    async def load_records(
        self,
        target: TargetEntity,
        raw_records: Any,
        source: RecordSource = RecordSource.QUERY,
    ) -> AssemblyResult:
        """
        Assemble a record batch, install it, and start resolving its ancestors.

        Any enrichment still running for the previous batch is cancelled.
        """
        self._load_generation += 1
        self.enricher.cancel()
        records = decode_records(raw_records)
        result = self.assembler.assemble(target, records, source.default_strategy)

        self.target = target
        self.last_error = None
        generation = await self.store.replace(result.forest)
        logger.info(
            f"Loaded {len(records)} record(s) for '{target.name}' from {source.value}"
        )

        if result.missing_ancestors:
            self.enricher.schedule(result.missing_ancestors, generation)
        return result

    async def request_dependencies(self, target: Optional[TargetEntity] = None) -> AssemblyResult:
        """
        Query the host for the target's dependencies and load them.

        Raises:
            SessionStateError: No target, or another load started while the
                query was in flight; the late answer is not installed.
        """
        target = target or self.target
        if target is None:
            raise SessionStateError("No target function is displayed")

        self._load_generation += 1
        generation = self._load_generation
        self.loading = True
        try:
            answer = await self.broker.send_request(GET_DEPENDENCIES_ENDPOINT, target)
        except StubtreeError as e:
            self.last_error = str(e)
            raise
        finally:
            self.loading = False

        if generation != self._load_generation:
            logger.debug(f"Dropping superseded dependency answer for '{target.name}'")
            raise SessionStateError(f"Dependencies for '{target.name}' were superseded")
        return await self.load_records(target, answer, RecordSource.QUERY)

    # --- Mutations ---

    async def set_strategy(self, node_id: str, strategy: Strategy) -> bool:
        return await self.store.update(
            lambda forest: forest_ops.set_strategy(forest, node_id, strategy)
        )

    async def remove(self, node_id: str) -> bool:
        return await self.store.update(lambda forest: forest_ops.remove(forest, node_id))

    # --- Outbound ---

    def highlight(self, node_id: str) -> Optional[HighlightRequest]:
        """
        Ask the editor to reveal a dependency. Fire-and-forget.

        Returns:
            Optional[HighlightRequest]: What was sent, or None when the node
            is unknown or has no file location.
        """
        node = forest_ops.find_node(self.forest, node_id)
        if node is None or node.location is None:
            logger.info(f"Cannot highlight node {node_id}: missing file path")
            return None

        request = HighlightRequest(
            name=node.name,
            file_path=node.location.file_path,
            start_line=node.location.start_line,
            end_line=node.location.end_line,
        )
        self.broker.notify(HIGHLIGHT_MESSAGE, {"dependency": request})
        return request

    async def generate_prompt(
        self,
        instructions: str,
        output_path_hint: Optional[str] = None,
        framework_hint: Optional[str] = None,
    ) -> str:
        """
        Ask the host for a test-authoring prompt covering the current forest.

        Raises:
            SessionStateError: No target is displayed.
            PromptGenerationError: The host could not produce a prompt.
        """
        if self.target is None:
            raise SessionStateError("No target function is displayed")

        request = PromptRequest(
            target_entity=self.target,
            dependency_forest_snapshot=forest_ops.forest_snapshot(self.forest),
            free_text_instructions=instructions,
            output_path_hint=output_path_hint,
            framework_hint=framework_hint,
        )
        try:
            answer = await self.broker.send_request(GENERATE_PROMPT_ENDPOINT, request)
        except RemoteHandlerError as e:
            raise PromptGenerationError(e.message) from e

        response = PromptResponse.model_validate(answer if isinstance(answer, dict) else {})
        if response.error:
            raise PromptGenerationError(response.error)
        if not response.prompt:
            raise PromptGenerationError("Host returned an empty prompt")
        return response.prompt

    # --- Inbound ---

    async def _handle_display_node(self, payload: Any) -> Dict[str, Any]:
        target = decode_target(payload)
        if target is None:
            raise ValueError("display-node requires a target entity")

        self._load_generation += 1
        self.enricher.cancel()
        self.target = target
        self.last_error = None
        await self.store.replace(())

        self._spawn(self._load_in_background(self.request_dependencies(target)))
        return {}

    def _on_dependencies(self, message: Message) -> None:
        target = decode_target(message.get("target")) or self.target
        if target is None:
            logger.warning("Dropping live dependency batch: no target is displayed")
            return
        self._spawn(
            self._load_in_background(
                self.load_records(target, message.get("dependencies"), RecordSource.LIVE_FETCH)
            )
        )

    def _on_dependencies_error(self, message: Message) -> None:
        self.last_error = str(message.get("error") or "Unknown error")
        self.loading = False
        logger.warning(f"Host failed to load dependencies: {self.last_error}")

    def _on_connection_status(self, message: Message) -> None:
        self.connected = bool(message.get("isConnected"))
        logger.info(f"Backend {'connected' if self.connected else 'disconnected'}")

    async def _load_in_background(self, load: Awaitable[AssemblyResult]) -> None:
        try:
            await load
        except StubtreeError as e:
            logger.warning(f"Dependency load failed: {e}")

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

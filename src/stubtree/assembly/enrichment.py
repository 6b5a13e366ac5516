"""
Ancestor enrichment loop.

Each missing ancestor becomes one concurrent `resolve-ancestor` round-trip.
Answers are grafted into the shared forest through the store, one atomic
update each, and only if the forest still belongs to the batch that asked.
"""

import asyncio
import logging
from typing import Iterable, Optional, Set

from ..broker.broker import CorrelationBroker
from ..config import RESOLVE_ANCESTOR_ENDPOINT
from ..core.errors import StubtreeError
from ..core.store import ForestStore
from .assembler import DependencyAssembler
from .decoding import decode_ancestor

logger = logging.getLogger(__name__)


class AncestorEnricher:
    """Resolves missing ancestors and grafts the answers into a store."""

    def __init__(
        self,
        broker: CorrelationBroker,
        store: ForestStore,
        assembler: Optional[DependencyAssembler] = None,
        timeout_ms: Optional[int] = None,
    ):
        self.broker = broker
        self.store = store
        self.assembler = assembler or DependencyAssembler()
        self.timeout_ms = timeout_ms
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def schedule(self, names: Iterable[str], generation: int) -> None:
        """Start one resolution task per name for the given forest generation."""
        loop = asyncio.get_running_loop()
        for name in names:
            task = loop.create_task(self._resolve(name, generation))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def wait(self) -> None:
        """Wait for every scheduled resolution to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        """Stop all outstanding resolutions; their answers are never applied."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def _resolve(self, name: str, generation: int) -> bool:
        try:
            answer = await self.broker.send_request(
                RESOLVE_ANCESTOR_ENDPOINT, name, timeout_ms=self.timeout_ms
            )
        except StubtreeError as e:
            logger.info(f"Ancestor '{name}' unresolved: {e}")
            return False

        info = decode_ancestor(answer)
        if info is None:
            logger.debug(f"Ancestor '{name}' not found by backend")
            return False

        applied = await self.store.update(
            lambda forest: self.assembler.graft_ancestor(forest, info),
            generation=generation,
        )
        return applied

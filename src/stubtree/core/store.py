"""
Forest Store.

The single writer for the shared dependency forest. New record batches,
ancestor grafts and user mutations all go through here and are applied one
at a time, so a graft can never interleave with a rebuild.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from .types import Forest

logger = logging.getLogger(__name__)

ForestUpdate = Callable[[Forest], Optional[Forest]]
ForestListener = Callable[[Forest], None]


class ForestStore:
    """
    Holds the current forest and serializes every change to it.

    Attributes:
        generation: Incremented each time a new record batch replaces the
            forest. Updates computed against an older batch can pass their
            generation to be rejected as stale.
    """

    def __init__(self, forest: Forest = ()):
        self._forest: Forest = forest
        self._generation = 0
        self._lock = asyncio.Lock()
        self._listeners: List[ForestListener] = []

    @property
    def forest(self) -> Forest:
        return self._forest

    @property
    def generation(self) -> int:
        return self._generation

    async def replace(self, forest: Forest) -> int:
        """Install a freshly assembled forest and return its generation."""
        async with self._lock:
            self._generation += 1
            self._forest = forest
            generation = self._generation
            self._notify()
        return generation

    async def update(self, fn: ForestUpdate, generation: Optional[int] = None) -> bool:
        """
        Apply `fn` to the current forest atomically.

        Args:
            fn: Returns the new forest, or None to leave it untouched.
            generation: If given, the update is dropped unless it still
                matches the current generation.

        Returns:
            bool: True if the forest changed.
        """
        async with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug(
                    f"Dropping stale update (generation {generation}, current {self._generation})"
                )
                return False

            updated = fn(self._forest)
            if updated is None or updated is self._forest:
                return False

            self._forest = updated
            self._notify()
            return True

    def on_change(self, listener: ForestListener) -> Callable[[], None]:
        """Register a listener called with every new forest. Returns a disposer."""
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._forest)
            except Exception as e:
                logger.error(f"Forest listener failed: {e}", exc_info=True)

import asyncio
import logging
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)


class CompositeGuard:
    """Serializes composites per document and tracks request generations.

    A second request for the same document waits for the first one to finish
    instead of racing it. Each request is stamped with a generation number so
    the caller can tell whether a newer request was issued while its own was
    in flight.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._generations: Dict[str, int] = {}

    def _lock_for(self, document_id: str) -> asyncio.Lock:
        lock = self._locks.get(document_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[document_id] = lock
        return lock

    def generation(self, document_id: str) -> int:
        return self._generations.get(document_id, 0)

    def is_current(self, document_id: str, generation: int) -> bool:
        return generation == self.generation(document_id)

    def forget(self, document_id: str) -> None:
        """Drop the lock and generation of a document that no longer exists."""
        self._locks.pop(document_id, None)
        self._generations.pop(document_id, None)

    async def run(self, document_id: str, func: Callable[..., Any], *args: Any) -> Tuple[int, Any]:
        """Run `func(*args)` in a worker thread under the document's lock.

        Returns (generation, result).
        """
        generation = self.generation(document_id) + 1
        self._generations[document_id] = generation
        async with self._lock_for(document_id):
            result = await asyncio.to_thread(func, *args)
        if not self.is_current(document_id, generation):
            logger.info(f"Composite {generation} for {document_id} superseded by "
                        f"generation {self.generation(document_id)}")
        return generation, result

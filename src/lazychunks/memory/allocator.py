"""
Chunk allocation and ownership accounting.

Every stage of a pipeline carries a ``ChunkAllocator``. Chunks are created
through it and released back to it by whoever owns them last, so the
allocator always knows how many items are held by live chunks.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from lazychunks.config import config
from lazychunks.chunks import materialize, empty_like
from lazychunks.memory.monitor import MemoryMonitor, MemoryPressureLevel, monitor as global_monitor

logger = logging.getLogger(__name__)


class AllocationError(MemoryError):
    """A chunk could not be allocated."""


class ChunkAllocator:
    """Allocates chunks and tracks how many items are outstanding.

    The allocator remembers which chunk objects it handed out. Releasing a
    chunk it does not own is refused with a warning, so ``outstanding``
    never drops below the items actually held.
    """

    def __init__(self,
                 limit: Optional[int] = None,
                 monitor: Optional[MemoryMonitor] = None):
        """
        Initialize allocator.

        Args:
            limit: Maximum number of items outstanding at once (None for no limit)
            monitor: Memory monitor consulted before each allocation; allocation
                fails while it reports critical pressure
        """
        if limit is not None and limit < 0:
            raise ValueError("limit must be non-negative")
        self.limit = limit
        self.monitor = monitor
        self.outstanding = 0
        self.peak = 0
        self.allocations = 0
        self.frees = 0
        self.rejected_frees = 0
        # id -> [chunk, references, size]; the chunk is kept so ids stay unique
        self._live: Dict[int, List[Any]] = {}

    def _reserve(self, size: int) -> None:
        if self.limit is not None and self.outstanding + size > self.limit:
            logger.warning(f"Allocation of {size} items refused: "
                           f"{self.outstanding}/{self.limit} outstanding")
            raise AllocationError(
                f"cannot allocate {size} items: {self.outstanding} of {self.limit} in use")
        if self.monitor is not None and self.monitor.current_level() >= MemoryPressureLevel.CRITICAL:
            logger.warning(f"Allocation of {size} items refused under critical memory pressure")
            raise AllocationError("critical memory pressure")

    def _account(self, chunk: Sequence) -> Sequence:
        entry = self._live.get(id(chunk))
        if entry is None:
            self._live[id(chunk)] = [chunk, 1, len(chunk)]
        else:
            # Immutable chunks (b"", cached bytes) can be handed out repeatedly
            entry[1] += 1
        self.outstanding += len(chunk)
        self.peak = max(self.peak, self.outstanding)
        self.allocations += 1
        return chunk

    def alloc(self, items: Iterable[Any], like: Optional[Sequence] = None) -> Sequence:
        """Materialize ``items`` into a new owned chunk shaped like ``like``."""
        try:
            chunk = materialize(items, like)
        except MemoryError as e:
            if isinstance(e, AllocationError):
                raise
            raise AllocationError(str(e) or "out of memory") from e
        self._reserve(len(chunk))
        return self._account(chunk)

    def dupe(self, chunk: Sequence) -> Sequence:
        """Owned copy of ``chunk`` (or of a slice of one)."""
        return self.alloc(chunk, like=chunk)

    def slice(self, chunk: Sequence, start: int, stop: int) -> Sequence:
        """Owned copy of ``chunk[start:stop]``."""
        return self.track(chunk[start:stop])

    def empty(self, like: Optional[Sequence] = None) -> Sequence:
        """Owned zero-length chunk."""
        self._reserve(0)
        return self._account(empty_like(like))

    def track(self, chunk: Sequence) -> Sequence:
        """Take accounting responsibility for a chunk built elsewhere."""
        self._reserve(len(chunk))
        return self._account(chunk)

    def free(self, chunk: Optional[Sequence]) -> None:
        """Release a chunk previously handed out by this allocator."""
        if chunk is None:
            return
        entry = self._live.get(id(chunk))
        if entry is None:
            self.rejected_frees += 1
            logger.warning(f"Ignoring release of a {type(chunk).__name__} of {len(chunk)} "
                           f"items not owned by this allocator")
            return
        entry[1] -= 1
        if entry[1] == 0:
            del self._live[id(chunk)]
        self.outstanding -= entry[2]
        self.frees += 1

    def owns(self, chunk: Sequence) -> bool:
        """Whether ``chunk`` is currently held through this allocator."""
        return id(chunk) in self._live

    def __repr__(self) -> str:
        return (f"ChunkAllocator(outstanding={self.outstanding}, peak={self.peak}, "
                f"allocations={self.allocations}, frees={self.frees}, "
                f"rejected_frees={self.rejected_frees})")


_default: Optional[ChunkAllocator] = None


def default_allocator() -> ChunkAllocator:
    """Process-wide allocator used by sources built without one."""
    global _default
    if _default is None:
        _default = ChunkAllocator(
            limit=config.allocation_limit,
            monitor=global_monitor if config.memory_guard else None,
        )
    return _default


def reset_default_allocator() -> None:
    """Drop the process-wide allocator so the next one picks up new config."""
    global _default
    _default = None

"""
The chunk source contract and leaf sources.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from itertools import islice
from pathlib import Path
from typing import (
    Any, Generic, Iterable, Iterator, List, Optional, Sequence, TypeVar, Union
)

from lazychunks.config import config
from lazychunks.chunks import is_bytes_like
from lazychunks.memory.allocator import ChunkAllocator, default_allocator

logger = logging.getLogger(__name__)

T = TypeVar('T')


class StageState(Enum):
    """Lifecycle of a stage. The only transition is ACTIVE -> EXHAUSTED."""
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


class ChunkSource(ABC, Generic[T]):
    """
    Base class for every pipeline stage.

    ``next()`` returns an owned chunk (possibly empty) while the stream
    continues and ``None`` once it is exhausted. After the first ``None``
    every further call returns ``None`` as well. The caller owns each
    returned chunk and hands it back with ``allocator.free(chunk)``.
    """

    def __init__(self, allocator: Optional[ChunkAllocator] = None):
        self.allocator = allocator or default_allocator()
        self.state = StageState.ACTIVE

    @abstractmethod
    def next(self) -> Optional[Sequence[T]]:
        """Pull the next chunk, or ``None`` at end of stream."""
        pass

    @property
    def exhausted(self) -> bool:
        return self.state is StageState.EXHAUSTED

    def _finish(self) -> None:
        if self.state is StageState.ACTIVE:
            logger.debug(f"{type(self).__name__} exhausted")
            self.state = StageState.EXHAUSTED

    def close(self) -> None:
        """Release internal state. The stage reports end of stream afterwards."""
        self._finish()

    def __iter__(self) -> Iterator[Sequence[T]]:
        """Yield chunks until the terminal signal."""
        while True:
            chunk = self.next()
            if chunk is None:
                return
            yield chunk

    def __enter__(self) -> 'ChunkSource[T]':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class Integers(ChunkSource[int]):
    """Unbounded counting sequence, ``step`` consecutive integers per chunk."""

    def __init__(self, start: int = 0, step: Optional[int] = None,
                 allocator: Optional[ChunkAllocator] = None):
        super().__init__(allocator)
        self.start = start
        self.step = config.default_chunk_size if step is None else step
        if self.step < 0:
            raise ValueError("step must be non-negative")

    def next(self) -> Optional[List[int]]:
        if self.exhausted:
            return None
        chunk = self.allocator.alloc(range(self.start, self.start + self.step))
        self.start += self.step
        return chunk


class Constant(ChunkSource[T]):
    """Unbounded sequence repeating one value, ``step`` copies per chunk."""

    def __init__(self, value: T, step: Optional[int] = None,
                 allocator: Optional[ChunkAllocator] = None):
        super().__init__(allocator)
        self.value = value
        self.step = config.default_chunk_size if step is None else step
        if self.step < 0:
            raise ValueError("step must be non-negative")

    def next(self) -> Optional[List[T]]:
        if self.exhausted:
            return None
        return self.allocator.alloc([self.value] * self.step)


class Repeat(ChunkSource[T]):
    """Unbounded source emitting a fresh copy of ``pattern`` on every pull."""

    def __init__(self, pattern: Sequence[T], allocator: Optional[ChunkAllocator] = None):
        super().__init__(allocator)
        self.pattern = bytes(pattern) if is_bytes_like(pattern) else list(pattern)

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        return self.allocator.dupe(self.pattern)


class ReaderSource(ChunkSource[Any]):
    """
    Adapter over a channel with a ``read(n)`` method.

    Each pull reads at most ``capacity`` items. Short reads are forwarded as
    short chunks; the first empty read ends the stream and is not retried.
    """

    def __init__(self, channel: Any, capacity: Optional[int] = None,
                 allocator: Optional[ChunkAllocator] = None):
        super().__init__(allocator)
        self.channel = channel
        self.capacity = config.read_capacity if capacity is None else capacity
        if self.capacity <= 0:
            raise ValueError("capacity must be positive")

    def _read(self, size: int) -> Sequence:
        return self.channel.read(size)

    def next(self) -> Optional[Sequence]:
        if self.exhausted:
            return None
        data = self._read(self.capacity)
        if not data:
            self._finish()
            return None
        if isinstance(data, (bytearray, memoryview)):
            data = bytes(data)
        return self.allocator.track(data)


class FileSource(ReaderSource):
    """Read a file in binary mode, ``capacity`` bytes per chunk."""

    def __init__(self, path: Union[str, Path], capacity: Optional[int] = None,
                 allocator: Optional[ChunkAllocator] = None):
        super().__init__(None, capacity, allocator)
        self.path = Path(path)

    def _read(self, size: int) -> bytes:
        if self.channel is None:
            self.channel = open(self.path, 'rb')
        return self.channel.read(size)

    def _finish(self) -> None:
        super()._finish()
        if self.channel is not None:
            self.channel.close()
            self.channel = None


class IterableSource(ChunkSource[T]):
    """Batch any iterable into chunks of ``chunk_size`` items."""

    def __init__(self, iterable: Iterable[T], chunk_size: Optional[int] = None,
                 allocator: Optional[ChunkAllocator] = None):
        super().__init__(allocator)
        if chunk_size is None:
            total = len(iterable) if hasattr(iterable, '__len__') else None
            chunk_size = config.calculate_chunk_size(total)
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self._like = iterable if is_bytes_like(iterable) else None
        self._iterator = iter(iterable)

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        batch = list(islice(self._iterator, self.chunk_size))
        if not batch:
            self._finish()
            return None
        return self.allocator.alloc(batch, like=self._like)


class SequenceSource(ChunkSource[T]):
    """Emit a fixed list of chunks verbatim, then end."""

    def __init__(self, chunks: Iterable[Sequence[T]],
                 allocator: Optional[ChunkAllocator] = None):
        super().__init__(allocator)
        self._chunks = list(chunks)
        self._position = 0

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        if self._position >= len(self._chunks):
            self._finish()
            return None
        chunk = self._chunks[self._position]
        self._position += 1
        return self.allocator.dupe(chunk)

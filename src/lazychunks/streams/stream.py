"""
Draining and fluent composition of chunked pipelines.
"""

import logging
from pathlib import Path
from typing import (
    Any, Callable, Generic, Iterable, Iterator, Optional, Sequence, TypeVar, Union
)

from lazychunks.config import config
from lazychunks.chunks import new_buffer
from lazychunks.memory.allocator import ChunkAllocator
from lazychunks.streams.source import (
    ChunkSource, Integers, Constant, Repeat, ReaderSource, FileSource,
    IterableSource, SequenceSource
)
from lazychunks.streams.operators import (
    Take, Drop, TakeWhile, DropWhile, Filter, Map, FlatMap,
    CollateWithSeparator, Join
)
from lazychunks.profiler.profiler import PipelineProfiler, ProfiledSource, global_profiler

logger = logging.getLogger(__name__)

T = TypeVar('T')
U = TypeVar('U')


def drain(source: ChunkSource[T]) -> Union[list, bytearray]:
    """
    Pull ``source`` until the terminal signal and concatenate every chunk.

    Returns a ``bytearray`` for byte streams and a ``list`` otherwise; a
    stream without items drains to an empty list. Each chunk is released
    once copied into the result.
    """
    allocator = getattr(source, 'allocator', None)
    result = None
    pulls = 0
    while True:
        chunk = source.next()
        if chunk is None:
            break
        pulls += 1
        try:
            if len(chunk) > 0:
                if result is None:
                    result = new_buffer(chunk)
                result.extend(chunk)
        finally:
            if allocator is not None:
                allocator.free(chunk)

    logger.debug(f"Drained {type(source).__name__} in {pulls} pulls")
    return result if result is not None else []


class ChunkStream(Generic[T]):
    """
    Fluent builder over a chunk source.

    Every transformation wraps the current stage and returns a new stream.
    Stages are stateful, so a stream is consumed by the first terminal
    operation and the stream it was derived from must not be reused.
    """

    def __init__(self, source: ChunkSource[T], profiler: Optional[PipelineProfiler] = None):
        """
        Initialize stream.

        Args:
            source: Outermost stage of the pipeline
            profiler: Profiler recording every stage built from this stream
                (defaults to the global profiler when profiling is enabled)
        """
        if not callable(getattr(source, 'next', None)):
            raise TypeError("Source must provide a next() method")
        if profiler is None and config.enable_profiling:
            profiler = global_profiler
        if profiler is not None and not isinstance(source, ProfiledSource):
            source = ProfiledSource(source, profiler=profiler)
        self._source = source
        self._profiler = profiler

    @property
    def source(self) -> ChunkSource[T]:
        return self._source

    @property
    def allocator(self) -> ChunkAllocator:
        return self._source.allocator

    def _then(self, stage: ChunkSource[U]) -> 'ChunkStream[U]':
        return ChunkStream(stage, self._profiler)

    # Transformation operators

    def take(self, n: int) -> 'ChunkStream[T]':
        """Take first n items."""
        return self._then(Take(self._source, n))

    def drop(self, n: int) -> 'ChunkStream[T]':
        """Skip first n items."""
        return self._then(Drop(self._source, n))

    def take_while(self, predicate: Callable[[T], bool]) -> 'ChunkStream[T]':
        return self._then(TakeWhile(self._source, predicate))

    def drop_while(self, predicate: Callable[[T], bool]) -> 'ChunkStream[T]':
        return self._then(DropWhile(self._source, predicate))

    def filter(self, predicate: Callable[[T], bool]) -> 'ChunkStream[T]':
        """Keep only items matching predicate."""
        return self._then(Filter(self._source, predicate))

    def map(self, func: Callable[..., U], pass_allocator: bool = False) -> 'ChunkStream[U]':
        """Apply function to each item."""
        return self._then(Map(self._source, func, pass_allocator))

    def flat_map(self, func: Callable[..., ChunkSource[U]],
                 pass_allocator: bool = False) -> 'ChunkStream[U]':
        """Expand each item into a nested chunk source."""
        return self._then(FlatMap(self._source, func, pass_allocator))

    def collate(self, separator: Sequence[T]) -> 'ChunkStream[Sequence[T]]':
        """Regroup items into records delimited by separator."""
        return self._then(CollateWithSeparator(self._source, separator))

    def join(self) -> 'ChunkStream[Any]':
        """Flatten chunks of sequences into chunks of items."""
        return self._then(Join(self._source))

    def profile(self, name: Optional[str] = None,
                profiler: Optional[PipelineProfiler] = None) -> 'ChunkStream[T]':
        """Record pull statistics for the current stage."""
        stage = ProfiledSource(self._source, name, profiler or self._profiler or global_profiler)
        return ChunkStream(stage, self._profiler)

    # Pull interface

    def next(self) -> Optional[Sequence[T]]:
        return self._source.next()

    def chunks(self) -> Iterator[Sequence[T]]:
        """Iterate over owned chunks; the caller releases each one."""
        return iter(self._source)

    def __iter__(self) -> Iterator[T]:
        """Iterate over items, releasing each chunk once consumed."""
        allocator = self._source.allocator
        for chunk in self._source:
            try:
                yield from chunk
            finally:
                allocator.free(chunk)

    # Terminal operators

    def drain(self) -> Union[list, bytearray]:
        """Concatenate all chunks into one buffer."""
        return drain(self._source)

    def collect(self) -> list:
        """Collect all items into a list."""
        return list(self)

    def count(self) -> int:
        """Count items."""
        total = 0
        for chunk in self._source:
            total += len(chunk)
            self._source.allocator.free(chunk)
        return total

    def first(self) -> Optional[T]:
        """Get first item."""
        items = iter(self)
        try:
            return next(items, None)
        finally:
            items.close()

    def reduce(self, func: Callable[[U, T], U], initial: U) -> U:
        """Reduce stream to single value."""
        result = initial
        for item in self:
            result = func(result, item)
        return result

    def foreach(self, func: Callable[[T], None]) -> None:
        """Apply function to each item."""
        for item in self:
            func(item)

    def close(self) -> None:
        """Release the state held by every stage of the pipeline."""
        self._source.close()

    def __enter__(self) -> 'ChunkStream[T]':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Factory methods

    @classmethod
    def integers(cls, start: int = 0, step: Optional[int] = None,
                 allocator: Optional[ChunkAllocator] = None) -> 'ChunkStream[int]':
        """Unbounded counting stream."""
        return cls(Integers(start, step, allocator))

    @classmethod
    def constant(cls, value: T, step: Optional[int] = None,
                 allocator: Optional[ChunkAllocator] = None) -> 'ChunkStream[T]':
        """Unbounded stream of one value."""
        return cls(Constant(value, step, allocator))

    @classmethod
    def repeat(cls, pattern: Sequence[T],
               allocator: Optional[ChunkAllocator] = None) -> 'ChunkStream[T]':
        """Unbounded stream repeating a fixed pattern."""
        return cls(Repeat(pattern, allocator))

    @classmethod
    def from_reader(cls, channel: Any, capacity: Optional[int] = None,
                    allocator: Optional[ChunkAllocator] = None) -> 'ChunkStream[Any]':
        """Create stream from an object with a read(n) method."""
        return cls(ReaderSource(channel, capacity, allocator))

    @classmethod
    def from_file(cls, path: Union[str, Path], capacity: Optional[int] = None,
                  allocator: Optional[ChunkAllocator] = None) -> 'ChunkStream[int]':
        """Create byte stream from file."""
        return cls(FileSource(path, capacity, allocator))

    @classmethod
    def from_iterable(cls, iterable: Iterable[T], chunk_size: Optional[int] = None,
                      allocator: Optional[ChunkAllocator] = None) -> 'ChunkStream[T]':
        """Create stream from iterable."""
        return cls(IterableSource(iterable, chunk_size, allocator))

    @classmethod
    def from_chunks(cls, chunks: Iterable[Sequence[T]],
                    allocator: Optional[ChunkAllocator] = None) -> 'ChunkStream[T]':
        """Create stream emitting the given chunks as they are."""
        return cls(SequenceSource(chunks, allocator))

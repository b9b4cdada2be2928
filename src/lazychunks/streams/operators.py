"""
Chunk combinators.

Each combinator wraps a source, pulls from it on demand and returns derived
chunks. A chunk taken from the source is either forwarded unchanged (its
ownership passes to the caller) or released once the derived chunk has been
built.
"""

import logging
from enum import Enum
from typing import Any, Callable, Optional, Sequence, TypeVar

from lazychunks.chunks import concat, empty_like, find, is_bytes_like, new_buffer, split
from lazychunks.memory.allocator import AllocationError
from lazychunks.streams.source import ChunkSource

logger = logging.getLogger(__name__)

T = TypeVar('T')
U = TypeVar('U')


class SkipState(Enum):
    """DropWhile latch. The only transition is SKIPPING -> PASSING."""
    SKIPPING = "skipping"
    PASSING = "passing"


class Combinator(ChunkSource[U]):
    """Base class for stages wrapping another source."""

    def __init__(self, source: ChunkSource):
        if not callable(getattr(source, 'next', None)):
            raise TypeError("source must provide a next() method")
        super().__init__(getattr(source, 'allocator', None))
        self.source = source

    def _pull(self) -> Optional[Sequence]:
        chunk = self.source.next()
        if chunk is None:
            self._finish()
        return chunk

    def close(self) -> None:
        super().close()
        close = getattr(self.source, 'close', None)
        if close is not None:
            close()


class Take(Combinator[T]):
    """Pass through the first ``count`` items of the stream."""

    def __init__(self, source: ChunkSource[T], count: int):
        super().__init__(source)
        if count < 0:
            raise ValueError("count must be non-negative")
        self.count = count
        self.taken = 0

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        chunk = self._pull()
        if chunk is None:
            return None

        self.taken += len(chunk)
        if self.taken < self.count:
            return chunk
        self._finish()
        if self.taken == self.count:
            return chunk

        remainder = len(chunk) - (self.taken - self.count)
        try:
            if remainder > 0:
                return self.allocator.slice(chunk, 0, remainder)
            return None
        finally:
            self.allocator.free(chunk)


class Drop(Combinator[T]):
    """Skip the first ``count`` items of the stream."""

    def __init__(self, source: ChunkSource[T], count: int):
        super().__init__(source)
        if count < 0:
            raise ValueError("count must be non-negative")
        self.remaining = count

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        chunk = self._pull()
        if chunk is None:
            return None
        if self.remaining == 0:
            return chunk

        try:
            if len(chunk) <= self.remaining:
                self.remaining -= len(chunk)
                return self.allocator.empty(chunk)
            start, self.remaining = self.remaining, 0
            return self.allocator.slice(chunk, start, len(chunk))
        finally:
            self.allocator.free(chunk)


class TakeWhile(Combinator[T]):
    """Pass items through until the first one failing ``predicate``."""

    def __init__(self, source: ChunkSource[T], predicate: Callable[[T], bool]):
        super().__init__(source)
        self.predicate = predicate

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        chunk = self._pull()
        if chunk is None:
            return None

        count = 0
        for item in chunk:
            if not self.predicate(item):
                break
            count += 1
        else:
            return chunk

        self._finish()
        try:
            return self.allocator.slice(chunk, 0, count)
        finally:
            self.allocator.free(chunk)


class DropWhile(Combinator[T]):
    """
    Skip items while ``predicate`` holds.

    Once an item fails the predicate every later item passes, whether or not
    it satisfies the predicate.
    """

    def __init__(self, source: ChunkSource[T], predicate: Callable[[T], bool]):
        super().__init__(source)
        self.predicate = predicate
        self.skip_state = SkipState.SKIPPING

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        chunk = self._pull()
        if chunk is None:
            return None
        if self.skip_state is SkipState.PASSING:
            return chunk

        try:
            for index, item in enumerate(chunk):
                if not self.predicate(item):
                    logger.debug(f"DropWhile unlocked at chunk offset {index}")
                    self.skip_state = SkipState.PASSING
                    return self.allocator.slice(chunk, index, len(chunk))
            return self.allocator.empty(chunk)
        finally:
            self.allocator.free(chunk)


class Filter(Combinator[T]):
    """Keep items matching ``predicate``; may emit empty chunks."""

    def __init__(self, source: ChunkSource[T], predicate: Callable[[T], bool]):
        super().__init__(source)
        self.predicate = predicate

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        chunk = self._pull()
        if chunk is None:
            return None
        try:
            return self.allocator.alloc(
                (item for item in chunk if self.predicate(item)), like=chunk)
        finally:
            self.allocator.free(chunk)


class Map(Combinator[U]):
    """
    Apply ``transform`` to every item, one output per input.

    With ``pass_allocator`` the transform is called as
    ``transform(allocator, item)`` and may create or release owned values.
    """

    def __init__(self, source: ChunkSource[T], transform: Callable[..., U],
                 pass_allocator: bool = False):
        super().__init__(source)
        self.transform = transform
        self.pass_allocator = pass_allocator

    def next(self) -> Optional[Sequence[U]]:
        if self.exhausted:
            return None
        chunk = self._pull()
        if chunk is None:
            return None
        try:
            if self.pass_allocator:
                mapped = [self.transform(self.allocator, item) for item in chunk]
            else:
                mapped = [self.transform(item) for item in chunk]
            return self.allocator.alloc(mapped)
        finally:
            self.allocator.free(chunk)


class FlatMap(Combinator[U]):
    """
    Expand every item into a nested stream and emit the nested chunks.

    Each nested stream is drained completely before the next item is
    expanded. Moving from one nested stream to the next costs one pull that
    returns an empty chunk.
    """

    def __init__(self, source: ChunkSource[T], expand: Callable[..., ChunkSource[U]],
                 pass_allocator: bool = False):
        super().__init__(source)
        self.expand = expand
        self.pass_allocator = pass_allocator
        self._batch: Optional[Sequence[T]] = None
        self._cursor = 0
        self._inner: Optional[ChunkSource[U]] = None
        self._like: Optional[Sequence] = None

    def next(self) -> Optional[Sequence[U]]:
        if self.exhausted:
            return None

        if self._batch is None:
            chunk = self._pull()
            if chunk is None:
                return None
            if len(chunk) == 0:
                try:
                    return self.allocator.empty(self._like)
                finally:
                    self.allocator.free(chunk)
            self._batch = chunk
            self._cursor = 0

        if self._inner is None:
            item = self._batch[self._cursor]
            if self.pass_allocator:
                self._inner = self.expand(self.allocator, item)
            else:
                self._inner = self.expand(item)

        chunk = self._inner.next()
        if chunk is not None:
            self._like = empty_like(chunk)
            return self._adopt(chunk)

        self._close_inner()
        self._cursor += 1
        if self._cursor >= len(self._batch):
            self.allocator.free(self._batch)
            self._batch = None
        return self.allocator.empty(self._like)

    def _adopt(self, chunk: Sequence[U]) -> Sequence[U]:
        inner_allocator = getattr(self._inner, 'allocator', self.allocator)
        if inner_allocator is self.allocator:
            return chunk
        # Move accounting for chunks built by a foreign allocator
        inner_allocator.free(chunk)
        return self.allocator.track(chunk)

    def _close_inner(self) -> None:
        if self._inner is None:
            return
        close = getattr(self._inner, 'close', None)
        if close is not None:
            close()
        self._inner = None

    def close(self) -> None:
        self._close_inner()
        if self._batch is not None:
            self.allocator.free(self._batch)
            self._batch = None
        super().close()


class CollateWithSeparator(Combinator[Sequence[T]]):
    """
    Reassemble records delimited by ``separator``.

    Each pull returns a batch (list) of complete records. Items after the
    last separator stay buffered until more input arrives; the final
    undelimited record is emitted once when the source ends.
    """

    def __init__(self, source: ChunkSource[T], separator: Sequence[T]):
        super().__init__(source)
        if len(separator) == 0:
            raise ValueError("separator must not be empty")
        self.separator = separator
        self.buffer: Optional[Any] = None
        self._scanned = 0

    def next(self) -> Optional[Sequence[Sequence[T]]]:
        if self.exhausted:
            return None
        chunk = self._pull()
        if chunk is None:
            return self._flush()

        try:
            if not self.buffer:
                self.buffer = new_buffer(chunk)
            self.buffer.extend(chunk)
        finally:
            self.allocator.free(chunk)

        # Matches ending inside the previously scanned region were ruled out
        start = self._scanned - len(self.separator) + 1
        self._scanned = len(self.buffer)
        if find(self.buffer, self.separator, start) < 0:
            return self.allocator.empty()

        parts = split(self.buffer, self.separator)
        tail = parts.pop()
        self.buffer = new_buffer(tail)
        self.buffer.extend(tail)
        self._scanned = len(self.buffer)
        return self._emit(parts)

    def _emit(self, parts) -> Sequence[Sequence[T]]:
        records = []
        try:
            for part in parts:
                records.append(self.allocator.track(part))
            return self.allocator.alloc(records)
        except AllocationError:
            for record in records:
                self.allocator.free(record)
            raise

    def _flush(self) -> Optional[Sequence[Sequence[T]]]:
        buffer, self.buffer = self.buffer, None
        if not buffer:
            return None
        record = bytes(buffer) if is_bytes_like(buffer) else list(buffer)
        return self._emit([record])

    def close(self) -> None:
        self.buffer = None
        super().close()


class Join(Combinator[T]):
    """
    Flatten each batch of sub-sequences into a single chunk.

    Join releases every sub-sequence along with its batch, so the
    sub-sequences must be owned by the stage allocator. Batches from
    ``CollateWithSeparator`` are. A ``Map`` building sub-sequences should
    use ``pass_allocator=True`` and create them with ``allocator.alloc``;
    unowned sub-sequences are skipped by the allocator with a warning.
    """

    def __init__(self, source: ChunkSource[Sequence[Sequence[T]]]):
        super().__init__(source)
        self._like: Optional[Sequence] = None

    def next(self) -> Optional[Sequence[T]]:
        if self.exhausted:
            return None
        batch = self._pull()
        if batch is None:
            return None

        if len(batch) > 0:
            self._like = empty_like(batch[0])
        try:
            flat = concat(batch, like=self._like)
        finally:
            for part in batch:
                self.allocator.free(part)
            self.allocator.free(batch)
        return self.allocator.track(flat)

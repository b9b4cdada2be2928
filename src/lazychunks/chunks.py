"""
Sequence helpers shared by sources and combinators.

A chunk is either a ``list`` or, for byte oriented streams, ``bytes``.
Slicing a chunk always produces a new object of the same kind, so every
split is a copy.
"""

from typing import Any, Iterable, List, Optional, Sequence

BYTES_TYPES = (bytes, bytearray, memoryview)


def is_bytes_like(seq: Any) -> bool:
    return isinstance(seq, BYTES_TYPES)


def materialize(items: Iterable[Any], like: Optional[Sequence] = None) -> Sequence:
    """Build a new chunk from ``items`` of the same kind as ``like``."""
    if is_bytes_like(like):
        return bytes(items)
    return list(items)


def empty_like(like: Optional[Sequence] = None) -> Sequence:
    return b"" if is_bytes_like(like) else []


def new_buffer(like: Sequence):
    """Growable accumulation buffer matching the kind of ``like``."""
    return bytearray() if is_bytes_like(like) else []


def find(haystack: Sequence, needle: Sequence, start: int = 0) -> int:
    """Index of the first occurrence of ``needle`` at or after ``start``, or -1."""
    start = max(0, start)
    if is_bytes_like(haystack):
        return haystack.find(bytes(needle), start)

    width = len(needle)
    if width == 0:
        return start if start <= len(haystack) else -1
    first = needle[0]
    last_start = len(haystack) - width
    i = start
    while i <= last_start:
        if haystack[i] == first and list(haystack[i:i + width]) == list(needle):
            return i
        i += 1
    return -1


def split(buffer: Sequence, separator: Sequence) -> List[Sequence]:
    """Split ``buffer`` on every occurrence of ``separator``.

    Always returns at least one part; consecutive separators yield empty
    parts. Parts are ``bytes`` for byte buffers and lists otherwise.
    """
    if is_bytes_like(buffer):
        return bytes(buffer).split(bytes(separator))

    parts = []
    width = len(separator)
    pos = 0
    while True:
        idx = find(buffer, separator, pos)
        if idx < 0:
            parts.append(list(buffer[pos:]))
            return parts
        parts.append(list(buffer[pos:idx]))
        pos = idx + width


def concat(parts: Iterable[Sequence], like: Optional[Sequence] = None) -> Sequence:
    """Concatenate ``parts`` into one flat chunk.

    The result is ``bytes`` when ``like`` or the first part is bytes-like.
    """
    parts = list(parts)
    template = like if like is not None else (parts[0] if parts else None)
    if is_bytes_like(template):
        return b"".join(bytes(part) for part in parts)
    result: List[Any] = []
    for part in parts:
        result.extend(part)
    return result

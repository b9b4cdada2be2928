"""Chunked, pull-based stream stages."""

from lazychunks.streams.source import (
    ChunkSource,
    StageState,
    Integers,
    Constant,
    Repeat,
    ReaderSource,
    FileSource,
    IterableSource,
    SequenceSource,
)
from lazychunks.streams.operators import (
    Combinator,
    SkipState,
    Take,
    Drop,
    TakeWhile,
    DropWhile,
    Filter,
    Map,
    FlatMap,
    CollateWithSeparator,
    Join,
)
from lazychunks.streams.stream import ChunkStream, drain

__all__ = [
    "ChunkSource",
    "StageState",
    "Integers",
    "Constant",
    "Repeat",
    "ReaderSource",
    "FileSource",
    "IterableSource",
    "SequenceSource",
    "Combinator",
    "SkipState",
    "Take",
    "Drop",
    "TakeWhile",
    "DropWhile",
    "Filter",
    "Map",
    "FlatMap",
    "CollateWithSeparator",
    "Join",
    "ChunkStream",
    "drain",
]

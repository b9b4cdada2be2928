"""
lazychunks: composable, pull-based stream transformers over chunks.

Pipelines are built from a leaf source wrapped by combinators (take, drop,
filter, map, flat_map, collate, join) and consumed by pulling the outermost
stage until it signals the end of the stream. Every chunk has exactly one
owner, tracked by a ``ChunkAllocator``.
"""

from lazychunks.config import ChunkConfig, ChunkStrategy
from lazychunks.memory import (
    AllocationError,
    ChunkAllocator,
    MemoryMonitor,
    MemoryPressureLevel,
    default_allocator,
)
from lazychunks.streams import (
    ChunkSource,
    ChunkStream,
    Integers,
    Constant,
    Repeat,
    ReaderSource,
    FileSource,
    IterableSource,
    SequenceSource,
    Take,
    Drop,
    TakeWhile,
    DropWhile,
    Filter,
    Map,
    FlatMap,
    CollateWithSeparator,
    Join,
    drain,
)
from lazychunks.profiler import PipelineProfiler

__version__ = "0.1.0"
__license__ = "Apache-2.0"

__all__ = [
    "ChunkConfig",
    "ChunkStrategy",
    "AllocationError",
    "ChunkAllocator",
    "MemoryMonitor",
    "MemoryPressureLevel",
    "default_allocator",
    "ChunkSource",
    "ChunkStream",
    "Integers",
    "Constant",
    "Repeat",
    "ReaderSource",
    "FileSource",
    "IterableSource",
    "SequenceSource",
    "Take",
    "Drop",
    "TakeWhile",
    "DropWhile",
    "Filter",
    "Map",
    "FlatMap",
    "CollateWithSeparator",
    "Join",
    "drain",
    "PipelineProfiler",
]

# Configure default settings
ChunkConfig.set_defaults()

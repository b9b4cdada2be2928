"""Chunk allocation, memory monitoring and pressure handling."""

from lazychunks.memory.monitor import (
    MemoryMonitor,
    MemoryPressureLevel,
    MemoryInfo,
    MemoryPressureHandler,
    monitor,
)
from lazychunks.memory.handlers import LoggingHandler
from lazychunks.memory.allocator import (
    AllocationError,
    ChunkAllocator,
    default_allocator,
    reset_default_allocator,
)

__all__ = [
    "MemoryMonitor",
    "MemoryPressureLevel",
    "MemoryInfo",
    "MemoryPressureHandler",
    "LoggingHandler",
    "AllocationError",
    "ChunkAllocator",
    "default_allocator",
    "reset_default_allocator",
    "monitor",
]

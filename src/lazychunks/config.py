"""
Configuration management for chunked stream pipelines.
"""

import math
from typing import Optional, Union
from dataclasses import dataclass, field
from enum import Enum
import psutil


class ChunkStrategy(Enum):
    """Strategy for determining chunk sizes of leaf sources."""
    FIXED = "fixed"
    SQRT_N = "sqrt_n"
    MEMORY_BASED = "memory_based"


@dataclass
class ChunkConfig:
    """Global configuration for chunked streams."""

    # Chunking
    default_chunk_size: int = 8
    read_capacity: int = 1024
    chunk_strategy: ChunkStrategy = ChunkStrategy.FIXED
    min_chunk_size: int = 1
    max_chunk_size: int = 1_000_000

    # Memory limits
    memory_limit: int = field(default_factory=lambda: int(psutil.virtual_memory().total * 0.8))
    memory_guard: bool = False  # Refuse allocations under critical pressure
    allocation_limit: Optional[int] = None  # Max items outstanding in the default allocator

    # Performance
    enable_profiling: bool = False

    _instance: Optional['ChunkConfig'] = None

    @classmethod
    def get_instance(cls) -> 'ChunkConfig':
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def set_defaults(cls, **kwargs) -> None:
        """Set default configuration values."""
        instance = cls.get_instance()
        for key, value in kwargs.items():
            if key == 'chunk_strategy' and isinstance(value, str):
                value = ChunkStrategy(value)
            if hasattr(instance, key):
                setattr(instance, key, value)

    def calculate_chunk_size(self, total_size: Optional[int] = None) -> int:
        """Calculate chunk size based on strategy.

        ``total_size`` is the stream length when known up front.
        """
        if self.chunk_strategy == ChunkStrategy.FIXED:
            return self.default_chunk_size

        elif self.chunk_strategy == ChunkStrategy.SQRT_N:
            if not total_size:
                return self.default_chunk_size
            sqrt_n = int(math.sqrt(total_size))
            return self._clamp(sqrt_n)

        elif self.chunk_strategy == ChunkStrategy.MEMORY_BASED:
            available = min(psutil.virtual_memory().available, self.memory_limit)
            # Use 1% of available memory per chunk, 8 bytes per item
            return self._clamp(int(available * 0.01 / 8))

        return self.default_chunk_size

    def _clamp(self, size: int) -> int:
        return max(self.min_chunk_size, min(size, self.max_chunk_size))

    def format_bytes(self, size: Union[int, float]) -> str:
        """Format a byte count as human-readable string."""
        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if size < 1024.0:
                return f"{size:.2f} {unit}"
            size /= 1024.0
        return f"{size:.2f} PB"


# Global configuration instance
config = ChunkConfig.get_instance()

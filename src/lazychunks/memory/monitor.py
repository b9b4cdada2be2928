"""Memory monitoring and pressure detection."""

import time
import logging
import psutil
from enum import Enum
from typing import List, Optional
from dataclasses import dataclass
from abc import ABC, abstractmethod

from lazychunks.config import config

logger = logging.getLogger(__name__)


class MemoryPressureLevel(Enum):
    """Memory pressure levels."""
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __gt__(self, other):
        if not isinstance(other, MemoryPressureLevel):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other):
        if not isinstance(other, MemoryPressureLevel):
            return NotImplemented
        return self.value >= other.value


@dataclass
class MemoryInfo:
    """Memory usage information."""
    total: int
    available: int
    used: int
    percent: float
    pressure_level: MemoryPressureLevel
    timestamp: float

    def __str__(self) -> str:
        return (f"Memory: {self.percent:.1f}% used "
                f"({config.format_bytes(self.used)} used, "
                f"{config.format_bytes(self.available)} available), "
                f"Pressure: {self.pressure_level.name}")


def pressure_for(percent: float) -> MemoryPressureLevel:
    """Map a usage percentage to a pressure level."""
    if percent >= 95:
        return MemoryPressureLevel.CRITICAL
    elif percent >= 85:
        return MemoryPressureLevel.HIGH
    elif percent >= 70:
        return MemoryPressureLevel.MEDIUM
    elif percent >= 50:
        return MemoryPressureLevel.LOW
    return MemoryPressureLevel.NONE


class MemoryPressureHandler(ABC):
    """Abstract base class for memory pressure handlers."""

    @abstractmethod
    def can_handle(self, level: MemoryPressureLevel, info: MemoryInfo) -> bool:
        """Check if this handler should handle the given pressure level."""
        pass

    @abstractmethod
    def handle(self, level: MemoryPressureLevel, info: MemoryInfo) -> None:
        """Handle memory pressure."""
        pass


class MemoryMonitor:
    """Sample system memory and classify pressure.

    Checks are synchronous and rate limited by ``check_interval``; between
    checks the last observed level is reported.
    """

    def __init__(self,
                 check_interval: float = 1.0,
                 memory_limit: Optional[int] = None):
        """
        Initialize memory monitor.

        Args:
            check_interval: Seconds between checks
            memory_limit: Custom memory limit in bytes (None for configured limit)
        """
        self.check_interval = check_interval
        self.memory_limit = memory_limit or config.memory_limit
        self.handlers: List[MemoryPressureHandler] = []
        self._last_check = 0.0
        self._last_level = MemoryPressureLevel.NONE
        logger.debug(f"Memory monitor limit: {config.format_bytes(self.memory_limit)}")

    def add_handler(self, handler: MemoryPressureHandler) -> None:
        """Add a memory pressure handler."""
        self.handlers.append(handler)

    def remove_handler(self, handler: MemoryPressureHandler) -> None:
        """Remove a memory pressure handler."""
        if handler in self.handlers:
            self.handlers.remove(handler)

    def get_memory_info(self) -> MemoryInfo:
        """Get current memory information."""
        mem = psutil.virtual_memory()

        # Use configured limit if lower than system memory
        total = min(mem.total, self.memory_limit)
        used = mem.used
        available = max(0, total - used)
        percent = (used / total) * 100 if total else 100.0

        return MemoryInfo(
            total=total,
            available=available,
            used=used,
            percent=percent,
            pressure_level=pressure_for(percent),
            timestamp=time.time()
        )

    def check_memory_pressure(self) -> MemoryPressureLevel:
        """Check current memory pressure and notify handlers."""
        info = self.get_memory_info()

        for handler in self.handlers:
            if handler.can_handle(info.pressure_level, info):
                handler.handle(info.pressure_level, info)

        self._last_check = time.time()
        self._last_level = info.pressure_level
        logger.debug(str(info))
        return info.pressure_level

    def should_check(self) -> bool:
        """Check if enough time has passed for next check."""
        return time.time() - self._last_check >= self.check_interval

    def current_level(self) -> MemoryPressureLevel:
        """Pressure level, re-sampled only when the interval has elapsed."""
        if self.should_check():
            return self.check_memory_pressure()
        return self._last_level


# Global monitor instance
monitor = MemoryMonitor()

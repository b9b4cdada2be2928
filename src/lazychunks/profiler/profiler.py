"""
Pipeline profiler: per-stage pull statistics.

Features:
- Chunk size distribution per stage
- Pull latency per stage
- Empty chunk ratio (stages that spin without producing)
"""

import json
import time
import logging
import numpy as np
from collections import defaultdict, deque
from dataclasses import dataclass, asdict
from typing import Any, Deque, Dict, List, Optional, Sequence

from lazychunks.streams.operators import Combinator
from lazychunks.streams.source import ChunkSource

logger = logging.getLogger(__name__)


@dataclass
class StageReport:
    """Statistics for a single stage."""
    name: str
    pulls: int
    items: int
    empty_chunks: int
    terminal_pulls: int
    mean_chunk: float
    p95_chunk: float
    mean_latency: float
    p95_latency: float
    total_time: float

    @property
    def empty_ratio(self) -> float:
        productive = self.pulls - self.terminal_pulls
        return self.empty_chunks / productive if productive else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary."""
        data = asdict(self)
        data['empty_ratio'] = self.empty_ratio
        return data

    def __str__(self) -> str:
        return (f"{self.name}: {self.pulls} pulls, {self.items} items, "
                f"{self.empty_chunks} empty, chunk mean {self.mean_chunk:.1f} "
                f"p95 {self.p95_chunk:.1f}, latency mean {self.mean_latency * 1e6:.1f}us "
                f"p95 {self.p95_latency * 1e6:.1f}us")


class _StageSamples:
    def __init__(self, max_samples: int):
        self.lengths: Deque[int] = deque(maxlen=max_samples)
        self.latencies: Deque[float] = deque(maxlen=max_samples)
        self.pulls = 0
        self.items = 0
        self.empty_chunks = 0
        self.terminal_pulls = 0
        self.total_time = 0.0


class PipelineProfiler:
    """Collects pull statistics from ``ProfiledSource`` stages."""

    def __init__(self, max_samples: int = 100000):
        self.max_samples = max_samples
        self._stages: Dict[str, _StageSamples] = {}
        self._order: List[str] = []
        self._name_counts: Dict[str, int] = defaultdict(int)

    def register(self, name: str) -> str:
        """Register a stage and return the unique name it is recorded under."""
        self._name_counts[name] += 1
        if self._name_counts[name] > 1:
            name = f"{name}#{self._name_counts[name]}"
        self._stages[name] = _StageSamples(self.max_samples)
        self._order.append(name)
        return name

    def record(self, name: str, length: Optional[int], elapsed: float) -> None:
        """Record one pull. ``length`` is None for the terminal signal."""
        samples = self._stages[name]
        samples.pulls += 1
        samples.total_time += elapsed
        samples.latencies.append(elapsed)
        if length is None:
            samples.terminal_pulls += 1
            return
        samples.items += length
        samples.lengths.append(length)
        if length == 0:
            samples.empty_chunks += 1

    def report(self, name: str) -> StageReport:
        """Build the report for one stage."""
        samples = self._stages[name]
        lengths = np.asarray(samples.lengths, dtype=float)
        latencies = np.asarray(samples.latencies, dtype=float)

        return StageReport(
            name=name,
            pulls=samples.pulls,
            items=samples.items,
            empty_chunks=samples.empty_chunks,
            terminal_pulls=samples.terminal_pulls,
            mean_chunk=float(np.mean(lengths)) if lengths.size else 0.0,
            p95_chunk=float(np.percentile(lengths, 95)) if lengths.size else 0.0,
            mean_latency=float(np.mean(latencies)) if latencies.size else 0.0,
            p95_latency=float(np.percentile(latencies, 95)) if latencies.size else 0.0,
            total_time=samples.total_time,
        )

    def reports(self) -> List[StageReport]:
        """Reports for all stages, in registration order."""
        return [self.report(name) for name in self._order]

    def summary(self) -> str:
        """Human readable summary of all stages."""
        lines = ["Pipeline profile"]
        for report in self.reports():
            lines.append(f"  {report}")
            if report.empty_ratio > 0.5:
                lines.append(f"    mostly empty chunks ({report.empty_ratio:.0%}); "
                             f"consider larger upstream chunks")
        return "\n".join(lines)

    def save(self, path: str) -> None:
        """Save reports to a JSON file."""
        with open(path, 'w') as f:
            json.dump([r.to_dict() for r in self.reports()], f, indent=2)
        logger.debug(f"Saved profile of {len(self._order)} stages to {path}")

    def reset(self) -> None:
        self._stages.clear()
        self._order.clear()
        self._name_counts.clear()


class ProfiledSource(Combinator[Any]):
    """Transparent stage recording every pull of ``source``."""

    def __init__(self, source: ChunkSource, name: Optional[str] = None,
                 profiler: Optional[PipelineProfiler] = None):
        super().__init__(source)
        self.profiler = profiler or global_profiler
        self.name = self.profiler.register(name or type(source).__name__)

    def next(self) -> Optional[Sequence]:
        if self.exhausted:
            return None
        start = time.perf_counter()
        chunk = self._pull()
        elapsed = time.perf_counter() - start
        self.profiler.record(self.name, None if chunk is None else len(chunk), elapsed)
        return chunk


# Global profiler instance
global_profiler = PipelineProfiler()

"""Pull statistics for chunked pipelines."""

from lazychunks.profiler.profiler import (
    PipelineProfiler,
    ProfiledSource,
    StageReport,
    global_profiler,
)

__all__ = [
    "PipelineProfiler",
    "ProfiledSource",
    "StageReport",
    "global_profiler",
]

#!/usr/bin/env python3
"""
Basic usage examples for lazychunks.
"""

import io
import logging

from lazychunks import (
    ChunkAllocator,
    ChunkStream,
    CollateWithSeparator,
    Filter,
    Integers,
    Map,
    ReaderSource,
    Take,
    drain,
)
from lazychunks.profiler import PipelineProfiler


def example_bounded_pipeline():
    """Example: bound an unbounded counting stream."""
    print("\n=== Bounded Pipeline Example ===")

    allocator = ChunkAllocator()
    multiples = Filter(Integers(0, 8, allocator), lambda n: n % 3 == 0)
    result = drain(Take(multiples, 10))

    print(f"First ten multiples of three: {result}")
    print(f"Chunks still outstanding: {allocator.outstanding}")


def example_fluent_stream():
    """Example: the same kind of pipeline, built fluently."""
    print("\n=== Fluent Stream Example ===")

    result = (ChunkStream.integers()
              .filter(lambda n: n % 3 == 0)
              .drop_while(lambda n: n < 25)
              .take_while(lambda n: n < 50)
              .map(lambda n: n * -2)
              .collect())
    print(f"Result: {result}")


def example_staircase():
    """Example: expand each item into a nested stream."""
    print("\n=== FlatMap Example ===")

    stream = ChunkStream.integers().take(5).flat_map(
        lambda allocator, k: Take(Integers(0, 8, allocator), k), pass_allocator=True)
    print(f"Staircase: {stream.collect()}")


def example_records():
    """Example: split a byte channel into records and measure them."""
    print("\n=== Record Reassembly Example ===")

    data = io.BytesIO(b"GET /index.html\nGET /about\n\nPOST /form")
    allocator = ChunkAllocator()
    lines = CollateWithSeparator(ReaderSource(data, capacity=8, allocator=allocator), b"\n")

    def record_length(allocator, record):
        allocator.free(record)
        return len(record)

    lengths = drain(Map(lines, record_length, pass_allocator=True))
    print(f"Record lengths: {lengths}")
    print(f"Allocator: {allocator}")


def example_profiling():
    """Example: see where a pipeline spends its pulls."""
    print("\n=== Profiling Example ===")

    profiler = PipelineProfiler()
    stream = ChunkStream(Integers(0, 64), profiler=profiler)
    stream.filter(lambda n: n % 97 == 0).take(20).drain()
    print(profiler.summary())


def main():
    """Run all examples."""
    logging.basicConfig(level=logging.INFO)
    print("lazychunks Examples")
    print("=" * 50)

    example_bounded_pipeline()
    example_fluent_stream()
    example_staircase()
    example_records()
    example_profiling()

    print("\n" + "=" * 50)
    print("All examples completed!")


if __name__ == "__main__":
    main()

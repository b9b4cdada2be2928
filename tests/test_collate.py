#!/usr/bin/env python3
"""
Tests for CollateWithSeparator, Join and drain.
"""

import io
import os
import shutil
import tempfile
import unittest

from lazychunks import ChunkAllocator, AllocationError
from lazychunks.streams import (
    Integers, ReaderSource, FileSource, SequenceSource, CollateWithSeparator, Join, Map, drain
)

from support import OnceSource


class FlakyAllocator(ChunkAllocator):
    """Allocator that fails on the n-th call to track()."""

    def __init__(self, fail_on_track):
        super().__init__()
        self.fail_on_track = fail_on_track
        self.track_calls = 0

    def track(self, chunk):
        self.track_calls += 1
        if self.track_calls == self.fail_on_track:
            raise AllocationError("injected failure")
        return super().track(chunk)


class TestCollateWithSeparator(unittest.TestCase):
    """Test record reassembly across chunk boundaries."""

    def setUp(self):
        self.allocator = ChunkAllocator()

    def collate(self, chunks, separator):
        return CollateWithSeparator(OnceSource(chunks, self.allocator), separator)

    def test_records_across_chunks(self):
        collate = self.collate([b"ab\nc", b"d\n\nef"], b"\n")
        self.assertEqual(collate.next(), [b"ab"])
        self.assertEqual(collate.next(), [b"cd", b""])
        self.assertEqual(collate.next(), [b"ef"])
        self.assertIsNone(collate.next())
        self.assertIsNone(collate.next())

    def test_separator_split_between_chunks(self):
        """A separator spanning two chunks is still found."""
        collate = self.collate([b"a-", b"-b-", b"-c"], b"--")
        self.assertEqual(drain(collate), [b"a", b"b", b"c"])

    def test_no_separator_emits_final_record_once(self):
        collate = self.collate([b"abc", b"def"], b"\n")
        self.assertEqual(collate.next(), [])
        self.assertEqual(collate.next(), [])
        self.assertEqual(collate.next(), [b"abcdef"])
        self.assertIsNone(collate.next())

    def test_trailing_separator_has_no_empty_tail(self):
        collate = self.collate([b"a\n"], b"\n")
        self.assertEqual(collate.next(), [b"a"])
        self.assertIsNone(collate.next())

    def test_consecutive_separators_keep_empty_records(self):
        collate = self.collate([b"x\n\n\ny"], b"\n")
        self.assertEqual(drain(collate), [b"x", b"", b"", b"y"])

    def test_leading_empty_chunk_keeps_bytes(self):
        collate = self.collate([b"", b"a\nb"], b"\n")
        self.assertEqual(collate.next(), [])
        self.assertEqual(collate.next(), [b"a"])
        self.assertEqual(collate.next(), [b"b"])

    def test_empty_source(self):
        collate = self.collate([], b"\n")
        self.assertIsNone(collate.next())

    def test_list_items_with_multi_item_separator(self):
        collate = self.collate([[1, 0, 0, 2], [0], [0, 3]], [0, 0])
        self.assertEqual(collate.next(), [[1]])
        self.assertEqual(collate.next(), [])
        self.assertEqual(collate.next(), [[2]])
        self.assertEqual(collate.next(), [[3]])
        self.assertIsNone(collate.next())

    def test_empty_separator_rejected(self):
        with self.assertRaises(ValueError):
            self.collate([b"abc"], b"")

    def test_close_discards_buffer(self):
        collate = self.collate([b"partial", b"more\n"], b"\n")
        self.assertEqual(collate.next(), [])
        collate.close()
        self.assertIsNone(collate.buffer)
        self.assertIsNone(collate.next())

    def test_records_are_released_by_consumer(self):
        collate = self.collate([b"one\ntwo\nthree"], b"\n")
        records = drain(collate)
        self.assertEqual(records, [b"one", b"two", b"three"])
        for record in records:
            self.allocator.free(record)
        self.assertEqual(self.allocator.outstanding, 0)

    def test_failed_batch_releases_built_records(self):
        """Records built before an allocation failure are released."""
        allocator = FlakyAllocator(fail_on_track=2)
        collate = CollateWithSeparator(SequenceSource([b"a\nb\nc"], allocator), b"\n")
        with self.assertRaises(AllocationError):
            collate.next()
        self.assertEqual(allocator.outstanding, 0)


class TestJoin(unittest.TestCase):
    """Test flattening of record batches."""

    def setUp(self):
        self.allocator = ChunkAllocator()

    def test_join_concatenates_in_order(self):
        def first_n(allocator, n):
            return allocator.alloc(range(1, n + 1))

        parts = Map(OnceSource([[2, 0, 1], [], [3]], self.allocator), first_n, pass_allocator=True)
        join = Join(parts)
        self.assertEqual(join.next(), [1, 2, 1])
        self.assertEqual(join.next(), [])
        self.assertEqual(join.next(), [1, 2, 3])
        self.assertIsNone(join.next())
        self.assertIsNone(join.next())

    def test_join_over_owned_map_releases_everything(self):
        def pair(allocator, n):
            return allocator.alloc([n, n])

        join = Join(Map(SequenceSource([[1, 2, 3]], self.allocator), pair, pass_allocator=True))
        self.assertEqual(drain(join), [1, 1, 2, 2, 3, 3])
        self.assertEqual(self.allocator.outstanding, 0)
        self.assertEqual(self.allocator.rejected_frees, 0)

    def test_unowned_parts_never_drive_outstanding_negative(self):
        """Sub-sequences built outside the allocator are not released."""
        join = Join(Map(SequenceSource([[1, 2, 3]], self.allocator), lambda n: [n, n]))
        with self.assertLogs("lazychunks.memory.allocator", level="WARNING"):
            self.assertEqual(drain(join), [1, 1, 2, 2, 3, 3])
        self.assertEqual(self.allocator.outstanding, 0)
        self.assertEqual(self.allocator.rejected_frees, 3)

    def test_limit_holds_with_unowned_parts(self):
        allocator = ChunkAllocator(limit=4)
        join = Join(Map(Integers(0, 2, allocator), lambda n: [n, n]))
        with self.assertLogs("lazychunks.memory.allocator", level="WARNING"):
            for start in range(0, 10, 2):
                chunk = join.next()
                self.assertEqual(chunk, [start, start, start + 1, start + 1])
                allocator.free(chunk)
                self.assertEqual(allocator.outstanding, 0)
            held = join.next()
            with self.assertRaises(AllocationError):
                join.next()
        self.assertEqual(allocator.outstanding, len(held))

    def test_join_of_collate_stays_finished(self):
        join = Join(CollateWithSeparator(OnceSource([b"a\nb", b"c"], self.allocator), b"\n"))
        self.assertEqual(join.next(), b"a")
        self.assertEqual(join.next(), b"")
        self.assertEqual(join.next(), b"bc")
        self.assertIsNone(join.next())
        self.assertIsNone(join.next())

    def test_join_of_collate_round_trip(self):
        """Joining collated records gives the input without separators."""
        data = b"line one\nline two\n\nlast"
        reader = ReaderSource(io.BytesIO(data), capacity=3, allocator=self.allocator)
        join = Join(CollateWithSeparator(reader, b"\n"))
        self.assertEqual(bytes(drain(join)), data.replace(b"\n", b""))
        self.assertEqual(self.allocator.outstanding, 0)

    def test_join_keeps_bytes_after_empty_batch(self):
        collate = CollateWithSeparator(SequenceSource([b"ab\n", b"c", b"d\n"], self.allocator), b"\n")
        join = Join(collate)
        self.assertEqual(join.next(), b"ab")
        self.assertEqual(join.next(), b"")
        self.assertEqual(join.next(), b"cd")


class TestDrain(unittest.TestCase):
    """Test draining pipelines into one buffer."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.allocator = ChunkAllocator()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_drain_skips_empty_chunks(self):
        source = SequenceSource([[], [1, 2], [], [3]], self.allocator)
        self.assertEqual(drain(source), [1, 2, 3])
        self.assertEqual(self.allocator.outstanding, 0)

    def test_drain_bytes_into_bytearray(self):
        result = drain(SequenceSource([b"ab", b"", b"c"], self.allocator))
        self.assertIsInstance(result, bytearray)
        self.assertEqual(result, b"abc")

    def test_drain_empty_stream(self):
        self.assertEqual(drain(SequenceSource([], self.allocator)), [])

    def test_line_lengths_of_file(self):
        """Collate a file into lines and map each line to its length."""
        path = os.path.join(self.temp_dir, "source.txt")
        with open(path, 'wb') as f:
            f.write(b"const std = @import(\"std\");\n\nfirst line\nlast")

        def record_length(allocator, record):
            allocator.free(record)
            return len(record)

        lines = CollateWithSeparator(FileSource(path, capacity=7, allocator=self.allocator), b"\n")
        lengths = drain(Map(lines, record_length, pass_allocator=True))
        self.assertEqual(lengths, [27, 0, 10, 4])
        self.assertEqual(self.allocator.outstanding, 0)


if __name__ == "__main__":
    unittest.main()

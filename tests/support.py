"""
Shared test sources.
"""

from lazychunks.streams import ChunkSource


class OnceSource(ChunkSource):
    """Source that fails if it is pulled again after signalling the end."""

    def __init__(self, chunks, allocator=None):
        super().__init__(allocator)
        self.chunks = list(chunks)
        self.ended = False

    def next(self):
        if self.ended:
            raise AssertionError("source pulled after exhaustion")
        if not self.chunks:
            self.ended = True
            return None
        return self.allocator.dupe(self.chunks.pop(0))

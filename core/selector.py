"""
Bounded min-heap keeping the K most frequent records of a stream.
"""
from __future__ import annotations

import heapq
import itertools
from typing import Iterable, List, NamedTuple, Optional

from core.records import FrequencyRecord


class HeapNode(NamedTuple):
    count: int
    # Negated arrival index: among equal counts the latest arrival is the minimum.
    rank: int
    item: str


class TopKSelector:
    """Keep the ``capacity`` largest-count records seen so far.

    Once full, a record is admitted only if its count is strictly greater than
    the current minimum, so at the boundary the earliest of equally frequent
    records wins.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._heap: List[HeapNode] = []
        self._arrivals = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def minimum(self) -> Optional[FrequencyRecord]:
        if not self._heap:
            return None
        node = self._heap[0]
        return FrequencyRecord(node.item, node.count)

    def offer(self, record: FrequencyRecord) -> bool:
        """Consider ``record``; return True if it was admitted."""
        node = HeapNode(record.count, -next(self._arrivals), record.item)
        if len(self._heap) < self.capacity:
            heapq.heappush(self._heap, node)
            return True
        if record.count > self._heap[0].count:
            heapq.heapreplace(self._heap, node)
            return True
        return False

    def consume(self, records: Iterable[FrequencyRecord]) -> "TopKSelector":
        for record in records:
            self.offer(record)
        return self

    def results(self) -> List[FrequencyRecord]:
        """Retained records, most frequent first, ties in arrival order."""
        return [FrequencyRecord(node.item, node.count) for node in heapq.nlargest(len(self._heap), self._heap)]

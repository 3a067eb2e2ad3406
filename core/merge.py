"""
K-way merge of sorted partition files with coalescing of equal items.
"""
from __future__ import annotations

import heapq
import itertools
import logging
from typing import Iterable, Iterator, List, NamedTuple, Optional

from core.errors import PathLike, TopKError, UnsortedPartitionError
from core.partitions import PartitionCursor
from core.records import FrequencyRecord

logger = logging.getLogger("core.merge")


class MergeEntry(NamedTuple):
    """Heap entry ordering a cursor by its current item.

    ``order`` is unique per push so ties on ``item`` never compare cursors.
    """

    item: str
    order: int
    cursor: PartitionCursor


def merge_cursors(cursors: Iterable[PartitionCursor], strict: bool = False) -> Iterator[FrequencyRecord]:
    """Merge sorted cursors into one sorted stream with one record per item.

    Each item's count is the sum of its counts over every cursor. Correctness
    depends on every cursor being sorted; an out-of-order record is logged
    once and merged as is, which can repeat an item in the output, unless
    ``strict`` is set, in which case UnsortedPartitionError is raised.

    Cursors are closed as they run out, and all of them are closed when the
    generator finishes, fails or is closed early.
    """
    live = list(cursors)
    order = itertools.count()
    heap: List[MergeEntry] = []
    try:
        for cursor in live:
            if cursor.is_empty():
                cursor.close()
            else:
                heap.append(MergeEntry(cursor.peek().item, next(order), cursor))
        heapq.heapify(heap)

        pending: Optional[FrequencyRecord] = None
        warned = False
        while heap:
            cursor = heapq.heappop(heap).cursor
            record = cursor.peek()
            if pending is not None and record.item == pending.item:
                pending = FrequencyRecord(pending.item, pending.count + record.count)
            else:
                if pending is not None:
                    if record.item < pending.item:
                        if strict:
                            raise UnsortedPartitionError(cursor.path, record.item, pending.item)
                        if not warned:
                            logger.warning(
                                f"Partition {cursor.path.name} is out of order at {record.item!r}; "
                                "merged output may repeat items"
                            )
                            warned = True
                    yield pending
                pending = record

            cursor.advance()
            if cursor.is_empty():
                cursor.close()
            else:
                heapq.heappush(heap, MergeEntry(cursor.peek().item, next(order), cursor))

        if pending is not None:
            yield pending
    finally:
        for cursor in live:
            cursor.close()


def merge_partitions(paths: Iterable[PathLike], strict: bool = False) -> Iterator[FrequencyRecord]:
    """Open one cursor per partition file and merge them."""
    cursors: List[PartitionCursor] = []
    try:
        for path in paths:
            cursors.append(PartitionCursor(path))
    except TopKError:
        for cursor in cursors:
            cursor.close()
        raise
    logger.info(f"Merging {len(cursors)} partition(s)")
    return merge_cursors(cursors, strict=strict)

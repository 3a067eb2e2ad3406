"""
Bounded in-memory frequency table that spills to partition files.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from core.partitions import PartitionWriter

logger = logging.getLogger("core.accumulator")

DEFAULT_MAX_RECORDS = 500


class FrequencyAccumulator:
    """Count item occurrences, flushing to disk when the table grows too large.

    The threshold is soft: a flush happens only when a *new* item arrives while
    the table already holds more than ``max_records`` items, so the table can
    reach ``max_records + 1`` entries. Items already present are always
    incremented in place.
    """

    def __init__(self, writer: PartitionWriter, max_records: int = DEFAULT_MAX_RECORDS):
        if max_records < 1:
            raise ValueError(f"max_records must be positive, got {max_records}")
        self.writer = writer
        self.max_records = max_records
        self.partitions: List[Path] = []
        self.items_observed = 0
        self._counts: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._counts)

    def __contains__(self, item: str) -> bool:
        return item in self._counts

    def count(self, item: str) -> int:
        return self._counts.get(item, 0)

    def observe(self, item: str) -> None:
        self.items_observed += 1
        if item in self._counts:
            self._counts[item] += 1
            return
        if len(self._counts) > self.max_records:
            self.flush()
        self._counts[item] = 1

    def observe_many(self, items: Iterable[str]) -> None:
        for item in items:
            self.observe(item)

    def flush(self) -> Optional[Path]:
        """Write the table to a new partition and clear it. No-op when empty."""
        if not self._counts:
            return None
        path = self.writer.write(self._counts)
        self._counts.clear()
        self.partitions.append(path)
        return path

    def finish(self) -> List[Path]:
        """Flush whatever remains and return every partition written."""
        self.flush()
        logger.info(
            f"Accumulated {self.items_observed:,} items into {len(self.partitions)} partition(s)"
        )
        return list(self.partitions)

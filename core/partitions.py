"""
Partition files: sorted, flushed snapshots of partial frequency counts.

PartitionWriter turns an in-memory count table into a new sorted file and
PartitionCursor reads one such file back lazily, one record at a time.
"""
from __future__ import annotations

import itertools
import logging
import os
import time
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, TextIO

from core.errors import MalformedPartitionRecordError, PartitionIOError, PathLike
from core.records import FrequencyRecord, format_record, parse_record

logger = logging.getLogger("core.partitions")

PARTITION_PREFIX = "dump"
MERGE_PREFIX = "merge"


class PartitionWriter:
    """Writes count tables to new partition files inside one directory.

    File names combine the wall clock in milliseconds, the process id and a
    per-writer sequence number, so two runs sharing a directory never collide
    and files from one writer sort in creation order.
    """

    def __init__(self, directory: PathLike, prefix: str = PARTITION_PREFIX):
        self.directory = Path(directory)
        self.prefix = prefix
        self._sequence = itertools.count()
        self.written: List[Path] = []

    def next_path(self) -> Path:
        millis = int(time.time() * 1000)
        seq = next(self._sequence)
        return self.directory / f"{self.prefix}-{millis}-{os.getpid()}-{seq:06d}"

    def write(self, counts: Dict[str, int]) -> Path:
        """Write ``counts`` in ascending item order and return the new file."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PartitionIOError(self.directory, "create directory", str(e)) from e

        while True:
            out_path = self.next_path()
            try:
                w = open(out_path, "x", encoding="utf-8")
                break
            except FileExistsError:
                logger.debug(f"Partition name {out_path.name} taken, trying the next one")
            except OSError as e:
                raise PartitionIOError(out_path, "write", str(e)) from e
        try:
            with w:
                for item in sorted(counts):
                    w.write(format_record(item, counts[item]))
        except OSError as e:
            raise PartitionIOError(out_path, "write", str(e)) from e

        self.written.append(out_path)
        logger.info(f"Wrote partition {out_path.name} ({len(counts):,} unique items)")
        return out_path


class PartitionCursor:
    """Forward-only reader over one partition file.

    The next unread record is always buffered in ``current``; it is None once
    the file is exhausted.
    """

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self.current: Optional[FrequencyRecord] = None
        self._line_number = 0
        try:
            self._file = open(self.path, "r", encoding="utf-8")
        except OSError as e:
            raise PartitionIOError(self.path, "open", str(e)) from e
        self.advance()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self) -> str:
        return f"PartitionCursor({str(self.path)!r}, current={self.current!r})"

    def is_empty(self) -> bool:
        return self.current is None

    def peek(self) -> FrequencyRecord:
        if self.current is None:
            raise IndexError(f"peek on exhausted cursor over {self.path}")
        return self.current

    def advance(self) -> None:
        """Buffer the next record, or mark the cursor empty at end of file."""
        if self._file.closed:
            self.current = None
            return
        try:
            line = self._file.readline()
        except OSError as e:
            raise PartitionIOError(self.path, "read", str(e)) from e
        if not line:
            self.current = None
            return
        self._line_number += 1
        try:
            self.current = parse_record(line)
        except ValueError as e:
            raise MalformedPartitionRecordError(
                self.path, self._line_number, line, str(e)
            ) from e

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()
            logger.debug(f"Closed cursor over {self.path.name}")


def list_partition_files(directory: PathLike, prefix: str = PARTITION_PREFIX) -> List[Path]:
    """Return the partition files of ``directory`` in name order."""
    directory = Path(directory)
    if not directory.is_dir():
        raise PartitionIOError(directory, "list", "not a directory")
    return sorted(p for p in directory.glob(f"{prefix}-*") if p.is_file())


def open_merge_output(out_path: PathLike) -> TextIO:
    """Open the merged-stream file for writing, before any cursor is opened."""
    out_path = Path(out_path)
    try:
        return open(out_path, "w", encoding="utf-8")
    except OSError as e:
        raise PartitionIOError(out_path, "write", str(e)) from e


def tee_records(records: Iterable[FrequencyRecord], w: TextIO) -> Iterator[FrequencyRecord]:
    """Yield ``records`` unchanged while also writing them to the open file ``w``."""
    for record in records:
        try:
            w.write(format_record(record.item, record.count))
        except OSError as e:
            raise PartitionIOError(w.name, "write", str(e)) from e
        yield record

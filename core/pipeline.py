"""
Pipeline driver for the external-memory top-K sentence count.

A run has two stages:

1. digest: read the input line by line, split each line on ``|``, trim each
   segment and count it in a bounded accumulator that spills sorted partition
   files to a work directory.
2. merge: k-way merge the partition files into one coalesced, sorted stream
   and pass it through a bounded min-heap that keeps the K most frequent items.

Failures propagate as TopKError subclasses; no partial result is returned.
"""
from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional

from tqdm import tqdm

from core.accumulator import DEFAULT_MAX_RECORDS, FrequencyAccumulator
from core.errors import InputNotFoundError, InputStatus, PathLike
from core.io_utils import cleanup_work_dir, create_work_dir
from core.merge import merge_partitions
from core.partitions import MERGE_PREFIX, PartitionWriter, list_partition_files, open_merge_output, tee_records
from core.records import FrequencyRecord
from core.selector import TopKSelector

logger = logging.getLogger("core.pipeline")

ITEM_DELIMITER = "|"


class DigestResult(NamedTuple):
    partitions: List[Path]
    items_observed: int
    lines_read: int


class TopKResult(NamedTuple):
    records: List[FrequencyRecord]
    partitions: List[Path]
    merge_path: Optional[Path]
    # None once the work directory has been removed.
    work_dir: Optional[Path]
    # None for a merge-only run.
    items_observed: Optional[int]


def check_input(input_path: PathLike) -> InputStatus:
    """Report whether ``input_path`` can be read as the input file."""
    path = Path(input_path)
    if not path.exists():
        return InputStatus.NOT_FOUND
    if not path.is_file():
        return InputStatus.NOT_A_FILE
    if not os.access(path, os.R_OK):
        return InputStatus.UNREADABLE
    return InputStatus.OK


def split_items(line: str, delimiter: str = ITEM_DELIMITER) -> List[str]:
    """Split a line into trimmed items.

    Empty segments are kept, so ``"a||b"`` gives ``["a", "", "b"]`` and a blank
    line gives one empty item.
    """
    return [segment.strip() for segment in line.rstrip("\r\n").split(delimiter)]


def digest_file(
    input_path: PathLike,
    partition_dir: PathLike,
    max_records: int = DEFAULT_MAX_RECORDS,
    show_progress: bool = False,
) -> DigestResult:
    """Count the items of ``input_path`` into sorted partition files."""
    status = check_input(input_path)
    if status is not InputStatus.OK:
        raise InputNotFoundError(input_path, status)

    accumulator = FrequencyAccumulator(PartitionWriter(partition_dir), max_records=max_records)
    lines_read = 0
    logger.info(f"Digesting {input_path} (max_records={max_records:,})")
    try:
        with open(input_path, "r", encoding="utf-8") as r:
            for line in tqdm(r, desc="Reading", unit=" lines", disable=not show_progress):
                lines_read += 1
                accumulator.observe_many(split_items(line))
    except (OSError, UnicodeDecodeError) as e:
        raise InputNotFoundError(input_path, InputStatus.UNREADABLE) from e

    partitions = accumulator.finish()
    logger.info(f"Read {lines_read:,} lines; {accumulator.items_observed:,} items observed")
    return DigestResult(partitions, accumulator.items_observed, lines_read)


def select_top_k(
    partition_paths: Iterable[PathLike],
    capacity: int,
    merge_output: Optional[PathLike] = None,
    strict: bool = False,
    show_progress: bool = False,
) -> List[FrequencyRecord]:
    """Merge partition files and return the ``capacity`` most frequent records.

    When ``merge_output`` is given the full merged stream is also written to
    that path in partition format.
    """
    selector = TopKSelector(capacity)
    # Opened first so that failing to create it leaves no cursor open.
    out = open_merge_output(merge_output) if merge_output is not None else None
    try:
        merged = merge_partitions(partition_paths, strict=strict)
        records = tee_records(merged, out) if out is not None else merged
        try:
            selector.consume(tqdm(records, desc="Merging", unit=" items", disable=not show_progress))
        finally:
            if records is not merged:
                records.close()
            merged.close()
    finally:
        if out is not None:
            out.close()
    return selector.results()


def merge_partition_dir(
    partition_dir: PathLike,
    capacity: int,
    write_merge_file: bool = True,
    strict: bool = False,
    show_progress: bool = False,
) -> TopKResult:
    """Run the merge stage alone over partition files kept by an earlier run."""
    partition_dir = Path(partition_dir)
    partitions = list_partition_files(partition_dir)
    merge_path = None
    if write_merge_file and partitions:
        merge_path = partition_dir / f"{MERGE_PREFIX}-{int(time.time() * 1000)}"
    records = select_top_k(partitions, capacity, merge_path, strict, show_progress)
    return TopKResult(records, partitions, merge_path, partition_dir, None)


def run_pipeline(
    input_path: PathLike,
    capacity: int,
    max_records: int = DEFAULT_MAX_RECORDS,
    keep_artifacts: bool = False,
    work_dir: Optional[PathLike] = None,
    strict: bool = False,
    show_progress: bool = False,
) -> TopKResult:
    """Compute the ``capacity`` most frequent items of ``input_path``.

    Partition and merge files are written to a new ``topk_*`` directory under
    ``work_dir`` (the input file's directory by default). The directory is
    removed after a successful run unless ``keep_artifacts`` is set; after a
    failure it is left in place.
    """
    if capacity < 1:
        raise ValueError(f"capacity must be positive, got {capacity}")
    status = check_input(input_path)
    if status is not InputStatus.OK:
        raise InputNotFoundError(input_path, status)

    base_dir = Path(work_dir) if work_dir is not None else Path(input_path).resolve().parent
    run_dir = create_work_dir(base_dir)

    digest = digest_file(input_path, run_dir, max_records, show_progress)
    merge_path = None
    if digest.partitions:
        merge_path = run_dir / f"{MERGE_PREFIX}-{int(time.time() * 1000)}"
    records = select_top_k(digest.partitions, capacity, merge_path, strict, show_progress)
    logger.info(f"Selected {len(records)} of top-{capacity} items")

    if keep_artifacts:
        logger.info(f"Kept partition and merge files in {run_dir}")
        return TopKResult(records, digest.partitions, merge_path, run_dir, digest.items_observed)
    cleanup_work_dir(run_dir)
    return TopKResult(records, digest.partitions, merge_path, None, digest.items_observed)


def format_report(records: Iterable[FrequencyRecord], capacity: int) -> str:
    lines = [f"{capacity}-most frequent sentences:", "-" * 72]
    for record in records:
        lines.append(f"Sentence: {record.item} | Frequency: {record.count}")
    return "\n".join(lines)

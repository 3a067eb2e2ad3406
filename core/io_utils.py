"""
Common I/O utilities: run work directories and the TSV top-K report.
"""
import csv
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Union

from tqdm import tqdm

from core.errors import PartitionIOError
from core.records import FrequencyRecord

logger = logging.getLogger("core.io_utils")

REPORT_FIELDNAMES = ["item", "count"]


def write_report_tsv(records: Iterable[FrequencyRecord], output_path: str) -> int:
    """Write the top-K records to a TSV file with an ``item``/``count`` header.

    Args:
        records: Records to write, in report order
        output_path: Output file path

    Returns:
        Number of rows written
    """
    ensure_output_directory(output_path)
    rows = 0
    with open(output_path, "w", encoding="utf-8", newline="") as tsvfile:
        writer = csv.writer(tsvfile, delimiter="\t")
        writer.writerow(REPORT_FIELDNAMES)
        for record in tqdm(list(records), desc="Writing TSV", disable=None):
            writer.writerow([record.item, record.count])
            rows += 1
    if rows == 0:
        logger.warning(f"No records to report. Wrote header-only file {output_path}")
    return rows


def ensure_output_directory(output_path: str):
    """Ensure the output directory exists."""
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)


def create_work_dir(base_dir: Optional[Union[str, Path]] = None, prefix: str = "topk_") -> Path:
    """Create a fresh directory for the partition and merge files of one run.

    Args:
        base_dir: Parent directory; the system temp directory when None
        prefix: Prefix for the directory name

    Returns:
        Path to the created directory
    """
    try:
        if base_dir is not None:
            os.makedirs(base_dir, exist_ok=True)
        work_dir = tempfile.mkdtemp(prefix=prefix, dir=base_dir)
    except OSError as e:
        raise PartitionIOError(base_dir or tempfile.gettempdir(), "create directory", str(e)) from e
    logger.info(f"Created work directory: {work_dir}")
    return Path(work_dir)


def cleanup_work_dir(work_dir: Union[str, Path]):
    """Remove a work directory and all its contents.

    Args:
        work_dir: Path to the directory to remove
    """
    try:
        shutil.rmtree(work_dir)
        logger.info(f"Cleaned up work directory: {work_dir}")
    except OSError as e:
        logger.warning(f"Failed to clean up work directory {work_dir}: {e}")

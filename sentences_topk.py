#!/usr/bin/env python3
"""
Find the K most frequent sentences of a large pipe-delimited text file.

Sentences are counted in a bounded in-memory table that is flushed to sorted
partition files; the partitions are then k-way merged and streamed through a
min-heap of capacity K.

Usage:
    python sentences_topk.py sentences.txt 10
    python sentences_topk.py sentences.txt 10 --max_records 100000 --keep_artifacts
    python sentences_topk.py - 10 --stages merge --partition_dir topk_abc123
"""
from __future__ import annotations

import argparse
import logging
import os
import sys

from core.accumulator import DEFAULT_MAX_RECORDS
from core.errors import InputNotFoundError, InputStatus, TopKError
from core.io_utils import create_work_dir, write_report_tsv
from core.pipeline import check_input, digest_file, format_report, merge_partition_dir, run_pipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger("sentences_topk")


def main(
    input_file: str,
    top_k: int,
    max_records: int = DEFAULT_MAX_RECORDS,
    keep_artifacts: bool = False,
    work_dir: str = None,
    output_path: str = None,
    stages: str = "both",
    partition_dir: str = None,
    strict: bool = False,
    progress: bool = False,
    merge_file: bool = True,
) -> int:
    logger.info(
        f"Running stages={stages} with k={top_k}, max_records={max_records:,}, keep_artifacts={keep_artifacts}"
    )
    try:
        if stages == "digest":
            status = check_input(input_file)
            if status is not InputStatus.OK:
                raise InputNotFoundError(input_file, status)
            base_dir = work_dir or os.path.dirname(os.path.abspath(input_file))
            run_dir = create_work_dir(base_dir)
            digest = digest_file(input_file, run_dir, max_records, progress)
            logger.info(f"Wrote {len(digest.partitions)} partition(s) to {run_dir}")
            print(run_dir)
            return 0

        if stages == "merge":
            if not partition_dir:
                logger.error("--partition_dir is required with --stages merge")
                return 1
            result = merge_partition_dir(
                partition_dir, top_k, write_merge_file=merge_file, strict=strict, show_progress=progress
            )
        else:
            result = run_pipeline(
                input_file,
                top_k,
                max_records=max_records,
                keep_artifacts=keep_artifacts,
                work_dir=work_dir,
                strict=strict,
                show_progress=progress,
            )
    except TopKError as e:
        logger.error(str(e))
        return 1

    print(format_report(result.records, top_k))
    if output_path:
        rows = write_report_tsv(result.records, output_path)
        logger.info(f"Wrote {rows} rows to {output_path}")
    return 0


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Compute the K most frequent '|'-delimited sentences of a file using bounded memory."
    )
    parser.add_argument("input_file", help="File with sentences separated by '|' (use '-' with --stages merge)")
    parser.add_argument("top_k", type=positive_int, help="Number of most frequent sentences to report")
    parser.add_argument(
        "--max_records",
        "-m",
        type=positive_int,
        default=int(os.environ.get("TOPK_MAX_RECORDS", DEFAULT_MAX_RECORDS)),
        help="Distinct sentences held in memory before flushing a partition file",
    )
    parser.add_argument(
        "--keep_artifacts",
        "-d",
        action="store_true",
        help="Keep partition and merge files after the run",
    )
    parser.add_argument(
        "--work_dir",
        type=str,
        default=os.environ.get("TOPK_WORK_DIR"),
        help="Parent directory for the run's partition files (default: input file's directory)",
    )
    parser.add_argument("--output_path", type=str, default=None, help="Optional TSV report path")
    parser.add_argument(
        "--stages",
        type=str,
        choices=["digest", "merge", "both"],
        default="both",
        help="digest: write partitions only; merge: merge an existing --partition_dir; both: full run",
    )
    parser.add_argument("--partition_dir", type=str, default=None, help="Partition directory for --stages merge")
    parser.add_argument(
        "--no_merge_file",
        action="store_true",
        help="With --stages merge, do not write the merged counts into --partition_dir",
    )
    parser.add_argument("--strict", action="store_true", help="Fail on unsorted partition files")
    parser.add_argument("--progress", action="store_true", help="Show progress bars")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(
        main(
            input_file=args.input_file,
            top_k=args.top_k,
            max_records=args.max_records,
            keep_artifacts=args.keep_artifacts,
            work_dir=args.work_dir,
            output_path=args.output_path,
            stages=args.stages,
            partition_dir=args.partition_dir,
            strict=args.strict,
            progress=args.progress,
            merge_file=not args.no_merge_file,
        )
    )

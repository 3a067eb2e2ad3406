"""
Frequency records and the line format used by partition and merge files.

Each line holds one record: the item text, a semicolon, and the decimal count.
"""
from __future__ import annotations

from typing import NamedTuple

RECORD_DELIMITER = ";"


class FrequencyRecord(NamedTuple):
    item: str
    count: int


def format_record(item: str, count: int) -> str:
    return f"{item}{RECORD_DELIMITER}{count}\n"


def parse_record(line: str) -> FrequencyRecord:
    """Parse one ``item;count`` line.

    The count is taken after the last semicolon, so an item that itself
    contains a semicolon still reads back unchanged.

    Raises:
        ValueError: if the delimiter is missing, the count is not an integer,
            or the count is not positive.
    """
    item, sep, count_s = line.rstrip("\n").rpartition(RECORD_DELIMITER)
    if not sep:
        raise ValueError(f"missing '{RECORD_DELIMITER}' delimiter")
    count = int(count_s)
    if count < 1:
        raise ValueError(f"count must be positive, got {count}")
    return FrequencyRecord(item, count)

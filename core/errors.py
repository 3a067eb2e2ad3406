"""
Error taxonomy for the top-K pipeline.

Every failure raised by the library derives from TopKError so that the
command-line entry point can report it and exit with a non-zero status.
An empty input is not an error and has no exception here.
"""
from __future__ import annotations

import enum
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


class InputStatus(enum.Enum):
    """Outcome of checking the input file before a run starts."""

    OK = "ok"
    NOT_FOUND = "not found"
    NOT_A_FILE = "not a regular file"
    UNREADABLE = "not readable"


class TopKError(Exception):
    """Base class for all pipeline failures."""


class InputNotFoundError(TopKError):
    def __init__(self, path: PathLike, status: InputStatus):
        self.path = Path(path)
        self.status = status
        super().__init__(f"Input file {self.path} is {status.value}")


class PartitionIOError(TopKError):
    """Creating, writing or reading a partition or merge file failed."""

    def __init__(self, path: PathLike, operation: str, reason: str = ""):
        self.path = Path(path)
        self.operation = operation
        message = f"Failed to {operation} {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MalformedPartitionRecordError(TopKError):
    def __init__(self, path: PathLike, line_number: int, line: str, reason: str):
        self.path = Path(path)
        self.line_number = line_number
        self.line = line
        super().__init__(
            f"Malformed record at {self.path}:{line_number} ({reason}): {line.rstrip()!r}"
        )


class UnsortedPartitionError(TopKError):
    """A partition yielded an item smaller than one already merged."""

    def __init__(self, path: PathLike, item: str, previous: str):
        self.path = Path(path)
        self.item = item
        self.previous = previous
        super().__init__(
            f"Partition {self.path} is not sorted: {item!r} follows {previous!r}"
        )

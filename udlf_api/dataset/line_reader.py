"""Streaming access to single lines of (possibly large) text files."""

import logging
from pathlib import Path
from typing import Iterator, Optional, Union

from ..errors import BadRequest, NotFound

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def iter_lines(path: PathLike) -> Iterator[str]:
    """
    Lazily yield the lines of a text file without line terminators.

    Both LF and CRLF files are handled. The file handle is released as soon
    as the generator is exhausted, closed or garbage collected.
    """
    try:
        f = open(path, "r", encoding="utf-8", errors="replace", newline=None)
    except FileNotFoundError:
        raise NotFound(f"File not found: {path}")
    except IsADirectoryError:
        raise BadRequest(f"Path is a directory: {path}")

    with f:
        for line in f:
            yield line.rstrip("\n")


def read_line(path: PathLike, n: int) -> Optional[str]:
    """
    Read the n-th line of a file (1-indexed).

    Args:
        path: Text file to read
        n: Line number, ``n=1`` is the first line

    Returns:
        The line without its terminator, or None if the file is shorter
    """
    if n < 1:
        raise BadRequest(f"Invalid line number {n}. Must be a positive integer.")

    lines = iter_lines(path)
    try:
        for current, line in enumerate(lines, start=1):
            if current == n:
                return line
    finally:
        lines.close()
    return None


def count_lines(path: PathLike, skip_blank: bool = True) -> int:
    """Count lines of a file by streaming it; blank lines are skipped by default."""
    count = 0
    for line in iter_lines(path):
        if skip_blank and not line.strip():
            continue
        count += 1
    return count

"""Allowlisted directory listing, metadata and wildcard search."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..errors import BadRequest, NotFound, PermissionDenied
from .allowlist import PathAllowlist

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_DEPTH = 3


@dataclass
class DirectoryItem:
    """A single file or directory entry."""

    name: str
    absolute_path: str
    kind: str  # "file" or "directory"
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


@dataclass
class DirectoryListing:
    """Contents of one directory."""

    current_path: str
    items: List[DirectoryItem] = field(default_factory=list)
    parent_path: Optional[str] = None

    @property
    def total_items(self) -> int:
        return len(self.items)


def compile_glob(pattern: str) -> re.Pattern:
    """
    Translate a wildcard pattern into a case-insensitive regex.

    Only ``?`` (one character) and ``*`` (any run, including empty) are
    special; everything else matches literally.
    """
    if not pattern:
        raise BadRequest("Search pattern must not be empty")
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _sort_items(items: List[DirectoryItem]) -> List[DirectoryItem]:
    # Directories first, then alphabetical within each kind
    return sorted(items, key=lambda i: (i.kind != "directory", i.name.lower(), i.name))


def _item_from_stat(path: str, st: os.stat_result) -> DirectoryItem:
    is_dir = os.path.isdir(path)
    return DirectoryItem(
        name=os.path.basename(path) or path,
        absolute_path=path,
        kind="directory" if is_dir else "file",
        size=None if is_dir else st.st_size,
        last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
    )


class DirectoryBrowser:
    """Browses the local filesystem below an allowlist."""

    def __init__(self, allowlist: PathAllowlist):
        self.allowlist = allowlist

    @property
    def root(self) -> str:
        return self.allowlist.root

    def _check(self, path: Optional[str]) -> str:
        target = self.allowlist.normalize(path or self.root)
        if not self.allowlist.is_allowed(target):
            raise PermissionDenied(f"Access denied: {target} is not allowed")
        return target

    def list(self, path: Optional[str] = None) -> DirectoryListing:
        """
        List a directory.

        Args:
            path: Directory to list (default: the browse root)

        Returns:
            DirectoryListing; children outside the allowlist are hidden
        """
        target = self._check(path)
        if not os.path.exists(target):
            raise NotFound(f"Directory not found: {target}")
        if not os.path.isdir(target):
            raise BadRequest(f"Path is not a directory: {target}")

        try:
            names = os.listdir(target)
        except PermissionError as e:
            raise PermissionDenied(f"Cannot read directory {target}: {e}") from e
        except OSError as e:
            raise NotFound(f"Cannot read directory {target}: {e}") from e

        items: List[DirectoryItem] = []
        for name in names:
            child = os.path.join(target, name)
            if not self.allowlist.is_allowed(child):
                continue
            try:
                items.append(_item_from_stat(child, os.stat(child)))
            except OSError as e:
                logger.warning(f"Cannot access item {child}: {e}")

        parent = None if target == self.root else os.path.dirname(target)
        return DirectoryListing(
            current_path=target,
            parent_path=parent,
            items=_sort_items(items),
        )

    def stat(self, path: str) -> DirectoryItem:
        """Metadata of a single file or directory."""
        if not path:
            raise BadRequest("Path parameter is required")
        target = self._check(path)
        try:
            st = os.stat(target)
        except FileNotFoundError:
            raise NotFound(f"Path not found: {target}")
        except OSError as e:
            raise NotFound(f"Cannot access {target}: {e}") from e
        return _item_from_stat(target, st)

    def search(
        self,
        path: Optional[str],
        pattern: str,
        max_depth: int = DEFAULT_SEARCH_DEPTH,
    ) -> List[DirectoryItem]:
        """
        Depth-limited search for files whose basename matches ``pattern``.

        Args:
            path: Directory to start from (default: the browse root)
            pattern: Wildcard pattern with ``?`` and ``*``
            max_depth: Number of directory levels to descend

        Returns:
            Matching files in traversal order
        """
        if max_depth < 0:
            raise BadRequest("maxDepth must be non-negative")
        regex = compile_glob(pattern)
        target = self._check(path)

        results: List[DirectoryItem] = []
        self._search(target, regex, max_depth, 0, results)
        logger.info(f"Search '{pattern}' under {target}: {len(results)} matches")
        return results

    def _search(
        self,
        current: str,
        regex: re.Pattern,
        max_depth: int,
        depth: int,
        results: List[DirectoryItem],
    ) -> None:
        if depth >= max_depth:
            return

        try:
            names = sorted(os.listdir(current))
        except OSError as e:
            logger.warning(f"Cannot read directory {current}: {e}")
            return

        for name in names:
            child = os.path.join(current, name)
            if not self.allowlist.is_allowed(child):
                continue
            try:
                st = os.stat(child)
            except OSError as e:
                logger.warning(f"Cannot access item {child}: {e}")
                continue

            if os.path.isdir(child):
                self._search(child, regex, max_depth, depth + 1, results)
            elif regex.match(name):
                results.append(_item_from_stat(child, st))

    def available_paths(self) -> List[Tuple[str, str]]:
        """Browsable top-level directories as (name, path) pairs."""
        return [
            (os.path.basename(p), p) for p in self.allowlist.allowed_roots
        ]


class BlobDirectoryBrowser:
    """Lists 'directories' of a blob store through a storage adapter."""

    def __init__(self, storage):
        self.storage = storage

    def list(self, path: Optional[str] = None) -> DirectoryListing:
        prefix = (path or "").lstrip("/")
        directories, files = self.storage.list_directory(prefix)

        items: List[DirectoryItem] = []
        for directory in directories:
            name = [p for p in directory.split("/") if p]
            items.append(DirectoryItem(
                name=name[-1] if name else directory,
                absolute_path=directory,
                kind="directory",
            ))
        for entry in files:
            items.append(DirectoryItem(
                name=entry["name"].rsplit("/", 1)[-1],
                absolute_path=entry["name"],
                kind="file",
                size=entry.get("size"),
                last_modified=entry.get("updated"),
            ))

        parent = None
        if prefix:
            parts = [p for p in prefix.split("/") if p]
            parent = "/".join(parts[:-1])

        return DirectoryListing(
            current_path=prefix,
            parent_path=parent,
            items=_sort_items(items),
        )

"""Textual path allowlist for directory browsing."""

import os
import re
from typing import Iterable, List

_REPEATED_SEP = re.compile(r"/{2,}")


def normalize_path(path: str, root: str) -> str:
    """Collapse '.', '..' and duplicated separators; relative paths are taken from root."""
    if not os.path.isabs(path):
        path = os.path.join(root, path)
    path = _REPEATED_SEP.sub("/", path)
    return os.path.normpath(path)


class PathAllowlist:
    """Decides whether a path lies inside an approved root.

    No symlink resolution is performed; the check is purely textual.
    """

    def __init__(self, root: str, allowed_roots: Iterable[str]):
        self.root = normalize_path(root, "/")
        self.allowed_roots: List[str] = [
            normalize_path(p, self.root) for p in allowed_roots
        ]

    def normalize(self, path: str) -> str:
        return normalize_path(path, self.root)

    def is_allowed(self, path: str) -> bool:
        """True iff path is the root itself or inside one of the allowed roots."""
        target = self.normalize(path)
        if target == self.root:
            return True

        for allowed in self.allowed_roots:
            if target == allowed:
                return True
            prefix = allowed if allowed.endswith(os.sep) else allowed + os.sep
            if target.startswith(prefix):
                return True
        return False

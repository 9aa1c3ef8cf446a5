"""Directory browsing restricted to approved roots."""

from .allowlist import PathAllowlist
from .directory import BlobDirectoryBrowser, DirectoryBrowser, DirectoryItem, DirectoryListing

__all__ = [
    "PathAllowlist",
    "DirectoryBrowser",
    "BlobDirectoryBrowser",
    "DirectoryItem",
    "DirectoryListing",
]

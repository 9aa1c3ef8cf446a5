"""Join of a dataset list file and its classes file.

The list file defines the canonical ordinal of each filename (its 1-indexed
line number among non-empty lines); the classes file maps filenames to
class names. ``DatasetIndex`` holds both directions of each relation.
"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..errors import BadRequest, NotFound, OutOfBounds
from .config_parser import DatasetPaths

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileDetail:
    """Class and ordinal of a filename present in both files."""

    class_name: str
    ordinal: int

    def to_dict(self) -> dict:
        return {"class": self.class_name, "ordinal": self.ordinal}


@dataclass(frozen=True)
class ListEntry:
    ordinal: int
    filename: str


@dataclass
class Page:
    """One page of the list file."""

    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    items: List[ListEntry] = field(default_factory=list)


def parse_list_file(text: str) -> List[str]:
    """Non-empty trimmed lines, in file order."""
    return [line.strip() for line in text.splitlines() if line.strip()]


def parse_classes_file(text: str) -> "OrderedDict[str, List[str]]":
    """
    Group ``filename:classname`` lines by class, keeping file order.

    Lines without exactly one ':' or with an empty side are ignored.
    """
    grouped: "OrderedDict[str, List[str]]" = OrderedDict()
    for line in text.splitlines():
        parts = line.strip().split(":")
        if len(parts) != 2:
            continue
        filename, classname = parts[0].strip(), parts[1].strip()
        if not filename or not classname:
            continue
        grouped.setdefault(classname, []).append(filename)
    return grouped


class DatasetIndex:
    """Queryable, paginated, bidirectional index over a dataset."""

    def __init__(self, filenames: List[str], filenames_by_class: Dict[str, List[str]]):
        """
        Build the index from already parsed files.

        Args:
            filenames: List file entries; position i holds ordinal i + 1
            filenames_by_class: Class name -> filenames from the classes file
        """
        self._by_ordinal: List[str] = list(filenames)
        self._ordinal_of: Dict[str, int] = {}
        duplicates = 0
        for ordinal, filename in enumerate(self._by_ordinal, start=1):
            if filename in self._ordinal_of:
                duplicates += 1
            # Last occurrence wins
            self._ordinal_of[filename] = ordinal
        if duplicates:
            logger.warning(f"List file contains {duplicates} duplicate filenames; last occurrence wins")

        self._by_class: Dict[str, List[str]] = OrderedDict(
            (c, list(names)) for c, names in filenames_by_class.items()
        )

        self._details: Dict[str, FileDetail] = {}
        for class_name, names in self._by_class.items():
            for filename in names:
                ordinal = self._ordinal_of.get(filename)
                if ordinal is not None:
                    self._details[filename] = FileDetail(class_name, ordinal)

        logger.info(
            f"Dataset index built: {len(self._by_ordinal)} files, "
            f"{len(self._by_class)} classes, {len(self._details)} joined"
        )

    @classmethod
    def from_text(cls, list_text: str, classes_text: str = "") -> "DatasetIndex":
        return cls(parse_list_file(list_text), parse_classes_file(classes_text))

    @classmethod
    def from_storage(cls, storage, paths: DatasetPaths) -> "DatasetIndex":
        """
        Read both dataset files through a storage adapter and build the index.

        Args:
            storage: StorageAdapter used to read the files
            paths: Dataset paths from the config
        """
        if not paths.dataset_list:
            raise NotFound("Config does not define INPUT_FILE_LIST")
        list_text = storage.read_text(paths.dataset_list)
        classes_text = storage.read_text(paths.class_list) if paths.class_list else ""
        return cls.from_text(list_text, classes_text)

    def __len__(self) -> int:
        return len(self._by_ordinal)

    def get_ordinal_for(self, filename: str) -> int:
        ordinal = self._ordinal_of.get(filename.strip())
        if ordinal is None:
            raise NotFound(f"Image name {filename} not found in list file")
        return ordinal

    def get_filename_at(self, ordinal: int) -> str:
        if not 1 <= ordinal <= len(self._by_ordinal):
            raise OutOfBounds(ordinal, len(self._by_ordinal))
        return self._by_ordinal[ordinal - 1]

    def resolve_by_ordinals(self, ordinals: Iterable[int]) -> List[ListEntry]:
        """Translate ordinals to filenames, failing on the first bad one."""
        return [ListEntry(n, self.get_filename_at(n)) for n in ordinals]

    def all_filenames(self) -> List[str]:
        return list(self._by_ordinal)

    def filenames_grouped_by_class(self) -> Dict[str, List[str]]:
        return OrderedDict((c, list(names)) for c, names in self._by_class.items())

    def details_by_filename(self) -> Dict[str, FileDetail]:
        return dict(self._details)

    def details_for_filenames(self, filenames: Iterable[str]) -> Dict[str, FileDetail]:
        """Details of the given filenames; unknown names are omitted."""
        return {f: self._details[f] for f in filenames if f in self._details}

    def details_for_ordinals(self, ordinals: Iterable[int]) -> Dict[str, FileDetail]:
        """
        Details of the filenames at the given ordinals.

        Ordinals outside the list or without a classes entry are skipped
        with a warning.
        """
        result: Dict[str, FileDetail] = {}
        for ordinal in ordinals:
            filename: Optional[str] = None
            if 1 <= ordinal <= len(self._by_ordinal):
                filename = self._by_ordinal[ordinal - 1]
            detail = self._details.get(filename) if filename is not None else None
            if detail is None:
                logger.warning(f"No details found for line number {ordinal}")
                continue
            result[filename] = detail
        return result

    def list_page(self, page_index: int, page_size: int) -> Page:
        """
        A 1-indexed page of list file entries.

        Pages past the end are empty but report correct totals.
        """
        if page_index < 1:
            raise BadRequest(f"Invalid page index {page_index}. Must be >= 1.")
        if page_size < 1:
            raise BadRequest(f"Invalid page size {page_size}. Must be >= 1.")

        total = len(self._by_ordinal)
        start = (page_index - 1) * page_size
        items = [
            ListEntry(start + i + 1, filename)
            for i, filename in enumerate(self._by_ordinal[start:start + page_size])
        ]
        return Page(
            total_items=total,
            total_pages=math.ceil(total / page_size),
            current_page=page_index,
            page_size=page_size,
            items=items,
        )

"""Config parsing, dataset indexing and line access."""

from .config_parser import Config, DatasetPaths, extract_dataset_paths, parse, parse_file, serialize
from .index import DatasetIndex, FileDetail, ListEntry, Page
from .line_reader import count_lines, iter_lines, read_line
from .service import DatasetService

__all__ = [
    "Config",
    "DatasetPaths",
    "parse",
    "parse_file",
    "serialize",
    "extract_dataset_paths",
    "DatasetIndex",
    "FileDetail",
    "ListEntry",
    "Page",
    "read_line",
    "iter_lines",
    "count_lines",
    "DatasetService",
]

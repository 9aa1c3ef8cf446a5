"""Parser for UDLF INI-like configuration files.

Format: blank lines, ``#`` comment lines and ``KEY=VALUE`` lines. The first
``=`` separates key and value; ``##`` or ``#`` starts an inline comment in
the value.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from ..errors import ConfigFormatError

logger = logging.getLogger(__name__)

INPUT_FILE_LIST = "INPUT_FILE_LIST"
INPUT_FILE_CLASSES = "INPUT_FILE_CLASSES"
INPUT_IMAGES_PATH = "INPUT_IMAGES_PATH"
INPUT_FILE = "INPUT_FILE"

DATASET_KEYS = (INPUT_FILE_LIST, INPUT_FILE_CLASSES, INPUT_IMAGES_PATH, INPUT_FILE)


class Config(dict):
    """Ordered KEY -> VALUE mapping; iteration follows first appearance in the file."""


@dataclass(frozen=True)
class DatasetPaths:
    """The four dataset locations a config points at ("" when missing)."""

    dataset_list: str = ""
    class_list: str = ""
    images_dir: str = ""
    input_file: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "datasetList": self.dataset_list,
            "classList": self.class_list,
            "imagesDir": self.images_dir,
            "inputFile": self.input_file,
        }


def strip_inline_comment(value: str) -> str:
    """Remove a trailing ``##`` or ``#`` comment and surrounding whitespace."""
    index = value.find("##")
    if index == -1:
        index = value.find("#")
    if index != -1:
        value = value[:index]
    return value.strip()


def parse(data: Union[bytes, str]) -> Config:
    """
    Parse config text into a Config mapping.

    Malformed lines (no ``=`` or an empty key) are skipped like comments.
    A repeated key keeps its first position and its last value.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")

    config = Config()
    for raw in data.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.debug(f"Skipping malformed config line: {line!r}")
            continue

        config[key] = strip_inline_comment(value)
    return config


def serialize(config: Dict[str, str]) -> bytes:
    """Write one ``KEY=VALUE`` line per entry, in mapping order."""
    return "".join(f"{key}={value}\n" for key, value in config.items()).encode("utf-8")


def parse_file(path: Union[str, Path]) -> Config:
    """
    Read and parse a config file.

    Raises:
        ConfigFormatError: when the file cannot be read
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ConfigFormatError(f"Failed to parse config file {path}: {e}") from e
    return parse(data)


def extract_dataset_paths(config: Dict[str, str]) -> DatasetPaths:
    """Map the well-known dataset keys of a config."""
    return DatasetPaths(
        dataset_list=config.get(INPUT_FILE_LIST, ""),
        class_list=config.get(INPUT_FILE_CLASSES, ""),
        images_dir=config.get(INPUT_IMAGES_PATH, ""),
        input_file=config.get(INPUT_FILE, ""),
    )


def with_defaults(paths: DatasetPaths, defaults: Optional[Dict[str, str]]) -> DatasetPaths:
    """Fill missing list/classes/images paths from defaults."""
    if not defaults or (paths.dataset_list and paths.class_list):
        return paths

    logger.warning(
        "Config is missing INPUT_FILE_LIST or INPUT_FILE_CLASSES, using default dataset paths"
    )
    return DatasetPaths(
        dataset_list=paths.dataset_list or defaults.get("dataset_list", ""),
        class_list=paths.class_list or defaults.get("class_list", ""),
        images_dir=paths.images_dir or defaults.get("images_dir", ""),
        input_file=paths.input_file,
    )

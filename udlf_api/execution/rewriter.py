"""Rewrite dataset paths inside a config for the active deployment."""

import logging
import os
import re
import secrets
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from ..dataset import config_parser
from ..errors import ConfigFormatError
from ..settings import Deployment
from ..storage.adapters import to_mount_path, to_object_key

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "udlf_exec_"
PATH_KEY_MARKERS = ("FILE", "MATRIX", "PATH")
_NUMERIC = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def new_token(nbytes: int = 8) -> str:
    """Random hex token for scratch names."""
    return secrets.token_hex(nbytes)


def is_path_value(key: str, value: str) -> bool:
    """Whether a config entry holds a path: path-like key, non-boolean, non-numeric value."""
    if not value or not any(marker in key.upper() for marker in PATH_KEY_MARKERS):
        return False
    if value.upper() in ("TRUE", "FALSE"):
        return False
    return not _NUMERIC.match(value)


def iter_path_values(config: Dict[str, str]) -> Iterator[Tuple[str, str]]:
    for key, value in config.items():
        if is_path_value(key, value):
            yield key, value


def looks_like_file(value: str) -> bool:
    return not value.endswith("/") and bool(os.path.splitext(value)[1])


def substitute_all(text: str, replacements: Dict[str, str]) -> str:
    """
    Replace every occurrence of each key by its value in one pass.

    Longer keys are tried first, and replaced text is never scanned again,
    so a short path cannot rewrite part of an already rewritten longer one.
    """
    replacements = {k: v for k, v in replacements.items() if k and k != v}
    if not replacements:
        return text
    pattern = re.compile(
        "|".join(re.escape(k) for k in sorted(replacements, key=len, reverse=True))
    )
    return pattern.sub(lambda m: replacements[m.group(0)], text)


@dataclass
class PreparedConfig:
    """Config handed to the binary plus the scratch directory owning it."""

    config_path: Path
    scratch_dir: Optional[Path] = None


class PathRewriter:
    """Normalizes config dataset paths so the binary can open them."""

    def __init__(
        self,
        deployment: Deployment,
        storage=None,
        mount_prefix: str = "/mnt/gcs",
        scratch_root: Optional[Path] = None,
    ):
        """
        Args:
            deployment: Active deployment kind
            storage: StorageAdapter (needed for BLOB downloads)
            mount_prefix: Where the bucket is mounted (MOUNTED)
            scratch_root: Parent of scratch dirs (default: OS temp dir)
        """
        if deployment == Deployment.BLOB and storage is None:
            raise ValueError("Blob deployment needs a storage adapter")
        self.deployment = deployment
        self.storage = storage
        self.mount_prefix = mount_prefix
        self.scratch_root = Path(scratch_root) if scratch_root else Path(tempfile.gettempdir())

    def new_scratch_dir(self) -> Path:
        scratch = self.scratch_root / f"{SCRATCH_PREFIX}{new_token()}"
        scratch.mkdir(parents=True, exist_ok=False)
        return scratch

    def rewrite(self, config_bytes: bytes, scratch_dir: Optional[Path] = None) -> bytes:
        """
        Rewrite dataset paths in raw config bytes.

        Args:
            config_bytes: Original config file contents
            scratch_dir: Where BLOB downloads go (required for BLOB)

        Returns:
            Config bytes with every occurrence of each mapped path replaced
        """
        if self.deployment == Deployment.LOCAL:
            return config_bytes

        config = config_parser.parse(config_bytes)
        if self.deployment == Deployment.MOUNTED:
            replacements = self._mount_replacements(config)
        else:
            if scratch_dir is None:
                raise ValueError("Blob rewrite needs a scratch directory")
            replacements = self._download_replacements(config, scratch_dir)

        text = config_bytes.decode("utf-8", errors="replace")
        return substitute_all(text, replacements).encode("utf-8")

    def _mount_replacements(self, config: Dict[str, str]) -> Dict[str, str]:
        replacements = {}
        for key, value in iter_path_values(config):
            mapped = to_mount_path(value, self.mount_prefix)
            if mapped != value:
                logger.debug(f"{key}: {value} -> {mapped}")
                replacements[value] = mapped
        return replacements

    def _download_replacements(self, config: Dict[str, str], scratch_dir: Path) -> Dict[str, str]:
        replacements = {}
        for key, value in iter_path_values(config):
            if not looks_like_file(value) or value in replacements:
                continue
            object_key = to_object_key(value)
            if not self.storage.exists(value):
                logger.warning(f"{key}: object {object_key} not found in blob store, leaving {value}")
                continue
            local = self.storage.download(value, scratch_dir / object_key)
            replacements[value] = str(local)
        return replacements

    def prepare(self, config_path: Path) -> PreparedConfig:
        """
        Produce the config the binary will run on.

        LOCAL runs the uploaded file as is. Other deployments write the
        normalized config into a fresh ``udlf_exec_<token>`` directory which
        the caller must remove once the binary exits.
        """
        config_path = Path(config_path)
        if self.deployment == Deployment.LOCAL:
            return PreparedConfig(config_path=config_path)

        try:
            original = config_path.read_bytes()
        except OSError as e:
            raise ConfigFormatError(f"Failed to read config file {config_path}: {e}") from e

        scratch = self.new_scratch_dir()
        try:
            content = self.rewrite(original, scratch)
            prepared = scratch / f"config_{new_token(4)}.ini"
            prepared.write_bytes(content)
        except BaseException:
            remove_scratch(scratch)
            raise

        logger.info(f"Prepared {self.deployment.value} config {prepared}")
        return PreparedConfig(config_path=prepared, scratch_dir=scratch)


def remove_scratch(scratch_dir: Optional[Path]) -> None:
    """Best-effort removal of a scratch directory; errors are logged only."""
    if scratch_dir is None:
        return

    try:
        shutil.rmtree(scratch_dir)
    except OSError as e:
        logger.warning(f"Failed to remove scratch directory {scratch_dir}: {e}")

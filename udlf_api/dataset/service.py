"""Config-name based access to parsed configs and dataset indexes."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..cache import KeyedCache
from ..errors import BadRequest, NotFound
from . import config_parser
from .config_parser import Config, DatasetPaths
from .index import DatasetIndex

logger = logging.getLogger(__name__)


class DatasetService:
    """Resolves uploaded configs and memoizes what is derived from them."""

    def __init__(
        self,
        uploads_dir: Path,
        storage,
        default_paths: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            uploads_dir: Directory holding uploaded configs
            storage: StorageAdapter for dataset files
            default_paths: Fallback dataset paths (see Settings.default_dataset_paths)
        """
        self.uploads_dir = Path(uploads_dir)
        self.storage = storage
        self.default_paths = default_paths
        self.configs = KeyedCache("config cache")
        self.indexes = KeyedCache("index cache")

    def config_path(self, config_name: str) -> Path:
        """Absolute path of an uploaded config; only bare file names are accepted."""
        name = (config_name or "").strip()
        if not name:
            raise BadRequest("Config file name is required")
        if "/" in name or "\\" in name or name in (".", ".."):
            raise BadRequest(f"Invalid config file name: {config_name}")
        return self.uploads_dir / name

    def load_config(self, config_path: Path) -> Config:
        def build() -> Config:
            if not Path(config_path).is_file():
                raise NotFound(f"Config file not found: {config_path}")
            return config_parser.parse_file(config_path)

        return self.configs.get_or_build(config_path, build)

    def dataset_paths(self, config_path: Path) -> DatasetPaths:
        paths = config_parser.extract_dataset_paths(self.load_config(config_path))
        return config_parser.with_defaults(paths, self.default_paths)

    def index_for(self, config_path: Path) -> DatasetIndex:
        def build() -> DatasetIndex:
            paths = self.dataset_paths(config_path)
            logger.info(f"Building dataset index for {config_path} from {paths.dataset_list}")
            return DatasetIndex.from_storage(self.storage, paths)

        return self.indexes.get_or_build(config_path, build)

    def clear_cache(self, config_path: Optional[Path] = None) -> None:
        self.configs.invalidate(config_path)
        self.indexes.invalidate(config_path)
        self.storage.clear_cache()

    def cached_configs(self) -> List[str]:
        return self.configs.keys()

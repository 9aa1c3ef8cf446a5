"""Runtime configuration read from the environment (and an optional .env file)."""

import enum
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

# Present inside Docker containers
CONTAINER_MARKER = Path("/.dockerenv")
CONTAINER_ROOT = Path("/app")


class Deployment(str, enum.Enum):
    """Where dataset files physically live."""

    LOCAL = "local"
    MOUNTED = "mounted"
    BLOB = "blob"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def is_running_in_container(marker: Path = CONTAINER_MARKER) -> bool:
    """Detect whether the process runs inside a Docker container."""
    try:
        return marker.exists()
    except OSError:
        return False


@dataclass
class Settings:
    """All environment-dependent values of the service."""

    api_mode: str = ""
    cloud_service: Optional[str] = None
    in_container: bool = False
    root_path: Path = field(default_factory=Path.cwd)
    executable_path: Path = Path("udlf/bin/udlf")
    uploads_dir: Path = Path("uploads")
    outputs_dir: Path = Path("outputs")
    app_datasets_path: str = "/app/datasets"
    gcs_bucket_name: str = ""
    gcs_project_id: str = ""
    gcs_credentials_file: Optional[str] = None
    gcs_mount_path: str = "/mnt/gcs"
    kill_grace_seconds: float = 5.0
    restrict_dataset_paths: bool = False
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> "Settings":
        """
        Build settings from environment variables.

        A .env file is loaded first without overriding variables that are
        already set.

        Args:
            dotenv_path: Explicit .env file (default: nearest .env from cwd upwards)

        Returns:
            Settings instance
        """
        load_dotenv(dotenv_path=dotenv_path or find_dotenv(usecwd=True), override=False)

        in_container = is_running_in_container()
        root = CONTAINER_ROOT if in_container else Path.cwd()
        cloud_service = os.getenv("K_SERVICE") or None

        credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or None
        # Managed platform authenticates with its service identity
        if cloud_service:
            credentials = None

        return cls(
            api_mode=os.getenv("API_MODE", "").strip().lower(),
            cloud_service=cloud_service,
            in_container=in_container,
            root_path=root,
            executable_path=Path(os.getenv("EXECUTABLE_PATH", str(root / "udlf" / "bin" / "udlf"))),
            uploads_dir=Path(os.getenv("UPLOADS_DIR", str(root / "uploads"))),
            outputs_dir=Path(os.getenv("OUTPUTS_DIR", str(root / "outputs"))),
            app_datasets_path=os.getenv("APP_DATASETS_PATH", "/app/datasets"),
            gcs_bucket_name=os.getenv("GCS_BUCKET_NAME", ""),
            gcs_project_id=os.getenv("GCS_PROJECT_ID", ""),
            gcs_credentials_file=credentials,
            gcs_mount_path=os.getenv("GCS_MOUNT_PATH", "/mnt/gcs"),
            kill_grace_seconds=float(os.getenv("KILL_GRACE_SECONDS", "5")),
            restrict_dataset_paths=_env_bool("RESTRICT_DATASET_PATHS"),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "8080")),
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
        )

    @property
    def deployment(self) -> Deployment:
        """Deployment kind: demo mode reads from the blob store, mounted when on the managed platform."""
        if self.api_mode == "demo":
            if self.cloud_service:
                return Deployment.MOUNTED
            return Deployment.BLOB
        return Deployment.LOCAL

    @property
    def browse_root(self) -> str:
        return str(self.root_path)

    @property
    def allowed_roots(self) -> List[str]:
        """Directories the browser may enter."""
        if self.in_container:
            return [str(self.root_path / "Datasets")]
        return [
            str(self.root_path / "Datasets"),
            str(self.root_path / "outputs"),
            str(self.root_path / "uploads"),
        ]

    def default_dataset_paths(self) -> dict:
        """Fallback dataset paths used when a config omits them."""
        base = self.app_datasets_path.rstrip("/")
        return {
            "dataset_list": f"{base}/mpeg7/lists_mpeg7.txt",
            "class_list": f"{base}/mpeg7/classes_mpeg7.txt",
            "images_dir": f"{base}/mpeg7/original",
            "input_file": "",
        }

import stat
from datetime import datetime, timezone
from pathlib import Path

import pytest
from google.api_core import exceptions as gcs_exceptions

from udlf_api.settings import Settings

LIST_TEXT = "apple-1.gif\napple-2.gif\nbell-1.gif\n"
CLASSES_TEXT = "apple-1.gif:apple\napple-2.gif:apple\nbell-1.gif:bell\n"


class FakeBlobIterator(list):
    """List of blobs carrying the ``prefixes`` set like the real page iterator."""

    def __init__(self, blobs, prefixes):
        super().__init__(blobs)
        self.prefixes = set(prefixes)


class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name

    @property
    def size(self):
        return len(self.bucket.objects.get(self.name, b""))

    @property
    def updated(self):
        return datetime(2024, 1, 1, tzinfo=timezone.utc)

    def exists(self):
        return self.name in self.bucket.objects

    def download_as_bytes(self):
        if self.name not in self.bucket.objects:
            raise gcs_exceptions.NotFound(f"No such object: {self.name}")
        self.bucket.downloads.append(self.name)
        return self.bucket.objects[self.name]

    def download_to_filename(self, filename):
        Path(filename).write_bytes(self.download_as_bytes())

    def generate_signed_url(self, version, method, expiration):
        seconds = int(expiration.total_seconds())
        return f"https://storage.example/{self.name}?method={method}&version={version}&expires={seconds}"


class FakeBucket:
    """In-memory stand-in for ``google.cloud.storage.Bucket``."""

    def __init__(self, objects=None):
        self.objects = dict(objects or {})
        self.downloads = []

    def blob(self, name):
        return FakeBlob(self, name)

    def list_blobs(self, prefix=None, delimiter=None):
        prefix = prefix or ""
        blobs, prefixes = [], set()
        for name in sorted(self.objects):
            if not name.startswith(prefix):
                continue
            rest = name[len(prefix):]
            if delimiter and delimiter in rest:
                prefixes.add(prefix + rest.split(delimiter, 1)[0] + delimiter)
            else:
                blobs.append(FakeBlob(self, name))
        return FakeBlobIterator(blobs, prefixes)


@pytest.fixture
def fake_bucket():
    return FakeBucket({
        "app/Datasets/mpeg7/lists.txt": LIST_TEXT.encode(),
        "app/Datasets/mpeg7/classes.txt": CLASSES_TEXT.encode(),
        "app/Datasets/mpeg7/original/apple-1.gif": b"GIF89a",
    })


@pytest.fixture
def dataset_dir(tmp_path):
    """A small on-disk dataset with list and classes files."""
    root = tmp_path / "Datasets" / "mpeg7"
    root.mkdir(parents=True)
    (root / "lists.txt").write_text(LIST_TEXT)
    (root / "classes.txt").write_text(CLASSES_TEXT)
    (root / "original").mkdir()
    return root


def write_config(path: Path, **entries) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["# UDLF configuration"]
    lines += [f"{key}={value}" for key, value in entries.items()]
    path.write_text("\n".join(lines) + "\n")
    return path


def write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_binary(tmp_path):
    """Stand-in for the UDLF binary: fails if INPUT_FILE_LIST does not exist."""
    (tmp_path / "bin").mkdir()
    return write_script(
        tmp_path / "bin" / "udlf",
        'list=$(sed -n "s/^INPUT_FILE_LIST=//p" "$1")\n'
        'if [ ! -f "$list" ]; then\n'
        '  echo "Error: cannot open list file $list" >&2\n'
        "  exit 2\n"
        "fi\n"
        'echo "Running UDLF on $1"\n'
        'echo "Loaded $(wc -l < "$list") images"\n'
        'echo "done" > output.txt\n',
    )


@pytest.fixture
def settings(tmp_path, fake_binary):
    (tmp_path / "uploads").mkdir()
    (tmp_path / "outputs").mkdir()
    return Settings(
        root_path=tmp_path,
        executable_path=fake_binary,
        uploads_dir=tmp_path / "uploads",
        outputs_dir=tmp_path / "outputs",
        app_datasets_path=str(tmp_path / "Datasets"),
        kill_grace_seconds=1.0,
    )

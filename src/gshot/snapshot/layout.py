"""
On-disk layout of a gshot working copy.

    <root>/
        .gshotignore              # ignore list
        .gshot/
            commits/commits.json  # ordered commit history
            blobs/<digest>        # one file per unique content
            branches/branches.json
            config.yaml           # optional per-repository config
"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union

# Mode of every file gshot writes (mkstemp creates 0600)
FILE_MODE = 0o644


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def write_json_atomic(path: Path, payload: Any) -> None:
    """
    Write JSON to path so readers see either the old or the new file.

    The payload goes to a temporary file in the same directory, is fsynced,
    then renamed over path. The temporary file is removed on any failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_name, FILE_MODE)
        os.replace(temp_name, path)
    except BaseException:
        if os.path.exists(temp_name):
            os.remove(temp_name)
        raise


class RepositoryLayout:
    """Paths of a working copy's metadata directories."""

    def __init__(self, root: Union[str, Path], metadata_dir: str = ".gshot", ignore_file: str = ".gshotignore"):
        self.root = Path(root).resolve()
        self.metadata_dir_name = metadata_dir
        self.metadata_path = self.root / metadata_dir
        self.commits_path = self.metadata_path / "commits"
        self.blobs_path = self.metadata_path / "blobs"
        self.branches_path = self.metadata_path / "branches"
        self.commits_file = self.commits_path / "commits.json"
        self.ignore_file_name = ignore_file
        self.ignore_file = self.root / ignore_file

    def directories(self):
        return [self.metadata_path, self.commits_path, self.blobs_path, self.branches_path]

    def is_initialized(self) -> bool:
        return self.metadata_path.is_dir()

    def initialize(self) -> bool:
        """
        Create the metadata directories.

        Idempotent: existing directories and their content are left alone.

        Returns:
            True if the metadata directory did not exist before
        """
        created = not self.metadata_path.exists()
        for directory in self.directories():
            directory.mkdir(parents=True, exist_ok=True)
        if not self.ignore_file.exists():
            self.ignore_file.touch()
        return created

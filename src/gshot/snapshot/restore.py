"""Materialize commits back into the working tree"""

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Union

import aiofiles
import aiofiles.os

from .blobs import BlobStore
from .commits import Commit, CommitLog, FileRecord
from ..utils.config import RestoreMode
from ..utils.logging import get_logger
from ..utils.errors import GshotError, StorageError, ValidationError

logger = get_logger(__name__)


@dataclass
class RestoreResult:
    """Per-file outcome of a restore"""
    commit_id: int
    mode: RestoreMode
    restored: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "commit_id": self.commit_id,
            "mode": self.mode.value,
            "restored": self.restored,
            "failed": self.failed
        }


class RestoreEngine:
    """Writes the content of recorded commits back to disk

    Two modes are supported:

    - ``commit`` applies only the records stored on the target commit.
      Because a commit holds only the content that was novel when it was
      made, files unchanged at that commit keep whatever the working tree
      currently holds.
    - ``replay`` overlays the records of every commit up to and including
      the target in id order, keeping the last record per path, which
      rebuilds every file tracked at that point.

    Per-file failures are collected and do not stop the remaining files.
    """

    def __init__(self, root: Path, commit_log: CommitLog, blob_store: BlobStore, fsync: bool = True):
        self.root = Path(root).resolve()
        self.commit_log = commit_log
        self.blob_store = blob_store
        self.fsync = fsync

    def plan(self, commit_id: Union[int, str], mode: RestoreMode = RestoreMode.COMMIT) -> List[FileRecord]:
        """Records a restore to commit_id would write, in write order

        Raises:
            CommitNotFoundError: Unknown commit id
        """
        target = self.commit_log.find(commit_id)
        if RestoreMode(mode) == RestoreMode.COMMIT:
            return list(target.records)

        overlay: Dict[str, FileRecord] = {}
        for commit in self.commit_log.commits(up_to=target.id):
            for record in commit.records:
                overlay.pop(record.path, None)
                overlay[record.path] = record
        return list(overlay.values())

    async def restore_to(self, commit_id: Union[int, str], mode: RestoreMode = RestoreMode.COMMIT) -> RestoreResult:
        """Restore the working tree to a commit

        Args:
            commit_id: Target commit id
            mode: ``commit`` or ``replay``

        Returns:
            Files restored and files that failed with their error

        Raises:
            CommitNotFoundError: Unknown commit id (nothing is written)
        """
        mode = RestoreMode(mode)
        records = self.plan(commit_id, mode)
        target: Commit = self.commit_log.find(commit_id)
        result = RestoreResult(commit_id=target.id, mode=mode)

        for record in records:
            try:
                await self.restore_file(record)
            except GshotError as e:
                logger.error("restore_file_failed", path=record.path, digest=record.digest, error=e.message)
                result.failed[record.path] = e.message
            else:
                result.restored.append(record.path)

        logger.info(
            "restore_completed",
            commit_id=target.id,
            mode=mode.value,
            restored=len(result.restored),
            failed=len(result.failed)
        )
        return result

    async def restore_file(self, record: FileRecord) -> Path:
        """Overwrite or create one file from its blob and flush it to disk

        Raises:
            ValidationError: The record's path leaves the project root
            BlobNotFoundError: The blob is missing
            StorageError: The destination cannot be written
        """
        destination = self.destination_for(record.path)

        try:
            await aiofiles.os.makedirs(destination.parent, exist_ok=True)
        except OSError as e:
            raise StorageError("create_directory", str(destination.parent), cause=e) from e

        async with self.blob_store.open(record.digest) as src:
            try:
                async with aiofiles.open(destination, "wb") as dst:
                    while True:
                        chunk = await src.read(self.blob_store.chunk_size)
                        if not chunk:
                            break
                        await dst.write(chunk)
                    await dst.flush()
                    if self.fsync:
                        await asyncio.to_thread(os.fsync, dst.fileno())
            except OSError as e:
                raise StorageError("write_file", str(destination), cause=e) from e

        logger.debug("file_restored", path=record.path, digest=record.digest)
        return destination

    def destination_for(self, rel_path: str) -> Path:
        """Absolute working-tree path for a recorded path

        Raises:
            ValidationError: Absolute paths and paths escaping the root
        """
        pure = PurePosixPath(rel_path.replace("\\", "/"))
        if pure.is_absolute() or ".." in pure.parts or not pure.parts:
            raise ValidationError("path", rel_path, "must be relative to the project root")
        return self.root.joinpath(*pure.parts)

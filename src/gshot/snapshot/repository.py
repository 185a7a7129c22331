"""Working copy operations: init, commit, status, log, restore, branch"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .blobs import BlobStore
from .branches import Branch, BranchStore
from .commits import Commit, CommitLog, FileRecord, NoChanges
from .hasher import hash_file
from .layout import RepositoryLayout
from .restore import RestoreEngine, RestoreResult
from .scanner import IgnoreRules, iter_files
from ..utils.config import GshotConfig, RestoreMode, UnreadablePolicy
from ..utils.logging import get_logger
from ..utils.errors import RepositoryNotFoundError, StorageError, error_context

logger = get_logger(__name__)

# Errors a file can raise between being scanned and being copied into the
# blob store that the "skip" policy tolerates
_SKIPPABLE = (FileNotFoundError, PermissionError, IsADirectoryError)
_SKIPPABLE_OPERATIONS = ("hash", "copy_blob")


@dataclass
class SnapshotResult:
    """Outcome of a commit attempt"""
    outcome: Union[Commit, NoChanges]
    scanned: int
    skipped: Dict[str, str] = field(default_factory=dict)

    @property
    def committed(self) -> bool:
        return isinstance(self.outcome, Commit)

    @property
    def commit(self) -> Optional[Commit]:
        return self.outcome if isinstance(self.outcome, Commit) else None


@dataclass
class StatusReport:
    """Working tree compared against the commit log"""
    scanned: int
    novel: List[FileRecord]
    latest_id: Optional[int]
    branch: Optional[Branch]
    skipped: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "scanned": self.scanned,
            "novel": [record.to_dict() for record in self.novel],
            "latest_id": self.latest_id,
            "branch": self.branch.to_dict() if self.branch else None,
            "skipped": self.skipped
        }


class Repository:
    """A project directory and its gshot metadata

    Usage::

        repo = Repository(root, config)
        await repo.init()
        result = await repo.snapshot("first commit")
        await repo.restore(1)
    """

    def __init__(self, root: Union[str, Path] = ".", config: Optional[GshotConfig] = None):
        self.config = config or GshotConfig()
        repo_config = self.config.repository
        self.layout = RepositoryLayout(root, repo_config.metadata_dir, repo_config.ignore_file)
        self.root = self.layout.root

        self.blob_store = BlobStore(self.layout.blobs_path, chunk_size=self.config.snapshot.chunk_size)
        self.commit_log = CommitLog(self.layout.commits_file, novelty=self.config.snapshot.novelty)
        self.branch_store = BranchStore(self.layout.branches_path)
        self.restore_engine = RestoreEngine(
            self.root,
            self.commit_log,
            self.blob_store,
            fsync=self.config.restore.fsync
        )
        self._opened = False

    async def init(self) -> bool:
        """Create the metadata layout, the ignore file and the default branch

        Safe to call on an existing repository: nothing that exists is
        overwritten.

        Returns:
            True if a new repository was created
        """
        with error_context("repository", "init", path=str(self.layout.metadata_path)):
            created = await asyncio.to_thread(self.layout.initialize)
            if not self.branch_store.exists():
                self.branch_store.set(self.config.repository.default_branch, is_head=True)

        logger.info("repository_initialized", root=str(self.root), created=created)
        return created

    async def open(self) -> "Repository":
        """Load the commit log of an initialized repository

        Raises:
            RepositoryNotFoundError: init has not been run
            SerializationError: The commit history is corrupt
        """
        if not self.layout.is_initialized():
            raise RepositoryNotFoundError(self.root)
        if not self._opened:
            await self.commit_log.load()
            self._opened = True
        return self

    def ignore_rules(self) -> IgnoreRules:
        return IgnoreRules.load(
            self.root,
            self.layout.ignore_file_name,
            always_ignore=[self.layout.metadata_dir_name]
        )

    async def scan(self) -> List[str]:
        """Project-relative paths of every file a commit would consider"""
        rules = self.ignore_rules()
        return await asyncio.to_thread(lambda: list(iter_files(self.root, rules)))

    async def collect(self, store: bool = True) -> Tuple[List[FileRecord], Dict[str, str], int]:
        """Scan the working tree and digest every file

        Args:
            store: Put file contents into the blob store (False only hashes)

        Returns:
            (records in scan order, skipped path -> reason, files scanned)
        """
        paths = await self.scan()
        semaphore = asyncio.Semaphore(self.config.snapshot.max_parallel)
        skip_unreadable = self.config.snapshot.on_unreadable == UnreadablePolicy.SKIP

        async def digest_one(rel_path: str):
            source = self.root / rel_path
            async with semaphore:
                try:
                    if store:
                        digest = await self.blob_store.put(source)
                    else:
                        digest = await hash_file(source, self.config.snapshot.chunk_size)
                except StorageError as e:
                    if skip_unreadable and e.operation in _SKIPPABLE_OPERATIONS and isinstance(e.cause, _SKIPPABLE):
                        logger.warning("snapshot_file_skipped", path=rel_path, error=str(e.cause))
                        return rel_path, None, str(e.cause)
                    raise
            return rel_path, digest, None

        results = await asyncio.gather(*(digest_one(p) for p in paths))

        records = []
        skipped = {}
        for rel_path, digest, reason in results:
            if digest is None:
                skipped[rel_path] = reason
            else:
                records.append(FileRecord(path=rel_path, digest=digest))
        return records, skipped, len(paths)

    async def snapshot(self, description: str) -> SnapshotResult:
        """Commit every file whose content is novel

        Returns:
            The new commit, or NoChanges, plus scan statistics

        Raises:
            StorageError: A file could not be scanned, hashed or stored
        """
        await self.open()
        with error_context("repository", "commit"):
            records, skipped, scanned = await self.collect(store=True)
            outcome = await self.commit_log.append(
                description,
                records,
                branch=self.branch_store.current()
            )
        return SnapshotResult(outcome=outcome, scanned=scanned, skipped=skipped)

    async def status(self) -> StatusReport:
        """Report which files the next commit would record, without writing"""
        await self.open()
        with error_context("repository", "status"):
            records, skipped, scanned = await self.collect(store=False)
        return StatusReport(
            scanned=scanned,
            novel=self.commit_log.novel_records(records),
            latest_id=self.commit_log.latest_id,
            branch=self.branch_store.current(),
            skipped=skipped
        )

    async def log(self) -> List[Commit]:
        """Commits in id order"""
        await self.open()
        return self.commit_log.commits()

    async def restore(self, commit_id: Union[int, str], mode: Optional[RestoreMode] = None) -> RestoreResult:
        """Restore the working tree to a commit

        Raises:
            CommitNotFoundError: Unknown commit id (the tree is untouched)
        """
        await self.open()
        return await self.restore_engine.restore_to(commit_id, mode or self.config.restore.mode)

    def current_branch(self) -> Optional[Branch]:
        if not self.layout.is_initialized():
            raise RepositoryNotFoundError(self.root)
        return self.branch_store.current()

    def set_branch(self, name: str) -> Branch:
        """Replace the current branch record; later commits carry it"""
        if not self.layout.is_initialized():
            raise RepositoryNotFoundError(self.root)
        with error_context("repository", "branch"):
            return self.branch_store.set(name, is_head=True)

    async def verify(self) -> Dict[str, List[str]]:
        """Check stored blobs and the blobs referenced by history

        Returns:
            ``corrupted``: blobs whose bytes no longer match their digest
            ``missing``: digests referenced by a commit with no blob
        """
        await self.open()
        corrupted = await self.blob_store.verify_integrity()
        stored = set(await self.blob_store.list_digests())
        missing = sorted(self.commit_log.known_digests() - stored)
        if missing:
            logger.warning("referenced_blobs_missing", count=len(missing))
        return {"corrupted": corrupted, "missing": missing}

"""Append-only commit log"""

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

import aiofiles

from .branches import Branch
from .hasher import is_digest
from .layout import now_iso, write_json_atomic
from ..utils.config import NoveltyPolicy
from ..utils.logging import get_logger
from ..utils.errors import CommitNotFoundError, SerializationError, StorageError, ValidationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class FileRecord:
    """A project-relative path and the digest of its content"""
    path: str
    digest: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {"path": self.path, "hash": self.digest}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileRecord':
        """Create from dictionary"""
        path, digest = data["path"], data["hash"]
        if not isinstance(path, str) or not path:
            raise ValueError(f"invalid path {path!r}")
        if not is_digest(digest):
            raise ValueError(f"invalid hash {digest!r} for {path}")
        return cls(path=path, digest=digest)


@dataclass(frozen=True)
class Commit:
    """An immutable entry of the commit log"""
    id: int
    description: str
    records: Tuple[FileRecord, ...]
    timestamp: str
    branch: Optional[Branch] = None

    @property
    def paths(self) -> List[str]:
        return [record.path for record in self.records]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "description": self.description,
            "file_hash": [record.to_dict() for record in self.records],
            "timestamp": self.timestamp,
            "branch": self.branch.to_dict() if self.branch else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Commit':
        """Create from dictionary"""
        commit_id = data["id"]
        if not isinstance(commit_id, int) or isinstance(commit_id, bool) or commit_id < 1:
            raise ValueError(f"invalid commit id {commit_id!r}")
        branch = data.get("branch")
        return cls(
            id=commit_id,
            description=str(data.get("description", "")),
            records=tuple(FileRecord.from_dict(r) for r in (data.get("file_hash") or [])),
            timestamp=str(data.get("timestamp", "")),
            branch=Branch.from_dict(branch) if branch else None
        )


@dataclass(frozen=True)
class NoChanges:
    """Outcome of an append that found nothing novel to record"""
    candidates: int
    latest_id: Optional[int] = None

    def __bool__(self) -> bool:
        return False


class CommitLog:
    """Durable, ordered, append-only list of commits

    The whole history lives in one JSON file. It is read once into memory
    together with an index of every recorded digest and the last digest
    recorded per path; appends update the index and replace the file
    atomically.

    Appends within one process are serialized by a lock. Nothing guards
    against a second process appending at the same time.
    """

    def __init__(self, commits_file: Path, novelty: NoveltyPolicy = NoveltyPolicy.GLOBAL):
        """Initialize commit log

        Args:
            commits_file: Path of commits.json
            novelty: Rule deciding which candidate records are recorded
        """
        self.commits_file = Path(commits_file)
        self.novelty = NoveltyPolicy(novelty)

        self._commits: List[Commit] = []
        self._by_id: Dict[int, Commit] = {}
        self._digests: Set[str] = set()
        self._last_by_path: Dict[str, str] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    async def load(self) -> List[Commit]:
        """Read the persisted history

        A missing or empty file is an empty history.

        Raises:
            SerializationError: The file is not a valid commit history
            StorageError: The file exists but cannot be read
        """
        try:
            async with aiofiles.open(self.commits_file, "rb") as f:
                raw = await f.read()
        except FileNotFoundError:
            raw = b""
        except OSError as e:
            raise StorageError("read_commits", str(self.commits_file), cause=e) from e

        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError(self.commits_file, f"not UTF-8 text: {e.reason}") from e

        commits = self._parse(content) if content.strip() else []

        self._commits = []
        self._by_id = {}
        self._digests = set()
        self._last_by_path = {}
        for commit in sorted(commits, key=lambda c: c.id):
            if commit.id in self._by_id:
                raise SerializationError(self.commits_file, f"duplicate commit id {commit.id}")
            self._index(commit)
        self._loaded = True

        logger.debug("commit_log_loaded", path=str(self.commits_file), commits=len(self._commits))
        return list(self._commits)

    async def append(
        self,
        description: str,
        candidates: Iterable[FileRecord],
        branch: Optional[Branch] = None
    ) -> Union[Commit, NoChanges]:
        """Record the novel subset of candidates as a new commit

        Args:
            description: Commit message
            candidates: Records of the scanned working tree
            branch: Branch label stored on the commit

        Returns:
            The new commit, or NoChanges when nothing was novel
        """
        if not isinstance(description, str) or not description.strip():
            raise ValidationError("description", description, "Commit description cannot be empty")

        async with self._lock:
            if not self._loaded:
                await self.load()

            candidates = list(candidates)
            novel = self.novel_records(candidates)
            if not novel:
                logger.info("commit_no_changes", candidates=len(candidates))
                return NoChanges(candidates=len(candidates), latest_id=self.latest_id)

            commit = Commit(
                id=(self.latest_id or 0) + 1,
                description=description,
                records=tuple(novel),
                timestamp=now_iso(),
                branch=branch
            )

            payload = [c.to_dict() for c in self._commits] + [commit.to_dict()]
            try:
                await asyncio.to_thread(write_json_atomic, self.commits_file, payload)
            except OSError as e:
                raise StorageError("write_commits", str(self.commits_file), cause=e) from e

            self._index(commit)

        logger.info(
            "commit_created",
            commit_id=commit.id,
            files=len(commit.records),
            candidates=len(candidates),
            branch=branch.name if branch else None
        )
        return commit

    def novel_records(self, candidates: Iterable[FileRecord]) -> List[FileRecord]:
        """Filter candidates down to the records the next commit would hold"""
        novel = []
        seen = set()
        for record in candidates:
            if record in seen:
                continue
            seen.add(record)
            if self.novelty == NoveltyPolicy.PER_PATH:
                if self._last_by_path.get(record.path) != record.digest:
                    novel.append(record)
            elif record.digest not in self._digests:
                novel.append(record)
        return novel

    def find(self, commit_id: Union[int, str]) -> Commit:
        """Look a commit up by id

        Raises:
            CommitNotFoundError: No commit has this id
        """
        try:
            key = int(commit_id)
        except (TypeError, ValueError):
            raise CommitNotFoundError(commit_id)

        commit = self._by_id.get(key)
        if commit is None:
            raise CommitNotFoundError(commit_id)
        return commit

    def commits(self, up_to: Optional[int] = None) -> List[Commit]:
        """Commits in id order, optionally only those with id <= up_to"""
        if up_to is None:
            return list(self._commits)
        return [c for c in self._commits if c.id <= up_to]

    @property
    def latest_id(self) -> Optional[int]:
        return self._commits[-1].id if self._commits else None

    def latest(self) -> Optional[Commit]:
        return self._commits[-1] if self._commits else None

    def known_digests(self) -> Set[str]:
        return set(self._digests)

    def path_index(self) -> Dict[str, str]:
        """Last recorded digest of every path, in commit-id order"""
        return dict(self._last_by_path)

    def __len__(self) -> int:
        return len(self._commits)

    def _index(self, commit: Commit) -> None:
        self._commits.append(commit)
        self._by_id[commit.id] = commit
        for record in commit.records:
            self._digests.add(record.digest)
            self._last_by_path[record.path] = record.digest

    def _parse(self, content: str) -> List[Commit]:
        try:
            data = json.loads(content)
        except ValueError as e:
            raise SerializationError(self.commits_file, f"invalid JSON: {e}") from e

        if not isinstance(data, list):
            raise SerializationError(self.commits_file, "expected a list of commits")

        try:
            return [Commit.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(self.commits_file, f"invalid commit record: {e}") from e

"""Snapshot engine for gshot

This module provides:
- Streaming content hashing (SHA-256)
- Content-addressable blob storage with deduplication
- Working tree scanning with ignore rules
- An append-only commit log with a novelty filter
- Restore of commits into the working tree
"""

from .blobs import BlobStore
from .branches import Branch, BranchStore
from .commits import Commit, CommitLog, FileRecord, NoChanges
from .hasher import hash_file
from .restore import RestoreEngine, RestoreResult
from .repository import Repository, SnapshotResult, StatusReport
from .scanner import IgnoreRules, scan

__all__ = [
    "BlobStore",
    "Branch",
    "BranchStore",
    "Commit",
    "CommitLog",
    "FileRecord",
    "NoChanges",
    "hash_file",
    "RestoreEngine",
    "RestoreResult",
    "Repository",
    "SnapshotResult",
    "StatusReport",
    "IgnoreRules",
    "scan"
]

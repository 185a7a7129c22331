"""Branch record storage"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .layout import now_iso, write_json_atomic
from ..utils.logging import get_logger
from ..utils.errors import SerializationError, StorageError, ValidationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Branch:
    """Label carried by commits"""
    name: str
    is_head: bool
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "name": self.name,
            "is_head": self.is_head,
            "timestamp": self.timestamp
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Branch':
        """Create from dictionary"""
        return cls(
            name=data["name"],
            is_head=bool(data.get("is_head", False)),
            timestamp=data.get("timestamp", "")
        )


class BranchStore:
    """Persists the single current branch record

    ``branches.json`` holds a one-element list. Setting a branch replaces
    the record; there is no per-branch commit pointer.
    """

    def __init__(self, branches_path: Path):
        self.branches_path = Path(branches_path)
        self.branches_file = self.branches_path / "branches.json"

    def exists(self) -> bool:
        return self.branches_file.is_file()

    def current(self) -> Optional[Branch]:
        """Return the persisted branch record, or None if there is none

        Raises:
            SerializationError: branches.json is corrupt
        """
        try:
            with open(self.branches_file, "rb") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError("read_branches", str(self.branches_file), cause=e) from e

        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError(self.branches_file, f"not UTF-8 text: {e.reason}") from e

        if not content.strip():
            return None

        try:
            data = json.loads(content)
            if not isinstance(data, list):
                raise ValueError("expected a list of branch records")
            if not data:
                return None
            return Branch.from_dict(data[-1])
        except (ValueError, KeyError, TypeError) as e:
            raise SerializationError(self.branches_file, str(e)) from e

    def set(self, name: str, is_head: bool = True) -> Branch:
        """Replace the branch record

        Args:
            name: Branch name
            is_head: Whether the branch is the active one

        Returns:
            The new branch record
        """
        name = name.strip() if isinstance(name, str) else name
        if not name:
            raise ValidationError("name", name, "Branch name cannot be empty")

        branch = Branch(name=name, is_head=is_head, timestamp=now_iso())
        try:
            write_json_atomic(self.branches_file, [branch.to_dict()])
        except OSError as e:
            raise StorageError("write_branches", str(self.branches_file), cause=e) from e

        logger.info("branch_set", name=name, is_head=is_head)
        return branch

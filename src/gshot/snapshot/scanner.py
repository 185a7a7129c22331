"""Working tree discovery and ignore rules"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, List, Union

from ..utils.logging import get_logger
from ..utils.errors import StorageError, ValidationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class IgnoreRules:
    """Directory and file exclusions for a scan

    Entries match either an entry's name or its project-relative path.
    """
    dirs: FrozenSet[str] = field(default_factory=frozenset)
    files: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def load(cls, root: Union[str, Path], ignore_file: str, always_ignore: Iterable[str] = ()) -> "IgnoreRules":
        """Parse the ignore-list file at the project root

        One entry per line. Blank lines and lines starting with '#' are
        skipped. Entries naming an existing directory under root become
        directory rules and entries naming an existing file become file
        rules. An entry naming neither is both, so it also prunes
        directories of that name created later or deeper in the tree. A
        missing ignore file yields only the always_ignore directories.

        Raises:
            StorageError: The ignore file exists but cannot be read
            ValidationError: The ignore file is not UTF-8 text
        """
        root = Path(root)
        dirs = set(always_ignore)
        files = set()
        path = root / ignore_file

        try:
            with open(path, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            logger.debug("ignore_file_missing", path=str(path))
            lines = []
        except UnicodeDecodeError as e:
            raise ValidationError(ignore_file, str(path), f"ignore file must be UTF-8 text ({e.reason})") from e
        except OSError as e:
            raise StorageError("read_ignore_file", str(path), cause=e) from e

        for line in lines:
            entry = line.strip()
            if not entry or entry.startswith("#"):
                continue
            entry = entry.replace("\\", "/").rstrip("/")
            if entry.startswith("./"):
                entry = entry[2:]
            if not entry:
                continue
            target = root / entry
            if target.is_dir():
                dirs.add(entry)
            elif target.exists():
                files.add(entry)
            else:
                dirs.add(entry)
                files.add(entry)

        return cls(dirs=frozenset(dirs), files=frozenset(files))

    def ignores_dir(self, name: str, rel_path: str) -> bool:
        return name in self.dirs or rel_path in self.dirs

    def ignores_file(self, name: str, rel_path: str) -> bool:
        return name in self.files or rel_path in self.files


def iter_files(root: Union[str, Path], rules: IgnoreRules) -> Iterator[str]:
    """Depth-first walk of root yielding project-relative file paths

    Entries of each directory are visited in name order; a subdirectory is
    fully walked before its later siblings. Ignored directories are not
    descended into. Symlinked directories are not followed. Any OS error
    aborts the walk.

    Raises:
        StorageError: A directory could not be listed
    """
    root = Path(root)

    def walk(directory: Path, prefix: str) -> Iterator[str]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise StorageError("scan", str(directory), cause=e) from e

        for entry in entries:
            rel_path = f"{prefix}{entry.name}"
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_file = entry.is_file()
            except OSError as e:
                raise StorageError("scan", entry.path, cause=e) from e

            if is_dir:
                if rules.ignores_dir(entry.name, rel_path):
                    logger.debug("scan_skip_dir", path=rel_path)
                    continue
                yield from walk(Path(entry.path), f"{rel_path}/")
            elif is_file:
                if rules.ignores_file(entry.name, rel_path):
                    continue
                yield rel_path

    yield from walk(root, "")


def scan(root: Union[str, Path], ignore_dirs: Iterable[str] = (), ignore_files: Iterable[str] = ()) -> List[str]:
    """Return every candidate file path under root in traversal order."""
    rules = IgnoreRules(dirs=frozenset(ignore_dirs), files=frozenset(ignore_files))
    files = list(iter_files(root, rules))
    logger.debug("scan_completed", root=str(root), files=len(files))
    return files

"""
Pytest configuration and shared fixtures for gshot tests.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from typing import AsyncGenerator, Dict, Generator

# Add src to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gshot.snapshot import Repository
from gshot.utils.config import GshotConfig


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def project(temp_dir: Path) -> Path:
    """A project root holding a.txt="hello" and b.txt="world"."""
    root = temp_dir / "project"
    root.mkdir()
    (root / "a.txt").write_text("hello")
    (root / "b.txt").write_text("world")
    return root


@pytest.fixture
def config() -> GshotConfig:
    """Default configuration with a small chunk size to exercise streaming."""
    return GshotConfig(snapshot={"chunk_size": 4})


@pytest.fixture
async def repo(project: Path, config: GshotConfig) -> AsyncGenerator[Repository, None]:
    """An initialized repository over the sample project."""
    repository = Repository(project, config)
    await repository.init()
    yield repository


def tree_contents(root: Path, exclude: str = ".gshot") -> Dict[str, bytes]:
    """Relative path -> bytes of every file under root outside exclude."""
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file() and exclude not in path.relative_to(root).parts
    }


@pytest.fixture
def snapshot_tree():
    """Callable returning the working tree contents of a root."""
    return tree_contents

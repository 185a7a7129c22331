"""
Tests for repository-level operations.
"""

import json

import pytest

from gshot.snapshot import NoChanges, Repository
from gshot.snapshot.hasher import hash_bytes
from gshot.utils.config import GshotConfig
from gshot.utils.errors import RepositoryNotFoundError, StorageError, ValidationError


class TestInit:
    """Test repository initialization."""

    @pytest.mark.asyncio
    async def test_creates_layout(self, project):
        repo = Repository(project)

        assert await repo.init() is True

        gshot = project / ".gshot"
        assert (gshot / "commits").is_dir()
        assert (gshot / "blobs").is_dir()
        assert (gshot / "branches").is_dir()
        assert (project / ".gshotignore").is_file()
        branches = json.loads((gshot / "branches" / "branches.json").read_text())
        assert len(branches) == 1
        assert branches[0]["name"] == "master"
        assert branches[0]["is_head"] is True

    @pytest.mark.asyncio
    async def test_reinit_keeps_history(self, repo, project):
        await repo.snapshot("init")
        (project / ".gshotignore").write_text("build\n")
        repo.set_branch("dev")
        history = (project / ".gshot" / "commits" / "commits.json").read_bytes()

        assert await Repository(project).init() is False

        assert (project / ".gshot" / "commits" / "commits.json").read_bytes() == history
        assert (project / ".gshotignore").read_text() == "build\n"
        assert Repository(project).current_branch().name == "dev"

    @pytest.mark.asyncio
    async def test_default_branch_from_config(self, project):
        repo = Repository(project, GshotConfig(repository={"default_branch": "main"}))
        await repo.init()

        assert repo.current_branch().name == "main"

    @pytest.mark.asyncio
    async def test_operations_require_init(self, project):
        repo = Repository(project)

        with pytest.raises(RepositoryNotFoundError):
            await repo.snapshot("msg")
        with pytest.raises(RepositoryNotFoundError):
            await repo.log()
        with pytest.raises(RepositoryNotFoundError):
            repo.set_branch("dev")


class TestSnapshot:
    """Test commits through the repository."""

    @pytest.mark.asyncio
    async def test_first_commit(self, repo):
        result = await repo.snapshot("init")

        assert result.committed
        assert result.scanned == 3
        assert result.commit.id == 1
        assert result.commit.branch.name == "master"
        assert sorted(await repo.blob_store.list_digests()) == sorted(
            [hash_bytes(b""), hash_bytes(b"hello"), hash_bytes(b"world")]
        )

    @pytest.mark.asyncio
    async def test_second_commit_without_changes(self, repo):
        await repo.snapshot("init")

        result = await repo.snapshot("again")

        assert not result.committed
        assert isinstance(result.outcome, NoChanges)
        assert len(await repo.log()) == 1

    @pytest.mark.asyncio
    async def test_metadata_directory_never_scanned(self, repo):
        await repo.snapshot("init")

        assert not any(path.startswith(".gshot/") for path in await repo.scan())

    @pytest.mark.asyncio
    async def test_ignore_file_respected(self, repo, project):
        (project / "build").mkdir()
        (project / "build" / "out.bin").write_bytes(b"\x00")
        (project / "notes.tmp").write_text("scratch")
        (project / ".gshotignore").write_text("build\nnotes.tmp\n")

        result = await repo.snapshot("init")

        assert sorted(result.commit.paths) == [".gshotignore", "a.txt", "b.txt"]

    @pytest.mark.asyncio
    async def test_branch_label_carried_by_commits(self, repo, project):
        await repo.snapshot("on master")
        repo.set_branch("feature")
        (project / "c.txt").write_text("feature work")

        result = await repo.snapshot("on feature")

        commits = await repo.log()
        assert [c.branch.name for c in commits] == ["master", "feature"]
        assert result.commit.branch.is_head

    @pytest.mark.asyncio
    async def test_reopened_repository_sees_history(self, repo, project, config):
        await repo.snapshot("init")

        reopened = Repository(project, config)
        result = await reopened.snapshot("again")

        assert not result.committed
        assert [c.description for c in await reopened.log()] == ["init"]

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, repo):
        with pytest.raises(ValidationError):
            await repo.snapshot("")


class TestUnreadableFiles:
    """Test the explicit skip policy for files that vanish after scanning."""

    @pytest.fixture
    def vanishing_scan(self, monkeypatch):
        def install(repository):
            async def scan():
                return ["a.txt", "ghost.txt", "b.txt"]
            monkeypatch.setattr(repository, "scan", scan)
        return install

    @pytest.mark.asyncio
    async def test_default_policy_fails(self, repo, vanishing_scan):
        vanishing_scan(repo)

        with pytest.raises(StorageError) as exc_info:
            await repo.snapshot("init")

        assert exc_info.value.path.endswith("ghost.txt")
        assert await repo.log() == []

    @pytest.mark.asyncio
    async def test_skip_policy_records_the_rest(self, project):
        repo = Repository(project, GshotConfig(snapshot={"on_unreadable": "skip"}))
        await repo.init()

        async def scan():
            return ["a.txt", "ghost.txt", "b.txt"]
        repo.scan = scan

        result = await repo.snapshot("init")

        assert result.commit.paths == ["a.txt", "b.txt"]
        assert list(result.skipped) == ["ghost.txt"]

    @pytest.mark.asyncio
    async def test_skip_policy_covers_file_vanishing_during_copy(self, project):
        repo = Repository(project, GshotConfig(snapshot={"on_unreadable": "skip"}))
        await repo.init()
        (project / "ghost.txt").write_text("here for the hash only")
        write = repo.blob_store._write

        async def vanish_then_write(path, digest):
            if path.name == "ghost.txt":
                path.unlink()
            return await write(path, digest)
        repo.blob_store._write = vanish_then_write

        result = await repo.snapshot("init")

        assert result.commit.paths == [".gshotignore", "a.txt", "b.txt"]
        assert list(result.skipped) == ["ghost.txt"]


class TestStatusAndVerify:
    """Test read-only inspection."""

    @pytest.mark.asyncio
    async def test_status_does_not_write(self, repo, project):
        report = await repo.status()

        assert sorted(r.path for r in report.novel) == [".gshotignore", "a.txt", "b.txt"]
        assert report.latest_id is None
        assert await repo.blob_store.list_digests() == []
        assert await repo.log() == []

    @pytest.mark.asyncio
    async def test_status_after_commit(self, repo, project):
        await repo.snapshot("init")
        (project / "b.txt").write_text("changed")

        report = await repo.status()

        assert [r.path for r in report.novel] == ["b.txt"]
        assert report.latest_id == 1
        assert report.to_dict()["branch"]["name"] == "master"

    @pytest.mark.asyncio
    async def test_verify_clean(self, repo):
        await repo.snapshot("init")

        assert await repo.verify() == {"corrupted": [], "missing": []}

    @pytest.mark.asyncio
    async def test_verify_reports_problems(self, repo):
        await repo.snapshot("init")
        repo.blob_store.path_for(hash_bytes(b"hello")).unlink()
        repo.blob_store.path_for(hash_bytes(b"world")).write_bytes(b"corrupt")

        report = await repo.verify()

        assert report["missing"] == [hash_bytes(b"hello")]
        assert report["corrupted"] == [hash_bytes(b"world")]

    @pytest.mark.asyncio
    async def test_written_files_are_world_readable(self, repo, project):
        await repo.snapshot("init")

        written = [
            repo.layout.commits_file,
            repo.branch_store.branches_file,
            repo.blob_store.path_for(hash_bytes(b"hello")),
        ]
        assert [path.stat().st_mode & 0o777 for path in written] == [0o644] * 3

"""
Tests for the command line interface.
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from gshot.cli import build_parser, cli_overrides, run_cli


@pytest.fixture
def gshot(project, capsys):
    """Run gshot against the sample project and return (exit code, stdout, stderr)."""
    def run(*args):
        code = run_cli(["-C", str(project), *args])
        captured = capsys.readouterr()
        return code, captured.out, captured.err
    return run


class TestParser:
    """Test argument parsing."""

    def test_restore_alias_and_mode(self):
        args = build_parser().parse_args(["back-to", "3", "--replay"])

        assert args.commit_id == "3"
        assert cli_overrides(args) == {"restore": {"mode": "replay"}}

    def test_verbosity(self):
        args = build_parser().parse_args(["-vv", "log"])

        assert cli_overrides(args) == {"logging": {"level": "DEBUG"}}

    def test_no_command(self, capsys):
        assert run_cli([]) == 1


class TestCommands:
    """Test commands end to end."""

    def test_workflow(self, gshot, project):
        code, out, _ = gshot("init")
        assert code == 0
        assert "Initialized empty gshot repository" in out

        code, out, _ = gshot("commit", "init")
        assert code == 0
        assert "[master 1] init: 3 file(s) recorded" in out

        code, out, _ = gshot("commit", "-m", "again")
        assert code == 0
        assert "No files changed" in out

        (project / "a.txt").write_text("hello!")
        code, out, _ = gshot("status")
        assert code == 0
        assert "a.txt" in out
        assert "b.txt" not in out

        code, out, _ = gshot("commit", "update a")
        assert "[master 2] update a: 1 file(s) recorded" in out

        code, out, _ = gshot("log", "--json")
        commits = json.loads(out)
        assert [c["id"] for c in commits] == [1, 2]
        assert commits[1]["file_hash"][0]["path"] == "a.txt"

        code, out, _ = gshot("log")
        assert out.index("commit 2") < out.index("commit 1")

        code, out, _ = gshot("restore", "1")
        assert code == 0
        assert (project / "a.txt").read_text() == "hello"

        code, out, _ = gshot("verify")
        assert code == 0
        assert "All blobs verified" in out

    def test_reinit(self, gshot):
        gshot("init")

        code, out, _ = gshot("init")

        assert code == 0
        assert "Reinitialized existing gshot repository" in out

    def test_restore_unknown_commit(self, gshot):
        gshot("init")
        gshot("commit", "init")

        code, _, err = gshot("restore", "99")

        assert code == 2
        assert "Commit 99 not found" in err

    def test_commit_without_init(self, gshot, project):
        code, _, err = gshot("commit", "msg")

        assert code == 2
        assert "gshot init" in err
        assert not (project / ".gshot").exists()

    def test_commit_requires_message(self, gshot):
        gshot("init")

        code, _, err = gshot("commit")

        assert code == 2
        assert "commit message is required" in err

    def test_branch(self, gshot):
        gshot("init")

        code, out, _ = gshot("branch")
        assert out.strip() == "master"

        code, out, _ = gshot("branch", "dev")
        assert code == 0
        assert "Switched to branch dev" in out

        gshot("commit", "on dev")
        code, out, _ = gshot("log", "--json")
        assert json.loads(out)[0]["branch"]["name"] == "dev"

    def test_corrupt_history(self, gshot, project):
        gshot("init")
        (project / ".gshot" / "commits" / "commits.json").write_text("{oops")

        code, _, err = gshot("log")

        assert code == 4
        assert "commits.json" in err

    def test_history_not_utf8(self, gshot, project):
        gshot("init")
        (project / ".gshot" / "commits" / "commits.json").write_bytes(b"\xff\xfe[garbage")

        code, _, err = gshot("log")

        assert code == 4
        assert "UTF-8" in err

    def test_empty_log(self, gshot):
        gshot("init")

        code, out, _ = gshot("log")

        assert code == 0
        assert "No commits found." in out


class TestFreshProcess:
    """Test the console entry point in a new interpreter."""

    @pytest.fixture
    def gshot_process(self, project):
        src = Path(__file__).parent.parent / "src"
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(src), env.get("PYTHONPATH")]))

        def run(*args):
            return subprocess.run(
                [sys.executable, "-m", "gshot", "-C", str(project), *args],
                capture_output=True,
                text=True,
                env=env,
                timeout=60,
            )
        return run

    def test_json_output_is_clean(self, gshot_process, project):
        assert gshot_process("init").returncode == 0
        assert gshot_process("commit", "init").returncode == 0
        (project / "a.txt").write_text("changed")

        log = gshot_process("log", "--json")
        status = gshot_process("status", "--json")

        assert log.returncode == 0
        assert [c["description"] for c in json.loads(log.stdout)] == ["init"]
        assert status.returncode == 0
        assert [r["path"] for r in json.loads(status.stdout)["novel"]] == ["a.txt"]

    def test_debug_logging_goes_to_stderr(self, gshot_process):
        gshot_process("init")

        result = gshot_process("-vv", "log", "--json")

        assert json.loads(result.stdout) == []
        assert "commit_log_loaded" in result.stderr

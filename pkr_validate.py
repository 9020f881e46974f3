#!/usr/bin/env python3
"""Input validation for the portable packer.

Every value that can reach a file operation or the build subprocess passes
through here first:

- ``validate_target``: exact membership in a closed allow-list of target
  triples. No pattern matching, trimming or case folding.
- ``validate_folder``: resolve to an absolute, symlink-free path and require
  an existing directory. Callers only use the returned path afterwards.
- ``resolve_entry_point``: the executable must sit strictly inside the
  source folder; its root-relative POSIX path is what gets stored.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

ALLOWED_TARGETS: frozenset[str] = frozenset(
    {
        # Linux
        "x86_64-unknown-linux-gnu",
        "x86_64-unknown-linux-musl",
        "aarch64-unknown-linux-gnu",
        "aarch64-unknown-linux-musl",
        "armv7-unknown-linux-gnueabihf",
        "i686-unknown-linux-gnu",
        # Windows
        "x86_64-pc-windows-msvc",
        "i686-pc-windows-msvc",
        "aarch64-pc-windows-msvc",
        "x86_64-pc-windows-gnu",
        "i686-pc-windows-gnu",
        # macOS
        "x86_64-apple-darwin",
        "aarch64-apple-darwin",
        # Android
        "aarch64-linux-android",
        "armv7-linux-androideabi",
        "i686-linux-android",
        "x86_64-linux-android",
        # iOS
        "aarch64-apple-ios",
        "x86_64-apple-ios",
    }
)

PathLike = Union[str, "os.PathLike[str]"]


class ValidationError(ValueError):
    """Caller input rejected before any mutating action."""


class InvalidTarget(ValidationError):
    def __init__(self, target: str):
        self.target = target
        super().__init__(
            f"Invalid target {target!r}. Allowed targets: {', '.join(sorted(ALLOWED_TARGETS))}"
        )


class FolderNotFound(ValidationError):
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Folder {path} does not exist")


class NotADirectory(ValidationError):
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Path {path} is not a directory")


class EntryPointOutsideRoot(ValidationError):
    def __init__(self, executable: str, folder: Path):
        self.executable = executable
        self.folder = folder
        super().__init__(
            f"The executable must be located in the source folder: {executable} is not inside {folder}"
        )


def validate_target(target: Optional[str]) -> Optional[str]:
    """Return target unchanged if allow-listed, None for None/"" and raise otherwise."""
    if target is None or target == "":
        return None
    if target not in ALLOWED_TARGETS:
        raise InvalidTarget(target)
    return target


def validate_folder(path: PathLike) -> Path:
    """Resolve path and require an existing directory.

    Raises:
        FolderNotFound: If the resolved path does not exist
        NotADirectory: If it exists but is not a directory
    """
    resolved = Path(path).resolve()
    if not resolved.exists():
        raise FolderNotFound(resolved)
    if not resolved.is_dir():
        raise NotADirectory(resolved)
    return resolved


def default_executable_name() -> str:
    return "rustdesk.exe" if os.name == "nt" else "rustdesk"


def resolve_entry_point(folder: PathLike, executable: Optional[str] = None) -> str:
    """Root-relative POSIX path of the executable to launch after extraction.

    A bare name, or any relative path not already spelled as
    ``<folder>/...``, is taken relative to folder. The absolute, lexically normalized result must
    lie strictly inside the absolute folder.

    Raises:
        EntryPointOutsideRoot: If the executable escapes the folder
    """
    folder_str = os.fspath(folder)
    exe = executable or default_executable_name()

    prefix = folder_str.rstrip("/\\")
    spelled_under_folder = any(exe.startswith(prefix + sep) for sep in {"/", os.sep})
    if not os.path.isabs(exe) and not spelled_under_folder:
        exe = os.path.join(folder_str, exe)

    root = os.path.abspath(folder_str)
    exe_abs = os.path.abspath(exe)

    try:
        inside = os.path.commonpath([root, exe_abs]) == root
    except ValueError:
        # Different drives on Windows
        inside = False

    if not inside or exe_abs == root:
        raise EntryPointOutsideRoot(executable or exe, Path(root))

    return Path(os.path.relpath(exe_abs, root)).as_posix()


def main(argv: Optional[list[str]] = None, prog: Optional[str] = None) -> int:
    """Print the allowed target triples, one per line."""
    import argparse

    argparse.ArgumentParser(
        prog=prog, description="List allowed cross-compilation targets"
    ).parse_args(argv)
    for target in sorted(ALLOWED_TARGETS):
        print(target)
    return 0

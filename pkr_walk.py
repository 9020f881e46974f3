#!/usr/bin/env python3
"""
Portable packer tree walker.

Enumerates every file below a source folder and yields it as a POSIX-style
path relative to that folder. The enumeration order is the archive's record
order, so it must not change between two walks of the same tree.

Walk rules:
1. Recurse into every subdirectory; symlinked directories are not descended
2. Yield every name that is a file, following file symlinks so that links
   such as libfoo.so -> libfoo.so.1 are packed under their own name
3. Sockets, FIFOs and dangling links are skipped
4. A directory that cannot be listed aborts the walk
5. Names are visited in sorted order inside each directory
6. Relative paths use "/" separators with any leading "./" removed

SPDX-License-Identifier: Apache-2.0
"""

import os
from pathlib import Path
from typing import Iterator

# =============================================================================
# Constants
# =============================================================================

# Longest single name most filesystems accept
MAX_PATH_COMPONENT_LENGTH = 255

# Longest archive path accepted on extraction
MAX_PATH_LENGTH = 4096


# =============================================================================
# Archive Paths
# =============================================================================


class PathValidationError(ValueError):
    """Raised when an archive path cannot be restored safely."""


def _host_separators() -> set:
    return {sep for sep in (os.sep, os.altsep) if sep and sep != "/"}


def validate_path(path: str) -> None:
    """
    Check that an archive path names a file strictly below the extraction root.

    Archive paths are "/"-separated and relative. Every component must be a
    plain name: not empty, not "." or "..", without NUL bytes and without a
    character the host treats as a separator (backslash on Windows).

    Raises:
        PathValidationError: naming the offending path
    """
    if not path:
        raise PathValidationError("Empty path")
    if len(path) > MAX_PATH_LENGTH:
        raise PathValidationError(f"Path longer than {MAX_PATH_LENGTH} characters: {path[:50]}...")
    if "\x00" in path:
        raise PathValidationError(f"Path contains NUL byte: {path!r}")
    if path.startswith("/"):
        raise PathValidationError(f"Absolute path not allowed: {path}")

    separators = _host_separators()
    for name in path.split("/"):
        if name in ("", ".", ".."):
            raise PathValidationError(f"Path component {name!r} not allowed: {path}")
        if separators.intersection(name):
            raise PathValidationError(f"Path component contains a host separator: {path}")
        if len(name) > MAX_PATH_COMPONENT_LENGTH:
            raise PathValidationError(
                f"Path component longer than {MAX_PATH_COMPONENT_LENGTH} characters: {name[:50]}..."
            )


def strip_dot_prefix(path: str) -> str:
    """Remove any leading "./" segments."""
    while path.startswith("./"):
        path = path[2:]
    return path


def normalize_path(path: str, sep: str = os.sep) -> str:
    """
    Archive form of a host relative path.

    Only the host separator is turned into "/", so a POSIX name that contains
    a backslash is kept as one name.
    """
    if sep != "/":
        path = path.replace(sep, "/")
    return strip_dot_prefix(path)


# =============================================================================
# Tree Enumeration
# =============================================================================


def check_root(root: Path) -> Path:
    """
    Resolve a walk root and make sure it is an existing directory.

    Raises:
        FileNotFoundError: If root doesn't exist
        NotADirectoryError: If root is not a directory
    """
    root = Path(root)

    if not root.exists():
        raise FileNotFoundError(f"Source folder not found: {root}")

    if not root.is_dir():
        raise NotADirectoryError(f"Source folder is not a directory: {root}")

    return root.resolve()


def _raise(exc: OSError) -> None:
    raise exc


def enumerate_files(root: Path) -> Iterator[tuple[str, Path]]:
    """
    Enumerate every file under a source folder.

    Args:
        root: Path to the folder being packed

    Yields:
        Tuples of (relative_path, absolute_path)

    Raises:
        OSError: If a directory below root cannot be listed
    """
    root = check_root(root)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"

        # Sorting in place also fixes the order os.walk descends in
        dirnames.sort()

        for filename in sorted(filenames):
            abs_path = Path(dirpath) / filename
            if not abs_path.is_file():
                continue
            yield normalize_path(prefix + filename), abs_path


def count_files(root: Path) -> int:
    """Number of files that a pack of root would contain."""
    return sum(1 for _ in enumerate_files(root))

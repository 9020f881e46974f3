#!/usr/bin/env python3
"""
Per-file checksum and compression for the portable packer.

Every file is read whole, hashed and compressed on its own:

1. checksum: MD5 of the raw bytes, stored as its 32-character lowercase hex
   form encoded to ASCII (the unpacker compares hex strings)
2. payload: Brotli stream at the requested quality (0 = fastest, 11 = smallest)

SPDX-License-Identifier: Apache-2.0
"""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import NamedTuple, Optional

import brotli

from pkr_walk import enumerate_files

logger = logging.getLogger("pkr")

# =============================================================================
# Constants
# =============================================================================

MIN_LEVEL = 0
MAX_LEVEL = 11
DEFAULT_LEVEL = MAX_LEVEL

# Width of the stored checksum in bytes (hex-encoded 128-bit digest)
CHECKSUM_LENGTH = 32

CHECKSUM_ENCODING = "ascii"


# =============================================================================
# Data Types
# =============================================================================


class PackedFile(NamedTuple):
    """One file after compression, ready for the archive encoder."""

    path: str  # Root-relative path, / separators
    data: bytes  # Brotli-compressed content
    checksum: bytes  # MD5 hex digest of the uncompressed content, ASCII
    size: int  # Uncompressed size in bytes


# =============================================================================
# Checksum / Compression
# =============================================================================


def validate_level(level: int) -> int:
    """Return level unchanged if it is a valid Brotli quality, else raise ValueError."""
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValueError(f"Compression level must be an integer, got {level!r}")
    if level < MIN_LEVEL or level > MAX_LEVEL:
        raise ValueError(
            f"Invalid compression level {level}; expected {MIN_LEVEL}-{MAX_LEVEL}"
        )
    return level


def compute_checksum(content: bytes) -> bytes:
    """MD5 hex digest of content as 32 ASCII bytes."""
    return hashlib.md5(content).hexdigest().encode(CHECKSUM_ENCODING)


def compress(content: bytes, level: int = DEFAULT_LEVEL) -> bytes:
    return brotli.compress(content, quality=level)


def decompress(data: bytes) -> bytes:
    return brotli.decompress(data)


def pack_file(path: Path, level: int = DEFAULT_LEVEL) -> tuple[bytes, bytes, int]:
    """
    Read a file and produce its archive payload.

    Args:
        path: File to read
        level: Brotli quality

    Returns:
        Tuple of (compressed bytes, checksum, uncompressed size)

    Raises:
        OSError: If the file cannot be read
    """
    with open(path, "rb") as f:
        content = f.read()

    return compress(content, level), compute_checksum(content), len(content)


# =============================================================================
# Checksum Table
# =============================================================================


def _pack_entry(rel_path: str, abs_path: Path, level: int) -> PackedFile:
    logger.debug(f"Processing {rel_path}...")
    data, checksum, size = pack_file(abs_path, level)
    return PackedFile(path=rel_path, data=data, checksum=checksum, size=size)


def build_checksum_table(
    folder: Path, level: int = DEFAULT_LEVEL, jobs: Optional[int] = 1
) -> list[PackedFile]:
    """
    Compress and checksum every file under folder.

    Args:
        folder: Source folder
        level: Brotli quality (0-11)
        jobs: Worker threads; results always keep the walk order

    Returns:
        PackedFile list in enumeration order

    Raises:
        ValueError: If level or jobs is out of range
        FileNotFoundError / NotADirectoryError: If folder is unusable
        OSError: If any file cannot be read
    """
    validate_level(level)
    if jobs is None or jobs < 1:
        raise ValueError(f"jobs must be a positive integer, got {jobs!r}")

    files = list(enumerate_files(folder))

    if jobs == 1:
        return [_pack_entry(rel, path, level) for rel, path in files]

    # Executor.map yields results in submission order
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        return list(pool.map(lambda item: _pack_entry(item[0], item[1], level), files))

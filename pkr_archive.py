#!/usr/bin/env python3
"""Portable archive (data.bin) encoder, reader and extraction helpers.

Layout, all lengths big-endian u32:

    b"rustdesk"
    { path_len | path (UTF-8) | data_len | brotli data | md5 hex (32 bytes) } *
    b"rustdesk"
    entry point (UTF-8), until end of file

The reader is a small state machine. The trailer literal is only checked at
record boundaries, so payload bytes that happen to contain it are harmless.
"""

from __future__ import annotations

import io
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterable, NamedTuple, Optional, Union

from pkr_digest import CHECKSUM_LENGTH, compute_checksum, decompress
from pkr_walk import strip_dot_prefix, validate_path

logger = logging.getLogger("pkr")

MAGIC = b"rustdesk"
LENGTH_FIELD_SIZE = 4
MAX_FIELD_LENGTH = 2 ** (8 * LENGTH_FIELD_SIZE) - 1
ENCODING = "utf-8"

ARCHIVE_NAME = "data.bin"

EXECUTABLE_MODE = 0o755

# Mode a plain open(path, "wb") would create, before the umask
DEFAULT_FILE_MODE = 0o666


class ArchiveFormatError(ValueError):
    """Raised when an archive cannot be encoded or parsed."""


class ArchiveEntry(NamedTuple):
    path: str
    data: bytes
    checksum: bytes


class Archive(NamedTuple):
    entries: tuple[ArchiveEntry, ...]
    entry_point: str


class ExtractStats(NamedTuple):
    written: int
    skipped: int


# =============================================================================
# Encoder
# =============================================================================


def _length_field(length: int, what: str, path: str) -> bytes:
    if length > MAX_FIELD_LENGTH:
        raise ArchiveFormatError(
            f"{what} of {path!r} is {length} bytes; the format allows at most {MAX_FIELD_LENGTH}"
        )
    return length.to_bytes(LENGTH_FIELD_SIZE, byteorder="big")


def _write_records(out: BinaryIO, entries: Iterable, entry_point: str) -> int:
    written = out.write(MAGIC)
    for entry in entries:
        path_bytes = entry.path.encode(ENCODING)
        if len(entry.checksum) != CHECKSUM_LENGTH:
            raise ArchiveFormatError(
                f"Checksum of {entry.path!r} is {len(entry.checksum)} bytes; "
                f"expected {CHECKSUM_LENGTH}"
            )
        written += out.write(_length_field(len(path_bytes), "Path", entry.path))
        written += out.write(path_bytes)
        written += out.write(_length_field(len(entry.data), "Compressed data", entry.path))
        written += out.write(entry.data)
        written += out.write(entry.checksum)
    written += out.write(MAGIC)
    written += out.write(entry_point.encode(ENCODING))
    return written


def encode_archive(entries: Iterable, entry_point: str) -> bytes:
    """Serialize entries (anything with path/data/checksum) in the order given."""
    buf = io.BytesIO()
    _write_records(buf, entries, entry_point)
    return buf.getvalue()


def _umask_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return DEFAULT_FILE_MODE & ~umask


def write_archive(entries: Iterable, entry_point: str, destination: Path) -> int:
    """Write the archive to destination and return its size in bytes.

    Records are written in the order received, duplicates included. The bytes
    go to a temporary file in the same directory that replaces destination
    only once complete; on failure it is removed and the error re-raised.
    """
    destination = Path(destination)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent
    )
    try:
        with os.fdopen(fd, "wb") as out:
            written = _write_records(out, entries, entry_point)
            out.flush()
            os.fsync(out.fileno())
        # mkstemp creates 0600; give data.bin the permissions open() would
        os.chmod(tmp_name, _umask_mode())
        os.replace(tmp_name, destination)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.info(f"Archive has been written to {destination} ({written:,} bytes)")
    return written


# =============================================================================
# Reader
# =============================================================================


class _Cursor:
    """Bounds-checked sequential reader over the archive bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def at_magic(self) -> bool:
        return self.data.startswith(MAGIC, self.offset)

    def take(self, count: int, what: str) -> bytes:
        end = self.offset + count
        if end > len(self.data):
            raise ArchiveFormatError(
                f"Truncated archive: {what} needs {count} bytes at offset {self.offset}, "
                f"only {len(self.data) - self.offset} left"
            )
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def take_length(self, what: str) -> int:
        return int.from_bytes(self.take(LENGTH_FIELD_SIZE, what), byteorder="big")

    def rest(self) -> bytes:
        chunk = self.data[self.offset :]
        self.offset = len(self.data)
        return chunk


def _decode_text(raw: bytes, what: str) -> str:
    try:
        return raw.decode(ENCODING)
    except UnicodeDecodeError as exc:
        raise ArchiveFormatError(f"{what} is not valid UTF-8: {raw[:50]!r}") from exc


def read_archive(data: bytes) -> Archive:
    """Parse archive bytes into entries and the entry point."""
    cursor = _Cursor(data)
    if cursor.take(len(MAGIC), "header") != MAGIC:
        raise ArchiveFormatError("Not a portable archive: magic header mismatch")

    entries: list[ArchiveEntry] = []
    while True:
        # Record boundary: either the trailer or the next path length
        if cursor.at_magic():
            cursor.take(len(MAGIC), "trailer")
            break
        if cursor.offset >= len(data):
            raise ArchiveFormatError("Truncated archive: missing trailer")

        path_length = cursor.take_length("path length")
        path = _decode_text(cursor.take(path_length, "path"), "Entry path")
        data_length = cursor.take_length("data length")
        payload = cursor.take(data_length, f"data of {path!r}")
        checksum = cursor.take(CHECKSUM_LENGTH, f"checksum of {path!r}")
        entries.append(ArchiveEntry(path=path, data=payload, checksum=checksum))

    entry_point = _decode_text(cursor.rest(), "Entry point")
    return Archive(entries=tuple(entries), entry_point=entry_point)


def load_archive(path: Path) -> Archive:
    return read_archive(Path(path).read_bytes())


def decompress_entry(entry: ArchiveEntry) -> bytes:
    """Decompressed content of an entry, checked against its stored checksum."""
    try:
        content = decompress(entry.data)
    except Exception as exc:
        raise ArchiveFormatError(f"Cannot decompress {entry.path!r}: {exc}") from exc
    if compute_checksum(content) != entry.checksum:
        raise ArchiveFormatError(f"Checksum mismatch for {entry.path!r}")
    return content


# =============================================================================
# Extraction
# =============================================================================


def _restore_target(dest: Path, rel_path: str) -> Path:
    # Older producers store paths as "./name"
    rel_path = strip_dot_prefix(rel_path)
    validate_path(rel_path)
    target = (dest / rel_path).resolve()
    if not target.is_relative_to(dest):
        raise ValueError(f"Archive entry escapes destination: {rel_path}")
    return target


def extract_archive(
    archive: Union[Archive, Path], dest: Path, entry_point: Optional[str] = None
) -> ExtractStats:
    """Restore every entry below dest.

    Files whose current content already matches the stored checksum are
    skipped. The entry point is marked executable on POSIX systems. When the
    same path occurs twice the later record wins.
    """
    if not isinstance(archive, Archive):
        archive = load_archive(archive)

    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    dest = dest.resolve()

    written = skipped = 0
    for entry in archive.entries:
        target = _restore_target(dest, entry.path)
        if target.is_file() and compute_checksum(target.read_bytes()) == entry.checksum:
            logger.debug(f"skip {entry.path}")
            skipped += 1
            continue
        content = decompress_entry(entry)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.debug(f"writing {target}")
        written += 1

    exe = entry_point if entry_point is not None else archive.entry_point
    if exe and os.name == "posix":
        exe_path = _restore_target(dest, exe)
        if exe_path.is_file():
            exe_path.chmod(EXECUTABLE_MODE)

    return ExtractStats(written=written, skipped=skipped)

#!/usr/bin/env python3
"""Verify, list and extract portable archives.

Checks performed by ``verify``:
    AR-000  archive file can be read
    AR-001  magic header present
    AR-002  record stream parses up to the trailer
    AR-003  every entry decompresses and matches its stored checksum
    AR-004  no path occurs twice (warning)
    AR-005  entry point names a packed file (warning)
    AR-006  entry count and size summary

Usage:
    pkr verify data.bin
    pkr verify data.bin --json

Exit codes:
    0 = Verification passed
    1 = Verification failed
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import brotli

from pkr_archive import (
    MAGIC,
    Archive,
    ArchiveEntry,
    ArchiveFormatError,
    extract_archive,
    load_archive,
    read_archive,
)
from pkr_digest import compute_checksum
from pkr_log import configure_logging

# =============================================================================
# Report types
# =============================================================================


class EntryStatus(Enum):
    OK = "ok"
    CORRUPT = "corrupt"
    CHECKSUM_MISMATCH = "checksum-mismatch"


@dataclass
class EntryCheck:
    """Outcome of decompressing one record."""

    path: str
    checksum: str
    compressed_size: int
    status: EntryStatus
    size: Optional[int] = None
    duplicate: bool = False
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "md5": self.checksum,
            "size": self.size,
            "compressedSize": self.compressed_size,
            "duplicate": self.duplicate,
        }


@dataclass
class Problem:
    rule_id: str
    message: str
    fatal: bool = True
    detail: Optional[str] = None


@dataclass
class ArchiveReport:
    """Everything ``verify`` learned about one archive."""

    source: str
    entry_point: Optional[str] = None
    entries: List[EntryCheck] = field(default_factory=list)
    problems: List[Problem] = field(default_factory=list)

    def fail(self, rule_id: str, message: str, detail: Optional[str] = None) -> None:
        self.problems.append(Problem(rule_id, message, True, detail))

    def warn(self, rule_id: str, message: str, detail: Optional[str] = None) -> None:
        self.problems.append(Problem(rule_id, message, False, detail))

    @property
    def errors(self) -> List[Problem]:
        return [p for p in self.problems if p.fatal]

    @property
    def warnings(self) -> List[Problem]:
        return [p for p in self.problems if not p.fatal]

    @property
    def passed(self) -> bool:
        return not self.errors

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def total_size(self) -> int:
        return sum(e.size or 0 for e in self.entries)

    @property
    def compressed_size(self) -> int:
        return sum(e.compressed_size for e in self.entries)

    def summary(self) -> str:
        return (
            f"{len(self.entries)} entries, {self.total_size:,} bytes uncompressed, "
            f"{self.compressed_size:,} bytes compressed"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "archive": self.source,
            "passed": self.passed,
            "hasWarnings": self.has_warnings,
            "entryPoint": self.entry_point,
            "entryCount": len(self.entries),
            "totalSize": self.total_size,
            "entries": [e.to_dict() for e in self.entries],
            "problems": [
                {
                    "ruleId": p.rule_id,
                    "severity": "error" if p.fatal else "warning",
                    "message": p.message,
                    "detail": p.detail,
                }
                for p in self.problems
            ],
        }

    def render(self, verbose: bool = False) -> str:
        lines = [f"Archive: {self.source}"]
        if self.entry_point is not None:
            lines.append(f"Entry point: {self.entry_point or '(none)'}")
            lines.append(f"[AR-006] {self.summary()}")

        if verbose and self.entries:
            lines.append("")
            width = max(len(s.value) for s in EntryStatus)
            for e in self.entries:
                size = "?" if e.size is None else f"{e.size:,}"
                mark = " (duplicate)" if e.duplicate else ""
                lines.append(
                    f"  {e.status.value:<{width}}  {e.path}  "
                    f"{size} <- {e.compressed_size:,} bytes{mark}"
                )

        for title, problems in (("Errors", self.errors), ("Warnings", self.warnings)):
            if not problems:
                continue
            lines.append("")
            lines.append(f"{title} ({len(problems)}):")
            for p in problems:
                lines.append(f"  [{p.rule_id}] {p.message}")
                if p.detail and verbose:
                    lines.append(f"      {p.detail}")

        if not self.passed:
            result = "FAILED"
        elif self.has_warnings:
            result = "PASSED WITH WARNINGS"
        else:
            result = "PASSED"
        lines.extend(["", f"Result: {result}"])
        return "\n".join(lines)


# =============================================================================
# Verification
# =============================================================================


def check_entry(entry: ArchiveEntry) -> EntryCheck:
    """AR-003 for a single record."""
    checksum = entry.checksum.decode("ascii", errors="replace")
    try:
        content = brotli.decompress(entry.data)
    except brotli.error as e:
        return EntryCheck(
            entry.path, checksum, len(entry.data), EntryStatus.CORRUPT, detail=str(e)
        )

    status = EntryStatus.OK
    if compute_checksum(content) != entry.checksum:
        status = EntryStatus.CHECKSUM_MISMATCH
    return EntryCheck(entry.path, checksum, len(entry.data), status, size=len(content))


def check_archive(archive: Archive, report: ArchiveReport) -> None:
    """AR-003 to AR-005 over a parsed archive."""
    report.entry_point = archive.entry_point
    counts = Counter(entry.path for entry in archive.entries)

    for entry in archive.entries:
        check = check_entry(entry)
        check.duplicate = counts[entry.path] > 1
        report.entries.append(check)
        if check.status is EntryStatus.CORRUPT:
            report.fail("AR-003", f"Cannot decompress {check.path}", check.detail)
        elif check.status is EntryStatus.CHECKSUM_MISMATCH:
            report.fail("AR-003", f"Checksum mismatch: {check.path}", f"stored md5 {check.checksum}")

    duplicates = sorted(path for path, n in counts.items() if n > 1)
    if duplicates:
        report.warn(
            "AR-004",
            f"{len(duplicates)} path(s) occur more than once; the last record wins on extraction",
            ", ".join(duplicates[:10]),
        )

    if not archive.entry_point:
        report.warn("AR-005", "Archive has no entry point")
    elif archive.entry_point not in counts:
        report.warn("AR-005", f"Entry point is not a packed file: {archive.entry_point}")


def verify_archive_bytes(data: bytes, source: str = "<bytes>") -> ArchiveReport:
    report = ArchiveReport(source)

    if not data.startswith(MAGIC):
        report.fail("AR-001", "Magic header mismatch; not a portable archive")
        return report

    try:
        archive = read_archive(data)
    except ArchiveFormatError as e:
        report.fail("AR-002", "Archive structure is invalid", str(e))
        return report

    check_archive(archive, report)
    return report


def verify_archive(archive_path: pathlib.Path) -> ArchiveReport:
    try:
        data = pathlib.Path(archive_path).read_bytes()
    except OSError as e:
        report = ArchiveReport(str(archive_path))
        report.fail("AR-000", f"Cannot read archive: {e}")
        return report
    return verify_archive_bytes(data, source=str(archive_path))


# =============================================================================
# Listing
# =============================================================================


def format_listing_json(archive: Archive) -> str:
    return json.dumps(
        {
            "entryPoint": archive.entry_point,
            "entryCount": len(archive.entries),
            "entries": [
                {
                    "path": e.path,
                    "md5": e.checksum.decode("ascii", errors="replace"),
                    "compressedSize": len(e.data),
                }
                for e in archive.entries
            ],
        },
        indent=2,
    )


def format_listing_human(archive: Archive) -> str:
    lines = [
        f"Entry point: {archive.entry_point}",
        f"Files: {len(archive.entries)}",
        "",
        "Entries:",
    ]
    for entry in archive.entries:
        lines.append(f"  {entry.path}")
        lines.append(
            f"    md5:{entry.checksum.decode('ascii', errors='replace')} "
            f"({len(entry.data):,} bytes compressed)"
        )
    return "\n".join(lines)


# =============================================================================
# CLI
# =============================================================================


def main(argv: Optional[List[str]] = None, prog: Optional[str] = None) -> int:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Verify a portable archive (data.bin)",
    )
    parser.add_argument("archive", type=pathlib.Path, help="Path to data.bin")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="List every entry and show problem details",
    )
    parser.add_argument("--json", action="store_true", help="Output report as JSON")
    args = parser.parse_args(argv)

    report = verify_archive(args.archive)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(report.render(verbose=args.verbose))

    return 0 if report.passed else 1


def list_main(argv: Optional[List[str]] = None, prog: Optional[str] = None) -> int:
    parser = argparse.ArgumentParser(
        prog=prog, description="List the contents of a portable archive"
    )
    parser.add_argument("archive", type=pathlib.Path, help="Path to data.bin")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    args = parser.parse_args(argv)

    try:
        archive = load_archive(args.archive)
    except (ArchiveFormatError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(format_listing_json(archive))
    else:
        print(format_listing_human(archive))
    return 0


def extract_main(argv: Optional[List[str]] = None, prog: Optional[str] = None) -> int:
    parser = argparse.ArgumentParser(prog=prog, description="Extract a portable archive")
    parser.add_argument("archive", type=pathlib.Path, help="Path to data.bin")
    parser.add_argument("dest", type=pathlib.Path, help="Destination folder")
    parser.add_argument("--verbose", "-v", action="count", default=0)
    parser.add_argument("--quiet", "-q", action="count", default=0)
    args = parser.parse_args(argv)
    logger = configure_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        stats = extract_archive(args.archive, args.dest)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.info(f"Extracted to {args.dest}: {stats.written} written, {stats.skipped} unchanged")
    return 0


if __name__ == "__main__":
    sys.exit(main())

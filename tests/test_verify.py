from __future__ import annotations

import json
from pathlib import Path

import pkr_archive
import pkr_digest
import pkr_verify
from pkr_archive import MAGIC, ArchiveEntry
from pkr_verify import EntryStatus


def _entry(path: str, content: bytes) -> ArchiveEntry:
    return ArchiveEntry(path, pkr_digest.compress(content, 5), pkr_digest.compute_checksum(content))


def _write(tmp_path: Path, entries, entry_point: str) -> Path:
    dest = tmp_path / "data.bin"
    pkr_archive.write_archive(entries, entry_point, dest)
    return dest


def _rules(report: pkr_verify.ArchiveReport) -> list[str]:
    return [p.rule_id for p in report.problems]


def test_valid_archive_passes(tmp_path: Path) -> None:
    path = _write(tmp_path, [_entry("app.exe", b"A" * 10), _entry("x/y", b"")], "app.exe")
    report = pkr_verify.verify_archive(path)

    assert report.passed
    assert not report.has_warnings
    assert report.problems == []
    assert report.entry_point == "app.exe"
    assert [(e.path, e.status, e.size) for e in report.entries] == [
        ("app.exe", EntryStatus.OK, 10),
        ("x/y", EntryStatus.OK, 0),
    ]
    assert report.total_size == 10
    assert report.summary().startswith("2 entries, 10 bytes uncompressed")


def test_bad_magic_fails(tmp_path: Path) -> None:
    path = tmp_path / "data.bin"
    path.write_bytes(b"PK\x03\x04 not ours")
    report = pkr_verify.verify_archive(path)
    assert not report.passed
    assert _rules(report) == ["AR-001"]
    assert report.entries == []


def test_truncated_archive_fails(tmp_path: Path) -> None:
    path = _write(tmp_path, [_entry("a", b"abc")], "a")
    path.write_bytes(path.read_bytes()[:20])
    report = pkr_verify.verify_archive(path)
    assert not report.passed
    assert _rules(report) == ["AR-002"]
    assert "Truncated" in report.errors[0].detail


def test_checksum_mismatch_is_reported_per_entry(tmp_path: Path) -> None:
    good = _entry("a", b"abc")
    bad = ArchiveEntry("b", good.data, b"f" * 32)
    path = _write(tmp_path, [good, bad], "a")
    report = pkr_verify.verify_archive(path)

    assert not report.passed
    assert [e.status for e in report.entries] == [EntryStatus.OK, EntryStatus.CHECKSUM_MISMATCH]
    assert report.entries[1].size == 3
    assert [p.message for p in report.errors] == ["Checksum mismatch: b"]


def test_corrupt_stream_is_reported_per_entry() -> None:
    entry = ArchiveEntry("broken", b"definitely not brotli", b"0" * 32)
    check = pkr_verify.check_entry(entry)
    assert check.status is EntryStatus.CORRUPT
    assert check.size is None
    assert check.compressed_size == len(entry.data)


def test_duplicates_and_missing_entry_point_warn(tmp_path: Path) -> None:
    path = _write(tmp_path, [_entry("a", b"1"), _entry("a", b"2")], "launcher.exe")
    report = pkr_verify.verify_archive(path)
    assert report.passed
    assert report.has_warnings
    assert _rules(report) == ["AR-004", "AR-005"]
    assert all(e.duplicate for e in report.entries)


def test_missing_file_reported(tmp_path: Path) -> None:
    report = pkr_verify.verify_archive(tmp_path / "nope.bin")
    assert not report.passed
    assert _rules(report) == ["AR-000"]


def test_empty_archive_without_entry_point_warns() -> None:
    report = pkr_verify.verify_archive_bytes(MAGIC + MAGIC)
    assert report.passed
    assert [p.message for p in report.warnings] == ["Archive has no entry point"]


def test_report_to_dict_carries_entries_and_problems(tmp_path: Path) -> None:
    good = _entry("app", b"abc")
    path = _write(tmp_path, [good, ArchiveEntry("app", good.data, b"0" * 32)], "app")
    payload = json.loads(json.dumps(pkr_verify.verify_archive(path).to_dict()))

    assert payload["passed"] is False
    assert payload["hasWarnings"] is True
    assert payload["entryPoint"] == "app"
    assert payload["entryCount"] == 2
    assert payload["totalSize"] == 6
    assert [e["status"] for e in payload["entries"]] == ["ok", "checksum-mismatch"]
    assert payload["entries"][0]["duplicate"] is True
    assert [(p["ruleId"], p["severity"]) for p in payload["problems"]] == [
        ("AR-003", "error"),
        ("AR-004", "warning"),
    ]


def test_render_lists_entries_and_result(tmp_path: Path) -> None:
    path = _write(tmp_path, [_entry("app", b"abc"), _entry("app", b"abc")], "app")
    report = pkr_verify.verify_archive(path)

    short = report.render()
    assert "Entry point: app" in short
    assert "[AR-006] 2 entries" in short
    assert "Warnings (1):" in short
    assert "(duplicate)" not in short
    assert short.endswith("Result: PASSED WITH WARNINGS")

    detailed = report.render(verbose=True)
    assert "  ok " in detailed
    assert "(duplicate)" in detailed
    assert "app" in report.warnings[0].detail


def test_render_failed_report(tmp_path: Path) -> None:
    report = pkr_verify.verify_archive(tmp_path / "nope.bin")
    text = report.render()
    assert "Errors (1):" in text
    assert "[AR-000] Cannot read archive" in text
    assert text.endswith("Result: FAILED")


def test_listing_formatters() -> None:
    archive = pkr_archive.Archive(
        entries=(_entry("app.exe", b"AAAAAAAAAA"), _entry("assets/logo.png", b"\x01\x02\x03")),
        entry_point="app.exe",
    )
    payload = json.loads(pkr_verify.format_listing_json(archive))
    assert payload["entryPoint"] == "app.exe"
    assert payload["entryCount"] == 2
    assert payload["entries"][1]["path"] == "assets/logo.png"
    assert payload["entries"][0]["md5"] == pkr_digest.compute_checksum(b"AAAAAAAAAA").decode()

    human = pkr_verify.format_listing_human(archive)
    assert "Entry point: app.exe" in human
    assert "Files: 2" in human
    assert "assets/logo.png" in human

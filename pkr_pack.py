#!/usr/bin/env python3
"""Pack a build output folder into a portable launcher archive.

Pipeline:
1. Validate target, source folder, output folder and entry point (nothing
   is written if any check fails)
2. Walk the source folder; checksum and Brotli-compress every file
3. Write <output>/data.bin
4. Write <output>/app_metadata.toml
5. Run ``cargo build --release [--target T]`` in <output>

Usage:
    # Linux
    python pkr_pack.py -f ../rustdesk-portable-packer/test -o . -e ./test/main.py

    # Windows
    python pkr_pack.py -f ..\\rustdesk\\flutter\\build\\windows\\runner\\Release -o .

Exit codes:
    0 = Success
    1 = Invalid input, I/O or archive format error
    2 = Launcher build failed
    3 = Unexpected error
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import NamedTuple, Optional

from pkr_archive import ARCHIVE_NAME, ArchiveFormatError, write_archive
from pkr_build import DownstreamBuildError, build_portable
from pkr_config import PackOptions, resolve_options
from pkr_digest import MAX_LEVEL, MIN_LEVEL, build_checksum_table
from pkr_log import configure_logging
from pkr_metadata import write_app_metadata
from pkr_validate import (
    ValidationError,
    resolve_entry_point,
    validate_folder,
    validate_target,
)

logger = logging.getLogger("pkr")


class PackResult(NamedTuple):
    archive_path: pathlib.Path
    metadata_path: pathlib.Path
    entry_point: str
    entry_count: int
    total_bytes: int  # Uncompressed
    archive_bytes: int
    target: Optional[str]
    built: bool


def pack(options: PackOptions) -> PackResult:
    """Run the whole pack pipeline described in the module docstring."""
    target = validate_target(options.target)
    source = validate_folder(options.folder)
    output = validate_folder(options.output_folder)
    entry_point = resolve_entry_point(options.folder, options.executable)

    logger.info(f"Executable path: {entry_point}")
    logger.info(f"Compression level: {options.level}")

    table = build_checksum_table(source, options.level, jobs=options.jobs)
    archive_path = output / ARCHIVE_NAME
    archive_bytes = write_archive(table, entry_point, archive_path)
    metadata_path = write_app_metadata(output)

    if options.build:
        build_portable(output, target)

    return PackResult(
        archive_path=archive_path,
        metadata_path=metadata_path,
        entry_point=entry_point,
        entry_count=len(table),
        total_bytes=sum(f.size for f in table),
        archive_bytes=archive_bytes,
        target=target,
        built=options.build,
    )


def _level(value: str) -> int:
    try:
        level = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid compression level: {value!r}")
    if level < MIN_LEVEL or level > MAX_LEVEL:
        raise argparse.ArgumentTypeError(
            f"compression level must be {MIN_LEVEL}-{MAX_LEVEL}, got {level}"
        )
    return level


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Pack a folder into a portable launcher archive (data.bin)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -f ./rustdesk -o ../portable
  %(prog)s -f ./build -e app/rustdesk.exe -t x86_64-pc-windows-msvc
  %(prog)s -f ./build -l 5 --no-build
  %(prog)s --config pack.yaml -v
        """,
    )
    parser.add_argument(
        "-f",
        "--folder",
        dest="folder",
        help="folder to compress, default is './rustdesk'",
    )
    parser.add_argument(
        "-o",
        "--output",
        dest="output_folder",
        help="the root of portable packer project, default is './'",
    )
    parser.add_argument(
        "-e",
        "--executable",
        dest="executable",
        help="startup file in --folder, default is rustdesk.exe (rustdesk on non-Windows hosts)",
    )
    parser.add_argument(
        "-t",
        "--target",
        dest="target",
        help="the target used by cargo (see: pkr targets)",
    )
    parser.add_argument(
        "-l",
        "--level",
        dest="level",
        type=_level,
        help="compression level 0-11, default is 11, highest",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        dest="jobs",
        type=int,
        help="number of files compressed in parallel, default is 1",
    )
    parser.add_argument(
        "--config",
        type=pathlib.Path,
        help="YAML file with default values for the options above",
    )
    parser.add_argument(
        "--no-build",
        dest="build",
        action="store_const",
        const=False,
        help="write data.bin and app_metadata.toml without running cargo",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="show every file as it is processed",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="reduce output; pass twice for errors only",
    )
    return parser


def main(argv: Optional[list[str]] = None, prog: Optional[str] = None) -> int:
    args = build_parser(prog).parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        options = resolve_options(
            {
                "folder": args.folder,
                "output_folder": args.output_folder,
                "executable": args.executable,
                "target": args.target,
                "level": args.level,
                "jobs": args.jobs,
                "build": args.build,
            },
            config_path=args.config,
        )
        result = pack(options)
        logger.info(
            f"Packed {result.entry_count} files ({result.total_bytes:,} bytes) "
            f"into {result.archive_path} ({result.archive_bytes:,} bytes)"
        )
        return 0

    except DownstreamBuildError as e:
        if e.stdout:
            print(e.stdout, file=sys.stderr)
        if e.stderr:
            print(e.stderr, file=sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except (ValidationError, ArchiveFormatError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        return 3


if __name__ == "__main__":
    sys.exit(main())

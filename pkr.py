#!/usr/bin/env python3
"""pkr: pack a build folder into a portable launcher and inspect the result.

    pkr pack      build data.bin + app_metadata.toml, then run cargo
    pkr verify    check every record of a data.bin
    pkr list      show the records of a data.bin
    pkr extract   restore a data.bin into a folder
    pkr targets   print the cross-compilation allow-list
"""

from __future__ import annotations

import importlib
import sys
from typing import Callable, List, NamedTuple, Optional

EXIT_USAGE = 2


class Command(NamedTuple):
    module: str
    function: str
    synopsis: str
    summary: str


_COMMANDS: dict[str, Command] = {
    "pack": Command(
        "pkr_pack",
        "main",
        "[-f FOLDER] [-o OUTPUT] [-e EXE] [-t TARGET] [-l 0-11] [--no-build]",
        "Pack a folder into data.bin and build the launcher",
    ),
    "verify": Command("pkr_verify", "main", "ARCHIVE [--json] [-v]", "Verify a portable archive"),
    "list": Command("pkr_verify", "list_main", "ARCHIVE [--json]", "List archive records"),
    "extract": Command("pkr_verify", "extract_main", "ARCHIVE DEST", "Restore an archive"),
    "targets": Command("pkr_validate", "main", "", "Show allowed cross-compilation targets"),
}

_EXIT_CODES = (
    (0, "success, or verification passed"),
    (1, "invalid input, unreadable or corrupt archive, verification failed"),
    (EXIT_USAGE, "cargo build failed, or bad command line"),
    (3, "unexpected error while packing"),
)


def _render_help() -> str:
    width = max(len(name) for name in _COMMANDS)
    lines = ["Portable Packer", "", "Usage:"]
    lines += [f"  pkr {name} {cmd.synopsis}".rstrip() for name, cmd in _COMMANDS.items()]
    lines += ["", "Commands:"]
    lines += [f"  {name:<{width}}  {cmd.summary}" for name, cmd in _COMMANDS.items()]
    lines += ["", "Exit codes:"]
    lines += [f"  {code}  {meaning}" for code, meaning in _EXIT_CODES]
    lines += ["", "Run: pkr <command> --help for command-specific options."]
    return "\n".join(lines)


def _entry_point(command: Command) -> Callable[..., int]:
    return getattr(importlib.import_module(command.module), command.function)


def run(name: str, argv: List[str]) -> int:
    """Run one subcommand in-process and return its exit code."""
    entry = _entry_point(_COMMANDS[name])
    try:
        return entry(argv, prog=f"pkr {name}")
    except SystemExit as exc:
        # argparse: 0 after --help, 2 on a usage error
        if exc.code is None:
            return 0
        return exc.code if isinstance(exc.code, int) else EXIT_USAGE


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if not argv:
        print(_render_help(), file=sys.stderr)
        return EXIT_USAGE

    if argv[0] in {"-h", "--help"}:
        print(_render_help())
        return 0

    command, *rest = argv
    if command not in _COMMANDS:
        choices = ", ".join(_COMMANDS)
        print(f"Error: unknown command {command!r} (choose from {choices})", file=sys.stderr)
        return EXIT_USAGE

    return run(command, rest)


if __name__ == "__main__":
    sys.exit(main())

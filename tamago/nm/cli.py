"""
tamago-nm: list the symbols of objects and binaries.

    tamago-nm [--version] file...

A binary image lists `0x<address>\\t<name>`; an object collection lists
`<name>\\t<type>` for every exported declaration. With more than one file a
`file <name>` line precedes each listing. The first unreadable or
unrecognized file ends the run with status 1.
"""
from __future__ import annotations

import argparse
import sys
from typing import TextIO

from tamago.backend.symbol_reader import inspect_file
from tamago.internals.errors import TamagoError, UnrecognizedFormatError
from tamago.internals.version import print_banner

PROG = "tamago-nm"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog=PROG, description="List symbols of tamago objects and binaries")
    ap.add_argument("files", nargs="*", metavar="file", help="Object collection or binary image")
    ap.add_argument("--version", action="store_true", help="Print version information and exit")
    return ap


def list_symbols(files: list[str], out: TextIO) -> None:
    """Write the listing of every file to out.

    Raises:
        TamagoError: for the first file that cannot be read or decoded.
    """
    for path in files:
        if len(files) > 1:
            out.write(f"file {path}\n")
        for line in inspect_file(path):
            out.write(line + "\n")


def _report(e: TamagoError) -> None:
    print(f"{PROG}: {e.message}", file=sys.stderr)
    if isinstance(e, UnrecognizedFormatError):
        for failure in e.failures:
            print(f"  {failure.message}", file=sys.stderr)


def main(argv: list[str] | None = None, out: TextIO | None = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    if args.version:
        print_banner(PROG)
        return 0
    if not args.files:
        ap.print_usage(sys.stderr)
        print(f"{PROG}: error: no input files", file=sys.stderr)
        return 2

    out = out or sys.stdout
    try:
        try:
            list_symbols(args.files, out)
        finally:
            out.flush()
    except TamagoError as e:
        _report(e)
        return 1
    except OSError as e:
        print(f"{PROG}: {e.strerror or e}", file=sys.stderr)
        return 1
    return 0


def cli_main() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    cli_main()

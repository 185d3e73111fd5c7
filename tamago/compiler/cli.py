"""
Command line entry point of the tamago driver.

    tamago [flags] operands...

Operands and flags may be interleaved. Exit status: 0 on success, 1 for
input, front-end, link and output errors, 2 for usage errors.
"""
from __future__ import annotations

import argparse
import sys
import traceback

from tamago.compiler.config import diag_switches, resolve_config
from tamago.compiler.constants import EXTRA_OPTIONS, PROG
from tamago.compiler.pipeline import run
from tamago.internals.errors import FrontendError, InternalError, TamagoError
from tamago.internals.version import print_banner


# Flags whose value is only ever attached (-O2, -Wall)
ATTACHED_ONLY = ("-O", "-W")


class UsageHelpAction(argparse.Action):
    """Print the flag list to stderr and exit with the usage status."""

    def __init__(self, option_strings, dest=argparse.SUPPRESS, default=argparse.SUPPRESS, help=None):
        super().__init__(option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_help(sys.stderr)
        parser.exit(2)


def attach_empty_values(argv: list[str]) -> list[str]:
    """A bare -O or -W gets an empty attached value instead of the next operand."""
    return [f"{arg}=" if arg in ATTACHED_ONLY else arg for arg in argv]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog=PROG,
        add_help=False,
        description="C toolchain driver producing LLVM bitcode objects and binary images",
        allow_abbrev=False,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="-99extra flags:\n  " + "\n  ".join(EXTRA_OPTIONS),
    )
    ap.add_argument("operands", nargs="*", metavar="file",
                    help="C sources (.c, .h), objects (.o) and shared objects (.so)")
    ap.add_argument("-h", action=UsageHelpAction, help="Print this flag list to stderr and exit with status 2")
    ap.add_argument("-D", dest="defines", action="append", default=[], metavar="name[=definition]",
                    help="Equivalent to '#define name definition' (default definition 1) "
                         "at the start of the translation unit")
    ap.add_argument("-E", dest="preprocess_only", action="store_true",
                    help="Copy C sources to standard output, executing all preprocessor directives")
    ap.add_argument("-I", dest="include_paths", action="append", default=[], metavar="path",
                    help="Add path to the include files search paths")
    ap.add_argument("-L", dest="library_paths", action="append", default=[], metavar="path",
                    help="Add path to the search paths for -l")
    ap.add_argument("-O", dest="opt_level", metavar="level", help="Optimization setting (-Olevel), ignored")
    ap.add_argument("-W", dest="warn_level", metavar="warn", help="Warning level (-Wwarn), ignored")
    ap.add_argument("-ansi", action="store_true", help="Ignored")
    ap.add_argument("-c", dest="compile_only", action="store_true",
                    help="Suppress the link-edit phase; write <base>.o per source into the current directory")
    ap.add_argument("-g", dest="debug", action="store_true", help="Produce debugging information, ignored")
    ap.add_argument("-l", dest="libraries", action="append", default=[], metavar="name",
                    help="Link with lib<name>.so")
    ap.add_argument("-o", dest="output", metavar="pathname",
                    help="Output path instead of the default a.out")
    ap.add_argument("-pedantic", action="store_true", help="Ignored")
    ap.add_argument("-pthread", action="store_true", help="Ignored")
    ap.add_argument("-rpath", metavar="pathname", help="Ignored")
    ap.add_argument("-shared", dest="shared", action="store_true",
                    help="Link mode shared library: write the aggregated objects as they are")
    ap.add_argument("-soname", metavar="name", help="Ignored")
    ap.add_argument("-99lib", dest="static_lib", action="store_true",
                    help="Library link mode: merge all objects into one library object")
    ap.add_argument("-99extra", dest="extras", action="append", default=[], choices=EXTRA_OPTIONS,
                    metavar="flag", help="Enable a front-end extension (see the list below)")
    ap.add_argument("--version", action="store_true", help="Print version information and exit")
    return ap


def report_error(e: TamagoError) -> None:
    if isinstance(e, FrontendError):
        e.reporter.print()
        return
    print(f"{PROG}: error [{e.code}]: {e.message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    diag = diag_switches()
    if "os-args" in diag:
        print([PROG] + argv, file=sys.stderr)

    ap = build_parser()
    args = ap.parse_intermixed_args(attach_empty_values(argv))
    if args.version:
        print_banner(PROG)
        return 0

    try:
        run(resolve_config(args))
    except TamagoError as e:
        report_error(e)
        return e.exit_status
    except InternalError as e:
        print(f"{PROG}: internal error [{e.code}]: {e.message}", file=sys.stderr)
        if "traceback" in diag:
            traceback.print_exc()
        return 1
    return 0


def cli_main() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    cli_main()

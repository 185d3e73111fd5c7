"""Build configuration resolution.

The command line, the optional home directory (``~/.tamago``) and the
diagnostic switches are folded into one frozen `BuildConfig` exactly once at
startup. Everything downstream reads the configuration and never consults
the environment again.
"""
from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

from tamago.compiler.constants import DIAG_ENV, HOME_DIR_NAME, HOME_ENV
from tamago.internals.errors import UsageError


@dataclass(frozen=True)
class BuildConfig:
    """Resolved, immutable build configuration."""
    operands: tuple[str, ...] = ()
    defines: tuple[tuple[str, str], ...] = ()
    include_paths: tuple[str, ...] = ()
    library_paths: tuple[str, ...] = ()
    libraries: tuple[str, ...] = ()
    preprocess_only: bool = False
    compile_only: bool = False
    shared: bool = False
    static_lib: bool = False
    output: str | None = None
    extras: frozenset[str] = frozenset()
    debug: bool = False
    opt_level: str = ""
    warn_level: str = ""
    diag: frozenset[str] = field(default_factory=frozenset)

    @property
    def verbose_link(self) -> bool:
        return "link" in self.diag

    def define_lines(self) -> list[str]:
        return [f"#define {name} {value}" for name, value in self.defines]


def parse_define(value: str) -> tuple[str, str]:
    """Split a -D argument: 'NAME' means 'NAME 1', 'NAME=def' means 'NAME def'."""
    name, sep, definition = value.partition("=")
    if not name:
        raise UsageError("TU0002", value=value)
    return name, definition if sep else "1"


def diag_switches(environ: Mapping[str, str] | None = None) -> frozenset[str]:
    """Comma separated switches from TAMAGO_DIAG, e.g. 'os-args,link'."""
    environ = os.environ if environ is None else environ
    raw = environ.get(DIAG_ENV, "")
    return frozenset(s.strip() for s in raw.split(",") if s.strip())


def home_directory(environ: Mapping[str, str] | None = None) -> Path | None:
    environ = os.environ if environ is None else environ
    if environ.get(HOME_ENV):
        return Path(environ[HOME_ENV])
    try:
        return Path.home() / HOME_DIR_NAME
    except RuntimeError:
        return None


def apply_home(cfg: BuildConfig, home: Path | None) -> BuildConfig:
    """Append <home>/include and <home>/lib when the home directory exists."""
    if home is None or not home.is_dir():
        return cfg
    return replace(
        cfg,
        include_paths=cfg.include_paths + (str(home / "include"),),
        library_paths=cfg.library_paths + (str(home / "lib"),),
    )


def resolve_config(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> BuildConfig:
    """Build the frozen configuration from parsed arguments and the environment."""
    cfg = BuildConfig(
        operands=tuple(args.operands),
        defines=tuple(parse_define(d) for d in args.defines),
        include_paths=tuple(args.include_paths),
        library_paths=tuple(args.library_paths),
        libraries=tuple(args.libraries),
        preprocess_only=args.preprocess_only,
        compile_only=args.compile_only,
        shared=args.shared,
        static_lib=args.static_lib,
        output=args.output,
        extras=frozenset(args.extras),
        debug=args.debug,
        opt_level=args.opt_level or "",
        warn_level=args.warn_level or "",
        diag=diag_switches(environ),
    )
    return apply_home(cfg, home_directory(environ))

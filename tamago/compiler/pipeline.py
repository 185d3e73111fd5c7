"""
Build pipeline orchestration.

    operands ──► classify / resolve libraries
                   │
                   ├─ preprocess-only ─► expanded text (file or stdout)
                   ├─ compile-only ────► <base>.o per source, in the cwd
                   └─ build ───────────► aggregate ─► link mode ─► emit

In build mode every source and the runtime startup file form a single
translation unit, compiled after the pre-built objects are loaded. The
aggregate is pre-built objects (library matches first, then operands) followed
by the freshly compiled unit.
"""
from __future__ import annotations

import os
import sys
from enum import Enum

from tamago.backend import linker, loader
from tamago.backend.objects import ObjectUnit, Objects
from tamago.backend.platform_detect import TargetPlatform, get_current_platform
from tamago.backend.symbol_reader import load_objects
from tamago.compiler import emit
from tamago.compiler.classify import classify_operands
from tamago.compiler.config import BuildConfig
from tamago.compiler.constants import CRT0_PATH, DEFAULT_OUTPUT, MARKER_OS, OBJECT_SUFFIX
from tamago.compiler.libraries import resolve_libraries
from tamago.compiler.unit_compiler import compile_unit, preprocess_sources
from tamago.internals.errors import InputError, UsageError, raise_internal_error


class Stage(Enum):
    PREPROCESS = "preprocess"
    COMPILE = "compile"
    BUILD = "build"


class LinkMode(Enum):
    SHARED = "shared"
    STATIC = "static"
    EXECUTABLE = "executable"


def select_stage(cfg: BuildConfig) -> Stage:
    """-E wins over -c; both win over a full build."""
    if cfg.preprocess_only:
        return Stage.PREPROCESS
    if cfg.compile_only:
        return Stage.COMPILE
    return Stage.BUILD


def select_link_mode(cfg: BuildConfig) -> LinkMode:
    if cfg.shared:
        return LinkMode.SHARED
    if cfg.static_lib:
        return LinkMode.STATIC
    return LinkMode.EXECUTABLE


def check_invocation(cfg: BuildConfig) -> None:
    """
    Raises:
        InputError: TI0001 when there are no operands.
        UsageError: TU0001 for -o with -c or -E and several operands.
    """
    if not cfg.operands:
        raise InputError("TI0001")
    if cfg.output and (cfg.compile_only or cfg.preprocess_only) and len(cfg.operands) > 1:
        raise UsageError("TU0001")


def object_path(source: str, directory: str) -> str:
    """`dir/x/foo.c` compiles to `<directory>/foo.o`."""
    base = os.path.splitext(os.path.basename(source))[0]
    return os.path.join(directory, base + OBJECT_SUFFIX)


def aggregate(prebuilt: list[str]) -> Objects:
    """Load every pre-built input, keeping operand order."""
    objects = Objects()
    for path in prebuilt:
        objects.extend(load_objects(path))
    return objects


def link(mode: LinkMode, objects: Objects, verbose: bool = False) -> Objects:
    """Combine the aggregate under the given link mode.

    Shared mode passes the units through unchanged. The other modes must
    produce exactly one unit.
    """
    units = list(objects)
    if mode is LinkMode.SHARED:
        return Objects(units)
    if mode is LinkMode.STATIC:
        result = [linker.link_lib(units, verbose)]
    else:
        for unit in units:
            unit.verify()
        result = [linker.link_main(units, verbose)]
    if len(result) != 1:
        raise_internal_error("IE0001", count=len(result))
    return Objects(result)


class Pipeline:
    """One driver invocation over a resolved configuration."""

    def __init__(self, cfg: BuildConfig, platform: TargetPlatform | None = None):
        self.cfg = cfg
        self.platform = platform or get_current_platform()

    def _log(self, msg: str) -> None:
        if self.cfg.verbose_link:
            print(msg, file=sys.stderr)

    def run(self) -> None:
        cfg = self.cfg
        check_invocation(cfg)

        prebuilt = resolve_libraries(cfg.libraries, cfg.library_paths)
        sources, operands = classify_operands(cfg.operands)
        prebuilt += operands

        stage = select_stage(cfg)
        if stage is Stage.PREPROCESS:
            with emit.text_output(cfg.output) as out:
                preprocess_sources(cfg, sources, self.platform, out)
            return

        objects = aggregate(prebuilt)
        if stage is Stage.COMPILE:
            self.compile_each(sources)
            return
        self.build(sources, objects)

    def compile_each(self, sources: list[str]) -> None:
        """Compile-only: one object per source, written into the cwd."""
        cwd = os.getcwd()
        for source in sources:
            unit = compile_unit(self.cfg, [source], self.platform)
            emit.write_objects(object_path(source, cwd), Objects([unit]))

    def build(self, sources: list[str], objects: Objects) -> None:
        cfg = self.cfg
        unit: ObjectUnit = compile_unit(cfg, sources + [str(CRT0_PATH)], self.platform)
        objects.units.append(unit)

        mode = select_link_mode(cfg)
        self._log(f"Linking {len(objects)} object(s) in {mode.value} mode")
        linked = link(mode, objects, cfg.verbose_link)

        output = cfg.output or DEFAULT_OUTPUT
        if mode is LinkMode.EXECUTABLE:
            binary = loader.load_main(linked.units[0])
            emit.write_binary(output, binary, marker=self.platform.os == MARKER_OS)
        else:
            emit.write_objects(output, linked)
        emit.make_executable(output)


def run(cfg: BuildConfig, platform: TargetPlatform | None = None) -> None:
    Pipeline(cfg, platform).run()

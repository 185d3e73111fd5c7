"""
Shared fixtures.

Tests that touch the filesystem run inside a fresh temporary directory with
no home directory and no diagnostics switches, so the host environment never
leaks into a build.
"""
from __future__ import annotations

import textwrap
from pathlib import Path

import llvmlite.binding as llvm
import pytest

from tamago.backend.objects import Declaration, DeclKind, Linkage, ObjectUnit
from tamago.backend.platform_detect import TargetPlatform
from tamago.backend.symbol_table import linkage_name
from tamago.compiler.config import BuildConfig
from tamago.compiler.unit_compiler import compile_unit

TRIPLE = "x86_64-pc-linux-gnu"


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TAMAGO_HOME", str(tmp_path / "no-such-home"))
    monkeypatch.delenv("TAMAGO_DIAG", raising=False)
    return tmp_path


@pytest.fixture
def write_file(workdir: Path):
    """Write dedented text under the working directory and return its path."""
    def write(name: str, text: str) -> str:
        path = workdir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text))
        return name
    return write


@pytest.fixture
def linux() -> TargetPlatform:
    return TargetPlatform(arch="x86_64", vendor="pc", os="linux", abi="gnu")


@pytest.fixture
def compile_c(write_file, linux):
    """Compile C text as one translation unit and return the ObjectUnit."""
    counter = iter(range(1000))

    def compile_text(text: str, name: str | None = None, cfg: BuildConfig | None = None) -> ObjectUnit:
        path = write_file(name or f"unit{next(counter)}.c", text)
        return compile_unit(cfg or BuildConfig(), [path], linux)
    return compile_text


@pytest.fixture
def make_unit():
    """Build an ObjectUnit straight from LLVM IR text.

    Every defined function and global of the module is entered into the
    declaration table with the given descriptor (default `func()int32` /
    `int32`).
    """
    def build(name: str, ir_text: str, types: dict[str, str] | None = None) -> ObjectUnit:
        module = llvm.parse_assembly(f'target triple = "{TRIPLE}"\n' + textwrap.dedent(ir_text))
        module.verify()
        types = types or {}
        decls = []
        values = ([(f, DeclKind.FUNCTION) for f in module.functions]
                  + [(g, DeclKind.DATA) for g in module.global_variables])
        for value, kind in values:
            if value.is_declaration:
                continue
            linkage = linkage_name(value.linkage)
            default = "func()int32" if kind == DeclKind.FUNCTION else "int32"
            decls.append(Declaration(
                value.name, value.name, kind,
                Linkage.INTERNAL if linkage in ("internal", "private") else Linkage.EXTERNAL,
                types.get(value.name, default),
                tentative=linkage == "common",
            ))
        return ObjectUnit(name=name, declarations=tuple(decls), bitcode=module.as_bitcode())
    return build

"""Unit tests for the driver building blocks: classification, libraries, config, emission."""
from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from tamago.backend.objects import Objects
from tamago.compiler import emit
from tamago.compiler.classify import OperandKind, classify, classify_operands
from tamago.compiler.cli import attach_empty_values, build_parser
from tamago.compiler.config import (
    BuildConfig, apply_home, diag_switches, home_directory, parse_define, resolve_config,
)
from tamago.compiler.libraries import resolve_libraries
from tamago.compiler.pipeline import (
    LinkMode, Stage, check_invocation, object_path, select_link_mode, select_stage,
)
from tamago.internals.errors import EmitError, InputError, UsageError


class TestPropagateExec:

    def test_read_bits_gain_execute(self):
        assert emit.propagate_exec(0o644) == 0o755

    def test_owner_only(self):
        assert emit.propagate_exec(0o600) == 0o700

    def test_no_read_bits(self):
        assert emit.propagate_exec(0o200) == 0o200

    @pytest.mark.parametrize("mode", range(0, 0o1000, 0o13))
    def test_formula(self, mode):
        assert emit.propagate_exec(mode) == mode | ((mode & 0o444) >> 2)

    def test_make_executable(self, workdir: Path):
        path = workdir / "out"
        path.write_bytes(b"x")
        os.chmod(path, 0o640)
        emit.make_executable(str(path))
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o750

    def test_unwritable_output(self, workdir: Path):
        with pytest.raises(EmitError) as exc:
            emit.write_objects(str(workdir / "missing" / "x.o"), Objects())
        assert exc.value.code == "TO0001"


class TestClassify:

    @pytest.mark.parametrize("path,kind", [
        ("a.c", OperandKind.C_SOURCE),
        ("dir/b.h", OperandKind.C_HEADER),
        ("c.o", OperandKind.OBJECT),
        ("libm.so", OperandKind.SHARED_LIBRARY),
    ])
    def test_known_suffixes(self, path, kind):
        assert classify(path).kind is kind

    @pytest.mark.parametrize("path", ["a.cpp", "a", "a.so.1", "a.C"])
    def test_unknown_suffix(self, path):
        with pytest.raises(InputError) as exc:
            classify(path)
        assert exc.value.code == "TI0002"

    def test_split_keeps_order(self):
        sources, prebuilt = classify_operands(["b.c", "x.o", "a.h", "lib.so", "a.c"])
        assert sources == ["b.c", "a.h", "a.c"]
        assert prebuilt == ["x.o", "lib.so"]

    def test_one_bad_operand_fails_all(self):
        with pytest.raises(InputError):
            classify_operands(["a.c", "b.txt"])


class TestLibraryResolver:

    def _lib(self, directory: Path, name: str) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / f"lib{name}.so").write_bytes(b"")

    def test_every_directory_contributes(self, workdir: Path):
        self._lib(workdir, "m")
        self._lib(workdir / "a", "m")
        self._lib(workdir / "b", "m")
        found = resolve_libraries(["m"], ["a", "b"])
        assert found == [os.path.join(".", "libm.so"),
                         os.path.join("a", "libm.so"),
                         os.path.join("b", "libm.so")]

    def test_miss_does_not_hide_later_hit(self, workdir: Path):
        self._lib(workdir / "b", "m")
        assert resolve_libraries(["m"], ["a", "b"]) == [os.path.join("b", "libm.so")]

    def test_names_outer_directories_inner(self, workdir: Path):
        for d in ("a", "b"):
            self._lib(workdir / d, "x")
            self._lib(workdir / d, "y")
        found = resolve_libraries(["y", "x"], ["a", "b"])
        assert found == [os.path.join("a", "liby.so"), os.path.join("b", "liby.so"),
                         os.path.join("a", "libx.so"), os.path.join("b", "libx.so")]

    def test_not_found_is_silent(self, workdir: Path):
        assert resolve_libraries(["nothere"], ["a"]) == []

    def test_probe_failure(self, workdir: Path):
        (workdir / "plain").write_text("not a directory")
        with pytest.raises(InputError) as exc:
            resolve_libraries(["m"], ["plain"])
        assert exc.value.code == "TI0003"


class TestConfig:

    def test_parse_define(self):
        assert parse_define("X") == ("X", "1")
        assert parse_define("X=2") == ("X", "2")
        assert parse_define("X=") == ("X", "")
        assert parse_define("X=a=b") == ("X", "a=b")

    def test_parse_define_without_name(self):
        with pytest.raises(UsageError) as exc:
            parse_define("=1")
        assert exc.value.exit_status == 2

    def test_define_lines(self):
        cfg = BuildConfig(defines=(("A", "1"), ("B", "x y")))
        assert cfg.define_lines() == ["#define A 1", "#define B x y"]

    def test_diag_switches(self):
        assert diag_switches({"TAMAGO_DIAG": "link, os-args,,"}) == {"link", "os-args"}
        assert diag_switches({}) == frozenset()
        assert BuildConfig(diag=frozenset({"link"})).verbose_link

    def test_home_override(self, tmp_path: Path):
        assert home_directory({"TAMAGO_HOME": str(tmp_path)}) == tmp_path

    def test_apply_home(self, tmp_path: Path):
        cfg = BuildConfig(include_paths=("inc",), library_paths=("lib",))
        assert apply_home(cfg, tmp_path / "missing") is cfg
        applied = apply_home(cfg, tmp_path)
        assert applied.include_paths == ("inc", str(tmp_path / "include"))
        assert applied.library_paths == ("lib", str(tmp_path / "lib"))

    def test_resolve_from_command_line(self, tmp_path: Path):
        args = build_parser().parse_intermixed_args(
            ["a.c", "-DX", "-I", "inc", "-c", "b.c", "-lm", "-99extra", "ImplicitFuncDef", "-O2"])
        cfg = resolve_config(args, {"TAMAGO_HOME": str(tmp_path / "none")})
        assert cfg.operands == ("a.c", "b.c")
        assert cfg.defines == (("X", "1"),)
        assert cfg.include_paths == ("inc",)
        assert cfg.libraries == ("m",)
        assert cfg.extras == {"ImplicitFuncDef"}
        assert cfg.compile_only and not cfg.preprocess_only
        assert cfg.opt_level == "2"

    def test_bare_attached_only_flags(self, tmp_path: Path):
        argv = ["-O", "a.c", "-W", "-Wall"]
        assert attach_empty_values(argv) == ["-O=", "a.c", "-W=", "-Wall"]
        args = build_parser().parse_intermixed_args(attach_empty_values(argv))
        cfg = resolve_config(args, {"TAMAGO_HOME": str(tmp_path / "none")})
        assert cfg.operands == ("a.c",)
        assert cfg.opt_level == ""

    def test_config_is_frozen(self):
        with pytest.raises(AttributeError):
            BuildConfig().output = "x"  # type: ignore[misc]


class TestPipelineDecisions:

    def test_stage_precedence(self):
        assert select_stage(BuildConfig(preprocess_only=True, compile_only=True)) is Stage.PREPROCESS
        assert select_stage(BuildConfig(compile_only=True)) is Stage.COMPILE
        assert select_stage(BuildConfig()) is Stage.BUILD

    def test_link_mode_precedence(self):
        assert select_link_mode(BuildConfig(shared=True, static_lib=True)) is LinkMode.SHARED
        assert select_link_mode(BuildConfig(static_lib=True)) is LinkMode.STATIC
        assert select_link_mode(BuildConfig()) is LinkMode.EXECUTABLE

    def test_no_operands(self):
        with pytest.raises(InputError) as exc:
            check_invocation(BuildConfig())
        assert exc.value.code == "TI0001"

    @pytest.mark.parametrize("flags", [{"compile_only": True}, {"preprocess_only": True}])
    def test_output_with_several_operands(self, flags):
        cfg = BuildConfig(operands=("a.c", "b.c"), output="x", **flags)
        with pytest.raises(UsageError) as exc:
            check_invocation(cfg)
        assert exc.value.code == "TU0001"

    def test_output_with_single_operand(self):
        check_invocation(BuildConfig(operands=("a.c",), output="x", compile_only=True))
        check_invocation(BuildConfig(operands=("a.c", "b.c"), output="x"))

    def test_object_path(self):
        assert object_path("dir/sub/foo.c", "/out") == os.path.join("/out", "foo.o")
        assert object_path("bar.h", ".") == os.path.join(".", "bar.o")

"""End-to-end runs of the tamago driver."""
from __future__ import annotations

import io
import os
import stat

import pytest

from tamago.backend.platform_detect import get_current_platform
from tamago.compiler import cli
from tamago.compiler.constants import LOADER_MARKER, MARKER_OS
from tamago.compiler.emit import propagate_exec
from tamago.nm import cli as nm

FOO = """
    int foo(void) { return 42; }
    int i;
    static int hidden;
    static int helper(void) { return hidden; }
"""

PROGRAM = """
    #include <stdio.h>

    int square(int x) { return x * x; }

    int main(void)
    {
        printf("%d\\n", square(7));
        return 0;
    }
"""

DUP = "int dup(void) { return %d; }\n"


def nm_lines(*paths: str) -> list[str]:
    out = io.StringIO()
    assert nm.main(list(paths), out=out) == 0
    return out.getvalue().splitlines()


class TestCompileOnly:

    def test_object_per_source(self, write_file):
        write_file("foo.c", FOO)
        assert cli.main(["-c", "foo.c"]) == 0
        out = io.StringIO()
        assert nm.main(["foo.o"], out=out) == 0
        assert out.getvalue() == "foo\tfunc()int32\ni\tint32\n"

    def test_objects_land_in_the_working_directory(self, workdir, write_file):
        write_file("src/bar.c", "int bar;\n")
        assert cli.main(["-c", "src/bar.c"]) == 0
        assert (workdir / "bar.o").is_file()
        assert not (workdir / "src" / "bar.o").exists()

    def test_output_name_is_ignored(self, workdir, write_file):
        write_file("foo.c", FOO)
        assert cli.main(["-c", "-o", "x.o", "foo.c"]) == 0
        assert (workdir / "foo.o").is_file()
        assert not (workdir / "x.o").exists()

    def test_void_function_without_return(self, workdir, write_file):
        write_file("v.c", "void nothing(void) { }\nvoid early(int x) { if (x) return; }\n")
        assert cli.main(["-c", "v.c"]) == 0
        assert nm_lines("v.o") == ["early\tfunc(int32)", "nothing\tfunc()"]

    def test_bare_optimization_flag(self, workdir, write_file):
        write_file("a.c", "int a;\n")
        assert cli.main(["-O", "a.c", "-W", "-c"]) == 0
        assert (workdir / "a.o").is_file()

    def test_flags_between_operands(self, workdir, write_file):
        write_file("a.c", "int a = VALUE;\n")
        write_file("b.c", "int b;\n")
        assert cli.main(["a.c", "-DVALUE=3", "b.c", "-c"]) == 0
        assert (workdir / "a.o").is_file() and (workdir / "b.o").is_file()


class TestExecutable:

    def test_program(self, workdir, write_file):
        write_file("prog.c", PROGRAM)
        assert cli.main(["prog.c", "-o", "prog"]) == 0

        data = (workdir / "prog").read_bytes()
        assert data.startswith(LOADER_MARKER) == (get_current_platform().os == MARKER_OS)

        mode = stat.S_IMODE(os.stat(workdir / "prog").st_mode)
        assert mode & stat.S_IXUSR
        assert mode == propagate_exec(mode)

        lines = nm_lines("prog")
        assert lines[0] == "0x00000\t_start"
        assert sorted(line.split("\t")[1] for line in lines) == ["_start", "main", "square"]

    def test_default_output(self, workdir, write_file):
        write_file("prog.c", PROGRAM)
        assert cli.main(["prog.c"]) == 0
        assert (workdir / "a.out").is_file()

    def test_linking_objects(self, workdir, write_file):
        write_file("square.c", "int square(int x) { return x * x; }\n")
        write_file("main.c", "int square(int);\nint main(void) { return square(3); }\n")
        assert cli.main(["-c", "square.c"]) == 0
        assert cli.main(["main.c", "square.o", "-o", "prog"]) == 0
        assert "0x00000\t_start" in nm_lines("prog")

    def test_static_data_and_helpers(self, workdir, write_file):
        write_file("prog.c", "static int x = 3;\nstatic void touch(void) { }\nint main(void) { touch(); return x; }\n")
        assert cli.main(["prog.c", "-o", "prog"]) == 0
        assert "0x00000\t_start" in nm_lines("prog")

    def test_same_static_name_in_two_sources(self, workdir, write_file):
        write_file("a.c", "static int h(void) { return 1; }\nint from_a(void) { return h(); }\n")
        write_file("b.c", "static int h(void) { return 2; }\nint from_b(void) { return h(); }\n")
        write_file("main.c", "int from_a(void);\nint from_b(void);\nint main(void) { return from_a() + from_b(); }\n")
        assert cli.main(["-c", "a.c", "b.c"]) == 0
        assert cli.main(["main.c", "a.o", "b.o", "-o", "prog"]) == 0

    def test_undefined_reference(self, workdir, write_file, capsys):
        write_file("main.c", "int missing(void);\nint main(void) { return missing(); }\n")
        assert cli.main(["main.c", "-o", "prog"]) == 1
        assert "[TL0004]" in capsys.readouterr().err
        assert not (workdir / "prog").exists()


class TestLibraries:

    @pytest.fixture
    def dup_objects(self, write_file):
        write_file("a.c", DUP % 1)
        write_file("b.c", DUP % 2)
        assert cli.main(["-c", "a.c", "b.c"]) == 0

    def test_library_mode_tolerates_duplicates(self, dup_objects):
        assert cli.main(["-99lib", "a.o", "b.o", "-o", "libdup.so"]) == 0
        lines = nm_lines("libdup.so")
        assert lines.count("dup\tfunc()int32") == 1

    def test_executable_rejects_duplicates(self, workdir, write_file, dup_objects, capsys):
        write_file("main.c", "int main(void) { return 0; }\n")
        assert cli.main(["main.c", "a.o", "b.o", "-o", "prog"]) == 1
        assert "[TL0002]" in capsys.readouterr().err
        assert not (workdir / "prog").exists()

    def test_shared_keeps_every_unit(self, dup_objects):
        assert cli.main(["-shared", "a.o", "b.o", "-o", "libboth.so"]) == 0
        assert nm_lines("libboth.so").count("dup\tfunc()int32") == 2

    def test_library_search(self, write_file, dup_objects):
        assert cli.main(["-shared", "a.o", "b.o", "-o", "libboth.so"]) == 0
        write_file("other.c", "int other(void) { return 0; }\n")
        assert cli.main(["-shared", "-lboth", "other.c", "-o", "again.so"]) == 0
        lines = nm_lines("again.so")
        assert lines.count("dup\tfunc()int32") == 2
        assert "other\tfunc()int32" in lines

    def test_library_search_paths(self, workdir, write_file, dup_objects):
        os.mkdir("libs")
        assert cli.main(["-shared", "a.o", "-o", "libs/libone.so"]) == 0
        write_file("other.c", "int other(void) { return 0; }\n")
        assert cli.main(["-shared", "-L", "libs", "-lone", "other.c", "-o", "again.so"]) == 0
        assert "dup\tfunc()int32" in nm_lines("again.so")

    def test_build_outputs_are_executable(self, workdir, dup_objects):
        assert cli.main(["-99lib", "a.o", "b.o", "-o", "libdup.so"]) == 0
        mode = stat.S_IMODE(os.stat(workdir / "libdup.so").st_mode)
        assert mode == propagate_exec(mode)


class TestPreprocessOnly:

    SOURCE = """
        #define VALUE 42
        int x = VALUE;
        #ifdef EXTRA
        int extra;
        #endif
    """

    def test_expansion(self, write_file, capsys):
        write_file("a.c", self.SOURCE)
        assert cli.main(["-E", "a.c"]) == 0
        out = capsys.readouterr().out
        assert "42" in out
        assert "VALUE" not in out
        assert "extra" not in out
        assert any(line.startswith("# ") and line.endswith('a.c"') for line in out.splitlines())

    def test_command_line_define(self, write_file, capsys):
        write_file("a.c", self.SOURCE)
        assert cli.main(["-E", "-DEXTRA", "a.c"]) == 0
        assert "extra" in capsys.readouterr().out

    def test_output_file(self, workdir, write_file, capsys):
        write_file("a.c", self.SOURCE)
        assert cli.main(["-E", "-o", "out.i", "a.c"]) == 0
        assert capsys.readouterr().out == ""
        assert "42" in (workdir / "out.i").read_text()

    def test_no_objects_written(self, workdir, write_file):
        write_file("a.c", self.SOURCE)
        assert cli.main(["-E", "-c", "a.c"]) == 0
        assert not (workdir / "a.o").exists()


class TestExitStatus:

    def test_no_operands(self, workdir, capsys):
        assert cli.main([]) == 1
        assert "no input files" in capsys.readouterr().err

    def test_unknown_extension(self, workdir, capsys):
        assert cli.main(["notes.txt"]) == 1
        assert "[TI0002]" in capsys.readouterr().err

    def test_output_with_several_compile_operands(self, write_file):
        write_file("a.c", "int a;\n")
        write_file("b.c", "int b;\n")
        assert cli.main(["-c", "-o", "x", "a.c", "b.c"]) == 2

    def test_unknown_flag(self, workdir):
        with pytest.raises(SystemExit) as exc:
            cli.main(["-zz", "a.c"])
        assert exc.value.code == 2

    def test_unknown_extra(self, workdir):
        with pytest.raises(SystemExit) as exc:
            cli.main(["-99extra", "Bogus", "a.c"])
        assert exc.value.code == 2

    def test_version(self, capsys):
        assert cli.main(["--version"]) == 0
        assert "tamago" in capsys.readouterr().out

    def test_frontend_error(self, write_file, capsys):
        write_file("bad.c", "int f(void) { return nope; }\n")
        assert cli.main(["-c", "bad.c"]) == 1
        err = capsys.readouterr().err
        assert "[TF0004]" in err
        assert "bad.c:1:" in err

    def test_missing_object(self, workdir, write_file, capsys):
        write_file("a.c", "int a;\n")
        assert cli.main(["a.c", "gone.o"]) == 1
        assert "[TI0004]" in capsys.readouterr().err

    def test_argument_echo(self, workdir, write_file, monkeypatch, capsys):
        monkeypatch.setenv("TAMAGO_DIAG", "os-args")
        write_file("a.c", "int a;\n")
        assert cli.main(["-c", "a.c"]) == 0
        assert "['tamago', '-c', 'a.c']" in capsys.readouterr().err

    def test_help_goes_to_stderr(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["-h"])
        assert exc.value.code == 2
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "-99lib" in captured.err

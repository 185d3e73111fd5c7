"""tamago-nm command line behaviour."""
from __future__ import annotations

import io

import pytest

from tamago.backend.objects import Binary, Declaration, DeclKind, Linkage, ObjectUnit, Objects
from tamago.compiler import emit
from tamago.nm import cli as nm


@pytest.fixture
def artifacts(workdir):
    emit.write_objects("lib.o", Objects([
        ObjectUnit("lib.c", (
            Declaration("zeta", "zeta", DeclKind.FUNCTION, Linkage.EXTERNAL, "func(int32)"),
            Declaration("alpha", "alpha", DeclKind.DATA, Linkage.EXTERNAL, "[4]int32"),
            Declaration("local", "local.1a2b3c4d", DeclKind.DATA, Linkage.INTERNAL, "int32"),
        ), b""),
    ]))
    emit.write_binary("prog", Binary(entry=0, triple="x86_64-pc-linux-gnu",
                                     symbols={"_start": 0, "main": 4}, bitcode=b""), marker=True)
    return workdir


def run(argv: list[str]) -> tuple[int, str]:
    out = io.StringIO()
    status = nm.main(argv, out=out)
    return status, out.getvalue()


class TestListing:

    def test_objects(self, artifacts):
        assert run(["lib.o"]) == (0, "alpha\t[4]int32\nzeta\tfunc(int32)\n")

    def test_binary(self, artifacts):
        assert run(["prog"]) == (0, "0x00000\t_start\n0x00004\tmain\n")

    def test_repeated_runs_agree(self, artifacts):
        assert run(["lib.o", "prog"]) == run(["lib.o", "prog"])

    def test_several_files(self, artifacts):
        status, text = run(["prog", "lib.o"])
        assert status == 0
        assert text.splitlines() == [
            "file prog",
            "0x00000\t_start",
            "0x00004\tmain",
            "file lib.o",
            "alpha\t[4]int32",
            "zeta\tfunc(int32)",
        ]

    def test_single_file_has_no_header(self, artifacts):
        assert "file" not in run(["prog"])[1]


class TestFailures:

    def test_no_files(self, capsys):
        assert run([]) == (2, "")
        assert "no input files" in capsys.readouterr().err

    def test_missing_file(self, workdir, capsys):
        assert run(["missing.o"])[0] == 1
        assert "missing.o" in capsys.readouterr().err

    def test_unrecognized_file_stops_the_run(self, artifacts, capsys):
        (artifacts / "junk.o").write_bytes(b"definitely not an object")
        status, text = run(["prog", "junk.o", "lib.o"])
        assert status == 1
        assert text.splitlines() == ["file prog", "0x00000\t_start", "0x00004\tmain", "file junk.o"]
        err = capsys.readouterr().err
        assert "junk.o" in err
        assert len(err.strip().splitlines()) == 3

    def test_version(self, capsys):
        assert run(["--version"])[0] == 0
        assert "tamago-nm" in capsys.readouterr().out

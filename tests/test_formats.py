"""Object collection and binary image codecs, probing and report rendering."""
from __future__ import annotations

import io
import struct

import pytest

from tamago.backend import symbol_reader
from tamago.backend.object_format import BinaryFormat, ObjectFormat
from tamago.backend.objects import Binary, Declaration, DeclKind, Linkage, ObjectUnit, Objects
from tamago.compiler import emit
from tamago.internals.errors import FormatError, InputError, UnrecognizedFormatError


def _decl(name, kind=DeclKind.FUNCTION, linkage=Linkage.EXTERNAL, type="func()int32"):
    return Declaration(name=name, symbol=name, kind=kind, linkage=linkage, type=type)


@pytest.fixture
def objects() -> Objects:
    return Objects([
        ObjectUnit("a.c", (_decl("foo"), _decl("i", DeclKind.DATA, type="int32")), b"BC\xc0\xde-a"),
        ObjectUnit("b.c", (_decl("bar", linkage=Linkage.INTERNAL),), b"BC\xc0\xde-bb"),
    ])


@pytest.fixture
def binary() -> Binary:
    return Binary(entry=0, triple="x86_64-pc-linux-gnu",
                  symbols={"_start": 0, "main": 3, "helper": 17}, bitcode=b"BC\xc0\xde")


def _objects_bytes(objects: Objects) -> bytes:
    buf = io.BytesIO()
    ObjectFormat.write(buf, objects)
    return buf.getvalue()


def _binary_bytes(binary: Binary, marker: bytes = b"") -> bytes:
    buf = io.BytesIO()
    buf.write(marker)
    BinaryFormat.write(buf, binary)
    return buf.getvalue()


class TestObjectFormat:

    def test_units_survive(self, objects: Objects):
        decoded = ObjectFormat.read(io.BytesIO(_objects_bytes(objects)), "x.o")
        assert decoded.units == objects.units

    def test_empty_collection(self):
        assert len(ObjectFormat.read(io.BytesIO(_objects_bytes(Objects())), "x.o")) == 0

    def test_bad_magic(self, objects: Objects):
        data = bytearray(_objects_bytes(objects))
        data[1:3] = b"XX"
        with pytest.raises(FormatError) as exc:
            ObjectFormat.read(io.BytesIO(bytes(data)), "x.o")
        assert exc.value.code == "TB0001"

    def test_unsupported_version(self, objects: Objects):
        data = bytearray(_objects_bytes(objects))
        data[16:20] = struct.pack("<I", 99)
        with pytest.raises(FormatError) as exc:
            ObjectFormat.read(io.BytesIO(bytes(data)), "x.o")
        assert exc.value.code == "TB0002"

    def test_truncated(self, objects: Objects):
        data = _objects_bytes(objects)
        with pytest.raises(FormatError) as exc:
            ObjectFormat.read(io.BytesIO(data[:-3]), "x.o")
        assert exc.value.code == "TB0003"

    def test_empty_stream(self):
        with pytest.raises(FormatError) as exc:
            ObjectFormat.read(io.BytesIO(b""), "x.o")
        assert exc.value.code == "TB0003"

    def test_malformed_metadata(self):
        blob = b"\xc1"  # never used in MessagePack
        data = (ObjectFormat.MAGIC + struct.pack("<IIIQQ", ObjectFormat.VERSION, 0, 0, 0, 0)
                + struct.pack("<Q", len(blob)) + blob + struct.pack("<Q", 0))
        with pytest.raises(FormatError) as exc:
            ObjectFormat.read(io.BytesIO(data), "x.o")
        assert exc.value.code == "TB0004"

    def test_missing_unit_records(self):
        buf = io.BytesIO()
        ObjectFormat.write(buf, Objects())
        data = buf.getvalue().replace(b"\xa5units", b"\xa5stuff")
        with pytest.raises(FormatError) as exc:
            ObjectFormat.read(io.BytesIO(data), "x.o")
        assert exc.value.code == "TB0004"


class TestBinaryFormat:

    def test_fields_survive(self, binary: Binary):
        assert BinaryFormat.read(io.BytesIO(_binary_bytes(binary)), "a.out") == binary

    def test_loader_marker_is_skipped(self, binary: Binary):
        data = _binary_bytes(binary, marker=b"#!/usr/bin/env tamago-run\n")
        assert BinaryFormat.read(io.BytesIO(data), "a.out") == binary

    def test_objects_are_not_a_binary(self, objects: Objects):
        with pytest.raises(FormatError) as exc:
            BinaryFormat.read(io.BytesIO(_objects_bytes(objects)), "a.out")
        assert exc.value.code == "TB0001"


class TestProbe:

    def test_objects_in_dot_o(self, objects: Objects):
        assert isinstance(symbol_reader.probe(_objects_bytes(objects), "x.o"), Objects)

    def test_binary_named_dot_o(self, binary: Binary):
        assert symbol_reader.probe(_binary_bytes(binary), "x.o") == binary

    def test_objects_named_like_binary(self, objects: Objects):
        assert isinstance(symbol_reader.probe(_objects_bytes(objects), "prog"), Objects)

    def test_decode_order(self):
        assert symbol_reader.decode_order("x.o")[0] == ObjectFormat.read
        assert symbol_reader.decode_order("x.so")[0] == BinaryFormat.read
        assert symbol_reader.decode_order("a.out")[0] == BinaryFormat.read

    def test_garbage_collects_both_failures(self):
        with pytest.raises(UnrecognizedFormatError) as exc:
            symbol_reader.probe(b"hello world", "x.o")
        assert exc.value.code == "TB0006"
        assert len(exc.value.failures) == 2

    def test_load_objects_rejects_binary(self, workdir, binary: Binary):
        emit.write_binary("lib.so", binary, marker=False)
        with pytest.raises(FormatError):
            symbol_reader.load_objects("lib.so")

    def test_unreadable_file(self, workdir):
        with pytest.raises(InputError) as exc:
            symbol_reader.inspect_file("missing.o")
        assert exc.value.code == "TI0004"


class TestReports:

    def test_binary_listing(self, binary: Binary):
        assert symbol_reader.binary_report(binary) == [
            "0x00000\t_start",
            "0x00011\thelper",
            "0x00003\tmain",
        ]

    def test_exported_declarations_only(self, objects: Objects):
        assert symbol_reader.objects_report(objects) == ["foo\tfunc()int32", "i\tint32"]

    def test_same_name_in_several_units(self):
        objects = Objects([
            ObjectUnit("a.c", (_decl("x", DeclKind.DATA, type="int32"),), b""),
            ObjectUnit("b.c", (_decl("x", DeclKind.DATA, type="int64"),
                               _decl("a", DeclKind.DATA, type="uint8")), b""),
        ])
        assert symbol_reader.objects_report(objects) == ["a\tuint8", "x\tint32", "x\tint64"]

    def test_report_is_stable(self, workdir, objects: Objects):
        emit.write_objects("x.o", objects)
        assert symbol_reader.inspect_file("x.o") == symbol_reader.inspect_file("x.o")

"""C type model: descriptors, layout and arithmetic conversions."""
from __future__ import annotations

import pytest

from tamago.frontend import ctypes_model as ct


class TestDescriptors:

    @pytest.mark.parametrize("t,expected", [
        (ct.INT32, "int32"),
        (ct.UINT8, "uint8"),
        (ct.INT64, "int64"),
        (ct.FLOAT64, "float64"),
        (ct.PointerType(ct.CHAR), "*int8"),
        (ct.PointerType(ct.VOID), "*struct{}"),
        (ct.ArrayType(ct.INT32, 4), "[4]int32"),
        (ct.ArrayType(ct.INT32, None), "[]int32"),
        (ct.FunctionType(ct.INT32, ()), "func()int32"),
        (ct.FunctionType(ct.VOID, (ct.INT32, ct.PointerType(ct.CHAR))), "func(int32,*int8)"),
        (ct.FunctionType(ct.INT32, (ct.PointerType(ct.CHAR),), variadic=True), "func(*int8...)int32"),
    ])
    def test_scalar_and_derived(self, t, expected):
        assert t.descriptor() == expected

    def test_struct(self):
        s = ct.RecordType("pair")
        s.complete([("a", ct.INT32), ("b", ct.PointerType(ct.CHAR))])
        assert s.descriptor() == "struct{int32,*int8}"

    def test_union(self):
        u = ct.RecordType("u", is_union=True)
        u.complete([("i", ct.INT32), ("d", ct.FLOAT64)])
        assert u.descriptor() == "union{int32,float64}"

    def test_self_referential_struct(self):
        node = ct.RecordType("node")
        node.complete([("next", ct.PointerType(node)), ("value", ct.INT32)])
        assert node.descriptor() == "struct{*struct{},int32}"

    def test_incomplete_struct(self):
        assert ct.RecordType("opaque").descriptor() == "struct{}"


class TestLayout:

    def test_struct_padding(self):
        s = ct.RecordType(None)
        s.complete([("c", ct.CHAR), ("i", ct.INT32), ("c2", ct.CHAR)])
        assert [f.offset for f in s.fields] == [0, 4, 8]
        assert s.size() == 12
        assert s.align() == 4

    def test_union_size(self):
        u = ct.RecordType(None, is_union=True)
        u.complete([("c", ct.CHAR), ("l", ct.INT64)])
        assert u.size() == 8
        assert all(f.offset == 0 for f in u.fields)

    def test_records_are_distinct(self):
        assert ct.RecordType("s") != ct.RecordType("s")


class TestConversions:

    @pytest.mark.parametrize("names,expected", [
        (["int"], ct.INT32),
        (["unsigned"], ct.UINT32),
        (["char"], ct.INT8),
        (["unsigned", "char"], ct.UINT8),
        (["short", "int"], ct.INT16),
        (["long"], ct.INT64),
        (["unsigned", "long", "long", "int"], ct.UINT64),
        (["long", "double"], ct.FLOAT64),
        (["_Bool"], ct.BOOL),
        (["void"], ct.VOID),
    ])
    def test_specifiers(self, names, expected):
        assert ct.type_from_specifiers(names) == expected

    def test_invalid_specifiers(self):
        assert ct.type_from_specifiers(["float", "char"]) is None

    def test_usual_arithmetic_conversions(self):
        assert ct.common_arithmetic_type(ct.INT8, ct.INT16) == ct.INT32
        assert ct.common_arithmetic_type(ct.INT32, ct.UINT32) == ct.UINT32
        assert ct.common_arithmetic_type(ct.UINT32, ct.INT64) == ct.INT64
        assert ct.common_arithmetic_type(ct.INT64, ct.FLOAT32) == ct.FLOAT32
        assert ct.common_arithmetic_type(ct.FLOAT32, ct.FLOAT64) == ct.FLOAT64

    def test_wrap(self):
        assert ct.INT8.wrap(200) == -56
        assert ct.UINT8.wrap(-1) == 255
        assert ct.BOOL.wrap(7) == 1

    def test_decay(self):
        assert ct.decay(ct.ArrayType(ct.INT32, 3)) == ct.PointerType(ct.INT32)
        f = ct.FunctionType(ct.VOID)
        assert ct.decay(f) == ct.PointerType(f)

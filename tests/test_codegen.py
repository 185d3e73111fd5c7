"""Lowering of C translation units to object units."""
from __future__ import annotations

import pytest

from tamago.backend.objects import DeclKind, Linkage
from tamago.compiler.config import BuildConfig
from tamago.internals.errors import FrontendError


def _table(unit) -> dict[str, tuple[str, str, Linkage]]:
    return {d.name: (d.kind.value, d.type, d.linkage) for d in unit.declarations}


def _codes(exc: pytest.ExceptionInfo) -> list[str]:
    return [d.code for d in exc.value.reporter.items]


class TestDeclarationTable:

    def test_functions_and_objects(self, compile_c):
        unit = compile_c("""
            int foo(void) { return 42; }
            int i;
            static int hidden;
            extern int elsewhere;
            int undefined_function(int);
        """)
        table = _table(unit)
        assert table["foo"] == ("function", "func()int32", Linkage.EXTERNAL)
        assert table["i"] == ("data", "int32", Linkage.EXTERNAL)
        assert table["hidden"][2] == Linkage.INTERNAL
        assert "elsewhere" not in table
        assert "undefined_function" not in table
        unit.verify()

    def test_internal_symbols_carry_a_unit_tag(self, compile_c):
        unit = compile_c("static int counter = 3;\nstatic int get(void) { return counter; }\n")
        for decl in unit.declarations:
            assert decl.linkage == Linkage.INTERNAL
            assert decl.symbol.startswith(decl.name + ".")
        unit.verify()

    def test_tentative_definitions(self, compile_c):
        unit = compile_c("int a;\nint a;\nint b = 2;\n")
        tentative = {d.name: d.tentative for d in unit.declarations}
        assert tentative == {"a": True, "b": False}
        unit.verify()

    def test_descriptors(self, compile_c):
        unit = compile_c("""
            struct pair { int a; char *b; };
            struct pair p;
            int table[4];
            char name[] = "tamago";
            double ratio = 0.5;
            unsigned long big;
            void set(int x, char *s) { }
            int count(const char *fmt, ...) { return 0; }
            int (*handler)(int);
        """)
        table = _table(unit)
        assert table["p"][1] == "struct{int32,*int8}"
        assert table["table"][1] == "[4]int32"
        assert table["name"][1] == "[7]int8"
        assert table["ratio"][1] == "float64"
        assert table["big"][1] == "uint64"
        assert table["set"][1] == "func(int32,*int8)"
        assert table["count"][1] == "func(*int8...)int32"
        assert table["handler"][1] == "*func(int32)int32"
        unit.verify()

    def test_prototype_then_definition(self, compile_c):
        unit = compile_c("int twice(int);\nint use(void) { return twice(2); }\nint twice(int x) { return x * 2; }\n")
        assert _table(unit)["twice"] == ("function", "func(int32)int32", Linkage.EXTERNAL)
        unit.verify()


class TestLowering:

    def test_control_flow(self, compile_c):
        unit = compile_c("""
            int classify(int n) {
                int total = 0;
                int i;
                for (i = 0; i < n; i++) {
                    if (i % 2 == 0)
                        continue;
                    total += i;
                }
                while (total > 100)
                    total -= 100;
                do {
                    total++;
                } while (total < 3);
                switch (n) {
                case 0:
                    return -1;
                case 1:
                case 2:
                    total = total * 2;
                    break;
                default:
                    total = n > 10 ? 10 : total;
                }
                if (n < 0 && total || !n)
                    goto done;
                total = total << 1;
            done:
                return total;
            }
        """)
        unit.verify()

    def test_pointers_and_records(self, compile_c):
        unit = compile_c("""
            struct node { struct node *next; int value; };
            union word { int i; char bytes[4]; };

            int sum(struct node *head) {
                int total = 0;
                for (; head; head = head->next)
                    total += head->value;
                return total;
            }

            int first_byte(int v) {
                union word w;
                w.i = v;
                return w.bytes[0];
            }

            long distance(int *a, int *b) { return b - a; }

            int local_list(void) {
                struct node second = { 0, 2 };
                struct node first = { &second, 1 };
                int values[] = { 1, 2, 3 };
                char text[8] = "hi";
                return sum(&first) + values[2] + text[1] + (int)sizeof(values);
            }
        """)
        unit.verify()

    def test_static_initializers(self, compile_c):
        unit = compile_c("""
            struct point { int x, y; };
            struct point origin = { 0, 0 };
            struct point points[] = { { 1, 2 }, [2] = { .y = 5 } };
            int matrix[2][2] = { 1, 2, 3, 4 };
            int value = 7;
            int *where = &value;
            char *greeting = "hello";
            void *nothing = (void *)0;
            int *second = &matrix[1][0];
            enum color { RED, GREEN = 5, BLUE };
            int palette[BLUE + 1];
            const int shift = 1 << 4;
        """)
        table = _table(unit)
        assert table["points"][1] == "[3]struct{int32,int32}"
        assert table["palette"][1] == "[7]int32"
        unit.verify()

    def test_builtins_through_headers(self, compile_c):
        unit = compile_c("""
            #include <stdio.h>
            #include <stdlib.h>
            #include <string.h>
            int main(void) {
                char *buffer = malloc(16);
                strcpy(buffer, "tamago");
                printf("%s %d\\n", buffer, (int)strlen(buffer));
                free(buffer);
                return EXIT_SUCCESS;
            }
        """)
        assert _table(unit)["main"][1] == "func()int32"
        unit.verify()

    def test_functions_without_return(self, compile_c):
        unit = compile_c("void empty(void) { }\nint tail(int x) { if (x) return 1; }\nvoid loop(void) { for (;;) { } }\n")
        assert sorted(_table(unit)) == ["empty", "loop", "tail"]
        unit.verify()

    def test_block_scope_static(self, compile_c):
        unit = compile_c("int next_id(void) { static int id = 100; return id++; }\n")
        assert [d.name for d in unit.declarations] == ["next_id"]
        unit.verify()


class TestDiagnostics:

    @pytest.mark.parametrize("source,code", [
        ("int f(void) { return missing; }", "TF0004"),
        ("int f(void) { return 1; }\nint f(void) { return 2; }", "TF0006"),
        ("int f(void) { break; }", "TF0009"),
        ("int f(void) { goto nowhere; }", "TF0010"),
        ("int f(int x) { switch (x) { case 1: case 1: return 0; } return 1; }", "TF0015"),
        ("int f(void) { return g(); }", "TF0016"),
        ("int a[2] = { 1, 2, 3 };", "TF0017"),
        ("int f(void);\nint x = f();", "TF0007"),
        ("struct s { int a; };\nint f(struct s v) { return v.b; }", "TF0008"),
        ("int f(void) { int x; x(); return 0; }", "TF0012"),
        ("unknown_t x;", "TF0002"),
    ])
    def test_error_codes(self, compile_c, source, code):
        with pytest.raises(FrontendError) as exc:
            compile_c(source)
        assert code in _codes(exc)

    def test_every_declaration_is_checked(self, compile_c):
        with pytest.raises(FrontendError) as exc:
            compile_c("int f(void) { return a; }\nint g(void) { return b; }\n")
        assert _codes(exc) == ["TF0004", "TF0004"]

    def test_redefined_body_is_not_lowered(self, compile_c):
        with pytest.raises(FrontendError) as exc:
            compile_c("int f(void) { return 1; }\nint f(void) { return nope; }\n")
        assert _codes(exc) == ["TF0006"]

    def test_implicit_function_extension(self, compile_c):
        cfg = BuildConfig(extras=frozenset({"ImplicitFuncDef"}))
        unit = compile_c("int f(void) { return g(1, 2); }", cfg=cfg)
        assert [d.name for d in unit.declarations] == ["f"]
        unit.verify()

    def test_error_location(self, compile_c):
        with pytest.raises(FrontendError) as exc:
            compile_c("int ok;\n\nint f(void) {\n    return nope;\n}\n", name="where.c")
        (diag,) = exc.value.reporter.items
        assert diag.filename.endswith("where.c")
        assert diag.span.line == 4


class TestPreprocessing:

    def test_command_line_defines(self, compile_c):
        cfg = BuildConfig(defines=(("SIZE", "8"), ("FLAG", "1")))
        unit = compile_c("""
            #if FLAG && SIZE > 4
            int wide[SIZE];
            #else
            int narrow;
            #endif
        """, cfg=cfg)
        assert _table(unit)["wide"][1] == "[8]int32"

    def test_target_macros(self, compile_c):
        unit = compile_c("int __arch__ = 1;\nint __os__ = 2;\n")
        assert sorted(_table(unit)) == ["linux", "x86_64"]

    def test_error_directive(self, compile_c):
        with pytest.raises(FrontendError) as exc:
            compile_c("#error stop here\nint x;\n")
        (diag,) = exc.value.reporter.items
        assert diag.code == "TF0001"
        assert "stop here" in diag.message

    def test_inactive_error_directive(self, compile_c):
        compile_c("#if 0\n#error never\n#endif\nint x;\n")

    def test_missing_include(self, compile_c):
        with pytest.raises(FrontendError) as exc:
            compile_c('#include "nope.h"\n')
        assert _codes(exc) == ["TF0001"]

    def test_include_paths(self, compile_c, write_file):
        write_file("inc/config.h", "#define LIMIT 3\n")
        unit = compile_c("#include <config.h>\nint slots[LIMIT];\n",
                         cfg=BuildConfig(include_paths=("inc",)))
        assert _table(unit)["slots"][1] == "[3]int32"

    def test_function_kinds(self, compile_c):
        unit = compile_c("int f(void) { return 0; }\nint x;\n")
        kinds = {d.name: d.kind for d in unit.declarations}
        assert kinds == {"f": DeclKind.FUNCTION, "x": DeclKind.DATA}

"""Driver constants: conventional names, file kinds and package-data paths."""
from pathlib import Path

PROG = "tamago"

HOME_DIR_NAME = ".tamago"
HOME_ENV = "TAMAGO_HOME"
DIAG_ENV = "TAMAGO_DIAG"

DEFAULT_OUTPUT = "a.out"
OBJECT_SUFFIX = ".o"

SOURCE_SUFFIXES = (".c", ".h")
PREBUILT_SUFFIXES = (".o", ".so")

# Written in front of executables when the host OS is MARKER_OS
LOADER_MARKER = b"#!/usr/bin/env tamago-run\n"
MARKER_OS = "linux"

BUILTIN_PREFIX = "__builtin_"
ENTRY_POINT = "_start"

PACKAGE_DIR = Path(__file__).resolve().parent.parent
SYSTEM_INCLUDE_DIR = PACKAGE_DIR / "include"
CRT0_PATH = PACKAGE_DIR / "runtime" / "crt0.c"

# Names accepted by -99extra
EXTRA_OPTIONS = (
    "AlignOf",
    "AlternateKeywords",
    "AnonymousStructFields",
    "Asm",
    "BuiltinClassifyType",
    "BuiltinConstantP",
    "ComputedGotos",
    "DefineOmitCommaBeforeDDD",
    "DlrInIdentifiers",
    "EmptyDeclarations",
    "EmptyDefine",
    "EmptyStructs",
    "ImaginarySuffix",
    "ImplicitFuncDef",
    "ImplicitIntType",
    "IncludeNext",
    "LegacyDesignators",
    "NonConstStaticInitExpressions",
    "Noreturn",
    "OmitConditionalOperand",
    "OmitFuncArgTypes",
    "OmitFuncRetType",
    "ParenthesizedCompoundStatemen",
    "StaticAssert",
    "TypeOf",
    "UndefExtraTokens",
    "UnsignedEnums",
    "WideBitFieldTypes",
    "WideEnumValues",
)

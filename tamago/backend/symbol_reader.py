"""
Symbol reader shared by the driver and tamago-nm.

An artifact on disk is either a binary image or an object collection. Which
one is decided by trying both decoders in a fixed order: object collection
first for ``.o`` files, binary image first for everything else. The order
only decides which decoder runs first; a binary named ``x.o`` is still
recognized.
"""
from __future__ import annotations

import io
import os
from typing import Callable, Union

from tamago.backend.object_format import BinaryFormat, ObjectFormat
from tamago.backend.objects import Binary, DeclKind, Objects
from tamago.internals.errors import FormatError, InputError, UnrecognizedFormatError

Artifact = Union[Binary, Objects]
Decoder = Callable[[io.BytesIO, str], Artifact]

_RENDERED_KINDS = (DeclKind.DATA, DeclKind.FUNCTION)


def read_file(path: str) -> bytes:
    """Read a whole input file.

    Raises:
        InputError: TI0004 when the file cannot be opened or read.
    """
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise InputError("TI0004", path=path, reason=e.strerror or str(e)) from e


def decode_order(path: str) -> tuple[Decoder, ...]:
    if os.path.splitext(path)[1] == ".o":
        return ObjectFormat.read, BinaryFormat.read
    return BinaryFormat.read, ObjectFormat.read


def probe(data: bytes, path: str) -> Artifact:
    """Decode data as the first artifact variant that accepts it.

    Raises:
        UnrecognizedFormatError: carrying the failure of every decoder.
    """
    failures: list[FormatError] = []
    for decode in decode_order(path):
        try:
            return decode(io.BytesIO(data), path)
        except FormatError as e:
            failures.append(e)
    raise UnrecognizedFormatError(path, failures)


def load_objects(path: str) -> Objects:
    """Load a pre-built object collection (.o/.so operand or resolved library).

    Raises:
        InputError: the file cannot be read.
        FormatError: the file is not an object collection.
    """
    return ObjectFormat.read(io.BytesIO(read_file(path)), path)


def binary_report(binary: Binary) -> list[str]:
    return [f"0x{binary.symbols[name]:05x}\t{name}" for name in sorted(binary.symbols)]


def objects_report(objects: Objects) -> list[str]:
    """Exported declarations grouped by name, names sorted.

    Every declaration of a name is kept, in the order the units list them.
    """
    by_name: dict[str, list] = {}
    for unit in objects:
        for decl in unit.declarations:
            by_name.setdefault(decl.name, []).append(decl)

    lines = []
    for name in sorted(by_name):
        for decl in by_name[name]:
            if not decl.is_exported or decl.kind not in _RENDERED_KINDS:
                continue
            lines.append(f"{name}\t{decl.type}")
    return lines


def report(artifact: Artifact) -> list[str]:
    if isinstance(artifact, Binary):
        return binary_report(artifact)
    return objects_report(artifact)


def inspect_file(path: str) -> list[str]:
    """Report lines for the artifact stored at path."""
    return report(probe(read_file(path), path))

"""
Artifact emission.

Outputs are written through `create_output`, which turns every create,
write, flush and close failure into an `EmitError`. A partially written
file is left in place.
"""
from __future__ import annotations

import os
import stat
import sys
from contextlib import contextmanager
from typing import BinaryIO, Iterator, TextIO

from tamago.backend.object_format import BinaryFormat, ObjectFormat
from tamago.backend.objects import Binary, Objects
from tamago.compiler.constants import LOADER_MARKER
from tamago.internals.errors import EmitError


def propagate_exec(mode: int) -> int:
    """Set the execute bit of every permission triad whose read bit is set.

    >>> oct(propagate_exec(0o644))
    '0o755'
    """
    return mode | ((mode & 0o444) >> 2)


def _reason(e: OSError) -> str:
    return e.strerror or str(e)


@contextmanager
def create_output(path: str) -> Iterator[BinaryIO]:
    try:
        f = open(path, "wb")
    except OSError as e:
        raise EmitError("TO0001", path=path, reason=_reason(e)) from e
    try:
        with f:
            yield f
            f.flush()
    except OSError as e:
        raise EmitError("TO0001", path=path, reason=_reason(e)) from e


@contextmanager
def text_output(path: str | None) -> Iterator[TextIO]:
    """Text stream for path, or standard output when path is None."""
    if path is not None:
        try:
            f = open(path, "w", encoding="utf-8")
        except OSError as e:
            raise EmitError("TO0001", path=path, reason=_reason(e)) from e
        try:
            with f:
                yield f
                f.flush()
        except OSError as e:
            raise EmitError("TO0001", path=path, reason=_reason(e)) from e
        return
    try:
        yield sys.stdout
        sys.stdout.flush()
    except OSError as e:
        raise EmitError("TO0001", path="<stdout>", reason=_reason(e)) from e


def make_executable(path: str) -> None:
    """Apply `propagate_exec` to the permission bits of path."""
    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
        os.chmod(path, propagate_exec(mode))
    except OSError as e:
        raise EmitError("TO0001", path=path, reason=_reason(e)) from e


def write_objects(path: str, objects: Objects) -> None:
    with create_output(path) as f:
        ObjectFormat.write(f, objects)


def write_binary(path: str, binary: Binary, marker: bool) -> None:
    """Write a binary image, preceded by the loader line when marker is set."""
    with create_output(path) as f:
        if marker:
            f.write(LOADER_MARKER)
        BinaryFormat.write(f, binary)

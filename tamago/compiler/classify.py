"""Operand classification by file extension."""
from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from tamago.internals.errors import InputError


class OperandKind(Enum):
    C_SOURCE = ".c"
    C_HEADER = ".h"
    OBJECT = ".o"
    SHARED_LIBRARY = ".so"

    @property
    def is_source(self) -> bool:
        return self in (OperandKind.C_SOURCE, OperandKind.C_HEADER)


_BY_SUFFIX = {kind.value: kind for kind in OperandKind}


@dataclass(frozen=True)
class Operand:
    path: str
    kind: OperandKind


def classify(path: str) -> Operand:
    """Classify one operand; any other extension is a hard error."""
    kind = _BY_SUFFIX.get(os.path.splitext(path)[1])
    if kind is None:
        raise InputError("TI0002", path=path)
    return Operand(path, kind)


def classify_operands(paths: list[str] | tuple[str, ...]) -> tuple[list[str], list[str]]:
    """Split operands into (sources, prebuilt) keeping their relative order.

    Every operand is checked before anything is returned, so one bad
    extension aborts the whole invocation.
    """
    operands = [classify(p) for p in paths]
    sources = [op.path for op in operands if op.kind.is_source]
    prebuilt = [op.path for op in operands if not op.kind.is_source]
    return sources, prebuilt

"""Library resolution for -l flags."""
from __future__ import annotations

import os

from tamago.internals.errors import InputError


def search_directories(library_paths: tuple[str, ...] | list[str]) -> list[str]:
    """The current directory always comes first."""
    return ["."] + list(library_paths)


def library_file_name(name: str) -> str:
    return f"lib{name}.so"


def resolve_libraries(names: tuple[str, ...] | list[str],
                      library_paths: tuple[str, ...] | list[str]) -> list[str]:
    """Find lib<name>.so for every requested name.

    A match is recorded for every search directory that holds the file; a
    hit in one directory does not hide a hit in a later one. Iteration is
    names first, then directories in search order.

    Raises:
        InputError: TI0003 when a directory cannot be probed for a reason
            other than the file not existing.
    """
    found: list[str] = []
    dirs = search_directories(library_paths)
    for name in names:
        for directory in dirs:
            candidate = os.path.join(directory, library_file_name(name))
            try:
                os.stat(candidate)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise InputError("TI0003", path=candidate, reason=e.strerror or str(e)) from e
            found.append(candidate)
    return found

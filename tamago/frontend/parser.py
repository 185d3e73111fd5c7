"""C parsing on top of pycparser."""
from __future__ import annotations

import re
from dataclasses import dataclass

from pycparser import c_ast, c_parser

from tamago.frontend import preprocess
from tamago.internals import errors as er
from tamago.internals.errors import FrontendError
from tamago.internals.report import Reporter, Span

# pycparser reports "file:line:col: message" (column optional)
_LOCATION_RE = re.compile(r"^(?P<file>.*?):(?P<line>\d+)(?::(?P<col>\d+))?:\s*(?P<msg>.*)$", re.S)


@dataclass(frozen=True)
class TranslationUnit:
    """A parsed translation unit."""
    name: str
    sources: tuple[str, ...]
    ast: c_ast.FileAST


def parse_text(text: str, name: str, sources: tuple[str, ...] = ()) -> TranslationUnit:
    """Parse preprocessed text.

    Raises:
        FrontendError: with a single TF0002 diagnostic on a syntax error.
    """
    try:
        ast = c_parser.CParser().parse(text, filename=preprocess.ROOT_NAME)
    except c_parser.ParseError as e:
        reporter = Reporter(filename=preprocess.ROOT_NAME)
        m = _LOCATION_RE.match(str(e))
        if m:
            line = int(m.group("line"))
            col = int(m.group("col") or 1)
            er.emit(reporter, er.ERR.TF0002, Span(line, col, line, col),
                    filename=m.group("file"), message=m.group("msg"))
        else:
            er.emit(reporter, er.ERR.TF0002, None, message=str(e))
        raise FrontendError(reporter) from None
    return TranslationUnit(name=name, sources=sources, ast=ast)


def parse_sources(preamble: preprocess.Preamble, sources: list[str],
                  include_paths: tuple[str, ...] | list[str]) -> TranslationUnit:
    """Preprocess and parse sources as one translation unit."""
    text = preprocess.expand(preamble, sources, include_paths)
    name = sources[0] if sources else preprocess.ROOT_NAME
    return parse_text(text, name, tuple(sources))

"""C preprocessing on top of ply's cpp module.

A translation unit is a synthesized root text: the preamble (command line
macros, target macros, ``#include <builtin.h>``) followed by one quoted
include per source file, in operand order.

ply lexes punctuators one character at a time. Tokens that were adjacent
in their source are glued back into one word, so ``+=`` survives while
``-X`` with ``#define X -1`` becomes ``- -1``.
"""
from __future__ import annotations

import copy
import io
import os
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, TextIO

import ply.lex as lex
from ply import cpp
from pycparser import c_parser

from tamago.backend.constants_eval import ConstEval, NotConstant
from tamago.backend.scope import Scope
from tamago.compiler.constants import SYSTEM_INCLUDE_DIR
from tamago.internals import errors as er
from tamago.internals.errors import FrontendError
from tamago.internals.report import Reporter, Span

ROOT_NAME = "<predefined>"

# Directive names that are rewritten into definitions of these
# (unlexable) macro names, so they only fire in active groups.
_DIAGNOSTIC_DIRECTIVES = {"error": "#error", "warning": "#warning"}


@dataclass(frozen=True)
class Preamble:
    """Text that precedes every translation unit."""
    defines: tuple[str, ...]
    arch: str
    os: str

    def render(self) -> str:
        lines = list(self.defines)
        lines.append(f"#define __arch__ {self.arch}")
        lines.append(f"#define __os__ {self.os}")
        lines.append("#include <builtin.h>")
        return "\n".join(lines) + "\n"


def root_text(preamble: Preamble, sources: Iterable[str]) -> str:
    includes = "".join(f'#include "{os.path.abspath(s)}"\n' for s in sources)
    return preamble.render() + includes


class UnitPreprocessor(cpp.Preprocessor):
    """ply preprocessor that records problems as diagnostics."""

    def __init__(self, reporter: Reporter, include_paths: Iterable[str]):
        super().__init__(lex.lex(module=cpp, errorlog=lex.NullLogger()))
        self.reporter = reporter
        self._condition_parser: Optional[c_parser.CParser] = None
        for path in include_paths:
            self.add_path(path)
        self.add_path(str(SYSTEM_INCLUDE_DIR))

    def error(self, file, line, msg):
        span = Span(line, 1, line, 1) if line else None
        er.emit(self.reporter, er.ERR.TF0001, span, filename=file or ROOT_NAME, message=msg)

    def token(self):
        tok = super().token()
        if tok is not None:
            tok.source = self.source or ROOT_NAME
        return tok

    def group_lines(self, input):
        for line in super().group_lines(input):
            yield self._rewrite_diagnostic(line)

    def _rewrite_diagnostic(self, line: list) -> list:
        words = [i for i, tok in enumerate(line) if tok.type not in self.t_WS]
        if len(words) < 2 or line[words[0]].value != "#":
            return line
        name_tok = line[words[1]]
        sentinel = _DIAGNOSTIC_DIRECTIVES.get(name_tok.value)
        if sentinel is None:
            return line
        define_tok = copy.copy(name_tok)
        define_tok.value = "define"
        marker = copy.copy(name_tok)
        marker.value = sentinel
        space = copy.copy(name_tok)
        space.type = self.t_SPACE
        space.value = " "
        at = words[1]
        return line[:at] + [define_tok, space, marker, space] + line[at + 1:]

    def define(self, tokens):
        if not isinstance(tokens, str) and tokens and tokens[0].value in _DIAGNOSTIC_DIRECTIVES.values():
            text = "".join(str(tok.value) for tok in tokens[1:]).strip()
            if tokens[0].value == "#error":
                self.error(self.source, tokens[0].lineno, f"#error {text}".rstrip())
            return
        super().define(tokens)

    def include(self, tokens):
        target = self._include_target(tokens)
        if target is not None:
            filename, search = target
            if not any(os.path.isfile(os.path.join(p, filename)) for p in search):
                self.error(self.source, tokens[0].lineno, f"'{filename}' file not found")
                return
        yield from super().include(tokens)

    def _include_target(self, tokens) -> Optional[tuple[str, list[str]]]:
        if not tokens:
            return None
        if tokens[0].value == "<":
            for i, tok in enumerate(tokens[1:], start=1):
                if tok.value == ">":
                    name = "".join(str(t.value) for t in tokens[1:i])
                    return name, self.path + [""] + self.temp_path
            return None
        if tokens[0].type == self.t_STRING:
            return tokens[0].value[1:-1], self.temp_path + [""] + self.path
        return None

    def evalexpr(self, tokens):
        """Evaluate an #if condition with C operator semantics."""
        tokens = self.expand_macros(self._replace_defined(tokens))
        text = _glue(tokens, self.t_WS, self.t_ID) or "0"
        line = tokens[0].lineno if tokens else 0

        if self._condition_parser is None:
            self._condition_parser = c_parser.CParser()
        try:
            ast = self._condition_parser.parse(f"int __condition__ = {text};", filename=self.source)
            value, _ = ConstEval(None).evaluate(ast.ext[0].init, Scope())
        except (c_parser.ParseError, NotConstant, ZeroDivisionError):
            self.error(self.source, line, "invalid preprocessor expression")
            return 0
        return value

    def _replace_defined(self, tokens):
        out = []
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            if tok.type == self.t_ID and tok.value == "defined":
                j = i + 1
                while j < len(tokens) and tokens[j].type in self.t_WS:
                    j += 1
                parens = j < len(tokens) and tokens[j].value == "("
                if parens:
                    j += 1
                    while j < len(tokens) and tokens[j].type in self.t_WS:
                        j += 1
                name = tokens[j].value if j < len(tokens) else ""
                if parens:
                    j += 1
                    while j < len(tokens) and tokens[j].value != ")":
                        j += 1
                result = copy.copy(tok)
                result.type = self.t_INTEGER
                result.value = "1" if name in self.macros else "0"
                out.append(result)
                i = j + 1
                continue
            out.append(tok)
            i += 1
        return out


def _glue(tokens, whitespace, identifier) -> str:
    """Join tokens, keeping source-adjacent tokens together and identifiers as 0."""
    parts: list[str] = []
    prev_end = None
    for tok in tokens:
        if tok.type in whitespace:
            prev_end = None
            continue
        value = "0" if tok.type == identifier else str(tok.value)
        if prev_end is not None and tok.lexpos == prev_end:
            parts[-1] += value
        else:
            parts.append(value)
        prev_end = tok.lexpos + len(str(tok.value))
    return " ".join(parts)


def _run(preamble: Preamble, sources: list[str], include_paths: Iterable[str]) -> tuple[UnitPreprocessor, Reporter]:
    reporter = Reporter(filename=ROOT_NAME)
    pp = UnitPreprocessor(reporter, include_paths)
    pp.parse(root_text(preamble, sources), ROOT_NAME)
    return pp, reporter


def _lines(pp: UnitPreprocessor) -> Iterator[tuple[str, int, list[str]]]:
    """Yield (source, line, words) for every output line that carries tokens."""
    current: Optional[tuple[str, int]] = None
    words: list[str] = []
    prev_end = None
    while True:
        tok = pp.token()
        if tok is None:
            break
        if tok.type in pp.t_WS:
            prev_end = None
            continue
        key = (tok.source, tok.lineno)
        if key != current:
            if current is not None:
                yield current[0], current[1], words
            current, words, prev_end = key, [], None
        value = str(tok.value)
        if prev_end is not None and tok.lexpos == prev_end:
            words[-1] += value
        else:
            words.append(value)
        prev_end = tok.lexpos + len(value)
    if current is not None:
        yield current[0], current[1], words


def expand(preamble: Preamble, sources: list[str], include_paths: Iterable[str]) -> str:
    """Preprocess a translation unit into parser input (with line markers).

    Raises:
        FrontendError: when the preprocessor reported any error.
    """
    pp, reporter = _run(preamble, sources, include_paths)
    out = io.StringIO()
    last_source = None
    last_line = 0
    for source, line, words in _lines(pp):
        if source != last_source or line <= last_line or line - last_line > 8:
            out.write(f'# {line} "{source}"\n')
        else:
            out.write("\n" * (line - last_line - 1))
        out.write(" ".join(words) + "\n")
        last_source, last_line = source, line
    if reporter.has_errors:
        raise FrontendError(reporter)
    return out.getvalue()


def write_expanded(preamble: Preamble, sources: list[str], include_paths: Iterable[str],
                   out: TextIO) -> None:
    """Write the preprocess-only listing.

    Each output line carries the tokens of one source line, each followed
    by a single space. A ``# <line> "<file>"`` marker precedes a line whose
    tokens come from a different file than the previous line.

    Raises:
        FrontendError: when the preprocessor reported any error.
    """
    pp, reporter = _run(preamble, sources, include_paths)

    last_source = None
    for source, line, words in _lines(pp):
        if source != last_source:
            out.write(f'# {line} "{source}"\n')
            last_source = source
        out.write("".join(f"{word} " for word in words) + "\n")

    if reporter.has_errors:
        raise FrontendError(reporter)

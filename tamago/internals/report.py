from __future__ import annotations
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Any


class C:
    """ANSI color/style escape codes."""
    RESET = "\x1b[0m"
    BOLD  = "\x1b[1m"
    DIM   = "\x1b[2m"
    RED   = "\x1b[31m"
    YELLOW = "\x1b[33m"
    CYAN  = "\x1b[36m"
    GRAY  = "\x1b[90m"

@dataclass
class Span:
    line: int
    col: int
    end_line: int
    end_col: int

@dataclass
class Diagnostic:
    kind: str
    code: str
    message: str
    span: Optional[Span] = None
    filename: Optional[str] = None  # C diagnostics name the file of their coordinate

def span_of(coord: Any) -> Optional[Span]:
    """Span of a pycparser Coord (or anything with line/column attributes)."""
    line = getattr(coord, "line", None)
    if not line:
        return None
    col = getattr(coord, "column", None) or 1
    return Span(line, col, line, col)

def file_of(coord: Any) -> Optional[str]:
    return getattr(coord, "file", None) or None


class Reporter:
    def __init__(self, source: Optional[str] = None, filename: str = "<input>") -> None:
        self.source = source
        self.filename = filename
        self.items: List[Diagnostic] = []

    def error(self, code: str, msg: str, span: Optional[Span], filename: Optional[str] = None):
        self.items.append(Diagnostic("error", code, msg, span, filename=filename or self.filename))

    def warn(self, code: str, msg: str, span: Optional[Span], filename: Optional[str] = None):
        self.items.append(Diagnostic("warning", code, msg, span, filename=filename or self.filename))

    @property
    def has_errors(self) -> bool:
        return any(d.kind == "error" for d in self.items)

    def _display_name(self, filename: str) -> str:
        # Paths under the working directory are shown as ./relative
        try:
            rel_path = Path(filename).resolve().relative_to(Path.cwd())
            return f"./{rel_path}"
        except (ValueError, OSError):
            return filename

    def _source_line(self, d: Diagnostic) -> Optional[str]:
        if d.span is None:
            return None
        if d.filename == self.filename and self.source is not None:
            lines = self.source.splitlines()
        else:
            try:
                lines = Path(d.filename or "").read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError):
                return None
        idx = d.span.line - 1
        return lines[idx] if 0 <= idx < len(lines) else None

    def format(self, use_color: bool = True, use_unicode: bool = True) -> str:
        """Render all diagnostics.

        use_color   → ANSI colorize location/kind/guide/markers
        use_unicode → use │ / ╰ / ╯ box drawing around the source snippet
        """
        out: List[str] = []

        for d in self.items:
            filename = self._display_name(d.filename or self.filename)
            loc = f"{filename}:{d.span.line}:{d.span.col}" if d.span else filename

            if use_color:
                kind = f"{C.BOLD}{C.RED}error{C.RESET}" if d.kind == "error" else f"{C.BOLD}{C.YELLOW}warning{C.RESET}"
                head = f"{C.CYAN}{loc}{C.RESET}: {kind} [{C.DIM}{d.code}{C.RESET}]: {d.message}"
            else:
                head = f"{loc}: {d.kind} [{d.code}]: {d.message}"

            line_text = self._source_line(d)
            if line_text is None:
                out.append(head)
                continue

            start = max(1, d.span.col)
            if use_unicode:
                gray = (lambda s: f"{C.GRAY}{s}{C.RESET}") if use_color else (lambda s: s)
                marker = " " * (start - 1) + "┯"
                if use_color:
                    marker = f"{C.RED if d.kind == 'error' else C.YELLOW}{marker}{C.RESET}"
                out.append(f"{gray('  ╭──┤ ')}{head}")
                out.append(f"{gray('  │')}  {line_text}")
                out.append(f"{gray('  │')}  {marker}")
                out.append(f"{gray('  ╰' + '─' * (start + 1) + '╯')}")
            else:
                out.append(head)
                out.append(f"  | {line_text}")
                out.append(f"  ` {' ' * (start - 1)}^")

        return "\n".join(out)

    def print(self, stream=None, use_color: Optional[bool] = None, use_unicode: Optional[bool] = None) -> None:
        """Print diagnostics to `stream` (default: sys.stderr).

        Color and unicode are auto-enabled for a TTY unless NO_COLOR,
        NO_UNICODE or TERM=dumb say otherwise.
        """
        stream = stream or sys.stderr
        is_tty = getattr(stream, "isatty", lambda: False)()
        dumb = os.getenv("TERM") == "dumb"

        if use_color is None:
            use_color = bool(is_tty and os.getenv("NO_COLOR") is None and not dumb)
        if use_unicode is None:
            use_unicode = bool(is_tty and os.getenv("NO_UNICODE") is None and not dumb)

        text = self.format(use_color=use_color, use_unicode=use_unicode)
        if text:
            print(text, file=stream)

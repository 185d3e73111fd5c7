# tamago/internals/errors.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from tamago.internals.report import Span, Reporter


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Category(str, Enum):
    GENERAL   = "general"
    USAGE     = "usage"
    INPUT     = "input"
    FRONTEND  = "frontend"
    LINK      = "link"
    FORMAT    = "format"
    OUTPUT    = "output"
    INTERNAL  = "internal"


@dataclass(frozen=True)
class ErrorMessage:
    code: str
    severity: Severity
    text: str
    category: Category = Category.GENERAL
    doc: str = ""


REGISTRY: Dict[str, ErrorMessage] = {}

class _ErrorCatalog:
    def __init__(self, backing: Dict[str, ErrorMessage]) -> None:
        self._registry = backing

    def __getattr__(self, name: str) -> ErrorMessage:
        try:
            return self._registry[name]
        except KeyError as e:
            raise AttributeError(name) from e

    def __getitem__(self, code: str) -> ErrorMessage:
        return self._registry[code]


ERR = _ErrorCatalog(REGISTRY)

def emit(r: Reporter, em: ErrorMessage, span: Optional[Span], filename: Optional[str] = None,
         **kwargs) -> None:
    text = _fmt(em.code, **kwargs)
    if em.severity == Severity.ERROR:
        r.error(em.code, text, span, filename=filename)
    else:
        r.warn(em.code, text, span, filename=filename)

def raise_internal_error(code: str, **kwargs) -> None:
    """Raise an InternalError for toolchain bugs.

    Internal errors (IE codes) indicate a broken invariant inside the driver,
    not a problem with the user's input. They are never coerced into a
    result; the run is aborted.

    Args:
        code: Error code (e.g., "IE0001")
        **kwargs: Format parameters for the error message

    Raises:
        InternalError: Always.
    """
    raise InternalError(code, **kwargs)


#
# --- Exceptions
#

class TamagoError(Exception):
    """Base exception for user-facing failures.

    Every error carries a catalog code and the keyword arguments used to
    render its text. `exit_status` is the process status the driver uses.
    """

    exit_status = 1

    def __init__(self, code: str, **kwargs):
        self.code = code
        self.kwargs = kwargs
        self.message = _fmt(code, **kwargs)
        super().__init__(f"{code}: {self.message}")


class UsageError(TamagoError):
    """Conflicting or malformed command line."""

    exit_status = 2


class InputError(TamagoError):
    """Unusable operands or library search results."""


class FrontendError(TamagoError):
    """Preprocessing, parsing or lowering failed; carries the diagnostic list."""

    def __init__(self, reporter: Reporter):
        self.reporter = reporter
        count = sum(1 for d in reporter.items if d.kind == "error")
        super().__init__("TF0000", count=count)


class VerifyError(TamagoError):
    """An object failed its per-object consistency check."""


class LinkError(TamagoError):
    """Objects could not be merged into a single result."""


class FormatError(TamagoError):
    """A byte stream is not a well-formed object collection or binary image."""


class UnrecognizedFormatError(TamagoError):
    """Neither artifact decoder accepted the stream."""

    def __init__(self, path: str, failures: list[FormatError]):
        self.path = path
        self.failures = failures
        super().__init__("TB0006", path=path)


class EmitError(TamagoError):
    """Output could not be created, written, flushed, closed or chmod-ed."""


class InternalError(RuntimeError):
    """Broken toolchain invariant (never a user error)."""

    def __init__(self, code: str, **kwargs):
        self.code = code
        self.message = _fmt(code, **kwargs)
        super().__init__(f"{code}: {self.message}")


#
# --- Helpers
#

def _add(msg: ErrorMessage) -> None:
    if msg.code in REGISTRY:
        raise ValueError(f"duplicate error code {REGISTRY[msg.code]} in {msg}")
    REGISTRY[msg.code] = msg

def _get(code: str) -> ErrorMessage:
    try:
        return REGISTRY[code]
    except KeyError:
        raise KeyError(f"unknown error code: {code}")

def _fmt(code: str, **kwargs) -> str:
    msg = _get(code)
    try:
        return msg.text.format(**kwargs)
    except KeyError as key_error:
        missing = key_error.args[0]
        raise KeyError(f"missing text key '{missing}' for {code} "
                       f"(needed by: {msg.text!r})") from None

#
# --- Registry population
#

# Usage errors - TU0xxx range (exit status 2)
_add(ErrorMessage("TU0001", Severity.ERROR,
    "cannot specify -o with -c or -E with multiple files",
    Category.USAGE, "An explicit output path only makes sense for a single operand."))

_add(ErrorMessage("TU0002", Severity.ERROR,
    "invalid macro definition '{value}'",
    Category.USAGE, "-D needs a macro name, optionally followed by '=definition'."))

# Input errors - TI0xxx range
_add(ErrorMessage("TI0001", Severity.ERROR,
    "no input files",
    Category.INPUT, "No operands remained after flag removal."))

_add(ErrorMessage("TI0002", Severity.ERROR,
    "unrecognized file type: {path}",
    Category.INPUT, "Operands must end in .c, .h, .o or .so."))

_add(ErrorMessage("TI0003", Severity.ERROR,
    "cannot probe library {path}: {reason}",
    Category.INPUT, "A library search directory could not be inspected."))

_add(ErrorMessage("TI0004", Severity.ERROR,
    "cannot read {path}: {reason}",
    Category.INPUT, "An input file could not be opened or read."))

# Front-end errors - TF0xxx range
_add(ErrorMessage("TF0000", Severity.ERROR,
    "compilation failed with {count} error(s)",
    Category.FRONTEND, "Summary of a front-end diagnostic list."))

_add(ErrorMessage("TF0001", Severity.ERROR,
    "{message}",
    Category.FRONTEND, "Reported by the preprocessor."))

_add(ErrorMessage("TF0002", Severity.ERROR,
    "syntax error: {message}",
    Category.FRONTEND, "Reported by the C parser."))

_add(ErrorMessage("TF0003", Severity.ERROR,
    "unsupported construct: {what}",
    Category.FRONTEND, "Valid C that the lowering does not handle."))

_add(ErrorMessage("TF0004", Severity.ERROR,
    "undeclared identifier '{name}'",
    Category.FRONTEND))

_add(ErrorMessage("TF0005", Severity.ERROR,
    "invalid operands to '{op}' ({left} and {right})",
    Category.FRONTEND))

_add(ErrorMessage("TF0006", Severity.ERROR,
    "redefinition of '{name}'",
    Category.FRONTEND))

_add(ErrorMessage("TF0007", Severity.ERROR,
    "initializer element is not a constant expression",
    Category.FRONTEND))

_add(ErrorMessage("TF0008", Severity.ERROR,
    "no member named '{field}' in '{type}'",
    Category.FRONTEND))

_add(ErrorMessage("TF0009", Severity.ERROR,
    "'{what}' statement not within a loop or switch",
    Category.FRONTEND))

_add(ErrorMessage("TF0010", Severity.ERROR,
    "use of undeclared label '{name}'",
    Category.FRONTEND))

_add(ErrorMessage("TF0011", Severity.ERROR,
    "incomplete type '{type}'",
    Category.FRONTEND))

_add(ErrorMessage("TF0012", Severity.ERROR,
    "called object of type '{type}' is not a function",
    Category.FRONTEND))

_add(ErrorMessage("TF0013", Severity.ERROR,
    "unknown type name '{name}'",
    Category.FRONTEND))

_add(ErrorMessage("TF0014", Severity.ERROR,
    "expression is not assignable",
    Category.FRONTEND))

_add(ErrorMessage("TF0015", Severity.ERROR,
    "duplicate case value {value}",
    Category.FRONTEND))

_add(ErrorMessage("TF0016", Severity.ERROR,
    "implicit declaration of function '{name}'",
    Category.FRONTEND, "Enable -99extra ImplicitFuncDef to accept it as 'int {name}()'."))

_add(ErrorMessage("TF0017", Severity.ERROR,
    "excess elements in initializer for '{type}'",
    Category.FRONTEND))

# Verification and link errors - TL0xxx range
_add(ErrorMessage("TL0001", Severity.ERROR,
    "{unit}: verification failed: {reason}",
    Category.LINK, "An object's bitcode or declaration table is inconsistent."))

_add(ErrorMessage("TL0002", Severity.ERROR,
    "duplicate definition of '{name}' in {first} and {second}",
    Category.LINK))

_add(ErrorMessage("TL0003", Severity.ERROR,
    "undefined entry point '{name}'",
    Category.LINK))

_add(ErrorMessage("TL0004", Severity.ERROR,
    "undefined reference to '{name}'",
    Category.LINK))

_add(ErrorMessage("TL0005", Severity.ERROR,
    "cannot merge objects: {reason}",
    Category.LINK))

_add(ErrorMessage("TL0006", Severity.ERROR,
    "cannot load linked object: {reason}",
    Category.LINK))

# Artifact format errors - TB0xxx range
_add(ErrorMessage("TB0001", Severity.ERROR,
    "{path}: not {kind} (bad magic)",
    Category.FORMAT))

_add(ErrorMessage("TB0002", Severity.ERROR,
    "{path}: unsupported {kind} version {version} (supported: {supported})",
    Category.FORMAT))

_add(ErrorMessage("TB0003", Severity.ERROR,
    "{path}: truncated {section} (expected {expected} bytes, got {actual})",
    Category.FORMAT))

_add(ErrorMessage("TB0004", Severity.ERROR,
    "{path}: malformed {section}: {reason}",
    Category.FORMAT))

_add(ErrorMessage("TB0005", Severity.ERROR,
    "{path}: {kind} exceeds the {max_size} byte limit",
    Category.FORMAT))

_add(ErrorMessage("TB0006", Severity.ERROR,
    "{path}: unrecognized file format",
    Category.FORMAT, "Neither the object nor the binary decoder accepted the file."))

# Output errors - TO0xxx range
_add(ErrorMessage("TO0001", Severity.ERROR,
    "{path}: {reason}",
    Category.OUTPUT, "Creating, writing or chmod-ing an output failed."))

# Internal errors (toolchain bugs) - IE0xxx range
_add(ErrorMessage("IE0001", Severity.ERROR,
    "link produced {count} results, expected exactly one",
    Category.INTERNAL))

_add(ErrorMessage("IE0002", Severity.ERROR,
    "AST invariant violated: {message}",
    Category.INTERNAL))

_add(ErrorMessage("IE0003", Severity.ERROR,
    "unknown type node '{node}'",
    Category.INTERNAL))

_add(ErrorMessage("IE0004", Severity.ERROR,
    "generated module failed verification: {reason}",
    Category.INTERNAL))

_add(ErrorMessage("IE0005", Severity.ERROR,
    "builder not initialized",
    Category.INTERNAL, "IR builder is None - function compilation context required."))

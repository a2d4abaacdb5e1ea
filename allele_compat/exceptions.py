"""Error taxonomy shared by parsers, analysis modules and the scheduler."""

from pathlib import Path


class AlleleCompatError(Exception):
    """Base class for all toolkit errors."""


class UnrecognizedFormat(AlleleCompatError):
    """Raised when the detector cannot classify an input file."""

    def __init__(self, path: Path | str, detail: str = "") -> None:
        self.path = Path(path)
        self.detail = detail
        message = f"Unrecognized genetic data format: {self.path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ParseError(AlleleCompatError):
    """Raised for a malformed record or header.

    Attributes:
        line: 1-based line (or record) number, 0 when not line-oriented
        reason: Human readable description of the problem
        path: File being parsed, when known
    """

    def __init__(self, line: int, reason: str, path: Path | str | None = None) -> None:
        self.line = line
        self.reason = reason
        self.path = Path(path) if path is not None else None
        location = f"{self.path}:{line}" if self.path is not None else f"line {line}"
        super().__init__(f"{location}: {reason}")


class InsufficientData(AlleleCompatError):
    """Raised by a module that declines to run for lack of input data."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class MissingOrganSelection(AlleleCompatError):
    """Organ compatibility was requested without an organ type."""

    def __init__(self) -> None:
        super().__init__("Organ compatibility analysis requires an organ type")


class ModuleError(AlleleCompatError):
    """Unexpected failure inside one analysis module."""

    def __init__(self, module: str, reason: str) -> None:
        self.module = module
        self.reason = reason
        super().__init__(f"{module} failed: {reason}")

from __future__ import annotations

from typing import Optional


class CompileError(Exception):
    """Base class for structural errors found while compiling a program."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.position = position

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"Error at position {self.position}: {self.message}"


class UnmatchedCloseError(CompileError):
    def __init__(self, position: Optional[int] = None) -> None:
        super().__init__("Unmatched ']'", position)


class UnmatchedOpenError(CompileError):
    def __init__(
        self,
        label: Optional[int] = None,
        position: Optional[int] = None,
        open_loops: int = 1,
    ) -> None:
        message = "Unmatched '['"
        if open_loops > 1:
            message = f"{message} ({open_loops} loops left open)"
        super().__init__(message, position)
        self.label = label
        self.open_loops = open_loops


class EmitterStateError(RuntimeError):
    """Raised when an emitter is driven out of order or reused."""


class ResourceError(Exception):
    """Raised when program text cannot be read or assembly cannot be written."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{reason}: {path}")
        self.path = path
        self.reason = reason


__all__ = [
    "CompileError",
    "EmitterStateError",
    "ResourceError",
    "UnmatchedCloseError",
    "UnmatchedOpenError",
]

"""Exception types raised by the expression graph, resolver and parser."""

from __future__ import annotations


class CalcError(Exception):
    """Base class for all dagcalc errors."""


class CircularReferenceError(CalcError, ValueError):
    """A definition would make a variable depend on itself."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Circular reference for variable: {name}")
        self.name = name


class InvalidReferenceError(CalcError, LookupError):
    """A function call names a function that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid reference: {name}")
        self.name = name


class ParseError(CalcError, ValueError):
    """Resolver or grammar failure. ``position`` is a source offset when known."""

    def __init__(self, message: str, position: int | None = None) -> None:
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message)
        self.position = position

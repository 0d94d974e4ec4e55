"""Exception hierarchy for method structuring failures."""

from __future__ import annotations


class StructuringError(Exception):
    """Base class for failures scoped to the decompilation of one method."""


class UnresolvableLocalError(StructuringError):
    """A slot access has no variable instance covering its position."""


class UnrecognizedRegionError(StructuringError):
    """No structuring strategy could account for a region."""


class MalformedExceptionTableError(StructuringError):
    """Exception markers do not form matched start/end/catch triples."""


__all__ = [
    "StructuringError",
    "UnresolvableLocalError",
    "UnrecognizedRegionError",
    "MalformedExceptionTableError",
]

"""Public package exports for the JVM method body structurer."""

from .config import DecompilerConfig
from .decompiler import (
    MethodBody,
    MethodDecompiler,
    MethodResult,
    PartialMethod,
    create_default_decompiler,
)
from .errors import (
    MalformedExceptionTableError,
    StructuringError,
    UnrecognizedRegionError,
    UnresolvableLocalError,
)
from .locals import LocalBinder, LocalInstance, Locals
from .method import ExceptionEntry, LocalVariableEntry, MethodEntry
from .printer import SectionPrinter

__all__ = [
    "DecompilerConfig",
    "MethodBody",
    "MethodDecompiler",
    "MethodResult",
    "PartialMethod",
    "create_default_decompiler",
    "StructuringError",
    "UnresolvableLocalError",
    "UnrecognizedRegionError",
    "MalformedExceptionTableError",
    "LocalBinder",
    "LocalInstance",
    "Locals",
    "MethodEntry",
    "LocalVariableEntry",
    "ExceptionEntry",
    "SectionPrinter",
]

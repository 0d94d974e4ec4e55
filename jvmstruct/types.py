"""Minimal type signatures attached to local variable instances."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_PRIMITIVES = {
    "Z": "boolean",
    "B": "byte",
    "C": "char",
    "S": "short",
    "I": "int",
    "J": "long",
    "F": "float",
    "D": "double",
    "V": "void",
}


@dataclass(frozen=True)
class TypeSignature:
    """A raw type descriptor, optionally refined by a generic signature.

    Generic signatures are kept verbatim; decoding them is the job of the
    expression layer.
    """

    descriptor: str
    generic: Optional[str] = None

    def describe(self) -> str:
        return descriptor_to_name(self.generic or self.descriptor)


def descriptor_to_name(descriptor: str) -> str:
    """Return a source-like name for ``descriptor`` (``[I`` -> ``int[]``)."""

    dims = 0
    while descriptor.startswith("["):
        dims += 1
        descriptor = descriptor[1:]
    if descriptor in _PRIMITIVES:
        name = _PRIMITIVES[descriptor]
    elif descriptor.startswith(("L", "T")) and descriptor.endswith(";"):
        name = descriptor[1:-1].replace("/", ".")
    else:
        name = descriptor.replace("/", ".")
    return name + "[]" * dims

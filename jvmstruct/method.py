"""Method-level input model handed over by the bytecode reader."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .instruction import Insn, Label


@dataclass(frozen=True, eq=False)
class LocalVariableEntry:
    """One row of the declared local variable table."""

    index: int
    name: str
    desc: str
    start: Label
    end: Label
    signature: Optional[str] = None


@dataclass(frozen=True, eq=False)
class ExceptionEntry:
    """One row of the exception table.  ``type`` is ``None`` for "any"."""

    start: Label
    end: Label
    handler: Label
    type: Optional[str] = None

    @property
    def type_name(self) -> str:
        return self.type if self.type is not None else "any"


@dataclass
class MethodEntry:
    """A method body together with its structural metadata."""

    owner: str
    name: str
    desc: str
    instructions: List[Insn]
    is_static: bool = False
    local_variables: List[LocalVariableEntry] = field(default_factory=list)
    exception_table: List[ExceptionEntry] = field(default_factory=list)

    @property
    def parameter_types(self) -> List[str]:
        return split_method_descriptor(self.desc)

    @property
    def qualified_name(self) -> str:
        return f"{self.owner}.{self.name}{self.desc}"


def split_method_descriptor(desc: str) -> List[str]:
    """Split the parameter part of a method descriptor.

    ``(I[JLjava/lang/String;)V`` yields ``["I", "[J", "Ljava/lang/String;"]``.
    """

    if not desc.startswith("("):
        raise ValueError(f"not a method descriptor: {desc!r}")
    params: List[str] = []
    pos = 1
    try:
        while desc[pos] != ")":
            start = pos
            while desc[pos] == "[":
                pos += 1
            if desc[pos] == "L":
                pos = desc.index(";", pos)
            pos += 1
            params.append(desc[start:pos])
    except (IndexError, ValueError):
        raise ValueError(f"truncated method descriptor: {desc!r}") from None
    return params


def parameter_slots(is_static: bool, params: Sequence[str]) -> List[int]:
    """Return the first local slot of every parameter (receiver excluded)."""

    slot = 0 if is_static else 1
    slots: List[int] = []
    for param in params:
        slots.append(slot)
        slot += 2 if param in ("J", "D") else 1
    return slots

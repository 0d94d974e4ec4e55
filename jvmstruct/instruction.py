"""Instruction records consumed by the method decompiler.

The bytecode reader is an external collaborator: it hands over an ordered
list of these records in which every jump target is represented by a
:class:`LabelInsn` carrying a stable :class:`Label` identity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

from . import opcodes
from .opcodes import mnemonic


class Label:
    """Identity of a jump target.  Two labels are equal only if identical."""

    __slots__ = ("name",)

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name

    def __repr__(self) -> str:
        if self.name is not None:
            return f"Label({self.name})"
        return f"Label@{id(self):x}"


@dataclass(eq=False)
class Insn:
    """A plain operation without operands."""

    opcode: int

    def describe(self) -> str:
        return mnemonic(self.opcode)


@dataclass(eq=False)
class LabelInsn(Insn):
    label: Label = field(default_factory=Label)

    def __init__(self, label: Label) -> None:
        self.opcode = opcodes.LABEL
        self.label = label

    def describe(self) -> str:
        return f"{self.label!r}:"


@dataclass(eq=False)
class VarInsn(Insn):
    var: int = 0

    def describe(self) -> str:
        return f"{mnemonic(self.opcode)} {self.var}"


@dataclass(eq=False)
class IincInsn(Insn):
    var: int = 0
    increment: int = 1

    def __init__(self, var: int, increment: int) -> None:
        self.opcode = opcodes.IINC
        self.var = var
        self.increment = increment

    def describe(self) -> str:
        return f"IINC {self.var} {self.increment}"


@dataclass(eq=False)
class IntInsn(Insn):
    operand: int = 0

    def describe(self) -> str:
        return f"{mnemonic(self.opcode)} {self.operand}"


@dataclass(eq=False)
class LdcInsn(Insn):
    value: object = None

    def __init__(self, value: object) -> None:
        self.opcode = opcodes.LDC
        self.value = value

    def describe(self) -> str:
        return f"LDC {self.value!r}"


@dataclass(eq=False)
class TypeInsn(Insn):
    desc: str = ""

    def describe(self) -> str:
        return f"{mnemonic(self.opcode)} {self.desc}"


@dataclass(eq=False)
class FieldInsn(Insn):
    owner: str = ""
    name: str = ""
    desc: str = ""

    def describe(self) -> str:
        return f"{mnemonic(self.opcode)} {self.owner}.{self.name} : {self.desc}"


@dataclass(eq=False)
class MethodInsn(Insn):
    owner: str = ""
    name: str = ""
    desc: str = "()V"

    def describe(self) -> str:
        return f"{mnemonic(self.opcode)} {self.owner}.{self.name}{self.desc}"


@dataclass(eq=False)
class JumpInsn(Insn):
    label: Label = field(default_factory=Label)

    def describe(self) -> str:
        return f"{mnemonic(self.opcode)} {self.label!r}"


@dataclass(eq=False)
class TableSwitchInsn(Insn):
    low: int = 0
    high: int = 0
    default: Label = field(default_factory=Label)
    labels: Tuple[Label, ...] = ()

    def __init__(self, low: int, high: int, default: Label, labels) -> None:
        self.opcode = opcodes.TABLESWITCH
        self.low = low
        self.high = high
        self.default = default
        self.labels = tuple(labels)

    def cases(self) -> Tuple[Tuple[int, Label], ...]:
        return tuple((self.low + offset, label) for offset, label in enumerate(self.labels))

    def describe(self) -> str:
        return f"TABLESWITCH {self.low}..{self.high} default={self.default!r}"


@dataclass(eq=False)
class LookupSwitchInsn(Insn):
    default: Label = field(default_factory=Label)
    keys: Tuple[int, ...] = ()
    labels: Tuple[Label, ...] = ()

    def __init__(self, default: Label, keys, labels) -> None:
        self.opcode = opcodes.LOOKUPSWITCH
        self.default = default
        self.keys = tuple(keys)
        self.labels = tuple(labels)

    def cases(self) -> Tuple[Tuple[int, Label], ...]:
        return tuple(zip(self.keys, self.labels))

    def describe(self) -> str:
        keys = ", ".join(str(key) for key in self.keys)
        return f"LOOKUPSWITCH [{keys}] default={self.default!r}"


def insn_to_string(insn: Insn) -> str:
    """Return the debug text used by comment sections."""

    return insn.describe()


def is_load(insn: Insn) -> bool:
    return insn.opcode in opcodes.LOAD_OPCODES


def is_store(insn: Insn) -> bool:
    return insn.opcode in opcodes.STORE_OPCODES

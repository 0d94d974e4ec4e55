"""Statement tree rewrites applied once structuring has finished."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from . import opcodes
from .graph.sections import InlineBlockSection
from .instruction import IincInsn, Insn, IntInsn, VarInsn

if TYPE_CHECKING:
    from .decompiler import MethodBody

_ICONST = {
    opcodes.ICONST_M1: -1,
    opcodes.ICONST_0: 0,
    opcodes.ICONST_1: 1,
    opcodes.ICONST_2: 2,
    opcodes.ICONST_3: 3,
    opcodes.ICONST_4: 4,
    opcodes.ICONST_5: 5,
}


class StatementPostProcessor:
    """Rewrites a finished method body in place."""

    def postprocess(self, body: "MethodBody") -> None:
        raise NotImplementedError


def int_constant(insn: Insn) -> Optional[int]:
    """Return the value pushed by an integer constant instruction."""

    if insn.opcode in _ICONST:
        return _ICONST[insn.opcode]
    if isinstance(insn, IntInsn) and insn.opcode in (opcodes.BIPUSH, opcodes.SIPUSH):
        return insn.operand
    return None


class IncrementMerger(StatementPostProcessor):
    """Folds ``x = x + k`` / ``x = x - k`` on an int slot into ``IINC``."""

    def postprocess(self, body: "MethodBody") -> None:
        for root in body.sections:
            for section in root.walk():
                if isinstance(section, InlineBlockSection):
                    section.statements = self.merge(section.statements)

    def merge(self, statements: List[Insn]) -> List[Insn]:
        merged: List[Insn] = []
        index = 0
        while index < len(statements):
            replacement = self._match(statements[index : index + 4])
            if replacement is not None:
                merged.append(replacement)
                index += 4
                continue
            merged.append(statements[index])
            index += 1
        return merged

    def _match(self, window: List[Insn]) -> Optional[IincInsn]:
        if len(window) < 4:
            return None
        first, second, operator, store = window
        if not (isinstance(store, VarInsn) and store.opcode == opcodes.ISTORE):
            return None
        if operator.opcode not in (opcodes.IADD, opcodes.ISUB):
            return None
        if _loads(first, store.var):
            constant = int_constant(second)
        elif operator.opcode == opcodes.IADD and _loads(second, store.var):
            constant = int_constant(first)
        else:
            return None
        if constant is None:
            return None
        if operator.opcode == opcodes.ISUB:
            constant = -constant
        if not -0x8000 <= constant <= 0x7FFF:
            return None
        return IincInsn(store.var, constant)


def _loads(insn: Insn, var: int) -> bool:
    return isinstance(insn, VarInsn) and insn.opcode == opcodes.ILOAD and insn.var == var


__all__ = ["StatementPostProcessor", "IncrementMerger", "int_constant"]

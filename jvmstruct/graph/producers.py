"""Graph producer steps: breakpoint contributors and edge formers."""

from __future__ import annotations

from bisect import bisect_left
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from .. import opcodes
from ..instruction import JumpInsn, Label, LookupSwitchInsn, TableSwitchInsn
from .blocks import (
    ConditionalOpcodeBlock,
    GotoOpcodeBlock,
    OpcodeBlock,
    ReturnOpcodeBlock,
    SwitchOpcodeBlock,
)

if TYPE_CHECKING:
    from ..decompiler import PartialMethod


class GraphProducerStep:
    """Contributes breakpoints and edges while the block graph is built."""

    def collect_breakpoints(self, partial: "PartialMethod", break_points: Set[int]) -> None:
        raise NotImplementedError

    def form_edges(
        self,
        partial: "PartialMethod",
        blocks: Dict[int, OpcodeBlock],
        sorted_break_points: List[int],
        block_list: List[OpcodeBlock],
    ) -> None:
        raise NotImplementedError


def block_after(
    index: int,
    blocks: Dict[int, OpcodeBlock],
    sorted_break_points: List[int],
) -> Optional[OpcodeBlock]:
    """Return the block starting right after the breakpoint at ``index``."""

    pos = bisect_left(sorted_break_points, index)
    if pos >= len(sorted_break_points) or sorted_break_points[pos] != index:
        return None
    if pos + 1 >= len(sorted_break_points):
        return None
    return blocks[sorted_break_points[pos + 1]]


def label_target(
    partial: "PartialMethod",
    label: Label,
    blocks: Dict[int, OpcodeBlock],
    sorted_break_points: List[int],
) -> Optional[int]:
    block = block_after(partial.label_index(label), blocks, sorted_break_points)
    return block.uid if block is not None else None


def replace_block(
    partial: "PartialMethod",
    old: OpcodeBlock,
    new: OpcodeBlock,
    blocks: Dict[int, OpcodeBlock],
    block_list: List[OpcodeBlock],
) -> None:
    blocks[old.breakpoint] = new
    block_list[block_list.index(old)] = new
    partial.arena.replace(new)


class JumpGraphProducerStep(GraphProducerStep):
    """Splits blocks at jumps, returns and throws and links their targets."""

    def collect_breakpoints(self, partial: "PartialMethod", break_points: Set[int]) -> None:
        for index, insn in enumerate(partial.opcodes):
            if isinstance(insn, JumpInsn):
                break_points.add(index)
                if insn.opcode == opcodes.GOTO and index > 0:
                    # keep unconditional jumps in a block of their own
                    break_points.add(index - 1)
                break_points.add(partial.label_index(insn.label))
            elif insn.opcode in opcodes.RETURN_OPCODES or insn.opcode == opcodes.ATHROW:
                break_points.add(index)

    def form_edges(
        self,
        partial: "PartialMethod",
        blocks: Dict[int, OpcodeBlock],
        sorted_break_points: List[int],
        block_list: List[OpcodeBlock],
    ) -> None:
        for block in list(block_list):
            last = block.last
            if last is None:
                continue
            if isinstance(last, JumpInsn):
                target = label_target(partial, last.label, blocks, sorted_break_points)
                if last.opcode == opcodes.GOTO:
                    new = block.convert(GotoOpcodeBlock, target=target)
                else:
                    new = block.convert(
                        ConditionalOpcodeBlock, target=target, else_target=block.target
                    )
            elif last.opcode in opcodes.RETURN_OPCODES or last.opcode == opcodes.ATHROW:
                new = block.convert(ReturnOpcodeBlock, target=None)
            else:
                continue
            replace_block(partial, block, new, blocks, block_list)


class SwitchGraphProducerStep(GraphProducerStep):
    """Splits blocks at table/lookup switches and links every case."""

    def collect_breakpoints(self, partial: "PartialMethod", break_points: Set[int]) -> None:
        for index, insn in enumerate(partial.opcodes):
            if isinstance(insn, (TableSwitchInsn, LookupSwitchInsn)):
                break_points.add(index)
                break_points.add(partial.label_index(insn.default))
                for label in insn.labels:
                    break_points.add(partial.label_index(label))

    def form_edges(
        self,
        partial: "PartialMethod",
        blocks: Dict[int, OpcodeBlock],
        sorted_break_points: List[int],
        block_list: List[OpcodeBlock],
    ) -> None:
        for block in list(block_list):
            last = block.last
            if not isinstance(last, (TableSwitchInsn, LookupSwitchInsn)):
                continue
            grouped: Dict[int, List[int]] = {}
            for key, label in last.cases():
                target = label_target(partial, label, blocks, sorted_break_points)
                if target is not None:
                    grouped.setdefault(target, []).append(key)
            default = label_target(partial, last.default, blocks, sorted_break_points)
            new = block.convert(
                SwitchOpcodeBlock,
                target=None,
                cases=[(tuple(keys), target) for target, keys in grouped.items()],
                default=default,
            )
            replace_block(partial, block, new, blocks, block_list)


__all__ = [
    "GraphProducerStep",
    "JumpGraphProducerStep",
    "SwitchGraphProducerStep",
    "block_after",
    "label_target",
    "replace_block",
]

"""Opcode blocks: the basic blocks the structuring pipeline consumes.

Blocks live in a per-method :class:`BlockArena`; control-flow edges and the
links between matched exception markers are arena ids rather than object
references, so a block list can be sliced and copied freely while the
structuring pipeline recurses into nested regions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from typing import Iterator, List, Optional, Sequence, Tuple, Type, TypeVar

from ..instruction import Insn, insn_to_string
from ..method import ExceptionEntry
from ..opcodes import LABEL

_B = TypeVar("_B", bound="OpcodeBlock")


@dataclass(eq=False)
class OpcodeBlock:
    """A run of instructions between two breakpoints.

    ``positions`` holds the instruction index of every entry of ``opcodes``.
    ``breakpoint`` is the index of the last instruction of the run and
    ``target`` the id of the block control flows to when the run ends.
    """

    uid: int
    start: int
    breakpoint: int
    opcodes: List[Insn] = field(default_factory=list)
    positions: List[int] = field(default_factory=list)
    target: Optional[int] = None

    kind = "body"

    @property
    def last(self) -> Optional[Insn]:
        return self.opcodes[-1] if self.opcodes else None

    @property
    def is_marker(self) -> bool:
        return False

    @property
    def is_label_only(self) -> bool:
        """True for a non-marker block holding nothing but labels."""

        return not self.is_marker and all(insn.opcode == LABEL for insn in self.opcodes)

    def debug_header(self) -> str:
        target = f" -> {self.target}" if self.target is not None else ""
        return f"// {self.kind} block {self.uid} [{self.start}..{self.breakpoint}]{target}"

    def debug_lines(self) -> Iterator[str]:
        yield self.debug_header()
        for insn in self.opcodes:
            yield insn_to_string(insn)

    def convert(self, cls: Type[_B], **extra) -> _B:
        """Return a block of type ``cls`` sharing this block's identity."""

        base = {item.name: getattr(self, item.name) for item in fields(OpcodeBlock)}
        base.update(extra)
        return cls(**base)

    def without(self, offset: int) -> "OpcodeBlock":
        """Return a copy of this block lacking the instruction at ``offset``."""

        values = {item.name: getattr(self, item.name) for item in fields(self)}
        values["opcodes"] = self.opcodes[:offset] + self.opcodes[offset + 1 :]
        values["positions"] = self.positions[:offset] + self.positions[offset + 1 :]
        return type(self)(**values)


@dataclass(eq=False)
class BodyOpcodeBlock(OpcodeBlock):
    kind = "body"


@dataclass(eq=False)
class GotoOpcodeBlock(OpcodeBlock):
    kind = "goto"


@dataclass(eq=False)
class ReturnOpcodeBlock(OpcodeBlock):
    """Ends in a return or a throw; control does not continue."""

    kind = "return"


@dataclass(eq=False)
class ConditionalOpcodeBlock(OpcodeBlock):
    """Ends in a conditional jump to ``target``; otherwise ``else_target``."""

    else_target: Optional[int] = None

    kind = "conditional"


@dataclass(eq=False)
class SwitchOpcodeBlock(OpcodeBlock):
    """Ends in a table or lookup switch.

    ``cases`` pairs the keys sharing one destination with that destination.
    """

    cases: List[Tuple[Tuple[int, ...], int]] = field(default_factory=list)
    default: Optional[int] = None

    kind = "switch"


class TryCatchMarkerType(enum.Enum):
    START = "start"
    END = "end"
    CATCH = "catch"


@dataclass(eq=False)
class TryCatchMarkerOpcodeBlock(OpcodeBlock):
    """Zero-instruction marker for one side of an exception table entry."""

    marker_type: TryCatchMarkerType = TryCatchMarkerType.START
    entry: Optional[ExceptionEntry] = None
    start_marker: Optional[int] = None
    end_marker: Optional[int] = None

    kind = "marker"

    @property
    def is_marker(self) -> bool:
        return True

    def debug_header(self) -> str:
        entry = self.entry.type_name if self.entry is not None else "?"
        return f"// {self.marker_type.value} marker {self.uid} ({entry}) at {self.start}"


class BlockArena:
    """Append-only store of every block created for one method."""

    def __init__(self) -> None:
        self._blocks: List[OpcodeBlock] = []

    def new(self, cls: Type[_B], **values) -> _B:
        block = cls(uid=len(self._blocks), **values)
        self._blocks.append(block)
        return block

    def replace(self, block: OpcodeBlock) -> None:
        """Install ``block`` as the current version of its id."""

        self._blocks[block.uid] = block

    def get(self, uid: int) -> OpcodeBlock:
        return self._blocks[uid]

    def __len__(self) -> int:
        return len(self._blocks)


def position_of(blocks: Sequence[OpcodeBlock], uid: Optional[int]) -> Optional[int]:
    """Return the position of block ``uid`` inside ``blocks``."""

    if uid is None:
        return None
    for index, block in enumerate(blocks):
        if block.uid == uid:
            return index
    return None


__all__ = [
    "OpcodeBlock",
    "BodyOpcodeBlock",
    "GotoOpcodeBlock",
    "ReturnOpcodeBlock",
    "ConditionalOpcodeBlock",
    "SwitchOpcodeBlock",
    "TryCatchMarkerType",
    "TryCatchMarkerOpcodeBlock",
    "BlockArena",
    "position_of",
]

"""Block sections: the nodes of a structured method body."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from ..instruction import Insn
from ..locals import LocalInstance
from .blocks import OpcodeBlock


@dataclass(eq=False)
class BlockSection:
    """Base class for structured output.

    ``jumps`` keeps the purely structural blocks (loop back edges, breaks,
    jumps over an else branch) a recognizer absorbed without emitting them.
    """

    jumps: List[OpcodeBlock] = field(default_factory=list, init=False)

    kind = "section"

    def children(self) -> Iterator[List["BlockSection"]]:
        """Yield every nested section list."""

        return iter(())

    def own_blocks(self) -> Iterator[OpcodeBlock]:
        """Yield the blocks this section consumed directly."""

        yield from self.jumps

    def own_positions(self) -> Iterator[int]:
        for block in self.own_blocks():
            yield from block.positions

    def walk(self) -> Iterator["BlockSection"]:
        yield self
        for body in self.children():
            for section in body:
                yield from section.walk()


@dataclass(eq=False)
class InlineBlockSection(BlockSection):
    """A plain run of statements from a single block."""

    block: Optional[OpcodeBlock] = None
    statements: List[Insn] = field(default_factory=list)

    kind = "inline"

    @classmethod
    def of(cls, block: OpcodeBlock) -> "InlineBlockSection":
        return cls(block=block, statements=list(block.opcodes))

    def own_blocks(self) -> Iterator[OpcodeBlock]:
        if self.block is not None:
            yield self.block
        yield from self.jumps


@dataclass(eq=False)
class ConditionalBlockSection(BlockSection):
    """``if (condition) { body } else { else_body }``."""

    condition: Optional[OpcodeBlock] = None
    body: List[BlockSection] = field(default_factory=list)
    else_body: List[BlockSection] = field(default_factory=list)

    kind = "if"

    def children(self) -> Iterator[List[BlockSection]]:
        yield self.body
        yield self.else_body

    def own_blocks(self) -> Iterator[OpcodeBlock]:
        if self.condition is not None:
            yield self.condition
        yield from self.jumps


@dataclass(eq=False)
class LoopBlockSection(BlockSection):
    """A loop whose test blocks run before (``while``) or after the body.

    An empty ``condition`` denotes an unconditional loop.
    """

    condition: List[OpcodeBlock] = field(default_factory=list)
    body: List[BlockSection] = field(default_factory=list)
    test_first: bool = True

    kind = "loop"

    def children(self) -> Iterator[List[BlockSection]]:
        yield self.body

    def own_blocks(self) -> Iterator[OpcodeBlock]:
        yield from self.condition
        yield from self.jumps


@dataclass(eq=False)
class WhileBlockSection(LoopBlockSection):
    kind = "while"


@dataclass(eq=False)
class DoWhileBlockSection(LoopBlockSection):
    kind = "do_while"

    def __post_init__(self) -> None:
        self.test_first = False


@dataclass(eq=False)
class SwitchCaseSection:
    keys: Tuple[int, ...] = ()
    is_default: bool = False
    body: List[BlockSection] = field(default_factory=list)
    breaks: bool = False


@dataclass(eq=False)
class SwitchBlockSection(BlockSection):
    switch: Optional[OpcodeBlock] = None
    cases: List[SwitchCaseSection] = field(default_factory=list)

    kind = "switch"

    def children(self) -> Iterator[List[BlockSection]]:
        for case in self.cases:
            yield case.body

    def own_blocks(self) -> Iterator[OpcodeBlock]:
        if self.switch is not None:
            yield self.switch
        yield from self.jumps


@dataclass(eq=False)
class CatchBlockSection:
    """One catch clause.

    ``binding`` is the instruction that stored the caught value (``ASTORE``
    or ``POP``) and ``binding_position`` its instruction index.
    ``guards_handlers`` marks a clause that also protects the bodies of the
    clauses before it, the layout compilers use for ``finally``.
    """

    exceptions: List[str] = field(default_factory=list)
    local: Optional[LocalInstance] = None
    body: List[BlockSection] = field(default_factory=list)
    binding: Optional[Insn] = None
    binding_position: Optional[int] = None
    guards_handlers: bool = False


@dataclass(eq=False)
class TryCatchBlockSection(BlockSection):
    body: List[BlockSection] = field(default_factory=list)
    catches: List[CatchBlockSection] = field(default_factory=list)

    kind = "try"

    def children(self) -> Iterator[List[BlockSection]]:
        yield self.body
        for catch in self.catches:
            yield catch.body

    def own_positions(self) -> Iterator[int]:
        yield from super().own_positions()
        for catch in self.catches:
            if catch.binding_position is not None:
                yield catch.binding_position


@dataclass(eq=False)
class CommentBlockSection(BlockSection):
    """Raw opcode text for a region that could not be structured."""

    lines: List[str] = field(default_factory=list)
    blocks: List[OpcodeBlock] = field(default_factory=list)

    kind = "comment"

    @classmethod
    def of(cls, blocks: List[OpcodeBlock]) -> "CommentBlockSection":
        lines: List[str] = []
        for block in blocks:
            lines.extend(block.debug_lines())
        return cls(lines=lines, blocks=list(blocks))

    def own_blocks(self) -> Iterator[OpcodeBlock]:
        yield from self.blocks
        yield from self.jumps


def covered_positions(sections: List[BlockSection]) -> List[int]:
    """Return every instruction index accounted for by ``sections``.

    Indices are listed once per occurrence so duplicates stay visible.
    """

    positions: List[int] = []
    for root in sections:
        for section in root.walk():
            positions.extend(section.own_positions())
    return positions


__all__ = [
    "BlockSection",
    "InlineBlockSection",
    "ConditionalBlockSection",
    "LoopBlockSection",
    "WhileBlockSection",
    "DoWhileBlockSection",
    "SwitchCaseSection",
    "SwitchBlockSection",
    "CatchBlockSection",
    "TryCatchBlockSection",
    "CommentBlockSection",
    "covered_positions",
]

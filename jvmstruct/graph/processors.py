"""Region recognizers tried, in order, by the structuring pipeline.

A recognizer sees the whole block list of the region being structured
together with ``stop``: it may only consume blocks before ``stop``, but the
block at ``stop`` (when there is one) is the block control reaches after the
region, so jumps to it count as jumps out of the region.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Union

from .blocks import (
    ConditionalOpcodeBlock,
    GotoOpcodeBlock,
    OpcodeBlock,
    SwitchOpcodeBlock,
    position_of,
)
from .sections import (
    BlockSection,
    ConditionalBlockSection,
    DoWhileBlockSection,
    SwitchBlockSection,
    SwitchCaseSection,
    WhileBlockSection,
)

if TYPE_CHECKING:
    from ..decompiler import PartialMethod


@dataclass(frozen=True)
class Matched:
    """A region was recognized; scanning resumes at ``next_index``."""

    next_index: int


class _NotMatched:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NOT_MATCHED"

    def __bool__(self) -> bool:
        return False


NOT_MATCHED = _NotMatched()

ProcessResult = Union[Matched, _NotMatched]


class GraphProcessor:
    """Recognizes one kind of region starting at ``blocks[index]``."""

    def process(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        raise NotImplementedError


def within(
    blocks: List[OpcodeBlock], index: int, stop: int, uid: Optional[int]
) -> Optional[int]:
    """Position of ``uid`` if it lies after ``index`` and no further than ``stop``."""

    pos = position_of(blocks, uid)
    if pos is None or pos <= index or pos > stop:
        return None
    return pos


def strip_labels(blocks: List[OpcodeBlock], start: int, end: int) -> int:
    """Move ``end`` back over the label-only blocks ending ``blocks[start:end]``."""

    while end > start and blocks[end - 1].is_label_only:
        end -= 1
    return end


def flatten_slice(
    partial: "PartialMethod",
    blocks: List[OpcodeBlock],
    start: int,
    end: int,
    result: List[BlockSection],
) -> None:
    """Structure ``blocks[start:end]``; ``blocks[end]`` stays visible as its exit."""

    partial.decompiler.flatten_region(partial, blocks[start : end + 1], end - start, result)


def flatten_blocks(
    partial: "PartialMethod",
    body: List[OpcodeBlock],
    follower: Optional[OpcodeBlock],
    result: List[BlockSection],
) -> None:
    """Structure a hand-assembled region exited through ``follower``."""

    region = list(body)
    if follower is not None:
        region.append(follower)
    partial.decompiler.flatten_region(partial, region, len(body), result)


class SwitchBlockProcessor(GraphProcessor):
    """``switch`` regions.

    The exit is the furthest target of the ``break`` jumps found before the
    last case.  Without breaks a default target that is also the last case
    is taken as the exit; otherwise the last case runs to the end of the
    region.
    """

    def process(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        block = blocks[index]
        if not isinstance(block, SwitchOpcodeBlock):
            return NOT_MATCHED
        targets = [uid for _, uid in block.cases]
        if block.default is not None:
            targets.append(block.default)
        starts: List[int] = []
        for uid in targets:
            pos = within(blocks, index, stop, uid)
            if pos is None:
                return NOT_MATCHED
            if pos not in starts:
                starts.append(pos)
        starts.sort()
        last_start = starts[-1]
        default_pos = position_of(blocks, block.default)

        end: Optional[int] = None
        for pos in range(index + 1, last_start):
            candidate = blocks[pos]
            if isinstance(candidate, GotoOpcodeBlock):
                target = within(blocks, last_start - 1, stop, candidate.target)
                if target is not None and (end is None or target > end):
                    end = target
        if end is None:
            keyed = {position_of(blocks, uid) for _, uid in block.cases}
            if default_pos == last_start and default_pos not in keyed:
                end = default_pos
            else:
                end = stop

        leading = blocks[index + 1 : min(starts[0], end)]
        if not all(candidate.is_label_only for candidate in leading):
            return NOT_MATCHED

        section = SwitchBlockSection(switch=block)
        section.jumps.extend(leading)
        case_starts = [pos for pos in starts if pos < end]
        for offset, start in enumerate(case_starts):
            case_end = case_starts[offset + 1] if offset + 1 < len(case_starts) else end
            keys = tuple(
                key
                for keys, uid in block.cases
                if position_of(blocks, uid) == start
                for key in keys
            )
            case = SwitchCaseSection(keys=keys, is_default=default_pos == start)
            body_end = strip_labels(blocks, start, case_end)
            last = blocks[body_end - 1] if body_end > start else None
            if isinstance(last, GotoOpcodeBlock) and position_of(blocks, last.target) == end:
                case.breaks = True
                section.jumps.extend(blocks[body_end - 1 : case_end])
                case_end = body_end - 1
            flatten_slice(partial, blocks, start, case_end, case.body)
            section.cases.append(case)
        result.append(section)
        return Matched(end)


class WhileLoopProcessor(GraphProcessor):
    """``while`` loops in the shapes compilers emit.

    * bottom test: ``GOTO test; body...; test: if(cond) GOTO body``
    * top test: ``test: if(!cond) GOTO exit; body...; GOTO test``
    * unconditional: ``body...; GOTO body``
    """

    def process(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        block = blocks[index]
        if isinstance(block, GotoOpcodeBlock):
            matched = self._bottom_test(partial, blocks, index, stop, result)
            if matched:
                return matched
        if isinstance(block, ConditionalOpcodeBlock):
            matched = self._top_test(partial, blocks, index, stop, result)
            if matched:
                return matched
        return self._unconditional(partial, blocks, index, stop, result)

    def _bottom_test(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        entry = blocks[index]
        test = within(blocks, index, stop - 1, entry.target)
        if test is None:
            return NOT_MATCHED
        last: Optional[int] = None
        for pos in range(test, stop):
            candidate = blocks[pos]
            if not isinstance(candidate, ConditionalOpcodeBlock):
                break
            body_pos = position_of(blocks, candidate.target)
            if body_pos is not None and index < body_pos <= test:
                last = pos
                break
        if last is None:
            return NOT_MATCHED
        section = WhileBlockSection(condition=blocks[test : last + 1])
        section.jumps.append(entry)
        flatten_slice(partial, blocks, index + 1, test, section.body)
        result.append(section)
        return Matched(last + 1)

    def _top_test(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        block = blocks[index]
        exit_pos = within(blocks, index, stop, block.target)
        if exit_pos is None:
            return NOT_MATCHED
        body_end = strip_labels(blocks, index + 1, exit_pos)
        if body_end <= index + 1:
            return NOT_MATCHED
        back = blocks[body_end - 1]
        if not (isinstance(back, GotoOpcodeBlock) and back.target == block.uid):
            return NOT_MATCHED
        section = WhileBlockSection(condition=[block])
        section.jumps.extend(blocks[body_end - 1 : exit_pos])
        flatten_slice(partial, blocks, index + 1, body_end - 1, section.body)
        result.append(section)
        return Matched(exit_pos)

    def _unconditional(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        head = blocks[index].uid
        back: Optional[int] = None
        for pos in range(index, stop):
            candidate = blocks[pos]
            if isinstance(candidate, GotoOpcodeBlock) and candidate.target == head:
                back = pos
        if back is None:
            return NOT_MATCHED
        section = WhileBlockSection(condition=[])
        section.jumps.append(blocks[back])
        flatten_slice(partial, blocks, index, back, section.body)
        result.append(section)
        return Matched(back + 1)


class DoWhileLoopProcessor(GraphProcessor):
    """``do { body } while (cond)``: a later conditional jumps back here."""

    def process(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        head = blocks[index].uid
        test: Optional[int] = None
        for pos in range(index, stop):
            candidate = blocks[pos]
            if isinstance(candidate, ConditionalOpcodeBlock) and candidate.target == head:
                test = pos
        if test is None:
            return NOT_MATCHED
        section = DoWhileBlockSection(condition=[blocks[test]])
        flatten_slice(partial, blocks, index, test, section.body)
        result.append(section)
        return Matched(test + 1)


class IfBlockProcessor(GraphProcessor):
    """``if``/``else`` from a forward conditional jump.

    A then-branch ending in a forward ``GOTO`` past the jump target has an
    else-branch running from the jump target to the ``GOTO`` destination.
    """

    def process(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        block = blocks[index]
        if not isinstance(block, ConditionalOpcodeBlock):
            return NOT_MATCHED
        target = within(blocks, index, stop, block.target)
        if target is None:
            return NOT_MATCHED
        section = ConditionalBlockSection(condition=block)
        body_end = strip_labels(blocks, index + 1, target)
        last = blocks[body_end - 1] if body_end > index + 1 else None
        if isinstance(last, GotoOpcodeBlock):
            else_end = within(blocks, target, stop, last.target)
            if else_end is not None:
                section.jumps.extend(blocks[body_end - 1 : target])
                flatten_slice(partial, blocks, index + 1, body_end - 1, section.body)
                flatten_slice(partial, blocks, target, else_end, section.else_body)
                result.append(section)
                return Matched(else_end)
        flatten_slice(partial, blocks, index + 1, target, section.body)
        result.append(section)
        return Matched(target)


__all__ = [
    "Matched",
    "NOT_MATCHED",
    "ProcessResult",
    "GraphProcessor",
    "SwitchBlockProcessor",
    "WhileLoopProcessor",
    "DoWhileLoopProcessor",
    "IfBlockProcessor",
    "within",
    "strip_labels",
    "flatten_slice",
    "flatten_blocks",
]

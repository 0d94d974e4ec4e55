"""Reconstruction of try/catch statements from the exception table.

Exception regions are not block local: one protected range may have several
handlers, several ranges may share a handler and nothing in the bytecode
marks where a handler ends.  The graph producer below therefore inserts three
zero-instruction marker blocks per exception table entry (start of the
protected range, its end and the start of the handler) and the
:class:`TryCatchBlockProcessor` rebuilds the statement from runs of those
markers.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from .. import opcodes
from ..errors import MalformedExceptionTableError
from ..instruction import VarInsn
from ..locals import LocalInstance
from ..method import ExceptionEntry
from .blocks import (
    GotoOpcodeBlock,
    OpcodeBlock,
    TryCatchMarkerOpcodeBlock,
    TryCatchMarkerType,
    position_of,
)
from .processors import (
    NOT_MATCHED,
    GraphProcessor,
    Matched,
    ProcessResult,
    flatten_blocks,
    strip_labels,
    within,
)
from .producers import GraphProducerStep, block_after
from .sections import BlockSection, CatchBlockSection, TryCatchBlockSection

if TYPE_CHECKING:
    from ..decompiler import PartialMethod

logger = logging.getLogger(__name__)


def _handler_start(partial: "PartialMethod", handler_index: int) -> int:
    index = handler_index + 1
    opcodes_ = partial.opcodes
    while index < len(opcodes_) and opcodes_[index].opcode == opcodes.LABEL:
        index += 1
    return index


def caught_local(partial: "PartialMethod", handler_index: int) -> Optional[LocalInstance]:
    """Return the variable bound by the store at the head of a handler."""

    index = _handler_start(partial, handler_index)
    if index >= len(partial.opcodes):
        return None
    insn = partial.opcodes[index]
    if isinstance(insn, VarInsn) and insn.opcode == opcodes.ASTORE:
        return partial.locals.get_local(insn.var).instance_at(index, store=True)
    return None


class TryCatchGraphProducerStep(GraphProducerStep):
    """Inserts start/end/catch marker blocks for every exception entry."""

    def collect_breakpoints(self, partial: "PartialMethod", break_points: Set[int]) -> None:
        last = len(partial.opcodes) - 1
        for entry in partial.method.exception_table:
            handler = partial.label_index(entry.handler)
            break_points.add(partial.label_index(entry.start))
            break_points.add(partial.label_index(entry.end))
            break_points.add(handler)
            local = caught_local(partial, handler)
            if local is not None and local.end < last:
                break_points.add(local.end)

    def form_edges(
        self,
        partial: "PartialMethod",
        blocks: Dict[int, OpcodeBlock],
        sorted_break_points: List[int],
        block_list: List[OpcodeBlock],
    ) -> None:
        pending: Dict[Optional[int], List[TryCatchMarkerOpcodeBlock]] = {}
        for entry in reversed(partial.method.exception_table):
            positions = {
                kind: partial.label_index(label)
                for kind, label in (
                    (TryCatchMarkerType.START, entry.start),
                    (TryCatchMarkerType.END, entry.end),
                    (TryCatchMarkerType.CATCH, entry.handler),
                )
            }
            markers = {
                kind: partial.arena.new(
                    TryCatchMarkerOpcodeBlock,
                    start=index,
                    breakpoint=index,
                    marker_type=kind,
                    entry=entry,
                )
                for kind, index in positions.items()
            }
            start = markers[TryCatchMarkerType.START]
            end = markers[TryCatchMarkerType.END]
            for marker in markers.values():
                marker.start_marker = start.uid
                marker.end_marker = end.uid
            for kind, marker in markers.items():
                following = block_after(positions[kind], blocks, sorted_break_points)
                key = following.uid if following is not None else None
                pending.setdefault(key, []).append(marker)

        # Markers sharing a position close ranges first, then open handlers,
        # then open new ranges.
        for uid, group in pending.items():
            group.sort(key=lambda marker: _MARKER_ORDER[marker.marker_type])
            if uid is None:
                block_list.extend(group)
                continue
            at = next(pos for pos, block in enumerate(block_list) if block.uid == uid)
            block_list[at:at] = group


_MARKER_ORDER = {
    TryCatchMarkerType.END: 0,
    TryCatchMarkerType.CATCH: 1,
    TryCatchMarkerType.START: 2,
}


def _marker(block: OpcodeBlock, kind: TryCatchMarkerType) -> bool:
    return isinstance(block, TryCatchMarkerOpcodeBlock) and block.marker_type is kind


class TryCatchBlockProcessor(GraphProcessor):
    """Rebuilds a try/catch statement from a start marker.

    Must run before every other recognizer: markers carry no instructions and
    would otherwise be taken for empty blocks.

    A protected range that lies inside one of the statement's handlers and
    reuses another of its handlers is how compilers lay out ``finally``.  Such
    a range is folded into the statement: its markers are dropped and the
    clause owning the shared handler is flagged with ``guards_handlers``.
    """

    def process(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        index: int,
        stop: int,
        result: List[BlockSection],
    ) -> ProcessResult:
        marker = blocks[index]
        if not isinstance(marker, TryCatchMarkerOpcodeBlock):
            return NOT_MATCHED
        if marker.marker_type is not TryCatchMarkerType.START:
            raise MalformedExceptionTableError(
                f"{marker.marker_type.value} marker for {marker.entry.type_name} "
                f"at {marker.start} without a matching start"
            )

        ends = self._collect_ends(blocks, stop, marker)
        last_start = position_of(blocks, ends[-1].start_marker)
        first_end = position_of(blocks, ends[0].uid)
        if last_start is None or last_start < index or last_start >= first_end:
            raise MalformedExceptionTableError(
                f"protected range of {marker.entry.type_name} at {marker.start} is not nested"
            )
        for pos in range(index, last_start + 1):
            if not _marker(blocks[pos], TryCatchMarkerType.START):
                raise MalformedExceptionTableError(
                    f"unexpected block between the start markers at {marker.start}"
                )

        section = TryCatchBlockSection()
        body = list(blocks[last_start + 1 : first_end])
        pos = first_end + len(ends)
        run_end = pos
        while run_end < stop and not blocks[run_end].is_marker:
            run_end += 1
        body_end = strip_labels(blocks, pos, run_end)
        follower: Optional[OpcodeBlock] = None
        exit_pos: Optional[int] = None
        last = blocks[body_end - 1] if body_end > pos else None
        if isinstance(last, GotoOpcodeBlock):
            exit_pos = within(blocks, body_end - 1, stop, last.target)
            if exit_pos is not None:
                follower = last
                body_end -= 1
        # code between the end markers and the exit jump still belongs to the body
        body.extend(blocks[pos:body_end])
        section.jumps.extend(blocks[body_end:run_end])
        pos = run_end
        flatten_blocks(partial, body, follower, section.body)

        pending = list(ends)
        shared: List[ExceptionEntry] = []
        while pending or shared:
            while pos < stop and blocks[pos].is_label_only:
                section.jumps.append(blocks[pos])
                pos += 1
            if pos >= stop or not _marker(blocks[pos], TryCatchMarkerType.CATCH):
                raise MalformedExceptionTableError(
                    f"missing handler for the protected range at {marker.start}"
                )
            exceptions: List[str] = []
            guards_handlers = False
            while pos < stop and _marker(blocks[pos], TryCatchMarkerType.CATCH):
                handler = blocks[pos]
                match = next((end for end in pending if end.entry is handler.entry), None)
                if match is not None:
                    pending.remove(match)
                elif any(entry is handler.entry for entry in shared):
                    shared.remove(handler.entry)
                    guards_handlers = True
                else:
                    raise MalformedExceptionTableError(
                        f"catch marker for {handler.entry.type_name} at {handler.start} "
                        "has no matching protected range"
                    )
                if handler.entry.type_name not in exceptions:
                    exceptions.append(handler.entry.type_name)
                pos += 1
            exceptions.reverse()
            while pos < stop and self._shares_handler(partial, blocks[pos], pending):
                shared.append(blocks[pos].entry)
                pos += 1
            if pos >= stop or (
                blocks[pos].is_marker and not _marker(blocks[pos], TryCatchMarkerType.START)
            ):
                raise MalformedExceptionTableError(
                    f"handler for {', '.join(exceptions)} has no body"
                )
            catch, pos = self._build_catch(
                partial, blocks, pos, stop, exceptions, exit_pos, section, pending, shared
            )
            catch.guards_handlers = guards_handlers
            section.catches.append(catch)
            if pos == exit_pos:
                pending.clear()

        logger.debug(
            "try/catch at %d: %d clause(s), resuming at block %d",
            marker.start,
            len(section.catches),
            pos,
        )
        result.append(section)
        return Matched(pos)

    def _collect_ends(
        self, blocks: List[OpcodeBlock], stop: int, marker: TryCatchMarkerOpcodeBlock
    ) -> List[TryCatchMarkerOpcodeBlock]:
        """Return the run of end markers containing ``marker``'s end."""

        pos = position_of(blocks, marker.end_marker)
        if pos is None or pos >= stop:
            raise MalformedExceptionTableError(
                f"start marker for {marker.entry.type_name} at {marker.start} has no end marker"
            )
        while pos > 0 and _marker(blocks[pos - 1], TryCatchMarkerType.END):
            pos -= 1
        ends: List[TryCatchMarkerOpcodeBlock] = []
        while pos < stop and _marker(blocks[pos], TryCatchMarkerType.END):
            ends.append(blocks[pos])
            pos += 1
        return ends

    def _shares_handler(
        self,
        partial: "PartialMethod",
        block: OpcodeBlock,
        pending: List[TryCatchMarkerOpcodeBlock],
    ) -> bool:
        """True for a start marker whose handler is still to come in this statement."""

        if not _marker(block, TryCatchMarkerType.START):
            return False
        handler = partial.label_index(block.entry.handler)
        return any(partial.label_index(end.entry.handler) == handler for end in pending)

    def _statement_end(self, blocks: List[OpcodeBlock], pos: int, limit: int) -> int:
        """Position past the last catch marker of the try statement starting at ``pos``."""

        entries: List[ExceptionEntry] = []
        while pos < limit and _marker(blocks[pos], TryCatchMarkerType.START):
            entries.append(blocks[pos].entry)
            pos += 1
        end = pos
        for offset in range(pos, limit):
            block = blocks[offset]
            if _marker(block, TryCatchMarkerType.CATCH) and any(
                block.entry is entry for entry in entries
            ):
                end = offset + 1
        return end

    def _bind(
        self, partial: "PartialMethod", block: OpcodeBlock, catch: CatchBlockSection
    ) -> OpcodeBlock:
        """Record the store of the caught value and return ``block`` without it."""

        for offset, insn in enumerate(block.opcodes):
            if insn.opcode not in (opcodes.ASTORE, opcodes.POP):
                continue
            catch.binding = insn
            catch.binding_position = block.positions[offset]
            if insn.opcode == opcodes.ASTORE:
                catch.local = partial.locals.get_local(insn.var).instance_at(
                    catch.binding_position, store=True
                )
            return block.without(offset)
        return block

    def _build_catch(
        self,
        partial: "PartialMethod",
        blocks: List[OpcodeBlock],
        pos: int,
        stop: int,
        exceptions: List[str],
        exit_pos: Optional[int],
        section: TryCatchBlockSection,
        pending: List[TryCatchMarkerOpcodeBlock],
        shared: List[ExceptionEntry],
    ) -> Tuple[CatchBlockSection, int]:
        catch = CatchBlockSection(exceptions=exceptions)
        catch_body: List[OpcodeBlock] = []
        if not blocks[pos].is_marker:
            catch_body.append(self._bind(partial, blocks[pos], catch))
            pos += 1

        limit = exit_pos if exit_pos is not None else stop
        exit_uid = blocks[exit_pos].uid if exit_pos is not None else None
        while pos < limit:
            candidate = blocks[pos]
            if candidate.is_marker:
                if _marker(candidate, TryCatchMarkerType.END) and any(
                    entry is candidate.entry for entry in shared
                ):
                    pos += 1
                    continue
                if self._shares_handler(partial, candidate, pending):
                    shared.append(candidate.entry)
                    pos += 1
                    continue
                if not _marker(candidate, TryCatchMarkerType.START) or (
                    exit_uid is None
                    and (catch.local is None or candidate.breakpoint > catch.local.end)
                ):
                    break
                # a try statement nested in the handler, up to its last clause
                end = self._statement_end(blocks, pos, limit)
                catch_body.extend(blocks[pos:end])
                pos = end
                continue
            if exit_uid is not None:
                if isinstance(candidate, GotoOpcodeBlock) and candidate.target == exit_uid:
                    section.jumps.append(candidate)
                    flatten_blocks(partial, catch_body, candidate, catch.body)
                    return catch, pos + 1
            elif catch.local is not None and candidate.breakpoint > catch.local.end:
                # TODO: without a variable table the synthesised live range ends at
                # the last direct use; a later use through a copy is not followed.
                break
            catch_body.append(candidate)
            pos += 1

        follower = blocks[pos] if pos < len(blocks) else None
        flatten_blocks(partial, catch_body, follower, catch.body)
        return catch, pos


__all__ = ["TryCatchGraphProducerStep", "TryCatchBlockProcessor", "caught_local"]

"""Method body decompiler: graph construction and structuring driver."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from .config import DecompilerConfig
from .errors import StructuringError, UnrecognizedRegionError
from .graph.blocks import BlockArena, BodyOpcodeBlock, OpcodeBlock
from .graph.processors import (
    DoWhileLoopProcessor,
    GraphProcessor,
    IfBlockProcessor,
    Matched,
    SwitchBlockProcessor,
    WhileLoopProcessor,
)
from .graph.producers import GraphProducerStep, JumpGraphProducerStep, SwitchGraphProducerStep
from .graph.sections import BlockSection, CommentBlockSection, InlineBlockSection
from .graph.trycatch import TryCatchBlockProcessor, TryCatchGraphProducerStep
from .instruction import Insn, Label, LabelInsn
from .locals import LocalBinder, Locals
from .method import MethodEntry
from .postprocess import IncrementMerger, StatementPostProcessor

logger = logging.getLogger(__name__)


class GraphOperation:
    """Rewrites the finished block list before it is structured."""

    def process(self, partial: "PartialMethod") -> None:
        raise NotImplementedError


@dataclass
class MethodBody:
    """The structured result for one method."""

    method: MethodEntry
    locals: Locals
    sections: List[BlockSection] = field(default_factory=list)


@dataclass
class MethodResult:
    """Outcome of one method of a batch: a body or the failure."""

    method: MethodEntry
    body: Optional[MethodBody] = None
    error: Optional[StructuringError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PartialMethod:
    """Per-method decompilation session."""

    def __init__(
        self,
        decompiler: "MethodDecompiler",
        method: MethodEntry,
        config: DecompilerConfig,
    ) -> None:
        self.decompiler = decompiler
        self.method = method
        self.config = config
        self.opcodes: List[Insn] = list(method.instructions)
        self.label_indices: Dict[Label, int] = {
            insn.label: index
            for index, insn in enumerate(self.opcodes)
            if isinstance(insn, LabelInsn)
        }
        self.locals = Locals()
        self.arena = BlockArena()
        self.graph: List[OpcodeBlock] = []
        self.depth = 0

    def label_index(self, label: Label) -> int:
        index = self.label_indices.get(label)
        if index is None:
            raise StructuringError(f"{self.method.qualified_name}: unknown label {label!r}")
        return index


class MethodDecompiler:
    """Decompiles method bodies into trees of block sections.

    Graph producers, cleanup operations, region processors and post
    processors are tried in registration order.
    """

    def __init__(self, config: Optional[DecompilerConfig] = None) -> None:
        self.config = config or DecompilerConfig()
        self.graph_producers: List[GraphProducerStep] = []
        self.cleanup_operations: List[GraphOperation] = []
        self.processors: List[GraphProcessor] = []
        self.post_processors: List[StatementPostProcessor] = []
        self.binder = LocalBinder()

    def add_graph_producer(self, step: GraphProducerStep) -> None:
        self.graph_producers.append(step)

    def add_cleanup_operation(self, op: GraphOperation) -> None:
        self.cleanup_operations.append(op)

    def add_processor(self, processor: GraphProcessor) -> None:
        self.processors.append(processor)

    def add_post_processor(self, post: StatementPostProcessor) -> None:
        self.post_processors.append(post)

    # ------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------
    def decompile(self, method: MethodEntry) -> Optional[MethodBody]:
        """Structure ``method``; returns ``None`` for an empty body.

        Failures other than :class:`StructuringError` raised while binding
        locals or structuring are re-raised wrapped in one.
        """

        if not method.instructions:
            return None
        partial = PartialMethod(self, method, self.config)
        try:
            body = self._structure(partial)
        except StructuringError:
            raise
        except Exception as exc:
            raise _as_structuring_error(partial, exc) from exc

        if self.config.post_process:
            for post in self.post_processors:
                try:
                    post.postprocess(body)
                except Exception:
                    logger.warning(
                        "failed to apply post processor %s to %s",
                        type(post).__name__,
                        method.qualified_name,
                        exc_info=True,
                    )
        return body

    def _structure(self, partial: PartialMethod) -> MethodBody:
        method = partial.method
        partial.locals = self.binder.bind(method, partial.label_indices)
        partial.graph = self.make_graph(partial)

        for op in self.cleanup_operations:
            op.process(partial)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("block graph of %s", method.qualified_name)
            for block in partial.graph:
                logger.debug("  %s", block.debug_header())

        body = MethodBody(method, partial.locals)
        self.flatten_graph(partial, partial.graph, len(partial.graph), body.sections)
        return body

    def decompile_all(self, methods: Sequence[MethodEntry]) -> List[MethodResult]:
        """Decompile every method independently, in input order.

        A structuring failure only affects the method it occurs in.
        """

        if self.config.workers is None or self.config.workers == 1:
            return [self._decompile_one(method) for method in methods]
        with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
            return list(pool.map(self._decompile_one, methods))

    def _decompile_one(self, method: MethodEntry) -> MethodResult:
        try:
            body = self.decompile(method)
        except StructuringError as exc:
            logger.warning("failed to decompile %s: %s", method.qualified_name, exc)
            return MethodResult(method, error=exc)
        return MethodResult(method, body=body)

    # ------------------------------------------------------------------
    # graph construction
    # ------------------------------------------------------------------
    def make_graph(self, partial: PartialMethod) -> List[OpcodeBlock]:
        instructions = partial.opcodes
        break_points: Set[int] = {len(instructions) - 1}
        for step in self.graph_producers:
            step.collect_breakpoints(partial, break_points)

        sorted_break_points = sorted(break_points)
        blocks: Dict[int, OpcodeBlock] = {}
        block_list: List[OpcodeBlock] = []
        last_brk = 0
        for brk in sorted_break_points:
            # accumulate the opcodes between the last breakpoint and this one
            positions = list(range(last_brk, brk + 1))
            block = partial.arena.new(
                BodyOpcodeBlock,
                start=last_brk,
                breakpoint=brk,
                opcodes=[instructions[i] for i in positions],
                positions=positions,
            )
            blocks[brk] = block
            block_list.append(block)
            last_brk = brk + 1

        for current, following in zip(block_list, block_list[1:]):
            current.target = following.uid

        for step in self.graph_producers:
            step.form_edges(partial, blocks, sorted_break_points, block_list)
        return block_list

    # ------------------------------------------------------------------
    # structuring
    # ------------------------------------------------------------------
    def flatten_graph(
        self,
        partial: PartialMethod,
        blocks: List[OpcodeBlock],
        stop_point: int,
        result: List[BlockSection],
    ) -> None:
        """Structure ``blocks[:stop_point]`` into ``result``.

        The first processor recognizing a region at the current position
        wins; a position no processor claims becomes a plain run.  A block at
        ``stop_point`` is never consumed: it is where control leaves the
        region.
        """

        partial.depth += 1
        try:
            if partial.depth > partial.config.max_depth:
                raise StructuringError(
                    f"{partial.method.qualified_name}: regions nested deeper than "
                    f"{partial.config.max_depth}"
                )
            index = 0
            while index < stop_point:
                for processor in self.processors:
                    outcome = processor.process(partial, blocks, index, stop_point, result)
                    if isinstance(outcome, Matched):
                        if not index < outcome.next_index <= stop_point:
                            raise UnrecognizedRegionError(
                                f"{type(processor).__name__} resumed at {outcome.next_index} "
                                f"after block {blocks[index].uid}"
                            )
                        index = outcome.next_index
                        break
                else:
                    block = blocks[index]
                    if block.is_marker:
                        raise UnrecognizedRegionError(
                            f"{partial.method.qualified_name}: no processor claimed "
                            f"{block.debug_header()}"
                        )
                    result.append(InlineBlockSection.of(block))
                    index += 1
        finally:
            partial.depth -= 1

    def flatten_region(
        self,
        partial: PartialMethod,
        blocks: List[OpcodeBlock],
        stop_point: int,
        result: List[BlockSection],
    ) -> None:
        """Structure a nested region, degrading to a comment if allowed."""

        sections: List[BlockSection] = []
        try:
            self.flatten_graph(partial, blocks, stop_point, sections)
        except Exception as exc:
            error = _as_structuring_error(partial, exc)
            if not partial.config.print_opcodes_on_error:
                if error is exc:
                    raise
                raise error from exc
            logger.warning(
                "%s: emitting raw opcodes for a region: %s",
                partial.method.qualified_name,
                error,
            )
            result.append(CommentBlockSection.of(list(blocks[:stop_point])))
            return
        result.extend(sections)


def _as_structuring_error(partial: PartialMethod, exc: Exception) -> StructuringError:
    if isinstance(exc, StructuringError):
        return exc
    return StructuringError(
        f"{partial.method.qualified_name}: unexpected {type(exc).__name__} "
        f"while structuring: {exc}"
    )


def create_default_decompiler(config: Optional[DecompilerConfig] = None) -> MethodDecompiler:
    """Return a decompiler with the standard producers and processors."""

    decompiler = MethodDecompiler(config)
    decompiler.add_graph_producer(JumpGraphProducerStep())
    decompiler.add_graph_producer(SwitchGraphProducerStep())
    decompiler.add_graph_producer(TryCatchGraphProducerStep())

    decompiler.add_processor(TryCatchBlockProcessor())
    decompiler.add_processor(SwitchBlockProcessor())
    decompiler.add_processor(WhileLoopProcessor())
    decompiler.add_processor(DoWhileLoopProcessor())
    decompiler.add_processor(IfBlockProcessor())

    decompiler.add_post_processor(IncrementMerger())
    return decompiler


__all__ = [
    "GraphOperation",
    "MethodBody",
    "MethodResult",
    "PartialMethod",
    "MethodDecompiler",
    "create_default_decompiler",
]

"""Resolution of reused local variable slots into variable instances.

A JVM method may reuse one local slot for several logical variables at
different program points.  :class:`LocalBinder` splits every slot into
non-overlapping :class:`LocalInstance` objects, each with a name, a type and
a live range expressed as instruction indices ``[start, end)``.  Every slot
access in the method resolves to exactly one instance; the binder prefers the
declared local variable table and synthesises instances for whatever the
table does not cover.
"""

from __future__ import annotations

import logging
from bisect import insort
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from . import opcodes
from .errors import UnresolvableLocalError
from .instruction import IincInsn, Insn, Label, VarInsn, is_load, is_store
from .method import LocalVariableEntry, MethodEntry, parameter_slots
from .types import TypeSignature

logger = logging.getLogger(__name__)

# A store may precede the start label of the instance it initialises by a
# label or two (``ASTORE 1; L0: ...``).
STORE_LOOKAHEAD = 2

THROWABLE = "Ljava/lang/Throwable;"


@dataclass(eq=False)
class LocalInstance:
    """One typed, named occurrence of a slot over ``[start, end)``."""

    slot: int
    name: str
    type: TypeSignature
    start: int
    end: int
    entry: Optional[LocalVariableEntry] = None
    synthetic: bool = False
    parameter: bool = False

    def covers(self, index: int) -> bool:
        return self.start <= index < self.end

    def overlaps(self, other: "LocalInstance") -> bool:
        return self.start < other.end and other.start < self.end

    def describe(self) -> str:
        return f"{self.type.describe()} {self.name}"

    def __lt__(self, other: "LocalInstance") -> bool:
        return (self.start, self.end) < (other.start, other.end)


@dataclass
class Local:
    """All instances bound to a single slot, ordered by start index."""

    index: int
    instances: List[LocalInstance] = field(default_factory=list)
    is_parameter: bool = False

    def add_instance(self, instance: LocalInstance) -> None:
        for existing in self.instances:
            if existing.overlaps(instance):
                raise ValueError(
                    f"instance {instance.name}@[{instance.start},{instance.end}) overlaps "
                    f"{existing.name}@[{existing.start},{existing.end}) in slot {self.index}"
                )
        insort(self.instances, instance)

    def instance_at(self, index: int, *, store: bool = False) -> Optional[LocalInstance]:
        """Return the instance live at ``index``.

        For stores an instance starting shortly after ``index`` also counts:
        the store is what initialises it.
        """

        for instance in self.instances:
            if instance.covers(index):
                return instance
        if store:
            for instance in self.instances:
                if index < instance.start <= index + STORE_LOOKAHEAD:
                    return instance
        return None

    @property
    def parameter_instance(self) -> Optional[LocalInstance]:
        for instance in self.instances:
            if instance.parameter:
                return instance
        return None

    def next_start(self, index: int, default: int) -> int:
        """Start of the first instance beginning after ``index``."""

        for instance in self.instances:
            if instance.start > index:
                return instance.start
        return default


class Locals:
    """Symbol table mapping slot indices to their variable instances."""

    def __init__(self) -> None:
        self._locals: Dict[int, Local] = {}

    def get_local(self, index: int) -> Local:
        local = self._locals.get(index)
        if local is None:
            local = Local(index)
            self._locals[index] = local
        return local

    def find_instance(self, slot: int, index: int, *, store: bool = False) -> LocalInstance:
        local = self._locals.get(slot)
        instance = local.instance_at(index, store=store) if local is not None else None
        if instance is None:
            raise UnresolvableLocalError(f"no instance of slot {slot} at instruction {index}")
        return instance

    def __iter__(self) -> Iterator[Local]:
        for index in sorted(self._locals):
            yield self._locals[index]

    def __len__(self) -> int:
        return len(self._locals)

    def symbol_table(self) -> Dict[int, Tuple[LocalInstance, ...]]:
        return {local.index: tuple(local.instances) for local in self}


@dataclass
class _Region:
    first: int
    last: int
    opcode: int


class LocalBinder:
    """Bind every slot access of a method to a :class:`LocalInstance`."""

    def bind(self, method: MethodEntry, label_indices: Mapping[Label, int]) -> Locals:
        instructions = method.instructions
        locals_ = Locals()
        self._bind_declared(method, label_indices, locals_)
        self._bind_parameters(method, len(instructions), locals_)
        self._bind_copies(instructions, locals_)
        self._synthesise(instructions, self._handler_types(method, label_indices), locals_)
        return locals_

    # ------------------------------------------------------------------
    # declared table and parameters
    # ------------------------------------------------------------------
    def _bind_declared(
        self,
        method: MethodEntry,
        label_indices: Mapping[Label, int],
        locals_: Locals,
    ) -> None:
        for entry in method.local_variables:
            start = label_indices.get(entry.start)
            end = label_indices.get(entry.end)
            if start is None or end is None or end <= start:
                logger.warning(
                    "%s: ignoring local variable %s in slot %d with an invalid range",
                    method.qualified_name,
                    entry.name,
                    entry.index,
                )
                continue
            instance = LocalInstance(
                slot=entry.index,
                name=entry.name,
                type=TypeSignature(entry.desc, entry.signature),
                start=start,
                end=end,
                entry=entry,
            )
            try:
                locals_.get_local(entry.index).add_instance(instance)
            except ValueError as exc:
                logger.warning("%s: %s", method.qualified_name, exc)

    def _bind_parameters(self, method: MethodEntry, size: int, locals_: Locals) -> None:
        params = method.parameter_types
        slots = parameter_slots(method.is_static, params)
        described: List[Tuple[int, str, str]] = []
        if not method.is_static:
            described.append((0, "this", f"L{method.owner};"))
        described.extend((slot, f"param{slot}", desc) for slot, desc in zip(slots, params))

        for slot, name, desc in described:
            local = locals_.get_local(slot)
            local.is_parameter = True
            if local.instances:
                first = local.instances[0]
                first.start = 0
                first.parameter = True
                continue
            local.add_instance(
                LocalInstance(
                    slot=slot,
                    name=name,
                    type=TypeSignature(desc),
                    start=0,
                    end=max(size, 1),
                    synthetic=True,
                    parameter=True,
                )
            )

    # ------------------------------------------------------------------
    # heuristics
    # ------------------------------------------------------------------
    def _bind_copies(self, instructions: Sequence[Insn], locals_: Locals) -> None:
        """Attach the loaded instance to a store that directly copies it."""

        for index in range(1, len(instructions)):
            last = instructions[index - 1]
            insn = instructions[index]
            if not (isinstance(last, VarInsn) and isinstance(insn, VarInsn)):
                continue
            if not (is_load(last) and is_store(insn)):
                continue
            store_local = locals_.get_local(insn.var)
            if store_local.instance_at(index, store=True) is not None:
                continue
            load = locals_.get_local(last.var).instance_at(index - 1)
            if load is None:
                continue
            end = store_local.next_start(index, max(load.end, index + 1))
            end = min(max(load.end, index + 1), end)
            store_local.add_instance(
                LocalInstance(
                    slot=insn.var,
                    name=load.name,
                    type=load.type,
                    start=index,
                    end=end,
                    entry=load.entry,
                    synthetic=load.synthetic,
                )
            )

    def _handler_types(
        self, method: MethodEntry, label_indices: Mapping[Label, int]
    ) -> Dict[int, str]:
        """Map the first instruction of every handler to its caught type."""

        instructions = method.instructions
        found: Dict[int, List[str]] = {}
        for entry in method.exception_table:
            index = label_indices.get(entry.handler)
            if index is None:
                continue
            while index < len(instructions) and instructions[index].opcode == opcodes.LABEL:
                index += 1
            desc = f"L{entry.type};" if entry.type is not None else THROWABLE
            found.setdefault(index, [])
            if desc not in found[index]:
                found[index].append(desc)
        return {
            index: descs[0] if len(descs) == 1 else THROWABLE for index, descs in found.items()
        }

    def _synthesise(
        self,
        instructions: Sequence[Insn],
        handler_types: Mapping[int, str],
        locals_: Locals,
    ) -> None:
        accesses: Dict[int, List[Tuple[int, Insn]]] = {}
        for index, insn in enumerate(instructions):
            if isinstance(insn, (VarInsn, IincInsn)) and (
                isinstance(insn, IincInsn) or is_load(insn) or is_store(insn)
            ):
                accesses.setdefault(insn.var, []).append((index, insn))

        for slot in sorted(accesses):
            local = locals_.get_local(slot)
            regions: List[_Region] = []
            current: Optional[_Region] = None
            for index, insn in accesses[slot]:
                if local.instance_at(index, store=is_store(insn)) is not None:
                    current = None
                    continue
                starts_region = (
                    current is None
                    or is_store(insn)
                    or any(current.last < instance.start <= index for instance in local.instances)
                )
                if starts_region:
                    current = _Region(index, index, insn.opcode)
                    regions.append(current)
                else:
                    current.last = index

            count = sum(
                1 for instance in local.instances if instance.synthetic and not instance.parameter
            )
            for region in regions:
                name = f"local{slot}" if count == 0 else f"local{slot}_{count}"
                count += 1
                desc = handler_types.get(region.first)
                if desc is None or region.opcode != opcodes.ASTORE:
                    desc = opcodes.LOCAL_DESCRIPTORS.get(region.opcode, "I")
                instance = LocalInstance(
                    slot=slot,
                    name=name,
                    type=TypeSignature(desc),
                    start=region.first,
                    end=region.last + 1,
                    synthetic=True,
                )
                local.add_instance(instance)
                logger.debug(
                    "synthesised %s for slot %d over [%d, %d)",
                    name,
                    slot,
                    instance.start,
                    instance.end,
                )


__all__ = ["LocalBinder", "Locals", "Local", "LocalInstance", "STORE_LOOKAHEAD"]

from typing import List

import pytest

from jvmstruct import (
    DecompilerConfig,
    ExceptionEntry,
    MalformedExceptionTableError,
    MethodEntry,
    PartialMethod,
    create_default_decompiler,
)
from jvmstruct.graph import (
    CommentBlockSection,
    InlineBlockSection,
    TryCatchBlockSection,
    TryCatchMarkerOpcodeBlock,
    TryCatchMarkerType,
    covered_positions,
)
from jvmstruct.instruction import Insn, JumpInsn, Label, LabelInsn, MethodInsn, VarInsn
from jvmstruct.opcodes import (
    ALOAD,
    ASTORE,
    ATHROW,
    GOTO,
    IFEQ,
    ILOAD,
    INVOKESTATIC,
    POP,
    RETURN,
)
from jvmstruct.printer import SectionPrinter


def _call(name: str, desc: str = "()V") -> MethodInsn:
    return MethodInsn(INVOKESTATIC, "demo/Calls", name, desc)


def _calls(sections) -> List[str]:
    names = []
    for root in sections:
        for section in root.walk():
            if isinstance(section, InlineBlockSection):
                names.extend(
                    insn.name for insn in section.statements if isinstance(insn, MethodInsn)
                )
    return names


def _assert_covered(method: MethodEntry, sections) -> None:
    assert sorted(covered_positions(sections)) == list(range(len(method.instructions)))
    # every marker is consumed by a try statement unless it ended up in raw output
    for root in sections:
        for section in root.walk():
            if not isinstance(section, CommentBlockSection):
                assert not any(block.is_marker for block in section.own_blocks())


def _try_sections(sections) -> List[TryCatchBlockSection]:
    return [
        section
        for root in sections
        for section in root.walk()
        if isinstance(section, TryCatchBlockSection)
    ]


def _guarded_method(*types: str, name: str = "guarded") -> MethodEntry:
    start, end, handler, done = Label("start"), Label("end"), Label("handler"), Label("done")
    instructions = [
        LabelInsn(start),
        _call("risky"),
        LabelInsn(end),
        JumpInsn(GOTO, done),
        LabelInsn(handler),
        VarInsn(ASTORE, 1),
        VarInsn(ALOAD, 1),
        _call("log", "(Ljava/lang/Throwable;)V"),
        LabelInsn(done),
        Insn(RETURN),
    ]
    table = [ExceptionEntry(start, end, handler, exc_type) for exc_type in types]
    return MethodEntry("demo/Guard", name, "()V", instructions, exception_table=table)


def _reversed_range_method() -> MethodEntry:
    method = _guarded_method("java/lang/Exception", name="broken")
    entry = method.exception_table[0]
    method.exception_table = [ExceptionEntry(entry.end, entry.start, entry.handler, entry.type)]
    return method


def test_simple_try_catch() -> None:
    method = _guarded_method("java/lang/Exception")
    body = create_default_decompiler().decompile(method)

    sections = _try_sections(body.sections)
    assert len(sections) == 1
    section = sections[0]
    assert _calls(section.body) == ["risky"]
    assert len(section.catches) == 1
    catch = section.catches[0]
    assert catch.exceptions == ["java/lang/Exception"]
    assert catch.local is not None
    assert catch.local.slot == 1
    assert catch.local.type.descriptor == "Ljava/lang/Exception;"
    assert catch.binding_position == 5
    assert _calls(catch.body) == ["log"]
    assert body.sections[-1].statements[-1].opcode == RETURN
    _assert_covered(method, body.sections)


def test_shared_handler_lists_every_type() -> None:
    method = _guarded_method("java/io/IOException", "java/lang/IllegalStateException")
    body = create_default_decompiler().decompile(method)

    sections = _try_sections(body.sections)
    assert len(sections) == 1
    assert len(sections[0].catches) == 1
    catch = sections[0].catches[0]
    assert catch.exceptions == ["java/io/IOException", "java/lang/IllegalStateException"]
    assert catch.local.type.descriptor == "Ljava/lang/Throwable;"
    assert _calls(catch.body) == ["log"]
    _assert_covered(method, body.sections)


def test_catch_all_entry_is_named_any() -> None:
    body = create_default_decompiler().decompile(_guarded_method(None))

    catch = _try_sections(body.sections)[0].catches[0]
    assert catch.exceptions == ["any"]
    assert "catch (any local1)" in SectionPrinter().render(body)


def test_nested_try_statements() -> None:
    outer_start, inner_start = Label("outer_start"), Label("inner_start")
    inner_end, inner_handler = Label("inner_end"), Label("inner_handler")
    outer_end, outer_handler = Label("outer_end"), Label("outer_handler")
    inner_done, outer_done = Label("inner_done"), Label("outer_done")
    instructions = [
        LabelInsn(outer_start),
        LabelInsn(inner_start),
        _call("work"),
        LabelInsn(inner_end),
        JumpInsn(GOTO, inner_done),
        LabelInsn(inner_handler),
        VarInsn(ASTORE, 1),
        _call("inner"),
        LabelInsn(inner_done),
        LabelInsn(outer_end),
        JumpInsn(GOTO, outer_done),
        LabelInsn(outer_handler),
        VarInsn(ASTORE, 1),
        _call("outer"),
        LabelInsn(outer_done),
        Insn(RETURN),
    ]
    method = MethodEntry(
        "demo/Guard",
        "nested",
        "()V",
        instructions,
        is_static=True,
        exception_table=[
            ExceptionEntry(inner_start, inner_end, inner_handler, "java/io/IOException"),
            ExceptionEntry(outer_start, outer_end, outer_handler, "java/lang/Exception"),
        ],
    )
    body = create_default_decompiler().decompile(method)

    outer = [section for section in body.sections if isinstance(section, TryCatchBlockSection)]
    assert len(outer) == 1
    inner = [section for section in outer[0].body if isinstance(section, TryCatchBlockSection)]
    assert len(inner) == 1
    assert _calls(inner[0].body) == ["work"]
    assert inner[0].catches[0].exceptions == ["java/io/IOException"]
    assert inner[0].catches[0].local.name == "local1"
    assert _calls(inner[0].catches[0].body) == ["inner"]
    assert outer[0].catches[0].exceptions == ["java/lang/Exception"]
    assert outer[0].catches[0].local.name == "local1_1"
    assert _calls(outer[0].catches[0].body) == ["outer"]
    _assert_covered(method, body.sections)


def test_markers_reference_their_counterparts() -> None:
    decompiler = create_default_decompiler()
    method = _guarded_method("java/io/IOException", "java/lang/IllegalStateException")
    partial = PartialMethod(decompiler, method, decompiler.config)
    partial.locals = decompiler.binder.bind(method, partial.label_indices)
    graph = decompiler.make_graph(partial)

    markers = [block for block in graph if isinstance(block, TryCatchMarkerOpcodeBlock)]
    assert len(markers) == 3 * len(method.exception_table)
    for marker in markers:
        start = partial.arena.get(marker.start_marker)
        end = partial.arena.get(marker.end_marker)
        assert start.marker_type is TryCatchMarkerType.START
        assert end.marker_type is TryCatchMarkerType.END
        assert start.entry is marker.entry
        assert end.entry is marker.entry
        assert marker.opcodes == []


def test_restructuring_the_same_graph_is_idempotent() -> None:
    decompiler = create_default_decompiler()
    method = _guarded_method("java/lang/Exception")
    partial = PartialMethod(decompiler, method, decompiler.config)
    partial.locals = decompiler.binder.bind(method, partial.label_indices)
    graph = decompiler.make_graph(partial)
    printer = SectionPrinter()

    first: list = []
    second: list = []
    decompiler.flatten_graph(partial, graph, len(graph), first)
    decompiler.flatten_graph(partial, graph, len(graph), second)

    assert printer.render_sections(first) == printer.render_sections(second)
    assert sorted(covered_positions(second)) == list(range(len(method.instructions)))


def test_malformed_table_fails_only_its_method() -> None:
    decompiler = create_default_decompiler()
    good = _guarded_method("java/lang/Exception")

    results = decompiler.decompile_all([_reversed_range_method(), good])

    assert results[1].method is good
    assert isinstance(results[0].error, MalformedExceptionTableError)
    assert results[0].body is None
    assert results[1].ok
    assert _try_sections(results[1].body.sections)


def test_batch_on_worker_threads_keeps_input_order() -> None:
    decompiler = create_default_decompiler(DecompilerConfig(workers=2))
    methods = [_guarded_method("java/lang/Exception", name=f"m{index}") for index in range(4)]
    methods.insert(2, _reversed_range_method())

    results = decompiler.decompile_all(methods)

    assert [result.method.name for result in results] == ["m0", "m1", "broken", "m2", "m3"]
    assert [result.ok for result in results] == [True, True, False, True, True]


def test_malformed_table_raises_from_decompile() -> None:
    with pytest.raises(MalformedExceptionTableError):
        create_default_decompiler().decompile(_reversed_range_method())


def _nested_malformed_method() -> MethodEntry:
    start, first, second = Label("start"), Label("first"), Label("second")
    end, handler, done = Label("end"), Label("handler"), Label("done")
    instructions = [
        LabelInsn(start),
        LabelInsn(first),
        _call("a"),
        LabelInsn(second),
        _call("b"),
        LabelInsn(end),
        JumpInsn(GOTO, done),
        LabelInsn(handler),
        Insn(POP),
        LabelInsn(done),
        Insn(RETURN),
    ]
    return MethodEntry(
        "demo/Guard",
        "partly_broken",
        "()V",
        instructions,
        is_static=True,
        exception_table=[
            ExceptionEntry(start, end, handler, "java/lang/Exception"),
            ExceptionEntry(second, first, second, "java/lang/RuntimeException"),
        ],
    )


def test_nested_failure_degrades_to_comment() -> None:
    method = _nested_malformed_method()
    decompiler = create_default_decompiler(DecompilerConfig(print_opcodes_on_error=True))

    body = decompiler.decompile(method)

    section = _try_sections(body.sections)[0]
    assert len(section.body) == 1
    comment = section.body[0]
    assert isinstance(comment, CommentBlockSection)
    assert any("INVOKESTATIC demo/Calls.a()V" in line for line in comment.lines)
    assert section.catches[0].local is None
    assert section.catches[0].binding.opcode == POP
    _assert_covered(method, body.sections)


def test_nested_failure_without_fallback_fails_the_method() -> None:
    with pytest.raises(MalformedExceptionTableError):
        create_default_decompiler().decompile(_nested_malformed_method())


def test_try_inside_if_branch() -> None:
    skip, start, end, handler = Label("skip"), Label("start"), Label("end"), Label("handler")
    instructions = [
        VarInsn(ILOAD, 0),
        JumpInsn(IFEQ, skip),
        LabelInsn(start),
        _call("risky"),
        LabelInsn(end),
        JumpInsn(GOTO, skip),
        LabelInsn(handler),
        Insn(POP),
        _call("recover"),
        LabelInsn(skip),
        Insn(RETURN),
    ]
    method = MethodEntry(
        "demo/Guard",
        "maybe",
        "(Z)V",
        instructions,
        is_static=True,
        exception_table=[ExceptionEntry(start, end, handler, "java/lang/Exception")],
    )
    body = create_default_decompiler().decompile(method)

    sections = _try_sections(body.sections)
    assert len(sections) == 1
    assert _calls(sections[0].body) == ["risky"]
    assert _calls(sections[0].catches[0].body) == ["recover"]
    _assert_covered(method, body.sections)


def test_separate_handlers_for_one_range() -> None:
    start, end, first, second, done = (
        Label("start"),
        Label("end"),
        Label("first"),
        Label("second"),
        Label("done"),
    )
    instructions = [
        LabelInsn(start),
        _call("risky"),
        LabelInsn(end),
        JumpInsn(GOTO, done),
        LabelInsn(first),
        VarInsn(ASTORE, 0),
        VarInsn(ALOAD, 0),
        _call("log_io", "(Ljava/lang/Throwable;)V"),
        JumpInsn(GOTO, done),
        LabelInsn(second),
        VarInsn(ASTORE, 0),
        VarInsn(ALOAD, 0),
        _call("log_other", "(Ljava/lang/Throwable;)V"),
        LabelInsn(done),
        Insn(RETURN),
    ]
    method = MethodEntry(
        "demo/Guard",
        "two_handlers",
        "()V",
        instructions,
        is_static=True,
        exception_table=[
            ExceptionEntry(start, end, first, "java/io/IOException"),
            ExceptionEntry(start, end, second, "java/lang/Exception"),
        ],
    )
    body = create_default_decompiler().decompile(method)

    sections = _try_sections(body.sections)
    assert len(sections) == 1
    section = sections[0]
    assert _calls(section.body) == ["risky"]
    assert [catch.exceptions for catch in section.catches] == [
        ["java/io/IOException"],
        ["java/lang/Exception"],
    ]
    io_catch, other_catch = section.catches
    assert io_catch.local.name == "local0"
    assert io_catch.local.type.descriptor == "Ljava/io/IOException;"
    assert _calls(io_catch.body) == ["log_io"]
    assert other_catch.local.name == "local0_1"
    assert _calls(other_catch.body) == ["log_other"]
    assert body.sections[-1].statements[-1].opcode == RETURN
    _assert_covered(method, body.sections)


def test_finally_layout_keeps_both_clauses() -> None:
    start, end, handler = Label("start"), Label("end"), Label("handler")
    handler_end, cleanup, done = Label("handler_end"), Label("cleanup"), Label("done")
    instructions = [
        LabelInsn(start),
        _call("risky"),
        LabelInsn(end),
        _call("cleanup"),
        JumpInsn(GOTO, done),
        LabelInsn(handler),
        VarInsn(ASTORE, 0),
        _call("handle"),
        LabelInsn(handler_end),
        _call("cleanup"),
        JumpInsn(GOTO, done),
        LabelInsn(cleanup),
        VarInsn(ASTORE, 1),
        _call("cleanup"),
        VarInsn(ALOAD, 1),
        Insn(ATHROW),
        LabelInsn(done),
        Insn(RETURN),
    ]
    method = MethodEntry(
        "demo/Guard",
        "with_finally",
        "()V",
        instructions,
        is_static=True,
        exception_table=[
            ExceptionEntry(start, end, handler, "java/lang/Exception"),
            ExceptionEntry(start, end, cleanup, None),
            ExceptionEntry(handler, handler_end, cleanup, None),
        ],
    )
    body = create_default_decompiler().decompile(method)

    sections = _try_sections(body.sections)
    assert len(sections) == 1
    section = sections[0]
    assert _calls(section.body) == ["risky", "cleanup"]
    assert len(section.catches) == 2
    caught, finally_clause = section.catches
    assert caught.exceptions == ["java/lang/Exception"]
    assert caught.local.name == "local0"
    assert not caught.guards_handlers
    assert _calls(caught.body) == ["handle", "cleanup"]
    assert finally_clause.exceptions == ["any"]
    assert finally_clause.guards_handlers
    assert finally_clause.local.name == "local1"
    assert finally_clause.local.type.descriptor == "Ljava/lang/Throwable;"
    assert _calls(finally_clause.body) == ["cleanup"]
    assert body.sections[-1].statements[-1].opcode == RETURN
    _assert_covered(method, body.sections)


def test_catch_without_exit_ends_with_its_variable() -> None:
    start, end, handler = Label("start"), Label("end"), Label("handler")
    instructions = [
        LabelInsn(start),
        _call("risky"),
        LabelInsn(end),
        Insn(RETURN),
        LabelInsn(handler),
        VarInsn(ASTORE, 1),
        VarInsn(ALOAD, 1),
        _call("log", "(Ljava/lang/Throwable;)V"),
        _call("more"),
        Insn(RETURN),
    ]
    method = MethodEntry(
        "demo/Guard",
        "returns_early",
        "()V",
        instructions,
        exception_table=[ExceptionEntry(start, end, handler, "java/lang/Exception")],
    )
    body = create_default_decompiler().decompile(method)

    assert len(body.sections) == 3
    section = body.sections[1]
    assert isinstance(section, TryCatchBlockSection)
    assert _calls(section.body) == ["risky"]
    catch = section.catches[0]
    assert catch.local.entry is None
    assert catch.local.end == 7
    assert _calls(catch.body) == ["log"]
    assert isinstance(body.sections[2], InlineBlockSection)
    assert _calls(body.sections[2:]) == ["more"]
    _assert_covered(method, body.sections)


def test_try_nested_in_a_catch_clause() -> None:
    start, end, first, done = Label("start"), Label("end"), Label("first"), Label("done")
    inner_start, inner_end, inner_handler = Label("inner_start"), Label("inner_end"), Label("ih")
    second = Label("second")
    instructions = [
        LabelInsn(start),
        _call("a"),
        LabelInsn(end),
        JumpInsn(GOTO, done),
        LabelInsn(first),
        VarInsn(ASTORE, 0),
        LabelInsn(inner_start),
        _call("b"),
        LabelInsn(inner_end),
        JumpInsn(GOTO, done),
        LabelInsn(inner_handler),
        VarInsn(ASTORE, 1),
        _call("c"),
        JumpInsn(GOTO, done),
        LabelInsn(second),
        VarInsn(ASTORE, 0),
        _call("d"),
        LabelInsn(done),
        Insn(RETURN),
    ]
    method = MethodEntry(
        "demo/Guard",
        "nested_in_catch",
        "()V",
        instructions,
        is_static=True,
        exception_table=[
            ExceptionEntry(start, end, first, "java/io/IOException"),
            ExceptionEntry(inner_start, inner_end, inner_handler, "java/lang/RuntimeException"),
            ExceptionEntry(start, end, second, "java/lang/Exception"),
        ],
    )
    body = create_default_decompiler().decompile(method)

    outer = [section for section in body.sections if isinstance(section, TryCatchBlockSection)]
    assert len(outer) == 1
    assert _calls(outer[0].body) == ["a"]
    first_catch, second_catch = outer[0].catches
    assert first_catch.exceptions == ["java/io/IOException"]
    inner = [s for s in first_catch.body if isinstance(s, TryCatchBlockSection)]
    assert len(inner) == 1
    assert _calls(inner[0].body) == ["b"]
    assert inner[0].catches[0].exceptions == ["java/lang/RuntimeException"]
    assert inner[0].catches[0].local.name == "local1"
    assert _calls(inner[0].catches[0].body) == ["c"]
    assert second_catch.exceptions == ["java/lang/Exception"]
    assert second_catch.local.name == "local0_1"
    assert _calls(second_catch.body) == ["d"]
    _assert_covered(method, body.sections)

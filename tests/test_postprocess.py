import logging

import pytest

from jvmstruct import DecompilerConfig, MethodEntry, create_default_decompiler
from jvmstruct.graph import InlineBlockSection
from jvmstruct.instruction import IincInsn, Insn, IntInsn, VarInsn
from jvmstruct.opcodes import (
    BIPUSH,
    IADD,
    ICONST_1,
    ICONST_2,
    ILOAD,
    ISTORE,
    ISUB,
    RETURN,
)
from jvmstruct.postprocess import IncrementMerger, StatementPostProcessor


def _describe(statements):
    return [insn.describe() for insn in statements]


def test_add_constant_becomes_increment() -> None:
    merged = IncrementMerger().merge(
        [VarInsn(ILOAD, 1), Insn(ICONST_1), Insn(IADD), VarInsn(ISTORE, 1)]
    )

    assert _describe(merged) == ["IINC 1 1"]


def test_subtract_constant_becomes_negative_increment() -> None:
    merged = IncrementMerger().merge(
        [VarInsn(ILOAD, 2), IntInsn(BIPUSH, 5), Insn(ISUB), VarInsn(ISTORE, 2)]
    )

    assert _describe(merged) == ["IINC 2 -5"]


def test_constant_first_addition_is_merged() -> None:
    merged = IncrementMerger().merge(
        [Insn(ICONST_2), VarInsn(ILOAD, 1), Insn(IADD), VarInsn(ISTORE, 1)]
    )

    assert _describe(merged) == ["IINC 1 2"]


@pytest.mark.parametrize(
    "statements",
    [
        # stored into a different slot
        [VarInsn(ILOAD, 1), Insn(ICONST_1), Insn(IADD), VarInsn(ISTORE, 2)],
        # subtraction does not commute
        [Insn(ICONST_1), VarInsn(ILOAD, 1), Insn(ISUB), VarInsn(ISTORE, 1)],
        # no constant operand
        [VarInsn(ILOAD, 1), VarInsn(ILOAD, 2), Insn(IADD), VarInsn(ISTORE, 1)],
    ],
)
def test_other_arithmetic_is_left_alone(statements) -> None:
    assert IncrementMerger().merge(list(statements)) == statements


def _counting_method() -> MethodEntry:
    return MethodEntry(
        "demo/Post",
        "bump",
        "(I)V",
        [
            VarInsn(ILOAD, 0),
            Insn(ICONST_1),
            Insn(IADD),
            VarInsn(ISTORE, 0),
            Insn(RETURN),
        ],
        is_static=True,
    )


def test_decompile_applies_post_processors() -> None:
    body = create_default_decompiler().decompile(_counting_method())

    (section,) = body.sections
    assert isinstance(section, InlineBlockSection)
    assert isinstance(section.statements[0], IincInsn)
    assert _describe(section.statements) == ["IINC 0 1", "RETURN"]


def test_post_processing_can_be_disabled() -> None:
    config = DecompilerConfig(post_process=False)
    body = create_default_decompiler(config).decompile(_counting_method())

    assert len(body.sections[0].statements) == 5


class _Broken(StatementPostProcessor):
    def postprocess(self, body) -> None:
        raise RuntimeError("boom")


def test_failing_post_processor_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    decompiler = create_default_decompiler()
    decompiler.post_processors.insert(0, _Broken())

    with caplog.at_level(logging.WARNING):
        body = decompiler.decompile(_counting_method())

    assert "_Broken" in caplog.text
    assert _describe(body.sections[0].statements) == ["IINC 0 1", "RETURN"]

"""Stable textual dump of structured method bodies."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from .decompiler import MethodBody, MethodResult
from .graph.sections import (
    BlockSection,
    CommentBlockSection,
    ConditionalBlockSection,
    InlineBlockSection,
    LoopBlockSection,
    SwitchBlockSection,
    TryCatchBlockSection,
)
from .instruction import insn_to_string


def _condition_text(blocks) -> str:
    if not blocks:
        return "true"
    parts = []
    for block in blocks:
        parts.append("; ".join(insn_to_string(insn) for insn in block.opcodes))
    return " && ".join(f"[{part}]" for part in parts)


class SectionPrinter:
    """Render block sections with two-space indentation per nesting level."""

    indent = "  "

    def render(self, body: MethodBody) -> str:
        lines: List[str] = [f"method {body.method.qualified_name}"]
        lines.append("  locals:")
        for local in body.locals:
            for instance in local.instances:
                lines.append(
                    f"    slot {local.index}: {instance.describe()} "
                    f"[{instance.start}, {instance.end})"
                )
        lines.append("  body:")
        lines.extend(self.render_sections(body.sections, depth=2))
        return "\n".join(lines) + "\n"

    def render_results(self, results: Iterable[MethodResult]) -> str:
        chunks: List[str] = []
        for result in results:
            if result.body is not None:
                chunks.append(self.render(result.body))
            elif result.error is not None:
                chunks.append(f"method {result.method.qualified_name}\n  failed: {result.error}\n")
            else:
                chunks.append(f"method {result.method.qualified_name}\n  (empty)\n")
        return "\n".join(chunks)

    def write(self, body: MethodBody, output_path: Path) -> None:
        output_path.write_text(self.render(body), "utf-8")

    def render_sections(self, sections: Iterable[BlockSection], depth: int = 0) -> List[str]:
        lines: List[str] = []
        for section in sections:
            self._render_section(section, depth, lines)
        return lines

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _render_section(self, section: BlockSection, depth: int, lines: List[str]) -> None:
        pad = self.indent * depth
        if isinstance(section, InlineBlockSection):
            for insn in section.statements:
                lines.append(pad + insn_to_string(insn))
        elif isinstance(section, ConditionalBlockSection):
            lines.append(f"{pad}if {_condition_text([section.condition])} {{")
            lines.extend(self.render_sections(section.body, depth + 1))
            if section.else_body:
                lines.append(f"{pad}}} else {{")
                lines.extend(self.render_sections(section.else_body, depth + 1))
            lines.append(f"{pad}}}")
        elif isinstance(section, LoopBlockSection):
            condition = _condition_text(section.condition)
            if section.test_first:
                lines.append(f"{pad}while {condition} {{")
                lines.extend(self.render_sections(section.body, depth + 1))
                lines.append(f"{pad}}}")
            else:
                lines.append(f"{pad}do {{")
                lines.extend(self.render_sections(section.body, depth + 1))
                lines.append(f"{pad}}} while {condition}")
        elif isinstance(section, SwitchBlockSection):
            lines.append(f"{pad}switch {_condition_text([section.switch])} {{")
            for case in section.cases:
                labels = [f"case {key}:" for key in case.keys]
                if case.is_default:
                    labels.append("default:")
                lines.append(pad + self.indent + " ".join(labels))
                lines.extend(self.render_sections(case.body, depth + 2))
                if case.breaks:
                    lines.append(pad + self.indent * 2 + "break")
            lines.append(f"{pad}}}")
        elif isinstance(section, TryCatchBlockSection):
            lines.append(f"{pad}try {{")
            lines.extend(self.render_sections(section.body, depth + 1))
            for catch in section.catches:
                name = catch.local.name if catch.local is not None else "_"
                lines.append(f"{pad}}} catch ({' | '.join(catch.exceptions)} {name}) {{")
                lines.extend(self.render_sections(catch.body, depth + 1))
            lines.append(f"{pad}}}")
        elif isinstance(section, CommentBlockSection):
            lines.append(f"{pad}/*")
            lines.extend(f"{pad} * {line}" for line in section.lines)
            lines.append(f"{pad} */")
        else:
            lines.append(f"{pad}<{section.kind}>")

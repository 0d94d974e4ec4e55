"""Decompiler settings threaded through every decompilation session."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class DecompilerConfig:
    """Immutable configuration consulted while structuring a method.

    ``print_opcodes_on_error`` is the only setting the structuring core
    depends on: when enabled a region whose nested structuring fails is
    replaced by a comment section carrying its raw opcodes instead of
    failing the whole method.  ``max_depth`` bounds the recursion of
    nested regions so malformed or self-referential marker data cannot
    recurse without limit.
    """

    print_opcodes_on_error: bool = False
    max_depth: int = 256
    post_process: bool = True
    workers: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_depth <= 0:
            raise ValueError("max_depth must be positive")
        if self.workers is not None and self.workers <= 0:
            raise ValueError("workers must be positive")

    @classmethod
    def from_json(cls, entry: Mapping[str, Any]) -> "DecompilerConfig":
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(entry) - known)
        if unknown:
            raise ValueError(f"unknown decompiler settings: {', '.join(unknown)}")
        return cls(**dict(entry))

    @classmethod
    def load(cls, path: Path) -> "DecompilerConfig":
        """Load settings from ``path``; a missing file yields the defaults."""

        if not path.exists():
            return cls()
        payload = json.loads(path.read_text("utf-8"))
        if not isinstance(payload, dict):
            raise ValueError("decompiler configuration must contain a JSON object")
        return cls.from_json(payload)

    def save(self, path: Path) -> None:
        payload = {item.name: getattr(self, item.name) for item in fields(self)}
        path.write_text(json.dumps(payload, indent=2, sort_keys=True), "utf-8")

"""Public exports for block graph construction and structuring."""

from .blocks import (
    BlockArena,
    BodyOpcodeBlock,
    ConditionalOpcodeBlock,
    GotoOpcodeBlock,
    OpcodeBlock,
    ReturnOpcodeBlock,
    SwitchOpcodeBlock,
    TryCatchMarkerOpcodeBlock,
    TryCatchMarkerType,
)
from .processors import (
    NOT_MATCHED,
    DoWhileLoopProcessor,
    GraphProcessor,
    IfBlockProcessor,
    Matched,
    SwitchBlockProcessor,
    WhileLoopProcessor,
)
from .producers import GraphProducerStep, JumpGraphProducerStep, SwitchGraphProducerStep
from .sections import (
    BlockSection,
    CatchBlockSection,
    CommentBlockSection,
    ConditionalBlockSection,
    DoWhileBlockSection,
    InlineBlockSection,
    LoopBlockSection,
    SwitchBlockSection,
    SwitchCaseSection,
    TryCatchBlockSection,
    WhileBlockSection,
    covered_positions,
)
from .trycatch import TryCatchBlockProcessor, TryCatchGraphProducerStep

__all__ = [
    "BlockArena",
    "OpcodeBlock",
    "BodyOpcodeBlock",
    "GotoOpcodeBlock",
    "ReturnOpcodeBlock",
    "ConditionalOpcodeBlock",
    "SwitchOpcodeBlock",
    "TryCatchMarkerOpcodeBlock",
    "TryCatchMarkerType",
    "GraphProcessor",
    "Matched",
    "NOT_MATCHED",
    "SwitchBlockProcessor",
    "WhileLoopProcessor",
    "DoWhileLoopProcessor",
    "IfBlockProcessor",
    "TryCatchBlockProcessor",
    "GraphProducerStep",
    "JumpGraphProducerStep",
    "SwitchGraphProducerStep",
    "TryCatchGraphProducerStep",
    "BlockSection",
    "InlineBlockSection",
    "ConditionalBlockSection",
    "LoopBlockSection",
    "WhileBlockSection",
    "DoWhileBlockSection",
    "SwitchBlockSection",
    "SwitchCaseSection",
    "TryCatchBlockSection",
    "CatchBlockSection",
    "CommentBlockSection",
    "covered_positions",
]

"""JVM opcode constants used by the structuring core."""

from __future__ import annotations

from typing import Dict

LABEL = -1

NOP = 0x00
ACONST_NULL = 0x01
ICONST_M1 = 0x02
ICONST_0 = 0x03
ICONST_1 = 0x04
ICONST_2 = 0x05
ICONST_3 = 0x06
ICONST_4 = 0x07
ICONST_5 = 0x08
LCONST_0 = 0x09
LCONST_1 = 0x0A
FCONST_0 = 0x0B
DCONST_0 = 0x0E
BIPUSH = 0x10
SIPUSH = 0x11
LDC = 0x12

ILOAD = 0x15
LLOAD = 0x16
FLOAD = 0x17
DLOAD = 0x18
ALOAD = 0x19
IALOAD = 0x2E
AALOAD = 0x32

ISTORE = 0x36
LSTORE = 0x37
FSTORE = 0x38
DSTORE = 0x39
ASTORE = 0x3A
IASTORE = 0x4F
AASTORE = 0x53

POP = 0x57
POP2 = 0x58
DUP = 0x59

IADD = 0x60
LADD = 0x61
ISUB = 0x64
IMUL = 0x68
IDIV = 0x6C
INEG = 0x74
IINC = 0x84

LCMP = 0x94
IFEQ = 0x99
IFNE = 0x9A
IFLT = 0x9B
IFGE = 0x9C
IFGT = 0x9D
IFLE = 0x9E
IF_ICMPEQ = 0x9F
IF_ICMPNE = 0xA0
IF_ICMPLT = 0xA1
IF_ICMPGE = 0xA2
IF_ICMPGT = 0xA3
IF_ICMPLE = 0xA4
IF_ACMPEQ = 0xA5
IF_ACMPNE = 0xA6
GOTO = 0xA7
JSR = 0xA8
RET = 0xA9
TABLESWITCH = 0xAA
LOOKUPSWITCH = 0xAB
IRETURN = 0xAC
LRETURN = 0xAD
FRETURN = 0xAE
DRETURN = 0xAF
ARETURN = 0xB0
RETURN = 0xB1

GETSTATIC = 0xB2
PUTSTATIC = 0xB3
GETFIELD = 0xB4
PUTFIELD = 0xB5
INVOKEVIRTUAL = 0xB6
INVOKESPECIAL = 0xB7
INVOKESTATIC = 0xB8
INVOKEINTERFACE = 0xB9
INVOKEDYNAMIC = 0xBA
NEW = 0xBB
NEWARRAY = 0xBC
ANEWARRAY = 0xBD
ARRAYLENGTH = 0xBE
ATHROW = 0xBF
CHECKCAST = 0xC0
INSTANCEOF = 0xC1
MONITORENTER = 0xC2
MONITOREXIT = 0xC3
IFNULL = 0xC6
IFNONNULL = 0xC7

LOAD_OPCODES = frozenset({ILOAD, LLOAD, FLOAD, DLOAD, ALOAD})
STORE_OPCODES = frozenset({ISTORE, LSTORE, FSTORE, DSTORE, ASTORE})
RETURN_OPCODES = frozenset({IRETURN, LRETURN, FRETURN, DRETURN, ARETURN, RETURN})
CONDITIONAL_JUMPS = frozenset(
    {
        IFEQ,
        IFNE,
        IFLT,
        IFGE,
        IFGT,
        IFLE,
        IF_ICMPEQ,
        IF_ICMPNE,
        IF_ICMPLT,
        IF_ICMPGE,
        IF_ICMPGT,
        IF_ICMPLE,
        IF_ACMPEQ,
        IF_ACMPNE,
        IFNULL,
        IFNONNULL,
    }
)
SWITCH_OPCODES = frozenset({TABLESWITCH, LOOKUPSWITCH})

# Local variable descriptors implied by the typed load/store families.
LOCAL_DESCRIPTORS: Dict[int, str] = {
    ILOAD: "I",
    ISTORE: "I",
    LLOAD: "J",
    LSTORE: "J",
    FLOAD: "F",
    FSTORE: "F",
    DLOAD: "D",
    DSTORE: "D",
    ALOAD: "Ljava/lang/Object;",
    ASTORE: "Ljava/lang/Object;",
}

MNEMONICS: Dict[int, str] = {
    value: name
    for name, value in list(globals().items())
    if name.isupper()
    and isinstance(value, int)
    and not isinstance(value, bool)
    and name != "LABEL"
}


def mnemonic(opcode: int) -> str:
    """Return the assembler mnemonic for ``opcode``."""

    if opcode == LABEL:
        return "LABEL"
    return MNEMONICS.get(opcode, f"OP_{opcode:02X}")

"""
Terbium bytecode instruction set.

Every opcode has a fixed stack effect. For instructions with an operand
the effect may depend on it (BUILD_LIST n, CALL n); conditional jumps may
have a different effect on the taken branch (FOR_ITER).

Author: xwest
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional


class Opcode(IntEnum):
    """Bytecode opcodes; the values are the encoded byte."""

    # Constants and variables
    LOAD_CONST = 0x01      # push constants[k]
    LOAD_NULL = 0x02
    LOAD_LOCAL = 0x03      # push frame.locals[slot]
    STORE_LOCAL = 0x04     # frame.locals[slot] = pop
    LOAD_GLOBAL = 0x05
    STORE_GLOBAL = 0x06
    LOAD_BUILTIN = 0x07    # push builtin #index

    # Stack manipulation
    POP = 0x10
    DUP = 0x11
    DUP2 = 0x12            # a b -> a b a b

    # Arithmetic and bitwise (pop right, pop left, push result)
    ADD = 0x20
    SUB = 0x21
    MUL = 0x22
    DIV = 0x23
    MOD = 0x24
    POW = 0x25
    BIT_AND = 0x26
    BIT_OR = 0x27
    BIT_XOR = 0x28
    SHL = 0x29
    SHR = 0x2A

    # Comparison
    EQ = 0x30
    NE = 0x31
    LT = 0x32
    LE = 0x33
    GT = 0x34
    GE = 0x35

    # Unary
    NEG = 0x40
    POS = 0x41
    NOT = 0x42
    BIT_NOT = 0x43

    # Composite values
    BUILD_LIST = 0x50      # pop n elements, push list
    BUILD_RANGE = 0x51     # pop end, pop start, push range
    INDEX_GET = 0x52       # pop index, pop target, push element
    INDEX_SET = 0x53       # pop value, pop index, pop target, push value

    # Control flow
    JUMP = 0x60
    JUMP_IF_FALSE = 0x61   # pop condition (must be bool)
    GET_ITER = 0x62        # replace iterable with an iterator
    FOR_ITER = 0x63        # push next element, or pop iterator and jump

    # Calls
    CALL = 0x70            # callee arg1..argn -> result
    RETURN = 0x71
    HALT = 0x72            # pop the program result and stop


@dataclass(frozen=True)
class OpcodeInfo:
    """Static properties of an opcode."""
    has_operand: bool
    stack_effect: Optional[int]          # None when it depends on the operand
    is_jump: bool = False
    jump_effect: Optional[int] = None    # effect on the taken branch, if different


BINARY_OPS = (
    Opcode.ADD, Opcode.SUB, Opcode.MUL, Opcode.DIV, Opcode.MOD, Opcode.POW,
    Opcode.BIT_AND, Opcode.BIT_OR, Opcode.BIT_XOR, Opcode.SHL, Opcode.SHR,
    Opcode.EQ, Opcode.NE, Opcode.LT, Opcode.LE, Opcode.GT, Opcode.GE,
)

UNARY_OPS = (Opcode.NEG, Opcode.POS, Opcode.NOT, Opcode.BIT_NOT)

OPCODE_INFO: Dict[Opcode, OpcodeInfo] = {
    Opcode.LOAD_CONST: OpcodeInfo(True, 1),
    Opcode.LOAD_NULL: OpcodeInfo(False, 1),
    Opcode.LOAD_LOCAL: OpcodeInfo(True, 1),
    Opcode.STORE_LOCAL: OpcodeInfo(True, -1),
    Opcode.LOAD_GLOBAL: OpcodeInfo(True, 1),
    Opcode.STORE_GLOBAL: OpcodeInfo(True, -1),
    Opcode.LOAD_BUILTIN: OpcodeInfo(True, 1),

    Opcode.POP: OpcodeInfo(False, -1),
    Opcode.DUP: OpcodeInfo(False, 1),
    Opcode.DUP2: OpcodeInfo(False, 2),

    Opcode.BUILD_LIST: OpcodeInfo(True, None),
    Opcode.BUILD_RANGE: OpcodeInfo(False, -1),
    Opcode.INDEX_GET: OpcodeInfo(False, -1),
    Opcode.INDEX_SET: OpcodeInfo(False, -2),

    Opcode.JUMP: OpcodeInfo(True, 0, is_jump=True),
    Opcode.JUMP_IF_FALSE: OpcodeInfo(True, -1, is_jump=True),
    Opcode.GET_ITER: OpcodeInfo(False, 0),
    Opcode.FOR_ITER: OpcodeInfo(True, 1, is_jump=True, jump_effect=-1),

    Opcode.CALL: OpcodeInfo(True, None),
    Opcode.RETURN: OpcodeInfo(False, -1),
    Opcode.HALT: OpcodeInfo(False, -1),
}
OPCODE_INFO.update({op: OpcodeInfo(False, -1) for op in BINARY_OPS})
OPCODE_INFO.update({op: OpcodeInfo(False, 0) for op in UNARY_OPS})

# Source operator -> opcode
BINARY_OPERATORS: Dict[str, Opcode] = {
    "+": Opcode.ADD, "-": Opcode.SUB, "*": Opcode.MUL, "/": Opcode.DIV,
    "%": Opcode.MOD, "**": Opcode.POW,
    "&": Opcode.BIT_AND, "|": Opcode.BIT_OR, "^": Opcode.BIT_XOR,
    "<<": Opcode.SHL, ">>": Opcode.SHR,
    "==": Opcode.EQ, "!=": Opcode.NE,
    "<": Opcode.LT, "<=": Opcode.LE, ">": Opcode.GT, ">=": Opcode.GE,
}

UNARY_OPERATORS: Dict[str, Opcode] = {
    "-": Opcode.NEG, "+": Opcode.POS, "!": Opcode.NOT, "~": Opcode.BIT_NOT,
}


def stack_effect(opcode: Opcode, operand: int = 0, jump: bool = False) -> int:
    """
    Net change in operand stack depth caused by one instruction.

    Args:
        opcode: The instruction's opcode
        operand: Its operand (used by BUILD_LIST and CALL)
        jump: Effect on the taken branch of a conditional jump
    """
    info = OPCODE_INFO[opcode]
    if opcode == Opcode.BUILD_LIST:
        return 1 - operand
    if opcode == Opcode.CALL:
        return -operand
    if jump and info.jump_effect is not None:
        return info.jump_effect
    return info.stack_effect

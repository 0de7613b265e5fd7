"""
Binary encoding of bytecode modules.

Layout (little-endian):

    header       magic b"TRBC", version u16, global slot count u32
    constants    count u32, then per entry a tag u8 followed by
                   1 int     length u32 + two's-complement bytes
                   2 float   f64
                   3 string  length u32 + UTF-8 bytes
                   4 bool    u8
                   5 func    name (as string), arity u16, local count u32, entry u32
    code         count u32, then records of opcode u8, operand i32, line u32

decode_module() validates the structure and every cross reference, so a
decoded module is safe to hand to the VM.

Author: xwest
"""

import logging
import struct
from typing import Any, List, Tuple

from ..builtins import BUILTINS
from .errors import BytecodeFormatError
from .module import BytecodeModule, FunctionPrototype, Instruction, FORMAT_VERSION
from .opcodes import Opcode, OPCODE_INFO

logger = logging.getLogger(__name__)

MAGIC = b"TRBC"

HEADER = struct.Struct("<4sHI")
U8 = struct.Struct("<B")
U16 = struct.Struct("<H")
U32 = struct.Struct("<I")
F64 = struct.Struct("<d")
INSTRUCTION = struct.Struct("<BiI")

TAG_INT = 1
TAG_FLOAT = 2
TAG_STRING = 3
TAG_BOOL = 4
TAG_FUNCTION = 5

I32_MIN = -(2 ** 31)
I32_MAX = 2 ** 31 - 1


# ============================================================================
# Encoding
# ============================================================================

def _encode_string(value: str) -> bytes:
    data = value.encode("utf-8")
    return U32.pack(len(data)) + data


def _encode_constant(value: Any) -> bytes:
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return U8.pack(TAG_BOOL) + U8.pack(1 if value else 0)
    if isinstance(value, int):
        length = max(1, (value.bit_length() + 8) // 8)
        data = value.to_bytes(length, "little", signed=True)
        return U8.pack(TAG_INT) + U32.pack(length) + data
    if isinstance(value, float):
        return U8.pack(TAG_FLOAT) + F64.pack(value)
    if isinstance(value, str):
        return U8.pack(TAG_STRING) + _encode_string(value)
    if isinstance(value, FunctionPrototype):
        return (U8.pack(TAG_FUNCTION) + _encode_string(value.name)
                + U16.pack(value.arity) + U32.pack(value.local_count) + U32.pack(value.entry))
    raise TypeError(f"cannot encode constant of type {type(value).__name__}")


def encode_module(module: BytecodeModule) -> bytes:
    """Serialize a module to bytes."""
    parts = [HEADER.pack(MAGIC, module.version, module.global_count)]

    parts.append(U32.pack(len(module.constants)))
    for constant in module.constants:
        parts.append(_encode_constant(constant))

    parts.append(U32.pack(len(module.instructions)))
    for instruction in module.instructions:
        if not I32_MIN <= instruction.operand <= I32_MAX:
            raise ValueError(f"operand {instruction.operand} does not fit in 32 bits")
        parts.append(INSTRUCTION.pack(int(instruction.opcode), instruction.operand, instruction.line))

    data = b"".join(parts)
    logger.debug("Encoded module: %d bytes", len(data))
    return data


# ============================================================================
# Decoding
# ============================================================================

class _Reader:
    """Bounds-checked cursor over the encoded bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def read(self, layout: struct.Struct) -> Tuple:
        end = self.offset + layout.size
        if end > len(self.data):
            raise BytecodeFormatError("unexpected end of data", self.offset)
        values = layout.unpack_from(self.data, self.offset)
        self.offset = end
        return values

    def read_bytes(self, length: int) -> bytes:
        end = self.offset + length
        if end > len(self.data):
            raise BytecodeFormatError("unexpected end of data", self.offset)
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def read_string(self) -> str:
        (length,) = self.read(U32)
        start = self.offset
        raw = self.read_bytes(length)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BytecodeFormatError(f"invalid UTF-8 in string constant: {e.reason}", start) from e


def _decode_constant(reader: _Reader) -> Any:
    start = reader.offset
    (tag,) = reader.read(U8)
    if tag == TAG_INT:
        (length,) = reader.read(U32)
        if length == 0:
            raise BytecodeFormatError("empty integer constant", start)
        return int.from_bytes(reader.read_bytes(length), "little", signed=True)
    if tag == TAG_FLOAT:
        return reader.read(F64)[0]
    if tag == TAG_STRING:
        return reader.read_string()
    if tag == TAG_BOOL:
        (flag,) = reader.read(U8)
        if flag not in (0, 1):
            raise BytecodeFormatError(f"invalid boolean constant {flag}", start)
        return flag == 1
    if tag == TAG_FUNCTION:
        name = reader.read_string()
        (arity,) = reader.read(U16)
        (local_count,) = reader.read(U32)
        (entry,) = reader.read(U32)
        if local_count < arity:
            raise BytecodeFormatError(f"function {name} has fewer locals than parameters", start)
        return FunctionPrototype(name, arity, local_count, entry)
    raise BytecodeFormatError(f"unknown constant tag {tag}", start)


def decode_module(data: bytes) -> BytecodeModule:
    """
    Deserialize and validate a module.

    Raises:
        BytecodeFormatError: if the data is not a well-formed module
    """
    reader = _Reader(bytes(data))

    magic, version, global_count = reader.read(HEADER)
    if magic != MAGIC:
        raise BytecodeFormatError(f"bad magic {magic!r}", 0)
    if version != FORMAT_VERSION:
        raise BytecodeFormatError(f"unsupported format version {version}", 4)

    (constant_count,) = reader.read(U32)
    constants: List[Any] = [_decode_constant(reader) for _ in range(constant_count)]

    (instruction_count,) = reader.read(U32)
    instructions: List[Instruction] = []
    for _ in range(instruction_count):
        start = reader.offset
        raw_opcode, operand, line = reader.read(INSTRUCTION)
        try:
            opcode = Opcode(raw_opcode)
        except ValueError:
            raise BytecodeFormatError(f"unknown opcode 0x{raw_opcode:02x}", start) from None
        instructions.append(Instruction(opcode, operand, line))

    if reader.offset != len(reader.data):
        raise BytecodeFormatError(f"{len(reader.data) - reader.offset} bytes of trailing data", reader.offset)

    module = BytecodeModule(
        instructions=tuple(instructions),
        constants=tuple(constants),
        global_count=global_count,
        version=version,
    )
    validate_module(module)
    logger.debug("Decoded %s", module)
    return module


def validate_module(module: BytecodeModule):
    """
    Check every operand of a module against the module's own tables.

    Raises:
        BytecodeFormatError: on the first invalid reference
    """
    code_size = len(module.instructions)
    if code_size == 0:
        raise BytecodeFormatError("module has no instructions")

    for constant in module.constants:
        if isinstance(constant, FunctionPrototype) and not 0 <= constant.entry < code_size:
            raise BytecodeFormatError(f"function {constant.name} entry {constant.entry} is out of range")

    for index, instruction in enumerate(module.instructions):
        opcode, operand = instruction.opcode, instruction.operand
        info = OPCODE_INFO[opcode]

        if info.is_jump:
            valid = 0 <= operand < code_size
            what = "jump target"
        elif opcode == Opcode.LOAD_CONST:
            valid = 0 <= operand < len(module.constants)
            what = "constant index"
        elif opcode in (Opcode.LOAD_GLOBAL, Opcode.STORE_GLOBAL):
            valid = 0 <= operand < module.global_count
            what = "global slot"
        elif opcode == Opcode.LOAD_BUILTIN:
            valid = 0 <= operand < len(BUILTINS)
            what = "builtin index"
        elif info.has_operand:
            valid = operand >= 0
            what = "operand"
        else:
            valid = operand == 0
            what = "operand"

        if not valid:
            raise BytecodeFormatError(f"invalid {what} {operand} in {opcode.name} at instruction {index}")

"""
Bytecode module representation.

A module is immutable once produced: the instruction stream and constant
pool are tuples and instructions and prototypes are frozen dataclasses.

Author: xwest
"""

import math
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .opcodes import Opcode, OPCODE_INFO

FORMAT_VERSION = 1


def constant_key(value: Any) -> Tuple:
    """Identity of a constant; distinguishes 1, 1.0 and true and treats NaNs as one value."""
    if isinstance(value, float):
        if math.isnan(value):
            return (float, "nan")
        return (float, value.hex())
    return (type(value), value)


@dataclass(frozen=True)
class Instruction:
    """A single VM instruction."""
    opcode: Opcode
    operand: int = 0
    line: int = 0

    def __str__(self) -> str:
        if OPCODE_INFO[self.opcode].has_operand:
            return f"{self.opcode.name:<14} {self.operand}"
        return self.opcode.name


@dataclass(frozen=True)
class FunctionPrototype:
    """
    Compiled function: the constant pool entry for a function literal.

    Prototypes are also the runtime representation of function values.
    """
    name: str
    arity: int
    local_count: int
    entry: int

    def __str__(self) -> str:
        return f"<function {self.name}/{self.arity}>"


@dataclass(frozen=True)
class BytecodeModule:
    """Executable unit produced by the compiler."""
    instructions: Tuple[Instruction, ...]
    constants: Tuple[Any, ...]
    global_count: int = 0
    version: int = FORMAT_VERSION
    source_name: Optional[str] = None

    @property
    def functions(self) -> Tuple[FunctionPrototype, ...]:
        return tuple(c for c in self.constants if isinstance(c, FunctionPrototype))

    def __eq__(self, other) -> bool:
        if not isinstance(other, BytecodeModule):
            return NotImplemented
        return (self.instructions == other.instructions
                and self.global_count == other.global_count
                and self.version == other.version
                and len(self.constants) == len(other.constants)
                and all(constant_key(a) == constant_key(b)
                        for a, b in zip(self.constants, other.constants)))

    def __hash__(self) -> int:
        return hash((self.instructions, self.global_count, self.version))

    def disassemble(self) -> str:
        """Human-readable listing of the module."""
        entries = {f.entry: f for f in self.functions}
        lines = [f"; terbium bytecode v{self.version}, {self.global_count} globals"]
        lines.append("; constants:")
        for index, constant in enumerate(self.constants):
            lines.append(f";   {index:>4}: {constant!r}")
        for index, instruction in enumerate(self.instructions):
            if index in entries:
                lines.append(f"{entries[index]}:")
            comment = ""
            if instruction.opcode == Opcode.LOAD_CONST:
                comment = f"  ; {self.constants[instruction.operand]!r}"
            lines.append(f"  {index:>5}  [{instruction.line:>4}]  {instruction}{comment}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return (f"BytecodeModule({len(self.instructions)} instructions, "
                f"{len(self.constants)} constants, {self.global_count} globals)")

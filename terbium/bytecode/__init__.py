"""
Terbium Bytecode Package

Lowers the analyzed AST to a compact stack-machine instruction set:
- Opcode table with fixed stack effects
- Label-based assembler with two-pass jump resolution
- Deduplicated constant pool
- Binary module format with validated decoding

Author: xwest
"""

from .opcodes import Opcode, OpcodeInfo, OPCODE_INFO, stack_effect
from .module import Instruction, FunctionPrototype, BytecodeModule, FORMAT_VERSION
from .assembler import Assembler, Label
from .compiler import BytecodeCompiler, compile_analysis
from .serializer import encode_module, decode_module, validate_module
from .errors import InternalCompilerError, BytecodeFormatError

__all__ = [
    "Opcode", "OpcodeInfo", "OPCODE_INFO", "stack_effect",
    "Instruction", "FunctionPrototype", "BytecodeModule", "FORMAT_VERSION",
    "Assembler", "Label",
    "BytecodeCompiler", "compile_analysis",
    "encode_module", "decode_module", "validate_module",
    "InternalCompilerError", "BytecodeFormatError",
]

"""
Terbium Virtual Machine Package

Executes bytecode modules on a stack machine:
- Explicit instruction pointer, operand stack and call frames
- Table-driven opcode dispatch
- Structured runtime traps with call-stack traces
- Builtin function library

Author: xwest
"""

from .machine import VirtualMachine, Frame, execute
from .errors import VMRuntimeError, InternalVMError, TrapKind, TraceEntry
from .values import BuiltinFunction, format_value, type_name, values_equal

__all__ = [
    "VirtualMachine", "Frame", "execute",
    "VMRuntimeError", "InternalVMError", "TrapKind", "TraceEntry",
    "BuiltinFunction", "format_value", "type_name", "values_equal",
]

"""
Runtime error handling for the Terbium virtual machine.

Traps caused by the running program are reported as VMRuntimeError, which
carries the trap kind, the faulting instruction and a call-stack trace.
Failures that can only be caused by a defect in the compiler or VM (or by
hand-crafted bytecode that bypassed validation) raise InternalVMError.

Author: xwest
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .values import type_name

TRACE_DISPLAY_LIMIT = 20


class TrapKind(Enum):
    """Categories of runtime traps."""
    STACK_OVERFLOW = "stack overflow"
    TYPE_ERROR = "type error"
    DIVISION_BY_ZERO = "division by zero"
    ARITY_MISMATCH = "arity mismatch"
    INDEX_OUT_OF_RANGE = "index out of range"
    INVALID_OPERATION = "invalid operation"


@dataclass(frozen=True)
class TraceEntry:
    """One active call at the time of a trap."""
    function: str
    ip: int
    line: int

    def __str__(self) -> str:
        return f"at {self.function} (line {self.line}, ip {self.ip})"


class VMRuntimeError(Exception):
    """
    Exception raised when the running program traps.

    Handlers raise it with a kind and message only; the dispatch loop adds
    the instruction index, source line and trace before it propagates.
    """

    def __init__(self, kind: TrapKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.ip: Optional[int] = None
        self.line: Optional[int] = None
        self.trace: List[TraceEntry] = []

    def locate(self, ip: int, line: int, trace: List[TraceEntry]):
        self.ip = ip
        self.line = line
        self.trace = trace

    def format(self) -> str:
        lines = [f"Runtime error ({self.kind.value}): {self.message}"]
        if self.line is not None:
            lines.append(f"  --> line {self.line}, ip {self.ip}")
        for entry in self.trace[:TRACE_DISPLAY_LIMIT]:
            lines.append(f"  {entry}")
        if len(self.trace) > TRACE_DISPLAY_LIMIT:
            lines.append(f"  ... {len(self.trace) - TRACE_DISPLAY_LIMIT} more calls")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()


class InternalVMError(Exception):
    """Raised on a VM consistency failure (stack underflow, bad operand)."""

    def __init__(self, message: str, ip: Optional[int] = None):
        self.ip = ip
        if ip is not None:
            message = f"{message} (ip {ip})"
        super().__init__(message)


def create_type_error(message: str) -> VMRuntimeError:
    return VMRuntimeError(TrapKind.TYPE_ERROR, message)


def create_operand_type_error(operator: str, *values) -> VMRuntimeError:
    kinds = " and ".join(f"'{type_name(v)}'" for v in values)
    noun = "operand" if len(values) == 1 else "operands"
    return VMRuntimeError(TrapKind.TYPE_ERROR, f"unsupported {noun} for '{operator}': {kinds}")


def create_division_by_zero_error(operator: str) -> VMRuntimeError:
    what = "modulo" if operator == "%" else "division"
    return VMRuntimeError(TrapKind.DIVISION_BY_ZERO, f"{what} by zero")


def create_arity_error(name: str, expected: int, got: int) -> VMRuntimeError:
    plural = "" if expected == 1 else "s"
    return VMRuntimeError(
        TrapKind.ARITY_MISMATCH,
        f"{name}() takes {expected} argument{plural} but {got} were given"
    )


def create_stack_overflow_error(limit: int) -> VMRuntimeError:
    return VMRuntimeError(TrapKind.STACK_OVERFLOW, f"maximum call depth of {limit} exceeded")


def create_index_error(index: int, length: int) -> VMRuntimeError:
    return VMRuntimeError(
        TrapKind.INDEX_OUT_OF_RANGE,
        f"index {index} out of range for length {length}"
    )


def create_invalid_operation_error(message: str) -> VMRuntimeError:
    return VMRuntimeError(TrapKind.INVALID_OPERATION, message)

"""
Bytecode generation and loading errors.

Neither of these is a user-facing diagnostic: an InternalCompilerError means
the compiler itself is inconsistent (or was handed a program that failed
analysis), and a BytecodeFormatError means an encoded module is corrupt.

Author: xwest
"""

from typing import Optional


class InternalCompilerError(Exception):
    """Raised on an internal inconsistency during code generation."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class BytecodeFormatError(Exception):
    """Raised when an encoded bytecode module is malformed."""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} at byte {offset}"
        super().__init__(message)

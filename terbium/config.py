"""
Configuration objects for the Terbium compiler and virtual machine.

Author: xwest
"""

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class CompilerConfig:
    """Settings for the lexer, parser, analyzer and bytecode compiler."""
    filename: str = "<input>"

    # Maximum parser recursion and AST height
    max_nesting_depth: int = 100

    # Report unused locals and unreachable statements as warnings
    warn_unused: bool = True
    warn_unreachable: bool = True

    def __post_init__(self):
        if self.max_nesting_depth < 1:
            raise ValueError("max_nesting_depth must be positive")


@dataclass
class VMConfig:
    """Settings for a single virtual machine instance."""
    max_call_depth: int = 1000

    # Receives each line written by the print builtin. When None, output is
    # captured and returned on the execution result.
    output: Optional[Callable[[str], None]] = None

    def __post_init__(self):
        if self.max_call_depth < 1:
            raise ValueError("max_call_depth must be positive")

"""
Terbium Language Core

Compiles Terbium source text to bytecode and runs it on a stack-based
virtual machine.

Architecture:
    terbium/
    ├── lexer/           # Tokenization and lexical analysis
    ├── parser/          # Syntax analysis and AST generation
    ├── analyzer/        # Scope resolution and static checks
    ├── bytecode/        # Code generation and the module format
    ├── vm/              # Bytecode interpreter
    ├── diagnostics.py   # Diagnostics shared by all stages
    └── pipeline.py      # compile_source / run_module / run_source

Author: xwest
License: MIT
"""

__version__ = "0.1.0"
__author__ = "xwest"
__license__ = "MIT"

from .config import CompilerConfig, VMConfig
from .diagnostics import Diagnostic, DiagnosticCollector, Severity, Stage
from .lexer import Lexer
from .parser import Parser
from .analyzer import SemanticAnalyzer
from .bytecode import BytecodeCompiler, BytecodeModule, encode_module, decode_module
from .vm import VirtualMachine, VMRuntimeError, TrapKind
from .pipeline import (
    ExitCode, CompileResult, ExecutionResult, compile_source, run_module, run_source
)

__all__ = [
    # Pipeline
    "compile_source",
    "run_module",
    "run_source",
    "CompileResult",
    "ExecutionResult",
    "ExitCode",

    # Stages
    "Lexer",
    "Parser",
    "SemanticAnalyzer",
    "BytecodeCompiler",
    "VirtualMachine",

    # Data
    "BytecodeModule",
    "encode_module",
    "decode_module",
    "Diagnostic",
    "DiagnosticCollector",
    "Severity",
    "Stage",
    "VMRuntimeError",
    "TrapKind",

    # Configuration
    "CompilerConfig",
    "VMConfig",

    # Version info
    "__version__",
    "__author__",
    "__license__",
]

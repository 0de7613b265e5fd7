"""
Compilation and execution entry points for Terbium.

compile_source runs lexer, parser, analyzer and bytecode compiler in
sequence over one compilation unit. Code generation only runs when no
stage reported an error. run_module executes a compiled module and turns a
runtime trap into a result value.

Author: xwest
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, List, Optional

from .analyzer.semantic_analyzer import SemanticAnalyzer, AnalysisResult
from .bytecode.compiler import BytecodeCompiler
from .bytecode.module import BytecodeModule
from .config import CompilerConfig, VMConfig
from .diagnostics import Diagnostic, DiagnosticCollector
from .lexer.lexer import Lexer
from .parser.ast_nodes import Program
from .parser.parser import Parser
from .vm.errors import VMRuntimeError
from .vm.machine import VirtualMachine

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """Process-style result codes for embedders and command-line drivers."""
    SUCCESS = 0
    COMPILE_ERROR = 1
    RUNTIME_ERROR = 2


@dataclass
class CompileResult:
    """Outcome of compiling one source text."""
    module: Optional[BytecodeModule]
    diagnostics: DiagnosticCollector
    ast: Optional[Program] = None
    analysis: Optional[AnalysisResult] = None

    @property
    def succeeded(self) -> bool:
        return self.module is not None

    @property
    def errors(self) -> List[Diagnostic]:
        return self.diagnostics.errors

    @property
    def warnings(self) -> List[Diagnostic]:
        return self.diagnostics.warnings

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.SUCCESS if self.succeeded else ExitCode.COMPILE_ERROR


@dataclass
class ExecutionResult:
    """Outcome of running a module (or of trying to compile and run source)."""
    value: Any = None
    error: Optional[VMRuntimeError] = None
    output: List[str] = field(default_factory=list)
    compile_result: Optional[CompileResult] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == ExitCode.SUCCESS

    @property
    def exit_code(self) -> ExitCode:
        if self.compile_result is not None and not self.compile_result.succeeded:
            return ExitCode.COMPILE_ERROR
        if self.error is not None:
            return ExitCode.RUNTIME_ERROR
        return ExitCode.SUCCESS


def compile_source(source: str, filename: Optional[str] = None,
                   config: Optional[CompilerConfig] = None) -> CompileResult:
    """
    Compile source text to a bytecode module.

    Args:
        source: Program text
        filename: Name used in diagnostics (defaults to config.filename)
        config: Compiler settings

    Returns:
        CompileResult holding the module, or None plus the diagnostics
    """
    config = config or CompilerConfig()
    filename = filename or config.filename
    diagnostics = DiagnosticCollector()

    tokens = Lexer(source, filename, diagnostics).tokenize()
    ast = Parser(tokens, diagnostics, config).parse()
    analysis = SemanticAnalyzer(diagnostics, config).analyze(ast)

    if diagnostics.has_errors():
        logger.debug("Compilation of %s stopped with %d error(s)", filename, len(diagnostics.errors))
        return CompileResult(None, diagnostics, ast, analysis)

    module = BytecodeCompiler().compile(analysis)
    return CompileResult(module, diagnostics, ast, analysis)


def run_module(module: BytecodeModule, config: Optional[VMConfig] = None) -> ExecutionResult:
    """
    Execute a compiled module.

    Runtime traps are returned on the result; internal VM failures raise.
    """
    vm = VirtualMachine(module, config)
    try:
        value = vm.run()
    except VMRuntimeError as error:
        return ExecutionResult(error=error, output=vm.output)
    return ExecutionResult(value=value, output=vm.output)


def run_source(source: str, filename: Optional[str] = None,
               compiler_config: Optional[CompilerConfig] = None,
               vm_config: Optional[VMConfig] = None) -> ExecutionResult:
    """Compile and run source text."""
    compiled = compile_source(source, filename, compiler_config)
    if not compiled.succeeded:
        return ExecutionResult(compile_result=compiled)

    result = run_module(compiled.module, vm_config)
    result.compile_result = compiled
    return result

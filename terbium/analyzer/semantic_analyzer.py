"""
Main semantic analyzer for Terbium.

Walks the AST top-down, builds the scope arena, resolves every identifier
to a binding and checks the static rules of the language:
- Declaration before use, no duplicate declarations in one scope
- Assignment only to mutable bindings
- break/continue inside loops, return inside functions
- No references to locals of an enclosing function

Analysis never stops at the first error. Unresolved names are poisoned
(reported once per function) so later errors are still found.

Author: xwest
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from ..config import CompilerConfig
from ..diagnostics import Diagnostic, DiagnosticCollector
from ..parser.ast_nodes import (
    ASTNode, ASTNodeType, Assignment, Block, BreakStatement, ContinueStatement,
    Expression, ExpressionStatement, ForLoop, FunctionDecl, FunctionExpression,
    Identifier, Program, ReturnStatement, Statement, VariableDecl, WhileLoop
)
from .symbol_table import SymbolTable, SymbolKind, Storage, Binding, ScopeKind
from .errors import (
    SemanticError, create_undefined_symbol_error, create_use_before_declaration_error,
    create_immutable_assignment_error, create_capture_error,
    create_invalid_loop_control_error, create_return_outside_function_error,
    create_nesting_too_deep_error, create_unreachable_code_warning,
    create_unused_variable_warning
)

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Results of semantic analysis."""
    ast: Program
    symbol_table: SymbolTable
    diagnostics: DiagnosticCollector
    global_count: int = 0

    @property
    def errors(self) -> List[Diagnostic]:
        return self.diagnostics.errors

    @property
    def warnings(self) -> List[Diagnostic]:
        return self.diagnostics.warnings

    def has_errors(self) -> bool:
        """Check if analysis (or an earlier stage) found any errors."""
        return self.diagnostics.has_errors()

    def has_warnings(self) -> bool:
        return len(self.diagnostics.warnings) > 0


@dataclass
class FunctionContext:
    """Per-function analysis state."""
    scope_index: int
    loop_depth: int = 0
    poisoned: Set[str] = field(default_factory=set)


# Statements after which the rest of a block never runs
TERMINATORS = (ReturnStatement, BreakStatement, ContinueStatement)


class SemanticAnalyzer:
    """
    Main semantic analyzer for Terbium.

    Performs scope construction and identifier resolution, annotating
    Identifier nodes with their Binding, declarations with their Symbol and
    function nodes with their frame size.
    """

    def __init__(self, diagnostics: Optional[DiagnosticCollector] = None,
                 config: Optional[CompilerConfig] = None):
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.config = config or CompilerConfig()
        self.symbol_table = SymbolTable()
        self._contexts: List[FunctionContext] = []
        self._depth = 0
        self._depth_reported = False
        self.error_count = 0

        self._visitors: Dict[ASTNodeType, Callable[[ASTNode], None]] = {
            # Statements
            ASTNodeType.VARIABLE_DECL: self._analyze_variable_decl,
            ASTNodeType.FUNCTION_DECL: self._analyze_function_decl,
            ASTNodeType.EXPRESSION_STMT: self._analyze_expression_statement,
            ASTNodeType.RETURN_STATEMENT: self._analyze_return,
            ASTNodeType.BREAK_STATEMENT: self._analyze_loop_control,
            ASTNodeType.CONTINUE_STATEMENT: self._analyze_loop_control,
            ASTNodeType.ERROR_STATEMENT: self._skip,

            # Expressions
            ASTNodeType.LITERAL: self._skip,
            ASTNodeType.IDENTIFIER: self._analyze_identifier,
            ASTNodeType.UNARY_OP: self._analyze_children,
            ASTNodeType.BINARY_OP: self._analyze_children,
            ASTNodeType.LOGICAL_OP: self._analyze_children,
            ASTNodeType.RANGE: self._analyze_children,
            ASTNodeType.ASSIGNMENT: self._analyze_assignment,
            ASTNodeType.FUNCTION_CALL: self._analyze_children,
            ASTNodeType.INDEX_ACCESS: self._analyze_children,
            ASTNodeType.LIST_LITERAL: self._analyze_children,
            ASTNodeType.BLOCK: self._analyze_block,
            ASTNodeType.IF_EXPRESSION: self._analyze_children,
            ASTNodeType.WHILE_LOOP: self._analyze_while,
            ASTNodeType.FOR_LOOP: self._analyze_for,
            ASTNodeType.FUNCTION_EXPRESSION: self._analyze_function,
            ASTNodeType.ERROR_EXPRESSION: self._skip,
        }
        missing = set(ASTNodeType) - set(self._visitors) - {ASTNodeType.PROGRAM}
        if missing:
            raise NotImplementedError(f"no analysis for node types: {sorted(t.name for t in missing)}")

    def analyze(self, ast: Program) -> AnalysisResult:
        """
        Perform semantic analysis on the AST.

        Args:
            ast: The abstract syntax tree to analyze

        Returns:
            AnalysisResult; problems are recorded in the diagnostics collector
        """
        self.symbol_table = SymbolTable()
        self._contexts = [FunctionContext(scope_index=0)]

        self._analyze_statements(ast.statements, ast.tail)
        global_count = self.symbol_table.global_scope.next_slot

        logger.debug("Analyzed program: %d scopes, %d globals, %d errors",
                     len(self.symbol_table.scopes), global_count, self.error_count)

        return AnalysisResult(
            ast=ast,
            symbol_table=self.symbol_table,
            diagnostics=self.diagnostics,
            global_count=global_count,
        )

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _visit(self, node: ASTNode):
        self._depth += 1
        try:
            if self._depth > 4 * self.config.max_nesting_depth:
                if not self._depth_reported:
                    self._depth_reported = True
                    raise create_nesting_too_deep_error(self.config.max_nesting_depth, node.span)
                return
            self._visitors[node.node_type](node)
        except SemanticError as e:
            self._report(e)
        finally:
            self._depth -= 1

    def _skip(self, node: ASTNode):
        pass

    def _analyze_children(self, node: ASTNode):
        for child in node.children():
            self._visit(child)

    def _analyze_statements(self, statements: List[Statement], tail: Optional[Expression]):
        """Analyze the contents of a block in the current scope."""
        self._hoist_declarations(statements)

        unreachable_reported = False
        for index, statement in enumerate(statements):
            self._visit(statement)
            if isinstance(statement, TERMINATORS) and not unreachable_reported:
                rest = statements[index + 1:] + ([tail] if tail else [])
                if rest and self.config.warn_unreachable:
                    self._report(create_unreachable_code_warning(rest[0].span))
                unreachable_reported = True

        if tail is not None:
            self._visit(tail)

    def _hoist_declarations(self, statements: List[Statement]):
        """
        Register every declaration of a block on entry.

        Functions are usable anywhere in the block; variables exist but stay
        uninitialized until their declaration has been analyzed.
        """
        for statement in statements:
            try:
                if isinstance(statement, VariableDecl):
                    kind = SymbolKind.CONSTANT if statement.is_const else SymbolKind.VARIABLE
                    statement.symbol = self.symbol_table.declare(
                        statement.name, kind, statement.name_span,
                        is_mutable=statement.is_mutable, initialized=False,
                    )
                elif isinstance(statement, FunctionDecl):
                    statement.symbol = self.symbol_table.declare(
                        statement.name, SymbolKind.FUNCTION, statement.function.span,
                        declaration=statement.function,
                    )
            except SemanticError as e:
                self._report(e)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _analyze_variable_decl(self, node: VariableDecl):
        if node.initializer is not None:
            self._visit(node.initializer)
        if node.symbol is None:
            # Duplicate declaration: bind to the earlier symbol so later
            # stages still see a consistent tree
            node.symbol = self.symbol_table.current_scope.lookup_symbol_local(node.name)
        if node.symbol is not None:
            node.symbol.initialized = True

    def _analyze_function_decl(self, node: FunctionDecl):
        if node.symbol is None:
            node.symbol = self.symbol_table.current_scope.lookup_symbol_local(node.name)
        self._visit(node.function)

    def _analyze_expression_statement(self, node: ExpressionStatement):
        self._visit(node.expression)

    def _analyze_return(self, node: ReturnStatement):
        if node.value is not None:
            self._visit(node.value)
        if len(self._contexts) == 1:
            raise create_return_outside_function_error(node.span)

    def _analyze_loop_control(self, node: ASTNode):
        if self._contexts[-1].loop_depth == 0:
            keyword = "break" if isinstance(node, BreakStatement) else "continue"
            raise create_invalid_loop_control_error(keyword, node.span)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _analyze_identifier(self, node: Identifier):
        binding = self._resolve(node)
        if binding is not None:
            binding.symbol.references += 1

    def _resolve(self, node: Identifier) -> Optional[Binding]:
        """Resolve an identifier occurrence, annotating the node."""
        context = self._contexts[-1]
        current_function = self.symbol_table.current_function_scope.index

        if node.name in context.poisoned:
            node.poisoned = True
            return None

        result = self.symbol_table.resolve(node.name)
        if result is None:
            node.poisoned = True
            context.poisoned.add(node.name)
            raise create_undefined_symbol_error(
                node.name, node.span, node,
                similar_names=self.symbol_table.get_similar_names(node.name)
            )

        symbol, depth = result
        if symbol.storage == Storage.LOCAL and symbol.function_index != current_function:
            node.poisoned = True
            raise create_capture_error(node.name, node.span)

        if not symbol.initialized and symbol.function_index == current_function:
            node.poisoned = True
            raise create_use_before_declaration_error(node.name, node.span, symbol.span)

        node.binding = Binding(symbol, depth, symbol.slot)
        return node.binding

    def _analyze_assignment(self, node: Assignment):
        target = node.target
        if isinstance(target, Identifier):
            try:
                binding = self._resolve(target)
            except SemanticError as e:
                self._report(e)
                binding = None
            if binding is not None:
                symbol = binding.symbol
                if node.binary_operator is not None:
                    symbol.references += 1
                if not symbol.is_assignable:
                    self._report(create_immutable_assignment_error(
                        symbol.name, symbol.kind.value, target.span, symbol.span
                    ))
        else:
            self._visit(target)

        self._visit(node.value)

    def _analyze_block(self, node: Block):
        self.symbol_table.enter_scope(ScopeKind.BLOCK, "block")
        try:
            self._analyze_statements(node.statements, node.tail)
        finally:
            self._exit_scope()

    def _analyze_while(self, node: WhileLoop):
        self._visit(node.condition)
        self._contexts[-1].loop_depth += 1
        try:
            self._visit(node.body)
        finally:
            self._contexts[-1].loop_depth -= 1

    def _analyze_for(self, node: ForLoop):
        self._visit(node.iterable)

        self.symbol_table.enter_scope(ScopeKind.LOOP, "for")
        self._contexts[-1].loop_depth += 1
        try:
            node.symbol = self.symbol_table.declare(node.variable, SymbolKind.VARIABLE, node.variable_span)
            self._visit(node.body)
        finally:
            self._contexts[-1].loop_depth -= 1
            self.symbol_table.exit_scope()

    def _analyze_function(self, node: FunctionExpression):
        scope = self.symbol_table.enter_scope(ScopeKind.FUNCTION, node.display_name)
        self._contexts.append(FunctionContext(scope_index=scope.index))
        try:
            for param in node.params:
                try:
                    param.symbol = self.symbol_table.declare(
                        param.name, SymbolKind.PARAMETER, param.span, is_mutable=param.is_mutable
                    )
                except SemanticError as e:
                    self._report(e)
            self._visit(node.body)
            node.local_count = scope.next_slot
        finally:
            self._contexts.pop()
            self._exit_scope()

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    def _exit_scope(self):
        scope = self.symbol_table.exit_scope()
        if not self.config.warn_unused:
            return
        for symbol in scope.symbols.values():
            if (symbol.storage == Storage.LOCAL
                    and symbol.kind in (SymbolKind.VARIABLE, SymbolKind.CONSTANT)
                    and scope.kind != ScopeKind.LOOP
                    and symbol.references == 0
                    and not symbol.name.startswith('_')):
                self._report(create_unused_variable_warning(symbol.name, symbol.span))

    def _report(self, error: SemanticError):
        if error.diagnostic.is_error:
            self.error_count += 1
        self.diagnostics.add(error.diagnostic)


def analyze_program(ast: Program, diagnostics: Optional[DiagnosticCollector] = None,
                    config: Optional[CompilerConfig] = None) -> AnalysisResult:
    """Convenience function: analyze a parsed Program."""
    return SemanticAnalyzer(diagnostics, config).analyze(ast)

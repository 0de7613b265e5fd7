"""
Bytecode compiler for Terbium.

Lowers an analyzed AST to a BytecodeModule in a single recursive walk.
Every expression leaves exactly one value on the operand stack; statements
leave the stack as they found it.

Layout: the main program comes first and ends in HALT, followed by the
body of every function literal, each ending in RETURN.

Author: xwest
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from ..analyzer.semantic_analyzer import AnalysisResult
from ..analyzer.symbol_table import Storage, Symbol
from ..parser.ast_nodes import (
    ASTNode, ASTNodeType, Assignment, BinaryOp, Block, ExpressionStatement,
    ForLoop, FunctionCall, FunctionDecl, FunctionExpression, Identifier,
    IfExpression, IndexAccess, ListLiteral, Literal, LogicalOp,
    RangeExpression, ReturnStatement, UnaryOp, VariableDecl, WhileLoop
)
from .assembler import Assembler, Label
from .errors import InternalCompilerError
from .module import BytecodeModule, FunctionPrototype
from .opcodes import Opcode, BINARY_OPERATORS, UNARY_OPERATORS

logger = logging.getLogger(__name__)


@dataclass
class LoopContext:
    """Jump targets and stack depths for break/continue inside a loop."""
    break_label: Label
    continue_label: Label
    break_depth: int
    continue_depth: int


class _PendingFunction:
    """Constant pool placeholder until a function's entry is known."""

    def __init__(self, node: FunctionExpression):
        self.node = node


class BytecodeCompiler:
    """
    Compiles an error-free AnalysisResult into a BytecodeModule.
    """

    def __init__(self):
        self.assembler = Assembler()
        self._loops: List[LoopContext] = []
        self._function_constants: Dict[int, int] = {}
        self._pending: Deque[FunctionExpression] = deque()

        self._generators: Dict[ASTNodeType, Callable[[ASTNode], None]] = {
            # Statements
            ASTNodeType.VARIABLE_DECL: self._compile_variable_decl,
            ASTNodeType.FUNCTION_DECL: self._compile_function_decl,
            ASTNodeType.EXPRESSION_STMT: self._compile_expression_statement,
            ASTNodeType.RETURN_STATEMENT: self._compile_return,
            ASTNodeType.BREAK_STATEMENT: self._compile_break,
            ASTNodeType.CONTINUE_STATEMENT: self._compile_continue,
            ASTNodeType.ERROR_STATEMENT: self._reject,

            # Expressions
            ASTNodeType.LITERAL: self._compile_literal,
            ASTNodeType.IDENTIFIER: self._compile_identifier,
            ASTNodeType.UNARY_OP: self._compile_unary,
            ASTNodeType.BINARY_OP: self._compile_binary,
            ASTNodeType.LOGICAL_OP: self._compile_logical,
            ASTNodeType.RANGE: self._compile_range,
            ASTNodeType.ASSIGNMENT: self._compile_assignment,
            ASTNodeType.FUNCTION_CALL: self._compile_call,
            ASTNodeType.INDEX_ACCESS: self._compile_index,
            ASTNodeType.LIST_LITERAL: self._compile_list,
            ASTNodeType.BLOCK: self._compile_block,
            ASTNodeType.IF_EXPRESSION: self._compile_if,
            ASTNodeType.WHILE_LOOP: self._compile_while,
            ASTNodeType.FOR_LOOP: self._compile_for,
            ASTNodeType.FUNCTION_EXPRESSION: self._compile_function_expression,
            ASTNodeType.ERROR_EXPRESSION: self._reject,
        }
        missing = set(ASTNodeType) - set(self._generators) - {ASTNodeType.PROGRAM}
        if missing:
            raise NotImplementedError(f"no code generation for node types: {sorted(t.name for t in missing)}")

    def compile(self, analysis: AnalysisResult) -> BytecodeModule:
        """
        Generate bytecode for an analyzed program.

        Raises:
            InternalCompilerError: if the analysis recorded errors, or on an
                inconsistency in the annotated tree
        """
        if analysis.has_errors():
            raise InternalCompilerError(
                f"refusing to generate code: {len(analysis.errors)} error(s) were reported"
            )

        program = analysis.ast
        asm = self.assembler

        self._compile_sequence(program.statements, program.tail, program.span.end.line)
        asm.emit(Opcode.HALT, line=program.span.end.line)

        while self._pending:
            self._compile_function_body(self._pending.popleft())

        instructions = asm.resolve()
        for constant in asm.constants:
            if isinstance(constant, _PendingFunction):
                raise InternalCompilerError(f"function {constant.node.display_name} was never compiled")

        module = BytecodeModule(
            instructions=instructions,
            constants=tuple(asm.constants),
            global_count=analysis.global_count,
            source_name=program.span.start.filename,
        )
        logger.debug("Compiled %s", module)
        return module

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def _function_constant(self, node: FunctionExpression) -> int:
        """Constant pool index of a function literal, queueing its body."""
        key = id(node)
        index = self._function_constants.get(key)
        if index is None:
            index = self.assembler.add_constant(_PendingFunction(node))
            self._function_constants[key] = index
            self._pending.append(node)
        return index

    def _compile_function_body(self, node: FunctionExpression):
        asm = self.assembler
        index = self._function_constants[id(node)]
        entry = asm.position

        asm.set_depth(0)
        saved_loops, self._loops = self._loops, []
        self._compile(node.body)
        asm.emit(Opcode.RETURN, line=node.body.span.end.line)
        self._loops = saved_loops

        asm.replace_constant(index, FunctionPrototype(
            name=node.display_name,
            arity=len(node.params),
            local_count=node.local_count,
            entry=entry,
        ))

    def _compile_function_decl(self, node: FunctionDecl):
        # Nothing happens at run time; references load the prototype directly
        self._function_constant(node.function)

    def _compile_function_expression(self, node: FunctionExpression):
        self.assembler.emit(Opcode.LOAD_CONST, self._function_constant(node), node.span.line)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _compile(self, node: ASTNode):
        self._generators[node.node_type](node)

    def _compile_sequence(self, statements, tail, end_line: int):
        for statement in statements:
            self._compile(statement)
        if tail is not None:
            self._compile(tail)
        else:
            self.assembler.emit(Opcode.LOAD_NULL, line=end_line)

    def _compile_variable_decl(self, node: VariableDecl):
        if node.initializer is not None:
            self._compile(node.initializer)
        else:
            self.assembler.emit(Opcode.LOAD_NULL, line=node.span.line)
        self._store(node.symbol, node.span.line)

    def _compile_expression_statement(self, node: ExpressionStatement):
        self._compile(node.expression)
        self.assembler.emit(Opcode.POP, line=node.span.line)

    def _compile_return(self, node: ReturnStatement):
        asm = self.assembler
        depth = asm.depth
        if node.value is not None:
            self._compile(node.value)
        else:
            asm.emit(Opcode.LOAD_NULL, line=node.span.line)
        asm.emit(Opcode.RETURN, line=node.span.line)
        asm.set_depth(depth)

    def _compile_break(self, node: ASTNode):
        loop = self._current_loop(node)
        self._jump_out(loop.break_label, loop.break_depth, node.span.line)

    def _compile_continue(self, node: ASTNode):
        loop = self._current_loop(node)
        self._jump_out(loop.continue_label, loop.continue_depth, node.span.line)

    def _jump_out(self, label: Label, target_depth: int, line: int):
        """Discard values pushed since the loop started, then jump."""
        asm = self.assembler
        depth = asm.depth
        for _ in range(depth - target_depth):
            asm.emit(Opcode.POP, line=line)
        asm.emit_jump(Opcode.JUMP, label, line)
        asm.set_depth(depth)

    def _current_loop(self, node: ASTNode) -> LoopContext:
        if not self._loops:
            raise InternalCompilerError("loop control outside of a loop", node.span.line)
        return self._loops[-1]

    def _reject(self, node: ASTNode):
        raise InternalCompilerError(f"cannot compile {node.node_type.value}", node.span.line)

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def _store(self, symbol: Optional[Symbol], line: int):
        if symbol is None:
            raise InternalCompilerError("declaration without a symbol", line)
        if symbol.storage == Storage.LOCAL:
            self.assembler.emit(Opcode.STORE_LOCAL, symbol.slot, line)
        elif symbol.storage == Storage.GLOBAL:
            self.assembler.emit(Opcode.STORE_GLOBAL, symbol.slot, line)
        else:
            raise InternalCompilerError(f"cannot store to {symbol}", line)

    def _load(self, symbol: Symbol, line: int):
        asm = self.assembler
        if symbol.storage == Storage.LOCAL:
            asm.emit(Opcode.LOAD_LOCAL, symbol.slot, line)
        elif symbol.storage == Storage.GLOBAL:
            asm.emit(Opcode.LOAD_GLOBAL, symbol.slot, line)
        elif symbol.storage == Storage.BUILTIN:
            asm.emit(Opcode.LOAD_BUILTIN, symbol.slot, line)
        elif symbol.storage == Storage.FUNCTION:
            asm.emit(Opcode.LOAD_CONST, self._function_constant(symbol.declaration), line)
        else:
            raise InternalCompilerError(f"unknown storage for {symbol}", line)

    def _binding_symbol(self, node: Identifier) -> Symbol:
        if node.poisoned or node.binding is None:
            raise InternalCompilerError(f"unresolved identifier '{node.name}'", node.span.line)
        return node.binding.symbol

    def _compile_identifier(self, node: Identifier):
        self._load(self._binding_symbol(node), node.span.line)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _compile_literal(self, node: Literal):
        if node.value is None:
            self.assembler.emit(Opcode.LOAD_NULL, line=node.span.line)
        else:
            self.assembler.emit(Opcode.LOAD_CONST, self.assembler.add_constant(node.value), node.span.line)

    def _compile_unary(self, node: UnaryOp):
        self._compile(node.operand)
        self.assembler.emit(self._operator(UNARY_OPERATORS, node.operator, node), line=node.span.line)

    def _compile_binary(self, node: BinaryOp):
        self._compile(node.left)
        self._compile(node.right)
        self.assembler.emit(self._operator(BINARY_OPERATORS, node.operator, node), line=node.span.line)

    def _operator(self, table: Dict[str, Opcode], operator: str, node: ASTNode) -> Opcode:
        opcode = table.get(operator)
        if opcode is None:
            raise InternalCompilerError(f"unknown operator '{operator}'", node.span.line)
        return opcode

    def _compile_logical(self, node: LogicalOp):
        # Both operands must be booleans; the result is always a boolean
        asm = self.assembler
        line = node.span.line
        false_label = asm.new_label("false")
        end_label = asm.new_label("end")
        true_const = asm.add_constant(True)
        false_const = asm.add_constant(False)

        self._compile(node.left)
        if node.operator == "&&":
            asm.emit_jump(Opcode.JUMP_IF_FALSE, false_label, line)
        elif node.operator == "||":
            right_label = asm.new_label("or_right")
            asm.emit_jump(Opcode.JUMP_IF_FALSE, right_label, line)
            asm.emit(Opcode.LOAD_CONST, true_const, line)
            asm.emit_jump(Opcode.JUMP, end_label, line)
            asm.bind(right_label, line)
        else:
            raise InternalCompilerError(f"unknown logical operator '{node.operator}'", line)

        self._compile(node.right)
        asm.emit_jump(Opcode.JUMP_IF_FALSE, false_label, line)
        asm.emit(Opcode.LOAD_CONST, true_const, line)
        asm.emit_jump(Opcode.JUMP, end_label, line)
        asm.bind(false_label, line)
        asm.emit(Opcode.LOAD_CONST, false_const, line)
        asm.bind(end_label, line)

    def _compile_range(self, node: RangeExpression):
        self._compile(node.start)
        self._compile(node.end)
        self.assembler.emit(Opcode.BUILD_RANGE, line=node.span.line)

    def _compile_assignment(self, node: Assignment):
        asm = self.assembler
        line = node.span.line
        operator = node.binary_operator
        op = self._operator(BINARY_OPERATORS, operator, node) if operator else None

        if isinstance(node.target, Identifier):
            symbol = self._binding_symbol(node.target)
            if op is not None:
                self._load(symbol, line)
                self._compile(node.value)
                asm.emit(op, line=line)
            else:
                self._compile(node.value)
            asm.emit(Opcode.DUP, line=line)
            self._store(symbol, line)

        elif isinstance(node.target, IndexAccess):
            self._compile(node.target.target)
            self._compile(node.target.index)
            if op is not None:
                asm.emit(Opcode.DUP2, line=line)
                asm.emit(Opcode.INDEX_GET, line=line)
                self._compile(node.value)
                asm.emit(op, line=line)
            else:
                self._compile(node.value)
            asm.emit(Opcode.INDEX_SET, line=line)

        else:
            raise InternalCompilerError("invalid assignment target", line)

    def _compile_call(self, node: FunctionCall):
        self._compile(node.function)
        for arg in node.args:
            self._compile(arg)
        self.assembler.emit(Opcode.CALL, len(node.args), node.span.line)

    def _compile_index(self, node: IndexAccess):
        self._compile(node.target)
        self._compile(node.index)
        self.assembler.emit(Opcode.INDEX_GET, line=node.span.line)

    def _compile_list(self, node: ListLiteral):
        for element in node.elements:
            self._compile(element)
        self.assembler.emit(Opcode.BUILD_LIST, len(node.elements), node.span.line)

    def _compile_block(self, node: Block):
        self._compile_sequence(node.statements, node.tail, node.span.end.line)

    def _compile_if(self, node: IfExpression):
        asm = self.assembler
        line = node.span.line
        else_label = asm.new_label("else")
        end_label = asm.new_label("endif")

        self._compile(node.condition)
        asm.emit_jump(Opcode.JUMP_IF_FALSE, else_label, line)
        self._compile(node.then_branch)
        asm.emit_jump(Opcode.JUMP, end_label, line)

        asm.bind(else_label, line)
        if node.else_branch is not None:
            self._compile(node.else_branch)
        else:
            asm.emit(Opcode.LOAD_NULL, line=line)
        asm.bind(end_label, line)

    def _compile_while(self, node: WhileLoop):
        asm = self.assembler
        line = node.span.line
        start = asm.new_label("while")
        end = asm.new_label("endwhile")
        depth = asm.depth

        asm.bind(start, line)
        self._compile(node.condition)
        asm.emit_jump(Opcode.JUMP_IF_FALSE, end, line)

        self._loops.append(LoopContext(end, start, depth, depth))
        self._compile(node.body)
        self._loops.pop()

        asm.emit(Opcode.POP, line=line)
        asm.emit_jump(Opcode.JUMP, start, line)
        asm.bind(end, line)
        asm.emit(Opcode.LOAD_NULL, line=line)

    def _compile_for(self, node: ForLoop):
        asm = self.assembler
        line = node.span.line
        start = asm.new_label("for")
        end = asm.new_label("endfor")
        depth = asm.depth

        self._compile(node.iterable)
        asm.emit(Opcode.GET_ITER, line=line)
        asm.bind(start, line)
        asm.emit_jump(Opcode.FOR_ITER, end, line)
        self._store(node.symbol, line)

        # The iterator stays on the stack for the whole loop
        self._loops.append(LoopContext(end, start, depth, depth + 1))
        self._compile(node.body)
        self._loops.pop()

        asm.emit(Opcode.POP, line=line)
        asm.emit_jump(Opcode.JUMP, start, line)
        asm.bind(end, line)
        asm.emit(Opcode.LOAD_NULL, line=line)


def compile_analysis(analysis: AnalysisResult) -> BytecodeModule:
    """Convenience function: compile an analyzed program."""
    return BytecodeCompiler().compile(analysis)

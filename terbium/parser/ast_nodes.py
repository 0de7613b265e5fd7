"""
Abstract Syntax Tree node definitions for Terbium.

Defines the AST node types for representing Terbium programs. Each node
includes source span information, owns its children (the tree is strict),
and is tagged with an ASTNodeType that later stages dispatch on.

Blocks, conditionals and loops are expressions: a block evaluates to its
trailing expression, or null when it has none.

Author: xwest
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, List, Optional

from ..lexer.tokens import SourceSpan


class ASTNodeType(Enum):
    """Enumeration of all AST node types."""

    # Top-level
    PROGRAM = "Program"

    # Statements
    VARIABLE_DECL = "VariableDecl"
    FUNCTION_DECL = "FunctionDecl"
    EXPRESSION_STMT = "ExpressionStatement"
    RETURN_STATEMENT = "ReturnStatement"
    BREAK_STATEMENT = "BreakStatement"
    CONTINUE_STATEMENT = "ContinueStatement"
    ERROR_STATEMENT = "ErrorStatement"

    # Expressions
    LITERAL = "Literal"
    IDENTIFIER = "Identifier"
    UNARY_OP = "UnaryOp"
    BINARY_OP = "BinaryOp"
    LOGICAL_OP = "LogicalOp"
    RANGE = "Range"
    ASSIGNMENT = "Assignment"
    FUNCTION_CALL = "FunctionCall"
    INDEX_ACCESS = "IndexAccess"
    LIST_LITERAL = "ListLiteral"
    BLOCK = "Block"
    IF_EXPRESSION = "IfExpression"
    WHILE_LOOP = "WhileLoop"
    FOR_LOOP = "ForLoop"
    FUNCTION_EXPRESSION = "FunctionExpression"
    ERROR_EXPRESSION = "ErrorExpression"


class ASTNode(ABC):
    """Base class for all AST nodes."""

    def __init__(self, node_type: ASTNodeType, span: SourceSpan):
        self.node_type = node_type
        self.span = span
        self.parent: Optional['ASTNode'] = None
        # Height of the subtree rooted here; leaves are 1
        self.height = 1

    @abstractmethod
    def children(self) -> List['ASTNode']:
        """Get all child nodes in evaluation order."""
        pass

    def set_parent(self, parent: 'ASTNode'):
        """Set the parent node."""
        self.parent = parent

    def _adopt(self, *nodes: Optional['ASTNode']):
        for node in nodes:
            if node is not None:
                node.set_parent(self)
                self.height = max(self.height, node.height + 1)

    def __str__(self) -> str:
        return f"{self.node_type.value}@{self.span}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(span={self.span})"


def iter_nodes(root: ASTNode) -> Iterator[ASTNode]:
    """Pre-order traversal using an explicit stack."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children()))


# ============================================================================
# Top-level nodes
# ============================================================================

class Program(ASTNode):
    """Root AST node representing a complete compilation unit."""
    statements: List['Statement']
    tail: Optional['Expression']

    def __init__(self, statements: List['Statement'], tail: Optional['Expression'], span: SourceSpan):
        super().__init__(ASTNodeType.PROGRAM, span)
        self.statements = statements
        self.tail = tail
        self._adopt(*statements, tail)

    def children(self) -> List[ASTNode]:
        return self.statements + ([self.tail] if self.tail else [])


# ============================================================================
# Statements
# ============================================================================

class Statement(ASTNode):
    """Base class for statements."""
    pass


class VariableDecl(Statement):
    """`let`, `let mut` or `const` declaration."""
    name: str
    initializer: Optional['Expression']
    is_mutable: bool = False
    is_const: bool = False

    def __init__(self, name: str, initializer: Optional['Expression'], span: SourceSpan,
                 name_span: Optional[SourceSpan] = None, **kwargs):
        super().__init__(ASTNodeType.VARIABLE_DECL, span)
        self.name = name
        self.name_span = name_span or span
        self.initializer = initializer
        self.is_mutable = kwargs.get('is_mutable', False)
        self.is_const = kwargs.get('is_const', False)
        self.symbol = None  # set by the analyzer
        self._adopt(initializer)

    def children(self) -> List[ASTNode]:
        return [self.initializer] if self.initializer else []


class FunctionDecl(Statement):
    """Named function declaration; binds `function` under its name."""
    function: 'FunctionExpression'

    def __init__(self, function: 'FunctionExpression', span: SourceSpan):
        super().__init__(ASTNodeType.FUNCTION_DECL, span)
        self.function = function
        self.symbol = None  # set by the analyzer
        self._adopt(function)

    @property
    def name(self) -> str:
        return self.function.name

    def children(self) -> List[ASTNode]:
        return [self.function]


class ExpressionStatement(Statement):
    """Expression evaluated for its effects; the value is discarded."""
    expression: 'Expression'

    def __init__(self, expression: 'Expression', span: SourceSpan):
        super().__init__(ASTNodeType.EXPRESSION_STMT, span)
        self.expression = expression
        self._adopt(expression)

    def children(self) -> List[ASTNode]:
        return [self.expression]


class ReturnStatement(Statement):
    """Return statement."""
    value: Optional['Expression']

    def __init__(self, value: Optional['Expression'], span: SourceSpan):
        super().__init__(ASTNodeType.RETURN_STATEMENT, span)
        self.value = value
        self._adopt(value)

    def children(self) -> List[ASTNode]:
        return [self.value] if self.value else []


class BreakStatement(Statement):
    def __init__(self, span: SourceSpan):
        super().__init__(ASTNodeType.BREAK_STATEMENT, span)

    def children(self) -> List[ASTNode]:
        return []


class ContinueStatement(Statement):
    def __init__(self, span: SourceSpan):
        super().__init__(ASTNodeType.CONTINUE_STATEMENT, span)

    def children(self) -> List[ASTNode]:
        return []


class ErrorStatement(Statement):
    """Placeholder for a statement that failed to parse."""

    def __init__(self, span: SourceSpan):
        super().__init__(ASTNodeType.ERROR_STATEMENT, span)

    def children(self) -> List[ASTNode]:
        return []


# ============================================================================
# Expressions
# ============================================================================

class Expression(ASTNode):
    """Base class for expressions."""
    pass


class Literal(Expression):
    """Literal value expression."""
    value: Any
    literal_type: str  # "integer", "float", "string", "boolean", "null"

    def __init__(self, value: Any, literal_type: str, span: SourceSpan):
        super().__init__(ASTNodeType.LITERAL, span)
        self.value = value
        self.literal_type = literal_type

    def children(self) -> List[ASTNode]:
        return []


class Identifier(Expression):
    """Identifier expression."""
    name: str

    def __init__(self, name: str, span: SourceSpan):
        super().__init__(ASTNodeType.IDENTIFIER, span)
        self.name = name
        # Filled in by the analyzer; None with poisoned=True when unresolved
        self.binding = None
        self.poisoned = False

    def children(self) -> List[ASTNode]:
        return []


class UnaryOp(Expression):
    """Prefix operation: -, +, !, ~."""
    operator: str
    operand: Expression

    def __init__(self, operator: str, operand: Expression, span: SourceSpan):
        super().__init__(ASTNodeType.UNARY_OP, span)
        self.operator = operator
        self.operand = operand
        self._adopt(operand)

    def children(self) -> List[ASTNode]:
        return [self.operand]


class BinaryOp(Expression):
    """Arithmetic, bitwise or comparison operation."""
    left: Expression
    operator: str
    right: Expression

    def __init__(self, left: Expression, operator: str, right: Expression, span: SourceSpan):
        super().__init__(ASTNodeType.BINARY_OP, span)
        self.left = left
        self.operator = operator
        self.right = right
        self._adopt(left, right)

    def children(self) -> List[ASTNode]:
        return [self.left, self.right]


class LogicalOp(Expression):
    """Short-circuiting && or ||."""
    left: Expression
    operator: str
    right: Expression

    def __init__(self, left: Expression, operator: str, right: Expression, span: SourceSpan):
        super().__init__(ASTNodeType.LOGICAL_OP, span)
        self.left = left
        self.operator = operator
        self.right = right
        self._adopt(left, right)

    def children(self) -> List[ASTNode]:
        return [self.left, self.right]


class RangeExpression(Expression):
    """Half-open integer range `start..end`."""
    start: Expression
    end: Expression

    def __init__(self, start: Expression, end: Expression, span: SourceSpan):
        super().__init__(ASTNodeType.RANGE, span)
        self.start = start
        self.end = end
        self._adopt(start, end)

    def children(self) -> List[ASTNode]:
        return [self.start, self.end]


class Assignment(Expression):
    """
    Assignment to an identifier or index target.

    `operator` is "=" or a compound form such as "+=". The expression
    evaluates to the stored value.
    """
    target: Expression
    operator: str
    value: Expression

    def __init__(self, target: Expression, operator: str, value: Expression, span: SourceSpan):
        super().__init__(ASTNodeType.ASSIGNMENT, span)
        self.target = target
        self.operator = operator
        self.value = value
        self._adopt(target, value)

    @property
    def binary_operator(self) -> Optional[str]:
        """Arithmetic operator of a compound assignment, None for plain '='."""
        return self.operator[:-1] if self.operator != "=" else None

    def children(self) -> List[ASTNode]:
        return [self.target, self.value]


class FunctionCall(Expression):
    """Function call expression."""
    function: Expression
    args: List[Expression]

    def __init__(self, function: Expression, args: List[Expression], span: SourceSpan):
        super().__init__(ASTNodeType.FUNCTION_CALL, span)
        self.function = function
        self.args = args
        self._adopt(function, *args)

    def children(self) -> List[ASTNode]:
        return [self.function] + self.args


class IndexAccess(Expression):
    """Subscript expression `target[index]`."""
    target: Expression
    index: Expression

    def __init__(self, target: Expression, index: Expression, span: SourceSpan):
        super().__init__(ASTNodeType.INDEX_ACCESS, span)
        self.target = target
        self.index = index
        self._adopt(target, index)

    def children(self) -> List[ASTNode]:
        return [self.target, self.index]


class ListLiteral(Expression):
    """List literal `[a, b, c]`."""
    elements: List[Expression]

    def __init__(self, elements: List[Expression], span: SourceSpan):
        super().__init__(ASTNodeType.LIST_LITERAL, span)
        self.elements = elements
        self._adopt(*elements)

    def children(self) -> List[ASTNode]:
        return list(self.elements)


class Block(Expression):
    """Braced block: statements followed by an optional value expression."""
    statements: List[Statement]
    tail: Optional[Expression]

    def __init__(self, statements: List[Statement], tail: Optional[Expression], span: SourceSpan):
        super().__init__(ASTNodeType.BLOCK, span)
        self.statements = statements
        self.tail = tail
        self._adopt(*statements, tail)

    def children(self) -> List[ASTNode]:
        return self.statements + ([self.tail] if self.tail else [])


class IfExpression(Expression):
    """Conditional with an optional else branch (a Block or another IfExpression)."""
    condition: Expression
    then_branch: Block
    else_branch: Optional[Expression] = None

    def __init__(self, condition: Expression, then_branch: Block,
                 else_branch: Optional[Expression], span: SourceSpan):
        super().__init__(ASTNodeType.IF_EXPRESSION, span)
        self.condition = condition
        self.then_branch = then_branch
        self.else_branch = else_branch
        self._adopt(condition, then_branch, else_branch)

    def children(self) -> List[ASTNode]:
        children = [self.condition, self.then_branch]
        if self.else_branch:
            children.append(self.else_branch)
        return children


class WhileLoop(Expression):
    """While loop; evaluates to null."""
    condition: Expression
    body: Block

    def __init__(self, condition: Expression, body: Block, span: SourceSpan):
        super().__init__(ASTNodeType.WHILE_LOOP, span)
        self.condition = condition
        self.body = body
        self._adopt(condition, body)

    def children(self) -> List[ASTNode]:
        return [self.condition, self.body]


class ForLoop(Expression):
    """`for variable in iterable { ... }`; evaluates to null."""
    variable: str
    iterable: Expression
    body: Block

    def __init__(self, variable: str, iterable: Expression, body: Block, span: SourceSpan,
                 variable_span: Optional[SourceSpan] = None):
        super().__init__(ASTNodeType.FOR_LOOP, span)
        self.variable = variable
        self.variable_span = variable_span or span
        self.iterable = iterable
        self.body = body
        self.symbol = None  # loop variable, set by the analyzer
        self._adopt(iterable, body)

    def children(self) -> List[ASTNode]:
        return [self.iterable, self.body]


@dataclass
class Parameter:
    """Function parameter."""
    name: str
    span: SourceSpan
    is_mutable: bool = False
    symbol: Any = None  # set by the analyzer


class FunctionExpression(Expression):
    """Function literal; `name` is None for anonymous functions."""
    name: Optional[str]
    params: List[Parameter]
    body: Block

    def __init__(self, name: Optional[str], params: List[Parameter], body: Block, span: SourceSpan):
        super().__init__(ASTNodeType.FUNCTION_EXPRESSION, span)
        self.name = name
        self.params = params
        self.body = body
        self.local_count = 0  # slots needed by a frame, set by the analyzer
        self._adopt(body)

    @property
    def display_name(self) -> str:
        return self.name or "<lambda>"

    def children(self) -> List[ASTNode]:
        return [self.body]


class ErrorExpression(Expression):
    """Placeholder for an expression that failed to parse."""

    def __init__(self, span: SourceSpan):
        super().__init__(ASTNodeType.ERROR_EXPRESSION, span)

    def children(self) -> List[ASTNode]:
        return []

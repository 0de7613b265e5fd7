"""
Terbium Parser Package

Implements a hand-written parser that turns the token stream into an
Abstract Syntax Tree.

Key Features:
- Recursive descent for statements and declarations
- Pratt (precedence climbing) expression parsing driven by an operator table
- Blocks, conditionals and loops as value-producing expressions
- Statement-level error recovery with error marker nodes
- Bounded nesting depth

Author: xwest
"""

from .ast_nodes import *
from .parser import Parser, Precedence, Associativity, OPERATOR_TABLE, parse_tokens
from .errors import ParseError, SyntaxErrorRecovery

__all__ = [
    "Parser",
    "Precedence",
    "Associativity",
    "OPERATOR_TABLE",
    "parse_tokens",
    "ParseError",
    "SyntaxErrorRecovery",
    # AST nodes
    "ASTNode",
    "ASTNodeType",
    "iter_nodes",
    "Program",
    "Statement",
    "VariableDecl",
    "FunctionDecl",
    "ExpressionStatement",
    "ReturnStatement",
    "BreakStatement",
    "ContinueStatement",
    "ErrorStatement",
    "Expression",
    "Literal",
    "Identifier",
    "UnaryOp",
    "BinaryOp",
    "LogicalOp",
    "RangeExpression",
    "Assignment",
    "FunctionCall",
    "IndexAccess",
    "ListLiteral",
    "Block",
    "IfExpression",
    "WhileLoop",
    "ForLoop",
    "Parameter",
    "FunctionExpression",
    "ErrorExpression",
]

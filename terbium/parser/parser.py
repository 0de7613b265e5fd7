"""
Terbium Pratt Parser Implementation

Recursive descent for statements and declarations, top-down operator
precedence (Pratt) parsing for expressions. The parser never gives up on
malformed input: every syntax error is reported once to the diagnostics
collector, the parser resynchronizes at the next statement boundary, and
the broken construct is replaced by an error node. The result is always a
complete Program.

Author: xwest
"""

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..config import CompilerConfig
from ..diagnostics import DiagnosticCollector
from ..lexer.tokens import Token, TokenType, SourceSpan, RESERVED_PUNCTUATION
from .ast_nodes import (
    Assignment, Block, BreakStatement, ContinueStatement, ErrorExpression,
    ErrorStatement, Expression, ExpressionStatement, ForLoop, FunctionCall,
    FunctionDecl, FunctionExpression, Identifier, IfExpression, IndexAccess,
    ListLiteral, Literal, LogicalOp, BinaryOp, Parameter, Program,
    RangeExpression, ReturnStatement, Statement, UnaryOp, VariableDecl,
    WhileLoop
)
from .errors import (
    ParseError, SyntaxErrorRecovery, create_unexpected_token_error,
    create_missing_semicolon_error, create_unclosed_delimiter_error,
    create_invalid_expression_error, create_invalid_assignment_target_error,
    create_nesting_too_deep_error, create_tree_too_tall_error
)

logger = logging.getLogger(__name__)


class Precedence(IntEnum):
    """Operator precedence levels for Pratt parsing."""
    NONE = 0
    ASSIGNMENT = 1      # =, +=, -=, *=, /=, %=
    OR = 2              # ||
    AND = 3             # &&
    EQUALITY = 4        # ==, !=
    COMPARISON = 5      # <, >, <=, >=
    RANGE = 6           # ..
    BIT_OR = 7          # |
    BIT_XOR = 8         # ^
    BIT_AND = 9         # &
    SHIFT = 10          # <<, >>
    TERM = 11           # +, -
    FACTOR = 12         # *, /, %
    UNARY = 13          # -, +, !, ~
    POWER = 14          # **
    CALL = 15           # calls, indexing
    PRIMARY = 16        # literals, identifiers, parentheses


class Associativity(Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class OperatorInfo:
    precedence: Precedence
    associativity: Associativity = Associativity.LEFT


# Infix operator table
OPERATOR_TABLE: Dict[TokenType, OperatorInfo] = {
    # Assignment
    TokenType.ASSIGN: OperatorInfo(Precedence.ASSIGNMENT, Associativity.RIGHT),
    TokenType.PLUS_ASSIGN: OperatorInfo(Precedence.ASSIGNMENT, Associativity.RIGHT),
    TokenType.MINUS_ASSIGN: OperatorInfo(Precedence.ASSIGNMENT, Associativity.RIGHT),
    TokenType.MULTIPLY_ASSIGN: OperatorInfo(Precedence.ASSIGNMENT, Associativity.RIGHT),
    TokenType.DIVIDE_ASSIGN: OperatorInfo(Precedence.ASSIGNMENT, Associativity.RIGHT),
    TokenType.MODULO_ASSIGN: OperatorInfo(Precedence.ASSIGNMENT, Associativity.RIGHT),

    # Logical
    TokenType.LOGICAL_OR: OperatorInfo(Precedence.OR),
    TokenType.LOGICAL_AND: OperatorInfo(Precedence.AND),

    # Equality and comparison
    TokenType.EQUAL: OperatorInfo(Precedence.EQUALITY),
    TokenType.NOT_EQUAL: OperatorInfo(Precedence.EQUALITY),
    TokenType.LESS_THAN: OperatorInfo(Precedence.COMPARISON),
    TokenType.LESS_EQUAL: OperatorInfo(Precedence.COMPARISON),
    TokenType.GREATER_THAN: OperatorInfo(Precedence.COMPARISON),
    TokenType.GREATER_EQUAL: OperatorInfo(Precedence.COMPARISON),

    TokenType.RANGE: OperatorInfo(Precedence.RANGE),

    # Bitwise
    TokenType.BIT_OR: OperatorInfo(Precedence.BIT_OR),
    TokenType.BIT_XOR: OperatorInfo(Precedence.BIT_XOR),
    TokenType.BIT_AND: OperatorInfo(Precedence.BIT_AND),
    TokenType.LEFT_SHIFT: OperatorInfo(Precedence.SHIFT),
    TokenType.RIGHT_SHIFT: OperatorInfo(Precedence.SHIFT),

    # Arithmetic
    TokenType.PLUS: OperatorInfo(Precedence.TERM),
    TokenType.MINUS: OperatorInfo(Precedence.TERM),
    TokenType.MULTIPLY: OperatorInfo(Precedence.FACTOR),
    TokenType.DIVIDE: OperatorInfo(Precedence.FACTOR),
    TokenType.MODULO: OperatorInfo(Precedence.FACTOR),
    TokenType.POWER: OperatorInfo(Precedence.POWER, Associativity.RIGHT),

    # Postfix
    TokenType.LEFT_PAREN: OperatorInfo(Precedence.CALL),
    TokenType.LEFT_BRACKET: OperatorInfo(Precedence.CALL),
}

# Expressions that end in a block and need no ';' in statement position
BLOCK_LIKE = {TokenType.LEFT_BRACE, TokenType.IF, TokenType.WHILE, TokenType.FOR}


class Parser:
    """
    Terbium Pratt parser.

    Implements top-down operator precedence parsing with error recovery
    and AST generation.
    """

    def __init__(self, tokens: List[Token], diagnostics: Optional[DiagnosticCollector] = None,
                 config: Optional[CompilerConfig] = None):
        """
        Initialize parser with a list of tokens.

        Args:
            tokens: List of tokens from the lexer, ending with EOF
            diagnostics: Collector receiving syntax errors
            config: Compiler settings (nesting limit)
        """
        if not tokens or tokens[-1].type != TokenType.EOF:
            raise ValueError("token list must end with an EOF token")

        self.tokens = tokens
        self.current = 0
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.config = config or CompilerConfig()
        self.error_count = 0

        self._depth = 0
        # Set once the current statement consumed a token the lexer already
        # reported; further errors in that statement are not reported again.
        self._statement_tainted = False

        # Initialize parsing tables
        self._init_parsing_tables()

    def _init_parsing_tables(self):
        """Initialize prefix and infix parsing function tables."""

        # Prefix parsing functions (for tokens that can start expressions)
        self.prefix_parsers: Dict[TokenType, Callable[[], Expression]] = {
            # Literals
            TokenType.INTEGER: self._parse_literal,
            TokenType.FLOAT: self._parse_literal,
            TokenType.STRING: self._parse_literal,
            TokenType.TRUE: self._parse_literal,
            TokenType.FALSE: self._parse_literal,
            TokenType.NULL: self._parse_literal,

            TokenType.IDENTIFIER: self._parse_identifier,

            # Unary operators
            TokenType.MINUS: self._parse_unary,
            TokenType.PLUS: self._parse_unary,
            TokenType.LOGICAL_NOT: self._parse_unary,
            TokenType.BIT_NOT: self._parse_unary,

            # Grouping and compound expressions
            TokenType.LEFT_PAREN: self._parse_grouping,
            TokenType.LEFT_BRACKET: self._parse_list_literal,
            TokenType.LEFT_BRACE: self._parse_block,
            TokenType.IF: self._parse_if,
            TokenType.WHILE: self._parse_while,
            TokenType.FOR: self._parse_for,
            TokenType.FUNC: self._parse_function_expression,

            # Already reported by the lexer
            TokenType.ERROR: self._parse_error_token,
        }

        # Infix parsing functions
        self.infix_parsers: Dict[TokenType, Callable[[Expression], Expression]] = {
            TokenType.LOGICAL_OR: self._parse_logical,
            TokenType.LOGICAL_AND: self._parse_logical,
            TokenType.RANGE: self._parse_range,
            TokenType.LEFT_PAREN: self._parse_function_call,
            TokenType.LEFT_BRACKET: self._parse_index_access,
        }
        for token_type, info in OPERATOR_TABLE.items():
            if token_type in self.infix_parsers:
                continue
            if info.precedence == Precedence.ASSIGNMENT:
                self.infix_parsers[token_type] = self._parse_assignment
            else:
                self.infix_parsers[token_type] = self._parse_binary

    def parse(self) -> Program:
        """
        Parse the token stream into a Program.

        Returns:
            The root node; syntax errors are reported to the diagnostics
            collector and represented by error nodes in the tree.
        """
        start = self._peek().span
        statements, tail = self._parse_statement_list(TokenType.EOF)
        end = self._peek().span
        program = Program(statements, tail, SourceSpan(start.start, end.end))

        logger.debug("Parsed %d statements, %d syntax errors", len(statements), self.error_count)
        return program

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _parse_statement_list(self, terminator: TokenType) -> Tuple[List[Statement], Optional[Expression]]:
        """Parse statements up to `terminator`, splitting off a trailing value expression."""
        statements: List[Statement] = []
        tail: Optional[Expression] = None

        while not self._check(terminator) and not self._is_at_end():
            result = self._parse_statement()
            if isinstance(result, Expression):
                if self._check(terminator):
                    tail = result
                    break
                statements.append(ExpressionStatement(result, result.span))
                continue
            statements.append(result)

        return statements, tail

    def _parse_statement(self) -> Union[Statement, Expression]:
        """
        Parse one statement.

        Returns a bare Expression when the statement is an unterminated
        expression directly before a closing brace or end of input.
        """
        outer_tainted = self._statement_tainted
        self._statement_tainted = False
        start_index = self.current
        start = self._peek()

        try:
            if self._check(TokenType.LET) or self._check(TokenType.CONST):
                return self._parse_variable_declaration()
            if self._check(TokenType.FUNC) and self._peek(1).type == TokenType.IDENTIFIER:
                return self._parse_function_declaration()
            if self._check(TokenType.RETURN):
                return self._parse_return_statement()
            if self._check(TokenType.BREAK):
                token = self._advance()
                self._expect_semicolon(allow_before_brace=True)
                return BreakStatement(token.span)
            if self._check(TokenType.CONTINUE):
                token = self._advance()
                self._expect_semicolon(allow_before_brace=True)
                return ContinueStatement(token.span)
            if self._match(TokenType.SEMICOLON):
                # Empty statement
                return ExpressionStatement(Literal(None, "null", start.span), start.span)
            return self._parse_expression_statement()

        except ParseError as e:
            self._report(e)
            self.current = SyntaxErrorRecovery.synchronize_to_statement_boundary(self.tokens, self.current)
            if self.current == start_index and not self._is_at_end():
                # Guarantee progress on a token no statement can start with
                self._advance()
            return ErrorStatement(self._span_from(start))

        finally:
            self._statement_tainted = outer_tainted or self._statement_tainted

    def _parse_variable_declaration(self) -> VariableDecl:
        """Parse `let [mut] name [= expr];` or `const name = expr;`."""
        keyword = self._advance()
        is_const = keyword.type == TokenType.CONST
        is_mutable = not is_const and self._match(TokenType.MUT)

        name_token = self._consume(TokenType.IDENTIFIER, "variable name")

        initializer = None
        if self._match(TokenType.ASSIGN):
            initializer = self._parse_recoverable_expression()
            if isinstance(initializer, ErrorExpression):
                return VariableDecl(name_token.lexeme, initializer, self._span_from(keyword),
                                    name_span=name_token.span, is_mutable=is_mutable, is_const=is_const)
        elif is_const:
            raise create_unexpected_token_error(TokenType.ASSIGN, self._peek())

        self._expect_semicolon()
        return VariableDecl(name_token.lexeme, initializer, self._span_from(keyword),
                            name_span=name_token.span, is_mutable=is_mutable, is_const=is_const)

    def _parse_function_declaration(self) -> FunctionDecl:
        """Parse `func name(params) { body }`."""
        keyword = self._peek()
        function = self._parse_function_expression()
        return FunctionDecl(function, self._span_from(keyword))

    def _parse_return_statement(self) -> ReturnStatement:
        keyword = self._advance()
        value = None
        if not self._check(TokenType.SEMICOLON) and not self._check(TokenType.RIGHT_BRACE):
            value = self._parse_expression()
        self._expect_semicolon(allow_before_brace=True)
        return ReturnStatement(value, self._span_from(keyword))

    def _parse_expression_statement(self) -> Union[Statement, Expression]:
        start = self._peek()

        if start.type in BLOCK_LIKE:
            # Block-like expressions end the statement without ';' and are
            # not continued by infix operators.
            expression = self.prefix_parsers[start.type]()
            if self._match(TokenType.SEMICOLON):
                return ExpressionStatement(expression, self._span_from(start))
            if self._check(TokenType.RIGHT_BRACE) or self._is_at_end():
                return expression
            return ExpressionStatement(expression, expression.span)

        expression = self._parse_expression()
        if self._match(TokenType.SEMICOLON):
            return ExpressionStatement(expression, self._span_from(start))
        if self._check(TokenType.RIGHT_BRACE) or self._is_at_end():
            return expression

        self._expect_semicolon()
        return ExpressionStatement(expression, expression.span)

    def _expect_semicolon(self, allow_before_brace: bool = False):
        """
        Require a ';' terminator.

        A missing terminator is reported and the parser skips to the next
        statement boundary; the statement parsed so far is kept.
        """
        if self._match(TokenType.SEMICOLON):
            return
        if allow_before_brace and (self._check(TokenType.RIGHT_BRACE) or self._is_at_end()):
            return

        if self._peek().type in RESERVED_PUNCTUATION:
            self._report(create_unexpected_token_error(TokenType.SEMICOLON, self._peek()))
        else:
            self._report(create_missing_semicolon_error(self._previous(), self._peek()))
        self.current = SyntaxErrorRecovery.synchronize_to_statement_boundary(self.tokens, self.current)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _parse_expression(self) -> Expression:
        """Parse an expression."""
        return self._parse_precedence(Precedence.ASSIGNMENT)

    def _parse_recoverable_expression(self) -> Expression:
        """Parse an expression, turning a syntax error into an ErrorExpression."""
        start = self._peek()
        try:
            return self._parse_expression()
        except ParseError as e:
            self._report(e)
            self.current = SyntaxErrorRecovery.synchronize_to_statement_boundary(self.tokens, self.current)
            return ErrorExpression(self._span_from(start))

    def _parse_precedence(self, precedence: Precedence) -> Expression:
        """Parse expression with given minimum precedence."""
        self._enter_nesting()
        try:
            prefix_parser = self.prefix_parsers.get(self._peek().type)
            if prefix_parser is None:
                raise create_invalid_expression_error(self._peek())

            left = prefix_parser()

            while precedence <= self._get_precedence(self._peek().type):
                infix_parser = self.infix_parsers.get(self._peek().type)
                if infix_parser is None:
                    break
                left = infix_parser(left)
                self._check_height(left)

            return left
        finally:
            self._depth -= 1

    def _get_precedence(self, token_type: TokenType) -> Precedence:
        """Get precedence for a token type."""
        info = OPERATOR_TABLE.get(token_type)
        return info.precedence if info else Precedence.NONE

    # Prefix parsers

    def _parse_literal(self) -> Literal:
        token = self._advance()
        literal_types = {
            TokenType.INTEGER: "integer",
            TokenType.FLOAT: "float",
            TokenType.STRING: "string",
            TokenType.TRUE: "boolean",
            TokenType.FALSE: "boolean",
            TokenType.NULL: "null",
        }
        return Literal(token.value, literal_types[token.type], token.span)

    def _parse_identifier(self) -> Identifier:
        token = self._advance()
        return Identifier(token.lexeme, token.span)

    def _parse_unary(self) -> UnaryOp:
        operator_token = self._advance()
        operand = self._parse_precedence(Precedence.UNARY)
        return UnaryOp(operator_token.lexeme, operand, self._span_from(operator_token))

    def _parse_grouping(self) -> Expression:
        open_paren = self._advance()
        expression = self._parse_expression()
        self._consume_closing(TokenType.RIGHT_PAREN, open_paren)
        return expression

    def _parse_list_literal(self) -> ListLiteral:
        open_bracket = self._advance()
        elements = self._parse_comma_separated(TokenType.RIGHT_BRACKET, open_bracket)
        return ListLiteral(elements, self._span_from(open_bracket))

    def _parse_block(self) -> Block:
        """Parse `{ statements [tail] }`."""
        open_brace = self._consume(TokenType.LEFT_BRACE, "'{'")
        self._enter_nesting()
        try:
            statements, tail = self._parse_statement_list(TokenType.RIGHT_BRACE)
        finally:
            self._depth -= 1
        self._consume_closing(TokenType.RIGHT_BRACE, open_brace)
        block = Block(statements, tail, self._span_from(open_brace))
        self._check_height(block)
        return block

    def _parse_if(self) -> IfExpression:
        """Parse `if cond { ... } [else if ... | else { ... }]`."""
        keyword = self._advance()
        condition = self._parse_expression()
        then_branch = self._parse_block()

        else_branch = None
        if self._match(TokenType.ELSE):
            if self._check(TokenType.IF):
                else_branch = self._parse_if()
            else:
                else_branch = self._parse_block()

        return IfExpression(condition, then_branch, else_branch, self._span_from(keyword))

    def _parse_while(self) -> WhileLoop:
        keyword = self._advance()
        condition = self._parse_expression()
        body = self._parse_block()
        return WhileLoop(condition, body, self._span_from(keyword))

    def _parse_for(self) -> ForLoop:
        """Parse `for name in iterable { ... }`."""
        keyword = self._advance()
        variable = self._consume(TokenType.IDENTIFIER, "loop variable name")
        self._consume(TokenType.IN, "'in'")
        iterable = self._parse_expression()
        body = self._parse_block()
        return ForLoop(variable.lexeme, iterable, body, self._span_from(keyword),
                       variable_span=variable.span)

    def _parse_function_expression(self) -> FunctionExpression:
        """Parse `func [name](params) { body }`."""
        keyword = self._advance()
        name = None
        if self._check(TokenType.IDENTIFIER):
            name = self._advance().lexeme

        open_paren = self._consume(TokenType.LEFT_PAREN, "'(' to start the parameter list")
        params: List[Parameter] = []
        while not self._check(TokenType.RIGHT_PAREN):
            is_mutable = self._match(TokenType.MUT)
            param_token = self._consume(TokenType.IDENTIFIER, "parameter name")
            params.append(Parameter(param_token.lexeme, param_token.span, is_mutable=is_mutable))
            if not self._match(TokenType.COMMA):
                break
        self._consume_closing(TokenType.RIGHT_PAREN, open_paren)

        body = self._parse_block()
        return FunctionExpression(name, params, body, self._span_from(keyword))

    def _parse_error_token(self) -> ErrorExpression:
        token = self._advance()
        return ErrorExpression(token.span)

    # Infix parsers

    def _parse_binary(self, left: Expression) -> BinaryOp:
        """Parse binary operation, honouring the operator's associativity."""
        operator_token = self._advance()
        right = self._parse_operand(operator_token.type)
        return BinaryOp(left, operator_token.lexeme, right, left.span.merge(right.span))

    def _parse_logical(self, left: Expression) -> LogicalOp:
        operator_token = self._advance()
        right = self._parse_operand(operator_token.type)
        return LogicalOp(left, operator_token.lexeme, right, left.span.merge(right.span))

    def _parse_range(self, left: Expression) -> RangeExpression:
        operator_token = self._advance()
        right = self._parse_operand(operator_token.type)
        return RangeExpression(left, right, left.span.merge(right.span))

    def _parse_assignment(self, left: Expression) -> Assignment:
        """Parse assignment operation (right associative)."""
        operator_token = self._advance()
        if not isinstance(left, (Identifier, IndexAccess)):
            raise create_invalid_assignment_target_error(left.span)

        right = self._parse_operand(operator_token.type)
        return Assignment(left, operator_token.lexeme, right, left.span.merge(right.span))

    def _parse_operand(self, operator_type: TokenType) -> Expression:
        info = OPERATOR_TABLE[operator_type]
        if info.associativity == Associativity.RIGHT:
            return self._parse_precedence(info.precedence)
        return self._parse_precedence(Precedence(info.precedence + 1))

    def _parse_function_call(self, left: Expression) -> FunctionCall:
        open_paren = self._advance()
        args = self._parse_comma_separated(TokenType.RIGHT_PAREN, open_paren)
        return FunctionCall(left, args, left.span.merge(self._previous().span))

    def _parse_index_access(self, left: Expression) -> IndexAccess:
        open_bracket = self._advance()
        index = self._parse_expression()
        self._consume_closing(TokenType.RIGHT_BRACKET, open_bracket)
        return IndexAccess(left, index, left.span.merge(self._previous().span))

    def _parse_comma_separated(self, closing: TokenType, opener: Token) -> List[Expression]:
        """Parse `a, b, c` up to and including the closing delimiter; trailing comma allowed."""
        items: List[Expression] = []
        while not self._check(closing):
            items.append(self._parse_expression())
            if not self._match(TokenType.COMMA):
                break
        self._consume_closing(closing, opener)
        return items

    # ------------------------------------------------------------------
    # Utility methods
    # ------------------------------------------------------------------

    def _report(self, error: ParseError):
        """Record a syntax error unless it is fallout from a lexical error."""
        if self._statement_tainted or self._peek().is_error:
            logger.debug("Suppressed follow-on syntax error: %s", error.diagnostic.message)
            return
        self.error_count += 1
        self.diagnostics.add(error.diagnostic)

    def _enter_nesting(self):
        self._depth += 1
        if self._depth > self.config.max_nesting_depth:
            self._depth -= 1
            raise create_nesting_too_deep_error(self.config.max_nesting_depth, self._peek())

    def _check_height(self, node: Expression):
        if node.height > self.config.max_nesting_depth:
            raise create_tree_too_tall_error(self.config.max_nesting_depth, self._peek())

    def _span_from(self, start: Token) -> SourceSpan:
        end = self._previous() if self.current > 0 else start
        if end.span.end.offset < start.span.start.offset:
            end = start
        return SourceSpan(start.span.start, end.span.end)

    def _match(self, *token_types: TokenType) -> bool:
        """Check if current token matches any of the given types and consume it."""
        for token_type in token_types:
            if self._check(token_type):
                self._advance()
                return True
        return False

    def _check(self, token_type: TokenType) -> bool:
        """Check if current token is of given type."""
        return self._peek().type == token_type

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self.tokens[self.current]
        if not self._is_at_end():
            self.current += 1
        if token.is_error:
            self._statement_tainted = True
        return token

    def _is_at_end(self) -> bool:
        """Check if we've reached end of input."""
        return self._peek().type == TokenType.EOF

    def _peek(self, offset: int = 0) -> Token:
        """Look at a token without consuming it."""
        index = min(self.current + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _previous(self) -> Token:
        """Get previous token."""
        return self.tokens[max(self.current - 1, 0)]

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type or raise error."""
        if self._check(token_type):
            return self._advance()
        raise create_unexpected_token_error(expected, self._peek())

    def _consume_closing(self, token_type: TokenType, opener: Token) -> Token:
        """Consume a closing delimiter matching `opener`."""
        if self._check(token_type):
            return self._advance()
        raise create_unclosed_delimiter_error(opener, self._peek())


def parse_tokens(tokens: List[Token], diagnostics: Optional[DiagnosticCollector] = None,
                 config: Optional[CompilerConfig] = None) -> Program:
    """Convenience function: parse a token list into a Program."""
    return Parser(tokens, diagnostics, config).parse()

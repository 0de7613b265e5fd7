"""
Error handling for the Terbium parser.

Provides error reporting with source location information and the
recovery strategy that lets the parser continue after a syntax error.

Author: xwest
"""

from typing import Optional, List, Union

from ..diagnostics import Diagnostic, Severity, Stage
from ..lexer.tokens import (
    Token, TokenType, SourceSpan, STATEMENT_KEYWORDS, RESERVED_KEYWORDS, RESERVED_PUNCTUATION
)


class ParseError(Exception):
    """
    Exception raised when the parser encounters a syntax error.

    Contains detailed diagnostic information for error reporting. It is
    caught at the nearest recovery point, never by the caller of the parser.
    """

    def __init__(
        self,
        message: str,
        span: SourceSpan,
        token: Optional[Token] = None,
        code: Optional[str] = None,
        help_text: Optional[str] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.diagnostic = Diagnostic(
            severity=Severity.ERROR,
            span=span,
            message=message,
            stage=Stage.PARSER,
            code=code,
            help_text=help_text,
            suggestions=tuple(suggestions) if suggestions else None,
        )
        self.token = token

    def __str__(self) -> str:
        return str(self.diagnostic)


class SyntaxErrorRecovery:
    """
    Utilities for error recovery in the parser.

    Provides strategies to continue parsing after encountering syntax errors,
    allowing the collection of multiple errors in a single pass.
    """

    # Tokens that start a new statement; synchronization stops before them
    STATEMENT_BOUNDARIES = STATEMENT_KEYWORDS | {
        TokenType.RIGHT_BRACE,
        TokenType.EOF,
    }

    @staticmethod
    def suggest_missing_token(expected: TokenType) -> List[str]:
        """Suggest what token might be missing."""
        token_suggestions = {
            TokenType.SEMICOLON: ["Add a semicolon ';' to end the statement"],
            TokenType.RIGHT_PAREN: ["Add a closing parenthesis ')'"],
            TokenType.RIGHT_BRACKET: ["Add a closing bracket ']'"],
            TokenType.RIGHT_BRACE: ["Add a closing brace '}'"],
            TokenType.LEFT_BRACE: ["Add an opening brace '{' to start a block"],
            TokenType.ASSIGN: ["Add an assignment operator '='"],
            TokenType.IN: ["Write the loop as 'for name in iterable { ... }'"],
        }
        return token_suggestions.get(expected, [])

    @staticmethod
    def suggest_for_found(found: Token) -> List[str]:
        """Suggestions that depend on the offending token itself."""
        if found.type in RESERVED_KEYWORDS:
            return [f"'{found.lexeme}' is a reserved word; choose another name"]
        if found.type in RESERVED_PUNCTUATION:
            return [f"'{found.lexeme}' is reserved and not supported by any construct"]
        return []

    @staticmethod
    def synchronize_to_statement_boundary(tokens: List[Token], current_pos: int) -> int:
        """
        Skip tokens up to the next statement boundary.

        A ';' is consumed (the statement it ends is abandoned); a closing
        brace, a statement keyword or EOF is left in place for the enclosing
        construct. Returns the position to resume parsing from.
        """
        while current_pos < len(tokens):
            token = tokens[current_pos]

            if token.type == TokenType.SEMICOLON:
                return current_pos + 1
            if token.type in SyntaxErrorRecovery.STATEMENT_BOUNDARIES:
                return current_pos

            current_pos += 1

        return len(tokens) - 1


# Common parser error codes for categorization
PARSER_ERROR_CODES = {
    "P001": "Unexpected token",
    "P003": "Missing semicolon",
    "P004": "Unclosed delimiter",
    "P005": "Invalid expression",
    "P006": "Invalid assignment target",
    "P010": "Unexpected end of input",
    "P011": "Nesting or expression too deep",
}


# Helper functions for creating common parser errors

def describe_token(token: Token) -> str:
    if token.type == TokenType.EOF:
        return "end of input"
    return f"'{token.lexeme}'"


def create_unexpected_token_error(expected: Union[TokenType, str], found: Token) -> ParseError:
    """Create an error for an unexpected token."""
    if found.type == TokenType.EOF:
        return create_unexpected_eof_error(
            expected if isinstance(expected, str) else expected.name, found.span
        )

    expected_str = expected.name if isinstance(expected, TokenType) else expected
    found_str = describe_token(found)
    suggestions = SyntaxErrorRecovery.suggest_for_found(found)
    if isinstance(expected, TokenType):
        suggestions += SyntaxErrorRecovery.suggest_missing_token(expected)

    return ParseError(
        message=f"Expected {expected_str}, found {found_str}",
        span=found.span,
        token=found,
        code="P001",
        help_text=f"The parser expected to see {expected_str} at this position, but found {found_str} instead.",
        suggestions=suggestions
    )


def create_missing_semicolon_error(previous: Token, found: Token) -> ParseError:
    """Create an error for a statement that is not terminated."""
    return ParseError(
        message=f"Expected ';' after '{previous.lexeme}', found {describe_token(found)}",
        span=found.span,
        token=found,
        code="P003",
        suggestions=SyntaxErrorRecovery.suggest_missing_token(TokenType.SEMICOLON)
    )


def create_unclosed_delimiter_error(delimiter: Token, found: Token) -> ParseError:
    """Create an error for an unclosed delimiter."""
    closing_delimiters = {
        "(": ")",
        "[": "]",
        "{": "}",
    }
    closing = closing_delimiters.get(delimiter.lexeme, delimiter.lexeme)

    return ParseError(
        message=f"Unclosed delimiter '{delimiter.lexeme}', found {describe_token(found)}",
        span=found.span,
        token=found,
        code="P004",
        help_text=f"The opening '{delimiter.lexeme}' at {delimiter.location} was never closed.",
        suggestions=[f"Add a closing '{closing}'"]
    )


def create_invalid_expression_error(found: Token) -> ParseError:
    """Create an error for a token that cannot start an expression."""
    return ParseError(
        message=f"Expected an expression, found {describe_token(found)}",
        span=found.span,
        token=found,
        code="P005",
        suggestions=SyntaxErrorRecovery.suggest_for_found(found) or [
            "Check the expression syntax", "Ensure all operators have operands"
        ]
    )


def create_invalid_assignment_target_error(span: SourceSpan) -> ParseError:
    return ParseError(
        message="Invalid assignment target",
        span=span,
        code="P006",
        help_text="Only variables and index expressions such as 'a[i]' can be assigned to."
    )


def create_unexpected_eof_error(expected: str, span: SourceSpan) -> ParseError:
    """Create an error for unexpected end of input."""
    return ParseError(
        message=f"Unexpected end of input, expected {expected}",
        span=span,
        code="P010",
        help_text=f"The parser reached the end of the input while expecting {expected}.",
        suggestions=[f"Add the missing {expected}", "Check for incomplete statements"]
    )


def create_nesting_too_deep_error(limit: int, found: Token) -> ParseError:
    return ParseError(
        message=f"Expression or block nesting exceeds the limit of {limit}",
        span=found.span,
        token=found,
        code="P011",
        help_text="Split the expression into smaller parts using intermediate variables."
    )


def create_tree_too_tall_error(limit: int, found: Token) -> ParseError:
    """Create an error for an operator chain whose syntax tree is too tall."""
    return ParseError(
        message=f"Expression is too long: its syntax tree exceeds the height limit of {limit}",
        span=found.span,
        token=found,
        code="P011",
        help_text="Each binary operator adds a level to the tree, even in a flat chain such as 'a + b + c'.",
        suggestions=["Split the expression into smaller parts using intermediate variables"]
    )

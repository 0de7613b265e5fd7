"""
Error handling for the Terbium lexer.

Provides error reporting with source location information and
error recovery suggestions.

Author: xwest
"""

from typing import Optional, List

from ..diagnostics import Diagnostic, Severity, Stage
from .tokens import SourceSpan


class LexerError(Exception):
    """
    Exception raised when the lexer encounters a malformed token.

    Contains detailed diagnostic information for error reporting. The lexer
    records the diagnostic and keeps scanning.
    """

    def __init__(
        self,
        message: str,
        span: SourceSpan,
        code: Optional[str] = None,
        help_text: Optional[str] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.diagnostic = Diagnostic(
            severity=Severity.ERROR,
            span=span,
            message=message,
            stage=Stage.LEXER,
            code=code,
            help_text=help_text,
            suggestions=tuple(suggestions) if suggestions else None,
        )

    def __str__(self) -> str:
        return str(self.diagnostic)


class ErrorRecovery:
    """
    Utilities for error recovery in the lexer.

    Provides suggestions that help users fix the input after an error.
    """

    @staticmethod
    def suggest_operator_alternatives(char: str) -> List[str]:
        """Suggest ASCII operators for look-alike characters."""
        alternatives = {
            '×': ['*'],
            '÷': ['/'],
            '≠': ['!='],
            '≤': ['<='],
            '≥': ['>='],
            '¬': ['!'],
            '∧': ['&&'],
            '∨': ['||'],
            '−': ['-'],
            '“': ['"'],
            '”': ['"'],
            '‘': ["'"],
            '’': ["'"],
            ':': ['='],
        }

        return alternatives.get(char, [])


# Common error codes for categorization
ERROR_CODES = {
    "L001": "Invalid character",
    "L002": "Unterminated string literal",
    "L003": "Invalid numeric literal",
    "L004": "Invalid Unicode escape",
    "L005": "Unterminated block comment",
    "L006": "Invalid escape sequence",
}


# Helper functions for creating common errors

def create_invalid_character_error(char: str, span: SourceSpan) -> LexerError:
    """Create an error for an invalid character."""
    suggestions = ErrorRecovery.suggest_operator_alternatives(char)
    help_text = None

    if suggestions:
        help_text = f"Did you mean {', '.join(repr(s) for s in suggestions)}?"
    elif char.isprintable():
        help_text = f"The character '{char}' is not valid in Terbium source code."
    else:
        help_text = f"Non-printable character (Unicode: U+{ord(char):04X}) is not allowed."

    return LexerError(
        message=f"Invalid character: {char!r}",
        span=span,
        code="L001",
        help_text=help_text,
        suggestions=suggestions
    )


def create_unterminated_string_error(quote: str, span: SourceSpan) -> LexerError:
    """Create an error for an unterminated string literal."""
    return LexerError(
        message="Unterminated string literal",
        span=span,
        code="L002",
        help_text=f"String literals must be closed with {quote} on the same line.",
        suggestions=[f"Add a closing {quote}", "Use \\n to put a line break inside a string"]
    )


def create_invalid_number_error(lexeme: str, span: SourceSpan, reason: str) -> LexerError:
    """Create an error for an invalid numeric literal."""
    return LexerError(
        message=f"Invalid numeric literal '{lexeme}': {reason}",
        span=span,
        code="L003",
        help_text=reason,
    )


def create_invalid_unicode_error(sequence: str, span: SourceSpan) -> LexerError:
    """Create an error for an escape that names no Unicode scalar value."""
    return LexerError(
        message=f"Invalid Unicode escape '{sequence}'",
        span=span,
        code="L004",
        help_text="Unicode escapes must name a code point in 0..10FFFF outside the surrogate range; "
                  "U+FFFD was used instead.",
    )


def create_unterminated_comment_error(span: SourceSpan) -> LexerError:
    """Create an error for a block comment without a closing */."""
    return LexerError(
        message="Unterminated block comment",
        span=span,
        code="L005",
        suggestions=["Add a closing '*/'"]
    )


def create_invalid_escape_error(sequence: str, span: SourceSpan) -> LexerError:
    """Create an error for an unknown escape sequence."""
    return LexerError(
        message=f"Invalid escape sequence '{sequence}'",
        span=span,
        code="L006",
        help_text="Valid escapes are \\\\ \\\" \\' \\0 \\b \\f \\n \\r \\t \\xHH \\uHHHH and \\UHHHHHHHH.",
        suggestions=["Use '\\\\' for a literal backslash", "Use a raw string r\"...\""]
    )

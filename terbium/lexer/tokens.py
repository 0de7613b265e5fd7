"""
Token definitions for the Terbium lexer.

This module defines all token types supported by Terbium, including:
- Keywords (declarations, control flow, literal keywords)
- Operators (arithmetic, bitwise, comparison, logical, assignment)
- Literals (integers, floats, strings)
- Identifiers (including Unicode letters)
- Punctuation and delimiters

Author: xwest
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any


class TokenCategory(Enum):
    """Coarse classification of tokens."""
    KEYWORD = auto()
    IDENTIFIER = auto()
    LITERAL = auto()
    OPERATOR = auto()
    PUNCTUATION = auto()
    ERROR = auto()
    END_OF_INPUT = auto()


class TokenType(Enum):
    """
    Enumeration of all token types in Terbium.

    Organized by category for clarity and maintainability.
    """

    # ========================================================================
    # Special Tokens
    # ========================================================================
    EOF = auto()                    # End of input
    ERROR = auto()                  # Unrecognized character

    # ========================================================================
    # Literals
    # ========================================================================
    INTEGER = auto()                # 42, 1_000_000, 0x2A, 0o52, 0b101010
    FLOAT = auto()                  # 3.14, .5, 1.23e-4
    STRING = auto()                 # "hello", 'hello', r"raw\n"

    IDENTIFIER = auto()             # variable_name, Größe

    # ========================================================================
    # Keywords
    # ========================================================================

    # Declarations
    FUNC = auto()                   # func
    LET = auto()                    # let
    CONST = auto()                  # const
    MUT = auto()                    # mut

    # Control flow
    IF = auto()                     # if
    ELSE = auto()                   # else
    WHILE = auto()                  # while
    FOR = auto()                    # for
    IN = auto()                     # in
    BREAK = auto()                  # break
    CONTINUE = auto()               # continue
    RETURN = auto()                 # return

    # Literal keywords
    TRUE = auto()                   # true
    FALSE = auto()                  # false
    NULL = auto()                   # null

    # Reserved for future use; never valid in a program
    CLASS = auto()                  # class
    REQUIRE = auto()                # require
    EXPORT = auto()                 # export
    PRIVATE = auto()                # private
    MATCH = auto()                  # match
    WITH = auto()                   # with
    THROWS = auto()                 # throws
    WHERE = auto()                  # where

    # ========================================================================
    # Operators
    # ========================================================================

    # Arithmetic
    PLUS = auto()                   # +
    MINUS = auto()                  # -
    MULTIPLY = auto()               # *
    DIVIDE = auto()                 # /
    MODULO = auto()                 # %
    POWER = auto()                  # **

    # Bitwise
    BIT_AND = auto()                # &
    BIT_OR = auto()                 # |
    BIT_XOR = auto()                # ^
    BIT_NOT = auto()                # ~
    LEFT_SHIFT = auto()             # <<
    RIGHT_SHIFT = auto()            # >>

    # Comparison
    EQUAL = auto()                  # ==
    NOT_EQUAL = auto()              # !=
    LESS_THAN = auto()              # <
    LESS_EQUAL = auto()             # <=
    GREATER_THAN = auto()           # >
    GREATER_EQUAL = auto()          # >=

    # Logical
    LOGICAL_AND = auto()            # &&
    LOGICAL_OR = auto()             # ||
    LOGICAL_NOT = auto()            # !

    # Range
    RANGE = auto()                  # ..

    # Assignment
    ASSIGN = auto()                 # =
    PLUS_ASSIGN = auto()            # +=
    MINUS_ASSIGN = auto()           # -=
    MULTIPLY_ASSIGN = auto()        # *=
    DIVIDE_ASSIGN = auto()          # /=
    MODULO_ASSIGN = auto()          # %=

    # ========================================================================
    # Punctuation
    # ========================================================================
    LEFT_PAREN = auto()             # (
    RIGHT_PAREN = auto()            # )
    LEFT_BRACKET = auto()           # [
    RIGHT_BRACKET = auto()          # ]
    LEFT_BRACE = auto()             # {
    RIGHT_BRACE = auto()            # }
    COMMA = auto()                  # ,
    SEMICOLON = auto()              # ;
    DOT = auto()                    # .
    DOUBLE_COLON = auto()           # ::
    QUESTION = auto()               # ?


@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in the source code.

    Used for error reporting and for the line table of compiled bytecode.
    """
    filename: str
    line: int
    column: int
    offset: int  # UTF-8 byte offset from start of input

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"

    def __repr__(self) -> str:
        return f"SourceLocation({self.filename!r}, {self.line}, {self.column}, {self.offset})"


@dataclass(frozen=True)
class SourceSpan:
    """Half-open source range, from the first character to just past the last."""
    start: SourceLocation
    end: SourceLocation

    @classmethod
    def at(cls, location: SourceLocation) -> "SourceSpan":
        return cls(location, location)

    def merge(self, other: "SourceSpan") -> "SourceSpan":
        """Smallest span covering both self and other."""
        start = self.start if self.start.offset <= other.start.offset else other.start
        end = self.end if self.end.offset >= other.end.offset else other.end
        return SourceSpan(start, end)

    @property
    def line(self) -> int:
        return self.start.line

    def __str__(self) -> str:
        return str(self.start)


@dataclass(frozen=True)
class Token:
    """
    Represents a lexical token in the Terbium language.

    Contains the token type, lexeme (raw text), semantic value, and source
    span. ``recovered`` is set on best-effort tokens the lexer produced from
    malformed input after reporting a diagnostic for it.
    """
    type: TokenType
    lexeme: str                     # Raw text from source
    value: Any                      # Parsed/semantic value (e.g., int for INTEGER)
    span: SourceSpan
    recovered: bool = False

    def __str__(self) -> str:
        if self.value is not None and self.value != self.lexeme:
            return f"{self.type.name}({self.lexeme!r} -> {self.value!r})"
        return f"{self.type.name}({self.lexeme!r})"

    def __repr__(self) -> str:
        return (f"Token({self.type.name}, {self.lexeme!r}, "
                f"{self.value!r}, {self.span.start!r})")

    @property
    def location(self) -> SourceLocation:
        return self.span.start

    @property
    def category(self) -> TokenCategory:
        return TOKEN_CATEGORIES[self.type]

    @property
    def is_literal(self) -> bool:
        """Check if this token is a literal value."""
        return self.category == TokenCategory.LITERAL

    @property
    def is_keyword(self) -> bool:
        """Check if this token is a keyword."""
        return self.category == TokenCategory.KEYWORD

    @property
    def is_operator(self) -> bool:
        """Check if this token is an operator."""
        return self.category == TokenCategory.OPERATOR

    @property
    def is_identifier(self) -> bool:
        """Check if this token is an identifier."""
        return self.type == TokenType.IDENTIFIER

    @property
    def is_error(self) -> bool:
        """Check if this token came out of a lexical error."""
        return self.type == TokenType.ERROR or self.recovered


# Lookup tables for keyword/operator recognition

KEYWORDS = {
    # Declarations
    "func": TokenType.FUNC,
    "let": TokenType.LET,
    "const": TokenType.CONST,
    "mut": TokenType.MUT,

    # Control flow
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "return": TokenType.RETURN,

    # Literals
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "null": TokenType.NULL,

    # Reserved
    "class": TokenType.CLASS,
    "require": TokenType.REQUIRE,
    "export": TokenType.EXPORT,
    "private": TokenType.PRIVATE,
    "match": TokenType.MATCH,
    "with": TokenType.WITH,
    "throws": TokenType.THROWS,
    "where": TokenType.WHERE,
}

# Longest operators are tried first by the lexer
OPERATORS = {
    # Two-character operators
    "**": TokenType.POWER,
    "==": TokenType.EQUAL,
    "!=": TokenType.NOT_EQUAL,
    "<=": TokenType.LESS_EQUAL,
    ">=": TokenType.GREATER_EQUAL,
    "&&": TokenType.LOGICAL_AND,
    "||": TokenType.LOGICAL_OR,
    "<<": TokenType.LEFT_SHIFT,
    ">>": TokenType.RIGHT_SHIFT,
    "..": TokenType.RANGE,
    "+=": TokenType.PLUS_ASSIGN,
    "-=": TokenType.MINUS_ASSIGN,
    "*=": TokenType.MULTIPLY_ASSIGN,
    "/=": TokenType.DIVIDE_ASSIGN,
    "%=": TokenType.MODULO_ASSIGN,
    "::": TokenType.DOUBLE_COLON,

    # Single-character operators
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.MULTIPLY,
    "/": TokenType.DIVIDE,
    "%": TokenType.MODULO,
    "&": TokenType.BIT_AND,
    "|": TokenType.BIT_OR,
    "^": TokenType.BIT_XOR,
    "~": TokenType.BIT_NOT,
    "<": TokenType.LESS_THAN,
    ">": TokenType.GREATER_THAN,
    "!": TokenType.LOGICAL_NOT,
    "=": TokenType.ASSIGN,

    # Punctuation
    "(": TokenType.LEFT_PAREN,
    ")": TokenType.RIGHT_PAREN,
    "[": TokenType.LEFT_BRACKET,
    "]": TokenType.RIGHT_BRACKET,
    "{": TokenType.LEFT_BRACE,
    "}": TokenType.RIGHT_BRACE,
    ",": TokenType.COMMA,
    ";": TokenType.SEMICOLON,
    ".": TokenType.DOT,
    "?": TokenType.QUESTION,
}

PUNCTUATION = {"(", ")", "[", "]", "{", "}", ",", ";", ".", "::", "?"}

RESERVED_KEYWORDS = {
    TokenType.CLASS,
    TokenType.REQUIRE,
    TokenType.EXPORT,
    TokenType.PRIVATE,
    TokenType.MATCH,
    TokenType.WITH,
    TokenType.THROWS,
    TokenType.WHERE,
}

# Lexed but not used by any construct
RESERVED_PUNCTUATION = {
    TokenType.DOT,
    TokenType.DOUBLE_COLON,
    TokenType.QUESTION,
}

TOKEN_CATEGORIES = {
    TokenType.EOF: TokenCategory.END_OF_INPUT,
    TokenType.ERROR: TokenCategory.ERROR,
    TokenType.INTEGER: TokenCategory.LITERAL,
    TokenType.FLOAT: TokenCategory.LITERAL,
    TokenType.STRING: TokenCategory.LITERAL,
    TokenType.IDENTIFIER: TokenCategory.IDENTIFIER,
}
TOKEN_CATEGORIES.update({tt: TokenCategory.KEYWORD for tt in KEYWORDS.values()})
TOKEN_CATEGORIES.update({
    tt: TokenCategory.PUNCTUATION if op in PUNCTUATION else TokenCategory.OPERATOR
    for op, tt in OPERATORS.items()
})

# Tokens that may only legally appear as the first token of a statement;
# used by the parser to resynchronize after an error.
STATEMENT_KEYWORDS = {
    TokenType.LET,
    TokenType.CONST,
    TokenType.FUNC,
    TokenType.IF,
    TokenType.WHILE,
    TokenType.FOR,
    TokenType.RETURN,
    TokenType.BREAK,
    TokenType.CONTINUE,
}

"""
Terbium Lexer Package

Implements a from-scratch lexical analyzer (tokenizer) for the Terbium language.

Key Features:
- Longest-match scanning of keywords, identifiers and operators
- Unicode identifiers
- Decimal, binary, octal and hexadecimal integers; floats with exponents
- Single/double quoted and raw strings with escape validation
- Error tokens and best-effort literal recovery, never aborting the scan
- Source spans with UTF-8 byte offsets and line/column positions

Author: xwest
"""

from .tokens import Token, TokenType, TokenCategory, SourceLocation, SourceSpan
from .lexer import Lexer, tokenize_string
from .errors import LexerError

__all__ = [
    "Lexer",
    "Token",
    "TokenType",
    "TokenCategory",
    "SourceLocation",
    "SourceSpan",
    "LexerError",
    "tokenize_string",
]

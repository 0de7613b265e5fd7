"""
Terbium Lexer - turns source text into tokens.

Scanning never stops at the first problem: malformed literals are reported
to the diagnostics collector and still produce a best-effort token, and
unrecognized characters become ERROR tokens, so the parser always receives
a complete stream ending in EOF.

Author: xwest
"""

import logging
import re
import unicodedata
from typing import List, Optional, Tuple

from ..diagnostics import DiagnosticCollector
from .tokens import Token, TokenType, SourceLocation, SourceSpan, KEYWORDS, OPERATORS
from .errors import (
    LexerError, create_invalid_character_error, create_unterminated_string_error,
    create_invalid_number_error, create_invalid_unicode_error,
    create_unterminated_comment_error, create_invalid_escape_error
)

logger = logging.getLogger(__name__)

ASCII_DIGITS = set('0123456789')
HEX_DIGITS = set('0123456789abcdefABCDEF')


class Lexer:
    """
    Terbium lexical analyzer.

    Converts source code text into a list of tokens. Every lexical error is
    recorded in the shared diagnostics collector.
    """

    def __init__(self, source: str, filename: str = "<unknown>",
                 diagnostics: Optional[DiagnosticCollector] = None):
        """
        Initialize the lexer with source code.

        Args:
            source: Source code string
            filename: Name of source file for error reporting
            diagnostics: Collector receiving lexical errors
        """
        self.source = source
        self.filename = filename
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.pos = 0
        self.line = 1
        self.column = 1
        self.byte_offset = 0
        self.tokens: List[Token] = []
        self.error_count = 0

        self._compile_patterns()

    def _compile_patterns(self):
        """Compile regex patterns used by the lexer."""

        # Integer patterns (prefix included, digits may be empty so the
        # caller can report "0x" without digits)
        self.binary_pattern = re.compile(r'0[bB][01_]*')
        self.octal_pattern = re.compile(r'0[oO][0-7_]*')
        self.hex_pattern = re.compile(r'0[xX][0-9a-fA-F_]*')

        # Decimal integers and floats: 42, 3.14, .5, 1e10, 2.5e-3
        self.decimal_pattern = re.compile(
            r'(?P<whole>\d[\d_]*)?(?P<fraction>\.\d[\d_]*)?(?P<exponent>[eE][+-]?[\d_]*)?',
            re.ASCII
        )

    def tokenize(self) -> List[Token]:
        """
        Tokenize the entire source code.

        Returns:
            List of tokens, always terminated by an EOF token
        """
        self.pos = 0
        self.line = 1
        self.column = 1
        self.byte_offset = 0
        self.tokens = []
        self.error_count = 0

        while self.pos < len(self.source):
            self._skip_whitespace_and_comments()

            if self.pos >= len(self.source):
                break

            start = self._location()
            try:
                token = self._next_token()
            except LexerError as e:
                # Unrecognized character: emit an error token and resume after it
                self._report(e)
                char = self.source[self.pos]
                self._advance()
                token = Token(TokenType.ERROR, char, None, SourceSpan(start, self._location()))
            self.tokens.append(token)

        # Add EOF token
        eof_location = self._location()
        self.tokens.append(Token(TokenType.EOF, "", None, SourceSpan(eof_location, eof_location)))

        logger.debug("Tokenized %s: %d tokens, %d errors",
                     self.filename, len(self.tokens), self.error_count)
        return self.tokens

    def _next_token(self) -> Token:
        """Get the next token from the source."""
        start = self._location()
        current_char = self.source[self.pos]

        # Numbers (integers and floats)
        if current_char in ASCII_DIGITS or (current_char == '.' and self._peek() in ASCII_DIGITS):
            return self._tokenize_number(start)

        # Raw strings must be checked before identifiers
        if current_char == 'r' and self._peek() in ('"', "'"):
            return self._tokenize_string(start, raw=True)

        # Identifiers and keywords
        if self._is_identifier_start(current_char):
            return self._tokenize_identifier_or_keyword(start)

        # String literals
        if current_char in ('"', "'"):
            return self._tokenize_string(start, raw=False)

        # Operators and punctuation (multi-character first)
        for op_len in (2, 1):
            if self.pos + op_len <= len(self.source):
                potential_op = self.source[self.pos:self.pos + op_len]
                if potential_op in OPERATORS:
                    self._advance_by(op_len)
                    return Token(OPERATORS[potential_op], potential_op, None,
                                 SourceSpan(start, self._location()))

        raise create_invalid_character_error(
            current_char, SourceSpan(start, self._location_after(current_char))
        )

    # ------------------------------------------------------------------
    # Numbers
    # ------------------------------------------------------------------

    def _tokenize_number(self, start: SourceLocation) -> Token:
        """Tokenize integer or float literals."""
        remaining = self.source[self.pos:self.pos + 2]

        if remaining in ('0b', '0B'):
            return self._tokenize_prefixed_integer(self.binary_pattern, 2, start)
        if remaining in ('0o', '0O'):
            return self._tokenize_prefixed_integer(self.octal_pattern, 8, start)
        if remaining in ('0x', '0X'):
            return self._tokenize_prefixed_integer(self.hex_pattern, 16, start)

        match = self.decimal_pattern.match(self.source, self.pos)
        lexeme = match.group(0)
        self._advance_by(len(lexeme))
        is_float = match.group('fraction') is not None or match.group('exponent') is not None

        reason = None
        exponent = match.group('exponent')
        if exponent is not None and not any(c.isdigit() for c in exponent):
            reason = "exponent has no digits"
        elif lexeme.endswith('_') or '__' in lexeme:
            reason = "misplaced digit separator '_'"

        suffix = self._consume_identifier_tail()
        if suffix:
            reason = reason or f"unexpected suffix '{suffix}'"
            lexeme += suffix

        if reason is not None:
            span = SourceSpan(start, self._location())
            self._report(create_invalid_number_error(lexeme, span, reason))
            return Token(TokenType.FLOAT if is_float else TokenType.INTEGER, lexeme,
                         0.0 if is_float else 0, span, recovered=True)

        clean_lexeme = lexeme.replace('_', '')
        span = SourceSpan(start, self._location())
        if is_float:
            return Token(TokenType.FLOAT, lexeme, float(clean_lexeme), span)
        return Token(TokenType.INTEGER, lexeme, int(clean_lexeme, 10), span)

    def _tokenize_prefixed_integer(self, pattern, base: int, start: SourceLocation) -> Token:
        """Tokenize a 0b/0o/0x integer literal."""
        match = pattern.match(self.source, self.pos)
        lexeme = match.group(0)
        self._advance_by(len(lexeme))
        digits = lexeme[2:].replace('_', '')

        reason = None
        if not digits:
            reason = f"no digits after '{lexeme[:2]}'"
        suffix = self._consume_identifier_tail()
        if suffix:
            reason = reason or f"invalid digit for base {base} in '{lexeme + suffix}'"
            lexeme += suffix

        span = SourceSpan(start, self._location())
        if reason is not None:
            self._report(create_invalid_number_error(lexeme, span, reason))
            return Token(TokenType.INTEGER, lexeme, 0, span, recovered=True)

        return Token(TokenType.INTEGER, lexeme, int(digits, base), span)

    def _consume_identifier_tail(self) -> str:
        """Consume identifier characters glued onto a literal."""
        start_pos = self.pos
        while self.pos < len(self.source) and self._is_identifier_continue(self.source[self.pos]):
            self._advance()
        return self.source[start_pos:self.pos]

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def _tokenize_identifier_or_keyword(self, start: SourceLocation) -> Token:
        """Tokenize an identifier or keyword (longest match wins)."""
        start_pos = self.pos

        # First character is already validated as identifier start
        self._advance()
        while self.pos < len(self.source) and self._is_identifier_continue(self.source[self.pos]):
            self._advance()

        lexeme = self.source[start_pos:self.pos]
        token_type = KEYWORDS.get(lexeme, TokenType.IDENTIFIER)

        if token_type == TokenType.IDENTIFIER:
            value = lexeme
        elif token_type in (TokenType.TRUE, TokenType.FALSE):
            value = token_type == TokenType.TRUE
        else:
            value = None

        return Token(token_type, lexeme, value, SourceSpan(start, self._location()))

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    def _tokenize_string(self, start: SourceLocation, raw: bool) -> Token:
        """
        Tokenize a string literal delimited by ' or ".

        A string that reaches a newline or the end of input before its closing
        quote is reported and returned as a recovered token holding the text
        read so far; the newline itself is left for the next token.
        """
        start_pos = self.pos
        if raw:
            self._advance()  # Skip 'r'
        quote = self.source[self.pos]
        self._advance()  # Skip opening quote

        value_parts = []
        terminated = False

        while self.pos < len(self.source):
            char = self.source[self.pos]
            if char == quote:
                self._advance()
                terminated = True
                break
            if char == '\n':
                break
            if char == '\\' and not raw:
                if self.pos + 1 >= len(self.source) or self._peek() == '\n':
                    self._advance()
                    break
                value_parts.append(self._handle_escape_sequence())
            else:
                value_parts.append(char)
                self._advance()

        lexeme = self.source[start_pos:self.pos]
        value = ''.join(value_parts)
        span = SourceSpan(start, self._location())

        if not terminated:
            self._report(create_unterminated_string_error(quote, span))
            return Token(TokenType.STRING, lexeme, value, span, recovered=True)

        return Token(TokenType.STRING, lexeme, value, span)

    def _handle_escape_sequence(self) -> str:
        """Handle an escape sequence starting at the backslash."""
        start = self._location()
        self._advance()  # Skip backslash
        escape_char = self.source[self.pos]
        self._advance()

        escape_sequences = {
            'n': '\n',
            't': '\t',
            'r': '\r',
            'b': '\b',
            'f': '\f',
            '0': '\0',
            '\\': '\\',
            '"': '"',
            "'": "'",
        }

        if escape_char in escape_sequences:
            return escape_sequences[escape_char]

        widths = {'x': 2, 'u': 4, 'U': 8}
        if escape_char in widths:
            width = widths[escape_char]
            hex_digits = self.source[self.pos:self.pos + width]
            if len(hex_digits) == width and all(c in HEX_DIGITS for c in hex_digits):
                self._advance_by(width)
                code_point = int(hex_digits, 16)
                if code_point > 0x10FFFF or 0xD800 <= code_point <= 0xDFFF:
                    self._report(create_invalid_unicode_error(
                        f"\\{escape_char}{hex_digits}", SourceSpan(start, self._location())
                    ))
                    return '\ufffd'
                return chr(code_point)

        # Invalid escape sequence - keep the escaped character as written
        self._report(create_invalid_escape_error(
            f"\\{escape_char}", SourceSpan(start, self._location())
        ))
        return escape_char

    # ------------------------------------------------------------------
    # Character classes and position tracking
    # ------------------------------------------------------------------

    def _is_identifier_start(self, char: str) -> bool:
        """Check if character can start an identifier."""
        return (char == '_' or char.isalpha() or
                unicodedata.category(char) in ('Lu', 'Ll', 'Lt', 'Lm', 'Lo', 'Nl'))

    def _is_identifier_continue(self, char: str) -> bool:
        """Check if character can continue an identifier."""
        return (char == '_' or char.isalnum() or
                unicodedata.category(char) in ('Lu', 'Ll', 'Lt', 'Lm', 'Lo', 'Nl', 'Mn', 'Mc', 'Nd', 'Pc'))

    def _skip_whitespace_and_comments(self):
        """Skip whitespace and comments."""
        while self.pos < len(self.source):
            if self.source[self.pos].isspace():
                self._advance()
                continue

            # Skip line comments //
            if self.source.startswith('//', self.pos):
                while self.pos < len(self.source) and self.source[self.pos] != '\n':
                    self._advance()
                continue

            # Skip block comments /* */
            if self.source.startswith('/*', self.pos):
                start = self._location()
                self._advance_by(2)
                while self.pos < len(self.source) and not self.source.startswith('*/', self.pos):
                    self._advance()
                if self.pos < len(self.source):
                    self._advance_by(2)  # Skip closing */
                else:
                    self._report(create_unterminated_comment_error(SourceSpan(start, self._location())))
                continue

            break

    def _report(self, error: LexerError):
        self.error_count += 1
        self.diagnostics.add(error.diagnostic)

    def _location(self) -> SourceLocation:
        return SourceLocation(self.filename, self.line, self.column, self.byte_offset)

    def _location_after(self, char: str) -> SourceLocation:
        return SourceLocation(self.filename, self.line, self.column + 1,
                              self.byte_offset + len(char.encode('utf-8')))

    def _advance(self):
        """Advance position by one character, updating line/column/byte offset."""
        if self.pos < len(self.source):
            char = self.source[self.pos]
            if char == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.byte_offset += 1 if char < '\x80' else len(char.encode('utf-8'))
            self.pos += 1

    def _advance_by(self, count: int):
        """Advance position by multiple characters."""
        for _ in range(count):
            self._advance()

    def _peek(self, offset: int = 1) -> str:
        """Peek at character ahead without advancing."""
        peek_pos = self.pos + offset
        if peek_pos < len(self.source):
            return self.source[peek_pos]
        return '\0'

    def has_errors(self) -> bool:
        """Check if this lexer reported any errors."""
        return self.error_count > 0


def tokenize_string(source: str, filename: str = "<string>") -> Tuple[List[Token], DiagnosticCollector]:
    """
    Convenience function to tokenize a source string.

    Returns:
        The token list and the collector holding any lexical errors
    """
    diagnostics = DiagnosticCollector()
    tokens = Lexer(source, filename, diagnostics).tokenize()
    return tokens, diagnostics

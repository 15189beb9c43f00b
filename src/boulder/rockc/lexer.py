"""
Rock Lexer (Tokenizer)
======================

This module converts Rock source text into a stream of tokens for the
parser.

Token Categories
----------------
- Keywords: fn, let, if, else, while, loop, for, in, return, struct, enum,
  impl, self, use, macro, assert, true, false, break, continue
- Identifiers: variable, function, type and constant names
- Integer literals: decimal, binary (0b), hexadecimal (0x), character ('a')
- String literals: "double quoted", bytes passed through unchanged
- Operators: + - * / % == != < > <= >= && || ! & | ^ ~ << >> = += ... ..=
- Punctuation: ( ) { } [ ] , ; : :: . -> @ ?

Number Formats
--------------
| Format      | Prefix | Example   | Value | Width            |
|-------------|--------|-----------|-------|------------------|
| Decimal     | (none) | 123       | 123   | untyped          |
| Binary      | 0b     | 0b0011    | 3     | digits written (4) |
| Hexadecimal | 0x     | 0x1F      | 31    | 4 bits per digit |
| Character   | '...'  | 'A'       | 65    | 8                |

A binary literal keeps its exact written width, leading zeros included:
0b000000001111 is a 12-bit value. The width decides the literal's type and
bounds later bit-index operations.

Comments
--------
Line comments only: // to end of line.

Error Handling
--------------
The lexer never raises from tokenize(). Bad input is recorded on the
errors list and scanning continues: an unknown character is skipped, a
malformed number still yields a NUMBER token (value 0) so the parser does
not report a second error for the same text.

Example Usage
-------------
>>> from boulder.rockc.lexer import RockLexer
>>> lexer = RockLexer('fn start() -> u8 { return 0b101 }', "main.rock")
>>> for token in lexer.tokenize():
...     print(token)
Token(FN, 'fn', 1:1)
Token(IDENTIFIER, 'start', 1:4)
Token(LPAREN, '(', 1:9)
Token(RPAREN, ')', 1:10)
Token(ARROW, '->', 1:12)
Token(IDENTIFIER, 'u8', 1:15)
Token(LBRACE, '{', 1:18)
Token(RETURN, 'return', 1:20)
Token(BINARY, 5, 1:27)
Token(RBRACE, '}', 1:33)
Token(EOF, 1:34)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, List, Optional
import logging
import string

from boulder.errors import SourceLocation
from boulder.rockc.errors import (
    LexicalError,
    InvalidCharacterError,
    MalformedLiteralError,
    UnterminatedStringError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """
    Fine-grained token types.

    Keywords have their own types so the parser can dispatch on them
    directly; TokenKind groups these into the coarse categories.
    """

    # === Structural ===
    EOF = auto()

    # === Identifiers and Literals ===
    IDENTIFIER = auto()
    NUMBER = auto()         # decimal and hexadecimal integers
    BINARY = auto()         # 0b... with exact width
    CHAR_LITERAL = auto()   # 'a'
    STRING = auto()         # "..."

    # === Keywords ===
    FN = auto()
    LET = auto()
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    LOOP = auto()
    FOR = auto()
    IN = auto()
    RETURN = auto()
    STRUCT = auto()
    ENUM = auto()
    IMPL = auto()
    SELF = auto()
    USE = auto()
    MACRO = auto()
    ASSERT = auto()
    TRUE = auto()
    FALSE = auto()
    BREAK = auto()
    CONTINUE = auto()

    # === Arithmetic and Bitwise Operators ===
    PLUS = auto()           # +
    MINUS = auto()          # -
    STAR = auto()           # *
    SLASH = auto()          # /
    PERCENT = auto()        # %
    AMPERSAND = auto()      # & (reference sigil or bitwise AND)
    PIPE = auto()           # |
    CARET = auto()          # ^
    TILDE = auto()          # ~
    LSHIFT = auto()         # <<
    RSHIFT = auto()         # >>

    # === Comparison and Logical Operators ===
    EQ = auto()             # ==
    NE = auto()             # !=
    LT = auto()             # <
    GT = auto()             # >
    LE = auto()             # <=
    GE = auto()             # >=
    AND = auto()            # &&
    OR = auto()             # ||
    NOT = auto()            # !

    # === Assignment Operators ===
    ASSIGN = auto()         # =
    PLUS_ASSIGN = auto()    # +=
    MINUS_ASSIGN = auto()   # -=
    STAR_ASSIGN = auto()    # *=
    SLASH_ASSIGN = auto()   # /=
    PERCENT_ASSIGN = auto() # %=
    AND_ASSIGN = auto()     # &=
    OR_ASSIGN = auto()      # |=
    XOR_ASSIGN = auto()     # ^=
    LSHIFT_ASSIGN = auto()  # <<=
    RSHIFT_ASSIGN = auto()  # >>=

    # === Rock-specific Operators ===
    DOT_DOT = auto()        # ..  exclusive range
    DOT_DOT_EQ = auto()     # ..= inclusive range
    AT = auto()             # @   interrupt call
    QUESTION = auto()       # ?   panic
    ARROW = auto()          # ->  return type
    DOUBLE_COLON = auto()   # ::  path separator

    # === Punctuation ===
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COMMA = auto()
    SEMICOLON = auto()
    COLON = auto()
    DOT = auto()


class TokenKind(Enum):
    """Coarse token categories."""
    IDENTIFIER = "identifier"
    KEYWORD = "keyword"
    INTEGER_LITERAL = "integer literal"
    BINARY_LITERAL = "binary literal"
    STRING_LITERAL = "string literal"
    PUNCTUATION = "punctuation"
    OPERATOR = "operator"
    END = "end of input"


KEYWORDS = {
    "fn": TokenType.FN,
    "let": TokenType.LET,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "loop": TokenType.LOOP,
    "for": TokenType.FOR,
    "in": TokenType.IN,
    "return": TokenType.RETURN,
    "struct": TokenType.STRUCT,
    "enum": TokenType.ENUM,
    "impl": TokenType.IMPL,
    "self": TokenType.SELF,
    "use": TokenType.USE,
    "macro": TokenType.MACRO,
    "assert": TokenType.ASSERT,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
}

# Longest spellings first so that '..=' wins over '..' and '<<=' over '<<'.
OPERATORS = [
    ("<<=", TokenType.LSHIFT_ASSIGN),
    (">>=", TokenType.RSHIFT_ASSIGN),
    ("..=", TokenType.DOT_DOT_EQ),
    ("==", TokenType.EQ),
    ("!=", TokenType.NE),
    ("<=", TokenType.LE),
    (">=", TokenType.GE),
    ("&&", TokenType.AND),
    ("||", TokenType.OR),
    ("<<", TokenType.LSHIFT),
    (">>", TokenType.RSHIFT),
    ("+=", TokenType.PLUS_ASSIGN),
    ("-=", TokenType.MINUS_ASSIGN),
    ("*=", TokenType.STAR_ASSIGN),
    ("/=", TokenType.SLASH_ASSIGN),
    ("%=", TokenType.PERCENT_ASSIGN),
    ("&=", TokenType.AND_ASSIGN),
    ("|=", TokenType.OR_ASSIGN),
    ("^=", TokenType.XOR_ASSIGN),
    ("->", TokenType.ARROW),
    ("::", TokenType.DOUBLE_COLON),
    ("..", TokenType.DOT_DOT),
    ("+", TokenType.PLUS),
    ("-", TokenType.MINUS),
    ("*", TokenType.STAR),
    ("/", TokenType.SLASH),
    ("%", TokenType.PERCENT),
    ("&", TokenType.AMPERSAND),
    ("|", TokenType.PIPE),
    ("^", TokenType.CARET),
    ("~", TokenType.TILDE),
    ("<", TokenType.LT),
    (">", TokenType.GT),
    ("!", TokenType.NOT),
    ("=", TokenType.ASSIGN),
    ("@", TokenType.AT),
    ("?", TokenType.QUESTION),
    ("(", TokenType.LPAREN),
    (")", TokenType.RPAREN),
    ("{", TokenType.LBRACE),
    ("}", TokenType.RBRACE),
    ("[", TokenType.LBRACKET),
    ("]", TokenType.RBRACKET),
    (",", TokenType.COMMA),
    (";", TokenType.SEMICOLON),
    (":", TokenType.COLON),
    (".", TokenType.DOT),
]

_PUNCTUATION = {
    TokenType.LPAREN, TokenType.RPAREN, TokenType.LBRACE, TokenType.RBRACE,
    TokenType.LBRACKET, TokenType.RBRACKET, TokenType.COMMA,
    TokenType.SEMICOLON, TokenType.COLON, TokenType.DOT,
    TokenType.DOUBLE_COLON, TokenType.ARROW,
}

ASSIGNMENT_OPERATORS = {
    TokenType.ASSIGN, TokenType.PLUS_ASSIGN, TokenType.MINUS_ASSIGN,
    TokenType.STAR_ASSIGN, TokenType.SLASH_ASSIGN, TokenType.PERCENT_ASSIGN,
    TokenType.AND_ASSIGN, TokenType.OR_ASSIGN, TokenType.XOR_ASSIGN,
    TokenType.LSHIFT_ASSIGN, TokenType.RSHIFT_ASSIGN,
}


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token of Rock source.

    Attributes:
        type: Fine-grained token type
        value: Decoded value (int for numbers, str for names and strings)
        lexeme: Exact source text of the token
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        offset: Byte offset of the first character (0-indexed)
        filename: Name of the source file
        width: Written bit width of binary, hex and character literals
    """
    type: TokenType
    value: str | int | None
    lexeme: str
    line: int
    column: int
    offset: int
    filename: str
    width: int = 0

    def __repr__(self) -> str:
        if self.value is not None:
            if isinstance(self.value, int):
                return f"Token({self.type.name}, {self.value}, {self.line}:{self.column})"
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column, self.offset)

    @property
    def kind(self) -> TokenKind:
        """Coarse category of this token."""
        if self.type == TokenType.EOF:
            return TokenKind.END
        if self.type == TokenType.IDENTIFIER:
            return TokenKind.IDENTIFIER
        if self.type in KEYWORDS.values():
            return TokenKind.KEYWORD
        if self.type == TokenType.BINARY:
            return TokenKind.BINARY_LITERAL
        if self.type in (TokenType.NUMBER, TokenType.CHAR_LITERAL):
            return TokenKind.INTEGER_LITERAL
        if self.type == TokenType.STRING:
            return TokenKind.STRING_LITERAL
        if self.type in _PUNCTUATION:
            return TokenKind.PUNCTUATION
        return TokenKind.OPERATOR

    def is_assignment_operator(self) -> bool:
        return self.type in ASSIGNMENT_OPERATORS


# =============================================================================
# Lexer Implementation
# =============================================================================

class RockLexer:
    """
    Tokenizes Rock source code.

    Usage:
        lexer = RockLexer(source_text, filename)
        tokens = list(lexer.tokenize())
        if lexer.errors:
            ...

    tokenize() may be called any number of times; each call restarts at
    the beginning of the buffer and clears the errors of the previous run.

    Attributes:
        source: The source code being tokenized
        filename: Name of the source file (for error reporting)
        errors: Lexical errors found by the most recent tokenize() run
    """

    IDENT_START = string.ascii_letters + "_"
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    # Character literal escapes (string literals are passed through as-is)
    CHAR_ESCAPES = {
        "n": 10,
        "r": 13,
        "t": 9,
        "0": 0,
        "\\": 92,
        "'": 39,
    }

    def __init__(self, source: str, filename: str = "<input>"):
        """
        Initialize the lexer with source code.

        Args:
            source: The Rock source code to tokenize
            filename: Name of the source file (for error messages)
        """
        self.source = source
        self.filename = filename
        self.errors: List[LexicalError] = []
        self._reset()

    def _reset(self) -> None:
        self._pos = 0
        self._byte_pos = 0
        self._line = 1
        self._column = 1
        self._line_start_pos = 0

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source code.

        Yields:
            Token objects for each lexical element, ending with EOF
        """
        self._reset()
        self.errors = []
        count = 0

        while True:
            self._skip_whitespace_and_comments()
            if self._at_end():
                break
            token = self._scan_token()
            if token is not None:
                count += 1
                yield token

        logger.debug(
            f"{self.filename}: {count} tokens, {len(self.errors)} lexical errors"
        )
        yield self._make_token(TokenType.EOF, None, "", self._line, self._column, self._byte_pos)

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """Look at the character at position + offset ('' past the end)."""
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume and return the current character, tracking line/column."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1
        self._byte_pos += len(char.encode("utf-8"))

        if char == "\n":
            self._line += 1
            self._column = 1
            self._line_start_pos = self._pos
        else:
            self._column += 1

        return char

    def _match(self, expected: str) -> bool:
        """Consume the next characters if they spell expected."""
        if self.source.startswith(expected, self._pos):
            for _ in expected:
                self._advance()
            return True
        return False

    # =========================================================================
    # Token and Error Creation
    # =========================================================================

    def _make_token(
        self,
        token_type: TokenType,
        value: str | int | None,
        lexeme: str,
        line: int,
        column: int,
        offset: int,
        width: int = 0,
    ) -> Token:
        return Token(
            type=token_type,
            value=value,
            lexeme=lexeme,
            line=line,
            column=column,
            offset=offset,
            filename=self.filename,
            width=width,
        )

    def _location(self, line: int, column: int, offset: int) -> SourceLocation:
        return SourceLocation(self.filename, line, column, offset)

    def _current_line(self) -> str:
        """Text of the line being scanned, for error context."""
        line_end = self.source.find("\n", self._line_start_pos)
        if line_end == -1:
            line_end = len(self.source)
        return self.source[self._line_start_pos:line_end]

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace_and_comments(self) -> None:
        while not self._at_end():
            char = self._peek()

            if char in " \t\n\r":
                self._advance()
                continue

            if char == "/" and self._peek(1) == "/":
                while not self._at_end() and self._peek() != "\n":
                    self._advance()
                continue

            break

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> Optional[Token]:
        """Scan the next token, or record an error and return None."""
        line, column, offset = self._line, self._column, self._byte_pos
        char = self._peek()

        if char in self.IDENT_START:
            return self._scan_identifier(line, column, offset)

        if char.isdigit():
            return self._scan_number(line, column, offset)

        if char == '"':
            return self._scan_string(line, column, offset)

        if char == "'":
            return self._scan_char(line, column, offset)

        for spelling, token_type in OPERATORS:
            if self._match(spelling):
                return self._make_token(token_type, spelling, spelling, line, column, offset)

        # Unknown character: report it and skip exactly one character
        source_line = self._current_line()
        bad = self._advance()
        self.errors.append(InvalidCharacterError(
            bad, self._location(line, column, offset), source_line,
        ))
        return None

    def _scan_identifier(self, line: int, column: int, offset: int) -> Token:
        """Scan an identifier or keyword."""
        start = self._pos
        while self._peek() and self._peek() in self.IDENT_CHARS:
            self._advance()
        name = self.source[start:self._pos]

        token_type = KEYWORDS.get(name, TokenType.IDENTIFIER)
        return self._make_token(token_type, name, name, line, column, offset)

    def _scan_number(self, line: int, column: int, offset: int) -> Token:
        """
        Scan a decimal, binary or hexadecimal literal.

        The whole alphanumeric run is consumed so that text like '12ab'
        or '0b102' produces one error rather than a number followed by a
        stray identifier.
        """
        start = self._pos
        source_line = self._current_line()

        while self._peek() and self._peek() in self.IDENT_CHARS:
            self._advance()
        text = self.source[start:self._pos]
        location = self._location(line, column, offset)

        def malformed(reason: str) -> Token:
            self.errors.append(MalformedLiteralError(text, reason, location, source_line))
            return self._make_token(TokenType.NUMBER, 0, text, line, column, offset)

        prefix = text[:2].lower()
        if prefix == "0b":
            digits = text[2:]
            if not digits:
                return malformed("expected binary digits after '0b'")
            if any(d not in "01" for d in digits):
                return malformed("binary literals may only contain 0 and 1")
            return self._make_token(
                TokenType.BINARY, int(digits, 2), text, line, column, offset, width=len(digits),
            )

        if prefix == "0x":
            digits = text[2:]
            if not digits:
                return malformed("expected hexadecimal digits after '0x'")
            if any(d not in string.hexdigits for d in digits):
                return malformed("invalid hexadecimal digit")
            return self._make_token(
                TokenType.NUMBER, int(digits, 16), text, line, column, offset, width=4 * len(digits),
            )

        if not text.isdigit():
            return malformed("invalid digit in decimal literal")
        return self._make_token(TokenType.NUMBER, int(text), text, line, column, offset)

    def _scan_string(self, line: int, column: int, offset: int) -> Token:
        """
        Scan a string literal.

        The bytes between the quotes are kept verbatim. Strings end at the
        closing quote and may not span lines.
        """
        source_line = self._current_line()
        self._advance()  # opening quote
        start = self._pos

        while not self._at_end() and self._peek() not in ('"', "\n"):
            self._advance()

        content = self.source[start:self._pos]
        if self._peek() != '"':
            self.errors.append(UnterminatedStringError(
                '"' + content, self._location(line, column, offset), source_line,
            ))
            return self._make_token(TokenType.STRING, content, '"' + content, line, column, offset)

        self._advance()  # closing quote
        return self._make_token(
            TokenType.STRING, content, f'"{content}"', line, column, offset,
        )

    def _scan_char(self, line: int, column: int, offset: int) -> Token:
        """Scan a character literal such as 'A' or '\\n'."""
        source_line = self._current_line()
        location = self._location(line, column, offset)
        start = self._pos
        self._advance()  # opening quote

        value: Optional[int] = None
        if self._peek() == "\\":
            self._advance()
            escape = self._advance()
            value = self.CHAR_ESCAPES.get(escape)
        elif self._peek() not in ("'", "\n", ""):
            encoded = self._advance().encode("utf-8")
            if len(encoded) == 1:
                value = encoded[0]

        if self._peek() != "'":
            while not self._at_end() and self._peek() not in ("'", "\n"):
                self._advance()
            self._match("'")
            text = self.source[start:self._pos]
            self.errors.append(MalformedLiteralError(
                text, "character literals hold exactly one byte", location, source_line,
            ))
            return self._make_token(TokenType.CHAR_LITERAL, 0, text, line, column, offset, width=8)

        self._advance()  # closing quote
        text = self.source[start:self._pos]
        if value is None:
            self.errors.append(MalformedLiteralError(
                text, "unknown escape or non-ASCII character", location, source_line,
            ))
            value = 0
        return self._make_token(TokenType.CHAR_LITERAL, value, text, line, column, offset, width=8)


def tokenize(source: str, filename: str = "<input>") -> List[Token]:
    """
    Tokenize a whole buffer.

    Raises:
        LexicalError: The first lexical error, if any occurred
    """
    lexer = RockLexer(source, filename)
    tokens = list(lexer.tokenize())
    if lexer.errors:
        raise lexer.errors[0]
    return tokens

"""
Scanner for LightPath build descriptors

Turns descriptor text into a stream of lark Tokens. The scanner keeps its
own cursor (position, line, column) so independent parses never share
state. LarkDescriptorLexer plugs the same scanner into a Lark LALR parser.
"""

import logging
from typing import Iterator, Optional

from lark import Token
from lark.lexer import Lexer

from lightpath.errors import DescriptorSyntaxError

logger = logging.getLogger(__name__)

MAX_TOKEN_LENGTH = 256

IDENTIFIER = "IDENTIFIER"
STRING = "STRING"
LBRACE = "LBRACE"
RBRACE = "RBRACE"
EQUALS = "EQUALS"
EOF = "EOF"
UNKNOWN = "UNKNOWN"

_SINGLE_CHAR_TOKENS = {"{": LBRACE, "}": RBRACE, "=": EQUALS}
_WHITESPACE = " \t\r\n"


def _is_identifier_start(char: str) -> bool:
    return char == "_" or ("a" <= char <= "z") or ("A" <= char <= "Z")


def _is_identifier_char(char: str) -> bool:
    return _is_identifier_start(char) or ("0" <= char <= "9")


class DescriptorScanner:
    """Hand-written scanner over a single descriptor text."""

    def __init__(self, text: str, max_token_length: int = MAX_TOKEN_LENGTH):
        self._text = text
        self._pos = 0
        self._line = 1
        self._column = 1
        self._limit = max_token_length - 1

    @property
    def position(self):
        """Current (offset, line, column) of the cursor."""
        return self._pos, self._line, self._column

    def _peek_char(self, offset: int = 0) -> str:
        index = self._pos + offset
        if index >= len(self._text):
            return ""
        return self._text[index]

    def _next_char(self) -> str:
        if self._pos >= len(self._text):
            return ""
        char = self._text[self._pos]
        self._pos += 1
        if char == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1
        return char

    def _skip_trivia(self):
        """Skip any run of whitespace and // line comments."""
        while True:
            char = self._peek_char()
            if char and char in _WHITESPACE:
                self._next_char()
            elif char == "/" and self._peek_char(1) == "/":
                while self._peek_char() not in ("\n", ""):
                    self._next_char()
            else:
                return

    def _make_token(self, kind, value, start_pos, line, column) -> Token:
        return Token(
            kind,
            value,
            start_pos=start_pos,
            line=line,
            column=column,
            end_line=self._line,
            end_column=self._column,
            end_pos=self._pos,
        )

    def _log_split(self, kind: str, line: int, column: int):
        logger.debug(
            "%s at line %d, column %d reached %d characters, the rest scans as new tokens",
            kind,
            line,
            column,
            self._limit,
        )

    def next_token(self) -> Token:
        """
        Scan and return the next token.

        Once the input is exhausted every call returns an EOF token.
        """
        self._skip_trivia()
        start_pos, line, column = self.position
        char = self._peek_char()

        if not char:
            return self._make_token(EOF, "", start_pos, line, column)

        if char in _SINGLE_CHAR_TOKENS:
            self._next_char()
            return self._make_token(
                _SINGLE_CHAR_TOKENS[char], char, start_pos, line, column
            )

        if char == '"':
            self._next_char()
            chars = []
            while self._peek_char() not in ('"', "") and len(chars) < self._limit:
                chars.append(self._next_char())
            # An unterminated literal simply runs to the end of the input.
            if self._peek_char() == '"':
                self._next_char()
            elif self._peek_char():
                self._log_split(STRING, line, column)
            return self._make_token(STRING, "".join(chars), start_pos, line, column)

        if _is_identifier_start(char):
            chars = []
            while _is_identifier_char(self._peek_char()) and len(chars) < self._limit:
                chars.append(self._next_char())
            if _is_identifier_char(self._peek_char()):
                self._log_split(IDENTIFIER, line, column)
            return self._make_token(IDENTIFIER, "".join(chars), start_pos, line, column)

        self._next_char()
        return self._make_token(UNKNOWN, char, start_pos, line, column)

    def peek(self) -> Token:
        """Return the next token without consuming it."""
        saved = self.position
        token = self.next_token()
        self._pos, self._line, self._column = saved
        return token

    def __iter__(self) -> Iterator[Token]:
        """Yield every remaining token, ending with the EOF token."""
        while True:
            token = self.next_token()
            yield token
            if token.type == EOF:
                return


def tokenize(text: str) -> Iterator[Token]:
    """Lazily tokenize descriptor text with a fresh scanner."""
    return iter(DescriptorScanner(text))


class LarkDescriptorLexer(Lexer):
    """Custom Lark lexer backed by DescriptorScanner.

    Lark appends its own end marker, so the EOF token is not forwarded.
    Unrecognized characters are reported here since the grammar has no
    terminal for them.
    """

    def __init__(self, lexer_conf: Optional[object] = None):
        self.lexer_conf = lexer_conf

    def lex(self, data: str) -> Iterator[Token]:
        for token in DescriptorScanner(data):
            if token.type == EOF:
                return
            if token.type == UNKNOWN:
                raise DescriptorSyntaxError(
                    f"Unexpected character {token.value!r}", token.line, token.column
                )
            yield token

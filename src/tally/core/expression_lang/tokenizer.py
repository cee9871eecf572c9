"""
Tokenizer for the tally calculator language.

Converts an expression string into a sequence of typed tokens.
"""

from __future__ import annotations

import re
from datetime import date
from enum import StrEnum, auto

from tally.core.errors import ParseError


class TokenKind(StrEnum):
    """Token types for the calculator language."""

    # Literals
    NUMBER = auto()
    HEX = auto()
    BINARY = auto()
    STRING = auto()
    DATE = auto()

    # Identifiers and keywords
    IDENT = auto()
    TRUE = auto()
    FALSE = auto()
    NULL = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    IS = auto()
    IF = auto()
    ELIF = auto()
    ELSE = auto()
    TO = auto()
    IN = auto()
    OF = auto()
    MOD = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    CARET = auto()
    EQ = auto()
    NE = auto()
    LT = auto()
    GT = auto()
    LE = auto()
    GE = auto()
    ASSIGN = auto()
    PLUS_ASSIGN = auto()
    MINUS_ASSIGN = auto()
    STAR_ASSIGN = auto()
    SLASH_ASSIGN = auto()
    FAT_ARROW = auto()  # =>
    AMP = auto()
    AMP_AMP = auto()
    PIPE = auto()
    PIPE_PIPE = auto()
    SHL = auto()
    SHR = auto()
    QUESTION = auto()
    COALESCE = auto()  # ??
    BANG = auto()
    AT = auto()

    # Punctuation
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LBRACE = auto()
    RBRACE = auto()
    COMMA = auto()
    DOT = auto()
    COLON = auto()

    # End of input
    EOF = auto()


class Token:
    """A single token from the tokenizer."""

    __slots__ = ("kind", "value", "pos")

    def __init__(self, kind: TokenKind, value: str, pos: int) -> None:
        self.kind = kind
        self.value = value
        self.pos = pos

    def __repr__(self) -> str:
        return f"Token({self.kind}, {self.value!r}, pos={self.pos})"


_KEYWORDS: dict[str, TokenKind] = {
    "true": TokenKind.TRUE,
    "false": TokenKind.FALSE,
    "null": TokenKind.NULL,
    "and": TokenKind.AND,
    "or": TokenKind.OR,
    "not": TokenKind.NOT,
    "is": TokenKind.IS,
    "if": TokenKind.IF,
    "elif": TokenKind.ELIF,
    "else": TokenKind.ELSE,
    "to": TokenKind.TO,
    "in": TokenKind.IN,
    "of": TokenKind.OF,
    "mod": TokenKind.MOD,
}

_TWO_CHAR: dict[str, TokenKind] = {
    "==": TokenKind.EQ,
    "!=": TokenKind.NE,
    "<=": TokenKind.LE,
    ">=": TokenKind.GE,
    "=>": TokenKind.FAT_ARROW,
    "<<": TokenKind.SHL,
    ">>": TokenKind.SHR,
    "&&": TokenKind.AMP_AMP,
    "||": TokenKind.PIPE_PIPE,
    "??": TokenKind.COALESCE,
    "+=": TokenKind.PLUS_ASSIGN,
    "-=": TokenKind.MINUS_ASSIGN,
    "*=": TokenKind.STAR_ASSIGN,
    "/=": TokenKind.SLASH_ASSIGN,
}

_SINGLE_CHAR: dict[str, TokenKind] = {
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "*": TokenKind.STAR,
    "×": TokenKind.STAR,
    "/": TokenKind.SLASH,
    "÷": TokenKind.SLASH,
    "%": TokenKind.PERCENT,
    "^": TokenKind.CARET,
    "<": TokenKind.LT,
    ">": TokenKind.GT,
    "=": TokenKind.ASSIGN,
    "&": TokenKind.AMP,
    "|": TokenKind.PIPE,
    "?": TokenKind.QUESTION,
    "!": TokenKind.BANG,
    "@": TokenKind.AT,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    ",": TokenKind.COMMA,
    ".": TokenKind.DOT,
    ":": TokenKind.COLON,
}

_HEX_RE = re.compile(r"0[xX][0-9a-fA-F][0-9a-fA-F_]*")
_BINARY_RE = re.compile(r"0[bB][01][01_]*")
# Number pattern: digits with optional _ separators, fraction, and exponent
_NUMBER_RE = re.compile(r"\d[\d_]*(\.\d+)?([eE][+-]?\d+)?")
# Calendar date: DD.MM.YYYY or DD/MM/YYYY with one separator used throughout
_DATE_RE = re.compile(r"(\d{1,2})([./])(\d{1,2})\2(\d{4})(?![\d.])")
# Identifier: a letter (any script, so μm and Ω work) or °, then word characters
_IDENT_RE = re.compile(r"(?:°[A-Za-z]?|[^\W\d])\w*")


def tokenize(source: str) -> list[Token]:
    """Tokenize an expression string into a list of tokens.

    Raises:
        ParseError: On an unexpected character or unterminated string.
    """
    tokens: list[Token] = []
    i = 0
    n = len(source)

    while i < n:
        c = source[i]

        # Skip whitespace
        if c in " \t\n\r":
            i += 1
            continue

        # Line comments
        if source.startswith("//", i):
            end = source.find("\n", i)
            i = n if end == -1 else end
            continue

        # String literals
        if c in ('"', "'"):
            i, tok = _read_string(source, i)
            tokens.append(tok)
            continue

        # Numbers: hex and binary before decimal, so 0x10 is not 0 then x10
        if c.isdigit():
            m = _HEX_RE.match(source, i)
            if m:
                tokens.append(Token(TokenKind.HEX, m.group(0).replace("_", ""), i))
                i = m.end()
                continue
            m = _BINARY_RE.match(source, i)
            if m:
                tokens.append(Token(TokenKind.BINARY, m.group(0).replace("_", ""), i))
                i = m.end()
                continue
            m = _DATE_RE.match(source, i)
            if m and _is_calendar_date(m):
                tokens.append(Token(TokenKind.DATE, m.group(0), i))
                i = m.end()
                continue
            m = _NUMBER_RE.match(source, i)
            assert m is not None
            tokens.append(Token(TokenKind.NUMBER, m.group(0).replace("_", ""), i))
            i = m.end()
            continue

        # Identifiers and keywords
        m = _IDENT_RE.match(source, i)
        if m:
            word = m.group(0)
            kind = _KEYWORDS.get(word, TokenKind.IDENT)
            tokens.append(Token(kind, word, i))
            i = m.end()
            continue

        two = source[i : i + 2]
        if two in _TWO_CHAR:
            tokens.append(Token(_TWO_CHAR[two], two, i))
            i += 2
            continue

        if c in _SINGLE_CHAR:
            tokens.append(Token(_SINGLE_CHAR[c], c, i))
            i += 1
            continue

        raise ParseError(f"Unexpected character: {c!r}", i)

    tokens.append(Token(TokenKind.EOF, "", n))
    return tokens


def _is_calendar_date(m: re.Match[str]) -> bool:
    """Whether a date-shaped match names a real day between 1900 and 2100."""
    day, month, year = int(m.group(1)), int(m.group(3)), int(m.group(4))
    if not 1900 <= year <= 2100:
        return False
    try:
        date(year, month, day)
    except ValueError:
        return False
    return True


def _read_string(source: str, start: int) -> tuple[int, Token]:
    """Read a quoted string literal."""
    quote = source[start]
    i = start + 1
    n = len(source)
    chars: list[str] = []
    escapes = {"n": "\n", "t": "\t"}

    while i < n:
        c = source[i]
        if c == "\\":
            if i + 1 < n:
                nxt = source[i + 1]
                chars.append(escapes.get(nxt, nxt))
                i += 2
                continue
            raise ParseError("Unterminated escape sequence", i)
        if c == quote:
            return i + 1, Token(TokenKind.STRING, "".join(chars), start)
        chars.append(c)
        i += 1

    raise ParseError("Unterminated string literal", start)

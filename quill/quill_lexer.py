"""
Turns Quill source text into a flat list of typed tokens.

Recognizers are tried in the order they are listed and the first one that
matches wins, so ordering encodes priority: two-character operators come
before their one-character prefixes, and the word-form unary operator and
the special number spellings come before the general identifier pattern.
"""
import re
from enum import Enum
from typing import List


from quill.quill_datatypes import LexError


class TokenKind(Enum):
    IDENTIFIER = "identifier"
    NUMBER = "number"
    STRING = "string"
    DECLARATION = "declaration"
    UNARY = "unary"
    ADDITIVE = "additive"
    MULTIPLICATIVE = "multiplicative"
    MODULO = "modulo"
    EXPONENTIATION = "exponentiation"
    COMPARISON = "comparison"
    LOGICAL = "logical"
    TERNARY_OPEN = "ternary-open"
    TERNARY_CONTINUE = "ternary-continue"
    LOOP = "loop"
    IF = "if"
    ELSE = "else"
    FUNC = "func"
    ARROW = "arrow"
    CALL = "call"
    ASSIGNMENT = "assignment"
    SEPARATOR = "separator"
    OPEN_LIST = "open-list"
    CLOSE_LIST = "close-list"
    OPEN_PAREN = "open-paren"
    CLOSE_PAREN = "close-paren"
    OPEN_CLOSURE = "open-closure"
    CLOSE_CLOSURE = "close-closure"


class Token:
    """A classified lexical unit: its kind and the literal source text."""
    __slots__ = ("kind", "text")

    def __init__(self, kind: TokenKind, text: str):
        self.kind = kind
        self.text = text

    def __repr__(self) -> str:
        return f"Token({self.kind.value}, {self.text!r})"

    def __eq__(self, other):
        return isinstance(other, Token) and self.kind == other.kind and self.text == other.text

    def __hash__(self):
        return hash((self.kind, self.text))


_WORD_END = r"(?![A-Za-z0-9_])"

# Ordered recognizers. None marks text that is skipped.
TOKEN_SPEC = [
    (None,                        r"\s+"),
    (TokenKind.NUMBER,            rf"(?:Infinity|NaN){_WORD_END}|\d+(?:\.\d+)?|\.\d+"),
    (TokenKind.STRING,            r"\"[^\"\n]*\"|'[^'\n]*'"),
    (TokenKind.ARROW,             r"=>"),
    (TokenKind.COMPARISON,        r">=|<=|==|!=|>|<"),
    (TokenKind.LOGICAL,           r"&&|\|\||\^\^"),
    (TokenKind.UNARY,             rf"!|\#|not{_WORD_END}"),
    (TokenKind.ADDITIVE,          r"[+\-]"),
    (TokenKind.MULTIPLICATIVE,    r"[*/]"),
    (TokenKind.MODULO,            r"%"),
    (TokenKind.EXPONENTIATION,    r"\^"),
    (TokenKind.CALL,              r"@"),
    (TokenKind.ASSIGNMENT,        r"="),
    (TokenKind.SEPARATOR,         r"[,;]"),
    (TokenKind.TERNARY_OPEN,      r"\?"),
    (TokenKind.TERNARY_CONTINUE,  r":"),
    (TokenKind.OPEN_LIST,         r"\["),
    (TokenKind.CLOSE_LIST,        r"\]"),
    (TokenKind.OPEN_PAREN,        r"\("),
    (TokenKind.CLOSE_PAREN,       r"\)"),
    (TokenKind.OPEN_CLOSURE,      r"\{"),
    (TokenKind.CLOSE_CLOSURE,     r"\}"),
    (TokenKind.IDENTIFIER,        r"[A-Za-z_][A-Za-z0-9_]*"),
]

RESERVED = {
    "func": TokenKind.FUNC,
    "for": TokenKind.LOOP,
    "while": TokenKind.LOOP,
    "if": TokenKind.IF,
    "else": TokenKind.ELSE,
    "mut": TokenKind.DECLARATION,
    "const": TokenKind.DECLARATION,
}


def _compile(spec) -> re.Pattern:
    # Python's alternation is ordered, so the combined pattern keeps
    # first-match semantics. The trailing group catches anything else.
    parts = [f"(?P<t{i}>{pattern})" for i, (_, pattern) in enumerate(spec)]
    parts.append(r"(?P<mismatch>.)")
    return re.compile("|".join(parts), re.DOTALL)


_TOKEN_RE = _compile(TOKEN_SPEC)


def _context(source: str, offset: int, radius: int = 10) -> str:
    start = max(0, offset - radius)
    end = min(len(source), offset + radius + 1)
    return source[start:end].replace("\n", " ")


def tokenize(source: str) -> List[Token]:
    """Converts source text into an ordered list of Tokens.

    Raises LexError on the first character no recognizer accepts.
    """
    tokens: List[Token] = []
    line = 1
    line_start = 0

    for m in _TOKEN_RE.finditer(source):
        group = m.lastgroup
        text = m.group()
        offset = m.start()

        if group == "mismatch":
            col = offset - line_start + 1
            raise LexError(
                f"Unexpected character {text!r} at line {line}, col {col} near {_context(source, offset)!r}",
                offset=offset, line=line, col=col,
            )

        kind = TOKEN_SPEC[int(group[1:])][0]
        if kind is None:
            newlines = text.count("\n")
            if newlines:
                line += newlines
                line_start = offset + text.rfind("\n") + 1
            continue

        if kind is TokenKind.IDENTIFIER:
            kind = RESERVED.get(text, kind)
        tokens.append(Token(kind, text))

    return tokens

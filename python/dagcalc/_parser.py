"""Formula front end: regex tokenizer + recursive descent over term/operator chains.

The grammar only groups tokens; all operator nesting is delegated to the
:class:`~dagcalc._resolver.Resolver`::

    Expr  -> OP* Term (OP+ Term)*
    Term  -> Literal | IDENT | IDENT "(" [Expr ("," Expr)*] ")" | "(" Expr ")"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from dagcalc._errors import ParseError
from dagcalc._resolver import DEFAULT_OPERATORS, OpChain, OperatorTable, Resolver

if TYPE_CHECKING:
    from dagcalc._expr import Expr
    from dagcalc._graph import Graph

# ---------------------------------------------------------------------------
# Token patterns
# ---------------------------------------------------------------------------

_OP_CHARS = r"\-=/+!*%<>&|^?~"

_WHITESPACE_RE = re.compile(r"[ \t\n\f\r\v]+")
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)

# r"..."  r#"..."#  r##"..."##  (opener only; body scanned for the closer)
_RAW_STRING_RE = re.compile(r'r(#*)"')
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d*)?")
_STRING_RE = re.compile(r'"(?:[^"\\\n]|\\.|\\\n)*"|\'(?:[^\'\\\n]|\\.|\\\n)*\'')
_OP_RE = re.compile(rf"[{_OP_CHARS}]+")
_IDENT_RE = re.compile(rf"[^{_OP_CHARS}%!@&\[\]{{}}()<>,;:\"'\\. \t\f\r\n\v]+")

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\n": ""}

# Token kinds
NUMBER = "NUMBER"
STRING = "STRING"
BOOLEAN = "BOOLEAN"
IDENT = "IDENT"
OP = "OP"
OPEN_PAREN = "("
CLOSE_PAREN = ")"
COMMA = ","
EOF = "EOF"

_PUNCTUATION = {"(": OPEN_PAREN, ")": CLOSE_PAREN, ",": COMMA}

# after these, a "-" glued to digits starts a negative number literal
_PREFIX_CONTEXT = {None, OP, OPEN_PAREN, COMMA}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int
    value: Any = None  # decoded literal payload


@dataclass(frozen=True)
class LexError:
    """An unrecognised character skipped during tokenizing."""

    position: int
    char: str

    def __str__(self) -> str:
        return f"Unexpected character {self.char!r} at offset {self.position}"


def _unescape(body: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _number(text: str) -> int | float:
    return float(text) if "." in text else int(text)


def tokenize(source: str, errors: list[LexError] | None = None) -> list[Token]:
    """Split *source* into tokens, ending with an EOF token.

    Unrecognised characters are appended to *errors* (when given) and
    skipped; without an *errors* list they raise ParseError.
    """
    tokens: list[Token] = []
    pos = 0
    length = len(source)
    prev_kind: str | None = None

    while pos < length:
        skip = (
            _WHITESPACE_RE.match(source, pos)
            or _LINE_COMMENT_RE.match(source, pos)
            or _BLOCK_COMMENT_RE.match(source, pos)
        )
        if skip:
            pos = skip.end()
            continue

        ch = source[pos]
        if ch in _PUNCTUATION:
            tokens.append(Token(_PUNCTUATION[ch], ch, pos))
            prev_kind = _PUNCTUATION[ch]
            pos += 1
            continue

        # Longest match wins; ties go to the earlier candidate
        candidates: list[tuple[str, re.Match[str]]] = []
        m = _RAW_STRING_RE.match(source, pos)
        if m:
            candidates.append(("RAW", m))
        m = _NUMBER_RE.match(source, pos)
        if m and (not m.group().startswith("-") or prev_kind in _PREFIX_CONTEXT):
            candidates.append((NUMBER, m))
        m = _STRING_RE.match(source, pos)
        if m:
            candidates.append((STRING, m))
        m = _OP_RE.match(source, pos)
        if m:
            candidates.append((OP, m))
        m = _IDENT_RE.match(source, pos)
        if m:
            candidates.append((IDENT, m))

        if not candidates:
            err = LexError(pos, ch)
            if errors is None:
                raise ParseError(f"Unexpected character {ch!r}", pos)
            errors.append(err)
            pos += 1
            continue

        kind, m = max(candidates, key=lambda c: len(c[1].group()))
        text = m.group()

        if kind == "RAW":
            closer = '"' + m.group(1)
            end = source.find(closer, m.end())
            if end < 0:
                raise ParseError(
                    f"Unterminated raw string literal, expected {closer!r}", pos,
                )
            body = source[m.end():end]
            tokens.append(Token(STRING, source[pos:end + len(closer)], pos, body))
            pos = end + len(closer)
            prev_kind = STRING
            continue

        if kind == NUMBER:
            token = Token(NUMBER, text, pos, _number(text))
        elif kind == STRING:
            token = Token(STRING, text, pos, _unescape(text[1:-1]))
        elif kind == IDENT and text in ("true", "false"):
            token = Token(BOOLEAN, text, pos, text == "true")
        else:
            token = Token(kind, text, pos)
        tokens.append(token)
        prev_kind = token.kind
        pos = m.end()

    tokens.append(Token(EOF, "", length))
    return tokens


# ---------------------------------------------------------------------------
# FormulaParser
# ---------------------------------------------------------------------------


class FormulaParser:
    """Parses formula text into expressions owned by *graph*.

    ``errors`` holds the lexical errors recovered from during the most
    recent :meth:`parse` call; grammar and resolver errors raise.
    """

    def __init__(self, graph: Graph, operators: OperatorTable | None = None) -> None:
        self.graph = graph
        self.operators = operators if operators is not None else DEFAULT_OPERATORS.copy()
        self.resolver = Resolver(graph, self.operators)
        self.errors: list[LexError] = []
        self._tokens: list[Token] = []
        self._pos = 0

    def parse(self, source: str) -> Expr:
        """Parse a complete formula into a single expression."""
        self.errors = []
        self._tokens = tokenize(source, self.errors)
        self._pos = 0
        expr = self._expr()
        tok = self._peek()
        if tok.kind != EOF:
            raise ParseError(f"Unexpected {tok.text!r}", tok.position)
        return expr

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.kind != EOF:
            self._pos += 1
        return tok

    def _expect(self, kind: str) -> Token:
        tok = self._peek()
        if tok.kind != kind:
            found = tok.text or "end of input"
            raise ParseError(f"Expected {kind!r}, found {found!r}", tok.position)
        return self._advance()

    # ------------------------------------------------------------------
    # Grammar
    # ------------------------------------------------------------------

    def _expr(self) -> Expr:
        chain = OpChain()
        while True:
            while self._peek().kind == OP:
                chain.push(self._advance().text)
            chain.push(self._term())
            if self._peek().kind != OP:
                break
        return self.resolver.resolve(chain)

    def _term(self) -> Expr:
        tok = self._peek()
        if tok.kind == NUMBER:
            self._advance()
            return self.graph.new_num(tok.value)
        if tok.kind == STRING:
            self._advance()
            return self.graph.new_str(tok.value)
        if tok.kind == BOOLEAN:
            self._advance()
            return self.graph.new_bool(tok.value)
        if tok.kind == OPEN_PAREN:
            self._advance()
            inner = self._expr()
            self._expect(CLOSE_PAREN)
            return inner
        if tok.kind == IDENT:
            self._advance()
            if self._peek().kind != OPEN_PAREN:
                return self.graph.new_var_ref(tok.text)
            self._advance()
            return self.graph.new_func(tok.text, self._args())
        found = tok.text or "end of input"
        raise ParseError(f"Expected a term, found {found!r}", tok.position)

    def _args(self) -> list[Expr]:
        """Comma-separated call arguments after "(", each resolved on its own."""
        args: list[Expr] = []
        if self._peek().kind == CLOSE_PAREN:
            self._advance()
            return args
        args.append(self._expr())
        while self._peek().kind == COMMA:
            self._advance()
            args.append(self._expr())
        self._expect(CLOSE_PAREN)
        return args

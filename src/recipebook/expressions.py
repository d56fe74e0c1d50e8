"""Expression language used by variable values, parameter defaults and placeholders.

An expression is a string literal, a reference to a variable or parameter, a
function call, or a ``+`` concatenation of those. Expressions are parsed once,
when the recipe file is loaded, into small immutable trees. Evaluation walks
the tree with a lookup callable supplied by the caller.
"""

from __future__ import annotations

import os
import platform
import re
import shlex
from dataclasses import dataclass
from typing import Callable, Iterator, Union

__all__ = [
    "Call",
    "Concatenation",
    "EvaluationError",
    "Expression",
    "ExpressionError",
    "FUNCTIONS",
    "Reference",
    "StringLiteral",
    "Token",
    "TokenStream",
    "evaluate",
    "find_unquoted",
    "parse_expression",
    "parse_string_list",
    "references",
    "tokenize",
]


class ExpressionError(ValueError):
    """Raised when expression text is malformed."""

    def __init__(self, message: str, text: str = "", position: int | None = None):
        self.text = text
        self.position = position
        if position is not None and text:
            message = f"{message} (at column {position + 1} of '{text}')"
        super().__init__(message)


class EvaluationError(Exception):
    """Raised when a well-formed expression cannot be evaluated."""

    pass


@dataclass(frozen=True)
class StringLiteral:
    value: str


@dataclass(frozen=True)
class Reference:
    name: str


@dataclass(frozen=True)
class Concatenation:
    lhs: "Expression"
    rhs: "Expression"


@dataclass(frozen=True)
class Call:
    name: str
    arguments: tuple["Expression", ...]


Expression = Union[StringLiteral, Reference, Concatenation, Call]


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


# Groups: whitespace, raw 'string', cooked "string", :=, identifier, punctuation
_TOKEN_PATTERN = re.compile(
    r"""
      (?P<ws>[ \t]+)
    | (?P<raw>'[^']*')
    | (?P<cooked>"(?:[^"\\]|\\.)*")
    | (?P<walrus>:=)
    | (?P<name>[A-Za-z_][A-Za-z0-9_-]*)
    | (?P<punct>[+*$=(),:\[\]])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}


def tokenize(text: str) -> list[Token]:
    """Split text into tokens.

    Raises:
        ExpressionError: On unterminated strings or unexpected characters
    """
    tokens = []
    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            if text[position] in "'\"":
                raise ExpressionError("Unterminated string", text, position)
            raise ExpressionError(
                f"Unexpected character '{text[position]}'", text, position
            )
        kind = match.lastgroup
        if kind != "ws":
            value = match.group(kind)
            tokens.append(Token(value if kind == "punct" else kind, value, position))
        position = match.end()
    return tokens


def find_unquoted(text: str, terminator: str, start: int = 0) -> int:
    """Find the first occurrence of terminator at or after start that is not
    inside a string literal.

    Returns -1 when there is none.

    Raises:
        ExpressionError: On an unterminated string before the terminator
    """
    position = start
    while position < len(text):
        if text.startswith(terminator, position):
            return position
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            if text[position] in "'\"":
                raise ExpressionError("Unterminated string", text, position)
            position += 1
        else:
            position = match.end()
    return -1


def _unescape(token: Token, text: str) -> str:
    body = token.text[1:-1]
    if token.kind == "raw":
        return body

    result = []
    index = 0
    while index < len(body):
        char = body[index]
        if char == "\\":
            escaped = body[index + 1]
            if escaped not in _ESCAPES:
                raise ExpressionError(
                    f"Invalid escape sequence '\\{escaped}'", text, token.position
                )
            result.append(_ESCAPES[escaped])
            index += 2
        else:
            result.append(char)
            index += 1
    return "".join(result)


class TokenStream:
    """Cursor over a token list with the recursive-descent helpers."""

    def __init__(self, tokens: list[Token], text: str):
        self.tokens = tokens
        self.text = text
        self.index = 0

    def peek(self) -> Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def next(self) -> Token:
        token = self.peek()
        if token is None:
            raise ExpressionError("Unexpected end of expression", self.text, len(self.text))
        self.index += 1
        return token

    def accept(self, kind: str) -> Token | None:
        token = self.peek()
        if token is not None and token.kind == kind:
            self.index += 1
            return token
        return None

    def expect(self, kind: str) -> Token:
        token = self.next()
        if token.kind != kind:
            raise ExpressionError(
                f"Expected '{kind}' but found '{token.text}'", self.text, token.position
            )
        return token

    def at_end(self) -> bool:
        return self.index >= len(self.tokens)

    def parse_expression(self) -> Expression:
        expression = self.parse_value()
        while self.accept("+"):
            expression = Concatenation(expression, self.parse_value())
        return expression

    def parse_value(self) -> Expression:
        token = self.next()
        if token.kind in ("raw", "cooked"):
            return StringLiteral(_unescape(token, self.text))
        if token.kind == "name":
            if self.accept("("):
                return self._parse_call(token)
            return Reference(token.text)
        if token.kind == "(":
            expression = self.parse_expression()
            self.expect(")")
            return expression
        raise ExpressionError(f"Unexpected '{token.text}'", self.text, token.position)

    def _parse_call(self, name: Token) -> Call:
        arguments = []
        while not self.accept(")"):
            arguments.append(self.parse_expression())
            if not self.accept(","):
                self.expect(")")
                break

        function = FUNCTIONS.get(name.text)
        if function is None:
            raise ExpressionError(f"Unknown function '{name.text}'", self.text, name.position)
        arity, _ = function
        if len(arguments) != arity:
            raise ExpressionError(
                f"Function '{name.text}' takes {arity} argument(s) but {len(arguments)} given",
                self.text,
                name.position,
            )
        return Call(name.text, tuple(arguments))


def parse_expression(text: str) -> Expression:
    """Parse a complete expression.

    Examples:
        >>> parse_expression("'40000'")
        StringLiteral(value='40000')
        >>> parse_expression("dev")
        Reference(name='dev')
    """
    stream = TokenStream(tokenize(text), text)
    if stream.at_end():
        raise ExpressionError("Empty expression", text, 0)
    expression = stream.parse_expression()
    if not stream.at_end():
        token = stream.peek()
        raise ExpressionError(f"Unexpected '{token.text}'", text, token.position)
    return expression


def parse_string_list(text: str) -> list[str]:
    """Parse a bracketed list of string literals such as ``["bash", "-c"]``."""
    stream = TokenStream(tokenize(text), text)
    stream.expect("[")
    items = []
    while not stream.accept("]"):
        token = stream.next()
        if token.kind not in ("raw", "cooked"):
            raise ExpressionError("Expected a string literal", text, token.position)
        items.append(_unescape(token, text))
        if not stream.accept(","):
            stream.expect("]")
            break
    if not stream.at_end():
        token = stream.peek()
        raise ExpressionError(f"Unexpected '{token.text}'", text, token.position)
    return items


def references(expression: Expression) -> Iterator[str]:
    """Yield every name referenced by an expression, in source order."""
    if isinstance(expression, Reference):
        yield expression.name
    elif isinstance(expression, Concatenation):
        yield from references(expression.lhs)
        yield from references(expression.rhs)
    elif isinstance(expression, Call):
        for argument in expression.arguments:
            yield from references(argument)


def evaluate(expression: Expression, lookup: Callable[[str], str]) -> str:
    """Evaluate an expression to a string.

    Args:
        expression: Parsed expression tree
        lookup: Returns the value bound to a referenced name

    Raises:
        EvaluationError: If a function call fails
    """
    if isinstance(expression, StringLiteral):
        return expression.value
    if isinstance(expression, Reference):
        return lookup(expression.name)
    if isinstance(expression, Concatenation):
        return evaluate(expression.lhs, lookup) + evaluate(expression.rhs, lookup)

    _, function = FUNCTIONS[expression.name]
    arguments = [evaluate(argument, lookup) for argument in expression.arguments]
    return function(*arguments)


def _env_var(name: str) -> str:
    value = os.environ.get(name)
    if value is None:
        raise EvaluationError(
            f"Call to function 'env_var' failed: environment variable '{name}' not present"
        )
    return value


def _os_name() -> str:
    system = platform.system()
    return {"Darwin": "macos"}.get(system, system.lower())


def _arch() -> str:
    machine = platform.machine().lower()
    return {"amd64": "x86_64", "arm64": "aarch64"}.get(machine, machine)


# name -> (arity, implementation)
FUNCTIONS: dict[str, tuple[int, Callable[..., str]]] = {
    "env_var": (1, _env_var),
    "env_var_or_default": (2, lambda name, default: os.environ.get(name, default)),
    "os": (0, _os_name),
    "os_family": (0, lambda: "windows" if os.name == "nt" else "unix"),
    "arch": (0, _arch),
    "num_cpus": (0, lambda: str(os.cpu_count() or 1)),
    "quote": (1, shlex.quote),
    "uppercase": (1, str.upper),
    "lowercase": (1, str.lower),
}

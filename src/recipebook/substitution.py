"""Placeholder substitution for recipe command lines.

Command lines are parsed into typed templates when the recipe file is loaded:
an ordered tuple of literal text segments and ``{{ expression }}``
placeholders. Rendering a template against a Scope is then a structural walk
with no string scanning at execution time.

Name resolution order inside a scope:
    1. Parameters bound for this invocation
    2. Variables, where command-line/config overrides replace the declared value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

from recipebook.expressions import (
    Expression,
    ExpressionError,
    evaluate,
    find_unquoted,
    parse_expression,
    references,
)

__all__ = [
    "CommandTemplate",
    "Placeholder",
    "Scope",
    "Text",
    "UnknownOverrideError",
    "UnresolvedReferenceError",
    "evaluate_variables",
    "parse_template",
    "render_template",
]


class UnresolvedReferenceError(Exception):
    """Raised when a placeholder names something that is not in scope.

    The parser rejects unresolved references at load time, so this only
    surfaces when a template is rendered against a hand-built scope.
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unresolved reference '{name}'")


class UnknownOverrideError(Exception):
    """Raised when an override names a variable the recipe file does not declare."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Variable '{name}' overridden on the command line but not declared in the recipe file"
        )


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Placeholder:
    expression: Expression
    source: str


@dataclass(frozen=True)
class CommandTemplate:
    """A command line split into literal text and placeholders."""

    segments: tuple[Union[Text, Placeholder], ...]
    source: str

    def references(self) -> Iterator[str]:
        for segment in self.segments:
            if isinstance(segment, Placeholder):
                yield from references(segment.expression)


def parse_template(text: str) -> CommandTemplate:
    """Parse a command line into a CommandTemplate.

    ``{{{{`` renders as a literal ``{{``. A placeholder ends at the first
    ``}}`` outside a string literal, so ``{{ '}}' }}`` renders ``}}``.

    Raises:
        ExpressionError: If a placeholder is unterminated or malformed
    """
    segments: list[Union[Text, Placeholder]] = []
    literal: list[str] = []
    position = 0

    while True:
        start = text.find("{{", position)
        if start == -1:
            literal.append(text[position:])
            break
        literal.append(text[position:start])

        if text.startswith("{{{{", start):
            literal.append("{{")
            position = start + 4
            continue

        end = find_unquoted(text, "}}", start + 2)
        if end == -1:
            raise ExpressionError("Unterminated placeholder", text, start)
        if "".join(literal):
            segments.append(Text("".join(literal)))
        literal = []
        segments.append(Placeholder(parse_expression(text[start + 2:end]), text[start:end + 2]))
        position = end + 2

    if "".join(literal):
        segments.append(Text("".join(literal)))

    return CommandTemplate(tuple(segments), text)


class Scope:
    """Two-level name scope: invocation parameters shadow global variables."""

    def __init__(
        self,
        variables: dict[str, str],
        parameters: dict[str, str] | None = None,
    ):
        self.variables = variables
        self.parameters = parameters or {}

    def child(self, parameters: dict[str, str]) -> "Scope":
        """Create a scope with parameters bound over this scope's variables."""
        return Scope(self.variables, {**self.parameters, **parameters})

    def lookup(self, name: str) -> str:
        if name in self.parameters:
            return self.parameters[name]
        if name in self.variables:
            return self.variables[name]
        raise UnresolvedReferenceError(name)

    def evaluate(self, expression: Expression) -> str:
        return evaluate(expression, self.lookup)


def render_template(template: CommandTemplate, scope: Scope) -> str:
    """Substitute every placeholder in a template.

    Raises:
        UnresolvedReferenceError: If a referenced name is not in scope
        EvaluationError: If a function call in a placeholder fails
    """
    parts = []
    for segment in template.segments:
        if isinstance(segment, Text):
            parts.append(segment.value)
        else:
            parts.append(scope.evaluate(segment.expression))
    return "".join(parts)


def evaluate_variables(
    expressions: dict[str, Expression],
    order: list[str],
    overrides: dict[str, str] | None = None,
) -> dict[str, str]:
    """Resolve every variable to a string.

    Args:
        expressions: Declared value expression for each variable
        order: Variable names in dependency order (dependencies first)
        overrides: Externally supplied values that replace declared ones

    Returns:
        Mapping of variable name to resolved value, in declaration order

    Raises:
        UnknownOverrideError: If an override names an undeclared variable
        EvaluationError: If a function call in a value fails
    """
    overrides = overrides or {}
    for name in overrides:
        if name not in expressions:
            raise UnknownOverrideError(name)

    resolved: dict[str, str] = {}
    scope = Scope(resolved)
    for name in order:
        if name in overrides:
            resolved[name] = overrides[name]
        else:
            resolved[name] = scope.evaluate(expressions[name])

    return {name: resolved[name] for name in expressions}

"""Parse recipe files into a validated RecipeBook."""

from __future__ import annotations

import enum
import re
import textwrap
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterator

from recipebook.expressions import (
    Expression,
    ExpressionError,
    TokenStream,
    find_unquoted,
    parse_expression,
    parse_string_list,
    references,
    tokenize,
)
from recipebook.graph import CycleError, resolve_variable_order
from recipebook.substitution import CommandTemplate, parse_template

RECIPE_FILE_NAMES = ["Recipefile", "recipefile", "justfile", "Justfile", ".justfile"]

KNOWN_ATTRIBUTES = {"default", "private"}

_NAME = r"[A-Za-z_][A-Za-z0-9_-]*"
_ALIAS_PATTERN = re.compile(rf"^alias\s+({_NAME})\s*:=\s*({_NAME})\s*$")
_SET_PATTERN = re.compile(rf"^set\s+({_NAME})(?:\s*:=\s*(.+?))?\s*$")
_ASSIGNMENT_PATTERN = re.compile(rf"^(export\s+)?({_NAME})\s*:=\s*(.+?)\s*$")
_ATTRIBUTE_PATTERN = re.compile(r"^\[(.*)\]\s*$")


class DefinitionError(Exception):
    """Raised when a recipe file is malformed or inconsistent."""

    def __init__(self, name: str, reason: str, line: int | None = None):
        self.name = name
        self.reason = reason
        self.line = line

        message = f"'{name}': {reason}" if name else reason
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class ParameterKind(enum.Enum):
    SINGLE = ""
    PLUS = "+"  # one or more values
    STAR = "*"  # zero or more values


@dataclass(frozen=True)
class Parameter:
    """A recipe parameter."""

    name: str
    default: Expression | None = None
    kind: ParameterKind = ParameterKind.SINGLE
    exported: bool = False
    default_source: str = ""

    @property
    def variadic(self) -> bool:
        return self.kind is not ParameterKind.SINGLE

    @property
    def required(self) -> bool:
        return self.default is None and self.kind is not ParameterKind.STAR

    def __str__(self) -> str:
        text = f"{self.kind.value}{'$' if self.exported else ''}{self.name}"
        if self.default is not None:
            text += f"={self.default_source}"
        return text


@dataclass(frozen=True)
class Variable:
    """A global variable declared with ``name := value``."""

    name: str
    expression: Expression
    exported: bool = False
    source: str = ""
    line: int = 0


@dataclass(frozen=True)
class Alias:
    name: str
    target: str
    line: int = 0


@dataclass(frozen=True)
class Command:
    """One command of a body line."""

    template: CommandTemplate
    quiet: bool = False
    ignore_errors: bool = False
    line: int = 0


@dataclass(frozen=True)
class BodyLine:
    """A step of a recipe body.

    A parallel body line holds every command of a fan-out group; all other
    body lines hold exactly one command.
    """

    commands: tuple[Command, ...]
    parallel: bool = False


@dataclass(frozen=True)
class Recipe:
    """Represents a recipe definition."""

    name: str
    parameters: tuple[Parameter, ...] = ()
    body: tuple[BodyLine, ...] = ()
    is_default: bool = False
    doc: str = ""
    private: bool = False
    shebang: bool = False
    source_file: str = ""  # Track which file defined this recipe
    line: int = 0

    def signature(self) -> str:
        return " ".join([self.name] + [str(p) for p in self.parameters])


@dataclass
class Settings:
    """Values of ``set`` statements."""

    shell: list[str] | None = None
    quiet: bool = False
    export: bool = False


@dataclass
class RecipeBook:
    """Represents a parsed recipe file: variables, recipes, aliases and settings."""

    recipes: dict[str, Recipe]
    project_root: Path
    variables: dict[str, Variable] = field(default_factory=dict)
    aliases: dict[str, Alias] = field(default_factory=dict)
    settings: Settings = field(default_factory=Settings)
    source_file: str = ""
    variable_order: list[str] = field(default_factory=list)

    def get_recipe(self, name: str) -> Recipe | None:
        """Get recipe by name, following one alias hop.

        Args:
            name: Recipe or alias name

        Returns:
            Recipe if found, None otherwise
        """
        alias = self.aliases.get(name)
        if alias is not None:
            name = alias.target
        return self.recipes.get(name)

    def recipe_names(self) -> list[str]:
        """Get all recipe names in declaration order."""
        return list(self.recipes.keys())

    @property
    def default_recipe(self) -> Recipe | None:
        return next((r for r in self.recipes.values() if r.is_default), None)

    def aliases_for(self, recipe_name: str) -> list[str]:
        return [a.name for a in self.aliases.values() if a.target == recipe_name]


def find_recipe_file(start_dir: Path | None = None) -> Path | None:
    """Find a recipe file in the current or parent directories.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to recipe file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    # Search up the directory tree
    while True:
        for filename in RECIPE_FILE_NAMES:
            recipe_path = current / filename
            if recipe_path.is_file():
                return recipe_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def parse_recipe_file(recipe_path: Path) -> RecipeBook:
    """Parse a recipe file.

    Raises:
        FileNotFoundError: If recipe file doesn't exist
        DefinitionError: If the file is malformed or inconsistent
    """
    if not recipe_path.exists():
        raise FileNotFoundError(f"Recipe file not found: {recipe_path}")

    text = recipe_path.read_text(encoding="utf-8")
    return parse_recipe_text(
        text, project_root=recipe_path.parent.resolve(), source_file=str(recipe_path)
    )


def parse_recipe_text(
    text: str, project_root: Path | None = None, source_file: str = ""
) -> RecipeBook:
    """Parse recipe source text into a validated RecipeBook.

    Parsing is a single pass over the lines followed by cross-reference
    validation. Nothing is evaluated or executed.

    Args:
        text: Recipe file contents
        project_root: Directory commands run in (defaults to cwd)
        source_file: Path recorded on each recipe for display

    Raises:
        DefinitionError: On syntax errors, duplicate names, dangling aliases,
            bad parameter ordering, multiple default recipes, unresolved
            references or circular variable references
    """
    parser = _RecipeFileParser(source_file)
    parser.parse(text)

    book = RecipeBook(
        recipes=parser.recipes,
        project_root=project_root if project_root is not None else Path.cwd(),
        variables=parser.variables,
        aliases=parser.aliases,
        settings=parser.settings,
        source_file=source_file,
    )
    _validate(book, parser.default_recipes)
    return book


class _PendingRecipe:
    def __init__(self, name, parameters, doc, attributes, line):
        self.name = name
        self.parameters = parameters
        self.doc = doc
        self.attributes = attributes
        self.line = line
        self.body_lines: list[tuple[int, str]] = []


class _RecipeFileParser:
    """Single-pass, line-oriented recipe file parser."""

    def __init__(self, source_file: str):
        self.source_file = source_file
        self.recipes: dict[str, Recipe] = {}
        self.variables: dict[str, Variable] = {}
        self.aliases: dict[str, Alias] = {}
        self.settings = Settings()
        self.default_recipes: list[str] = []

        self._doc: str | None = None
        self._attributes: set[str] = set()
        self._attributes_line = 0
        self._recipe: _PendingRecipe | None = None

    def parse(self, text: str) -> None:
        for number, line in enumerate(text.splitlines(), start=1):
            if self._recipe is not None and (line[:1] in (" ", "\t") or not line.strip()):
                self._recipe.body_lines.append((number, line))
                continue

            self._finish_recipe()
            stripped = line.strip()

            if not stripped:
                self._doc = None
            elif line[:1] in (" ", "\t"):
                raise DefinitionError("", "Unexpected indentation", number)
            elif stripped.startswith("#"):
                if not (number == 1 and stripped.startswith("#!")):
                    self._doc = stripped[1:].strip()
            elif stripped.startswith("["):
                self._parse_attributes(stripped, number)
            else:
                self._parse_statement(stripped, number)

        self._finish_recipe()

        if self._attributes:
            raise DefinitionError(
                "", "Attributes must be followed by a recipe", self._attributes_line
            )

    def _parse_attributes(self, text: str, number: int) -> None:
        match = _ATTRIBUTE_PATTERN.match(text)
        if match is None:
            raise DefinitionError("", f"Malformed attribute '{text}'", number)
        for attribute in (a.strip() for a in match.group(1).split(",")):
            if attribute not in KNOWN_ATTRIBUTES:
                raise DefinitionError(attribute, "Unknown attribute", number)
            self._attributes.add(attribute)
        self._attributes_line = number

    def _parse_statement(self, text: str, number: int) -> None:
        doc, self._doc = self._doc, None

        try:
            comment = find_unquoted(text, "#")
        except ExpressionError as e:
            raise DefinitionError("", str(e), number)
        if comment != -1:
            text = text[:comment].rstrip()

        is_recipe_header = not (
            _ALIAS_PATTERN.match(text) or _SET_PATTERN.match(text) or _ASSIGNMENT_PATTERN.match(text)
        )
        if self._attributes and not is_recipe_header:
            raise DefinitionError(
                "", "Attributes must be followed by a recipe", self._attributes_line
            )

        if match := _ALIAS_PATTERN.match(text):
            name, target = match.groups()
            if name in self.aliases:
                raise DefinitionError(name, "Duplicate alias", number)
            self.aliases[name] = Alias(name=name, target=target, line=number)
        elif match := _SET_PATTERN.match(text):
            self._parse_setting(match.group(1), match.group(2), number)
        elif match := _ASSIGNMENT_PATTERN.match(text):
            exported, name, value = match.groups()
            if name in self.variables:
                raise DefinitionError(name, "Duplicate variable", number)
            self.variables[name] = Variable(
                name=name,
                expression=self._expression(value, name, number),
                exported=bool(exported),
                source=value,
                line=number,
            )
        else:
            self._parse_recipe_header(text, number, doc)

    def _parse_setting(self, name: str, value: str | None, number: int) -> None:
        try:
            if name == "shell":
                if value is None:
                    raise DefinitionError(name, "Setting requires a value", number)
                shell = parse_string_list(value)
                if not shell:
                    raise DefinitionError(name, "Shell command must not be empty", number)
                self.settings.shell = shell
            elif name in ("quiet", "export"):
                if value not in (None, "true", "false"):
                    raise DefinitionError(name, f"Expected 'true' or 'false', found '{value}'", number)
                setattr(self.settings, name, value != "false")
            else:
                raise DefinitionError(name, "Unknown setting", number)
        except ExpressionError as e:
            raise DefinitionError(name, str(e), number)

    def _parse_recipe_header(self, text: str, number: int, doc: str | None) -> None:
        try:
            stream = TokenStream(tokenize(text), text)
            name = stream.expect("name").text
            parameters = []
            while not stream.accept(":"):
                parameters.append(self._parse_parameter(stream, text))
        except ExpressionError as e:
            raise DefinitionError("", f"Invalid recipe header: {e}", number)

        if not stream.at_end():
            raise DefinitionError(
                name, "Recipe dependencies and trailing text after ':' are not supported", number
            )
        if name in self.recipes:
            raise DefinitionError(name, "Duplicate recipe", number)

        self._recipe = _PendingRecipe(name, tuple(parameters), doc or "", self._attributes, number)
        self._attributes = set()

    @staticmethod
    def _parse_parameter(stream: TokenStream, text: str) -> Parameter:
        kind = ParameterKind.SINGLE
        if stream.accept("+"):
            kind = ParameterKind.PLUS
        elif stream.accept("*"):
            kind = ParameterKind.STAR
        exported = stream.accept("$") is not None
        name = stream.expect("name").text

        default = None
        default_source = ""
        if stream.accept("="):
            start = stream.peek()
            default = stream.parse_value()
            end = stream.tokens[stream.index - 1]
            default_source = text[start.position:end.position + len(end.text)]

        return Parameter(
            name=name,
            default=default,
            kind=kind,
            exported=exported,
            default_source=default_source,
        )

    def _finish_recipe(self) -> None:
        pending = self._recipe
        if pending is None:
            return
        self._recipe = None

        # Trailing blank lines belong to whatever follows the recipe
        while pending.body_lines and not pending.body_lines[-1][1].strip():
            pending.body_lines.pop()

        shebang = bool(pending.body_lines) and pending.body_lines[0][1].strip().startswith("#!")
        if shebang:
            body = (self._shebang_body(pending),)
        else:
            body = tuple(self._linewise_body(pending))

        is_default = "default" in pending.attributes
        if is_default:
            self.default_recipes.append(pending.name)

        self.recipes[pending.name] = Recipe(
            name=pending.name,
            parameters=pending.parameters,
            body=body,
            is_default=is_default,
            doc=pending.doc,
            private="private" in pending.attributes or pending.name.startswith("_"),
            shebang=shebang,
            source_file=self.source_file,
            line=pending.line,
        )

    def _shebang_body(self, pending: _PendingRecipe) -> BodyLine:
        script = textwrap.dedent("\n".join(line for _, line in pending.body_lines)) + "\n"
        template = self._template(script, pending.name, pending.body_lines[0][0])
        return BodyLine(commands=(Command(template, line=pending.body_lines[0][0]),))

    def _linewise_body(self, pending: _PendingRecipe) -> Iterator[BodyLine]:
        group: list[Command] = []
        for number, text in _join_continuations(pending.body_lines):
            quiet = ignore_errors = parallel = False
            text = text.strip()
            while text[:1] in ("@", "-", "&"):
                quiet = quiet or text[0] == "@"
                ignore_errors = ignore_errors or text[0] == "-"
                parallel = parallel or text[0] == "&"
                text = text[1:].lstrip()
            if not text:
                raise DefinitionError(pending.name, "Empty command after line prefix", number)

            command = Command(
                template=self._template(text, pending.name, number),
                quiet=quiet,
                ignore_errors=ignore_errors,
                line=number,
            )
            if parallel:
                group.append(command)
                continue
            if group:
                yield BodyLine(commands=tuple(group), parallel=True)
                group = []
            yield BodyLine(commands=(command,))

        if group:
            yield BodyLine(commands=tuple(group), parallel=True)

    @staticmethod
    def _template(text: str, name: str, number: int) -> CommandTemplate:
        try:
            return parse_template(text)
        except ExpressionError as e:
            raise DefinitionError(name, str(e), number)

    @staticmethod
    def _expression(text: str, name: str, number: int) -> Expression:
        try:
            return parse_expression(text)
        except ExpressionError as e:
            raise DefinitionError(name, str(e), number)


def _join_continuations(lines: list[tuple[int, str]]) -> Iterator[tuple[int, str]]:
    """Join lines ending in a backslash with the line that follows, skipping blanks."""
    buffer: list[str] = []
    start = 0
    for number, line in lines:
        stripped = line.strip()
        if not buffer:
            if not stripped:
                continue
            start = number
        if stripped.endswith("\\"):
            buffer.append(stripped[:-1].strip())
            continue
        buffer.append(stripped)
        yield start, " ".join(part for part in buffer if part)
        buffer = []
    if buffer:
        yield start, " ".join(part for part in buffer if part)


def _validate(book: RecipeBook, default_recipes: list[str]) -> None:
    """Cross-reference checks that need the complete table."""
    for alias in book.aliases.values():
        if alias.name in book.recipes:
            raise DefinitionError(alias.name, "Alias has the same name as a recipe", alias.line)
        if alias.target not in book.recipes:
            if alias.target in book.aliases:
                raise DefinitionError(
                    alias.name, f"Alias targets alias '{alias.target}'; aliases must target a recipe", alias.line
                )
            raise DefinitionError(alias.name, f"Alias targets unknown recipe '{alias.target}'", alias.line)

    if len(default_recipes) > 1:
        second = book.recipes[default_recipes[1]]
        raise DefinitionError(
            second.name,
            f"Recipe marked as default but '{default_recipes[0]}' is already the default",
            second.line,
        )
    if not default_recipes and book.recipes:
        first = next(iter(book.recipes))
        book.recipes[first] = replace(book.recipes[first], is_default=True)

    variable_names = set(book.variables)
    for recipe in book.recipes.values():
        _validate_recipe(recipe, variable_names)

    dependencies = {}
    for variable in book.variables.values():
        deps = set()
        for name in references(variable.expression):
            if name not in variable_names:
                raise DefinitionError(
                    variable.name, f"Variable references undefined name '{name}'", variable.line
                )
            deps.add(name)
        dependencies[variable.name] = deps

    try:
        book.variable_order = resolve_variable_order(dependencies)
    except CycleError as e:
        variable = book.variables[e.cycle[0]]
        raise DefinitionError(variable.name, str(e), variable.line)


def _validate_recipe(recipe: Recipe, variable_names: set[str]) -> None:
    seen: set[str] = set()
    defaulted = False
    for index, parameter in enumerate(recipe.parameters):
        if parameter.name in seen:
            raise DefinitionError(
                recipe.name, f"Duplicate parameter '{parameter.name}'", recipe.line
            )
        if parameter.variadic and index != len(recipe.parameters) - 1:
            raise DefinitionError(
                recipe.name, f"Variadic parameter '{parameter.name}' must be the last parameter", recipe.line
            )
        if parameter.required and defaulted:
            raise DefinitionError(
                recipe.name,
                f"Parameter '{parameter.name}' has no default but follows a parameter with a default",
                recipe.line,
            )
        if parameter.default is not None:
            defaulted = True
            for name in references(parameter.default):
                if name not in seen and name not in variable_names:
                    raise DefinitionError(
                        recipe.name,
                        f"Default of parameter '{parameter.name}' references undefined name '{name}'",
                        recipe.line,
                    )
        seen.add(parameter.name)

    for body_line in recipe.body:
        for command in body_line.commands:
            for name in command.template.references():
                if name not in seen and name not in variable_names:
                    raise DefinitionError(
                        recipe.name, f"Command references undefined name '{name}'", command.line
                    )

"""Recipebook - a declarative recipe runner for justfile-style command recipes."""

__version__ = "0.1.0"

from recipebook.executor import (
    CommandFailedError,
    DispatchState,
    ExecutionError,
    ExecutionInterrupted,
    Executor,
    InvocationError,
    InvocationResult,
    MissingArgumentError,
    NotFoundError,
    TooManyArgumentsError,
)
from recipebook.parser import (
    DefinitionError,
    Recipe,
    RecipeBook,
    find_recipe_file,
    parse_recipe_file,
    parse_recipe_text,
)
from recipebook.substitution import Scope, UnresolvedReferenceError, render_template

__all__ = [
    "__version__",
    "CommandFailedError",
    "DispatchState",
    "ExecutionError",
    "ExecutionInterrupted",
    "Executor",
    "InvocationError",
    "InvocationResult",
    "MissingArgumentError",
    "NotFoundError",
    "TooManyArgumentsError",
    "DefinitionError",
    "Recipe",
    "RecipeBook",
    "find_recipe_file",
    "parse_recipe_file",
    "parse_recipe_text",
    "Scope",
    "UnresolvedReferenceError",
    "render_template",
]

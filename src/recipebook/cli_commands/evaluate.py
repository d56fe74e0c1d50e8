from __future__ import annotations

from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from recipebook.cli_commands import EXIT_USAGE_ERROR, get_recipe_book, merge_overrides
from recipebook.expressions import EvaluationError
from recipebook.executor import Executor
from recipebook.logging import Logger
from recipebook.substitution import UnknownOverrideError


def evaluate_variables(
    logger: Logger,
    overrides: dict[str, str],
    recipe_file: Optional[str] = None,
    config_variables: Optional[dict[str, str]] = None,
):
    """
    Show every variable with its resolved value.
    """
    book = get_recipe_book(logger, recipe_file)
    overrides = merge_overrides(book, overrides, config_variables)
    executor = Executor(book, logger, overrides=overrides)

    try:
        variables = executor.variables
    except (EvaluationError, UnknownOverrideError) as e:
        logger.error(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(EXIT_USAGE_ERROR)

    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Variable", style="bold cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_column("Source", style="dim")

    for name, value in variables.items():
        variable = book.variables[name]
        source = "override" if name in overrides else escape(variable.source)
        label = f"export {name}" if variable.exported else name
        table.add_row(escape(label), escape(repr(value)), source)

    logger.info(table)

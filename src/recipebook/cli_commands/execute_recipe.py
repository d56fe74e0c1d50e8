"""Execute recipe command implementation."""

from __future__ import annotations

from typing import Optional

import typer
from rich.markup import escape

from recipebook.cli_commands import (
    EXIT_INTERRUPTED,
    EXIT_USAGE_ERROR,
    get_action_failure_string,
    get_action_success_string,
    get_recipe_book,
    merge_overrides,
)
from recipebook.executor import (
    CommandFailedError,
    ExecutionInterrupted,
    Executor,
    InvocationError,
    NotFoundError,
)
from recipebook.expressions import EvaluationError
from recipebook.logging import Logger
from recipebook.process_runner import CommandOutputTypes, make_process_runner
from recipebook.substitution import UnknownOverrideError


def execute_recipe(
    logger: Logger,
    recipe_name: Optional[str],
    args: list[str],
    overrides: dict[str, str],
    recipe_file: Optional[str] = None,
    config_variables: Optional[dict[str, str]] = None,
    output: CommandOutputTypes = CommandOutputTypes.ALL,
    shell: Optional[list[str]] = None,
    dry_run: bool = False,
) -> None:
    """
    Execute a recipe and map the outcome to the process exit status.

    Args:
    logger: Logger interface for output
    recipe_name: Recipe or alias to run; None runs the default recipe
    args: Positional arguments for the recipe
    overrides: Variable values supplied on the command line
    recipe_file: Path to recipe file (optional)
    config_variables: Variable values from config files
    output: Control child process output (all, out, err, none)
    shell: Shell used when the recipe file does not set one
    dry_run: Print the commands instead of running them
    """
    book = get_recipe_book(logger, recipe_file)
    executor = Executor(
        book,
        logger,
        make_process_runner,
        output=output,
        overrides=merge_overrides(book, overrides, config_variables),
        shell=shell,
    )

    try:
        result = executor.invoke(recipe_name, args, dry_run=dry_run)
    except NotFoundError as e:
        logger.error(f"[red]{escape(str(e))}[/red]")
        logger.info("\nAvailable recipes:")
        for name in book.recipe_names():
            if not book.recipes[name].private:
                logger.info(f"  - {name}")
        raise typer.Exit(EXIT_USAGE_ERROR)
    except (InvocationError, EvaluationError, UnknownOverrideError) as e:
        logger.error(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(EXIT_USAGE_ERROR)
    except CommandFailedError as e:
        logger.error(f"[red]{get_action_failure_string()} {escape(str(e))}[/red]")
        raise typer.Exit(e.exit_code)
    except ExecutionInterrupted as e:
        logger.error(f"[yellow]{escape(str(e))}[/yellow]")
        raise typer.Exit(EXIT_INTERRUPTED)

    if not dry_run:
        logger.info(
            f"[green]{get_action_success_string()} Recipe '{escape(result.recipe_name)}' completed successfully[/green]",
        )

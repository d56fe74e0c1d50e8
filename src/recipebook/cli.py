"""Command-line interface for recipebook."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from recipebook import __version__
from recipebook.cli_commands import EXIT_USAGE_ERROR
from recipebook.cli_commands.evaluate import evaluate_variables
from recipebook.cli_commands.execute_recipe import execute_recipe
from recipebook.cli_commands.init_recipe import init_recipe
from recipebook.cli_commands.list_recipes import list_recipes
from recipebook.cli_commands.show_recipe import show_recipe
from recipebook.config import ConfigError, load_config
from recipebook.console_logger import ConsoleLogger
from recipebook.logging import LogLevel, parse_log_level
from recipebook.process_runner import CommandOutputTypes

app = typer.Typer(
    help="Recipebook - run named command recipes from a Recipefile",
    add_completion=False,
    no_args_is_help=False,
)

_OVERRIDE_PATTERN = re.compile(r"^([A-Za-z_][A-Za-z0-9_-]*)=(.*)$", re.DOTALL)


def split_invocation(arguments: list[str]) -> tuple[dict[str, str], Optional[str], list[str]]:
    """Split raw positional arguments into overrides, recipe name and recipe arguments.

    Leading ``NAME=VALUE`` words are variable overrides; the first other word
    is the recipe name and everything after it belongs to the recipe.

    Examples:
        >>> split_invocation(["dev=0", "docs", "8080"])
        ({'dev': '0'}, 'docs', ['8080'])
    """
    overrides: dict[str, str] = {}
    index = 0
    while index < len(arguments):
        match = _OVERRIDE_PATTERN.match(arguments[index])
        if match is None:
            break
        overrides[match.group(1)] = match.group(2)
        index += 1

    if index >= len(arguments):
        return overrides, None, []
    return overrides, arguments[index], arguments[index + 1:]


def _parse_set_options(values: list[str]) -> dict[str, str]:
    overrides = {}
    for value in values:
        match = _OVERRIDE_PATTERN.match(value)
        if match is None:
            raise typer.BadParameter(f"Expected NAME=VALUE, got '{value}'", param_hint="--set")
        overrides[match.group(1)] = match.group(2)
    return overrides


@app.command(
    context_settings={
        "allow_extra_args": True,
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
        "help_option_names": ["-h", "--help"],
    }
)
def main(
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
    list_opt: bool = typer.Option(False, "--list", "-l", help="List all available recipes"),
    show: Optional[str] = typer.Option(None, "--show", help="Show a recipe definition"),
    evaluate: bool = typer.Option(False, "--evaluate", help="Show resolved variable values"),
    init: bool = typer.Option(False, "--init", help="Create a starter Recipefile"),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Print commands without running them"
    ),
    recipe_file: Optional[str] = typer.Option(
        None, "--file", "-f", help="Path to recipe file (searched for by default)"
    ),
    set_values: Optional[List[str]] = typer.Option(
        None, "--set", help="Override a variable (NAME=VALUE); may be repeated"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-L",
        help="Log verbosity: fatal, error, warn, info, debug, trace",
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-O", help="Child output to show: all, out, err, none"
    ),
    arguments: Optional[List[str]] = typer.Argument(
        None, help="[NAME=VALUE ...] [RECIPE] [ARGS ...]"
    ),
):
    """
    Run a recipe, or the default recipe when no name is given.
    """
    console = Console()
    logger = ConsoleLogger(console, LogLevel.INFO)

    if version:
        logger.info(f"recipebook version {__version__}")
        return

    try:
        config = load_config(Path.cwd())
    except ConfigError as e:
        logger.error(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(EXIT_USAGE_ERROR)

    level_name = log_level or config.log_level or "info"
    try:
        logger.push_level(parse_log_level(level_name))
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level")

    output_name = (output or config.output or "all").lower()
    try:
        output_type = CommandOutputTypes(output_name)
    except ValueError:
        valid = ", ".join(t.value for t in CommandOutputTypes)
        raise typer.BadParameter(
            f"Invalid output '{output_name}'. Valid values: {valid}", param_hint="--output"
        )

    for source in config.sources:
        logger.debug(f"Loaded config: {source}")

    positional_overrides, recipe_name, recipe_args = split_invocation(arguments or [])
    overrides = {**_parse_set_options(set_values or []), **positional_overrides}

    if init:
        init_recipe(logger)
        return

    if list_opt:
        list_recipes(logger, recipe_file)
        return

    if show:
        show_recipe(logger, show, recipe_file)
        return

    if evaluate:
        evaluate_variables(logger, overrides, recipe_file, config.variables)
        return

    execute_recipe(
        logger,
        recipe_name,
        recipe_args,
        overrides,
        recipe_file=recipe_file,
        config_variables=config.variables,
        output=output_type,
        shell=config.shell,
        dry_run=dry_run,
    )


if __name__ == "__main__":
    app()

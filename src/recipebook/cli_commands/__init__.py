"""CLI command implementations and shared utilities."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from recipebook.logging import Logger
from recipebook.parser import (
    RECIPE_FILE_NAMES,
    DefinitionError,
    RecipeBook,
    find_recipe_file,
    parse_recipe_file,
)

# Exit status for definition, configuration, resolution and binding errors
EXIT_USAGE_ERROR = 125

# Exit status after an interrupt (128 + SIGINT)
EXIT_INTERRUPTED = 130


def _supports_unicode() -> bool:
    """
    Check if the terminal supports Unicode characters.

    Returns:
    True if terminal supports UTF-8, False otherwise
    """
    # Hard stop: classic Windows console (conhost)
    if os.name == "nt" and "WT_SESSION" not in os.environ:
        return False

    encoding = sys.stdout.encoding
    if not encoding:
        return False

    try:
        "✓✗".encode(encoding)
        return True
    except UnicodeEncodeError:
        return False


def get_action_success_string() -> str:
    """
    Get the appropriate success symbol based on terminal capabilities.

    Returns:
    Unicode tick symbol (✓) if terminal supports UTF-8, otherwise "[ OK ]"
    """
    return "✓" if _supports_unicode() else "[ OK ]"


def get_action_failure_string() -> str:
    """
    Get the appropriate failure symbol based on terminal capabilities.

    Returns:
    Unicode cross symbol (✗) if terminal supports UTF-8, otherwise "[ FAIL ]"
    """
    return "✗" if _supports_unicode() else "[ FAIL ]"


def get_recipe_book(logger: Logger, recipe_file: Optional[str] = None) -> RecipeBook:
    """
    Locate and parse the recipe file, exiting with a diagnostic on failure.

    Args:
        logger: Logger interface for output
        recipe_file: Explicit recipe file path; searched for when omitted
    """
    if recipe_file:
        recipe_path = Path(recipe_file)
        if not recipe_path.exists():
            logger.error(f"[red]Recipe file not found: {escape(recipe_file)}[/red]")
            raise typer.Exit(EXIT_USAGE_ERROR)
    else:
        recipe_path = find_recipe_file()
        if recipe_path is None:
            logger.error(
                f"[red]No recipe file found ({', '.join(RECIPE_FILE_NAMES)})[/red]",
            )
            logger.info("Run [cyan]rb --init[/cyan] to create a blank Recipefile")
            raise typer.Exit(EXIT_USAGE_ERROR)

    logger.debug(f"Using recipe file: {recipe_path}")
    try:
        return parse_recipe_file(recipe_path)
    except DefinitionError as e:
        logger.fatal(f"[red]Error in recipe file {escape(str(recipe_path))}: {escape(str(e))}[/red]")
        raise typer.Exit(EXIT_USAGE_ERROR)


def merge_overrides(
    book: RecipeBook,
    overrides: dict[str, str],
    config_variables: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """
    Combine config-file variable values with command-line overrides.

    Config values only apply to variables this recipe file declares; command
    line overrides always apply so that typos are reported.
    """
    merged = {
        name: value
        for name, value in (config_variables or {}).items()
        if name in book.variables
    }
    merged.update(overrides)
    return merged

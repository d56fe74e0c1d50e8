"""Initialize a new recipe file."""

from __future__ import annotations

from pathlib import Path

import typer

from recipebook.cli_commands import EXIT_USAGE_ERROR
from recipebook.parser import find_recipe_file
from recipebook.logging import Logger

TEMPLATE = """\
# Recipebook recipe file
#
# Run `rb --list` to see the recipes, `rb <recipe> [args...]` to run one.

alias b := build

dev := '1'

# build the project
build:
    echo "building (dev={{dev}})"

# serve the docs on a port
docs PORT='40000':
    echo "serving on port {{PORT}}"

# watch and serve at the same time
watch PORT='40000':
    & echo "watching"
    & echo "serving on port {{PORT}}"
"""


def init_recipe(logger: Logger):
    """
    Create a Recipefile with commented examples in the current directory.
    """
    recipe_path = Path("Recipefile")
    existing = find_recipe_file(Path.cwd())
    if existing is not None and existing.parent == Path.cwd().resolve():
        logger.error(f"[red]{existing.name} already exists[/red]")
        raise typer.Exit(EXIT_USAGE_ERROR)

    recipe_path.write_text(TEMPLATE)
    logger.info(f"[green]Created {recipe_path}[/green]")
    logger.info("Edit the file to define your recipes")

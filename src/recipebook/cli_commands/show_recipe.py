from __future__ import annotations

from typing import Optional

import typer
import yaml
from rich.markup import escape
from rich.syntax import Syntax

from recipebook.cli_commands import EXIT_USAGE_ERROR, get_recipe_book
from recipebook.logging import Logger
from recipebook.parser import Recipe


def show_recipe(logger: Logger, recipe_name: str, recipe_file: Optional[str] = None):
    """
    Show recipe definition with syntax highlighting.
    """
    book = get_recipe_book(logger, recipe_file)

    recipe = book.get_recipe(recipe_name)
    if recipe is None:
        logger.error(f"[red]Recipe not found: {escape(recipe_name)}[/red]")
        raise typer.Exit(EXIT_USAGE_ERROR)

    logger.info(f"[bold]Recipe: {escape(recipe.name)}[/bold]")
    if recipe.source_file:
        logger.info(f"Source: {escape(recipe.source_file)}:{recipe.line}")
    logger.info("")

    logger.info(Syntax(recipe_to_yaml(recipe, book.aliases_for(recipe.name)), "yaml", theme="ansi_light", line_numbers=False))


def recipe_to_yaml(recipe: Recipe, aliases: list[str]) -> str:
    """Render a recipe as a YAML document."""
    body = []
    for line in recipe.body:
        commands = [command.template.source for command in line.commands]
        body.append({"parallel": commands} if line.parallel else commands[0])

    recipe_dict = {
        "doc": recipe.doc,
        "default": recipe.is_default,
        "private": recipe.private,
        "aliases": aliases,
        "parameters": [str(p) for p in recipe.parameters],
        "body": body,
    }
    # Remove empty fields for cleaner display
    recipe_dict = {k: v for k, v in recipe_dict.items() if v}

    class _LiteralDumper(yaml.SafeDumper):
        pass

    def literal_presenter(dumper, data):
        """Use literal block style (|) for strings containing newlines."""
        if "\n" in data:
            return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
        return dumper.represent_scalar("tag:yaml.org,2002:str", data)

    _LiteralDumper.add_representer(str, literal_presenter)

    return yaml.dump(
        {recipe.name: recipe_dict},
        Dumper=_LiteralDumper,
        default_flow_style=False,
        sort_keys=False,
    )

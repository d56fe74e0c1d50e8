from __future__ import annotations

from typing import Optional

from rich.markup import escape
from rich.table import Table

from recipebook.cli_commands import get_recipe_book
from recipebook.logging import Logger
from recipebook.parser import Recipe


def list_recipes(logger: Logger, recipe_file: Optional[str] = None):
    """
    List all public recipes with their parameters, docs and aliases.
    """
    book = get_recipe_book(logger, recipe_file)

    visible = [recipe for recipe in book.recipes.values() if not recipe.private]
    max_name_len = max((len(recipe.name) for recipe in visible), default=0)

    # Borderless table: name, parameters, doc
    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Recipe", style="bold cyan", no_wrap=True, width=max_name_len)
    table.add_column("Parameters", style="white", max_width=60)
    table.add_column("Description", style="white", max_width=80)

    for recipe in sorted(visible, key=lambda r: r.name):
        table.add_row(
            recipe.name,
            _format_parameters(recipe),
            _format_description(recipe, book.aliases_for(recipe.name)),
        )

    logger.info("Available recipes:")
    logger.info(table)


def _format_parameters(recipe: Recipe) -> str:
    """
    Format recipe parameters for display in list output.

    Examples:
    docs +PORT='40000' -> "+PORT [='40000']"
    deploy env region='eu' -> "env region [='eu']"
    """
    parts = []
    for parameter in recipe.parameters:
        part = escape(f"{parameter.kind.value}{'$' if parameter.exported else ''}{parameter.name}")
        if parameter.default is not None:
            part += f" [dim]\\[={escape(parameter.default_source)}][/dim]"
        parts.append(part)
    return " ".join(parts)


def _format_description(recipe: Recipe, aliases: list[str]) -> str:
    description = f"[dim]# {escape(recipe.doc)}[/dim]" if recipe.doc else ""
    if recipe.is_default:
        description = f"{description} [green](default)[/green]".strip()
    if aliases:
        description = f"{description} [dim]\\[alias: {escape(', '.join(aliases))}][/dim]".strip()
    return description

"""Shopping-list export and import.

    intellirack shopping-list export --from-stock --format markdown -o list.md
    intellirack shopping-list export --item flour --item "brown sugar"
    intellirack shopping-list export --input old.csv --format json
    intellirack shopping-list import list.md [--json]
"""

from __future__ import annotations

from typing import Optional

import click

from intellirack.cli_helpers import _get_client, echo_json, echo_table, fail, run_api
from intellirack.inventory import soon_empty
from intellirack.shopping import (
    EXTENSIONS,
    FORMATS,
    format_shopping_list,
    items_from_ingredients,
    make_item,
    parse_shopping_list,
)


def register(cli: click.Group) -> None:
    cli.add_command(shopping_list)


@click.group("shopping-list")
def shopping_list() -> None:
    """Export or import shopping lists as text, markdown, CSV or JSON."""


@shopping_list.command("export")
@click.option("--format", "fmt", type=click.Choice(FORMATS), default="text", show_default=True)
@click.option("--output", "-o", type=click.File("w"), default="-", help="File to write (default stdout).")
@click.option("--from-stock", is_flag=True, help="Add every ingredient that is about to run out.")
@click.option("--item", "names", multiple=True, help="Add an item by name (repeatable).")
@click.option("--input", "source", type=click.File("r"), default=None,
              help="Start from an existing list file (any supported format).")
def export(fmt: str, output, from_stock: bool, names: tuple[str, ...], source) -> None:  # type: ignore[no-untyped-def]
    """Write a shopping list in FORMAT."""
    items = []
    if source is not None:
        items.extend(run_api(parse_shopping_list, source.read(), source.name))
    if from_stock:
        data = run_api(_get_client().ingredients.summary)
        ingredients = data.get("ingredients", []) if isinstance(data, dict) else (data or [])
        items.extend(items_from_ingredients(soon_empty(ingredients)))
    for name in names:
        item = make_item(name)
        if item is None:
            fail(ValueError(f"Item name {name!r} has no readable characters"))
        items.append(item)

    if not items:
        fail(ValueError("Nothing to export; use --from-stock, --item or --input"))
    output.write(format_shopping_list(items, fmt))
    if output.name not in ("-", "<stdout>"):
        click.echo(f"Wrote {len(items)} item(s) to {output.name}", err=True)


@shopping_list.command("import")
@click.argument("source", type=click.File("r"), default="-")
@click.option("--format", "fmt", type=click.Choice(FORMATS), default=None,
              help="Input format when it cannot be told from the file name (e.g. stdin).")
@click.option("--json", "as_json", is_flag=True, help="Output the parsed items as JSON.")
def import_list(source, fmt: Optional[str], as_json: bool) -> None:  # type: ignore[no-untyped-def]
    """Read a shopping list from SOURCE (a file or - for stdin)."""
    filename = f"list.{EXTENSIONS[fmt]}" if fmt else source.name
    items = run_api(parse_shopping_list, source.read(), filename)
    if as_json:
        echo_json(items)
        return
    if not items:
        click.echo("No items found.")
        return
    echo_table(
        items,
        [("name", "ITEM"), ("quantity", "QTY"), ("priority", "PRIORITY"), ("notes", "NOTES")],
    )

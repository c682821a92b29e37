"""
IntelliRack command-line interface.

Usage::

    intellirack login --email me@example.com
    intellirack whoami
    intellirack devices list
    intellirack devices delete rack_002
    intellirack alerts list --active
    intellirack alerts ack <alert-id>
    intellirack ingredients summary
    intellirack ingredients show flour --view prediction
    intellirack discover --full-sweep --register
    intellirack command rack_002 tare
    intellirack command rack_002 set_thresholds --set low=150 --set critical=40
    intellirack watch --event deviceStatus --event alert
    intellirack shopping-list export --from-stock --format markdown -o list.md
"""

from __future__ import annotations

import logging
from typing import Optional

import click

from intellirack import __version__
from intellirack.cli_helpers import WELCOME_MESSAGE


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="intellirack")
@click.option("--api-url", default=None, help="Backend API base URL (e.g. http://host:5000/api).")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, api_url: Optional[str], verbose: bool) -> None:
    """IntelliRack: manage smart-shelf racks, alerts and discovery."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url
    if ctx.invoked_subcommand is None:
        click.echo(WELCOME_MESSAGE)


# ---------------------------------------------------------------------------
# Register command modules
# ---------------------------------------------------------------------------

from intellirack.commands import (  # noqa: E402
    account,
    devices,
    alerts,
    discover,
    shopping,
)

for _mod in [account, devices, alerts, discover, shopping]:
    _mod.register(main)

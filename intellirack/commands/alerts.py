"""Alert, log and ingredient commands.

    intellirack alerts list [--active] [--limit N]
    intellirack alerts ack <alert-id>
    intellirack alerts ack-all
    intellirack alerts delete <alert-id>
    intellirack alerts clear
    intellirack logs [--limit N]
    intellirack ingredients summary
    intellirack ingredients show <name> [--view usage]
"""

from __future__ import annotations

from typing import Optional

import click

from intellirack.cli_helpers import _get_client, echo_json, echo_table, run_api
from intellirack.inventory import (
    least_stocked,
    relative_time,
    soon_empty,
    top_stocked,
    weight_status,
)
from intellirack.resources import IngredientsAPI


def register(cli: click.Group) -> None:
    cli.add_command(alerts)
    cli.add_command(logs)
    cli.add_command(ingredients)


# ---------------------------------------------------------------------------
# intellirack alerts
# ---------------------------------------------------------------------------


@click.group()
def alerts() -> None:
    """Low-stock and device alerts."""


@alerts.command("list")
@click.option("--active", is_flag=True, help="Only unacknowledged alerts.")
@click.option("--limit", "-n", default=None, type=int, help="Maximum number of alerts.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def list_alerts(active: bool, limit: Optional[int], as_json: bool) -> None:
    """List alerts, newest first."""
    client = _get_client()
    if active:
        rows = run_api(client.alerts.active, limit or 5)
    else:
        rows = run_api(client.alerts.all, limit or 50)
    rows = rows or []
    if as_json:
        echo_json(rows)
        return
    if not rows:
        click.echo("No alerts.")
        return
    echo_table(
        [
            {
                "id": a.get("_id") or a.get("id"),
                "severity": a.get("severity"),
                "status": a.get("status"),
                "message": a.get("message"),
                "when": relative_time(a.get("createdAt") or a.get("timestamp")),
            }
            for a in rows
        ],
        [
            ("id", "ID"),
            ("severity", "SEVERITY"),
            ("status", "STATUS"),
            ("message", "MESSAGE"),
            ("when", "WHEN"),
        ],
    )


@alerts.command("ack")
@click.argument("alert_id")
def ack(alert_id: str) -> None:
    """Acknowledge one alert."""
    run_api(_get_client().alerts.acknowledge, alert_id)
    click.echo(f"Acknowledged {alert_id}")


@alerts.command("ack-all")
def ack_all() -> None:
    """Acknowledge every active alert."""
    run_api(_get_client().alerts.acknowledge_all)
    click.echo("All alerts acknowledged")


@alerts.command("delete")
@click.argument("alert_id")
def delete_alert(alert_id: str) -> None:
    run_api(_get_client().alerts.delete, alert_id)
    click.echo(f"Deleted {alert_id}")


@alerts.command("clear")
def clear() -> None:
    """Delete all acknowledged alerts."""
    run_api(_get_client().alerts.clear_acknowledged)
    click.echo("Cleared acknowledged alerts")


# ---------------------------------------------------------------------------
# intellirack logs
# ---------------------------------------------------------------------------


@click.command()
@click.option("--limit", "-n", default=3, show_default=True, help="Number of entries.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def logs(limit: int, as_json: bool) -> None:
    """Show the most recent rack activity."""
    rows = run_api(_get_client().logs.recent, limit) or []
    if as_json:
        echo_json(rows)
        return
    for entry in rows:
        when = relative_time(entry.get("timestamp") or entry.get("createdAt"))
        click.echo(
            f"{when:>10}  {entry.get('deviceId', '-')}  "
            f"{entry.get('ingredient') or '-'}  {entry.get('weight', '-')} g  "
            f"{entry.get('status') or ''}"
        )


# ---------------------------------------------------------------------------
# intellirack ingredients
# ---------------------------------------------------------------------------


@click.group()
def ingredients() -> None:
    """Ingredient stock and analytics."""


@ingredients.command("summary")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def summary(as_json: bool) -> None:
    """Current stock per ingredient with top, least and soon-empty lists."""
    data = run_api(_get_client().ingredients.summary)
    if as_json:
        echo_json(data)
        return
    items = data.get("ingredients", []) if isinstance(data, dict) else (data or [])
    if not items:
        click.echo("No ingredients tracked yet.")
        return
    echo_table(
        [
            {
                "name": i.get("name"),
                "weight": i.get("weight"),
                "status": weight_status(i.get("weight")),
                "device": i.get("deviceId"),
            }
            for i in items
        ],
        [("name", "INGREDIENT"), ("weight", "WEIGHT (g)"), ("status", "STATUS"), ("device", "RACK")],
    )
    click.echo("")
    click.echo("Top stocked:   " + (", ".join(i.get("name", "?") for i in top_stocked(items)) or "-"))
    click.echo("Least stocked: " + (", ".join(i.get("name", "?") for i in least_stocked(items)) or "-"))
    click.echo("Soon empty:    " + (", ".join(i.get("name", "?") for i in soon_empty(items)) or "-"))


@ingredients.command("show")
@click.argument("name")
@click.option(
    "--view",
    default="usage",
    show_default=True,
    type=click.Choice(IngredientsAPI.KINDS),
    help="Which analytics view to fetch.",
)
def show(name: str, view: str) -> None:
    """Fetch one analytics view for an ingredient."""
    api = _get_client().ingredients
    echo_json(run_api(api.detail, view, name))

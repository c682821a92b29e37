"""Device listing and deletion, rack commands and the live event stream."""

from __future__ import annotations

import json
import time
from typing import Optional

import click
from socketio.exceptions import ConnectionError as SocketConnectionError

from intellirack.cli_helpers import (
    _get_client,
    echo_json,
    echo_table,
    fail,
    parse_settings,
    run_api,
)
from intellirack.inventory import count_online, is_online, weight_status
from intellirack.realtime import CONSUMED_EVENTS, DEVICE_COMMANDS, build_command
from intellirack.resources import device_identifier


def register(cli: click.Group) -> None:
    cli.add_command(devices)
    cli.add_command(command)
    cli.add_command(watch)


# ---------------------------------------------------------------------------
# intellirack devices
# ---------------------------------------------------------------------------


@click.group()
def devices() -> None:
    """Racks registered to your account."""


@devices.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def list_devices(as_json: bool) -> None:
    """List your racks with online state and stock level."""
    client = _get_client()
    rows = run_api(client.devices.my) or []
    if as_json:
        echo_json(rows)
        return
    if not rows:
        click.echo("No devices registered. Run `intellirack discover --register`.")
        return
    table = [
        {
            "id": device_identifier(d),
            "name": d.get("name"),
            "location": d.get("location"),
            "ingredient": d.get("ingredient"),
            "weight": d.get("lastWeight"),
            "stock": weight_status(d.get("lastWeight"), d.get("weightThresholds")),
            "online": is_online(d),
        }
        for d in rows
    ]
    echo_table(
        table,
        [
            ("id", "ID"),
            ("name", "NAME"),
            ("location", "LOCATION"),
            ("ingredient", "INGREDIENT"),
            ("weight", "WEIGHT (g)"),
            ("stock", "STOCK"),
            ("online", "ONLINE"),
        ],
    )
    counts = count_online(rows)
    click.echo(f"\n{counts['online']} online, {counts['offline']} offline")


@devices.command("delete")
@click.argument("device_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def delete_device(device_id: str, yes: bool) -> None:
    """Remove a rack from your account.

    DEVICE_ID may be the rack ID or the backend's record ID.
    """
    client = _get_client()
    known = run_api(client.devices.my) or []
    match = next(
        (
            d
            for d in known
            if device_id in (d.get("rackId"), d.get("_id"), d.get("deviceId"), d.get("id"))
        ),
        {"rackId": device_id},
    )
    if not yes:
        click.confirm(f"Delete {match.get('name') or device_id}?", abort=True)
    deleted = run_api(client.devices.delete, match)
    click.echo(click.style(f"Deleted device {deleted}", fg="green"))


# ---------------------------------------------------------------------------
# intellirack command
# ---------------------------------------------------------------------------


@click.command()
@click.argument("device_id")
@click.argument("name", metavar="COMMAND", type=click.Choice(sorted(DEVICE_COMMANDS)))
@click.option("--ingredient", default=None, help="Ingredient for nfc_write.")
@click.option("--alert-id", default=None, help="Alert for acknowledge_alert.")
@click.option("--set", "settings", multiple=True, help="key=value for set_config/set_thresholds.")
@click.option("--wait", "wait_seconds", default=10.0, show_default=True,
              help="Seconds to wait for the rack's response (0 to skip).")
def command(
    device_id: str,
    name: str,
    ingredient: Optional[str],
    alert_id: Optional[str],
    settings: tuple[str, ...],
    wait_seconds: float,
) -> None:
    """Send COMMAND to a rack over the realtime socket.

    \b
    Examples:
        intellirack command rack_002 tare
        intellirack command rack_002 nfc_write --ingredient flour
        intellirack command rack_002 set_config --set ledEnabled=false
    """
    extra = parse_settings(settings)
    if ingredient is not None:
        extra["ingredient"] = ingredient
    if alert_id is not None:
        extra["alertId"] = alert_id
    # Validate before opening a socket.
    run_api(build_command, device_id, name, **extra)

    client = _get_client()
    rt = client.realtime()
    responses: list[dict] = []

    def on_response(data: dict) -> None:
        if isinstance(data, dict) and data.get("deviceId") == device_id:
            responses.append(data)

    rt.on("commandResponse", on_response)
    try:
        rt.connect()
    except SocketConnectionError as exc:
        fail(exc)
    try:
        run_api(rt.send_command, device_id, name, **extra)
        click.echo(f"Sent {name} to {device_id}")
        deadline = time.monotonic() + wait_seconds
        while not responses and time.monotonic() < deadline:
            time.sleep(0.1)
        if responses:
            data = responses[0]
            click.echo(f"Response: {data.get('message') or data.get('response') or 'Command completed'}")
        elif wait_seconds:
            click.echo("No response from device before timeout.", err=True)
    finally:
        rt.disconnect()


# ---------------------------------------------------------------------------
# intellirack watch
# ---------------------------------------------------------------------------


@click.command()
@click.option("--event", "events", multiple=True, type=click.Choice(CONSUMED_EVENTS),
              help="Only show these events (repeatable).")
@click.option("--device", "device_id", default=None, help="Only show events for this rack.")
def watch(events: tuple[str, ...], device_id: Optional[str]) -> None:
    """Stream live events from the backend until interrupted."""
    client = _get_client()
    rt = client.realtime()

    def printer(event: str):  # type: ignore[no-untyped-def]
        def _print(data: object) -> None:
            if device_id and not (isinstance(data, dict) and data.get("deviceId") == device_id):
                return
            stamp = time.strftime("%H:%M:%S")
            click.echo(f"{stamp} {event} {json.dumps(data, default=str)}")

        return _print

    for event in events or CONSUMED_EVENTS:
        rt.on(event, printer(event))
    try:
        rt.connect()
    except SocketConnectionError as exc:
        fail(exc)
    click.echo(f"Listening on {client.server_url} (Ctrl+C to stop)")
    try:
        rt.wait()
    except KeyboardInterrupt:
        pass
    finally:
        rt.disconnect()

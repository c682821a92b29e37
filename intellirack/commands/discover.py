"""Find racks on the local network and optionally register them."""

from __future__ import annotations

import asyncio
import time
from typing import Optional

import click
from socketio.exceptions import ConnectionError as SocketConnectionError

from intellirack.cli_helpers import _get_client, echo_json, fail, run_api
from intellirack.discovery import DeviceDiscovery, DiscoveredDevice, DiscoveryError


def register(cli: click.Group) -> None:
    cli.add_command(discover)


@click.command()
@click.option("--full-sweep", is_flag=True, help="Probe .1-.254 instead of only .100-.120.")
@click.option("--exhaustive", is_flag=True,
              help="Run every strategy even after the first one finds racks.")
@click.option("--range", "ranges", multiple=True, metavar="A.B.C",
              help="Network prefix to sweep (repeatable). Detected when omitted.")
@click.option("--timeout", "probe_timeout", default=1.5, show_default=True,
              help="Per-probe timeout in seconds (0.8-2.0).")
@click.option("--batch-size", default=25, show_default=True,
              help="Concurrent probes per batch (max 50).")
@click.option("--local-only", is_flag=True, help="Skip the backend-assisted strategies.")
@click.option("--register", "do_register", is_flag=True,
              help="Register every new rack found with your account.")
@click.option("--json", "as_json", is_flag=True, help="Output results as JSON.")
def discover(
    full_sweep: bool,
    exhaustive: bool,
    ranges: tuple[str, ...],
    probe_timeout: float,
    batch_size: int,
    local_only: bool,
    do_register: bool,
    as_json: bool,
) -> None:
    """Scan the network for IntelliRack devices.

    Racks are printed as soon as they answer.

    \b
    Examples:
        intellirack discover
        intellirack discover --full-sweep --range 192.168.4
        intellirack discover --register
    """
    client = _get_client(require_token=do_register)
    options = dict(
        probe_timeout=probe_timeout,
        batch_size=batch_size,
        full_sweep=full_sweep,
        exhaustive=exhaustive,
        base_ips=list(ranges) or None,
    )
    try:
        if local_only:
            scanner = DeviceDiscovery(None, **options)
        else:
            scanner = client.discovery(**options)
    except DiscoveryError as exc:
        fail(exc)

    if not as_json:
        click.echo("Strategies: " + " -> ".join(scanner.stats()["priorityOrder"]))

    def on_found(device: DiscoveredDevice) -> None:
        if as_json:
            return
        tag = click.style("registered", fg="green") if device.is_registered else click.style("new", fg="cyan")
        click.echo(
            f"  [{tag}] {device.display_name}  {device.ip_address or '-'}  "
            f"via {device.discovered_via} (P{device.priority})"
        )

    found = asyncio.run(scanner.discover(on_device_found=on_found))

    if as_json:
        echo_json([d.to_dict() for d in found])
    else:
        new = [d for d in found if not d.is_registered]
        click.echo(f"\nFound {len(found)} device(s): {len(new)} new, {len(found) - len(new)} already registered")

    if do_register:
        _register_new(client, [d for d in found if not d.is_registered])


def _register_new(client, devices: list[DiscoveredDevice], wait_seconds: float = 10.0) -> None:  # type: ignore[no-untyped-def]
    if not devices:
        click.echo("Nothing to register.")
        return
    rt = client.realtime()
    replies: list[dict] = []
    rt.on("deviceRegistered", replies.append)
    try:
        rt.connect()
    except SocketConnectionError as exc:
        fail(exc)
    try:
        for device in devices:
            run_api(rt.register_device, device.registration_payload())
            click.echo(f"Registering {device.display_name}...")
        deadline = time.monotonic() + wait_seconds
        while len(replies) < len(devices) and time.monotonic() < deadline:
            time.sleep(0.1)
    finally:
        rt.disconnect()

    for reply in replies:
        if isinstance(reply, dict) and reply.get("success"):
            click.echo(click.style("  Device registered successfully", fg="green"))
        else:
            error: Optional[str] = reply.get("error") if isinstance(reply, dict) else None
            click.echo(click.style(f"  Registration failed: {error or 'unknown error'}", fg="red"), err=True)
    if len(replies) < len(devices):
        click.echo(f"  {len(devices) - len(replies)} registration(s) not confirmed before timeout.", err=True)

"""Shared helpers for CLI commands.

Kept out of cli.py so command modules can import them without circular
imports.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Optional

import click

from .api_client import IntelliRackClientError
from .config import TOKEN_ENV_VAR, get_token

_logger = logging.getLogger(__name__)

WELCOME_MESSAGE = """\
IntelliRack: manage smart-shelf racks from the command line.

  intellirack login              Sign in and print a token
  intellirack devices list       Racks registered to you
  intellirack discover           Find racks on this network
  intellirack watch              Stream live rack events

Run `intellirack --help` for every command.
"""


def _get_client(require_token: bool = True):  # type: ignore[no-untyped-def]
    from .client import IntelliRackClient

    ctx = click.get_current_context(silent=True)
    api_url = None
    if ctx is not None and ctx.find_root().obj:
        api_url = ctx.find_root().obj.get("api_url")

    if require_token and not get_token():
        click.echo(
            f"No token found. Run `intellirack login` and export {TOKEN_ENV_VAR}.",
            err=True,
        )
        sys.exit(1)
    return IntelliRackClient(api_base=api_url)


def fail(exc: Exception) -> None:
    """Report *exc* and exit non-zero."""
    _logger.debug("Command failed", exc_info=True)
    click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
    sys.exit(1)


def run_api(fn, *args: Any, **kwargs: Any) -> Any:  # type: ignore[no-untyped-def]
    """Call *fn*, turning API errors into a clean CLI failure."""
    try:
        return fn(*args, **kwargs)
    except (IntelliRackClientError, ValueError) as exc:
        fail(exc)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def echo_table(rows: list[dict[str, Any]], columns: list[tuple[str, str]]) -> None:
    """Print *rows* as a fixed-width table; *columns* is ``(key, header)`` pairs."""
    if not rows:
        return
    widths = [
        max(len(header), *(len(_cell(r.get(key))) for r in rows)) for key, header in columns
    ]
    click.echo("  ".join(h.ljust(w) for (_, h), w in zip(columns, widths)))
    click.echo("  ".join("-" * w for w in widths))
    for row in rows:
        click.echo("  ".join(_cell(row.get(k)).ljust(w) for (k, _), w in zip(columns, widths)))


def _cell(value: Optional[Any]) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def parse_settings(pairs: tuple[str, ...]) -> dict[str, Any]:
    """Turn ``key=value`` pairs into a dict, decoding JSON scalars."""
    out: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--set")
        key, raw = pair.split("=", 1)
        try:
            out[key.strip()] = json.loads(raw)
        except ValueError:
            out[key.strip()] = raw
    return out

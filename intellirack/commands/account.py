"""Login, register, whoami, health and config commands."""

from __future__ import annotations

import click

from intellirack.cli_helpers import _get_client, echo_json, fail, run_api
from intellirack.config import TOKEN_ENV_VAR, get_api_base, load_config, save_config


def register(cli: click.Group) -> None:
    cli.add_command(login)
    cli.add_command(register_account)
    cli.add_command(whoami)
    cli.add_command(health)
    cli.add_command(config)


# ---------------------------------------------------------------------------
# intellirack login
# ---------------------------------------------------------------------------


@click.command()
@click.option("--email", prompt=True, help="Account email.")
@click.option("--password", prompt=True, hide_input=True, help="Account password.")
@click.option("--token-only", is_flag=True, help="Print only the token (for scripts).")
def login(email: str, password: str, token_only: bool) -> None:
    """Sign in and print a bearer token.

    The token is not stored; export it for later commands:

    \b
        export INTELLIRACK_TOKEN=$(intellirack login --email me@x.com --token-only)
    """
    client = _get_client(require_token=False)
    user = run_api(client.login, email, password)
    if token_only:
        click.echo(client.token)
        return
    click.echo(click.style(f"Signed in as {user.get('email') or email}", fg="green"))
    click.echo(f"\n  export {TOKEN_ENV_VAR}={client.token}\n")


# ---------------------------------------------------------------------------
# intellirack register
# ---------------------------------------------------------------------------


@click.command("register")
@click.option("--first-name", prompt=True)
@click.option("--last-name", prompt=True, default="")
@click.option("--email", prompt=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
def register_account(first_name: str, last_name: str, email: str, password: str) -> None:
    """Create an account."""
    client = _get_client(require_token=False)
    run_api(client.auth.register, first_name, last_name, email, password)
    click.echo(click.style("Account created. Run `intellirack login` to sign in.", fg="green"))


# ---------------------------------------------------------------------------
# intellirack whoami / health
# ---------------------------------------------------------------------------


@click.command()
def whoami() -> None:
    """Show the account the current token belongs to."""
    client = _get_client()
    user = client.current_user()
    if user is None:
        fail(RuntimeError(f"Token rejected; run `intellirack login` and re-export {TOKEN_ENV_VAR}."))
    click.echo(f"{user.get('name') or '-'} <{user.get('email') or '-'}> (id {user.get('id')})")


@click.command()
def health() -> None:
    """Check that the backend is reachable."""
    client = _get_client(require_token=False)
    data = run_api(client.network.health)
    click.echo(f"Backend: {client.server_url}")
    echo_json(data)


# ---------------------------------------------------------------------------
# intellirack config
# ---------------------------------------------------------------------------


@click.group()
def config() -> None:
    """Read or change ~/.intellirack/config.json."""


@config.command("set-url")
@click.argument("api_url")
def set_url(api_url: str) -> None:
    """Set the default backend API base URL."""
    cfg = load_config()
    cfg["api_url"] = api_url.rstrip("/")
    save_config(cfg)
    click.echo(f"API URL set to {cfg['api_url']}")


@config.command("show")
def show() -> None:
    """Print the effective configuration."""
    echo_json({"api_url": get_api_base(), "file": load_config()})

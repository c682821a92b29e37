"""CLI command modules. Each exposes ``register(cli)`` to attach its commands."""

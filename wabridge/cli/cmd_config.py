"""Offline edits of the persisted operator config."""

import click
from rich.table import Table

from wabridge.errors import ConfigWriteFailure

from . import cli
from .shared import _open_store, console


@cli.group()
def config():
    """Show or edit ~/.wabridge/config.json."""


def _save(store, patch: dict):
    try:
        store.save(patch)
    except ConfigWriteFailure as e:
        raise click.ClickException(f"Could not write {store.path}: {e}")
    except ValueError as e:
        raise click.BadParameter(str(e))


@config.command(name="show")
def show():
    """Show the persisted operator config."""
    store = _open_store()
    cfg = store.config

    table = Table(title="wabridge config", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    chat = cfg.control_channel_id
    table.add_row("control_channel_id", str(chat) if chat is not None else "[dim](unclaimed)[/dim]")
    table.add_row("auto_reply.enabled", "[green]ON[/green]" if cfg.auto_reply.enabled else "[red]OFF[/red]")
    table.add_row("auto_reply.text", cfg.auto_reply.text)

    console.print(table)
    console.print(f"[dim]{store.path}[/dim]")


@config.command(name="autoreply")
@click.argument("state", type=click.Choice(["on", "off"]))
@click.option("--text", default=None, help="New auto-reply message")
def autoreply(state, text):
    """Turn the auto-reply on or off."""
    store = _open_store()
    patch = {"auto_reply": {"enabled": state == "on"}}
    if text is not None:
        if not text.strip():
            raise click.BadParameter("auto-reply text cannot be empty", param_hint="--text")
        patch["auto_reply"]["text"] = text.strip()
    _save(store, patch)
    console.print(f"[green]✓ Auto-reply {state.upper()}[/green]")


@config.command(name="chat")
@click.argument("chat_id", type=int)
def chat(chat_id):
    """Set the Telegram control chat ID."""
    store = _open_store()
    _save(store, {"control_channel_id": chat_id})
    console.print(f"[green]✓ Control chat set to {chat_id}[/green]")

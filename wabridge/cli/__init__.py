"""wabridge CLI — command line interface."""

import click
from wabridge import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="wabridge")
@click.pass_context
def cli(ctx):
    """wabridge — WhatsApp to Telegram relay"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands grouped by category."""
    console.print(f"[bold]wabridge v{__version__}[/bold] — WhatsApp to Telegram relay\n")

    groups = {
        "Usage": [
            ("start", "Start the bridge (WhatsApp sync + Telegram bot)"),
        ],
        "Config": [
            ("config show", "Show the persisted operator config"),
            ("config autoreply", "Turn the auto-reply on/off (--text to change it)"),
            ("config chat", "Set the Telegram control chat ID"),
        ],
    }

    for category, commands in groups.items():
        console.print(f"  [bold cyan]{category}[/bold cyan]")
        for name, desc in commands:
            console.print(f"    [bold]wabridge {name:18s}[/bold] {desc}")
        console.print()

    console.print("[dim]Run 'wabridge <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_config  # noqa: E402, F401


@cli.command(name="help", hidden=True)
def help_cmd():
    """Show all available commands."""
    _show_help()


def main():
    """CLI entry point."""
    import sys
    try:
        cli(standalone_mode=False)
    except click.UsageError as e:
        if e.ctx:
            click.echo(e.ctx.command.get_usage(e.ctx), err=True)
        click.echo("Try 'wabridge help' for help.\n", err=True)
        click.echo(f"Error: {e.format_message()}", err=True)
        sys.exit(2)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Exit as e:
        sys.exit(e.code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)

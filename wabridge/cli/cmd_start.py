"""Start command."""

import asyncio
import logging

import click

from . import cli
from .shared import console


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Start the bridge."""
    from wabridge.main import run, setup_logging

    setup_logging()
    if debug:
        logging.getLogger("wabridge").setLevel(logging.DEBUG)

    console.print("[bold blue]Starting wabridge...[/bold blue]")
    asyncio.run(run())

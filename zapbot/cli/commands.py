"""CLI commands for zapbot."""

import asyncio
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from zapbot import __logo__, __version__

app = typer.Typer(
    name="zapbot",
    help=f"{__logo__} zapbot - WhatsApp sticker & assistant bot",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} zapbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """zapbot - WhatsApp sticker & assistant bot."""
    pass


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Connect to the bridge and start handling messages."""
    from zapbot.app import ZapBot
    from zapbot.config.loader import load_config
    from zapbot.logging_setup import configure_logging

    config = load_config(config_file)
    configure_logging("DEBUG" if verbose else config.logging.level, config.logging.file)

    if not config.owner.number:
        console.print("[yellow]Warning: owner.number is not set; operator reports are disabled[/yellow]")

    console.print(f"{__logo__} Starting zapbot (bridge: {config.bridge.url})...")

    async def _main():
        bot = ZapBot(config)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, bot.stop)
            except NotImplementedError:
                pass
        await bot.run()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass
    console.print("Goodbye!")


# ============================================================================
# Status
# ============================================================================


@app.command()
def status(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show zapbot status."""
    from zapbot.auth.credentials import load_credentials
    from zapbot.config.loader import get_config_path, load_config

    config_path = config_file or get_config_path()
    config = load_config(config_path)
    creds_path = config.credentials_path
    creds = load_credentials(creds_path)

    console.print(f"{__logo__} zapbot Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Session: {creds_path} {'[green]✓[/green]' if creds.registered else '[dim]not paired[/dim]'}")

    table = Table(show_header=False)
    table.add_row("Bridge", config.bridge.url)
    table.add_row("Prefix", config.bot.prefix)
    table.add_row("Owner", config.owner.number or "[dim]not set[/dim]")
    table.add_row("Backoff", f"{config.connection.base_delay}s .. {config.connection.max_delay}s")
    table.add_row(
        "Send retry",
        f"{config.retry.retries} tries, {config.retry.delay}s apart, {config.retry.timeout}s timeout",
    )
    table.add_row("Gemini", "[green]configured[/green]" if config.gemini.api_key else "[dim]not set[/dim]")
    console.print(table)


# ============================================================================
# Tools
# ============================================================================


@app.command()
def exif(
    output: Path = typer.Argument(..., help="Where to write the EXIF blob"),
    pack: str = typer.Option("zapbot", "--pack", "-p", help="Sticker pack name"),
    publisher: str = typer.Option("zapbot", "--publisher", help="Sticker pack publisher"),
):
    """Write a sticker EXIF blob (for use with `webpmux -set exif`)."""
    from zapbot.errors import EncodingError
    from zapbot.media.exif import sticker_attributes, write_exif

    try:
        write_exif(output, sticker_attributes(pack, publisher))
    except EncodingError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Wrote {output} ({output.stat().st_size} bytes)")


if __name__ == "__main__":
    app()

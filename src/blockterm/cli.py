"""Command-line interface: the interactive shell and stored-session tools."""

from __future__ import annotations

import asyncio
import logging
import platform
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from blockterm import __version__
from blockterm.config import (
    CONFIG_FILE,
    AppConfig,
    config_items,
    ensure_config_dir,
    load_config,
    save_config,
    set_value,
)
from blockterm.storage.sessions import SessionStore
from blockterm.utils.formatting import format_block, format_timestamp

app = typer.Typer(
    name="blockterm",
    help="Block-based shell mixing system commands and AI requests.",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig) -> None:
    log_path = Path(config.logging.file).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.FileHandler(str(log_path))],
    )


async def _with_store(config: AppConfig, action):
    store = SessionStore(config.storage.db_path)
    await store.initialize()
    try:
        return await action(store)
    finally:
        await store.close()


@app.command()
def start(
    resume: str = typer.Option(None, "--resume", "-r", help="Resume a stored session by id"),
) -> None:
    """Start the interactive shell."""
    config = load_config()
    setup_logging(config)

    from blockterm.repl import BlockShell

    shell = BlockShell(config, console=console, resume_id=resume)
    try:
        asyncio.run(shell.run())
    except KeyboardInterrupt:
        # Interrupt ends the whole session, including any running block.
        console.print("\n[yellow]Interrupted. Goodbye![/yellow]")
    except Exception as e:
        logger.exception("Unexpected error, shutting down")
        console.print(f"[red]Unexpected error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def sessions() -> None:
    """List stored sessions, most recent first."""
    config = load_config()

    async def action(store: SessionStore):
        return await store.list_sessions()

    rows = asyncio.run(_with_store(config, action))
    if not rows:
        console.print("[dim]No stored sessions.[/dim]")
        return

    table = Table(title="Sessions")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Started")
    table.add_column("Last saved")
    table.add_column("Blocks", justify="right", style="green")
    for summary in rows:
        table.add_row(
            summary.id,
            format_timestamp(summary.start_time),
            format_timestamp(summary.last_saved),
            str(summary.block_count),
        )
    console.print(table)


@app.command()
def show(session_id: str = typer.Argument(..., help="Session id")) -> None:
    """Print the blocks of a stored session."""
    config = load_config()

    async def action(store: SessionStore):
        if not await store.load_session_by_id(session_id):
            return None
        return store.get_blocks()

    blocks = asyncio.run(_with_store(config, action))
    if blocks is None:
        console.print(f"[red]Session not found: {escape(session_id)}[/red]")
        raise typer.Exit(1)
    if not blocks:
        console.print("[dim]Session has no blocks.[/dim]")
    for block in blocks:
        console.print(format_block(block), markup=False, highlight=False)
        console.print()


@app.command()
def delete(session_id: str = typer.Argument(..., help="Session id")) -> None:
    """Delete a stored session."""
    config = load_config()

    async def action(store: SessionStore):
        return await store.delete_session(session_id)

    if asyncio.run(_with_store(config, action)):
        console.print(f"[green]Deleted {escape(session_id)}[/green]")
    else:
        console.print(f"[yellow]Session not found: {escape(session_id)}[/yellow]")
        raise typer.Exit(1)


@app.command()
def config(
    key: str = typer.Argument(None, help="Dotted key, e.g. shell.timeout"),
    value: str = typer.Argument(None, help="Value to store"),
) -> None:
    """Show the configuration, or set one key."""
    cfg = load_config()

    if key is None:
        table = Table(title=f"Configuration ({CONFIG_FILE})")
        table.add_column("Setting", style="cyan", no_wrap=True)
        table.add_column("Current", style="green")
        for name, current in config_items(cfg):
            if name == "ai.api_key":
                shown = f"{current[:6]}..." if current else "(not set)"
            elif isinstance(current, list):
                shown = ", ".join(current)
            else:
                shown = str(current)
            table.add_row(name, shown)
        console.print(table)
        return

    if value is None:
        console.print("[red]Usage: blockterm config <section.key> <value>[/red]")
        raise typer.Exit(1)

    try:
        stored = set_value(cfg, key, value)
    except KeyError:
        console.print(f"[red]No such setting: {escape(key)}[/red]")
        raise typer.Exit(1)
    except ValueError:
        console.print(f"[red]Cannot convert {escape(repr(value))} for {escape(key)}[/red]")
        raise typer.Exit(1)

    save_config(cfg)
    logger.info("Config updated: %s", key)
    console.print(f"[green]Saved {escape(key)} = {escape(str(stored))}[/green]")


@app.command()
def logs(
    lines: int = typer.Option(50, "--lines", "-n", help="How many trailing lines to print"),
) -> None:
    """Print the tail of the log file."""
    log_path = Path(load_config().logging.file).expanduser()
    if not log_path.is_file():
        console.print(f"[dim]No log file at {escape(str(log_path))}.[/dim]")
        return

    for line in log_path.read_text().splitlines()[-lines:]:
        console.print(line, markup=False, highlight=False)


@app.command()
def init() -> None:
    """Write a default configuration file."""
    if CONFIG_FILE.exists() and not typer.confirm(f"{CONFIG_FILE} exists. Overwrite?", default=False):
        raise typer.Exit(0)
    ensure_config_dir()
    save_config(AppConfig())
    console.print(f"[green]Configuration saved to {CONFIG_FILE}[/green]")


@app.command()
def version() -> None:
    """Print version, interpreter and config location."""
    console.print(f"blockterm v{__version__}")
    console.print(f"[dim]{platform.python_implementation()} {platform.python_version()}, config at {CONFIG_FILE}[/dim]")


if __name__ == "__main__":
    app()

"""
Command-line entry point for Shadow Prompt.

Setup (`init`, `check`, `index`) produces and validates the configuration;
`run` starts the daemon with its local control surface.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shadow_prompt.config import AppConfig, default_config, dump_config, load_config
from shadow_prompt.errors import ConfigError
from shadow_prompt.ingest.embedder import HashingEmbedder
from shadow_prompt.ingest.pipeline import IngestPipeline
from shadow_prompt.obs.logs import configure_logging
from shadow_prompt.usage import UsageTracker

app = typer.Typer(help="Hotkey-driven answer assistant.")
console = Console()
logger = logging.getLogger(__name__)

EXIT_CODE_OK = 0
EXIT_CODE_CONFIG = 1

_CONFIG_OPTION = typer.Option(Path("config.yaml"), "--config", "-c", help="Path to the YAML config file")


def _load(path: Path) -> AppConfig:
    try:
        return load_config(path)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_CODE_CONFIG) from exc


@app.command()
def init(
    config: Path = _CONFIG_OPTION,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a starter configuration file."""
    if config.exists() and not force:
        console.print(f"[yellow]{config} already exists[/]; use --force to overwrite")
        raise typer.Exit(code=EXIT_CODE_CONFIG)
    path = dump_config(default_config(), config)
    console.print(f"[green]✓[/] Wrote default configuration to {path}")


@app.command()
def check(config: Path = _CONFIG_OPTION) -> None:
    """Validate the configuration and show the provider chain."""
    settings = _load(config)

    table = Table(title=f"Providers ({settings.providers.mode.value} mode)")
    table.add_column("Order", justify="right")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Model")
    table.add_column("Credential")
    for position, spec in enumerate(settings.providers.ordered(), start=1):
        credential = "set" if spec.resolved_credential() else "[yellow]missing[/]"
        table.add_row(str(position), spec.name, spec.kind.value, spec.model_id, credential)
    console.print(table)

    bindings = settings.hotkeys.resolve()
    for warning in bindings.warnings:
        console.print(f"[yellow]Warning:[/] {warning}")
    limit = settings.usage.daily_limit
    console.print(f"Daily limit: {'unlimited' if limit is None else limit}")
    console.print(f"Knowledge retrieval: {'enabled' if settings.rag.enabled else 'disabled'}")
    search = settings.search
    console.print(f"Web search: {search.engine.value if search.enabled else 'disabled'}")
    console.print("[green]✓[/] Configuration is valid")


@app.command()
def index(config: Path = _CONFIG_OPTION) -> None:
    """Build the local knowledge index from the knowledge folder."""
    settings = _load(config)
    configure_logging(settings.logging)
    pipeline = IngestPipeline(HashingEmbedder())
    knowledge = pipeline.build(settings.rag.knowledge_dir)
    path = knowledge.save(settings.rag.index_path)
    console.print(f"[green]✓[/] Indexed {len(knowledge)} chunks into {path}")


@app.command()
def usage(
    config: Path = _CONFIG_OPTION,
    days: int = typer.Option(7, "--days", "-d", min=1, help="Number of days to show"),
) -> None:
    """Show recent daily query counts."""
    settings = _load(config)
    tracker = UsageTracker(settings.usage)

    table = Table(title="Queries per day")
    table.add_column("Date")
    table.add_column("Count", justify="right")
    table.add_column("Remaining", justify="right")
    for record in tracker.history(days):
        remaining = "∞" if record.remaining is None else str(record.remaining)
        table.add_row(record.date, str(record.count), remaining)
    console.print(table)


@app.command()
def run(
    config: Path = _CONFIG_OPTION,
    host: str | None = typer.Option(None, "--host", help="Override api.host"),
    port: int | None = typer.Option(None, "--port", help="Override api.port"),
    debug: bool = typer.Option(False, "--debug", help="Log at DEBUG level"),
) -> None:
    """Start the daemon and its local HTTP control surface."""
    from shadow_prompt.api.main import create_app
    from shadow_prompt.core.daemon import Daemon

    settings = _load(config)
    configure_logging(settings.logging, debug=debug)

    server: uvicorn.Server | None = None
    panicked = threading.Event()

    def _exit() -> None:
        panicked.set()
        if server is not None:
            server.should_exit = True

    daemon = Daemon(settings, on_exit=_exit)
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(daemon),
            host=host or settings.api.host,
            port=port or settings.api.port,
            log_level="debug" if debug else "info",
        )
    )
    daemon.start()
    try:
        server.run()
    finally:
        if not panicked.is_set():
            daemon.stop()
        logger.info("Daemon stopped")
    if panicked.is_set():
        # Panic ends the process without waiting for in-flight provider calls.
        logging.shutdown()
        os._exit(EXIT_CODE_OK)


if __name__ == "__main__":
    app()

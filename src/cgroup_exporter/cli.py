"""CLI for the cgroup exporter.

Provides a rich command-line interface using Typer for:
- Serving metrics over HTTP
- Printing a single scrape
- Validating configuration
- Previewing which cgroups are selected and how they are named
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path

import typer
from prometheus_client import CollectorRegistry, generate_latest, start_http_server
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cgroup_exporter.core.config import load_config
from cgroup_exporter.core.errors import CgroupExporterError, NameResolutionError
from cgroup_exporter.core.schemas import ExporterConfig
from cgroup_exporter.exporter import CgroupCollector, Scraper
from cgroup_exporter.naming.resolver import resolve_name
from cgroup_exporter.naming.rules import Literal, RemovePrefix, Shell, Template
from cgroup_exporter.utils.logging import setup_logging

app = typer.Typer(
    name="cgroup-exporter",
    help="Prometheus exporter for per-cgroup resource usage",
    add_completion=False,
)

console = Console(stderr=True)

_CONFIG_OPTION = typer.Option(
    ..., "--config", "-c", help="Path to exporter configuration file (YAML/JSON)"
)


def _load(config: Path) -> ExporterConfig:
    try:
        return load_config(config)
    except (OSError, ValueError, ValidationError) as e:
        console.print(f"[bold red]Error loading config: {e}[/]")
        raise typer.Exit(1) from e


def _build_registry(
    exporter_config: ExporterConfig, fatal: threading.Event | None = None
) -> CollectorRegistry:
    registry = CollectorRegistry()
    registry.register(
        CgroupCollector(
            Scraper.from_config(exporter_config),
            namespace=exporter_config.namespace,
            labels=exporter_config.labels,
            fatal=fatal,
        )
    )
    return registry


@app.command()
def serve(
    config: Path = _CONFIG_OPTION,
    address: str | None = typer.Option(None, "--address", "-a", help="Listen address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Listen port"),
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Logging level"),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write logs to file in addition to console"
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Output logs in JSON format (for programmatic parsing)"
    ),
) -> None:
    """Serve metrics over HTTP until interrupted."""
    setup_logging(
        level=log_level, log_file=log_file, json_format=json_logs, rich_console=not json_logs
    )
    exporter_config = _load(config)

    if address is not None:
        exporter_config.server.address = address
    if port is not None:
        exporter_config.server.port = port

    fatal = threading.Event()
    registry = _build_registry(exporter_config, fatal)

    server, thread = start_http_server(
        exporter_config.server.port, addr=exporter_config.server.address, registry=registry
    )
    console.print(
        f"[bold green]Serving metrics on "
        f"http://{exporter_config.server.address}:{exporter_config.server.port}/metrics[/]"
    )

    try:
        fatal.wait()
    except KeyboardInterrupt:
        console.print("[bold blue]Shutting down[/]")
        return
    finally:
        server.shutdown()
        thread.join(timeout=2.0)

    console.print("[bold red]Configuration invariant violated, exiting[/]")
    raise typer.Exit(2)


@app.command()
def scrape(
    config: Path = _CONFIG_OPTION,
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level"),
) -> None:
    """Run one scrape and print the exposition text to stdout."""
    setup_logging(level=log_level)
    exporter_config = _load(config)

    try:
        output = generate_latest(_build_registry(exporter_config))
    except CgroupExporterError as e:
        console.print(f"[bold red]Scrape failed: {e}[/]")
        raise typer.Exit(1) from e

    sys.stdout.write(output.decode("utf-8"))


@app.command("check-config")
def check_config(config: Path = _CONFIG_OPTION) -> None:
    """Validate a configuration file and show its rules."""
    exporter_config = _load(config)

    table = Table(title="Exporter Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Namespace", exporter_config.namespace or "-")
    table.add_row("cgroup root", str(exporter_config.cgroup_root))
    table.add_row("proc root", str(exporter_config.proc_root))
    table.add_row("Listen", f"{exporter_config.server.address}:{exporter_config.server.port}")
    table.add_row("Shell timeout", f"{exporter_config.shell_timeout_seconds}s")
    table.add_row("Rules", str(len(exporter_config.cgroups)))
    console.print(table)

    rules_table = Table(title="Rules (first match wins)")
    rules_table.add_column("#", style="dim")
    rules_table.add_column("Selector", style="cyan")
    rules_table.add_column("Rewrite", style="green")
    for i, rule in enumerate(exporter_config.name_rules(), start=1):
        rules_table.add_row(
            str(i), escape(rule.describe()), escape(_describe_rewrite(rule.rewrite))
        )
    console.print(rules_table)

    console.print("[bold green]Configuration is valid![/]")


@app.command("list-cgroups")
def list_cgroups(
    config: Path = _CONFIG_OPTION,
    resolve: bool = typer.Option(
        True, "--resolve/--no-resolve", help="Resolve display names (runs shell templates)"
    ),
) -> None:
    """Show which cgroups the rules select and the names they resolve to."""
    setup_logging(level="WARNING")
    exporter_config = _load(config)
    scraper = Scraper.from_config(exporter_config)

    table = Table(title=f"cgroups under {exporter_config.cgroup_root}")
    table.add_column("Path", style="cyan")
    table.add_column("Rule", style="white")
    table.add_column("Name", style="green")

    try:
        paths = scraper.explorer.iter_paths()
    except CgroupExporterError as e:
        console.print(f"[bold red]{e}[/]")
        raise typer.Exit(1) from e

    for path, rule in scraper.matcher.select(paths):
        if not resolve:
            name = "-"
        else:
            try:
                name = escape(resolve_name(path, rule, scraper.evaluator))
            except NameResolutionError as e:
                name = f"[red]error: {escape(str(e))}[/]"
        table.add_row(escape(path), escape(rule.describe()), name)

    console.print(table)


def _describe_rewrite(rewrite: RemovePrefix | Template | None) -> str:
    if rewrite is None:
        return "-"
    if isinstance(rewrite, RemovePrefix):
        return f"remove_prefix: {rewrite.prefix}"
    if isinstance(rewrite.spec, Shell):
        return f"shell ({rewrite.spec.output.value}): {rewrite.spec.command}"
    if isinstance(rewrite.spec, Literal):
        return f"name: {rewrite.spec.template}"
    return repr(rewrite)


if __name__ == "__main__":
    app()

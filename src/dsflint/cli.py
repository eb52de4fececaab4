"""CLI interface for dsflint using Typer framework."""

import json as jsonlib
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from dsflint import __description__, __version__
from dsflint.config import DsflintConfig, create_default_config, find_config_file, load_config
from dsflint.discovery import DESCRIPTOR_FILE_NAME, find_descriptor, load_plugin_contexts
from dsflint.models.items import Severity
from dsflint.service import PluginValidationService, overall_exit_code
from dsflint.validation.framework import ValidationResult

app = typer.Typer(
    name="dsflint",
    help=__description__,
    add_completion=False,
    rich_markup_mode="rich"
)

console = Console()

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

SEVERITY_STYLES = {
    Severity.ERROR: "red",
    Severity.WARN: "yellow",
    Severity.INFO: "cyan",
    Severity.SUCCESS: "green",
}


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"dsflint {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-V", callback=_version_callback, is_eager=True, help="Show version and exit")
    ] = None,
) -> None:
    """Linter for DSF process plugins."""


def _configure_logging(config: DsflintConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else LOG_LEVELS.get(config.logging.level, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def validate(
    path: Annotated[
        Path,
        typer.Argument(help="Path to the plugin project directory")
    ] = Path("."),
    plugins: Annotated[
        Optional[Path],
        typer.Option("--plugins", "-p", help=f"Plugin descriptor file (default: {DESCRIPTOR_FILE_NAME} in the project)")
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .dsflint.json)")
    ] = None,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: table, json (default: table)")
    ] = "table",
    show_success: Annotated[
        bool,
        typer.Option("--show-success", help="Also list SUCCESS and INFO items in table output")
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """Validate the process plugins of a project."""
    valid_formats = ["table", "json"]
    if format not in valid_formats:
        console.print(f"[red]Error:[/red] Invalid format '{format}'. Must be one of: {', '.join(valid_formats)}")
        raise typer.Exit(1)

    path = path.resolve()
    if not path.is_dir():
        console.print(f"[red]Error:[/red] Project directory not found: {path}")
        raise typer.Exit(1)

    try:
        config_path = config or find_config_file(path)
        dsflint_config = load_config(config_path) if config_path else create_default_config()
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _configure_logging(dsflint_config, verbose)

    descriptor = plugins or find_descriptor(path)
    if descriptor is None:
        console.print(f"[red]Error:[/red] No plugin descriptor found in {path}")
        console.print(f"[dim]Create {DESCRIPTOR_FILE_NAME} or pass --plugins[/dim]")
        raise typer.Exit(1)

    try:
        contexts = load_plugin_contexts(descriptor, dsflint_config)
        results = PluginValidationService(dsflint_config).validate_project(path, contexts)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if format == "json":
        payload = {
            "project": str(path),
            "exit_code": overall_exit_code(results),
            "plugins": [result.to_dict() for result in results.values()],
        }
        typer.echo(jsonlib.dumps(payload, indent=2))
    else:
        for result in results.values():
            _print_result(result, show_success)

    raise typer.Exit(overall_exit_code(results))


def _print_result(result: ValidationResult, show_success: bool) -> None:
    style = SEVERITY_STYLES[result.status]
    console.print(f"\n[bold]Plugin:[/bold] {result.plugin}  [{style}]{result.status.value}[/{style}]")

    shown = [
        item for item in result.items
        if show_success or item.severity in (Severity.ERROR, Severity.WARN)
    ]
    if shown:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Severity")
        table.add_column("Category")
        table.add_column("File")
        table.add_column("Message")
        for item in shown:
            item_style = SEVERITY_STYLES[item.severity]
            table.add_row(
                f"[{item_style}]{item.severity.value}[/{item_style}]",
                item.category.value,
                item.file or "",
                item.message,
            )
        console.print(table)

    summary = ", ".join(f"{severity.value}: {result.count(severity)}" for severity in Severity)
    console.print(f"[dim]{summary}[/dim]")


if __name__ == "__main__":
    app()

"""
Human-readable output formatting.

Centralizes all CLI output so commands stay thin. Deployment progress is
written through ``ConsoleSink``, which prefixes every line with its service
name and serializes writes from concurrent runs.
"""
from __future__ import annotations

import threading
from typing import Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..registry.client import PushResult
from .config_store import DeployerConfig
from .events import DeploymentEvent, EventLevel
from .orchestrator import DeploymentResult

_console = Console()
_err_console = Console(stderr=True)

_LEVEL_STYLES = {
    EventLevel.INFO: "",
    EventLevel.SUCCESS: "green",
    EventLevel.WARNING: "yellow",
    EventLevel.ERROR: "bold red",
}


class ConsoleSink:
    """LogSink writing ``[service] message`` lines to the terminal."""

    def __init__(self, console: Console | None = None):
        self.console = console or _console
        self._lock = threading.Lock()

    def emit(self, event: DeploymentEvent) -> None:
        style = _LEVEL_STYLES.get(event.level, "")
        body = escape(event.message)
        if style:
            body = f"[{style}]{body}[/]"
        line = f"[cyan]\\[{escape(event.service)}][/] {body}"
        with self._lock:
            self.console.print(line, highlight=False)


class ConsoleNotifier:
    """Notifier rendering the terminal outcome as a panel."""

    def __init__(self, console: Console | None = None):
        self.console = console or _console
        self._lock = threading.Lock()

    def show(self, kind: str, title: str, message: str) -> None:
        style = "green" if kind == "success" else "red"
        with self._lock:
            self.console.print(Panel(escape(message), title=escape(title), border_style=style, expand=False))


def print_error(error: BaseException) -> None:
    """Print an error to stderr."""
    _err_console.print(f"[bold red]Error:[/] {escape(str(error))}", highlight=False)


def print_push_summary(result: PushResult, reference: str, tag: str) -> None:
    """
    Print the outcome of a registry-only push.

    Args:
        result: Push result
        reference: Registry reference the image was pushed to
        tag: Tag that was published
    """
    blobs = [result.config, *result.layers]
    total = sum(blob.size for blob in blobs)
    _console.print(f"[bold]Pushed:[/] {escape(reference)}:{escape(tag)}")
    _console.print(f"[bold]Manifest:[/] [dim]{result.manifest.digest}[/]")
    _console.print(f"[bold]Blobs:[/] {result.uploaded_count} uploaded, "
                   f"{len(blobs) - result.uploaded_count} already present ({_format_bytes(total)})")


def print_deploy_summary(results: Sequence[DeploymentResult]) -> None:
    """Print one row per deployment run."""
    table = Table(title="Deployments")
    table.add_column("Service", style="cyan")
    table.add_column("Status")
    table.add_column("Tag")
    table.add_column("Manifest file")
    table.add_column("Detail")

    for result in results:
        if result.succeeded:
            status = "[green]succeeded[/]"
            detail = result.commit_sha[:12] if result.commit_sha else "no change"
        else:
            status = "[red]failed[/]"
            stage = result.failed_stage.label if result.failed_stage else "init"
            detail = f"{stage}: {escape(str(result.error))}"
            if result.inconsistent:
                detail += " [yellow](image published, manifest not updated)[/]"
        table.add_row(
            escape(result.service_name),
            status,
            escape(result.tag or "-"),
            escape(result.target_path or "-"),
            detail,
        )

    _console.print(table)


def print_services(config: DeployerConfig) -> None:
    """Print configured services with their registry and last tag."""
    if not config.service_configs:
        _console.print("[dim]No services configured[/]")
        return

    table = Table(title="Services")
    table.add_column("Service", style="cyan")
    table.add_column("Registry")
    table.add_column("Last tag", style="yellow")
    table.add_column("Manifest path")

    for name, service in sorted(config.service_configs.items()):
        table.add_row(
            escape(name),
            escape(service.registry_url or "-"),
            escape(service.last_tag or "-"),
            escape(service.manifest_path or "-"),
        )

    _console.print(table)


def _format_bytes(size: int) -> str:
    """Format byte size in human-readable format."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024:
            return f"{size:.1f} {unit}" if unit != 'B' else f"{size} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


__all__ = [
    "ConsoleNotifier",
    "ConsoleSink",
    "print_deploy_summary",
    "print_error",
    "print_push_summary",
    "print_services",
]

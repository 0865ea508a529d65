"""
Image Deployer CLI

Commands:
- deploy: Push image archives and update their GitOps manifests
- push: Push an image archive to a registry only
- services: List configured services and their last deployed tags
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .cli_context import CLIContext
from .operations import OpsConfig, run_and_exit
from .operations.mappers import exit_code_for_results
from .operations.printers import print_deploy_summary, print_push_summary, print_services

app = typer.Typer(name="image-deployer", help="Push container images without a daemon and roll them out via GitOps")


def _create_context() -> CLIContext:
    """Build the context for one command (tests replace this)."""
    return CLIContext.from_env()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    if not verbose:
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"image-deployer {__version__}")
        raise typer.Exit()


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show version and exit"),
) -> None:
    """Push container images without a daemon and roll them out via GitOps."""
    _configure_logging(verbose)


@app.command()
def deploy(
    services: List[str] = typer.Argument(..., help="Service names from the config store"),
    tag: str = typer.Option(..., "--tag", "-t", help="Image tag to publish and deploy"),
    archive: Optional[Path] = typer.Option(None, "--archive", help="Image archive (default: images/<service>.tar)"),
    registry: Optional[str] = typer.Option(None, "--registry", help="Registry reference override (host/repository)"),
    manifest_path: Optional[str] = typer.Option(None, "--manifest-path",
                                                help="Manifest file or directory inside the git repository"),
    parallel: int = typer.Option(1, "--parallel", min=1, help="Maximum services deployed concurrently"),
) -> None:
    """Push each service's image archive and update its manifest tag."""

    def _deploy() -> None:
        context = _create_context()
        ops = context.operations(OpsConfig(parallel=parallel))

        results = ops.deploy(
            services,
            tag,
            archive_path=archive,
            registry_url=registry,
            manifest_path=manifest_path,
        )
        print_deploy_summary(results)

        code = exit_code_for_results(result.error for result in results)
        if code:
            raise typer.Exit(code=code)

    run_and_exit(_deploy)


@app.command()
def push(
    archive: Path = typer.Argument(..., help="Image archive (docker save output)"),
    reference: str = typer.Argument(..., help="Registry reference (host/repository)"),
    tag: str = typer.Option(..., "--tag", "-t", help="Tag to publish"),
) -> None:
    """Push an image archive to a registry without updating any manifest."""

    def _push() -> None:
        context = _create_context()
        ops = context.operations()

        result = ops.push(archive, reference, tag)
        print_push_summary(result, reference, tag)

    run_and_exit(_push)


@app.command()
def services() -> None:
    """List configured services and their last deployed tags."""

    def _services() -> None:
        context = _create_context()
        print_services(context.operations().services())

    run_and_exit(_services)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

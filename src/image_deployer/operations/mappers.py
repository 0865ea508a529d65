"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and the CLI command
wrapper so every Typer command handles errors the same way.
"""
from __future__ import annotations

from typing import Callable, Iterable, Optional, TypeVar

import typer

T = TypeVar('T')

EXIT_CODES = {
    "ValueError": 2,
    "KeyError": 2,
    "ValidationError": 2,
    "ArchiveFormatError": 3,
    "RegistryRequestError": 4,
    "BlobUploadError": 4,
    "ManifestPushError": 4,
    "GitCloneError": 5,
    "GitPushError": 6,
    "ManifestNotFoundError": 7,
    "TagPatchError": 8,
    "DeploymentTimeoutError": 9,
}

FALLBACK_EXIT_CODE = 1


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to exit code.

    - 0: Success
    - 2: Invalid input (ValueError, KeyError, ValidationError)
    - 3: Image archive missing or malformed
    - 4: Registry failure (request, blob upload, manifest push)
    - 5: Git clone failed
    - 6: Git push failed or was rejected
    - 7: No manifest found for the service
    - 8: Image tag could not be patched
    - 9: Deployment deadline exceeded
    - 1: Anything else
    """
    return EXIT_CODES.get(type(exc).__name__, FALLBACK_EXIT_CODE)


def exit_code_for_results(errors: Iterable[Optional[BaseException]]) -> int:
    """Exit code for a batch: the code of the first failure, 0 if none failed."""
    for error in errors:
        if error is not None:
            return exit_code_for(error)
    return 0


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes ``func``; any exception is printed and converted into
    ``typer.Exit`` with the mapped code. ``typer.Exit`` raised by ``func``
    passes through unchanged.

    Raises:
        typer.Exit: With appropriate exit code if ``func`` raises
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        from .printers import print_error
        print_error(e)
        raise typer.Exit(code=exit_code_for(e)) from e


__all__ = ["EXIT_CODES", "FALLBACK_EXIT_CODE", "exit_code_for", "exit_code_for_results", "run_and_exit"]

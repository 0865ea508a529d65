"""
Repository coordinate helpers.

Centralizes the logic for splitting a user-supplied ``host/path`` registry
reference into registry host and repository path, and for deriving the
service identifier used to find and patch manifests.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

_REPO_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*(?:/[a-z0-9][a-z0-9._-]*)*$")
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")


@dataclass(frozen=True)
class RepositoryCoordinate:
    """Registry host plus repository path."""
    registry_host: str
    repository: str

    @property
    def identifier(self) -> str:
        """Final path segment of the repository (e.g. ``svc-worker``)."""
        return service_identifier(self.repository)

    def __str__(self) -> str:
        return f"{self.registry_host}/{self.repository}"


def parse_coordinate(reference: str) -> RepositoryCoordinate:
    """
    Split ``host/path`` on the first separator.

    A leading ``http://``/``https://`` scheme is kept on the host so the
    transport can honor it.

    Args:
        reference: Registry reference (e.g., "harbor.local:80/team/api")

    Returns:
        RepositoryCoordinate

    Raises:
        ValueError: If the reference has no repository path or the path does
            not follow registry naming rules

    Examples:
        >>> parse_coordinate("myhost/ns/svc")
        RepositoryCoordinate(registry_host='myhost', repository='ns/svc')

        >>> parse_coordinate("http://localhost:5000/app")
        RepositoryCoordinate(registry_host='http://localhost:5000', repository='app')
    """
    if not reference or not reference.strip():
        raise ValueError("registry reference cannot be empty")

    reference = reference.strip().rstrip("/")
    scheme = ""
    for prefix in ("http://", "https://"):
        if reference.startswith(prefix):
            scheme = prefix
            reference = reference[len(prefix):]
            break

    if "/" not in reference:
        raise ValueError(f"Invalid registry reference: {reference}. Expected <host>/<repository>")

    host, repository = reference.split("/", 1)
    if not host or not repository:
        raise ValueError(f"Invalid registry reference: {reference}. Both host and repository must be non-empty")

    if not _REPO_RE.match(repository):
        raise ValueError(f"Invalid repository path: {repository}. Must follow registry naming conventions.")

    return RepositoryCoordinate(registry_host=f"{scheme}{host}", repository=repository)


def service_identifier(repository: str) -> str:
    """
    Derive the short service identifier from a repository path.

    Examples:
        >>> service_identifier("sth/sth-worker")
        'sth-worker'
    """
    if not repository:
        raise ValueError("repository cannot be empty")
    return repository.rstrip("/").rsplit("/", 1)[-1]


def validate_tag(tag: str) -> str:
    """
    Check a tag against the registry tag grammar.

    Raises:
        ValueError: If the tag is empty, too long or contains illegal characters
    """
    if not tag or not _TAG_RE.match(tag):
        raise ValueError(f"Invalid image tag: {tag!r}")
    return tag


__all__ = ["RepositoryCoordinate", "parse_coordinate", "service_identifier", "validate_tag"]

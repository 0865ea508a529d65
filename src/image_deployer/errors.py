"""
Deployment error classes.

Provides a clear taxonomy of errors that can occur during a deployment run.
Every error is fatal to the run that raised it; the only automatic retry in
the system is the single bearer-challenge retry inside the registry transport.
"""
from __future__ import annotations

from typing import Optional


class DeployerError(Exception):
    """Base class for all deployment errors."""
    pass


class ArchiveFormatError(DeployerError):
    """
    Image archive is missing, unreadable or malformed.

    Raised when:
    - The archive file does not exist or is not a tar stream
    - manifest.json is absent, unparsable or empty
    - A file referenced by the index is missing from the archive
    """
    pass


class RegistryRequestError(DeployerError):
    """
    HTTP request to the registry failed.

    Carries the response status and body when the server answered, or only
    the message for transport-level failures (connection refused, timeout).
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None,
                 body: Optional[str] = None, method: Optional[str] = None,
                 url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url


class BlobUploadError(DeployerError):
    """Uploading a layer or config blob failed."""

    def __init__(self, message: str, *, digest: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.digest = digest
        self.status_code = status_code


class ManifestPushError(DeployerError):
    """
    Publishing the image manifest failed.

    Raised when:
    - The registry rejects the manifest PUT
    - The registry's Docker-Content-Digest differs from the local digest
    """

    def __init__(self, message: str, *, reference: Optional[str] = None,
                 status_code: Optional[int] = None, expected: Optional[str] = None,
                 actual: Optional[str] = None):
        super().__init__(message)
        self.reference = reference
        self.status_code = status_code
        self.expected = expected
        self.actual = actual


class GitCloneError(DeployerError):
    """Cloning the manifest repository failed (transport, auth, missing git)."""
    pass


class GitPushError(DeployerError):
    """
    Committing or pushing the manifest change failed.

    No merge or rebase is attempted. ``rejected`` is set when the remote
    refused a non-fast-forward update.
    """

    def __init__(self, message: str, *, rejected: bool = False):
        super().__init__(message)
        self.rejected = rejected


class ManifestNotFoundError(DeployerError):
    """No YAML file in the repository references the service identifier."""
    pass


class TagPatchError(DeployerError):
    """The located manifest file could not be patched with the new tag."""
    pass


class DeploymentTimeoutError(DeployerError):
    """The deployment pipeline exceeded its overall deadline."""
    pass


__all__ = [
    "DeployerError",
    "ArchiveFormatError",
    "RegistryRequestError",
    "BlobUploadError",
    "ManifestPushError",
    "GitCloneError",
    "GitPushError",
    "ManifestNotFoundError",
    "TagPatchError",
    "DeploymentTimeoutError",
]

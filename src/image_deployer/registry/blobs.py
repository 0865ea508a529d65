"""
Blob pusher.

Uploads one content blob (layer or config) to a repository with a single
monolithic PUT, skipping blobs the registry already holds.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..digest import digest_file
from ..errors import BlobUploadError, RegistryRequestError
from .transport import RegistryTransport

logger = logging.getLogger(__name__)

__all__ = ["PushedBlob", "BlobPusher"]


@dataclass(frozen=True)
class PushedBlob:
    """A blob known to be present in the repository."""
    digest: str
    size: int
    path: Path
    uploaded: bool  # False when the registry already had it


class BlobPusher:
    """Push blobs through a shared RegistryTransport."""

    def __init__(self, transport: RegistryTransport):
        self.transport = transport

    def push(self, repository: str, file_path: Path) -> PushedBlob:
        """
        Ensure the file's content exists as a blob in ``repository``.

        Args:
            repository: Repository path (e.g., "ns/svc")
            file_path: Local blob file

        Returns:
            PushedBlob with digest and size

        Raises:
            BlobUploadError: If starting or completing the upload fails
        """
        digest, size = digest_file(file_path)
        short = digest[7:19]

        logger.info(f"Checking blob {short}...")
        if self.exists(repository, digest):
            logger.info(f"Blob {short} already exists.")
            return PushedBlob(digest=digest, size=size, path=file_path, uploaded=False)

        logger.info(f"Uploading blob {short} ({size / 1024 / 1024:.2f} MB)...")
        location = self._start_upload(repository, digest)
        self._complete_upload(location, digest, size, file_path)
        logger.info(f"Upload complete: {short}")

        return PushedBlob(digest=digest, size=size, path=file_path, uploaded=True)

    def exists(self, repository: str, digest: str) -> bool:
        """
        HEAD the blob.

        Only a 2xx answer counts as present. Errors other than 404 are
        logged and treated as absent so that registries without HEAD
        support still receive the upload.
        """
        try:
            self.transport.execute("HEAD", f"/v2/{repository}/blobs/{digest}")
        except RegistryRequestError as e:
            if e.status_code != 404:
                logger.warning(f"Warning checking blob {digest[7:19]}: {e}")
            return False
        return True

    def _start_upload(self, repository: str, digest: str) -> str:
        try:
            response = self.transport.execute("POST", f"/v2/{repository}/blobs/uploads/")
        except RegistryRequestError as e:
            raise BlobUploadError(
                f"Failed to start upload of {digest} to {repository}: {e}",
                digest=digest, status_code=e.status_code,
            ) from e

        location = response.headers.get("Location")
        if not location:
            raise BlobUploadError(
                f"Registry did not return an upload Location for {repository}",
                digest=digest, status_code=response.status_code,
            )
        return location

    def _complete_upload(self, location: str, digest: str, size: int, file_path: Path) -> None:
        url = httpx.URL(self.transport.resolve_url(location)).copy_merge_params({"digest": digest})
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(size),
        }

        try:
            response = self.transport.execute("PUT", str(url), body=file_path, headers=headers)
        except RegistryRequestError as e:
            raise BlobUploadError(
                f"Failed to upload blob {digest}: {e}", digest=digest, status_code=e.status_code,
            ) from e

        server_digest = response.headers.get("Docker-Content-Digest")
        if server_digest and server_digest != digest:
            raise BlobUploadError(
                f"Registry stored blob as {server_digest}, expected {digest}",
                digest=digest, status_code=response.status_code,
            )

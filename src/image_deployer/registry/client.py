"""
Registry client.

Composes transport, blob pusher and manifest publisher into one operation:
push this image archive as ``repository:tag``.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from ..archive import open_archive
from ..settings import Settings
from .auth import DockerAuth
from .blobs import BlobPusher, PushedBlob
from .manifests import ManifestPublisher, PublishedManifest
from .transport import RegistryTransport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

__all__ = ["PushResult", "RegistryClient"]


@dataclass(frozen=True)
class PushResult:
    """Outcome of a successful image push."""
    manifest: PublishedManifest
    config: PushedBlob
    layers: List[PushedBlob]

    @property
    def uploaded_count(self) -> int:
        return sum(1 for blob in [self.config, *self.layers] if blob.uploaded)


class RegistryClient:
    """
    Push image archives to one registry without a container daemon.

    One client owns one auth session; create a new client per deployment run.
    """

    def __init__(self, settings: Settings, *,
                 transport: Optional[httpx.BaseTransport] = None,
                 docker_auth: Optional[DockerAuth] = None,
                 on_progress: Optional[ProgressCallback] = None):
        """
        Initialize registry client.

        Args:
            settings: Registry settings
            transport: Optional httpx transport (tests inject a mock)
            docker_auth: Docker config credential lookup
            on_progress: Receives one human-readable line per blob/manifest step
        """
        self.settings = settings
        self.transport = RegistryTransport(settings, transport=transport, docker_auth=docker_auth)
        self.blobs = BlobPusher(self.transport)
        self.manifests = ManifestPublisher(self.transport)
        self._on_progress = on_progress

    def login(self, username: Optional[str], password: Optional[str], host: str) -> bool:
        """Authenticate against ``host``; see RegistryTransport.authenticate."""
        return self.transport.authenticate(username, password, host)

    def push_image(self, archive_path: str | Path, repository: str, tag: str, *,
                   work_root: Optional[Path] = None) -> PushResult:
        """
        Push an image archive as ``repository:tag``.

        Pushes the config blob, then every layer in archive order, then the
        manifest. The extraction directory is removed on success and failure.

        Raises:
            ArchiveFormatError: If the archive cannot be read
            BlobUploadError: If any blob upload fails
            ManifestPushError: If the manifest is rejected
        """
        self._progress(f"Reading image archive from {archive_path}...")

        with open_archive(archive_path, work_root=work_root) as archive:
            self._progress(f"Found image config and {len(archive.layer_paths)} layers.")

            config = self._push_blob(repository, archive.config_path)
            layers = self._push_layers(repository, archive.layer_paths)

            self._progress(f"Pushing manifest to {repository}:{tag}...")
            manifest = self.manifests.publish(repository, tag, config, layers)
            self._progress(f"Successfully pushed manifest. Digest: {manifest.digest}")

        return PushResult(manifest=manifest, config=config, layers=layers)

    def _push_layers(self, repository: str, layer_paths: List[Path]) -> List[PushedBlob]:
        workers = min(self.settings.layer_upload_workers, len(layer_paths))
        if workers <= 1:
            return [self._push_blob(repository, path) for path in layer_paths]

        logger.debug(f"Uploading {len(layer_paths)} layers with {workers} workers")
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="layer-upload") as pool:
            futures = [pool.submit(self._push_blob, repository, path) for path in layer_paths]
            # Collect in submission order; result() re-raises the first failure.
            return [future.result() for future in futures]

    def _push_blob(self, repository: str, path: Path) -> PushedBlob:
        blob = self.blobs.push(repository, path)
        short = blob.digest[7:19]
        if blob.uploaded:
            self._progress(f"Uploaded blob {short} ({blob.size / 1024 / 1024:.2f} MB)")
        else:
            self._progress(f"Blob {short} already exists.")
        return blob

    def _progress(self, message: str) -> None:
        logger.debug(message)
        if self._on_progress is not None:
            self._on_progress(message)

    def close(self):
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

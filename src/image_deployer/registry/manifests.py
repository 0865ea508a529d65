"""
Manifest publisher.

Assembles the image manifest for a set of pushed blobs and PUTs it at a
tag. The manifest is serialized exactly once; the same bytes determine the
Content-Length, the local digest and the request body.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from ..digest import digest_bytes
from ..errors import ManifestPushError, RegistryRequestError
from ..models import Descriptor, ImageManifest
from .blobs import PushedBlob
from .media_types import (
    DOCKER_IMAGE_CONFIG,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_CONFIG,
    OCI_IMAGE_MANIFEST,
    Compression,
    detect_compression,
    layer_media_type,
)
from .transport import RegistryTransport

logger = logging.getLogger(__name__)

__all__ = ["PublishedManifest", "ManifestPublisher", "build_manifest"]


@dataclass(frozen=True)
class PublishedManifest:
    repository: str
    tag: str
    digest: str
    media_type: str
    payload: bytes


def build_manifest(config: PushedBlob, layers: Sequence[PushedBlob]) -> ImageManifest:
    """
    Build a schema-2 manifest referencing ``config`` and ``layers`` in order.

    Each layer's media type comes from its leading bytes. Docker media types
    are used unless a layer is zstd-compressed, which only the OCI format can
    describe.
    """
    compressions: List[Compression] = [detect_compression(layer.path) for layer in layers]
    oci = Compression.ZSTD in compressions

    layer_descriptors = [
        Descriptor(
            media_type=layer_media_type(compression, oci=oci),
            size=layer.size,
            digest=layer.digest,
        )
        for layer, compression in zip(layers, compressions)
    ]

    return ImageManifest(
        schema_version=2,
        media_type=OCI_IMAGE_MANIFEST if oci else DOCKER_MANIFEST_V2,
        config=Descriptor(
            media_type=OCI_IMAGE_CONFIG if oci else DOCKER_IMAGE_CONFIG,
            size=config.size,
            digest=config.digest,
        ),
        layers=layer_descriptors,
    )


class ManifestPublisher:
    """Publish manifests through a shared RegistryTransport."""

    def __init__(self, transport: RegistryTransport):
        self.transport = transport

    def publish(self, repository: str, tag: str, config: PushedBlob,
                layers: Sequence[PushedBlob]) -> PublishedManifest:
        """
        PUT the manifest at ``repository:tag``.

        Returns:
            PublishedManifest with the digest of the transmitted bytes

        Raises:
            ManifestPushError: If the registry rejects the manifest or reports
                a different digest
        """
        manifest = build_manifest(config, layers)
        payload = manifest.to_bytes()
        digest = digest_bytes(payload)
        reference = f"{repository}:{tag}"

        logger.info(f"Pushing manifest to {reference}...")
        logger.debug(f"Manifest payload: {payload.decode('utf-8')}")

        headers = {
            "Content-Type": manifest.media_type,
            "Content-Length": str(len(payload)),
        }
        try:
            response = self.transport.execute(
                "PUT", f"/v2/{repository}/manifests/{tag}", body=payload, headers=headers
            )
        except RegistryRequestError as e:
            if e.body:
                logger.error(f"Server responded: {e.body}")
            raise ManifestPushError(
                f"Failed to push manifest {reference}: {e}",
                reference=reference, status_code=e.status_code,
            ) from e

        server_digest = response.headers.get("Docker-Content-Digest")
        if server_digest and server_digest != digest:
            raise ManifestPushError(
                f"Digest mismatch for {reference}: registry={server_digest}, local={digest}",
                reference=reference, status_code=response.status_code,
                expected=digest, actual=server_digest,
            )

        logger.info(f"Successfully pushed manifest. Digest: {digest}")
        return PublishedManifest(
            repository=repository, tag=tag, digest=digest,
            media_type=manifest.media_type, payload=payload,
        )

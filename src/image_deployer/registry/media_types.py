"""
Registry media types and layer compression detection.

Single source of truth for all manifest, config and layer media types.
"""
from __future__ import annotations

from enum import Enum
from pathlib import Path

# Docker image manifest v2, schema 2
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_IMAGE_CONFIG = "application/vnd.docker.container.image.v1+json"
DOCKER_LAYER_TAR = "application/vnd.docker.image.rootfs.diff.tar"
DOCKER_LAYER_TAR_GZIP = "application/vnd.docker.image.rootfs.diff.tar.gzip"

# OCI image manifest v1 (required once any layer is zstd)
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_CONFIG = "application/vnd.oci.image.config.v1+json"
OCI_LAYER_TAR = "application/vnd.oci.image.layer.v1.tar"
OCI_LAYER_TAR_GZIP = "application/vnd.oci.image.layer.v1.tar+gzip"
OCI_LAYER_TAR_ZSTD = "application/vnd.oci.image.layer.v1.tar+zstd"

GZIP_MAGIC = b"\x1f\x8b"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


class Compression(str, Enum):
    """Layer compression detected from leading bytes."""
    NONE = "none"
    GZIP = "gzip"
    ZSTD = "zstd"


_DOCKER_LAYERS = {
    Compression.NONE: DOCKER_LAYER_TAR,
    Compression.GZIP: DOCKER_LAYER_TAR_GZIP,
}

_OCI_LAYERS = {
    Compression.NONE: OCI_LAYER_TAR,
    Compression.GZIP: OCI_LAYER_TAR_GZIP,
    Compression.ZSTD: OCI_LAYER_TAR_ZSTD,
}


def detect_compression(path: Path) -> Compression:
    """Inspect the magic number at the start of a layer file."""
    with open(path, "rb") as f:
        head = f.read(4)
    if head.startswith(GZIP_MAGIC):
        return Compression.GZIP
    if head.startswith(ZSTD_MAGIC):
        return Compression.ZSTD
    return Compression.NONE


def layer_media_type(compression: Compression, *, oci: bool) -> str:
    """Media type for a layer in a Docker (default) or OCI manifest."""
    if oci:
        return _OCI_LAYERS[compression]
    if compression not in _DOCKER_LAYERS:
        raise ValueError(f"{compression.value} layers require an OCI manifest")
    return _DOCKER_LAYERS[compression]


__all__ = [
    "DOCKER_MANIFEST_V2",
    "DOCKER_IMAGE_CONFIG",
    "DOCKER_LAYER_TAR",
    "DOCKER_LAYER_TAR_GZIP",
    "OCI_IMAGE_MANIFEST",
    "OCI_IMAGE_CONFIG",
    "OCI_LAYER_TAR",
    "OCI_LAYER_TAR_GZIP",
    "OCI_LAYER_TAR_ZSTD",
    "Compression",
    "detect_compression",
    "layer_media_type",
]

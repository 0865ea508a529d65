"""
Content digests for blobs and manifests.

All registry content is addressed by ``sha256:<lowercase hex>``.
"""
from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Tuple

__all__ = ["CHUNK_SIZE", "digest_bytes", "digest_file", "is_digest"]

CHUNK_SIZE = 1024 * 1024  # 1 MiB

_DIGEST_RE = re.compile(r"^sha256:[a-f0-9]{64}$")


def digest_bytes(data: bytes) -> str:
    """Return the ``sha256:`` digest of a byte buffer."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def digest_file(path: Path) -> Tuple[str, int]:
    """
    Stream a file through SHA-256.

    Args:
        path: File to hash

    Returns:
        (digest, size_in_bytes)
    """
    hash_obj = hashlib.sha256()
    size = 0
    with open(path, "rb") as f:
        while True:
            chunk = f.read(CHUNK_SIZE)
            if not chunk:
                break
            hash_obj.update(chunk)
            size += len(chunk)
    return f"sha256:{hash_obj.hexdigest()}", size


def is_digest(value: str) -> bool:
    return bool(_DIGEST_RE.match(value))

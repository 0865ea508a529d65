"""
Builders for ``docker save``-style image archives used in tests.
"""
from __future__ import annotations

import gzip
import hashlib
import io
import json
import tarfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import zstandard as zstd

DEFAULT_CONFIG = b'{"architecture":"amd64","os":"linux","rootfs":{"type":"layers","diff_ids":[]}}'
DEFAULT_LAYERS = (b"layer-one-contents", b"layer-two-contents")


def sha256(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def gzip_bytes(data: bytes) -> bytes:
    return gzip.compress(data, mtime=0)


def zstd_bytes(data: bytes) -> bytes:
    return zstd.ZstdCompressor().compress(data)


def add_bytes(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(data))


def build_image_archive(dest: Path, *,
                        config: bytes = DEFAULT_CONFIG,
                        layers: Sequence[bytes] = DEFAULT_LAYERS,
                        config_name: str = "abc.json",
                        layer_names: Optional[List[str]] = None,
                        repo_tags: Optional[List[str]] = None,
                        index: Optional[object] = None,
                        extra_members: Optional[Dict[str, bytes]] = None,
                        omit: Sequence[str] = (),
                        compression: str = "none") -> Path:
    """
    Write an image archive to ``dest``.

    Args:
        dest: Output file
        config: Config blob contents
        layers: Layer blob contents, base first
        config_name: Config file name inside the archive
        layer_names: Layer file names (default l1.tar, l2.tar, ...)
        repo_tags: RepoTags recorded in the index
        index: Raw index document overriding the generated one
        extra_members: Additional files to add
        omit: Member names to leave out (to simulate truncated archives)
        compression: "none", "gz" or "zst" for the outer archive
    """
    if layer_names is None:
        layer_names = [f"l{i + 1}.tar" for i in range(len(layers))]

    if index is None:
        index = [{
            "Config": config_name,
            "RepoTags": repo_tags or ["svc:latest"],
            "Layers": layer_names,
        }]

    members: Dict[str, bytes] = {"manifest.json": json.dumps(index).encode()}
    members[config_name] = config
    for name, data in zip(layer_names, layers):
        members[name] = data
    members.update(extra_members or {})

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name, data in members.items():
            if name in omit:
                continue
            add_bytes(tar, name, data)
    raw = buffer.getvalue()

    if compression == "gz":
        raw = gzip_bytes(raw)
    elif compression == "zst":
        raw = zstd_bytes(raw)
    elif compression != "none":
        raise ValueError(f"unknown compression {compression}")

    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(raw)
    return dest

"""
Image archive reader.

Unpacks an image archive produced by ``docker save`` (plain, gzip or zstd
compressed tar) into a fresh temporary directory and parses its
``manifest.json`` index. The extraction directory belongs to the caller and
is removed by ``ImageArchive.cleanup()``.
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import tarfile
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import BinaryIO, List, Optional, Tuple

import zstandard as zstd
from pydantic import ValidationError

from .errors import ArchiveFormatError
from .models import ArchiveImageEntry
from .path_safety import safe_relpath, touches_vcs_dir

logger = logging.getLogger(__name__)

INDEX_NAME = "manifest.json"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"

__all__ = ["INDEX_NAME", "ImageArchive", "open_archive", "extract_archive", "read_index"]


@dataclass
class ImageArchive:
    """
    An unpacked image archive.

    ``config_path`` and ``layer_paths`` point inside ``workdir``; layer order
    is the order declared by the index (base layer first).
    """
    workdir: Path
    config_path: Path
    layer_paths: List[Path]
    repo_tags: List[str] = field(default_factory=list)

    def cleanup(self) -> None:
        """Delete the extraction directory."""
        if self.workdir.exists():
            shutil.rmtree(self.workdir)
            logger.debug(f"Removed archive workdir {self.workdir}")

    def __enter__(self) -> ImageArchive:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()


def open_archive(archive_path: str | Path, *, work_root: Optional[Path] = None) -> ImageArchive:
    """
    Extract an image archive and resolve its first image descriptor.

    Args:
        archive_path: Path to the ``.tar`` (optionally ``.gz``/``.zst``) file
        work_root: Parent for the extraction directory (system temp if None)

    Returns:
        ImageArchive with config and layer paths inside the extraction dir

    Raises:
        ArchiveFormatError: If the archive is missing, unreadable, has no
            usable index, or lacks a referenced file
    """
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise ArchiveFormatError(f"Image archive not found: {archive_path}")

    workdir = Path(tempfile.mkdtemp(prefix="image-deployer-", dir=work_root))
    logger.debug(f"Extracting {archive_path} to {workdir}")

    try:
        extract_archive(archive_path, workdir)
        entry = read_index(workdir)

        config_path = _resolve_member(workdir, entry.config)
        layer_paths = [_resolve_member(workdir, layer) for layer in entry.layers]
    except BaseException:
        shutil.rmtree(workdir, ignore_errors=True)
        raise

    logger.info(f"Found image config {entry.config} with {len(layer_paths)} layers")
    return ImageArchive(
        workdir=workdir,
        config_path=config_path,
        layer_paths=layer_paths,
        repo_tags=list(entry.repo_tags or []),
    )


def extract_archive(archive_path: Path, dest: Path) -> None:
    """
    Stream every archive member into ``dest``.

    Directory entries create directories, regular files are streamed to
    matching paths, and links are materialized as copies of their targets.
    Members under a ``.git`` directory are skipped.

    Raises:
        ArchiveFormatError: If the file is not a tar stream or a member path
            is unsafe
    """
    links: List[Tuple[str, str]] = []

    with open(archive_path, "rb") as raw:
        magic = raw.read(4)
        raw.seek(0)
        stream: BinaryIO = raw
        if magic == ZSTD_MAGIC:
            stream = zstd.ZstdDecompressor().stream_reader(raw)

        try:
            with tarfile.open(fileobj=stream, mode="r|*") as tar:
                for member in tar:
                    _extract_member(tar, member, dest, links)
        except (tarfile.TarError, zstd.ZstdError, EOFError) as e:
            raise ArchiveFormatError(f"Not a readable image archive: {archive_path}: {e}") from e

    for name, target in links:
        _materialize_link(dest, name, target)


def _extract_member(tar: tarfile.TarFile, member: tarfile.TarInfo, dest: Path,
                    links: List[Tuple[str, str]]) -> None:
    if member.isdir() and str(PurePosixPath(member.name)) == ".":
        return
    try:
        name = safe_relpath(member.name)
    except ValueError as e:
        raise ArchiveFormatError(f"Archive contains unsafe member {member.name!r}") from e

    if touches_vcs_dir(name):
        logger.debug(f"Skipping version-control member {name}")
        return

    out_path = dest / name
    if member.isdir():
        out_path.mkdir(parents=True, exist_ok=True)
    elif member.isfile():
        out_path.parent.mkdir(parents=True, exist_ok=True)
        src = tar.extractfile(member)
        if src is None:
            raise ArchiveFormatError(f"Cannot read archive member {name}")
        with open(out_path, "wb") as out:
            shutil.copyfileobj(src, out)
    elif member.issym():
        links.append((name, str(PurePosixPath(name).parent / member.linkname)))
    elif member.islnk():
        links.append((name, member.linkname))
    else:
        logger.debug(f"Ignoring special archive member {name}")


def _materialize_link(dest: Path, name: str, target: str) -> None:
    target_norm = os.path.normpath(target).replace(os.sep, "/")
    try:
        target_rel = safe_relpath(target_norm)
    except ValueError as e:
        raise ArchiveFormatError(f"Archive link {name} points outside the archive: {target}") from e

    source = dest / target_rel
    if not source.is_file():
        logger.warning(f"Archive link {name} points to missing {target_rel}")
        return

    out_path = dest / name
    out_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, out_path)


def read_index(workdir: Path) -> ArchiveImageEntry:
    """
    Parse ``manifest.json`` and return its first image descriptor.

    Raises:
        ArchiveFormatError: If the index is absent, unparsable or empty
    """
    index_path = workdir / INDEX_NAME
    if not index_path.is_file():
        raise ArchiveFormatError(
            f"{INDEX_NAME} not found in archive. Is this a valid docker save archive?"
        )

    try:
        with open(index_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ArchiveFormatError(f"Invalid {INDEX_NAME}: {e}") from e

    if not isinstance(data, list) or not data:
        raise ArchiveFormatError(f"Empty {INDEX_NAME}")

    if len(data) > 1:
        logger.warning(f"{INDEX_NAME} lists {len(data)} images; only the first is pushed")

    try:
        return ArchiveImageEntry.model_validate(data[0])
    except ValidationError as e:
        raise ArchiveFormatError(f"Malformed image entry in {INDEX_NAME}: {e}") from e


def _resolve_member(workdir: Path, name: str) -> Path:
    try:
        rel = safe_relpath(name)
    except ValueError as e:
        raise ArchiveFormatError(f"Index references unsafe path {name!r}") from e

    path = workdir / rel
    if not path.is_file():
        raise ArchiveFormatError(f"Index references {name} but it is missing from the archive")
    return path

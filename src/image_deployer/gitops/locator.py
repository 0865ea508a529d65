"""
Manifest locator.

Finds, inside a cloned repository, the YAML file that holds the image
reference for a service. An explicit path hint wins; otherwise YAML files
are searched for the service identifier, and the first match in a sorted
depth-first traversal is chosen.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

from ..errors import ManifestNotFoundError
from ..path_safety import VCS_DIR

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")

__all__ = ["LocatedManifest", "locate_manifest", "find_yaml_files", "iter_yaml_files"]


@dataclass(frozen=True)
class LocatedManifest:
    """
    The file chosen to hold the service's image reference.

    ``candidates`` lists every file that matched during a search, in
    traversal order; more than one means the choice was ambiguous and an
    explicit path hint should be configured.
    """
    relative_path: str
    strategy: str  # "hint-file", "hint-directory" or "search"
    candidates: List[str] = field(default_factory=list)

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1


def locate_manifest(repo_root: Path, identifier: str, hint: Optional[str] = None) -> LocatedManifest:
    """
    Determine exactly one target file.

    1. A hint naming an existing file is used directly.
    2. A hint naming an existing directory restricts the search to it.
    3. Without a hint, or when the hint does not exist, the whole
       repository is searched.

    Args:
        repo_root: Root of the cloned repository
        identifier: Service identifier (final repository path segment)
        hint: Optional repository-relative file or directory

    Returns:
        LocatedManifest with a repository-relative POSIX path

    Raises:
        ManifestNotFoundError: If nothing matches, or the hint escapes the
            repository
    """
    repo_root = repo_root.resolve()

    if hint and hint.strip():
        candidate = (repo_root / hint.strip()).resolve()
        if not _is_within(candidate, repo_root):
            raise ManifestNotFoundError(f"Manifest path '{hint}' points outside the repository")

        if candidate.is_file():
            rel = candidate.relative_to(repo_root).as_posix()
            logger.debug(f"Using manifest path hint {rel}")
            return LocatedManifest(relative_path=rel, strategy="hint-file", candidates=[rel])

        if candidate.is_dir():
            logger.info(f"Searching provided directory: {hint}")
            return _search(candidate, identifier, repo_root, strategy="hint-directory")

        logger.warning(f"Configured manifest path '{hint}' not found in repo. Falling back to search.")

    logger.info(f'Looking for YAML containing "{identifier}"...')
    return _search(repo_root, identifier, repo_root, strategy="search")


def find_yaml_files(search_root: Path, identifier: str, repo_root: Path) -> List[str]:
    """Return repository-relative paths of YAML files mentioning ``identifier``."""
    matches = []
    for path in iter_yaml_files(search_root):
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            continue
        if identifier in content:
            matches.append(path.relative_to(repo_root).as_posix())
    return matches


def iter_yaml_files(root: Path) -> Iterator[Path]:
    """
    Depth-first walk yielding ``.yaml``/``.yml`` files.

    Entries are visited in sorted name order so repeated searches over the
    same tree return the same sequence. ``.git`` directories are pruned and
    symlinked directories are not followed.
    """
    try:
        entries = sorted(os.scandir(root), key=lambda entry: entry.name)
    except OSError as e:
        logger.warning(f"Cannot list {root}: {e}")
        return

    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            if entry.name == VCS_DIR:
                continue
            yield from iter_yaml_files(Path(entry.path))
        elif entry.is_file() and entry.name.lower().endswith(YAML_SUFFIXES):
            yield Path(entry.path)


def _search(search_root: Path, identifier: str, repo_root: Path, *, strategy: str) -> LocatedManifest:
    matches = find_yaml_files(search_root, identifier, repo_root)
    if not matches:
        scope = search_root.relative_to(repo_root).as_posix()
        where = "repository" if scope == "." else f"'{scope}'"
        raise ManifestNotFoundError(f'No YAML file in {where} mentions "{identifier}"')

    if len(matches) > 1:
        logger.warning(
            f'{len(matches)} YAML files mention "{identifier}"; using {matches[0]}. '
            f"Configure an explicit manifest path to disambiguate."
        )
    return LocatedManifest(relative_path=matches[0], strategy=strategy, candidates=matches)


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True

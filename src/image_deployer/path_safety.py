"""
Path safety utilities for the image deployer.

This module provides shared validation for paths that come from outside the
process (archive member names, manifest path hints) to prevent directory
traversal and protect version-control metadata.
"""
from __future__ import annotations

from pathlib import PurePosixPath

VCS_DIR = ".git"

__all__ = ["VCS_DIR", "safe_relpath", "touches_vcs_dir"]


def safe_relpath(path: str) -> str:
    """
    Validate and normalize an untrusted relative path.

    This function enforces the following safety rules:
    - No empty strings or "." (prevents root directory access)
    - No absolute paths (starting with '/') or Windows drive prefixes
    - No parent directory references ('..' components)
    - No backslashes

    Args:
        path: Path string from an archive or user input

    Returns:
        Normalized relative POSIX path

    Raises:
        ValueError: If path violates safety rules

    Examples:
        >>> safe_relpath("blobs/sha256/abc")
        'blobs/sha256/abc'

        >>> safe_relpath("./manifest.json")
        'manifest.json'

        >>> safe_relpath("../etc/passwd")
        ValueError: unsafe path: ../etc/passwd
    """
    rel = PurePosixPath(path)
    s = str(rel)
    if not s or s == ".":
        raise ValueError(f"unsafe path: {path}")
    if "\\" in s:
        raise ValueError(f"unsafe path: {path}")
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"unsafe path: {path}")
    if len(s) >= 2 and s[1] == ":" and s[0].isalpha():
        raise ValueError(f"unsafe path: {path}")
    return s


def touches_vcs_dir(path: str) -> bool:
    """Return True if any component of ``path`` is the ``.git`` directory."""
    return VCS_DIR in PurePosixPath(path).parts

"""
Tag patcher.

Rewrites the tag of every ``image:`` reference whose final repository path
segment equals the service identifier. The edit is a targeted text
substitution so comments, quoting, indentation and line endings survive
untouched; the file is never re-serialized.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Pattern, Tuple

import yaml

from ..errors import TagPatchError
from ..registry.coordinate import validate_tag

logger = logging.getLogger(__name__)

__all__ = ["PatchResult", "image_line_pattern", "patch_image_tag", "patch_text"]


@dataclass(frozen=True)
class PatchResult:
    """Outcome of patching one file."""
    path: Path
    tag: str
    replacements: int
    previous_tags: List[str] = field(default_factory=list)
    changed: bool = False


def image_line_pattern(identifier: str) -> Pattern[str]:
    """
    Build the substitution pattern for ``identifier``.

    Group 1 is everything up to and including the colon after the
    identifier; group 2 is the tag. The identifier must be the last path
    segment: it must follow a ``/``, a quote or whitespace, so ``svc`` does
    not match ``host/ns/svc-worker:v1`` or ``host/ns/my-svc:v1``. Anything
    else may precede it on the line, including template expressions. Quotes
    and trailing comments are outside the tag group.

    Examples:
        >>> bool(image_line_pattern("svc-worker").search("  image: host/ns/svc-worker:v1.0.0"))
        True

        >>> bool(image_line_pattern("svc").search("  image: host/ns/svc-worker:v1.0.0"))
        False

        >>> bool(image_line_pattern("svc").search('  image: "{{ .Values.registry }}/ns/svc:v1"'))
        True
    """
    if not identifier:
        raise ValueError("identifier cannot be empty")
    return re.compile(
        r"(\bimage:[ \t]+[^\r\n#]*?(?<=[/\"'\s])" + re.escape(identifier) + r":)([^\s\"'#]*)"
    )


def patch_text(content: str, identifier: str, tag: str) -> Tuple[str, List[str]]:
    """
    Substitute the tag on every matching line of ``content``.

    Returns:
        Tuple of (new content, tags found before substitution)
    """
    previous: List[str] = []

    def _replace(match: re.Match) -> str:
        previous.append(match.group(2))
        return match.group(1) + tag

    return image_line_pattern(identifier).sub(_replace, content), previous


def patch_image_tag(path: Path, identifier: str, tag: str, *, strict: bool = True) -> PatchResult:
    """
    Rewrite the image tag for ``identifier`` inside ``path``.

    Args:
        path: Manifest file to edit in place
        identifier: Service identifier (final repository path segment)
        tag: New tag
        strict: Raise when no line matches instead of returning a no-op result

    Returns:
        PatchResult; ``changed`` is False when every matching line already
        carried ``tag``

    Raises:
        TagPatchError: If no line matches (strict), the tag is invalid, or the
            patched file no longer parses as YAML
    """
    try:
        validate_tag(tag)
    except ValueError as e:
        raise TagPatchError(str(e)) from e

    try:
        # newline="" keeps CRLF files byte-identical outside the edit
        with open(path, "r", encoding="utf-8", newline="") as f:
            original = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise TagPatchError(f"Cannot read manifest {path}: {e}") from e

    patched, previous = patch_text(original, identifier, tag)

    if not previous:
        message = f'No "image: ...{identifier}:<tag>" line found in {path.name}'
        if strict:
            raise TagPatchError(message)
        logger.warning(message)
        return PatchResult(path=path, tag=tag, replacements=0)

    if len(previous) > 1:
        logger.warning(f"Patched {len(previous)} image references for {identifier} in {path.name}")

    if patched == original:
        logger.info(f"{path.name} already references {identifier}:{tag}")
        return PatchResult(path=path, tag=tag, replacements=len(previous), previous_tags=previous)

    _check_still_parses(path, original, patched)

    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(patched)

    logger.info(f"Updated {identifier} in {path.name}: {', '.join(sorted(set(previous)))} -> {tag}")
    return PatchResult(path=path, tag=tag, replacements=len(previous), previous_tags=previous, changed=True)


def _check_still_parses(path: Path, original: str, patched: str) -> None:
    """Refuse an edit that breaks a file which parsed before it."""
    try:
        list(yaml.safe_load_all(original))
    except yaml.YAMLError:
        # Templated files (e.g. Helm) never parsed; nothing to protect.
        return

    try:
        list(yaml.safe_load_all(patched))
    except yaml.YAMLError as e:
        raise TagPatchError(f"Patching {path.name} would produce invalid YAML: {e}") from e

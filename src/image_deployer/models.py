"""
Data models for image archives and registry manifests.

These Pydantic models provide validation for the documents that cross a
boundary: the ``manifest.json`` index inside an exported image archive, and
the image manifest pushed to the registry.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .digest import is_digest


class ArchiveImageEntry(BaseModel):
    """
    One image descriptor from an archive's ``manifest.json``.

    The index written by ``docker save`` is a JSON array of these objects,
    with capitalized keys.
    """
    model_config = ConfigDict(populate_by_name=True)

    config: str = Field(..., alias="Config", description="Config file name inside the archive")
    repo_tags: Optional[List[str]] = Field(default=None, alias="RepoTags", description="Tags recorded at save time")
    layers: List[str] = Field(..., alias="Layers", description="Layer files, base layer first")

    @field_validator("config")
    @classmethod
    def validate_config(cls, v):
        if not v:
            raise ValueError("Config must name a file")
        return v


class Descriptor(BaseModel):
    """Content descriptor referencing a blob by digest."""
    model_config = ConfigDict(populate_by_name=True)

    media_type: str = Field(..., alias="mediaType")
    size: int = Field(..., ge=0)
    digest: str

    @field_validator("digest")
    @classmethod
    def validate_digest(cls, v):
        if not is_digest(v):
            raise ValueError(f"digest must be 'sha256:<64 hex chars>', got '{v}'")
        return v


class ImageManifest(BaseModel):
    """
    Image manifest (schema version 2).

    Binds one config blob and an ordered list of layer blobs. Serialized
    once with ``to_bytes()``; the same bytes are hashed and transmitted.
    """
    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(..., alias="mediaType")
    config: Descriptor
    layers: List[Descriptor]

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True, indent=2).encode("utf-8")


__all__ = ["ArchiveImageEntry", "Descriptor", "ImageManifest"]

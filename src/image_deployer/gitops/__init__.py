"""
GitOps manifest updater.

Clones the manifest repository, finds the file that governs a service,
rewrites its image tag and pushes the commit.
"""
from .locator import LocatedManifest, locate_manifest
from .patcher import PatchResult, patch_image_tag
from .workspace import GitCredentials, GitWorkspace, GitWorkspaceManager

__all__ = [
    "GitCredentials",
    "GitWorkspace",
    "GitWorkspaceManager",
    "LocatedManifest",
    "PatchResult",
    "locate_manifest",
    "patch_image_tag",
]

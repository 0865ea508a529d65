"""
Fake git workspace manager for testing.

Materializes a fixed file tree into a temporary directory instead of
cloning, and records commits instead of pushing.
"""
from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from image_deployer.gitops.workspace import GitCredentials, GitWorkspace

__all__ = ["FakeGitWorkspaceManager", "RecordedCommit"]


@dataclass(frozen=True)
class RecordedCommit:
    remote_url: str
    path: str
    message: str
    author_name: Optional[str]
    content: str


class FakeGitWorkspaceManager:
    """
    Stand-in for GitWorkspaceManager.

    This is a test double; not for production use.

    Args:
        files: Repository-relative path -> content of every clone
        clone_error: Raised by ``open`` instead of cloning
        push_error: Raised by ``commit_and_push`` instead of recording
    """

    def __init__(self, files: Dict[str, str], *,
                 clone_error: Optional[Exception] = None,
                 push_error: Optional[Exception] = None):
        self.files = dict(files)
        self.clone_error = clone_error
        self.push_error = push_error
        self.opened: List[GitWorkspace] = []
        self.closed: List[Path] = []
        self.commits: List[RecordedCommit] = []

    def open(self, remote_url: str, credentials: Optional[GitCredentials] = None, *,
             prefix: str = "repo_") -> GitWorkspace:
        if self.clone_error is not None:
            raise self.clone_error

        workdir = Path(tempfile.mkdtemp(prefix=prefix))
        for rel, content in self.files.items():
            path = workdir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)

        workspace = GitWorkspace(path=workdir, remote_url=remote_url,
                                 credentials=credentials or GitCredentials())
        self.opened.append(workspace)
        return workspace

    def commit_and_push(self, workspace: GitWorkspace, relative_file_path: str, message: str,
                        author_name: Optional[str] = None) -> str:
        if self.push_error is not None:
            raise self.push_error

        with open(workspace.path / relative_file_path, "r", encoding="utf-8", newline="") as f:
            content = f.read()
        self.commits.append(RecordedCommit(
            remote_url=workspace.remote_url,
            path=relative_file_path,
            message=message,
            author_name=author_name,
            content=content,
        ))
        return f"{len(self.commits):040x}"

    def close(self, workspace: GitWorkspace) -> None:
        self.closed.append(workspace.path)
        shutil.rmtree(workspace.path, ignore_errors=True)

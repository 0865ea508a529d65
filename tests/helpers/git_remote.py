"""
Local bare git repositories standing in for the manifest remote.

Remotes are addressed with ``file://`` URLs so shallow clones behave like
they do against a smart-HTTP server.
"""
from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import pytest

GIT = shutil.which("git")

requires_git = pytest.mark.skipif(GIT is None, reason="git executable not available")

_IDENTITY = {
    "GIT_AUTHOR_NAME": "Test Seeder",
    "GIT_AUTHOR_EMAIL": "seeder@example.com",
    "GIT_COMMITTER_NAME": "Test Seeder",
    "GIT_COMMITTER_EMAIL": "seeder@example.com",
}


def run_git(*args: str, cwd: Path) -> str:
    env = dict(os.environ)
    env.update(_IDENTITY)
    result = subprocess.run(["git", *args], cwd=cwd, env=env, check=True,
                            capture_output=True, text=True)
    return result.stdout


@dataclass
class GitRemote:
    """A bare repository with a ``main`` branch."""
    bare: Path
    scratch: Path

    @property
    def url(self) -> str:
        return self.bare.as_uri()

    def show(self, path: str, ref: str = "main") -> str:
        return run_git("show", f"{ref}:{path}", cwd=self.bare)

    def head_message(self) -> str:
        return run_git("log", "-1", "--format=%s", "main", cwd=self.bare).strip()

    def head_author(self) -> str:
        return run_git("log", "-1", "--format=%an <%ae>", "main", cwd=self.bare).strip()

    def commit_count(self) -> int:
        return int(run_git("rev-list", "--count", "main", cwd=self.bare).strip())

    def advance(self, path: str, content: str, message: str = "concurrent change") -> None:
        """Commit a change to ``main`` from a separate clone."""
        other = self.scratch / f"other-{self.commit_count()}"
        run_git("clone", "--quiet", self.url, str(other), cwd=self.scratch)
        target = other / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        run_git("add", "--", path, cwd=other)
        run_git("commit", "--quiet", "-m", message, cwd=other)
        run_git("push", "--quiet", "origin", "HEAD:refs/heads/main", cwd=other)


def make_remote(root: Path, files: Dict[str, str]) -> GitRemote:
    """
    Create a bare remote whose ``main`` branch holds ``files``.

    Args:
        root: Scratch directory (e.g. pytest tmp_path)
        files: Repository-relative path -> text content
    """
    bare = root / "remote.git"
    seed = root / "seed"
    bare.mkdir(parents=True)
    seed.mkdir(parents=True)

    run_git("init", "--quiet", "--bare", cwd=bare)
    run_git("symbolic-ref", "HEAD", "refs/heads/main", cwd=bare)

    run_git("init", "--quiet", cwd=seed)
    run_git("symbolic-ref", "HEAD", "refs/heads/main", cwd=seed)
    for rel, content in files.items():
        path = seed / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
    run_git("add", "-A", cwd=seed)
    run_git("commit", "--quiet", "-m", "initial manifests", cwd=seed)
    run_git("remote", "add", "origin", bare.as_uri(), cwd=seed)
    run_git("push", "--quiet", "origin", "main", cwd=seed)

    return GitRemote(bare=bare, scratch=root)

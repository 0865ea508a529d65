"""
Git workspace manager.

Shallow-clones the manifest repository into an ephemeral directory, commits a
single file change, and pushes it to the configured branch. Drives the
``git`` executable through subprocess.
"""
from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from ..errors import GitCloneError, GitPushError
from ..path_safety import safe_relpath
from ..settings import Settings

logger = logging.getLogger(__name__)

_REJECTED_RE = re.compile(r"non-fast-forward|fetch first|\[rejected\]|\(stale info\)", re.IGNORECASE)
_USERINFO_RE = re.compile(r"(https?://)[^/@\s]+@")
_CREDENTIAL_HELPER = (
    '!f() { test "$1" = get || return 0; '
    'echo "username=${DEPLOYER_GIT_USERNAME}"; echo "password=${DEPLOYER_GIT_PASSWORD}"; }; f'
)

__all__ = ["GitCredentials", "GitWorkspace", "GitWorkspaceManager", "credential_env", "mask_url"]


@dataclass(frozen=True)
class GitCredentials:
    """Username/password (or token) for a smart-HTTP remote."""
    username: Optional[str] = None
    password: Optional[str] = None

    def __repr__(self) -> str:
        return f"GitCredentials(username={self.username!r}, password=***)"


@dataclass
class GitWorkspace:
    """An ephemeral clone owned by one deployment run."""
    path: Path
    remote_url: str
    credentials: GitCredentials


def mask_url(text: str) -> str:
    """Hide credentials embedded in http(s) URLs."""
    return _USERINFO_RE.sub(r"\1***@", text)


def credential_env(remote_url: str, credentials: GitCredentials) -> Dict[str, str]:
    """
    Environment that answers git's credential prompt for an http(s) remote.

    Credentials travel in the child environment and are handed to git by an
    inline ``credential.helper`` set through ``GIT_CONFIG_*`` (git >= 2.31).
    They never appear on the command line or in the clone's ``.git/config``.
    Helpers from the user's own git config are cleared for the call.
    """
    if not credentials.username:
        return {}
    if urlsplit(remote_url).scheme not in ("http", "https"):
        return {}
    return {
        "GIT_CONFIG_COUNT": "2",
        "GIT_CONFIG_KEY_0": "credential.helper",
        "GIT_CONFIG_VALUE_0": "",
        "GIT_CONFIG_KEY_1": "credential.helper",
        "GIT_CONFIG_VALUE_1": _CREDENTIAL_HELPER,
        "DEPLOYER_GIT_USERNAME": credentials.username,
        "DEPLOYER_GIT_PASSWORD": credentials.password or "",
    }


class GitWorkspaceManager:
    """
    Open, commit to, push and delete ephemeral git workspaces.

    No merge or rebase is ever attempted; a rejected push is terminal.
    """

    def __init__(self, settings: Settings, *, git: str = "git"):
        self.settings = settings
        self.git = git

    def open(self, remote_url: str, credentials: Optional[GitCredentials] = None, *,
             prefix: str = "repo_") -> GitWorkspace:
        """
        Shallow, single-branch clone of the remote's default branch.

        Args:
            remote_url: Repository URL (http(s) or local path)
            credentials: Username/password for http(s) remotes
            prefix: Prefix for the temporary directory name

        Returns:
            GitWorkspace rooted at a fresh temporary directory

        Raises:
            GitCloneError: On transport or auth failure; the directory is
                removed before raising
        """
        credentials = credentials or GitCredentials()
        workdir = Path(tempfile.mkdtemp(prefix=prefix))
        workspace = GitWorkspace(path=workdir, remote_url=remote_url, credentials=credentials)

        logger.info(f"Cloning {mask_url(remote_url)} into {workdir}")
        try:
            self._run(
                ["clone", "--depth", "1", "--single-branch", "--no-tags", remote_url, str(workdir)],
                cwd=None, error=GitCloneError, action="clone",
                env=credential_env(remote_url, credentials),
            )
        except BaseException:
            self.close(workspace)
            raise
        return workspace

    def commit_and_push(self, workspace: GitWorkspace, relative_file_path: str, message: str,
                        author_name: Optional[str] = None) -> str:
        """
        Stage exactly one file, commit it, and push to the configured branch.

        Args:
            workspace: Workspace returned by ``open``
            relative_file_path: Repository-relative path of the changed file
            message: Commit message
            author_name: Commit author (settings default when None)

        Returns:
            The new commit SHA

        Raises:
            GitPushError: If staging, committing or pushing fails
        """
        try:
            rel = safe_relpath(relative_file_path)
        except ValueError as e:
            raise GitPushError(f"Refusing to commit {relative_file_path}: {e}") from e

        name = author_name or self.settings.git_author_name
        email = self.settings.git_author_email
        env = {
            "GIT_AUTHOR_NAME": name,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_COMMITTER_NAME": name,
            "GIT_COMMITTER_EMAIL": email,
        }

        self._run(["add", "--", rel], cwd=workspace.path, error=GitPushError, action="stage")
        self._run(["commit", "--no-verify", "-m", message, "--", rel],
                  cwd=workspace.path, error=GitPushError, action="commit", env=env)
        sha = self._run(["rev-parse", "HEAD"], cwd=workspace.path,
                        error=GitPushError, action="read commit").strip()
        logger.info(f"Committed {sha[:12]}: {message}")

        branch = self.settings.git_branch
        self._run(["push", "origin", f"HEAD:refs/heads/{branch}"],
                  cwd=workspace.path, error=GitPushError, action="push",
                  env=credential_env(workspace.remote_url, workspace.credentials))
        logger.info(f"Pushed {sha[:12]} to origin/{branch}")
        return sha

    def close(self, workspace: GitWorkspace) -> None:
        """Recursively delete the workspace directory."""
        if not workspace.path.exists():
            return
        shutil.rmtree(workspace.path)
        logger.debug(f"Removed workspace {workspace.path}")

    def _run(self, args: List[str], *, cwd: Optional[Path], error: type, action: str,
             env: Optional[Dict[str, str]] = None) -> str:
        full_env = dict(os.environ)
        full_env["GIT_TERMINAL_PROMPT"] = "0"
        if env:
            full_env.update(env)

        try:
            result = subprocess.run(
                [self.git, *args],
                cwd=cwd,
                env=full_env,
                capture_output=True,
                text=True,
                timeout=self.settings.git_timeout_s,
                check=True,
            )
        except FileNotFoundError as e:
            raise error(f"git command not found: {self.git}") from e
        except subprocess.TimeoutExpired as e:
            raise error(f"git {action} timed out after {self.settings.git_timeout_s}s") from e
        except subprocess.CalledProcessError as e:
            detail = mask_url((e.stderr or e.stdout or "").strip())
            msg = f"git {action} failed: {detail}"
            if error is GitPushError:
                raise GitPushError(msg, rejected=bool(_REJECTED_RE.search(detail))) from e
            raise error(msg) from e
        return result.stdout


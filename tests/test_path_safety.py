"""
Tests for path safety validation.

Tests the shared path_safety module used for archive members and commit
paths.
"""
from __future__ import annotations

import pytest

from image_deployer.path_safety import safe_relpath, touches_vcs_dir


class TestSafeRelpath:
    """Test safe_relpath function directly."""

    def test_safe_paths_allowed(self):
        """Test that safe relative paths are allowed."""
        assert safe_relpath("manifest.json") == "manifest.json"
        assert safe_relpath("abc/layer.tar") == "abc/layer.tar"
        assert safe_relpath("blobs/sha256/0123") == "blobs/sha256/0123"

    def test_paths_are_normalized(self):
        """Test that redundant components are removed."""
        assert safe_relpath("./manifest.json") == "manifest.json"
        assert safe_relpath("deploy//values.yaml") == "deploy/values.yaml"

    def test_absolute_paths_rejected(self):
        """Test that absolute paths are rejected."""
        with pytest.raises(ValueError, match="unsafe path: /etc/passwd"):
            safe_relpath("/etc/passwd")

    def test_parent_directory_traversal_rejected(self):
        """Test that parent directory traversal is rejected."""
        with pytest.raises(ValueError, match="unsafe path: ../evil.txt"):
            safe_relpath("../evil.txt")

        with pytest.raises(ValueError, match="unsafe path: dir/../../evil.txt"):
            safe_relpath("dir/../../evil.txt")

    def test_empty_and_dot_rejected(self):
        """Test that the root itself cannot be addressed."""
        for path in ("", ".", "./"):
            with pytest.raises(ValueError, match="unsafe path"):
                safe_relpath(path)

    def test_backslash_paths_rejected(self):
        """Test that paths containing backslashes are rejected."""
        for path in ("a\\b.txt", "..\\..\\etc\\passwd", "\\absolute\\windows\\path"):
            with pytest.raises(ValueError, match="unsafe path"):
                safe_relpath(path)

    def test_drive_letters_rejected(self):
        """Test that Windows drive prefixes are rejected."""
        with pytest.raises(ValueError, match="unsafe path"):
            safe_relpath("C:/Windows/system32")


class TestTouchesVcsDir:

    def test_git_components_detected(self):
        assert touches_vcs_dir(".git")
        assert touches_vcs_dir(".git/config")
        assert touches_vcs_dir("nested/.git/HEAD")

    def test_similar_names_not_detected(self):
        assert not touches_vcs_dir(".github/workflows/ci.yaml")
        assert not touches_vcs_dir("my.git/file")
        assert not touches_vcs_dir(".gitignore")

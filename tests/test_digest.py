"""Tests for content digests."""
from __future__ import annotations

import hashlib

from image_deployer.digest import CHUNK_SIZE, digest_bytes, digest_file, is_digest


class TestDigest:

    def test_digest_bytes_format(self):
        """Test lowercase hex with the sha256: prefix."""
        digest = digest_bytes(b"hello")
        assert digest == "sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
        assert is_digest(digest)

    def test_empty_input(self):
        assert digest_bytes(b"") == f"sha256:{hashlib.sha256(b'').hexdigest()}"

    def test_digest_file_matches_bytes(self, tmp_path):
        """Test that streaming across chunk boundaries gives the same digest."""
        data = b"x" * (CHUNK_SIZE * 2 + 17)
        path = tmp_path / "blob"
        path.write_bytes(data)

        digest, size = digest_file(path)

        assert digest == digest_bytes(data)
        assert size == len(data)

    def test_is_digest_rejects_malformed(self):
        assert not is_digest("sha256:ABC")
        assert not is_digest("md5:" + "0" * 64)
        assert not is_digest("sha256:" + "0" * 63)
        assert is_digest("sha256:" + "0" * 64)

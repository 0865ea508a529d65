"""Tests for blob existence checks and monolithic uploads."""
from __future__ import annotations

import logging

import pytest

from image_deployer.digest import digest_bytes
from image_deployer.errors import BlobUploadError
from image_deployer.registry.blobs import BlobPusher
from image_deployer.registry.transport import RegistryTransport
from tests.fakes.fake_registry import FakeRegistry


@pytest.fixture
def blob_file(tmp_path):
    path = tmp_path / "layer.tar"
    path.write_bytes(b"some layer bytes")
    return path


def make_pusher(settings, registry, docker_auth):
    transport = RegistryTransport(settings, transport=registry.transport, docker_auth=docker_auth)
    transport.authenticate(None, None, registry.host)
    return BlobPusher(transport)


class TestBlobPush:

    def test_uploads_missing_blob(self, settings, fake_registry, no_docker_auth, blob_file):
        pusher = make_pusher(settings, fake_registry, no_docker_auth)

        blob = pusher.push("ns/svc", blob_file)

        digest = digest_bytes(b"some layer bytes")
        assert blob.digest == digest
        assert blob.size == len(b"some layer bytes")
        assert blob.uploaded is True
        assert fake_registry.blobs[("ns/svc", digest)] == b"some layer bytes"

    def test_digest_sent_as_query_param(self, settings, fake_registry, no_docker_auth, blob_file):
        """Test that the opaque upload state is preserved alongside the digest."""
        pusher = make_pusher(settings, fake_registry, no_docker_auth)

        blob = pusher.push("ns/svc", blob_file)

        put = fake_registry.calls("PUT", "/v2/ns/svc/blobs/uploads/")[0]
        assert put.query["digest"] == blob.digest
        assert put.query["_state"] == "opaque"

    def test_absolute_location(self, settings, no_docker_auth, blob_file):
        registry = FakeRegistry(absolute_location=True)
        pusher = make_pusher(settings, registry, no_docker_auth)

        blob = pusher.push("ns/svc", blob_file)

        assert ("ns/svc", blob.digest) in registry.blobs

    def test_existing_blob_skipped(self, settings, fake_registry, no_docker_auth, blob_file):
        fake_registry.put_blob("ns/svc", b"some layer bytes")
        pusher = make_pusher(settings, fake_registry, no_docker_auth)

        blob = pusher.push("ns/svc", blob_file)

        assert blob.uploaded is False
        assert fake_registry.calls("POST") == []
        assert fake_registry.calls("PUT") == []

    def test_existence_is_per_repository(self, settings, fake_registry, no_docker_auth, blob_file):
        fake_registry.put_blob("ns/other", b"some layer bytes")
        pusher = make_pusher(settings, fake_registry, no_docker_auth)

        assert pusher.push("ns/svc", blob_file).uploaded is True

    def test_head_error_still_uploads(self, settings, no_docker_auth, blob_file, caplog):
        """Test that registries rejecting HEAD still receive the blob."""
        registry = FakeRegistry(head_status=405)
        pusher = make_pusher(settings, registry, no_docker_auth)

        caplog.set_level(logging.WARNING)
        blob = pusher.push("ns/svc", blob_file)

        assert blob.uploaded is True
        assert "Warning checking blob" in caplog.text

    def test_head_404_logs_nothing(self, settings, fake_registry, no_docker_auth, blob_file, caplog):
        pusher = make_pusher(settings, fake_registry, no_docker_auth)

        caplog.set_level(logging.WARNING)
        pusher.push("ns/svc", blob_file)

        assert "Warning checking blob" not in caplog.text


class TestBlobErrors:

    def test_start_failure(self, settings, no_docker_auth, blob_file):
        registry = FakeRegistry(username="alice", password="pw")
        pusher = make_pusher(settings, registry, no_docker_auth)

        with pytest.raises(BlobUploadError, match="Failed to start upload") as exc_info:
            pusher.push("ns/svc", blob_file)

        assert exc_info.value.status_code == 401
        assert exc_info.value.digest == digest_bytes(b"some layer bytes")

    def test_digest_rejected(self, settings, fake_registry, no_docker_auth, blob_file, monkeypatch):
        """Test that a 400 from the upload PUT surfaces as BlobUploadError."""
        pusher = make_pusher(settings, fake_registry, no_docker_auth)
        monkeypatch.setattr(
            "image_deployer.registry.blobs.digest_file",
            lambda path: ("sha256:" + "0" * 64, path.stat().st_size),
        )

        with pytest.raises(BlobUploadError, match="Failed to upload blob") as exc_info:
            pusher.push("ns/svc", blob_file)

        assert exc_info.value.status_code == 400

"""Root pytest configuration for image-deployer tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from image_deployer.operations.events import MemorySink
from image_deployer.registry.auth import DockerAuth
from image_deployer.registry.client import RegistryClient
from image_deployer.settings import Settings

from .fakes.fake_registry import FakeRegistry
from .helpers.archives import build_image_archive


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires Docker)"
    )


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the operator's real config and Docker credentials."""
    for name in ("DEPLOYER_CONFIG_PATH", "DEPLOYER_IMAGES_DIR", "DEPLOYER_GIT_BRANCH",
                 "DEPLOYER_STRICT_PATCH", "DEPLOYER_PIPELINE_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def settings(tmp_path):
    """Standard test settings."""
    return Settings(
        config_path=tmp_path / "config.json",
        images_dir=tmp_path / "images",
        git_timeout_s=60.0,
    )


@pytest.fixture
def fake_registry():
    """Standard in-memory registry."""
    return FakeRegistry()


@pytest.fixture
def no_docker_auth(tmp_path):
    """DockerAuth pointing at a config file that does not exist."""
    return DockerAuth(config_path=tmp_path / "no-docker-config.json")


@pytest.fixture
def registry_factory(fake_registry, no_docker_auth):
    """RegistryClient factory bound to the fake registry."""
    def factory(settings, on_progress):
        return RegistryClient(
            settings,
            transport=fake_registry.transport,
            docker_auth=no_docker_auth,
            on_progress=on_progress,
        )
    return factory


@pytest.fixture
def client(settings, fake_registry, no_docker_auth):
    """RegistryClient logged in to the fake registry."""
    registry_client = RegistryClient(settings, transport=fake_registry.transport, docker_auth=no_docker_auth)
    registry_client.login(None, None, fake_registry.host)
    yield registry_client
    registry_client.close()


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def archive(tmp_path) -> Path:
    """Two-layer archive matching the abc.json / l1.tar / l2.tar layout."""
    return build_image_archive(tmp_path / "images" / "svc.tar")

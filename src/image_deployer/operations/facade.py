"""
Operations Facade - Application service layer.

Sits between the CLI and the core: loads operator configuration, turns it
into immutable DeploymentRequests, runs the orchestrator, and records the
deployed tag back into the config store. CLI commands stay thin and the core
never reads or writes configuration itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import ArchiveFormatError
from ..gitops.workspace import GitCredentials
from ..registry.client import PushResult
from ..registry.coordinate import RepositoryCoordinate, parse_coordinate, validate_tag
from ..settings import Settings
from .config_store import ConfigStore, DeployerConfig, JsonConfigStore, ServiceConfig
from .events import DeploymentEvent, LoggingSink, LogSink, Notifier
from .orchestrator import (
    DeploymentOrchestrator,
    DeploymentRequest,
    DeploymentResult,
    RegistryClientFactory,
    RegistryCredentials,
)

logger = logging.getLogger(__name__)

__all__ = ["OpsConfig", "Operations", "resolve_coordinate"]


def resolve_coordinate(registry_url: str, service_name: str) -> RepositoryCoordinate:
    """
    Turn a configured registry URL into a repository coordinate.

    A bare host (no repository path) uses the service name as repository.

    Examples:
        >>> resolve_coordinate("harbor:80/sth/sth-api", "api")
        RepositoryCoordinate(registry_host='harbor:80', repository='sth/sth-api')

        >>> resolve_coordinate("localhost:5000", "worker")
        RepositoryCoordinate(registry_host='localhost:5000', repository='worker')
    """
    if not registry_url or not registry_url.strip():
        raise ValueError(f"No registry URL configured for service '{service_name}'")

    without_scheme = registry_url.strip().split("://", 1)[-1].rstrip("/")
    if "/" not in without_scheme:
        return parse_coordinate(f"{registry_url.strip().rstrip('/')}/{service_name}")
    return parse_coordinate(registry_url)


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    parallel: Maximum concurrent service deployments
    verbose: Show detailed output
    """
    parallel: int = 1
    verbose: bool = False


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. Collaborators (config store, sink, notifier,
    registry client factory) are injectable so commands can be exercised
    against fakes. Exceptions bubble up for central mapping in
    ``run_and_exit``; deployment failures are returned as results.
    """

    def __init__(self, config: OpsConfig, *,
                 settings: Optional[Settings] = None,
                 store: Optional[ConfigStore] = None,
                 sink: Optional[LogSink] = None,
                 notifier: Optional[Notifier] = None,
                 registry_factory: Optional[RegistryClientFactory] = None,
                 orchestrator: Optional[DeploymentOrchestrator] = None):
        """
        Initialize Operations facade.

        Args:
            config: Facade policy
            settings: Optional settings (if None, loaded from environment)
            store: Config store (if None, JSON file at settings.config_path)
            sink: Progress sink shared by every run
            notifier: Terminal outcome display
            registry_factory: RegistryClient factory override
            orchestrator: Orchestrator override
        """
        self.cfg = config

        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        self.settings = settings

        self.store = store or JsonConfigStore(settings.config_path)
        self.sink = sink or LoggingSink()
        self.orchestrator = orchestrator or DeploymentOrchestrator(
            settings, sink=self.sink, notifier=notifier, registry_factory=registry_factory
        )

    def build_request(self, config: DeployerConfig, service_name: str, tag: str, *,
                      archive_path: Optional[Path] = None,
                      registry_url: Optional[str] = None,
                      manifest_path: Optional[str] = None) -> DeploymentRequest:
        """
        Assemble the immutable request for one service.

        Command-line overrides win over the stored service config.

        Raises:
            ValueError: If the git remote, registry URL or tag is missing or invalid
        """
        if not config.git_repo_url:
            raise ValueError("No git repository URL configured (git_repo_url)")
        validate_tag(tag)

        try:
            service = config.service(service_name)
        except KeyError:
            # An explicit registry is enough to deploy a service not yet in the store.
            if not registry_url:
                raise ValueError(f"No registry URL configured for service '{service_name}'") from None
            service = ServiceConfig()
        coordinate = resolve_coordinate(registry_url or service.registry_url, service_name)

        registry_credentials = None
        if config.reg_username:
            registry_credentials = RegistryCredentials(config.reg_username, config.reg_password)

        return DeploymentRequest(
            service_name=service_name,
            tag=tag,
            coordinate=coordinate,
            git_remote_url=config.git_repo_url,
            archive_path=archive_path,
            manifest_path_hint=manifest_path or service.manifest_path,
            git_credentials=GitCredentials(config.username or None, config.password or None),
            registry_credentials=registry_credentials,
        )

    def deploy(self, services: Sequence[str], tag: str, *,
               archive_path: Optional[Path] = None,
               registry_url: Optional[str] = None,
               manifest_path: Optional[str] = None) -> List[DeploymentResult]:
        """
        Deploy ``tag`` for each service.

        Per-service overrides (archive, registry, manifest path) are only
        accepted for a single service.

        Returns:
            One result per service, in argument order
        """
        if not services:
            raise ValueError("At least one service is required")
        if len(services) > 1 and (archive_path or registry_url or manifest_path):
            raise ValueError("--archive, --registry and --manifest-path apply to a single service only")

        config = self.store.load()
        requests = [
            self.build_request(config, name, tag, archive_path=archive_path,
                               registry_url=registry_url, manifest_path=manifest_path)
            for name in services
        ]

        if len(requests) == 1:
            results = [self.orchestrator.run(requests[0])]
        else:
            results = self.orchestrator.run_many(requests, max_workers=self.cfg.parallel)

        self._record_deployed(requests, results, registry_url=registry_url, manifest_path=manifest_path)
        return results

    def push(self, archive_path: Path, reference: str, tag: str) -> PushResult:
        """
        Push an image archive to the registry without touching git.

        Registry credentials come from the config store, then the Docker
        config.
        """
        validate_tag(tag)
        coordinate = parse_coordinate(reference)
        if not Path(archive_path).is_file():
            raise ArchiveFormatError(f"Image archive not found: {archive_path}")

        config = self.store.load()
        identifier = coordinate.identifier

        def progress(message: str) -> None:
            self.sink.emit(DeploymentEvent(service=identifier, message=message))

        with self.orchestrator.registry_factory(self.settings, progress) as client:
            client.login(config.reg_username or None, config.reg_password or None, coordinate.registry_host)
            return client.push_image(archive_path, coordinate.repository, tag)

    def services(self) -> DeployerConfig:
        """Return the stored configuration for listing."""
        return self.store.load()

    def _record_deployed(self, requests: Sequence[DeploymentRequest], results: Sequence[DeploymentResult], *,
                         registry_url: Optional[str], manifest_path: Optional[str]) -> None:
        succeeded = [(req, res) for req, res in zip(requests, results) if res.succeeded]
        if not succeeded:
            return

        # Reload so edits made while the runs were in flight are kept.
        config = self.store.load()
        for request, result in succeeded:
            service = config.service_configs.get(request.service_name) or ServiceConfig()
            service.last_tag = result.tag or request.tag
            if registry_url:
                service.registry_url = registry_url
            if manifest_path:
                service.manifest_path = manifest_path
            config.service_configs[request.service_name] = service
        self.store.save(config)
        logger.debug(f"Recorded last tag for {', '.join(req.service_name for req, _ in succeeded)}")

"""
Deployment orchestrator.

Sequences one deployment as a fail-fast pipeline:

    INIT -> PUSHING_IMAGE -> CLONING_REPO -> LOCATING_MANIFEST
         -> PATCHING_TAG -> COMMITTING_AND_PUSHING -> SUCCEEDED

Any error moves the run straight to FAILED with the originating exception
attached. Nothing is rolled back: blobs and a published manifest stay in the
registry, and a run that fails after the push is flagged so the caller can
report the inconsistency and retry (blob dedup makes the retry cheap).
"""
from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..errors import ArchiveFormatError, DeployerError, DeploymentTimeoutError
from ..gitops.locator import locate_manifest
from ..gitops.patcher import patch_image_tag
from ..gitops.workspace import GitCredentials, GitWorkspace, GitWorkspaceManager
from ..registry.client import ProgressCallback, PushResult, RegistryClient
from ..registry.coordinate import RepositoryCoordinate, validate_tag
from ..settings import Settings
from .events import DeploymentEvent, EventLevel, LoggingSink, LogSink, Notifier, NullNotifier

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]")

RegistryClientFactory = Callable[[Settings, ProgressCallback], RegistryClient]

__all__ = [
    "DeployStage",
    "RegistryCredentials",
    "DeploymentRequest",
    "DeploymentResult",
    "DeploymentOrchestrator",
    "default_archive_path",
]


class DeployStage(str, Enum):
    INIT = "init"
    PUSHING_IMAGE = "pushing_image"
    CLONING_REPO = "cloning_repo"
    LOCATING_MANIFEST = "locating_manifest"
    PATCHING_TAG = "patching_tag"
    COMMITTING_AND_PUSHING = "committing_and_pushing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")

    @property
    def terminal(self) -> bool:
        return self in (DeployStage.SUCCEEDED, DeployStage.FAILED)


@dataclass(frozen=True)
class RegistryCredentials:
    username: Optional[str] = None
    password: Optional[str] = None

    def __repr__(self) -> str:
        return f"RegistryCredentials(username={self.username!r}, password=***)"


@dataclass(frozen=True)
class DeploymentRequest:
    """
    Immutable input to one orchestrator run.

    ``archive_path`` defaults to ``<images_dir>/<service_name>.tar``.
    ``registry_credentials`` of None means "use the Docker config, if any".
    """
    service_name: str
    tag: str
    coordinate: RepositoryCoordinate
    git_remote_url: str
    archive_path: Optional[Path] = None
    manifest_path_hint: Optional[str] = None
    git_credentials: GitCredentials = field(default_factory=GitCredentials)
    registry_credentials: Optional[RegistryCredentials] = None


@dataclass
class DeploymentResult:
    """
    Terminal outcome of one run.

    ``stage`` is SUCCEEDED or FAILED; ``failed_stage`` names where a failed
    run stopped. ``tag`` is only set on success. ``registry_published`` is
    True whenever the manifest reached the registry, including runs that
    failed afterwards.
    """
    service_name: str
    stage: DeployStage = DeployStage.INIT
    succeeded: bool = False
    tag: Optional[str] = None
    error: Optional[BaseException] = None
    failed_stage: Optional[DeployStage] = None
    manifest_digest: Optional[str] = None
    registry_published: bool = False
    target_path: Optional[str] = None
    commit_sha: Optional[str] = None
    duration_s: float = 0.0

    @property
    def inconsistent(self) -> bool:
        """Registry updated but manifest repository not."""
        return self.registry_published and not self.succeeded


def default_archive_path(settings: Settings, service_name: str) -> Path:
    """Where an exported archive for ``service_name`` is expected by default."""
    return settings.images_dir / f"{service_name}.tar"


def _default_registry_factory(settings: Settings, on_progress: ProgressCallback) -> RegistryClient:
    return RegistryClient(settings, on_progress=on_progress)


class DeploymentOrchestrator:
    """
    Run deployments and report them through a LogSink and a Notifier.

    Runs for different services are independent; runs for the same service
    are serialized by a per-service lock so two pipelines never race on the
    same manifest edit. The orchestrator owns each run's git workspace and
    deletes it on every exit path.
    """

    def __init__(self, settings: Settings, *,
                 sink: Optional[LogSink] = None,
                 notifier: Optional[Notifier] = None,
                 git: Optional[GitWorkspaceManager] = None,
                 registry_factory: Optional[RegistryClientFactory] = None):
        """
        Initialize orchestrator.

        Args:
            settings: Runtime settings
            sink: Progress event sink (defaults to LoggingSink)
            notifier: Terminal outcome display (defaults to no-op)
            git: Git workspace manager
            registry_factory: Builds one RegistryClient per run (tests inject
                clients bound to a mock transport)
        """
        self.settings = settings
        self.sink = sink or LoggingSink()
        self.notifier = notifier or NullNotifier()
        self.git = git or GitWorkspaceManager(settings)
        self.registry_factory = registry_factory or _default_registry_factory
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def run(self, request: DeploymentRequest) -> DeploymentResult:
        """
        Execute one deployment to a terminal state.

        Never raises for pipeline failures; the error is attached to the
        returned result. Blocks while another run for the same service is
        in progress.
        """
        lock = self._service_lock(request.service_name)
        if lock.locked():
            self._emit(request.service_name, "Waiting for the previous deployment of this service to finish...")
        with lock:
            return self._run_pipeline(request)

    def run_many(self, requests: Sequence[DeploymentRequest],
                 max_workers: Optional[int] = None) -> List[DeploymentResult]:
        """
        Run several deployments concurrently.

        Results are returned in request order. Requests for the same service
        run one after another.
        """
        if not requests:
            return []
        workers = max_workers or len(requests)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="deploy") as pool:
            futures = [pool.submit(self.run, request) for request in requests]
            return [future.result() for future in futures]

    def _run_pipeline(self, request: DeploymentRequest) -> DeploymentResult:
        service = request.service_name
        result = DeploymentResult(service_name=service)
        started = time.monotonic()
        deadline = started + self.settings.pipeline_timeout_s if self.settings.pipeline_timeout_s else None
        workspace: Optional[GitWorkspace] = None

        try:
            validate_tag(request.tag)
            archive_path = request.archive_path or default_archive_path(self.settings, service)
            if not archive_path.is_file():
                raise ArchiveFormatError(f"Image archive not found: {archive_path}")

            self._advance(result, DeployStage.PUSHING_IMAGE, deadline,
                          f"Pushing {archive_path} to {request.coordinate}:{request.tag}...")
            pushed = self._push_image(request, archive_path)
            result.registry_published = True
            result.manifest_digest = pushed.manifest.digest
            self._emit(service, f"Image pushed to registry ({pushed.uploaded_count} blobs uploaded, "
                                f"digest {pushed.manifest.digest})", EventLevel.SUCCESS, result.stage)

            self._advance(result, DeployStage.CLONING_REPO, deadline, "Cloning manifest repository...")
            workspace = self.git.open(request.git_remote_url, request.git_credentials,
                                     prefix=f"repo_{_SAFE_NAME_RE.sub('_', service)}_")

            identifier = request.coordinate.identifier
            self._advance(result, DeployStage.LOCATING_MANIFEST, deadline,
                          f'Locating manifest for "{identifier}"...')
            located = locate_manifest(workspace.path, identifier, request.manifest_path_hint)
            result.target_path = located.relative_path
            if located.ambiguous:
                self._emit(service, f"Multiple manifests mention {identifier}: {', '.join(located.candidates)}; "
                                    f"using {located.relative_path}", EventLevel.WARNING, result.stage)
            self._emit(service, f"Found manifest at: {located.relative_path}", stage=result.stage)

            self._advance(result, DeployStage.PATCHING_TAG, deadline,
                          f"Setting {identifier} tag to {request.tag}...")
            patch = patch_image_tag(workspace.path / located.relative_path, identifier, request.tag,
                                    strict=self.settings.strict_patch)

            if patch.changed:
                self._advance(result, DeployStage.COMMITTING_AND_PUSHING, deadline,
                              f"Committing and pushing {located.relative_path}...")
                result.commit_sha = self.git.commit_and_push(
                    workspace,
                    located.relative_path,
                    f"Deploy {service}:{request.tag}",
                    author_name=request.git_credentials.username or None,
                )
            elif patch.replacements == 0:
                self._emit(service, f"No image line for {identifier} in {located.relative_path}; "
                                    f"manifest not updated", EventLevel.WARNING, result.stage)
            else:
                self._emit(service, f"{located.relative_path} already at {request.tag}; nothing to commit",
                           stage=result.stage)

            result.stage = DeployStage.SUCCEEDED
            result.succeeded = True
            result.tag = request.tag
            self._emit(service, f"Deployed {service}:{request.tag}", EventLevel.SUCCESS, result.stage)
            self.notifier.show("success", "Deployment Complete", f"Successfully deployed {service}:{request.tag}")

        except Exception as e:
            self._fail(request, result, e)

        finally:
            if workspace is not None:
                self._close_workspace(service, workspace)
            result.duration_s = time.monotonic() - started

        return result

    def _push_image(self, request: DeploymentRequest, archive_path: Path) -> PushResult:
        service = request.service_name

        def progress(message: str) -> None:
            self._emit(service, message, stage=DeployStage.PUSHING_IMAGE)

        creds = request.registry_credentials or RegistryCredentials()
        with self.registry_factory(self.settings, progress) as client:
            client.login(creds.username, creds.password, request.coordinate.registry_host)
            return client.push_image(archive_path, request.coordinate.repository, request.tag)

    def _advance(self, result: DeploymentResult, stage: DeployStage,
                 deadline: Optional[float], message: str) -> None:
        if deadline is not None and time.monotonic() > deadline:
            raise DeploymentTimeoutError(
                f"Deployment exceeded {self.settings.pipeline_timeout_s}s before {stage.label}"
            )
        result.stage = stage
        self._emit(result.service_name, message, stage=stage)

    def _fail(self, request: DeploymentRequest, result: DeploymentResult, error: Exception) -> None:
        service = request.service_name
        result.failed_stage = result.stage
        result.stage = DeployStage.FAILED
        result.error = error

        if not isinstance(error, (DeployerError, ValueError)):
            logger.exception(f"Unexpected error deploying {service}")

        self._emit(service, f"Deployment failed during {result.failed_stage.label}: {error}",
                   EventLevel.ERROR, result.stage)
        if result.registry_published:
            self._emit(service, f"Image {request.coordinate}:{request.tag} is published (digest "
                                f"{result.manifest_digest}) but the manifest repository was not updated. "
                                f"Re-run the deployment once the cause is fixed.",
                       EventLevel.WARNING, result.stage)
        self.notifier.show("error", "Deployment Failed", f"{service}: {error}")

    def _close_workspace(self, service: str, workspace: GitWorkspace) -> None:
        try:
            self.git.close(workspace)
        except OSError as e:
            self._emit(service, f"Could not remove workspace {workspace.path}: {e}", EventLevel.WARNING)

    def _emit(self, service: str, message: str, level: EventLevel = EventLevel.INFO,
              stage: Optional[DeployStage] = None) -> None:
        self.sink.emit(DeploymentEvent(
            service=service,
            message=message,
            level=level,
            stage=stage.value if stage else None,
        ))

    def _service_lock(self, service: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(service)
            if lock is None:
                lock = self._locks[service] = threading.Lock()
            return lock

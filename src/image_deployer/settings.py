"""
Settings and configuration for the image deployer.

Centralizes runtime knobs (timeouts, TLS, git branch, parallelism) and provides
validation with fail-fast behavior. Operator data such as credentials and the
list of services lives in the ConfigStore, not here.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

__all__ = ["Settings", "create_settings_from_env", "DEFAULT_CONFIG_PATH"]

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "image-deployer" / "config.json"


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for a deployment run.

    Registry Settings:
        http_timeout_s: Per-request HTTP timeout in seconds
        http_retry: Retries for requests that never reached the registry
            (connection errors only, 0=no retry)
        registry_tls: Use https for registry hosts given without a scheme
        registry_verify_tls: Verify registry TLS certificates
        layer_upload_workers: Concurrent layer uploads (1=sequential)

    Git Settings:
        git_branch: Branch that receives the manifest commit
        git_author_name: Commit author when no git username is configured
        git_author_email: Commit author email placeholder
        git_timeout_s: Timeout for each git subprocess

    Pipeline Settings:
        pipeline_timeout_s: Overall deadline for one deployment (None=unbounded)
        images_dir: Directory searched for <service>.tar when no archive is given
        config_path: Location of the JSON config store
        strict_patch: Fail when no image line matches the service identifier
    """
    http_timeout_s: float = 30.0
    http_retry: int = 0
    registry_tls: bool = False
    registry_verify_tls: bool = True
    layer_upload_workers: int = 1

    git_branch: str = "main"
    git_author_name: str = "GitOps Deployer"
    git_author_email: str = "deployer@example.com"
    git_timeout_s: float = 300.0

    pipeline_timeout_s: Optional[float] = 1800.0
    images_dir: Path = field(default_factory=lambda: Path("images"))
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG_PATH)
    strict_patch: bool = True

    def __post_init__(self):
        """Validate settings on construction."""
        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        if self.layer_upload_workers < 1:
            raise ValueError(f"layer_upload_workers must be at least 1, got {self.layer_upload_workers}")

        if not self.git_branch or self.git_branch.startswith("-") or " " in self.git_branch:
            raise ValueError(f"Invalid git_branch: {self.git_branch!r}")

        if self.git_timeout_s <= 0:
            raise ValueError(f"git_timeout_s must be positive, got {self.git_timeout_s}")

        if self.pipeline_timeout_s is not None and self.pipeline_timeout_s <= 0:
            raise ValueError(f"pipeline_timeout_s must be positive, got {self.pipeline_timeout_s}")


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        Registry:
        - DEPLOYER_HTTP_TIMEOUT (default: 30.0)
        - DEPLOYER_HTTP_RETRY (default: 0)
        - DEPLOYER_REGISTRY_TLS (default: false)
        - DEPLOYER_REGISTRY_VERIFY_TLS (default: true)
        - DEPLOYER_LAYER_WORKERS (default: 1)

        Git:
        - DEPLOYER_GIT_BRANCH (default: main)
        - DEPLOYER_GIT_AUTHOR_NAME (default: GitOps Deployer)
        - DEPLOYER_GIT_AUTHOR_EMAIL (default: deployer@example.com)
        - DEPLOYER_GIT_TIMEOUT (default: 300.0)

        Pipeline:
        - DEPLOYER_PIPELINE_TIMEOUT (default: 1800.0, "0" or "none" disables)
        - DEPLOYER_IMAGES_DIR (default: images)
        - DEPLOYER_CONFIG_PATH (default: ~/.config/image-deployer/config.json)
        - DEPLOYER_STRICT_PATCH (default: true)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If a value cannot be parsed or fails validation

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    pipeline_raw = os.getenv("DEPLOYER_PIPELINE_TIMEOUT")
    if pipeline_raw is None or pipeline_raw == "":
        pipeline_timeout_s: Optional[float] = 1800.0
    elif pipeline_raw.lower() in ("0", "none"):
        pipeline_timeout_s = None
    else:
        pipeline_timeout_s = float(pipeline_raw)

    config_path = os.getenv("DEPLOYER_CONFIG_PATH")

    return Settings(
        http_timeout_s=get_float("DEPLOYER_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("DEPLOYER_HTTP_RETRY", 0),
        registry_tls=str_to_bool(os.getenv("DEPLOYER_REGISTRY_TLS", "false")),
        registry_verify_tls=str_to_bool(os.getenv("DEPLOYER_REGISTRY_VERIFY_TLS", "true")),
        layer_upload_workers=get_int("DEPLOYER_LAYER_WORKERS", 1),
        git_branch=os.getenv("DEPLOYER_GIT_BRANCH", "main"),
        git_author_name=os.getenv("DEPLOYER_GIT_AUTHOR_NAME", "GitOps Deployer"),
        git_author_email=os.getenv("DEPLOYER_GIT_AUTHOR_EMAIL", "deployer@example.com"),
        git_timeout_s=get_float("DEPLOYER_GIT_TIMEOUT", 300.0),
        pipeline_timeout_s=pipeline_timeout_s,
        images_dir=Path(os.getenv("DEPLOYER_IMAGES_DIR", "images")),
        config_path=Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH,
        strict_patch=str_to_bool(os.getenv("DEPLOYER_STRICT_PATCH", "true")),
    )

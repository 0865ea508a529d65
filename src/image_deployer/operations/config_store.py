"""
JSON configuration store.

Persists operator data (git remote, credentials, per-service registry
coordinates and last deployed tags). The orchestrator never touches this;
the facade loads it before a run and saves the new tag after success.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

__all__ = ["ServiceConfig", "DeployerConfig", "ConfigStore", "JsonConfigStore"]


class ServiceConfig(BaseModel):
    """Per-service deployment target."""
    model_config = ConfigDict(extra="ignore")

    registry_url: str = ""
    last_tag: str = ""
    manifest_path: Optional[str] = None


class DeployerConfig(BaseModel):
    """Everything the operator configures once and reuses across runs."""
    model_config = ConfigDict(extra="ignore")

    git_repo_url: str = ""
    username: str = ""
    password: str = ""
    reg_username: str = ""
    reg_password: str = ""
    service_configs: Dict[str, ServiceConfig] = Field(default_factory=dict)

    def service(self, name: str) -> ServiceConfig:
        """
        Return the config for ``name``.

        Raises:
            KeyError: If the service is not configured
        """
        try:
            return self.service_configs[name]
        except KeyError:
            raise KeyError(f"Service '{name}' is not configured") from None


@runtime_checkable
class ConfigStore(Protocol):
    def load(self) -> DeployerConfig:
        ...

    def save(self, config: DeployerConfig) -> None:
        ...


class JsonConfigStore:
    """ConfigStore backed by a pretty-printed JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def load(self) -> DeployerConfig:
        """
        Load the config, or an empty one when the file does not exist.

        Raises:
            ValueError: If the file exists but is not a valid config
        """
        if not self.path.exists():
            logger.debug(f"No config at {self.path}; using defaults")
            return DeployerConfig()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file {self.path} is not valid JSON: {e}") from e

        try:
            return DeployerConfig.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Config file {self.path} is invalid: {e}") from e

    def save(self, config: DeployerConfig) -> None:
        """Write atomically (temp file + rename) with owner-only permissions."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = config.model_dump_json(indent=2)

        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".config-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved config to {self.path}")

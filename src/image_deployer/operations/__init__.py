"""
Operations layer: deployment orchestration and the CLI-facing facade.
"""
from .config_store import DeployerConfig, JsonConfigStore, ServiceConfig
from .events import DeploymentEvent, EventLevel, LoggingSink, MemorySink
from .facade import Operations, OpsConfig
from .mappers import exit_code_for, run_and_exit
from .orchestrator import (
    DeploymentOrchestrator,
    DeploymentRequest,
    DeploymentResult,
    DeployStage,
    RegistryCredentials,
)

__all__ = [
    "DeployStage",
    "DeployerConfig",
    "DeploymentEvent",
    "DeploymentOrchestrator",
    "DeploymentRequest",
    "DeploymentResult",
    "EventLevel",
    "JsonConfigStore",
    "LoggingSink",
    "MemorySink",
    "Operations",
    "OpsConfig",
    "RegistryCredentials",
    "ServiceConfig",
    "exit_code_for",
    "run_and_exit",
]

"""
CLI Context for managing application dependencies.

Holds the settings and the lazily-built Operations facade for one CLI
invocation, avoiding global state and letting tests swap in fakes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .operations.facade import Operations, OpsConfig
from .operations.printers import ConsoleNotifier, ConsoleSink
from .settings import Settings, create_settings_from_env


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, operations facade)
    that are initialized once and shared across a CLI command execution.
    """
    settings: Settings
    _ops: Optional[Operations] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Create CLI context from environment variables.

        Returns:
            CLIContext with settings loaded from environment
        """
        return cls(settings=create_settings_from_env())

    def operations(self, config: Optional[OpsConfig] = None) -> Operations:
        """
        Get or create the Operations facade (lazy initialization).

        Progress goes to the terminal through ConsoleSink and outcomes
        through ConsoleNotifier.
        """
        if self._ops is None:
            self._ops = Operations(
                config or OpsConfig(),
                settings=self.settings,
                sink=ConsoleSink(),
                notifier=ConsoleNotifier(),
            )
        return self._ops

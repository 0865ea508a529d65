"""
Deployment events and collaborator contracts.

The orchestrator never prints, pops up dialogs, or reads configuration. It
emits ``DeploymentEvent``s to a ``LogSink`` keyed by service name and reports
the terminal outcome to a ``Notifier``; the caller decides how to render them.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol, runtime_checkable

__all__ = [
    "EventLevel",
    "DeploymentEvent",
    "LogSink",
    "Notifier",
    "LoggingSink",
    "MemorySink",
    "NullNotifier",
]


class EventLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    @property
    def logging_level(self) -> int:
        return {
            EventLevel.INFO: logging.INFO,
            EventLevel.SUCCESS: logging.INFO,
            EventLevel.WARNING: logging.WARNING,
            EventLevel.ERROR: logging.ERROR,
        }[self]


@dataclass(frozen=True)
class DeploymentEvent:
    """One progress line for one service."""
    service: str
    message: str
    level: EventLevel = EventLevel.INFO
    stage: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@runtime_checkable
class LogSink(Protocol):
    """Receives progress events; must tolerate concurrent calls."""

    def emit(self, event: DeploymentEvent) -> None:
        ...


@runtime_checkable
class Notifier(Protocol):
    """Displays a terminal outcome (kind is "success" or "error")."""

    def show(self, kind: str, title: str, message: str) -> None:
        ...


class LoggingSink:
    """Route events to ``image_deployer.deploy.<service>`` loggers."""

    def __init__(self, prefix: str = "image_deployer.deploy"):
        self.prefix = prefix

    def emit(self, event: DeploymentEvent) -> None:
        logging.getLogger(f"{self.prefix}.{event.service}").log(
            event.level.logging_level, event.message
        )


class MemorySink:
    """
    Thread-safe in-memory sink with one buffer per service.

    Used by tests and by callers that render logs after the run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._events: Dict[str, List[DeploymentEvent]] = defaultdict(list)

    def emit(self, event: DeploymentEvent) -> None:
        with self._lock:
            self._events[event.service].append(event)

    def events(self, service: str) -> List[DeploymentEvent]:
        with self._lock:
            return list(self._events.get(service, ()))

    def messages(self, service: str) -> List[str]:
        return [event.message for event in self.events(service)]

    def services(self) -> List[str]:
        with self._lock:
            return sorted(self._events)


class NullNotifier:
    def show(self, kind: str, title: str, message: str) -> None:
        pass

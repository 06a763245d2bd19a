"""Error types for fleetrun."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Kind tag carried by failed results and raised errors."""

    CONNECTION = "ConnectionError"
    EXECUTION = "ExecutionError"
    INITIALIZATION = "InitializationError"
    CONFIG = "ConfigError"


class FleetrunError(Exception):
    """Base class for errors that know how to describe themselves as a result."""

    kind: ErrorKind = ErrorKind.EXECUTION

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "msg": self.message, "details": self.details}


class NodeConnectionError(FleetrunError):
    """Raised by a transport when it cannot reach or authenticate to a node."""

    kind = ErrorKind.CONNECTION


class NodeExecutionError(FleetrunError):
    """Raised by a transport when an action fails on a connected node."""

    kind = ErrorKind.EXECUTION


class InitializationError(FleetrunError):
    """A transport's one-time setup failed; nothing was run."""

    kind = ErrorKind.INITIALIZATION

    def __init__(self, transport: str, cause: BaseException):
        super().__init__(
            f"Failed to initialize {transport} transport: {cause}",
            {"transport": transport},
        )
        self.transport = transport


class ConfigError(FleetrunError):
    """Invalid configuration file or value."""

    kind = ErrorKind.CONFIG


class DisconnectWarning(Warning):
    """Closing a node connection failed. Logged, never raised."""

"""fleetrun: Run commands, scripts, tasks and uploads on many nodes in parallel."""

from .config import Config, LocalConfig, SSHConfig, load_config
from .errors import (
    ConfigError,
    DisconnectWarning,
    ErrorKind,
    FleetrunError,
    InitializationError,
    NodeConnectionError,
    NodeExecutionError,
)
from .executor import Executor
from .node import Node, from_uri, register_transport
from .notifier import EventKind, NotificationEvent, Notifier
from .result import Result
from .store import ResultSet, ResultStore

# Registers the built-in local:// and ssh:// transports.
from . import transports  # noqa: F401

__all__ = [
    "Config",
    "LocalConfig",
    "SSHConfig",
    "load_config",
    "ConfigError",
    "DisconnectWarning",
    "ErrorKind",
    "FleetrunError",
    "InitializationError",
    "NodeConnectionError",
    "NodeExecutionError",
    "Executor",
    "Node",
    "from_uri",
    "register_transport",
    "EventKind",
    "NotificationEvent",
    "Notifier",
    "Result",
    "ResultSet",
    "ResultStore",
]

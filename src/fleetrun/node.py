"""Node handles and the transport registry."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, ClassVar
from urllib.parse import urlsplit

from .config import Config
from .errors import ErrorKind
from .result import Result

INPUT_METHODS = ("stdin", "environment", "both")

# Called once per transport kind before any node of that kind is touched.
TransportHook = Callable[[Config, logging.Logger], None]


class Node(ABC):
    """A handle to one remote target.

    Nodes compare by identity: two nodes with the same URI but different
    credentials are different targets.
    """

    transport: ClassVar[str] = ""

    def __init__(self, uri: str, config: Config | None = None):
        self.uri = uri
        self.config = config or Config()
        parts = urlsplit(uri if "://" in uri else f"{self.transport}://{uri}")
        self.host = parts.hostname or ""
        self.port = parts.port
        self.user = parts.username
        self.password = parts.password

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.uri}>"

    @property
    def noop(self) -> bool:
        return self.config.noop

    @abstractmethod
    def connect(self) -> None:
        """Open the connection. Raises NodeConnectionError on failure."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection if one is open."""

    @abstractmethod
    def run_command(self, command: str) -> Result: ...

    @abstractmethod
    def run_script(self, script: str, arguments: list[str]) -> Result: ...

    @abstractmethod
    def run_task(self, task: str, input_method: str, arguments: dict[str, Any]) -> Result: ...

    @abstractmethod
    def upload(self, source: str, destination: str) -> Result: ...

    def task_input(
        self, input_method: str, arguments: dict[str, Any]
    ) -> tuple[str | None, dict[str, str]]:
        """Return the (stdin, environment) pair a task is started with."""
        if input_method not in INPUT_METHODS:
            raise ValueError(
                f"Unknown input method {input_method!r}, expected one of {', '.join(INPUT_METHODS)}"
            )
        arguments = dict(arguments)
        if self.noop:
            arguments["_noop"] = True

        stdin = None
        env: dict[str, str] = {}
        if input_method in ("stdin", "both"):
            stdin = json.dumps(arguments)
        if input_method in ("environment", "both"):
            for key, value in arguments.items():
                env[f"PT_{key}"] = value if isinstance(value, str) else json.dumps(value)
        return stdin, env


def command_result(stdout: str, stderr: str, exit_code: int) -> Result:
    """Build the result of a finished command."""
    output = {"stdout": stdout, "stderr": stderr, "exit_code": exit_code}
    if exit_code == 0:
        return Result.ok(output)
    return Result.err(
        ErrorKind.EXECUTION,
        f"The command failed with exit code {exit_code}",
        output,
    )


def task_result(stdout: str, stderr: str, exit_code: int) -> Result:
    """Build the result of a finished task, decoding JSON output when present."""
    try:
        value = json.loads(stdout)
    except ValueError:
        value = None
    if not isinstance(value, dict):
        value = {"_output": stdout}

    if exit_code == 0:
        return Result.ok(value)
    return Result.err(
        ErrorKind.EXECUTION,
        f"The task failed with exit code {exit_code}",
        {"value": value, "stderr": stderr, "exit_code": exit_code},
    )


@dataclass
class Transport:
    """Registry entry for one transport kind."""

    kind: str
    node_class: type[Node]
    initialize: TransportHook | None = None


_TRANSPORTS: dict[str, Transport] = {}


def register_transport(
    kind: str, node_class: type[Node], initialize: TransportHook | None = None
) -> Transport:
    """Register (or replace) the node class and setup hook for a URI scheme."""
    transport = Transport(kind, node_class, initialize)
    _TRANSPORTS[kind] = transport
    return transport


def unregister_transport(kind: str) -> None:
    _TRANSPORTS.pop(kind, None)


def get_transport(kind: str) -> Transport | None:
    return _TRANSPORTS.get(kind)


def from_uri(uri: str, config: Config | None = None) -> Node:
    """Create a node from a connection string.

    URIs without a scheme are treated as ssh hosts.
    """
    scheme = uri.split("://", 1)[0].lower() if "://" in uri else "ssh"
    transport = get_transport(scheme)
    if transport is None:
        raise ValueError(f"Unknown transport '{scheme}' in {uri}")
    return transport.node_class(uri, config)

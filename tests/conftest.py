"""Shared fixtures for fleetrun tests."""

from __future__ import annotations

import threading
import time

import pytest

from fleetrun import Config, Executor, Node, Result
from fleetrun.errors import NodeConnectionError, NodeExecutionError


class Gauge:
    """Tracks how many actions are running at the same time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def __enter__(self) -> None:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def __exit__(self, *exc) -> None:
        with self._lock:
            self.active -= 1


class FakeNode(Node):
    """In-memory node whose behavior is set per instance."""

    transport = "fake"

    def __init__(
        self,
        uri: str,
        config: Config | None = None,
        fail_connect: bool = False,
        fail_action: bool = False,
        fail_disconnect: bool = False,
        delay: float = 0.0,
        gauge: Gauge | None = None,
    ):
        super().__init__(uri, config)
        self.fail_connect = fail_connect
        self.fail_action = fail_action
        self.fail_disconnect = fail_disconnect
        self.delay = delay
        self.gauge = gauge or Gauge()
        self.connects = 0
        self.disconnects = 0
        self.calls: list[tuple] = []

    def connect(self) -> None:
        self.connects += 1
        if self.fail_connect:
            raise NodeConnectionError(f"Failed to connect to {self.uri}")

    def disconnect(self) -> None:
        self.disconnects += 1
        if self.fail_disconnect:
            raise OSError("connection reset")

    def _act(self, *call) -> Result:
        self.calls.append(call)
        with self.gauge:
            if self.delay:
                time.sleep(self.delay)
        if self.fail_action:
            raise NodeExecutionError(f"{call[0]} failed on {self.uri}")
        return Result.ok({"stdout": f"{self.uri}\n", "stderr": "", "exit_code": 0})

    def run_command(self, command):
        return self._act("command", command)

    def run_script(self, script, arguments):
        return self._act("script", script, arguments)

    def run_task(self, task, input_method, arguments):
        return self._act("task", task, input_method, arguments)

    def upload(self, source, destination):
        return self._act("upload", source, destination)


@pytest.fixture
def config():
    return Config(concurrency=2)


@pytest.fixture
def executor(config):
    return Executor(config)


@pytest.fixture
def make_nodes():
    def make(count: int, **kwargs) -> list[FakeNode]:
        return [FakeNode(f"fake://node{i + 1}", **kwargs) for i in range(count)]

    return make

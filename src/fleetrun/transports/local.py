"""local:// transport: run actions on the controller host."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any

from ..errors import NodeConnectionError, NodeExecutionError
from ..node import Node, command_result, register_transport, task_result
from ..result import Result


class LocalNode(Node):
    """Runs commands with subprocess on the machine fleetrun runs on."""

    transport = "local"

    def __init__(self, uri: str, config=None):
        super().__init__(uri, config)
        self._tmpdir: Path | None = None

    def connect(self) -> None:
        base = self.config.local.tmpdir
        try:
            self._tmpdir = Path(tempfile.mkdtemp(prefix="fleetrun-", dir=base))
        except OSError as e:
            raise NodeConnectionError(f"Could not create a working directory: {e}") from e

    def disconnect(self) -> None:
        if self._tmpdir is not None:
            shutil.rmtree(self._tmpdir)
            self._tmpdir = None

    def _execute(
        self,
        argv: str | list[str],
        stdin: str | None = None,
        env: dict[str, str] | None = None,
    ) -> tuple[str, str, int]:
        shell = isinstance(argv, str)
        try:
            proc = subprocess.run(
                argv,
                shell=shell,
                executable=self.config.local.shell if shell else None,
                input=stdin,
                env={**os.environ, **env} if env else None,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise NodeExecutionError(f"Could not start {argv!r}: {e}") from e
        return proc.stdout, proc.stderr, proc.returncode

    def _stage(self, source: str) -> str:
        """Copy an executable into the working directory and return its path."""
        if self._tmpdir is None:
            raise NodeExecutionError(f"Not connected to {self.uri}")
        target = self._tmpdir / Path(source).name
        try:
            shutil.copy(source, target)
        except OSError as e:
            raise NodeExecutionError(f"Could not copy {source}: {e}") from e
        target.chmod(0o700)
        return str(target)

    def run_command(self, command: str) -> Result:
        return command_result(*self._execute(command))

    def run_script(self, script: str, arguments: list[str]) -> Result:
        path = self._stage(script)
        return command_result(*self._execute([path, *arguments]))

    def run_task(self, task: str, input_method: str, arguments: dict[str, Any]) -> Result:
        stdin, env = self.task_input(input_method, arguments)
        path = self._stage(task)
        return task_result(*self._execute([path], stdin=stdin, env=env))

    def upload(self, source: str, destination: str) -> Result:
        try:
            shutil.copy(source, destination)
        except OSError as e:
            raise NodeExecutionError(f"Could not upload {source}: {e}") from e
        return Result.ok({"_output": f"Uploaded '{source}' to '{destination}'"})


register_transport(LocalNode.transport, LocalNode)

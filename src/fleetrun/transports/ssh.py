"""ssh:// transport built on asyncssh."""

from __future__ import annotations

import asyncio
import logging
import posixpath
import shlex
from pathlib import Path
from typing import Any

import asyncssh

from ..config import Config
from ..errors import NodeConnectionError, NodeExecutionError
from ..node import Node, command_result, register_transport, task_result
from ..result import Result

logger = logging.getLogger(__name__)


def initialize(config: Config, logger: logging.Logger) -> None:
    """One-time setup shared by every ssh node in a run."""
    if not logger.isEnabledFor(logging.DEBUG):
        asyncssh.set_log_level(logging.WARNING)

    key = config.ssh.private_key
    if config.ssh.password is None and not Path(key).expanduser().exists():
        raise FileNotFoundError(f"SSH key not found: {key}")


class SSHNode(Node):
    """A node reached over SSH.

    Each node owns a private event loop so the blocking interface can be
    driven from a worker thread.
    """

    transport = "ssh"

    def __init__(self, uri: str, config: Config | None = None):
        super().__init__(uri, config)
        ssh = self.config.ssh
        self.user = self.user or ssh.user
        self.port = self.port or ssh.port
        self.password = self.password or ssh.password
        self.run_as = ssh.run_as
        self._loop: asyncio.AbstractEventLoop | None = None
        self._conn: asyncssh.SSHClientConnection | None = None

    def _run(self, coro):
        if self._loop is None or self._conn is None:
            coro.close()
            raise NodeExecutionError(f"Not connected to {self.uri}")
        return self._loop.run_until_complete(coro)

    def connect(self) -> None:
        ssh = self.config.ssh
        options: dict[str, Any] = {"port": self.port, "username": self.user}
        if ssh.insecure:
            options["known_hosts"] = None  # Skip host key verification
        if self.password:
            options["password"] = self.password
        else:
            options["client_keys"] = [str(ssh.private_key)]

        self._loop = asyncio.new_event_loop()
        try:
            self._conn = self._loop.run_until_complete(asyncssh.connect(self.host, **options))
        except (asyncssh.Error, OSError) as e:
            self._loop.close()
            self._loop = None
            raise NodeConnectionError(
                f"Failed to connect to {self.uri}: {e}",
                {"host": self.host, "port": self.port, "user": self.user},
            ) from e

    def disconnect(self) -> None:
        if self._loop is None:
            return
        try:
            if self._conn is not None:
                self._conn.close()
                self._loop.run_until_complete(self._conn.wait_closed())
        finally:
            self._conn = None
            self._loop.close()
            self._loop = None

    def _wrap(self, command: str, stdin: str | None) -> tuple[str, str | None]:
        """Apply run_as escalation to a command."""
        if not self.run_as or self.run_as == self.user:
            return command, stdin
        wrapped = f"sudo -S -p '' -u {shlex.quote(self.run_as)} -- sh -c {shlex.quote(command)}"
        password = self.config.ssh.sudo_password
        if password is not None:
            stdin = f"{password}\n{stdin or ''}"
        return wrapped, stdin

    def _execute(
        self, command: str, stdin: str | None = None, escalate: bool = True
    ) -> tuple[str, str, int]:
        if escalate:
            command, stdin = self._wrap(command, stdin)
        try:
            proc = self._run(self._conn.run(command, input=stdin, check=False))
        except asyncssh.Error as e:
            raise NodeExecutionError(f"Command error: {e}") from e
        # exit_status is None when the remote process was killed by a signal
        exit_code = proc.exit_status if proc.exit_status is not None else -1
        return proc.stdout or "", proc.stderr or "", exit_code

    def _put(self, source: str, destination: str) -> None:
        async def put() -> None:
            async with self._conn.start_sftp_client() as sftp:
                await sftp.put(source, destination)

        try:
            self._run(put())
        except (asyncssh.Error, OSError) as e:
            raise NodeExecutionError(f"Could not upload {source}: {e}") from e

    def _make_tmpdir(self) -> str:
        stdout, stderr, code = self._execute("mktemp -d", escalate=False)
        if code != 0:
            raise NodeExecutionError(f"Could not create a temporary directory: {stderr.strip()}")
        return stdout.strip()

    def _with_staged(self, source: str, run) -> Result:
        """Upload an executable to a scratch directory, run it, then clean up."""
        tmpdir = self._make_tmpdir()
        try:
            remote = posixpath.join(tmpdir, Path(source).name)
            self._put(source, remote)
            mode = "a+rx" if self.run_as else "u+x"
            self._execute(f"chmod {mode} {shlex.quote(tmpdir)} {shlex.quote(remote)}", escalate=False)
            return run(remote)
        finally:
            try:
                self._execute(f"rm -rf {shlex.quote(tmpdir)}", escalate=False)
            except NodeExecutionError as e:
                logger.info("Failed to remove %s on %s : %s", tmpdir, self.uri, e)

    def run_command(self, command: str) -> Result:
        return command_result(*self._execute(command))

    def run_script(self, script: str, arguments: list[str]) -> Result:
        def run(remote: str) -> Result:
            command = " ".join(shlex.quote(part) for part in [remote, *arguments])
            return command_result(*self._execute(command))

        return self._with_staged(script, run)

    def run_task(self, task: str, input_method: str, arguments: dict[str, Any]) -> Result:
        stdin, env = self.task_input(input_method, arguments)

        def run(remote: str) -> Result:
            command = shlex.quote(remote)
            if env:
                assignments = " ".join(f"{k}={shlex.quote(v)}" for k, v in env.items())
                command = f"env {assignments} {command}"
            return task_result(*self._execute(command, stdin=stdin))

        return self._with_staged(task, run)

    def upload(self, source: str, destination: str) -> Result:
        if self.run_as and self.run_as != self.user:
            def move(remote: str) -> Result:
                return command_result(
                    *self._execute(f"mv {shlex.quote(remote)} {shlex.quote(destination)}")
                )

            result = self._with_staged(source, move)
        else:
            self._put(source, destination)
            result = Result.ok()
        if result.error:
            return result
        return Result.ok({"_output": f"Uploaded '{source}' to '{self.host}:{destination}'"})


register_transport(SSHNode.transport, SSHNode, initialize)

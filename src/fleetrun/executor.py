"""Parallel execution of an action across many nodes."""

from __future__ import annotations

import dataclasses
import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, Sequence

from .config import Config
from .errors import DisconnectWarning, ErrorKind, InitializationError
from .logs import resolve_log_level
from .node import Node, from_uri, get_transport
from .notifier import Callback, EventKind, Notifier
from .result import Result
from .store import ResultSet, ResultStore

Action = Callable[[Node], Result]

_executor_ids = itertools.count(1)


class Executor:
    """Runs actions on nodes with a bounded pool of worker threads.

    A failure on one node is recorded as that node's result and never
    affects any other node.
    """

    def __init__(
        self,
        config: Config | None = None,
        noop: bool | None = None,
        plan_logging: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.config = config or Config()
        self.noop = self.config.noop if noop is None else noop
        # One logger per executor; its level is set once, here.
        self.logger = logger or logging.getLogger(f"fleetrun.executor.{next(_executor_ids)}")
        self.logger.setLevel(resolve_log_level(self.config.log_level, plan_logging))

    def from_uris(self, uris: Iterable[str]) -> list[Node]:
        """Create nodes for the given connection strings."""
        config = self.config
        if config.noop != self.noop:
            config = dataclasses.replace(config, noop=self.noop)
        return [from_uri(uri, config) for uri in uris]

    def execute(
        self,
        nodes: Sequence[Node],
        action: Action,
        callback: Callback | None = None,
    ) -> ResultSet:
        """Run ``action`` on every node and collect one result per node.

        Only a failing transport setup raises; every per-node failure is
        returned as an error result.
        """
        nodes = list(nodes)
        if len({id(node) for node in nodes}) != len(nodes):
            raise ValueError("The same node was given more than once")
        store = ResultStore(nodes)
        notifier = Notifier()

        poolsize = min(len(nodes), self.config.concurrency)
        self.logger.debug("Started with %d thread(s)", poolsize)

        self._initialize_transports(nodes)

        try:
            if nodes:
                with ThreadPoolExecutor(
                    max_workers=poolsize, thread_name_prefix="fleetrun-worker"
                ) as pool:
                    for index, node in enumerate(nodes):
                        pool.submit(self._run_node, store, notifier, index, node, action, callback)
        finally:
            notifier.shutdown()

        return store.snapshot()

    def _initialize_transports(self, nodes: Sequence[Node]) -> None:
        kinds = list(dict.fromkeys(node.transport for node in nodes))
        for kind in kinds:
            transport = get_transport(kind)
            if transport is None or transport.initialize is None:
                continue
            try:
                transport.initialize(self.config, self.logger)
            except Exception as e:
                raise InitializationError(kind, e) from e

    def _run_node(
        self,
        store: ResultStore,
        notifier: Notifier,
        index: int,
        node: Node,
        action: Action,
        callback: Callback | None,
    ) -> None:
        """Connect, act and disconnect on one node, recording exactly one result."""
        if callback:
            notifier.notify(callback, node, EventKind.START)

        try:
            try:
                node.connect()
            except Exception as e:
                failed = Result.from_exception(e)
                result = Result.err(ErrorKind.CONNECTION, failed.message, failed.details)
            else:
                try:
                    result = action(node)
                    if not isinstance(result, Result):
                        result = Result.ok(result)
                except Exception as e:
                    result = Result.from_exception(e, ErrorKind.EXECUTION)
        finally:
            try:
                node.disconnect()
            except Exception as e:
                self.logger.info(
                    "Failed to close connection to %s : %s",
                    node.uri,
                    e,
                    extra={"warning": DisconnectWarning(str(e))},
                )

        store.put(index, result)
        if callback:
            notifier.notify(callback, node, EventKind.FINISHED, result)

    def summary(self, action: str, obj: Any, results: ResultSet) -> str:
        failures = len(results.failures)
        npl = "" if len(results) == 1 else "s"
        fpl = "" if failures == 1 else "s"
        return f"Ran {action} '{obj}' on {len(results)} node{npl} with {failures} failure{fpl}"

    def _log_result(self, node: Node, result: Result) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug("Result on %s: %s", node.uri, result.to_json())

    def run_command(
        self, nodes: Sequence[Node], command: str, callback: Callback | None = None
    ) -> ResultSet:
        self.logger.info("Starting command run '%s' on %s", command, [n.uri for n in nodes])

        def action(node: Node) -> Result:
            self.logger.debug("Running command '%s' on %s", command, node.uri)
            result = node.run_command(command)
            self._log_result(node, result)
            return result

        results = self.execute(nodes, action, callback)
        self.logger.info(self.summary("command", command, results))
        return results

    def run_script(
        self,
        nodes: Sequence[Node],
        script: str,
        arguments: list[str],
        callback: Callback | None = None,
    ) -> ResultSet:
        self.logger.info("Starting script run %s on %s", script, [n.uri for n in nodes])
        self.logger.debug("Arguments: %s", arguments)

        def action(node: Node) -> Result:
            self.logger.debug("Running script '%s' on %s", script, node.uri)
            result = node.run_script(script, arguments)
            self._log_result(node, result)
            return result

        results = self.execute(nodes, action, callback)
        self.logger.info(self.summary("script", script, results))
        return results

    def run_task(
        self,
        nodes: Sequence[Node],
        task: str,
        input_method: str,
        arguments: dict[str, Any],
        callback: Callback | None = None,
    ) -> ResultSet:
        self.logger.info("Starting task %s on %s", task, [n.uri for n in nodes])
        self.logger.debug("Arguments: %s Input method: %s", arguments, input_method)

        def action(node: Node) -> Result:
            self.logger.debug("Running task run '%s' on %s", task, node.uri)
            result = node.run_task(task, input_method, arguments)
            self._log_result(node, result)
            return result

        results = self.execute(nodes, action, callback)
        self.logger.info(self.summary("task", task, results))
        return results

    def file_upload(
        self,
        nodes: Sequence[Node],
        source: str,
        destination: str,
        callback: Callback | None = None,
    ) -> ResultSet:
        self.logger.info(
            "Starting file upload from %s to %s on %s",
            source,
            destination,
            [n.uri for n in nodes],
        )

        def action(node: Node) -> Result:
            self.logger.debug("Uploading: '%s' to %s", source, node.uri)
            result = node.upload(source, destination)
            self._log_result(node, result)
            return result

        results = self.execute(nodes, action, callback)
        self.logger.info(self.summary("upload", source, results))
        return results

#!/usr/bin/env python3
"""Main entry point for fleetrun."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path
from typing import Callable

from .config import FORMATS, Config, load_config
from .errors import ConfigError, InitializationError
from .executor import Executor
from .logs import configure_logging, resolve_log_level
from .node import INPUT_METHODS, Node
from .notifier import Callback, EventKind, NotificationEvent
from .store import ResultSet

# ANSI colors for different nodes
COLORS = [
    "\033[36m",  # Cyan
    "\033[33m",  # Yellow
    "\033[35m",  # Magenta
    "\033[32m",  # Green
    "\033[34m",  # Blue
    "\033[91m",  # Light Red
    "\033[96m",  # Light Cyan
    "\033[93m",  # Light Yellow
]
RESET = "\033[0m"


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-n", "--nodes", help="Comma-separated node URIs")
    common.add_argument("--configfile", type=Path, help="Path to YAML configuration file")
    common.add_argument("-c", "--concurrency", type=int, help="Maximum nodes to act on at once")
    common.add_argument("--noop", action="store_true", default=None, help="Ask tasks to make no changes")
    common.add_argument("--log-level", help="debug, info, notice, warn, error or fatal")
    common.add_argument("--format", choices=FORMATS, help="Output format")
    common.add_argument("-u", "--user", help="SSH user")
    common.add_argument("-p", "--password", help="SSH password")
    common.add_argument("--private-key", type=Path, help="SSH private key")
    common.add_argument(
        "-k", "--insecure", action="store_true", default=None, help="Skip host key verification"
    )
    common.add_argument("--run-as", help="User to run actions as (via sudo)")
    common.add_argument("--sudo-password", help="Password for privilege escalation")
    common.add_argument("--dashboard", action="store_true", help="Run with the TUI dashboard")

    parser = argparse.ArgumentParser(
        prog="fleetrun",
        description="Run commands, scripts, tasks and uploads on many nodes in parallel",
    )
    sub = parser.add_subparsers(dest="mode", required=True)

    command = sub.add_parser("command", parents=[common], help="Run a shell command")
    command.add_argument("verb", choices=["run"])
    command.add_argument("object", help="Command to run")

    script = sub.add_parser("script", parents=[common], help="Upload and run a script")
    script.add_argument("verb", choices=["run"])
    script.add_argument("object", help="Local path to the script")
    script.add_argument("arguments", nargs=argparse.REMAINDER, help="Script arguments")

    task = sub.add_parser("task", parents=[common], help="Upload and run a task")
    task.add_argument("verb", choices=["run"])
    task.add_argument("object", help="Local path to the task executable")
    task.add_argument("arguments", nargs="*", metavar="KEY=VALUE", help="Task parameters")
    task.add_argument(
        "--input-method", choices=INPUT_METHODS, default="both", help="How parameters are passed"
    )

    upload = sub.add_parser("file", parents=[common], help="Upload a file")
    upload.add_argument("verb", choices=["upload"])
    upload.add_argument("object", help="Local source path")
    upload.add_argument("destination", help="Destination path on the nodes")

    return parser


def parse_task_arguments(pairs: list[str]) -> dict[str, str]:
    """Turn ``key=value`` pairs into a parameter dict."""
    arguments = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConfigError(f"Task parameters must be KEY=VALUE, got {pair!r}")
        arguments[key] = value
    return arguments


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Layer command-line flags over the loaded configuration."""
    nodes = None
    if args.nodes:
        nodes = [n.strip() for n in args.nodes.split(",") if n.strip()]

    ssh = dataclasses.replace(
        config.ssh,
        **{
            k: v
            for k, v in {
                "user": args.user,
                "password": args.password,
                "private_key": args.private_key.expanduser() if args.private_key else None,
                "insecure": args.insecure,
                "run_as": args.run_as,
                "sudo_password": args.sudo_password,
            }.items()
            if v is not None
        },
    )
    return config.with_overrides(
        concurrency=args.concurrency,
        log_level=args.log_level,
        format=args.format,
        noop=args.noop,
        nodes=nodes,
        ssh=ssh,
    )


def build_dispatch(
    executor: Executor, nodes: list[Node], args: argparse.Namespace
) -> Callable[[Callback | None], ResultSet]:
    """Bind the chosen action so it only needs a progress callback."""
    if args.mode == "command":
        return lambda cb: executor.run_command(nodes, args.object, cb)
    if args.mode == "script":
        return lambda cb: executor.run_script(nodes, args.object, args.arguments, cb)
    if args.mode == "task":
        arguments = parse_task_arguments(args.arguments)
        return lambda cb: executor.run_task(nodes, args.object, args.input_method, arguments, cb)
    return lambda cb: executor.file_upload(nodes, args.object, args.destination, cb)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.configfile) if args.configfile else Config()
        config = apply_args(config, args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if not config.nodes:
        print("Error: no nodes given; use --nodes or list them in the config file", file=sys.stderr)
        return 1

    configure_logging(resolve_log_level(config.log_level))
    executor = Executor(config)

    try:
        nodes = executor.from_uris(config.nodes)
        dispatch = build_dispatch(executor, nodes, args)
    except (ValueError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        if args.dashboard:
            results = _run_dashboard(nodes, dispatch)
        else:
            results = _run_headless(nodes, dispatch, config.format)
    except InitializationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if results is None or results.failures:
        return 1
    return 0


def _run_dashboard(nodes: list[Node], dispatch) -> ResultSet | None:
    from .dashboard import Dashboard

    app = Dashboard(nodes, dispatch)
    app.run()

    if app.error is not None:
        raise app.error
    if app.results is not None and app.results.failures:
        failed = ", ".join(node.uri for node in app.results.failures)
        print(f"\nFailed nodes: {failed}", file=sys.stderr)
    return app.results


def _run_headless(nodes: list[Node], dispatch, output_format: str) -> ResultSet:
    """Run without TUI dashboard."""
    if output_format == "json":
        results = dispatch(None)
        print(json.dumps({"items": results.to_list()}, indent=2, default=str))
        return results

    # Assign colors to nodes
    node_colors = {id(node): COLORS[i % len(COLORS)] for i, node in enumerate(nodes)}

    def on_event(event: NotificationEvent) -> None:
        color = node_colors.get(id(event.node), "")
        prefix = f"{color}[{event.node.uri}]{RESET}"
        if event.kind is EventKind.START:
            print(f"{prefix} Started")
            return
        result = event.result
        print(f"{prefix} {'Finished' if result.success else 'Failed'}")
        for line in _format_result(result):
            print(f"{prefix}   {line}")

    results = dispatch(on_event)

    if results.failures:
        failed = ", ".join(node.uri for node in results.failures)
        print(f"\nFailed nodes: {failed}", file=sys.stderr)
    return results


def _format_result(result) -> list[str]:
    if result.error:
        lines = [f"{result.kind}: {result.message}"]
        for key in ("stdout", "stderr"):
            if result.details.get(key):
                lines.extend(f"{key.upper()}: {line}" for line in result.details[key].splitlines())
        return lines

    value = result.value
    if isinstance(value, dict):
        if "stdout" in value or "_output" in value:
            text = value.get("stdout") or value.get("_output") or ""
            return text.rstrip("\n").splitlines()
        return json.dumps(value, indent=2, default=str).splitlines()
    return [] if value is None else [str(value)]


if __name__ == "__main__":
    sys.exit(main())

"""TUI Dashboard for fleetrun."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker

from .errors import InitializationError
from .node import Node
from .notifier import Callback, EventKind, NotificationEvent
from .store import ResultSet

# Runs the chosen action, reporting progress to the given callback.
Dispatch = Callable[[Callback], ResultSet]


class NodeStatus(Enum):
    """Status of a node as shown on its panel."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


STATUS_ICONS = {
    NodeStatus.PENDING: ("", "dim"),
    NodeStatus.RUNNING: ("", "yellow"),
    NodeStatus.SUCCESS: ("", "green"),
    NodeStatus.FAILED: ("", "red"),
}


class NodePanel(Static):
    """A panel displaying progress and output for a single node."""

    status: reactive[NodeStatus] = reactive(NodeStatus.PENDING)

    def __init__(self, node: Node, index: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.node = node
        self.index = index

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), id=f"header-{self.index}")
        yield RichLog(
            id=f"log-{self.index}",
            highlight=True,
            markup=True,
            wrap=True,
            auto_scroll=True,
        )

    def _get_header(self) -> str:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        return f"[{color}]{icon}[/] [{color}][bold]{self.node.uri}[/bold][/] [dim]{self.node.transport}[/]"

    def watch_status(self, status: NodeStatus) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        header = self.query_one(f"#header-{self.index}", Label)
        header.update(self._get_header())

    def show_event(self, event: NotificationEvent) -> None:
        """Render a progress event in this panel."""
        log = self.query_one(f"#log-{self.index}", RichLog)
        if event.kind is EventKind.START:
            self.status = NodeStatus.RUNNING
            log.write("[bold cyan]Started[/bold cyan]")
            return

        result = event.result
        if result is None or result.success:
            self.status = NodeStatus.SUCCESS
            value = result.value if result else None
            for line in _output_lines(value):
                log.write(line)
            log.write("[green]Completed[/green]")
        else:
            self.status = NodeStatus.FAILED
            for line in _output_lines(result.details):
                log.write(line)
            log.write(f"[bold red]ERROR: {result.kind}: {result.message}[/bold red]")


def _output_lines(value) -> list[str]:
    if not isinstance(value, dict):
        return [] if value is None else [str(value)]
    lines = []
    for key in ("stdout", "_output"):
        if value.get(key):
            lines.extend(str(value[key]).rstrip("\n").splitlines())
    if value.get("stderr"):
        lines.extend(f"[red]STDERR: {line}[/red]" for line in str(value["stderr"]).splitlines())
    return lines


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return (
            f"Progress: {self.completed}/{self.total} nodes complete, {self.failed} failed"
            f" | {status} | Press 'q' to quit"
        )


@dataclass
class NodeEvent(Message):
    """Message carrying a notifier event to the main thread."""
    event: NotificationEvent


class Dashboard(App):
    """Main TUI Dashboard application."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    NodePanel {
        border: solid $primary;
        height: 100%;
        min-height: 10;
    }

    NodePanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    NodePanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(self, nodes: Sequence[Node], dispatch: Dispatch, **kwargs) -> None:
        super().__init__(**kwargs)
        self.nodes = list(nodes)
        self.dispatch = dispatch
        self.results: ResultSet | None = None
        self.error: InitializationError | None = None
        self.panels: dict[int, NodePanel] = {}
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        for index, node in enumerate(self.nodes):
            panel = NodePanel(node, index, id=f"panel-{index}")
            self.panels[id(node)] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start execution when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.nodes)
        self._worker = self.run_worker(self._run_execution, exclusive=True, thread=True)

    def _run_execution(self) -> None:
        """Run the action in a worker thread."""
        try:
            self.results = self.dispatch(self._on_event)
        except InitializationError as e:
            # Nothing ran; leave the screen so the caller can report it.
            self.error = e
            self.call_from_thread(self.exit)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == event.worker.state.SUCCESS:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def _on_event(self, event: NotificationEvent) -> None:
        """Handle a notifier event - posts message to main thread."""
        self.post_message(NodeEvent(event))

    def on_node_event(self, message: NodeEvent) -> None:
        """Handle NodeEvent message in main thread."""
        event = message.event
        panel = self.panels.get(id(event.node))
        if panel is not None:
            panel.show_event(event)

        if event.kind is EventKind.FINISHED:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.completed += 1
            if event.result is not None and event.result.error:
                status_bar.failed += 1

"""Log levels and handler setup for fleetrun."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

# Progress messages sit between INFO and WARNING so they show by default
# without the per-node chatter of info.
NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": NOTICE,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


def parse_level(name: str | int) -> int:
    """Map a level name such as ``"notice"`` to its numeric value."""
    if isinstance(name, int):
        return name
    try:
        return LEVELS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {name}") from None


def resolve_log_level(configured: str | int | None, plan_logging: bool = False) -> int:
    """Pick the executor's log level.

    An explicitly configured level always wins. Otherwise plan runs are
    escalated to info so progress lines are visible.
    """
    if configured is not None:
        return parse_level(configured)
    return logging.INFO if plan_logging else NOTICE


def configure_logging(level: str | int = NOTICE, console: Console | None = None) -> None:
    """Send fleetrun log records to stderr through rich."""
    logger = logging.getLogger("fleetrun")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
    )
    handler.setLevel(parse_level(level))
    logger.addHandler(handler)
    logger.propagate = False

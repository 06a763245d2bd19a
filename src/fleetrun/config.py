"""Configuration loader for fleetrun."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .logs import LEVELS

FORMATS = ("human", "json")


@dataclass
class SSHConfig:
    """Settings shared by every ssh:// node."""

    user: str | None = None
    port: int = 22
    private_key: Path = field(default_factory=lambda: Path("~/.ssh/id_rsa").expanduser())
    password: str | None = None
    insecure: bool = False  # Skip host key verification
    run_as: str | None = None
    sudo_password: str | None = None


@dataclass
class LocalConfig:
    """Settings for local:// nodes."""

    shell: str = "/bin/sh"
    tmpdir: Path | None = None


@dataclass
class Config:
    """Main configuration for a run."""

    concurrency: int = 100
    log_level: str | None = None
    noop: bool = False
    format: str = "human"
    ssh: SSHConfig = field(default_factory=SSHConfig)
    local: LocalConfig = field(default_factory=LocalConfig)
    nodes: list[str] = field(default_factory=list)
    source_path: Path | None = None  # Path to the config file this was read from

    def __post_init__(self) -> None:
        _validate(self)

    def with_overrides(self, **overrides: Any) -> Config:
        """Return a copy with the given non-None fields replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)


def load_config(config_path: str | Path) -> Config:
    """Load and validate configuration from a YAML file."""
    config_path = Path(config_path).expanduser().resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a mapping at the top of {config_path}")

    config = _parse_config(raw)
    config.source_path = config_path
    return config


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw YAML data into Config object."""
    nodes = raw.get("nodes", [])
    if isinstance(nodes, str):
        nodes = [n.strip() for n in nodes.split(",") if n.strip()]

    return Config(
        concurrency=raw.get("concurrency", 100),
        log_level=raw.get("log_level"),
        noop=bool(raw.get("noop", False)),
        format=raw.get("format", "human"),
        ssh=_parse_ssh(raw.get("ssh") or {}),
        local=_parse_local(raw.get("local") or {}),
        nodes=list(nodes),
    )


def _parse_ssh(raw: dict[str, Any]) -> SSHConfig:
    """Parse the ssh section."""
    defaults = SSHConfig()
    private_key = defaults.private_key
    if "private_key" in raw:
        private_key = Path(raw["private_key"]).expanduser()

    return SSHConfig(
        user=raw.get("user", defaults.user),
        port=raw.get("port", defaults.port),
        private_key=private_key,
        password=raw.get("password"),
        insecure=bool(raw.get("insecure", defaults.insecure)),
        run_as=raw.get("run-as", raw.get("run_as")),
        sudo_password=raw.get("sudo-password", raw.get("sudo_password")),
    )


def _parse_local(raw: dict[str, Any]) -> LocalConfig:
    """Parse the local section."""
    tmpdir = raw.get("tmpdir")
    return LocalConfig(
        shell=raw.get("shell", "/bin/sh"),
        tmpdir=Path(tmpdir).expanduser() if tmpdir else None,
    )


def _validate(config: Config) -> None:
    concurrency = config.concurrency
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ConfigError(f"concurrency must be a positive integer, got {concurrency!r}")

    if config.log_level is not None and str(config.log_level).lower() not in LEVELS:
        raise ConfigError(f"Unknown log level: {config.log_level}")

    if config.format not in FORMATS:
        raise ConfigError(f"format must be one of {', '.join(FORMATS)}, got {config.format!r}")

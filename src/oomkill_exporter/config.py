from __future__ import annotations

import os
from dataclasses import dataclass, field

from .errors import ConfigError
from .extract import DEFAULT_PATTERN


def _get_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw not in {"0", "false", "False"}


@dataclass(frozen=True, slots=True)
class Settings:
    listen_address: str = field(default_factory=lambda: _get_str("LISTEN_ADDRESS", ":9102"))
    match_pattern: str = field(default_factory=lambda: _get_str("MATCH_PATTERN", DEFAULT_PATTERN))

    # Kernel log source
    log_source: str = field(default_factory=lambda: _get_str("LOG_SOURCE", "kmsg"))
    kmsg_path: str = field(default_factory=lambda: _get_str("KMSG_PATH", "/dev/kmsg"))
    kmsg_replay: bool = field(default_factory=lambda: _get_bool("KMSG_REPLAY", False))

    # Container runtime
    docker_host: str = field(
        default_factory=lambda: _get_str("DOCKER_HOST", "unix:///var/run/docker.sock")
    )
    runtime_timeout_seconds: float = field(
        default_factory=lambda: _get_float("RUNTIME_TIMEOUT_SECONDS", 10.0)
    )


def parse_listen_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts.

    Accepts ``:9102`` (all interfaces), ``127.0.0.1:9102`` and ``[::1]:9102``.
    """
    host, sep, port_str = address.rpartition(":")
    if not sep:
        raise ConfigError(f"listen address {address!r} must be host:port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_str)
    except ValueError:
        raise ConfigError(f"listen address {address!r} has a non-numeric port") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"listen address {address!r} has an out-of-range port")
    return host, port


settings = Settings()

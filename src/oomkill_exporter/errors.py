from __future__ import annotations


class ExporterError(Exception):
    """Base class for every error raised by oomkill_exporter."""


class ConfigError(ExporterError):
    """Invalid startup configuration (bad pattern, bad address, no runtime)."""


class LogSourceError(ExporterError):
    """The kernel log source could not be opened."""


class ResolutionError(ExporterError):
    """A single OOM event could not be tied to a container.

    Never fatal: the pipeline logs it and moves on to the next line.
    """

    reason = "runtime_error"

    def __init__(self, identifier: str, message: str) -> None:
        super().__init__(message)
        self.identifier = identifier
        self.message = message

    def __str__(self) -> str:
        return f"{self.reason}: {self.message}"


class ContainerNotFound(ResolutionError):
    reason = "not_found"


class AmbiguousContainer(ResolutionError):
    reason = "ambiguous"


class RuntimeUnavailable(ResolutionError):
    """Transport or API failure while talking to the container runtime."""

    reason = "runtime_error"

"""Exception types raised by the exporter."""

from __future__ import annotations


class CgroupExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigurationInvariantError(CgroupExporterError):
    """A rule reached the engine in a shape that config validation must reject.

    Signals a validation gap; the scrape loop never swallows it.
    """


class NameResolutionError(CgroupExporterError):
    """The display name of a single cgroup could not be computed."""


class EvaluationError(CgroupExporterError):
    """An external name evaluation failed.

    Attributes:
        command: The fully expanded command that was run (or attempted)
    """

    def __init__(self, message: str, command: str) -> None:
        super().__init__(f"{message}: {command!r}")
        self.command = command


class TemplateEvaluationError(NameResolutionError):
    """Wraps an EvaluationError raised while resolving a shell template."""


class CgroupFilesystemError(CgroupExporterError):
    """The cgroup filesystem is missing or unreadable."""

"""Pydantic schemas for the cgroup exporter configuration.

This module defines the configuration file contract and its validation. The
runtime rule types live in `cgroup_exporter.naming.rules`; validated models
convert into them via `to_rule()`.
"""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from cgroup_exporter.core.constants import (
    DEFAULT_CGROUP_ROOT,
    DEFAULT_LISTEN_ADDRESS,
    DEFAULT_LISTEN_PORT,
    DEFAULT_NAMESPACE,
    DEFAULT_PROC_ROOT,
    DEFAULT_SHELL_TIMEOUT_SECONDS,
)
from cgroup_exporter.naming.rules import (
    ExactPath,
    Glob,
    Literal,
    NameRule,
    OutputStream,
    Regex,
    RemovePrefix,
    Rewrite,
    Selector,
    Shell,
    Template,
)

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class ShellTemplateConfig(BaseModel):
    """Name computed by running a shell command."""

    shell: str = Field(..., min_length=1, description="Command template with {name} placeholders")
    output: OutputStream = Field(default=OutputStream.STDOUT, description="Stream to read")

    model_config = {"extra": "forbid"}


class RemovePrefixConfig(BaseModel):
    remove_prefix: str = Field(..., description="Prefix stripped from the cgroup path")

    model_config = {"extra": "forbid"}


class TemplateConfig(BaseModel):
    name: str | ShellTemplateConfig = Field(
        ..., description="Literal name template or shell evaluation"
    )

    model_config = {"extra": "forbid"}


class NameRuleConfig(BaseModel):
    """One cgroup selection rule.

    Attributes:
        exact: Match this path only
        glob: Shell-style pattern over the path
        regex: Regular expression searched in the path; named groups become
            template variables
        rewrite: How the matched path becomes the exported name
    """

    exact: str | None = Field(default=None, min_length=1)
    glob: str | None = Field(default=None, min_length=1)
    regex: str | None = Field(default=None, min_length=1)
    rewrite: RemovePrefixConfig | TemplateConfig | None = Field(default=None)

    model_config = {"extra": "forbid"}

    @field_validator("regex")
    @classmethod
    def validate_regex(cls, v: str | None) -> str | None:
        """Ensure the pattern compiles."""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid regex {v!r}: {e}") from e
        return v

    @model_validator(mode="after")
    def validate_selector(self) -> NameRuleConfig:
        """Require exactly one selector; shell templates need a regex."""
        selectors = [s for s in (self.exact, self.glob, self.regex) if s is not None]
        if len(selectors) != 1:
            raise ValueError("Exactly one of 'exact', 'glob' or 'regex' must be set")

        if (
            isinstance(self.rewrite, TemplateConfig)
            and isinstance(self.rewrite.name, ShellTemplateConfig)
            and self.regex is None
        ):
            raise ValueError("Shell name templates are only supported with a 'regex' selector")
        return self

    def to_rule(self) -> NameRule:
        """Convert to the runtime NameRule."""
        selector: Selector
        if self.regex is not None:
            selector = Regex.compile(self.regex)
        elif self.glob is not None:
            selector = Glob(self.glob)
        else:
            selector = ExactPath(self.exact or "")

        rewrite: Rewrite | None = None
        if isinstance(self.rewrite, RemovePrefixConfig):
            rewrite = RemovePrefix(self.rewrite.remove_prefix)
        elif isinstance(self.rewrite, TemplateConfig):
            name = self.rewrite.name
            if isinstance(name, ShellTemplateConfig):
                rewrite = Template(Shell(name.shell, name.output))
            else:
                rewrite = Template(Literal(name))

        return NameRule(selector=selector, rewrite=rewrite)


class ServerConfig(BaseModel):
    """HTTP listener for the scrape endpoint."""

    model_config = {"extra": "forbid"}

    address: str = Field(default=DEFAULT_LISTEN_ADDRESS)
    port: int = Field(default=DEFAULT_LISTEN_PORT, ge=1, le=65535)


class ExporterConfig(BaseModel):
    """Top-level exporter configuration.

    This is the main configuration loaded from YAML/JSON files.
    """

    model_config = {"extra": "forbid"}

    namespace: str = Field(default=DEFAULT_NAMESPACE, description="Metric name prefix")
    cgroup_root: Path = Field(default=DEFAULT_CGROUP_ROOT)
    proc_root: Path = Field(default=DEFAULT_PROC_ROOT)
    labels: dict[str, str] = Field(
        default_factory=dict, description="Constant labels added to every sample"
    )
    shell_timeout_seconds: float = Field(default=DEFAULT_SHELL_TIMEOUT_SECONDS, gt=0)
    server: ServerConfig = Field(default_factory=ServerConfig)
    cgroups: list[NameRuleConfig] = Field(default_factory=list)

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        if v and not _METRIC_NAME_RE.match(v):
            raise ValueError(f"Invalid metric namespace: {v!r}")
        return v

    @field_validator("labels")
    @classmethod
    def validate_labels(cls, v: dict[str, str]) -> dict[str, str]:
        for name in v:
            if not _LABEL_NAME_RE.match(name) or name.startswith("__"):
                raise ValueError(f"Invalid label name: {name!r}")
            if name in ("cgroup", "device"):
                raise ValueError(f"Label name {name!r} is reserved")
        return v

    def name_rules(self) -> list[NameRule]:
        """Runtime rules in configuration order."""
        return [rule.to_rule() for rule in self.cgroups]

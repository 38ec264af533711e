"""Core module - configuration, schemas and errors."""

from __future__ import annotations

from cgroup_exporter.core.config import load_config
from cgroup_exporter.core.errors import (
    CgroupExporterError,
    CgroupFilesystemError,
    ConfigurationInvariantError,
    EvaluationError,
    NameResolutionError,
    TemplateEvaluationError,
)
from cgroup_exporter.core.schemas import (
    ExporterConfig,
    NameRuleConfig,
    RemovePrefixConfig,
    ServerConfig,
    ShellTemplateConfig,
    TemplateConfig,
)

__all__ = [
    "CgroupExporterError",
    "CgroupFilesystemError",
    "ConfigurationInvariantError",
    "EvaluationError",
    "ExporterConfig",
    "load_config",
    "NameResolutionError",
    "NameRuleConfig",
    "RemovePrefixConfig",
    "ServerConfig",
    "ShellTemplateConfig",
    "TemplateConfig",
    "TemplateEvaluationError",
]

"""cgroup exporter - per-cgroup resource metrics for Prometheus."""

from __future__ import annotations

from cgroup_exporter.core.schemas import ExporterConfig, NameRuleConfig
from cgroup_exporter.monitoring.base import CgroupSnapshot, ProcessMetrics
from cgroup_exporter.naming.rules import NameRule

__version__ = "0.1.0"

__all__ = [
    "CgroupSnapshot",
    "ExporterConfig",
    "NameRule",
    "NameRuleConfig",
    "ProcessMetrics",
    "__version__",
]

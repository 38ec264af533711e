"""Monitoring module - cgroup and process statistics.

- cgroups_collector: cgroup filesystem access (v1 and v2)
- procs: per-process samples through psutil
- aggregator: fold process samples into one record
- snapshot: assemble the per-cgroup record
- metadata: static metric metadata registry
"""

from __future__ import annotations

from cgroup_exporter.monitoring.aggregator import aggregate
from cgroup_exporter.monitoring.base import (
    BlkIoStat,
    CgroupSnapshot,
    CpuAcctStat,
    CpuSetStat,
    CpuStat,
    DeviceIoStat,
    DeviceOpStat,
    IoCounters,
    MemoryStat,
    ProcessMetrics,
    RawProcessSample,
)
from cgroup_exporter.monitoring.cgroups_collector import (
    Cgroup,
    CgroupExplorer,
    CgroupVersion,
    detect_cgroup_version,
    parse_cpu_stat_v2,
)
from cgroup_exporter.monitoring.metadata import METADATA, MetricDescriptor, MetricType
from cgroup_exporter.monitoring.procs import ProcReader
from cgroup_exporter.monitoring.snapshot import build_snapshot

__all__ = [
    "aggregate",
    "BlkIoStat",
    "build_snapshot",
    "Cgroup",
    "CgroupExplorer",
    "CgroupSnapshot",
    "CgroupVersion",
    "CpuAcctStat",
    "CpuSetStat",
    "CpuStat",
    "detect_cgroup_version",
    "DeviceIoStat",
    "DeviceOpStat",
    "IoCounters",
    "MemoryStat",
    "METADATA",
    "MetricDescriptor",
    "MetricType",
    "parse_cpu_stat_v2",
    "ProcessMetrics",
    "ProcReader",
    "RawProcessSample",
]

"""Static metric metadata registry.

Maps each snapshot field key (see CgroupSnapshot.iter_fields) to its type,
help text, extra label names and optional exported name. The registry is
built once at import and exposed read-only. A key listed twice is an import
error, not an override.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from cgroup_exporter.monitoring.base import BLKIO_OPERATIONS


class MetricType(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDescriptor:
    metric_type: MetricType
    help: str
    labels: tuple[str, ...] = ()
    rename: str | None = None


def _gauge(help: str, labels: tuple[str, ...] = ()) -> MetricDescriptor:
    return MetricDescriptor(MetricType.GAUGE, help, labels)


def _counter(
    help: str, rename: str | None = None, labels: tuple[str, ...] = ()
) -> MetricDescriptor:
    return MetricDescriptor(MetricType.COUNTER, help, labels, rename)


def build_registry(
    entries: Iterable[tuple[str, MetricDescriptor]],
) -> Mapping[str, MetricDescriptor]:
    """Build an immutable registry.

    Raises:
        ValueError: If a key appears more than once
    """
    table: dict[str, MetricDescriptor] = {}
    for key, descriptor in entries:
        if key in table:
            raise ValueError(f"Duplicate metric metadata key: {key!r}")
        table[key] = descriptor
    return MappingProxyType(table)


_PROCESS_METRICS = (
    ("rss", _gauge("Resident Set Size in bytes")),
    ("utime", _counter("User CPU time in seconds", "utime_seconds_total")),
    ("stime", _counter("System CPU time in seconds", "stime_seconds_total")),
    ("cpu_seconds_total", _counter("Total CPU time in seconds")),
    ("memory_usage_bytes", _gauge("Memory usage in bytes")),
    ("num_fds", _gauge("Number of file descriptors")),
    ("num_procs", _gauge("Number of processes")),
    ("num_threads", _gauge("Number of threads")),
    ("io_read_bytes_total", _counter("Number of bytes read")),
    ("io_write_bytes_total", _counter("Number of bytes written")),
    ("major_page_faults_total", _counter("Number of major page faults")),
    ("minor_page_faults_total", _counter("Number of minor page faults")),
    ("start_time", _gauge("Start time of the oldest process in seconds since epoch")),
)

_CPU_METRICS = (
    ("cpu_usage_usec", _counter("CPU usage in microseconds", "cpu_usage_usec_total")),
    ("cpu_user_usec", _counter("User CPU time in microseconds", "cpu_user_usec_total")),
    ("cpu_system_usec", _counter("System CPU time in microseconds", "cpu_system_usec_total")),
    ("cpu_nice_usec", _counter("Nice CPU time in microseconds", "cpu_nice_usec_total")),
    ("cpu_nr_periods", _counter("Number of enforcement periods", "cpu_nr_periods_total")),
    ("cpu_nr_throttled", _counter("Number of throttled periods", "cpu_nr_throttled_total")),
    (
        "cpu_throttled_usec",
        _counter("Total time throttled in microseconds", "cpu_throttled_usec_total"),
    ),
    ("cpu_nr_bursts", _counter("Number of periods with bursts", "cpu_nr_bursts_total")),
    ("cpu_burst_usec", _counter("Total burst time in microseconds", "cpu_burst_usec_total")),
)

_CPUACCT_METRICS = (
    (
        "cpuacct_usage",
        _counter("Total CPU time in nanoseconds", "cpuacct_usage_nanoseconds_total"),
    ),
    (
        "cpuacct_usage_user",
        _counter("User CPU time in nanoseconds", "cpuacct_usage_user_nanoseconds_total"),
    ),
    (
        "cpuacct_usage_sys",
        _counter("System CPU time in nanoseconds", "cpuacct_usage_sys_nanoseconds_total"),
    ),
)

_CPUSET_METRICS = (
    ("cpuset_cpu_count", _gauge("Number of CPUs the control group may run on")),
    ("cpuset_mem_node_count", _gauge("Number of memory nodes the control group may use")),
)

_MEMORY_METRICS = (
    (
        "memory_fail_cnt",
        _counter("How many times the limit has been hit.", "memory_fail_cnt_total"),
    ),
    (
        "memory_limit_in_bytes",
        _gauge("The limit in bytes of the memory usage of the control group's tasks."),
    ),
    (
        "memory_usage_in_bytes",
        _gauge("The current usage of memory by the control group's tasks."),
    ),
    (
        "memory_max_usage_in_bytes",
        _gauge("The maximum observed usage of memory by the control group's tasks."),
    ),
    (
        "memory_oom_kill",
        _counter("Number of processes killed by the OOM killer.", "memory_oom_kill_total"),
    ),
    (
        "memory_soft_limit_in_bytes",
        _gauge("Memory usage limit enforced when the system detects memory pressure."),
    ),
    (
        "memory_swappiness",
        _gauge("Tendency of the kernel to swap out memory used by the control group's tasks."),
    ),
    (
        "memory_use_hierarchy",
        _gauge("Whether memory of descendant control groups is charged to this one."),
    ),
    (
        "memory_oom_control_oom_kill_disable",
        _gauge("Whether the OOM killer is disabled for the control group's tasks."),
    ),
    (
        "memory_oom_control_under_oom",
        _gauge("Whether the control group is currently under OOM."),
    ),
)

# memory.stat keys, v1 and v2. Keys not listed here are not exported.
_MEMORY_STAT_GAUGES = (
    ("cache", "Page cache, including tmpfs, in bytes."),
    ("rss", "Anonymous and swap cache memory in bytes."),
    ("rss_huge", "Anonymous transparent hugepages in bytes."),
    ("shmem", "Shared memory in bytes."),
    ("mapped_file", "Mapped file memory in bytes."),
    ("dirty", "Bytes waiting to get written back to the disk."),
    ("writeback", "Bytes queued for syncing to disk."),
    ("swap", "Swap usage in bytes."),
    ("inactive_anon", "Anonymous memory on the inactive LRU list in bytes."),
    ("active_anon", "Anonymous memory on the active LRU list in bytes."),
    ("inactive_file", "File-backed memory on the inactive LRU list in bytes."),
    ("active_file", "File-backed memory on the active LRU list in bytes."),
    ("unevictable", "Memory that cannot be reclaimed in bytes."),
    ("hierarchical_memory_limit", "Memory limit of the hierarchy in bytes."),
    ("hierarchical_memsw_limit", "Memory plus swap limit of the hierarchy in bytes."),
    ("anon", "Anonymous memory in bytes."),
    ("file", "Filesystem cache memory in bytes."),
    ("kernel", "Total kernel memory in bytes."),
    ("kernel_stack", "Kernel stack memory in bytes."),
    ("pagetables", "Page table memory in bytes."),
    ("sock", "Network transmission buffer memory in bytes."),
    ("file_mapped", "Mapped file memory in bytes."),
    ("file_dirty", "Dirty file memory in bytes."),
    ("file_writeback", "File memory under writeback in bytes."),
    ("anon_thp", "Anonymous transparent hugepages in bytes."),
    ("slab", "Slab memory in bytes."),
    ("slab_reclaimable", "Reclaimable slab memory in bytes."),
    ("slab_unreclaimable", "Unreclaimable slab memory in bytes."),
)

_MEMORY_STAT_COUNTERS = (
    ("pgpgin", "Number of pages charged to the control group."),
    ("pgpgout", "Number of pages uncharged from the control group."),
    ("pgfault", "Number of page faults."),
    ("pgmajfault", "Number of major page faults."),
    ("workingset_refault_anon", "Number of refaults of previously evicted anonymous pages."),
    ("workingset_refault_file", "Number of refaults of previously evicted file pages."),
)

# v1 repeats these as total_<key>, summed over the control group and its descendants
_MEMORY_STAT_HIERARCHICAL = frozenset(
    {
        "cache",
        "rss",
        "rss_huge",
        "shmem",
        "mapped_file",
        "dirty",
        "writeback",
        "swap",
        "pgpgin",
        "pgpgout",
        "pgfault",
        "pgmajfault",
        "inactive_anon",
        "active_anon",
        "inactive_file",
        "active_file",
        "unevictable",
    }
)


def _memory_stat_entries() -> Iterator[tuple[str, MetricDescriptor]]:
    for key, help in _MEMORY_STAT_GAUGES:
        yield f"memory_stat_{key}", _gauge(help)
        if key in _MEMORY_STAT_HIERARCHICAL:
            yield f"memory_stat_total_{key}", _gauge(_including_descendants(help))
    for key, help in _MEMORY_STAT_COUNTERS:
        yield f"memory_stat_{key}", _counter(help, f"memory_stat_{key}_total")
        if key in _MEMORY_STAT_HIERARCHICAL:
            yield (
                f"memory_stat_total_{key}",
                _counter(_including_descendants(help), f"memory_stat_total_{key}_total"),
            )


def _including_descendants(help: str) -> str:
    return help.removesuffix(".") + ", including descendant control groups."


_MEMORY_STAT_METRICS = tuple(_memory_stat_entries())

_BLKIO_FIELDS = (
    ("rbytes", "How many bytes were read from the device."),
    ("wbytes", "How many bytes were written to the device."),
    ("rios", "How many read operations were issued to the device."),
    ("wios", "How many write operations were issued to the device."),
    ("dbytes", "How many bytes were discarded on the device."),
    ("dios", "How many discard operations were issued to the device."),
)

_BLKIO_METRICS = tuple(
    (
        f"blkio_io_stat_{key}",
        _counter(help, f"blkio_io_stat_{key}_total", labels=("device",)),
    )
    for key, help in _BLKIO_FIELDS
)

# v1 per-operation files, keyed like BlkIoStat.op_stats
_BLKIO_V1_OP_FILES = (
    ("io_service_bytes", "Bytes transferred to or from the device"),
    ("io_serviced", "I/O operations issued to the device"),
    ("io_merged", "Requests merged into requests for I/O operations"),
    ("io_queued", "Requests queued for I/O operations"),
    ("io_service_time", "Time between request dispatch and completion in nanoseconds"),
    ("io_wait_time", "Time requests spent waiting in scheduler queues in nanoseconds"),
    ("throttle_io_service_bytes", "Bytes transferred as seen by the throttle policy"),
    ("throttle_io_serviced", "I/O operations issued as seen by the throttle policy"),
)


def _blkio_v1_entries() -> Iterator[tuple[str, MetricDescriptor]]:
    for file, help in _BLKIO_V1_OP_FILES:
        for op in BLKIO_OPERATIONS:
            key = f"blkio_{file}_{op}"
            # "..._total" is already a valid counter name
            rename = None if op == "total" else f"{key}_total"
            yield key, _counter(f"{help} ({op}).", rename, labels=("device",))
    yield "blkio_sectors", _counter(
        "Sectors transferred to or from the device.", "blkio_sectors_total", labels=("device",)
    )
    yield "blkio_time", _counter(
        "Time the control group had access to the device in milliseconds.",
        "blkio_time_milliseconds_total",
        labels=("device",),
    )
    yield "blkio_weight", _gauge("Proportional weight of the control group.")


_BLKIO_V1_METRICS = tuple(_blkio_v1_entries())

METADATA: Mapping[str, MetricDescriptor] = build_registry(
    _PROCESS_METRICS
    + _CPU_METRICS
    + _CPUACCT_METRICS
    + _CPUSET_METRICS
    + _MEMORY_METRICS
    + _MEMORY_STAT_METRICS
    + _BLKIO_METRICS
    + _BLKIO_V1_METRICS
)


def exposed_name(key: str, descriptor: MetricDescriptor | None = None) -> str:
    """Metric name (without namespace) under which `key` is exported."""
    if descriptor is None:
        descriptor = METADATA[key]
    return descriptor.rename or key

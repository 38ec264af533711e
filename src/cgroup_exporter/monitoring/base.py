"""Data records shared by the collectors, the aggregator and the exporter.

Raw records (RawProcessSample, controller stats) carry kernel units. The
aggregated ProcessMetrics and the CgroupSnapshot carry total-unit values
(seconds, bytes, raw counts) ready for exposition.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

# Labels attached to a single exported value, e.g. (("device", "8:0"),)
FieldLabels = tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class IoCounters:
    """Bytes actually fetched from / sent to the storage layer."""

    read_bytes: int = 0
    write_bytes: int = 0


@dataclass(frozen=True)
class RawProcessSample:
    """Point-in-time snapshot of one process in kernel units.

    Optional fields are None when their source was unreadable (permissions,
    or the process exited between reads).
    """

    pid: int
    rss_pages: int
    utime_ticks: int
    stime_ticks: int
    num_threads: int
    major_faults: int
    minor_faults: int
    io: IoCounters | None = None
    fd_count: int | None = None
    start_time: int | None = None  # Unix timestamp (seconds)


@dataclass
class ProcessMetrics:
    """Summary of a group of processes."""

    rss: int = 0
    utime: float = 0.0
    stime: float = 0.0
    cpu_seconds_total: float = 0.0
    memory_usage_bytes: int = 0
    num_fds: int = 0
    num_procs: int = 0
    num_threads: int = 0
    io_read_bytes_total: int = 0
    io_write_bytes_total: int = 0
    major_page_faults_total: int = 0
    minor_page_faults_total: int = 0
    start_time: int | None = None

    def iter_fields(self) -> Iterator[tuple[str, float]]:
        """Yield (metric key, value) for every present field."""
        yield "rss", self.rss
        yield "utime", self.utime
        yield "stime", self.stime
        yield "cpu_seconds_total", self.cpu_seconds_total
        yield "memory_usage_bytes", self.memory_usage_bytes
        yield "num_fds", self.num_fds
        yield "num_procs", self.num_procs
        yield "num_threads", self.num_threads
        yield "io_read_bytes_total", self.io_read_bytes_total
        yield "io_write_bytes_total", self.io_write_bytes_total
        yield "major_page_faults_total", self.major_page_faults_total
        yield "minor_page_faults_total", self.minor_page_faults_total
        if self.start_time is not None:
            yield "start_time", self.start_time


# ---------------------------------------------------------------------------
# Controller stats
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CpuStat:
    """cgroup v2 cpu.stat. Every counter is optional."""

    usage_usec: int | None = None
    user_usec: int | None = None
    system_usec: int | None = None
    nice_usec: int | None = None
    nr_periods: int | None = None
    nr_throttled: int | None = None
    throttled_usec: int | None = None
    nr_bursts: int | None = None
    burst_usec: int | None = None

    FIELDS = (
        "usage_usec",
        "user_usec",
        "system_usec",
        "nice_usec",
        "nr_periods",
        "nr_throttled",
        "throttled_usec",
        "nr_bursts",
        "burst_usec",
    )


@dataclass(frozen=True)
class CpuAcctStat:
    """cgroup v1 cpuacct accounting, nanoseconds."""

    usage: int | None = None
    usage_user: int | None = None
    usage_sys: int | None = None


@dataclass(frozen=True)
class CpuSetStat:
    """Effective CPU and memory-node assignment."""

    cpus: str = ""
    mems: str = ""
    cpu_count: int = 0
    mem_node_count: int = 0


@dataclass(frozen=True)
class MemoryStat:
    """Memory controller values. v1 and v2 files map onto the same fields.

    The soft limit, swappiness, hierarchy and OOM-control settings only
    exist on v1 and stay None on v2.
    """

    usage_bytes: int | None = None
    limit_bytes: int | None = None  # None when unlimited
    max_usage_bytes: int | None = None
    fail_cnt: int | None = None
    oom_kill: int | None = None
    soft_limit_bytes: int | None = None
    swappiness: int | None = None
    use_hierarchy: int | None = None
    oom_kill_disable: int | None = None
    under_oom: int | None = None
    stat: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class DeviceIoStat:
    """Per-device block I/O counters."""

    device: str  # "major:minor"
    rbytes: int = 0
    wbytes: int = 0
    rios: int = 0
    wios: int = 0
    dbytes: int = 0
    dios: int = 0


# Operations of the v1 per-operation files, in kernel order
BLKIO_OPERATIONS = ("read", "write", "sync", "async", "discard", "total")


@dataclass(frozen=True)
class DeviceOpStat:
    """One device of a v1 per-operation file such as blkio.io_serviced."""

    device: str  # "major:minor"
    ops: dict[str, int] = field(default_factory=dict)  # BLKIO_OPERATIONS subset


@dataclass(frozen=True)
class BlkIoStat:
    """Block I/O controller values.

    v2 fills `devices` from io.stat. v1 fills `op_stats`, keyed by file
    ("io_serviced", "throttle_io_service_bytes", ...), `device_values`,
    keyed by file ("sectors", "time"), and `weight`.
    """

    devices: tuple[DeviceIoStat, ...] = ()
    op_stats: dict[str, tuple[DeviceOpStat, ...]] = field(default_factory=dict)
    device_values: dict[str, dict[str, int]] = field(default_factory=dict)
    weight: int | None = None

    @property
    def total_read_bytes(self) -> int:
        return sum(d.rbytes for d in self.devices)

    @property
    def total_write_bytes(self) -> int:
        return sum(d.wbytes for d in self.devices)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CgroupSnapshot:
    """Complete per-cgroup record for one scrape. Never mutated once built."""

    name: str
    path: str
    processes: ProcessMetrics
    cpu: CpuStat | None = None
    cpuacct: CpuAcctStat | None = None
    cpuset: CpuSetStat | None = None
    memory: MemoryStat | None = None
    blkio: BlkIoStat | None = None

    def iter_fields(self) -> Iterator[tuple[str, float, FieldLabels]]:
        """Flatten into (metric key, value, extra labels).

        Absent controllers and absent counters produce nothing.
        """
        for key, value in self.processes.iter_fields():
            yield key, value, ()

        if self.cpu is not None:
            for name in CpuStat.FIELDS:
                value = getattr(self.cpu, name)
                if value is not None:
                    yield f"cpu_{name}", value, ()

        if self.cpuacct is not None:
            for name in ("usage", "usage_user", "usage_sys"):
                value = getattr(self.cpuacct, name)
                if value is not None:
                    yield f"cpuacct_{name}", value, ()

        if self.cpuset is not None:
            yield "cpuset_cpu_count", self.cpuset.cpu_count, ()
            yield "cpuset_mem_node_count", self.cpuset.mem_node_count, ()

        if self.memory is not None:
            for key, value in (
                ("memory_usage_in_bytes", self.memory.usage_bytes),
                ("memory_limit_in_bytes", self.memory.limit_bytes),
                ("memory_max_usage_in_bytes", self.memory.max_usage_bytes),
                ("memory_fail_cnt", self.memory.fail_cnt),
                ("memory_oom_kill", self.memory.oom_kill),
                ("memory_soft_limit_in_bytes", self.memory.soft_limit_bytes),
                ("memory_swappiness", self.memory.swappiness),
                ("memory_use_hierarchy", self.memory.use_hierarchy),
                ("memory_oom_control_oom_kill_disable", self.memory.oom_kill_disable),
                ("memory_oom_control_under_oom", self.memory.under_oom),
            ):
                if value is not None:
                    yield key, value, ()
            for name, value in sorted(self.memory.stat.items()):
                yield f"memory_stat_{name}", value, ()

        if self.blkio is not None:
            for dev in self.blkio.devices:
                labels = (("device", dev.device),)
                for name in ("rbytes", "wbytes", "rios", "wios", "dbytes", "dios"):
                    yield f"blkio_io_stat_{name}", getattr(dev, name), labels
            for file, rows in sorted(self.blkio.op_stats.items()):
                for row in rows:
                    labels = (("device", row.device),)
                    for op in BLKIO_OPERATIONS:
                        if op in row.ops:
                            yield f"blkio_{file}_{op}", row.ops[op], labels
            for file, values in sorted(self.blkio.device_values.items()):
                for device, value in sorted(values.items()):
                    yield f"blkio_{file}", value, (("device", device),)
            if self.blkio.weight is not None:
                yield "blkio_weight", self.blkio.weight, ()

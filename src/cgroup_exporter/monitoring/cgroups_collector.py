"""cgroup filesystem access for controller stats and membership.

Supports both hierarchies:
- v2 (unified): one tree, active controllers listed in cgroup.controllers
- v1: one tree per controller (memory/, cpuacct/, cpuset/, blkio/, ...)

Files sourced:
- memory: memory.current|usage_in_bytes, memory.max|limit_in_bytes,
  memory.peak|max_usage_in_bytes, memory.events|failcnt, memory.stat, and on v1
  memory.soft_limit_in_bytes, memory.swappiness, memory.use_hierarchy,
  memory.oom_control
- cpu (v2): cpu.stat
- cpuacct (v1): cpuacct.usage, cpuacct.usage_user, cpuacct.usage_sys (or cpuacct.stat)
- cpuset: effective CPU and memory-node lists
- block I/O: io.stat (v2); blkio.io_* and blkio.throttle.io_* per-operation
  files, blkio.sectors, blkio.time and blkio.weight (v1)

A missing controller or unreadable file is never an error: the matching
record or field is None.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from enum import IntEnum
from pathlib import Path

from cgroup_exporter.core.constants import DEFAULT_CGROUP_ROOT, V1_CONTROLLERS
from cgroup_exporter.core.errors import CgroupFilesystemError
from cgroup_exporter.monitoring.base import (
    BLKIO_OPERATIONS,
    BlkIoStat,
    CpuAcctStat,
    CpuSetStat,
    CpuStat,
    DeviceIoStat,
    DeviceOpStat,
    MemoryStat,
)
from cgroup_exporter.monitoring.units import (
    parse_cpu_list,
    system_clock_ticks,
    ticks_to_nanoseconds,
)

logger = logging.getLogger(__name__)

# v2 renamed the block I/O controller
_V2_CONTROLLER_NAMES = {"blkio": "io"}

# v1 blkio files, without the "blkio." prefix
_V1_BLKIO_OP_FILES = (
    "io_service_bytes",
    "io_serviced",
    "io_merged",
    "io_queued",
    "io_service_time",
    "io_wait_time",
    "throttle.io_service_bytes",
    "throttle.io_serviced",
)
_V1_BLKIO_DEVICE_FILES = ("sectors", "time")


class CgroupVersion(IntEnum):
    V1 = 1
    V2 = 2


def detect_cgroup_version(root: Path = DEFAULT_CGROUP_ROOT) -> CgroupVersion:
    """Detect which hierarchy is mounted at `root`.

    Raises:
        CgroupFilesystemError: If `root` does not exist
    """
    if not root.is_dir():
        raise CgroupFilesystemError(f"cgroup root not found: {root}")
    if (root / "cgroup.controllers").exists():
        return CgroupVersion.V2
    return CgroupVersion.V1


def parse_cpu_stat_v2(text: str) -> CpuStat:
    """Parse the `key value` lines of a v2 cpu.stat file.

    Unknown keys are ignored and an unparsable value leaves its field None;
    the rest of the blob is still parsed.

    Format:
        usage_usec 123456
        user_usec 100000
        system_usec 23456
    """
    values: dict[str, int | None] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2 or parts[0] not in CpuStat.FIELDS:
            continue
        # int() would also take "1_000", signs and non-ASCII digits
        if parts[1].isascii() and parts[1].isdigit():
            values[parts[0]] = int(parts[1])
        else:
            values[parts[0]] = None
    return CpuStat(**values)


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text()
    except OSError:
        return None


def _read_int(path: Path) -> int | None:
    """Read a single integer value; "max" (unlimited) and junk read as None."""
    content = _read_text(path)
    if content is None:
        return None
    try:
        return int(content.strip())
    except ValueError:
        return None


def _read_key_values(path: Path) -> dict[str, int]:
    """Read a flat `key value` file, skipping unparsable lines."""
    result: dict[str, int] = {}
    content = _read_text(path)
    if content is None:
        return result
    for line in content.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        try:
            result[parts[0]] = int(parts[1])
        except ValueError:
            continue
    return result


def _find_v1_hierarchy(root: Path, controller: str) -> Path | None:
    """Locate a v1 controller mount, including co-mounts like `cpu,cpuacct`."""
    direct = root / controller
    if direct.is_dir():
        return direct
    try:
        for child in root.iterdir():
            if controller in child.name.split(",") and child.is_dir():
                return child
    except OSError:
        pass
    return None


class Cgroup:
    """Handle to one cgroup, addressed by its path relative to the root."""

    def __init__(
        self,
        path: str,
        root: Path = DEFAULT_CGROUP_ROOT,
        version: CgroupVersion = CgroupVersion.V2,
    ) -> None:
        self._path = path.strip("/")
        self._root = Path(root)
        self._version = version
        self._controllers: frozenset[str] | None = None

    def __repr__(self) -> str:
        return f"Cgroup(path={self._path!r}, version={self._version.value})"

    @property
    def path(self) -> str:
        return self._path

    @property
    def version(self) -> CgroupVersion:
        return self._version

    @property
    def is_v2(self) -> bool:
        return self._version == CgroupVersion.V2

    def controllers(self) -> frozenset[str]:
        """Names of the controllers active for this cgroup."""
        if self._controllers is None:
            if self.is_v2:
                content = _read_text(self._root / self._path / "cgroup.controllers") or ""
                self._controllers = frozenset(content.split())
            else:
                self._controllers = frozenset(
                    c for c in V1_CONTROLLERS if self.controller_dir(c) is not None
                )
        return self._controllers

    def has_controller(self, controller: str) -> bool:
        if self.is_v2:
            controller = _V2_CONTROLLER_NAMES.get(controller, controller)
        return controller in self.controllers()

    def controller_dir(self, controller: str) -> Path | None:
        """Directory holding `controller` files for this cgroup, if present."""
        if self.is_v2:
            path = self._root / self._path
            return path if path.is_dir() else None
        hierarchy = _find_v1_hierarchy(self._root, controller)
        if hierarchy is None:
            return None
        path = hierarchy / self._path
        return path if path.is_dir() else None

    def procs(self) -> list[int]:
        """Member PIDs; empty when cgroup.procs cannot be read."""
        if self.is_v2:
            dirs = [self._root / self._path]
        else:
            dirs = [d for d in (self.controller_dir(c) for c in V1_CONTROLLERS) if d is not None]

        pids: set[int] = set()
        for d in dirs:
            content = _read_text(d / "cgroup.procs")
            if content is None:
                continue
            for line in content.split():
                try:
                    pids.add(int(line))
                except ValueError:
                    continue
        return sorted(pids)

    # -----------------------------------------------------------------------
    # Controller readers
    # -----------------------------------------------------------------------

    def memory_stat(self) -> MemoryStat | None:
        """Memory controller values, None if the controller is inactive."""
        if not self.has_controller("memory"):
            return None
        d = self.controller_dir("memory")
        if d is None:
            return None

        if self.is_v2:
            events = _read_key_values(d / "memory.events")
            return MemoryStat(
                usage_bytes=_read_int(d / "memory.current"),
                limit_bytes=_read_int(d / "memory.max"),
                max_usage_bytes=_read_int(d / "memory.peak"),
                fail_cnt=events.get("max"),
                oom_kill=events.get("oom_kill"),
                stat=_read_key_values(d / "memory.stat"),
            )

        oom_control = _read_key_values(d / "memory.oom_control")
        return MemoryStat(
            usage_bytes=_read_int(d / "memory.usage_in_bytes"),
            limit_bytes=_read_int(d / "memory.limit_in_bytes"),
            max_usage_bytes=_read_int(d / "memory.max_usage_in_bytes"),
            fail_cnt=_read_int(d / "memory.failcnt"),
            oom_kill=oom_control.get("oom_kill"),
            soft_limit_bytes=_read_int(d / "memory.soft_limit_in_bytes"),
            swappiness=_read_int(d / "memory.swappiness"),
            use_hierarchy=_read_int(d / "memory.use_hierarchy"),
            oom_kill_disable=oom_control.get("oom_kill_disable"),
            under_oom=oom_control.get("under_oom"),
            stat=_read_key_values(d / "memory.stat"),
        )

    def cpu_stat(self) -> CpuStat | None:
        """v2 cpu.stat; v1 has no equivalent file (see cpuacct_stat)."""
        if not self.is_v2 or not self.has_controller("cpu"):
            return None
        content = _read_text(self._root / self._path / "cpu.stat")
        if content is None:
            return None
        return parse_cpu_stat_v2(content)

    def cpuacct_stat(self) -> CpuAcctStat | None:
        if self.is_v2 or not self.has_controller("cpuacct"):
            return None
        d = self.controller_dir("cpuacct")
        if d is None:
            return None

        usage_user = _read_int(d / "cpuacct.usage_user")
        usage_sys = _read_int(d / "cpuacct.usage_sys")
        if usage_user is None or usage_sys is None:
            # Older kernels only split user/system time in cpuacct.stat, in ticks
            ticks = _read_key_values(d / "cpuacct.stat")
            if usage_user is None and "user" in ticks:
                usage_user = ticks_to_nanoseconds(ticks["user"], system_clock_ticks())
            if usage_sys is None and "system" in ticks:
                usage_sys = ticks_to_nanoseconds(ticks["system"], system_clock_ticks())

        return CpuAcctStat(
            usage=_read_int(d / "cpuacct.usage"),
            usage_user=usage_user,
            usage_sys=usage_sys,
        )

    def cpuset_stat(self) -> CpuSetStat | None:
        if not self.has_controller("cpuset"):
            return None
        d = self.controller_dir("cpuset")
        if d is None:
            return None

        if self.is_v2:
            candidates = (("cpuset.cpus.effective", "cpuset.mems.effective"),)
        else:
            candidates = (
                ("cpuset.effective_cpus", "cpuset.effective_mems"),
                ("cpuset.cpus", "cpuset.mems"),
            )

        for cpus_file, mems_file in candidates:
            cpus = _read_text(d / cpus_file)
            mems = _read_text(d / mems_file)
            if cpus is not None and mems is not None:
                return CpuSetStat(
                    cpus=cpus.strip(),
                    mems=mems.strip(),
                    cpu_count=parse_cpu_list(cpus),
                    mem_node_count=parse_cpu_list(mems),
                )
        return None

    def blkio_stat(self) -> BlkIoStat | None:
        if not self.has_controller("blkio"):
            return None
        d = self.controller_dir("blkio")
        if d is None:
            return None
        if self.is_v2:
            return self._read_io_stat(d)
        return self._read_blkio_v1(d)

    def _read_io_stat(self, d: Path) -> BlkIoStat | None:
        """Read io.stat.

        Format (per device):
            8:0 rbytes=12345 wbytes=67890 rios=100 wios=50 dbytes=0 dios=0
        """
        content = _read_text(d / "io.stat")
        if content is None:
            return None

        devices: list[DeviceIoStat] = []
        for line in content.splitlines():
            parts = line.split()
            if len(parts) < 2:
                continue
            values: dict[str, int] = {}
            for item in parts[1:]:
                key, sep, value = item.partition("=")
                if not sep or key not in ("rbytes", "wbytes", "rios", "wios", "dbytes", "dios"):
                    continue
                try:
                    values[key] = int(value)
                except ValueError:
                    continue
            devices.append(DeviceIoStat(device=parts[0], **values))
        return BlkIoStat(devices=tuple(devices))

    def _read_blkio_v1(self, d: Path) -> BlkIoStat | None:
        """Read the v1 blkio files.

        Per-operation files (blkio.io_serviced, blkio.throttle.io_serviced, ...):
            8:0 Read 12345
            8:0 Write 678
            Total 13023

        Per-device files (blkio.sectors, blkio.time):
            8:0 4096
        """
        op_stats: dict[str, tuple[DeviceOpStat, ...]] = {}
        for name in _V1_BLKIO_OP_FILES:
            content = _read_text(d / f"blkio.{name}")
            if content is not None:
                op_stats[name.replace(".", "_")] = _parse_blkio_ops(content)

        device_values: dict[str, dict[str, int]] = {}
        for name in _V1_BLKIO_DEVICE_FILES:
            content = _read_text(d / f"blkio.{name}")
            if content is not None:
                device_values[name] = _parse_blkio_device_values(content)

        weight = _read_int(d / "blkio.weight")
        if not op_stats and not device_values and weight is None:
            return None
        return BlkIoStat(op_stats=op_stats, device_values=device_values, weight=weight)


def _parse_blkio_ops(content: str) -> tuple[DeviceOpStat, ...]:
    per_device: dict[str, dict[str, int]] = {}
    for line in content.splitlines():
        parts = line.split()
        # The trailing "Total N" line sums every device and is skipped
        if len(parts) != 3:
            continue
        op = parts[1].lower()
        if op not in BLKIO_OPERATIONS:
            continue
        try:
            per_device.setdefault(parts[0], {})[op] = int(parts[2])
        except ValueError:
            continue
    return tuple(DeviceOpStat(device, ops) for device, ops in sorted(per_device.items()))


def _parse_blkio_device_values(content: str) -> dict[str, int]:
    values: dict[str, int] = {}
    for line in content.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        try:
            values[parts[0]] = int(parts[1])
        except ValueError:
            continue
    return values


class CgroupExplorer:
    """Enumerates the cgroups below a cgroup filesystem root."""

    def __init__(self, root: Path = DEFAULT_CGROUP_ROOT) -> None:
        self._root = Path(root)
        self._version: CgroupVersion | None = None

    @property
    def root(self) -> Path:
        return self._root

    @property
    def version(self) -> CgroupVersion:
        if self._version is None:
            self._version = detect_cgroup_version(self._root)
            logger.debug(f"Detected cgroup v{self._version.value} at {self._root}")
        return self._version

    def iter_paths(self) -> list[str]:
        """Relative paths of all non-root cgroups, sorted and deduplicated.

        Raises:
            CgroupFilesystemError: If the root is missing
        """
        if self.version == CgroupVersion.V2:
            hierarchies = [self._root]
        else:
            hierarchies = [
                h for h in (_find_v1_hierarchy(self._root, c) for c in V1_CONTROLLERS) if h
            ]

        paths: set[str] = set()
        for hierarchy in hierarchies:
            paths.update(self._walk(hierarchy))
        return sorted(paths)

    def iter_cgroups(self) -> Iterator[Cgroup]:
        for path in self.iter_paths():
            yield Cgroup(path, self._root, self.version)

    def _walk(self, hierarchy: Path) -> Iterator[str]:
        # cgroups come and go while we walk; vanished directories are skipped.
        for dirpath, dirnames, _ in os.walk(hierarchy, onerror=lambda e: None):
            for name in dirnames:
                full = Path(dirpath) / name
                yield full.relative_to(hierarchy).as_posix()

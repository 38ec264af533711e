"""Per-process samples read through psutil.

Sourced per PID:
- psutil: rss, user/system CPU time, threads, io counters, open fds, create time
- <proc_root>/<pid>/stat: minor/major fault counters, which psutil does not expose

psutil reports bytes and seconds; samples are kept in kernel units (pages
and clock ticks) and converted back by the aggregator.

A process may exit at any point during the scan. A PID that vanished or is a
zombie yields no sample at all; io counters, fd count and create time that
psutil is not allowed to read leave the matching optional field empty.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

import psutil

from cgroup_exporter.core.constants import DEFAULT_PROC_ROOT
from cgroup_exporter.monitoring.base import IoCounters, RawProcessSample
from cgroup_exporter.monitoring.units import system_clock_ticks, system_page_size

logger = logging.getLogger(__name__)

# Offsets into /proc/<pid>/stat after the ")" closing the command name.
# Field N of proc(5) sits at index N - 3.
_STAT_MINFLT = 7
_STAT_MAJFLT = 9


class ProcReader:
    """Reads RawProcessSample records for a procfs mount."""

    def __init__(
        self,
        proc_root: Path = DEFAULT_PROC_ROOT,
        page_size: int | None = None,
        clock_ticks: int | None = None,
    ) -> None:
        """Initialize the reader.

        psutil keeps its procfs location in a module global, so the reader
        points it at `proc_root`. Readers with different roots cannot be
        used side by side.

        Args:
            proc_root: procfs mount point
            page_size: Bytes per page used to express rss (default: host page size)
            clock_ticks: Ticks per second used to express CPU time (default: host USER_HZ)
        """
        self._proc_root = Path(proc_root)
        self._page_size = page_size if page_size is not None else system_page_size()
        self._clock_ticks = clock_ticks if clock_ticks is not None else system_clock_ticks()
        psutil.PROCFS_PATH = str(self._proc_root)

    @property
    def proc_root(self) -> Path:
        return self._proc_root

    def read_sample(self, pid: int) -> RawProcessSample | None:
        """Sample one process.

        Returns:
            The sample, or None if the process is gone or cannot be inspected
        """
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                rss = proc.memory_info().rss
                cpu = proc.cpu_times()
                num_threads = proc.num_threads()
                io = _optional(proc.io_counters)
                fd_count = _optional(proc.num_fds)
                create_time = _optional(proc.create_time)
        except psutil.NoSuchProcess as e:
            # ZombieProcess is a NoSuchProcess too
            logger.debug(f"Skipping pid {pid}: {e}")
            return None
        except psutil.AccessDenied as e:
            logger.debug(f"Skipping pid {pid}: access denied ({e})")
            return None

        faults = self._read_faults(pid)
        if faults is None:
            return None
        minflt, majflt = faults

        return RawProcessSample(
            pid=pid,
            rss_pages=max(0, rss) // self._page_size,
            utime_ticks=round(cpu.user * self._clock_ticks),
            stime_ticks=round(cpu.system * self._clock_ticks),
            num_threads=num_threads,
            major_faults=majflt,
            minor_faults=minflt,
            io=_io_counters(io),
            fd_count=fd_count,
            start_time=int(create_time) if create_time is not None else None,
        )

    def iter_samples(self, pids: Iterable[int]) -> Iterator[RawProcessSample]:
        """Lazily sample `pids`, dropping processes that could not be read."""
        for pid in pids:
            sample = self.read_sample(pid)
            if sample is not None:
                yield sample

    def _read_faults(self, pid: int) -> tuple[int, int] | None:
        try:
            content = (self._proc_root / str(pid) / "stat").read_text()
        except OSError as e:
            logger.debug(f"Skipping pid {pid}: {e}")
            return None

        # The command name may contain spaces and parentheses.
        _, sep, rest = content.rpartition(")")
        fields = rest.split()
        if not sep or len(fields) <= _STAT_MAJFLT:
            logger.debug(f"Skipping pid {pid}: malformed stat")
            return None
        try:
            return int(fields[_STAT_MINFLT]), int(fields[_STAT_MAJFLT])
        except ValueError:
            logger.debug(f"Skipping pid {pid}: unparsable stat")
            return None


def _optional(read):
    """Call a psutil accessor, None when the kernel refuses access."""
    try:
        return read()
    except psutil.AccessDenied:
        return None


def _io_counters(io) -> IoCounters | None:
    if io is None:
        return None
    return IoCounters(read_bytes=io.read_bytes, write_bytes=io.write_bytes)

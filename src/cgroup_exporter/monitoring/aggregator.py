"""Fold per-process samples into one ProcessMetrics record.

The aggregator is total: it never raises and never sees processes that could
not be read. Filtering of vanished processes happens upstream, in
`ProcReader.iter_samples`.
"""

from __future__ import annotations

from collections.abc import Iterable

from cgroup_exporter.monitoring.base import ProcessMetrics, RawProcessSample
from cgroup_exporter.monitoring.units import (
    pages_to_bytes,
    system_clock_ticks,
    system_page_size,
    ticks_to_seconds,
)


def aggregate(
    samples: Iterable[RawProcessSample],
    page_size: int | None = None,
    clock_ticks: int | None = None,
) -> ProcessMetrics:
    """Sum a stream of process samples in a single pass.

    Args:
        samples: Fully constructed samples; consumed lazily
        page_size: Bytes per page (default: host page size)
        clock_ticks: Ticks per second (default: host USER_HZ)

    Returns:
        ProcessMetrics with zeroed sums and no start time for an empty input
    """
    if page_size is None:
        page_size = system_page_size()
    if clock_ticks is None:
        clock_ticks = system_clock_ticks()

    rss = 0
    utime = 0.0
    stime = 0.0
    num_threads = 0
    major_faults = 0
    minor_faults = 0
    io_read = 0
    io_write = 0
    num_fds = 0
    num_procs = 0
    start_time: int | None = None

    for sample in samples:
        rss += pages_to_bytes(sample.rss_pages, page_size)
        utime += ticks_to_seconds(sample.utime_ticks, clock_ticks)
        stime += ticks_to_seconds(sample.stime_ticks, clock_ticks)
        num_threads += sample.num_threads
        major_faults += sample.major_faults
        minor_faults += sample.minor_faults

        if sample.io is not None:
            io_read += sample.io.read_bytes
            io_write += sample.io.write_bytes
        if sample.fd_count is not None:
            num_fds += sample.fd_count
        if sample.start_time is not None:
            start_time = (
                sample.start_time if start_time is None else min(start_time, sample.start_time)
            )

        num_procs += 1

    return ProcessMetrics(
        rss=rss,
        utime=utime,
        stime=stime,
        cpu_seconds_total=utime + stime,
        memory_usage_bytes=rss,
        num_fds=num_fds,
        num_procs=num_procs,
        num_threads=num_threads,
        io_read_bytes_total=io_read,
        io_write_bytes_total=io_write,
        major_page_faults_total=major_faults,
        minor_page_faults_total=minor_faults,
        start_time=start_time,
    )

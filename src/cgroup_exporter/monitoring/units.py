"""Kernel unit conversions.

procfs reports memory in pages and CPU time in clock ticks. Both scale
factors are host properties, read once through sysconf.

Functions:
    system_page_size: Bytes per page on this host
    system_clock_ticks: Clock ticks per second (USER_HZ)
    pages_to_bytes: Convert a page count to bytes
    ticks_to_seconds: Convert clock ticks to seconds
    ticks_to_nanoseconds: Convert clock ticks to whole nanoseconds
    parse_cpu_list: Count entries of a kernel CPU/node list ("0-3,8")
"""

from __future__ import annotations

import logging
import os
from functools import cache

from cgroup_exporter.core.constants import FALLBACK_CLOCK_TICKS, FALLBACK_PAGE_SIZE

logger = logging.getLogger(__name__)


@cache
def system_page_size() -> int:
    """Page size in bytes (defaults to 4096 if detection fails)."""
    try:
        return os.sysconf("SC_PAGE_SIZE")
    except (ValueError, OSError, AttributeError):
        logger.debug(f"Could not read SC_PAGE_SIZE, using {FALLBACK_PAGE_SIZE}")
        return FALLBACK_PAGE_SIZE


@cache
def system_clock_ticks() -> int:
    """Clock ticks per second (defaults to 100 if detection fails)."""
    try:
        return os.sysconf("SC_CLK_TCK")
    except (ValueError, OSError, AttributeError):
        logger.debug(f"Could not read SC_CLK_TCK, using {FALLBACK_CLOCK_TICKS}")
        return FALLBACK_CLOCK_TICKS


def pages_to_bytes(pages: int, page_size: int) -> int:
    return pages * page_size


def ticks_to_seconds(ticks: int, clock_ticks: int) -> float:
    """Convert clock ticks to seconds, 0.0 if the tick rate is unknown."""
    if clock_ticks <= 0:
        return 0.0
    return ticks / clock_ticks


def ticks_to_nanoseconds(ticks: int, clock_ticks: int) -> int:
    if clock_ticks <= 0:
        return 0
    return ticks * 1_000_000_000 // clock_ticks


def parse_cpu_list(text: str) -> int:
    """Count the entries of a kernel list like "0-3,8,10-11".

    Malformed ranges are skipped.

    Args:
        text: List format content of cpuset.cpus / cpuset.mems

    Returns:
        Number of CPUs (or memory nodes) described
    """
    count = 0
    for part in text.strip().split(","):
        part = part.strip()
        if not part:
            continue
        lo, sep, hi = part.partition("-")
        try:
            if sep:
                start, end = int(lo), int(hi)
                if end >= start:
                    count += end - start + 1
            else:
                int(lo)
                count += 1
        except ValueError:
            continue
    return count

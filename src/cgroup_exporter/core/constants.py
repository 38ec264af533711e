"""Shared constants for the cgroup exporter.

Centralized constants to avoid duplication and ensure consistency across modules.
"""

from __future__ import annotations

from pathlib import Path

# Mount point of the cgroup filesystem (v2 unified or v1 controller directories)
DEFAULT_CGROUP_ROOT = Path("/sys/fs/cgroup")

# procfs mount point used for per-process samples
DEFAULT_PROC_ROOT = Path("/proc")

# Metric name prefix
DEFAULT_NAMESPACE = "cgroup"

DEFAULT_LISTEN_ADDRESS = "0.0.0.0"
DEFAULT_LISTEN_PORT = 9753

# Upper bound for a single shell name-rewrite evaluation.
DEFAULT_SHELL_TIMEOUT_SECONDS = 5.0

# Fallbacks when sysconf cannot report the values (non-Linux test hosts).
FALLBACK_PAGE_SIZE = 4096
FALLBACK_CLOCK_TICKS = 100

# v1 hierarchies the exporter knows how to read.
V1_CONTROLLERS = ("memory", "cpu", "cpuacct", "cpuset", "blkio")

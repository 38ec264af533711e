"""Assemble one CgroupSnapshot from name resolution, controllers and processes."""

from __future__ import annotations

import logging

from cgroup_exporter.monitoring.aggregator import aggregate
from cgroup_exporter.monitoring.base import CgroupSnapshot
from cgroup_exporter.monitoring.cgroups_collector import Cgroup
from cgroup_exporter.monitoring.procs import ProcReader
from cgroup_exporter.naming.resolver import resolve_name
from cgroup_exporter.naming.rules import NameRule
from cgroup_exporter.naming.shell import Evaluator

logger = logging.getLogger(__name__)


def build_snapshot(
    cgroup: Cgroup,
    rule: NameRule,
    evaluator: Evaluator,
    proc_reader: ProcReader | None = None,
) -> CgroupSnapshot:
    """Build the complete record for one cgroup.

    Only name resolution can fail: an unidentifiable record is never emitted
    under a fallback name. Missing controllers and unreadable processes
    degrade to absent values.

    Args:
        cgroup: Handle to the cgroup
        rule: Rule selected for this cgroup
        evaluator: Evaluator for shell name templates
        proc_reader: procfs reader (default: /proc)

    Returns:
        The snapshot

    Raises:
        NameResolutionError: If the display name cannot be computed
    """
    name = resolve_name(cgroup.path, rule, evaluator)

    if proc_reader is None:
        proc_reader = ProcReader()

    pids = cgroup.procs()
    processes = aggregate(proc_reader.iter_samples(pids))
    if processes.num_procs < len(pids):
        logger.debug(
            f"{cgroup.path}: sampled {processes.num_procs} of {len(pids)} processes"
        )

    return CgroupSnapshot(
        name=name,
        path=cgroup.path,
        processes=processes,
        cpu=cgroup.cpu_stat(),
        cpuacct=cgroup.cpuacct_stat(),
        cpuset=cgroup.cpuset_stat(),
        memory=cgroup.memory_stat(),
        blkio=cgroup.blkio_stat(),
    )

"""Scrape cycle and Prometheus exposition.

Scraper walks the cgroup tree once, selects cgroups with the configured
rules and builds one snapshot per selected cgroup. CgroupCollector plugs a
Scraper into prometheus_client so every HTTP scrape runs a fresh cycle.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator, Mapping

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from cgroup_exporter.core.errors import ConfigurationInvariantError, NameResolutionError
from cgroup_exporter.core.schemas import ExporterConfig
from cgroup_exporter.monitoring.base import CgroupSnapshot
from cgroup_exporter.monitoring.cgroups_collector import CgroupExplorer
from cgroup_exporter.monitoring.metadata import METADATA, MetricDescriptor, MetricType, exposed_name
from cgroup_exporter.monitoring.procs import ProcReader
from cgroup_exporter.monitoring.snapshot import build_snapshot
from cgroup_exporter.naming.matcher import CgroupMatcher
from cgroup_exporter.naming.shell import Evaluator, ShellEvaluator

logger = logging.getLogger(__name__)


class Scraper:
    """Runs scrape cycles over a cgroup tree.

    Cgroups are processed sequentially. A cgroup whose name cannot be
    resolved is skipped; every other cgroup is still reported.
    ConfigurationInvariantError and CgroupFilesystemError abort the cycle.
    """

    def __init__(
        self,
        matcher: CgroupMatcher,
        evaluator: Evaluator,
        explorer: CgroupExplorer | None = None,
        proc_reader: ProcReader | None = None,
    ) -> None:
        self._matcher = matcher
        self._evaluator = evaluator
        self._explorer = explorer if explorer is not None else CgroupExplorer()
        self._proc_reader = proc_reader if proc_reader is not None else ProcReader()

    @classmethod
    def from_config(cls, config: ExporterConfig) -> Scraper:
        return cls(
            matcher=CgroupMatcher(config.name_rules()),
            evaluator=ShellEvaluator(timeout_seconds=config.shell_timeout_seconds),
            explorer=CgroupExplorer(config.cgroup_root),
            proc_reader=ProcReader(config.proc_root),
        )

    @property
    def matcher(self) -> CgroupMatcher:
        return self._matcher

    @property
    def explorer(self) -> CgroupExplorer:
        return self._explorer

    @property
    def evaluator(self) -> Evaluator:
        return self._evaluator

    def scrape(self, cancel: threading.Event | None = None) -> list[CgroupSnapshot]:
        """Run one cycle.

        Args:
            cancel: When set, stop before the next cgroup and return what was built

        Returns:
            Snapshots of the cgroups that were selected and resolved
        """
        started = time.monotonic()
        snapshots: list[CgroupSnapshot] = []
        selected = 0
        failed = 0

        for cgroup in self._explorer.iter_cgroups():
            if cancel is not None and cancel.is_set():
                logger.debug("Scrape cancelled")
                break

            rule = self._matcher.match(cgroup.path)
            if rule is None:
                continue
            selected += 1

            try:
                snapshot = build_snapshot(cgroup, rule, self._evaluator, self._proc_reader)
            except NameResolutionError as e:
                failed += 1
                logger.warning(f"Skipping cgroup {cgroup.path}: {e}")
                continue
            snapshots.append(snapshot)

        paths_by_name: dict[str, list[str]] = {}
        for snapshot in snapshots:
            paths_by_name.setdefault(snapshot.name, []).append(snapshot.path)
        for name, paths in paths_by_name.items():
            if len(paths) > 1:
                # Their series share every label and cannot be told apart
                logger.warning(f"Cgroups {', '.join(paths)} all resolved to the name {name!r}")

        logger.debug(
            f"Scraped {len(snapshots)} cgroups ({selected} selected, {failed} failed) "
            f"in {time.monotonic() - started:.3f}s"
        )
        return snapshots


class CgroupCollector(Collector):
    """prometheus_client collector that renders fresh snapshots on every collect()."""

    def __init__(
        self,
        scraper: Scraper,
        namespace: str = "",
        labels: Mapping[str, str] | None = None,
        metadata: Mapping[str, MetricDescriptor] = METADATA,
        fatal: threading.Event | None = None,
    ) -> None:
        """Initialize the collector.

        Args:
            scraper: Runs the scrape cycle
            namespace: Metric name prefix
            labels: Constant labels added to every sample
            metadata: Field key -> descriptor registry
            fatal: Set when a configuration invariant is violated, so the
                serving loop can stop the process
        """
        self._scraper = scraper
        self._namespace = namespace
        self._labels = dict(labels or {})
        self._metadata = metadata
        self._fatal = fatal

    def collect(self) -> Iterator[Metric]:
        try:
            snapshots = self._scraper.scrape()
        except ConfigurationInvariantError:
            logger.error("Configuration invariant violated during scrape", exc_info=True)
            if self._fatal is not None:
                self._fatal.set()
            raise
        yield from render_snapshots(snapshots, self._namespace, self._labels, self._metadata)


def render_snapshots(
    snapshots: list[CgroupSnapshot],
    namespace: str = "",
    labels: Mapping[str, str] | None = None,
    metadata: Mapping[str, MetricDescriptor] = METADATA,
) -> list[Metric]:
    """Group snapshot fields into metric families.

    Each family carries the labels `cgroup`, the constant labels, then the
    field's own labels. Fields without metadata are skipped.

    Args:
        snapshots: Snapshots of one scrape cycle
        namespace: Metric name prefix
        labels: Constant labels added to every sample
        metadata: Field key -> descriptor registry

    Returns:
        Metric families in first-seen order
    """
    constant = dict(labels or {})
    families: dict[str, CounterMetricFamily | GaugeMetricFamily] = {}

    for snapshot in snapshots:
        for key, value, field_labels in snapshot.iter_fields():
            descriptor = metadata.get(key)
            if descriptor is None:
                continue

            family = families.get(key)
            if family is None:
                family = _new_family(key, descriptor, namespace, list(constant))
                families[key] = family

            label_values = [snapshot.name, *constant.values(), *(v for _, v in field_labels)]
            family.add_metric(label_values, value)

    return list(families.values())


def _new_family(
    key: str, descriptor: MetricDescriptor, namespace: str, constant_names: list[str]
) -> CounterMetricFamily | GaugeMetricFamily:
    name = exposed_name(key, descriptor)
    if namespace:
        name = f"{namespace}_{name}"
    label_names = ["cgroup", *constant_names, *descriptor.labels]

    if descriptor.metric_type == MetricType.COUNTER:
        return CounterMetricFamily(name, descriptor.help, labels=label_names)
    return GaugeMetricFamily(name, descriptor.help, labels=label_names)

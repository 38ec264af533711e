"""Shared fixtures: fake procfs and cgroupfs trees."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from types import SimpleNamespace

import psutil
import pytest

from cgroup_exporter.monitoring.base import IoCounters, RawProcessSample
from cgroup_exporter.monitoring.units import system_page_size

BOOT_TIME = 1_700_000_000
CLOCK_TICKS = 100


def stat_line(
    pid: int,
    comm: str = "worker",
    minflt: int = 0,
    majflt: int = 0,
    utime: int = 0,
    stime: int = 0,
    threads: int = 1,
    starttime: int = 0,
    rss: int = 0,
) -> str:
    """Build a /proc/<pid>/stat line."""
    rest = [
        "S", "1", str(pid), str(pid), "0", "-1", "4194560",
        str(minflt), "0", str(majflt), "0",
        str(utime), str(stime), "0", "0", "20", "0",
        str(threads), "0", str(starttime), "1000000", str(rss),
        "18446744073709551615",
    ]  # fmt: skip
    return f"{pid} ({comm}) " + " ".join(rest) + "\n"


class FakeProcess:
    """Stands in for psutil.Process with values taken from stat fields.

    Accessors listed in `denied` raise AccessDenied; every accessor raises
    ZombieProcess when `zombie` is set.
    """

    def __init__(
        self,
        pid: int,
        stat: dict,
        io: tuple[int, int] | None,
        fds: int | None,
        denied: tuple[str, ...] = (),
        zombie: bool = False,
    ) -> None:
        self.pid = pid
        self._stat = stat
        self._io = io
        self._fds = fds
        self._denied = set(denied)
        self._zombie = zombie
        self.oneshot_entered = False

    @contextmanager
    def oneshot(self) -> Iterator[None]:
        self.oneshot_entered = True
        yield

    def _check(self, accessor: str) -> None:
        if self._zombie:
            raise psutil.ZombieProcess(self.pid)
        if accessor in self._denied:
            raise psutil.AccessDenied(self.pid)

    def memory_info(self) -> SimpleNamespace:
        self._check("memory_info")
        return SimpleNamespace(rss=self._stat.get("rss", 0) * system_page_size(), vms=0)

    def cpu_times(self) -> SimpleNamespace:
        self._check("cpu_times")
        return SimpleNamespace(
            user=self._stat.get("utime", 0) / CLOCK_TICKS,
            system=self._stat.get("stime", 0) / CLOCK_TICKS,
        )

    def num_threads(self) -> int:
        self._check("num_threads")
        return self._stat.get("threads", 1)

    def io_counters(self) -> SimpleNamespace:
        self._check("io_counters")
        if self._io is None:
            raise psutil.AccessDenied(self.pid)
        return SimpleNamespace(
            read_count=0, write_count=0, read_bytes=self._io[0], write_bytes=self._io[1]
        )

    def num_fds(self) -> int:
        self._check("num_fds")
        if self._fds is None:
            raise psutil.AccessDenied(self.pid)
        return self._fds

    def create_time(self) -> float:
        self._check("create_time")
        return BOOT_TIME + self._stat.get("starttime", 0) / CLOCK_TICKS


@pytest.fixture(autouse=True)
def _restore_procfs_path() -> Iterator[None]:
    # ProcReader repoints psutil at its proc_root
    saved = psutil.PROCFS_PATH
    yield
    psutil.PROCFS_PATH = saved


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    root = tmp_path / "proc"
    root.mkdir()
    return root


@pytest.fixture
def fake_processes(monkeypatch: pytest.MonkeyPatch) -> dict[int, FakeProcess]:
    """Route psutil.Process to registered FakeProcess instances."""
    processes: dict[int, FakeProcess] = {}

    def _process(pid: int) -> FakeProcess:
        try:
            return processes[pid]
        except KeyError:
            raise psutil.NoSuchProcess(pid) from None

    monkeypatch.setattr(psutil, "Process", _process)
    return processes


@pytest.fixture
def add_process(
    proc_root: Path, fake_processes: dict[int, FakeProcess]
) -> Callable[..., Path]:
    """Create a fake process: a /proc/<pid>/stat file plus its psutil view.

    `io` and `fds` left as None make the matching psutil accessor deny access.
    """

    def _add(
        pid: int,
        io: tuple[int, int] | None = None,
        fds: int | None = None,
        denied: tuple[str, ...] = (),
        zombie: bool = False,
        **stat_fields: int | str,
    ) -> Path:
        pid_dir = proc_root / str(pid)
        pid_dir.mkdir()
        (pid_dir / "stat").write_text(stat_line(pid, **stat_fields))  # type: ignore[arg-type]
        fake_processes[pid] = FakeProcess(pid, stat_fields, io, fds, denied, zombie)
        return pid_dir

    return _add


@pytest.fixture
def cgroup_v2_root(tmp_path: Path) -> Path:
    root = tmp_path / "cgroup"
    root.mkdir()
    (root / "cgroup.controllers").write_text("cpuset cpu io memory pids\n")
    return root


@pytest.fixture
def add_cgroup_v2(cgroup_v2_root: Path) -> Callable[..., Path]:
    """Create a fake v2 cgroup directory with the given files."""

    def _add(
        path: str,
        controllers: str = "cpuset cpu io memory pids",
        procs: list[int] | None = None,
        files: dict[str, str] | None = None,
    ) -> Path:
        d = cgroup_v2_root / path
        d.mkdir(parents=True, exist_ok=True)
        (d / "cgroup.controllers").write_text(controllers + "\n")
        (d / "cgroup.procs").write_text("".join(f"{pid}\n" for pid in procs or []))
        for name, content in (files or {}).items():
            (d / name).write_text(content)
        return d

    return _add


def make_sample(
    pid: int = 1,
    rss_pages: int = 0,
    utime_ticks: int = 0,
    stime_ticks: int = 0,
    num_threads: int = 1,
    major_faults: int = 0,
    minor_faults: int = 0,
    io: IoCounters | None = None,
    fd_count: int | None = None,
    start_time: int | None = None,
) -> RawProcessSample:
    return RawProcessSample(
        pid=pid,
        rss_pages=rss_pages,
        utime_ticks=utime_ticks,
        stime_ticks=stime_ticks,
        num_threads=num_threads,
        major_faults=major_faults,
        minor_faults=minor_faults,
        io=io,
        fd_count=fd_count,
        start_time=start_time,
    )

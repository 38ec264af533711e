"""Tests for cgroup filesystem access."""

from pathlib import Path

import pytest

from cgroup_exporter.core.errors import CgroupFilesystemError
from cgroup_exporter.exporter import render_snapshots
from cgroup_exporter.monitoring.base import (
    CgroupSnapshot,
    CpuStat,
    DeviceIoStat,
    DeviceOpStat,
    ProcessMetrics,
)
from cgroup_exporter.monitoring.cgroups_collector import (
    Cgroup,
    CgroupExplorer,
    CgroupVersion,
    detect_cgroup_version,
    parse_cpu_stat_v2,
)


class TestParseCpuStatV2:
    """Tests for parse_cpu_stat_v2()."""

    def test_full_blob(self) -> None:
        text = (
            "usage_usec 1000\nuser_usec 600\nsystem_usec 400\n"
            "nr_periods 10\nnr_throttled 2\nthrottled_usec 50\n"
        )
        stat = parse_cpu_stat_v2(text)

        assert stat.usage_usec == 1000
        assert stat.user_usec == 600
        assert stat.system_usec == 400
        assert stat.nr_periods == 10
        assert stat.nr_throttled == 2
        assert stat.throttled_usec == 50
        assert stat.nice_usec is None
        assert stat.nr_bursts is None

    def test_unknown_keys_ignored(self) -> None:
        stat = parse_cpu_stat_v2("usage_usec 5\ncore_sched.force_idle_usec 9\n")
        assert stat == CpuStat(usage_usec=5)

    def test_bad_value_leaves_field_absent(self) -> None:
        """A bad line does not stop the rest of the blob from being parsed."""
        stat = parse_cpu_stat_v2("usage_usec abc\nuser_usec -1\nsystem_usec 7\n")

        assert stat.usage_usec is None
        assert stat.user_usec is None
        assert stat.system_usec == 7

    def test_only_ascii_digits_accepted(self) -> None:
        stat = parse_cpu_stat_v2(
            "usage_usec 1_000\nuser_usec \u0661\u0662\nsystem_usec +7\nnice_usec 3\n"
        )

        assert stat.usage_usec is None
        assert stat.user_usec is None
        assert stat.system_usec is None
        assert stat.nice_usec == 3

    def test_empty(self) -> None:
        assert parse_cpu_stat_v2("") == CpuStat()


class TestDetectVersion:
    def test_v2(self, cgroup_v2_root: Path) -> None:
        assert detect_cgroup_version(cgroup_v2_root) == CgroupVersion.V2

    def test_v1(self, tmp_path: Path) -> None:
        (tmp_path / "memory").mkdir()
        assert detect_cgroup_version(tmp_path) == CgroupVersion.V1

    def test_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(CgroupFilesystemError):
            detect_cgroup_version(tmp_path / "missing")


class TestCgroupV2:
    """Controller readers on a unified hierarchy."""

    def test_memory(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2(
            "app.slice",
            files={
                "memory.current": "1048576\n",
                "memory.max": "max\n",
                "memory.peak": "2097152\n",
                "memory.events": "low 0\nhigh 0\nmax 3\noom 1\noom_kill 1\n",
                "memory.stat": "anon 4096\nfile 8192\npgfault 12\n",
            },
        )
        memory = Cgroup("app.slice", cgroup_v2_root).memory_stat()

        assert memory is not None
        assert memory.usage_bytes == 1048576
        assert memory.limit_bytes is None
        assert memory.max_usage_bytes == 2097152
        assert memory.fail_cnt == 3
        assert memory.oom_kill == 1
        assert memory.stat == {"anon": 4096, "file": 8192, "pgfault": 12}

    def test_inactive_controller_is_absent(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2("bare", controllers="pids", files={"memory.current": "1\n"})
        cgroup = Cgroup("bare", cgroup_v2_root)

        assert cgroup.memory_stat() is None
        assert cgroup.cpu_stat() is None
        assert cgroup.cpuset_stat() is None
        assert cgroup.blkio_stat() is None

    def test_cpu(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2("app", files={"cpu.stat": "usage_usec 10\nuser_usec 6\nsystem_usec 4\n"})
        cgroup = Cgroup("app", cgroup_v2_root)

        assert cgroup.cpu_stat() == CpuStat(usage_usec=10, user_usec=6, system_usec=4)
        assert cgroup.cpuacct_stat() is None

    def test_missing_cpu_stat_file(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2("app")
        assert Cgroup("app", cgroup_v2_root).cpu_stat() is None

    def test_cpuset(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2(
            "app", files={"cpuset.cpus.effective": "0-3,8\n", "cpuset.mems.effective": "0\n"}
        )
        cpuset = Cgroup("app", cgroup_v2_root).cpuset_stat()

        assert cpuset is not None
        assert cpuset.cpus == "0-3,8"
        assert cpuset.cpu_count == 5
        assert cpuset.mem_node_count == 1

    def test_io_stat(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2(
            "app",
            files={
                "io.stat": (
                    "8:0 rbytes=100 wbytes=200 rios=1 wios=2 dbytes=0 dios=0\n"
                    "259:0 rbytes=5 wbytes=6 rios=7 wios=8 dbytes=9 dios=10 extra=1\n"
                )
            },
        )
        blkio = Cgroup("app", cgroup_v2_root).blkio_stat()

        assert blkio is not None
        assert blkio.devices == (
            DeviceIoStat("8:0", rbytes=100, wbytes=200, rios=1, wios=2),
            DeviceIoStat("259:0", rbytes=5, wbytes=6, rios=7, wios=8, dbytes=9, dios=10),
        )
        assert blkio.total_read_bytes == 105
        assert blkio.total_write_bytes == 206

    def test_procs(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2("app", procs=[30, 10, 20])
        assert Cgroup("/app/", cgroup_v2_root).procs() == [10, 20, 30]

    def test_procs_missing_dir(self, cgroup_v2_root: Path) -> None:
        assert Cgroup("gone", cgroup_v2_root).procs() == []


@pytest.fixture
def cgroup_v1_root(tmp_path: Path) -> Path:
    """v1 layout with memory, a cpu,cpuacct co-mount and blkio."""
    root = tmp_path / "cgroup"
    memory = root / "memory" / "app"
    cpuacct = root / "cpu,cpuacct" / "app"
    blkio = root / "blkio" / "app"
    for d in (memory, cpuacct, blkio):
        d.mkdir(parents=True)

    (memory / "cgroup.procs").write_text("1\n2\n")
    (memory / "memory.usage_in_bytes").write_text("4096\n")
    (memory / "memory.limit_in_bytes").write_text("9223372036854771712\n")
    (memory / "memory.max_usage_in_bytes").write_text("8192\n")
    (memory / "memory.failcnt").write_text("0\n")
    (memory / "memory.oom_control").write_text("oom_kill_disable 0\nunder_oom 0\noom_kill 2\n")
    (memory / "memory.soft_limit_in_bytes").write_text("1048576\n")
    (memory / "memory.swappiness").write_text("60\n")
    (memory / "memory.use_hierarchy").write_text("1\n")
    (memory / "memory.stat").write_text(
        "cache 10\nrss 20\npgfault 5\ntotal_cache 30\ntotal_rss 40\ntotal_pgfault 15\n"
    )

    (cpuacct / "cgroup.procs").write_text("2\n3\n")
    (cpuacct / "cpuacct.usage").write_text("5000\n")
    (cpuacct / "cpuacct.usage_user").write_text("3000\n")
    (cpuacct / "cpuacct.usage_sys").write_text("2000\n")

    (blkio / "blkio.throttle.io_service_bytes").write_text(
        "8:0 Read 100\n8:0 Write 200\n8:0 Sync 300\n8:0 Total 300\nTotal 300\n"
    )
    (blkio / "blkio.throttle.io_serviced").write_text("8:0 Read 1\n8:0 Write 2\nTotal 3\n")
    (blkio / "blkio.io_service_bytes").write_text(
        "8:0 Read 4096\n8:0 Write 8192\n8:0 Sync 0\n8:0 Async 12288\n8:0 Discard 0\n"
        "8:0 Total 12288\n8:16 Read 512\n8:16 Total 512\nTotal 12800\n"
    )
    (blkio / "blkio.io_serviced").write_text("8:0 Read 4\n8:0 Write 8\n8:0 Total 12\nTotal 12\n")
    (blkio / "blkio.io_merged").write_text("8:0 Read 1\n8:0 Write 0\n8:0 Total 1\nTotal 1\n")
    (blkio / "blkio.io_queued").write_text("8:0 Read 0\n8:0 Write 2\n8:0 Total 2\nTotal 2\n")
    (blkio / "blkio.sectors").write_text("8:0 24\n8:16 1\n")
    (blkio / "blkio.time").write_text("8:0 17\n")
    (blkio / "blkio.weight").write_text("500\n")
    return root


class TestCgroupV1:
    """Controller readers on split hierarchies."""

    def test_controllers(self, cgroup_v1_root: Path) -> None:
        cgroup = Cgroup("app", cgroup_v1_root, CgroupVersion.V1)
        assert cgroup.controllers() == frozenset({"memory", "cpu", "cpuacct", "blkio"})

    def test_memory(self, cgroup_v1_root: Path) -> None:
        memory = Cgroup("app", cgroup_v1_root, CgroupVersion.V1).memory_stat()

        assert memory is not None
        assert memory.usage_bytes == 4096
        assert memory.limit_bytes == 9223372036854771712
        assert memory.max_usage_bytes == 8192
        assert memory.fail_cnt == 0
        assert memory.oom_kill == 2
        assert memory.soft_limit_bytes == 1048576
        assert memory.swappiness == 60
        assert memory.use_hierarchy == 1
        assert memory.oom_kill_disable == 0
        assert memory.under_oom == 0
        assert memory.stat["total_cache"] == 30
        assert memory.stat["total_pgfault"] == 15

    def test_cpuacct_from_comount(self, cgroup_v1_root: Path) -> None:
        cgroup = Cgroup("app", cgroup_v1_root, CgroupVersion.V1)

        acct = cgroup.cpuacct_stat()
        assert acct is not None
        assert (acct.usage, acct.usage_user, acct.usage_sys) == (5000, 3000, 2000)
        assert cgroup.cpu_stat() is None

    def test_blkio_throttle(self, cgroup_v1_root: Path) -> None:
        blkio = Cgroup("app", cgroup_v1_root, CgroupVersion.V1).blkio_stat()

        assert blkio is not None
        assert blkio.devices == ()
        assert blkio.op_stats["throttle_io_service_bytes"] == (
            DeviceOpStat("8:0", {"read": 100, "write": 200, "sync": 300, "total": 300}),
        )
        assert blkio.op_stats["throttle_io_serviced"] == (
            DeviceOpStat("8:0", {"read": 1, "write": 2}),
        )

    def test_blkio_per_operation_files(self, cgroup_v1_root: Path) -> None:
        blkio = Cgroup("app", cgroup_v1_root, CgroupVersion.V1).blkio_stat()

        assert blkio is not None
        assert blkio.op_stats["io_service_bytes"] == (
            DeviceOpStat(
                "8:0",
                {
                    "read": 4096,
                    "write": 8192,
                    "sync": 0,
                    "async": 12288,
                    "discard": 0,
                    "total": 12288,
                },
            ),
            DeviceOpStat("8:16", {"read": 512, "total": 512}),
        )
        assert blkio.op_stats["io_serviced"][0].ops["total"] == 12
        assert blkio.op_stats["io_merged"][0].ops == {"read": 1, "write": 0, "total": 1}
        assert blkio.op_stats["io_queued"][0].ops["write"] == 2
        # Not present in the fixture
        assert "io_wait_time" not in blkio.op_stats
        assert blkio.device_values == {"sectors": {"8:0": 24, "8:16": 1}, "time": {"8:0": 17}}
        assert blkio.weight == 500

    def test_blkio_absent_without_files(self, tmp_path: Path) -> None:
        (tmp_path / "blkio" / "empty").mkdir(parents=True)
        assert Cgroup("empty", tmp_path, CgroupVersion.V1).blkio_stat() is None

    def test_exported_families(self, cgroup_v1_root: Path) -> None:
        """v1 memory and blkio values reach the exposition with device labels."""
        cgroup = Cgroup("app", cgroup_v1_root, CgroupVersion.V1)
        snapshot = CgroupSnapshot(
            name="app",
            path="app",
            processes=ProcessMetrics(),
            memory=cgroup.memory_stat(),
            blkio=cgroup.blkio_stat(),
        )

        families = {f.name: f for f in render_snapshots([snapshot], namespace="cg")}

        def value(family: str, **labels: str) -> float:
            for sample in families[family].samples:
                if sample.labels == {"cgroup": "app", **labels}:
                    return sample.value
            raise AssertionError(f"no sample {family} {labels}")

        assert value("cg_memory_stat_total_cache") == 30
        assert value("cg_memory_stat_total_pgfault") == 15
        assert value("cg_memory_swappiness") == 60
        assert value("cg_memory_oom_control_under_oom") == 0
        assert value("cg_blkio_io_service_bytes_read", device="8:16") == 512
        assert value("cg_blkio_io_serviced", device="8:0") == 12
        assert value("cg_blkio_io_merged_read", device="8:0") == 1
        assert value("cg_blkio_io_queued_write", device="8:0") == 2
        assert value("cg_blkio_throttle_io_service_bytes_write", device="8:0") == 200
        assert value("cg_blkio_throttle_io_serviced_read", device="8:0") == 1
        assert value("cg_blkio_sectors", device="8:16") == 1
        assert value("cg_blkio_time_milliseconds", device="8:0") == 17
        assert value("cg_blkio_weight") == 500
        assert "cg_blkio_io_stat_rbytes" not in families

    def test_cpuset_absent(self, cgroup_v1_root: Path) -> None:
        assert Cgroup("app", cgroup_v1_root, CgroupVersion.V1).cpuset_stat() is None

    def test_procs_union(self, cgroup_v1_root: Path) -> None:
        assert Cgroup("app", cgroup_v1_root, CgroupVersion.V1).procs() == [1, 2, 3]


class TestCgroupExplorer:
    """Tests for CgroupExplorer."""

    def test_v2_paths(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2("user.slice")
        add_cgroup_v2("system.slice/b.service")
        add_cgroup_v2("system.slice/a.service")

        explorer = CgroupExplorer(cgroup_v2_root)

        assert explorer.version == CgroupVersion.V2
        assert explorer.iter_paths() == [
            "system.slice",
            "system.slice/a.service",
            "system.slice/b.service",
            "user.slice",
        ]

    def test_v1_paths_deduplicated(self, cgroup_v1_root: Path) -> None:
        explorer = CgroupExplorer(cgroup_v1_root)

        assert explorer.version == CgroupVersion.V1
        assert explorer.iter_paths() == ["app"]

    def test_iter_cgroups(self, cgroup_v2_root: Path, add_cgroup_v2) -> None:
        add_cgroup_v2("a")
        cgroups = list(CgroupExplorer(cgroup_v2_root).iter_cgroups())

        assert [c.path for c in cgroups] == ["a"]
        assert cgroups[0].is_v2

    def test_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(CgroupFilesystemError):
            CgroupExplorer(tmp_path / "missing").iter_paths()


class TestCpuAcctFallback:
    def test_user_and_system_from_cpuacct_stat(self, tmp_path: Path) -> None:
        from cgroup_exporter.monitoring.units import system_clock_ticks

        d = tmp_path / "cpuacct" / "job"
        d.mkdir(parents=True)
        (d / "cpuacct.usage").write_text("9000\n")
        (d / "cpuacct.stat").write_text("user 10\nsystem 5\n")

        acct = Cgroup("job", tmp_path, CgroupVersion.V1).cpuacct_stat()

        ticks = system_clock_ticks()
        assert acct is not None
        assert acct.usage == 9000
        assert acct.usage_user == 10 * 1_000_000_000 // ticks
        assert acct.usage_sys == 5 * 1_000_000_000 // ticks

"""
测试内置采集插件

psutil 调用通过 monkeypatch 替换为固定值。
"""

from collections import namedtuple

import pytest

from munin_node.collectors import cpu, disk, memory, network, uptime
from munin_node.collectors import CpuUsageSampler, create_builtin_plugins
from munin_node.config import PluginsConfig
from munin_node.protocol import NodeProfile

from test_protocol import run_command

CpuTimes = namedtuple("CpuTimes", ["user", "system", "idle", "iowait"])
VirtualMemory = namedtuple("VirtualMemory", ["used", "available"])
DiskUsage = namedtuple("DiskUsage", ["total", "used", "free", "percent"])
NetIO = namedtuple("NetIO", ["bytes_sent", "bytes_recv"])


@pytest.mark.asyncio
async def test_cpu_first_sample_is_unknown(monkeypatch):
    """测试：CPU 首次采样返回 None，之后按差值计算"""
    samples = iter([CpuTimes(10, 10, 80, 0), CpuTimes(40, 20, 130, 10)])
    monkeypatch.setattr(cpu.psutil, "cpu_times", lambda: next(samples))

    sampler = CpuUsageSampler()
    assert await sampler.get_cpu_percent() is None
    # total 差值 100，idle+iowait 差值 60
    assert await sampler.get_cpu_percent() == 40.0


@pytest.mark.asyncio
async def test_cpu_no_elapsed_time(monkeypatch):
    monkeypatch.setattr(cpu.psutil, "cpu_times", lambda: CpuTimes(1, 1, 1, 0))
    sampler = CpuUsageSampler()
    await sampler.get_cpu_percent()
    assert await sampler.get_cpu_percent() == 0.0


@pytest.mark.asyncio
async def test_memory(monkeypatch):
    monkeypatch.setattr(memory.psutil, "virtual_memory", lambda: VirtualMemory(1024, 2048))
    assert await memory.get_memory_used() == 1024
    assert await memory.get_memory_available() == 2048


@pytest.mark.asyncio
async def test_disk_unreadable_mount_is_unknown(monkeypatch):
    """测试：无法读取的挂载点返回 None"""

    def fake_disk_usage(mount):
        if mount == "/":
            return DiskUsage(100, 42, 58, 42.0)
        raise FileNotFoundError(mount)

    monkeypatch.setattr(disk.psutil, "disk_usage", fake_disk_usage)

    assert await disk.get_disk_used_percent("/") == 42.0
    assert await disk.get_disk_used_percent("/missing") is None


@pytest.mark.parametrize(
    "mount, expected",
    [("/", "root"), ("/data", "_data"), ("/var/lib/docker", "_var_lib_docker"), ("C:", "C_")],
)
def test_disk_field_names(mount, expected):
    assert disk.field_name_for_mount(mount) == expected


@pytest.mark.asyncio
async def test_uptime(monkeypatch):
    monkeypatch.setattr(uptime.time, "time", lambda: 10 * 86400.0 + 43200)
    monkeypatch.setattr(uptime.psutil, "boot_time", lambda: 0.0)
    assert await uptime.get_uptime_days() == 10.5


@pytest.mark.asyncio
async def test_interface_counter(monkeypatch):
    monkeypatch.setattr(
        network.psutil, "net_io_counters", lambda pernic: {"eth0": NetIO(bytes_sent=300, bytes_recv=700)}
    )
    assert await network.get_interface_counter("eth0", "bytes_recv") == 700
    assert await network.get_interface_counter("eth0", "bytes_sent") == 300
    assert await network.get_interface_counter("wlan0", "bytes_sent") is None


def test_builtin_plugins_from_config():
    """测试：按配置启用内置插件"""
    provider = create_builtin_plugins(PluginsConfig(interface="eth0"))
    assert provider.names() == ["cpu", "memory", "df", "uptime", "if_traffic"]

    minimal = create_builtin_plugins(PluginsConfig(cpu=False, memory=False, uptime=False, disks=[]))
    assert len(minimal) == 0


@pytest.mark.asyncio
async def test_if_traffic_config_and_fetch(monkeypatch):
    """测试：流量插件 down 作为 up 的负向字段"""
    monkeypatch.setattr(
        network.psutil, "net_io_counters", lambda pernic: {"eth0": NetIO(bytes_sent=300, bytes_recv=700)}
    )
    profile = NodeProfile(
        hostname="h",
        version="1",
        plugins=create_builtin_plugins(
            PluginsConfig(cpu=False, memory=False, uptime=False, disks=[], interface="eth0")
        ),
    )

    config_lines = await run_command(profile, b"config if_traffic", True)
    assert config_lines[-5:] == [
        "down.label received",
        "down.graph no",
        "up.label bytes",
        "up.negative down",
        ".",
    ]
    assert "graph_title eth0 traffic" in config_lines

    assert await run_command(profile, b"fetch if_traffic", True) == [
        "down.value 700",
        "up.value 300",
        ".",
    ]


@pytest.mark.asyncio
async def test_df_plugin_fetch(monkeypatch):
    def fake_disk_usage(mount):
        if mount == "/":
            return DiskUsage(100, 25, 75, 25.0)
        raise PermissionError(mount)

    monkeypatch.setattr(disk.psutil, "disk_usage", fake_disk_usage)
    profile = NodeProfile(
        hostname="h",
        version="1",
        plugins=create_builtin_plugins(
            PluginsConfig(cpu=False, memory=False, uptime=False, disks=["/", "/secret"])
        ),
    )

    assert await run_command(profile, b"fetch df", True) == [
        "root.value 25",
        "_secret.value U",
        ".",
    ]
    config_lines = await run_command(profile, b"config df", True)
    assert "root.label /" in config_lines
    assert "root.warning :92" in config_lines
    assert "root.critical :98" in config_lines

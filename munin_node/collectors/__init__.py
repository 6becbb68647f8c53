"""
内置采集插件

基于 psutil 的 CPU、内存、磁盘、运行时间、网卡流量插件
"""

from typing import List

from munin_node.config import PluginsConfig
from munin_node.plugins import Plugin, PluginProvider

from .cpu import CpuUsageSampler, create_cpu_plugin
from .disk import create_disk_plugin
from .memory import create_memory_plugin
from .network import create_if_traffic_plugin
from .uptime import create_uptime_plugin


def create_builtin_plugins(config: PluginsConfig) -> PluginProvider:
    """按配置创建启用的内置插件"""
    plugins: List[Plugin] = []

    if config.cpu:
        plugins.append(create_cpu_plugin())
    if config.memory:
        plugins.append(create_memory_plugin())
    if config.disks:
        plugins.append(create_disk_plugin(config.disks))
    if config.uptime:
        plugins.append(create_uptime_plugin())
    if config.interface:
        plugins.append(create_if_traffic_plugin(config.interface))

    return PluginProvider(plugins)


__all__ = [
    "CpuUsageSampler",
    "create_builtin_plugins",
    "create_cpu_plugin",
    "create_disk_plugin",
    "create_if_traffic_plugin",
    "create_memory_plugin",
    "create_uptime_plugin",
]

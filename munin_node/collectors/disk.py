"""
磁盘采集器

采集指定挂载点的磁盘使用率
"""

import logging
import re
from typing import List, Optional

import psutil

from munin_node.plugins import (
    GraphAttributesBuilder,
    NormalValueRange,
    Plugin,
    PluginField,
    WellKnownCategory,
    create_field,
    create_plugin,
)

logger = logging.getLogger(__name__)

_RE_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def field_name_for_mount(mount: str) -> str:
    """挂载点对应的字段名（"/" -> "root"，"/data" -> "_data"）"""
    if mount == "/":
        return "root"
    name = _RE_INVALID_NAME_CHARS.sub("_", mount)
    if name[0].isdigit():
        name = "_" + name
    return name


async def get_disk_used_percent(mount: str) -> Optional[float]:
    """
    采集磁盘使用率

    Args:
        mount: 挂载点（如 "/"）

    Returns:
        0~100 的浮点数，无法读取时返回 None
    """
    try:
        usage = psutil.disk_usage(mount)
    except OSError as e:
        logger.debug(f"disk usage unavailable for {mount}: {e}")
        return None
    return round(usage.percent, 2)


def _create_disk_field(mount: str) -> PluginField:
    async def fetch() -> Optional[float]:
        return await get_disk_used_percent(mount)

    return create_field(
        mount,
        fetch,
        name=field_name_for_mount(mount),
        warning=NormalValueRange.max_only(92),
        critical=NormalValueRange.max_only(98),
    )


def create_disk_plugin(mount_points: List[str]) -> Plugin:
    graph = (
        GraphAttributesBuilder("Disk usage in percent")
        .with_category(WellKnownCategory.DISK)
        .with_vertical_label("%")
        .with_graph_limit(0, 100)
        .disable_unit_scaling()
        .build()
    )

    return create_plugin("df", graph, [_create_disk_field(mount) for mount in mount_points])

"""
运行时间采集器
"""

import time
from typing import Optional

import psutil

from munin_node.plugins import (
    GraphAttributesBuilder,
    GraphStyle,
    Plugin,
    WellKnownCategory,
    create_field,
    create_plugin,
)

SECONDS_PER_DAY = 86400


async def get_uptime_days() -> Optional[float]:
    """系统启动以来的天数"""
    seconds = time.time() - psutil.boot_time()
    return round(max(seconds, 0.0) / SECONDS_PER_DAY, 3)


def create_uptime_plugin() -> Plugin:
    graph = (
        GraphAttributesBuilder("Uptime")
        .with_category(WellKnownCategory.SYSTEM)
        .with_vertical_label("uptime in days")
        .with_graph_lower_limit(0)
        .disable_unit_scaling()
        .build()
    )

    return create_plugin(
        "uptime",
        graph,
        [create_field("uptime", get_uptime_days, graph_style=GraphStyle.AREA)],
    )

"""
内存采集器
"""

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


async def get_memory_used() -> Optional[int]:
    """已用内存（字节）"""
    return psutil.virtual_memory().used


async def get_memory_available() -> Optional[int]:
    """可用内存（字节）"""
    return psutil.virtual_memory().available


def create_memory_plugin() -> Plugin:
    graph = (
        GraphAttributesBuilder("Memory usage")
        .with_category(WellKnownCategory.MEMORY)
        .with_vertical_label("Bytes")
        .with_graph_lower_limit(0)
        .with_graph_binary_base()
        .build()
    )

    return create_plugin(
        "memory",
        graph,
        [
            create_field("used", get_memory_used, graph_style=GraphStyle.AREA),
            create_field("available", get_memory_available, graph_style=GraphStyle.STACK),
        ],
    )

"""
网卡流量采集器

收发字节计数，"up" 以 "down" 作为负向字段绘制
"""

from typing import Optional

import psutil

from munin_node.plugins import (
    GraphAttributesBuilder,
    Plugin,
    WellKnownCategory,
    create_field,
    create_plugin,
)


async def get_interface_counter(interface: str, attribute: str) -> Optional[int]:
    """
    读取网卡计数

    Args:
        interface: 网卡名（如 "eth0"）
        attribute: "bytes_recv" 或 "bytes_sent"

    Returns:
        计数值，网卡不存在时返回 None
    """
    counters = psutil.net_io_counters(pernic=True).get(interface)
    if counters is None:
        return None
    return getattr(counters, attribute)


def create_if_traffic_plugin(interface: str) -> Plugin:
    graph = (
        GraphAttributesBuilder(f"{interface} traffic")
        .with_category(WellKnownCategory.NETWORK)
        .with_vertical_label("bytes in (-) / out (+)")
        .with_graph_decimal_base()
        .build()
    )

    async def fetch_received() -> Optional[int]:
        return await get_interface_counter(interface, "bytes_recv")

    async def fetch_sent() -> Optional[int]:
        return await get_interface_counter(interface, "bytes_sent")

    return create_plugin(
        "if_traffic",
        graph,
        [
            create_field("received", fetch_received, name="down"),
            create_field("bytes", fetch_sent, name="up", negative_field_name="down"),
        ],
    )

"""
CPU 采集器

通过两次采样 psutil.cpu_times() 计算 CPU 使用率
"""

from typing import Optional, Tuple

import psutil

from munin_node.plugins import (
    GraphAttributesBuilder,
    GraphStyle,
    NormalValueRange,
    Plugin,
    WellKnownCategory,
    create_field,
    create_plugin,
)


class CpuUsageSampler:
    """保存上一次采样，计算两次采样之间的使用率"""

    def __init__(self):
        self._last: Optional[Tuple[float, float]] = None

    async def get_cpu_percent(self) -> Optional[float]:
        """
        采集 CPU 使用率

        Returns:
            0~100 的浮点数，首次调用返回 None（需要两次采样）
        """
        times = psutil.cpu_times()
        total = sum(times)
        idle = times.idle + getattr(times, "iowait", 0.0)

        last = self._last
        self._last = (total, idle)
        if last is None:
            return None

        total_delta = total - last[0]
        idle_delta = idle - last[1]
        if total_delta <= 0:
            return 0.0

        return round((total_delta - idle_delta) / total_delta * 100.0, 2)


def create_cpu_plugin(sampler: Optional[CpuUsageSampler] = None) -> Plugin:
    sampler = sampler or CpuUsageSampler()

    graph = (
        GraphAttributesBuilder("CPU usage")
        .with_category(WellKnownCategory.CPU)
        .with_vertical_label("%")
        .with_graph_limit(0, 100)
        .with_graph_rigid()
        .disable_unit_scaling()
        .build()
    )

    return create_plugin(
        "cpu",
        graph,
        [
            create_field(
                "used",
                sampler.get_cpu_percent,
                graph_style=GraphStyle.AREA,
                warning=NormalValueRange.max_only(90),
            ),
        ],
    )

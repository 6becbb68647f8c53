"""
测试公共配置与 fixture
"""

import ipaddress
import sys
from pathlib import Path

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from munin_node.access_rules import Endpoint
from munin_node.node import MuninNode
from munin_node.plugins import (
    GraphAttributes,
    GraphStyle,
    NormalValueRange,
    PluginProvider,
    create_field,
    create_plugin,
)
from munin_node.protocol import NodeProfile
from munin_node.transport.memory import PipeListener

HOSTNAME = "munin-node.test"
VERSION = "1.2.3"

LOOPBACK_REMOTE = Endpoint.parse("127.0.0.1", 50000)
EXTERNAL_REMOTE = Endpoint.parse("192.0.2.1", 50000)


def make_graph_attributes(title: str = "test graph") -> GraphAttributes:
    return GraphAttributes.create(
        title=title,
        category="test",
        vertical_label="value",
        scale=False,
        arguments="--base 1000",
    )


@pytest.fixture
def sample_plugins() -> PluginProvider:
    """两个插件：普通字段插件 + 带 negative 字段的流量插件"""
    temperature = create_plugin(
        "temperature",
        make_graph_attributes("Temperature"),
        [
            create_field("room", lambda: 21.5, graph_style=GraphStyle.AREA),
            create_field(
                "cpu",
                lambda: 48,
                graph_style=GraphStyle.LINE_WIDTH_2,
                warning=NormalValueRange.range(0, 60),
                critical=NormalValueRange.max_only(80),
            ),
            create_field("outdoor", lambda: None),
        ],
    )
    traffic = create_plugin(
        "traffic",
        make_graph_attributes("Traffic"),
        [
            create_field("bytes", lambda: 200, name="up", negative_field_name="down"),
            create_field("received", lambda: 100, name="down"),
        ],
    )
    return PluginProvider([temperature, traffic])


@pytest.fixture
def profile(sample_plugins: PluginProvider) -> NodeProfile:
    return NodeProfile(hostname=HOSTNAME, version=VERSION, plugins=sample_plugins)


@pytest.fixture
def pipe_listener() -> PipeListener:
    return PipeListener()


@pytest.fixture
def node_factory(profile: NodeProfile, pipe_listener: PipeListener):
    """创建使用内存管道监听器的节点"""

    def _create(access_rule=None, node_profile: NodeProfile = None) -> MuninNode:
        return MuninNode(
            node_profile or profile,
            address=ipaddress.ip_address("127.0.0.1"),
            port=4949,
            access_rule=access_rule,
            listener_factory=lambda address, port: pipe_listener,
        )

    return _create

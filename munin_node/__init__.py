"""
Munin Node

实现 munin 节点协议的监控代理：对外暴露插件，响应 master 的
list / config / fetch 等命令。
"""

__version__ = "1.0.0"

from munin_node.access_rules import (  # noqa: E402
    LOOPBACK_ONLY,
    AccessRule,
    AddressListAccessRule,
    Endpoint,
    LoopbackOnlyAccessRule,
)
from munin_node.node import MuninNode, NodeBase, create_node  # noqa: E402
from munin_node.protocol import NodeProfile, ProtocolHandler  # noqa: E402

__all__ = [
    "__version__",
    "LOOPBACK_ONLY",
    "AccessRule",
    "AddressListAccessRule",
    "Endpoint",
    "LoopbackOnlyAccessRule",
    "MuninNode",
    "NodeBase",
    "NodeProfile",
    "ProtocolHandler",
    "create_node",
]

"""
插件数据模型

包含字段、图表属性、插件与插件集合
"""

from .field import (
    UNKNOWN_VALUE,
    GraphStyle,
    NormalValueRange,
    PluginField,
    ValueFromFuncField,
    create_field,
    format_value,
)
from .graph import GraphAttributes, GraphAttributesBuilder, WellKnownCategory
from .plugin import (
    AggregatePluginProvider,
    Plugin,
    PluginProvider,
    SessionCallback,
    create_plugin,
)

__all__ = [
    "UNKNOWN_VALUE",
    "GraphStyle",
    "NormalValueRange",
    "PluginField",
    "ValueFromFuncField",
    "create_field",
    "format_value",
    "GraphAttributes",
    "GraphAttributesBuilder",
    "WellKnownCategory",
    "AggregatePluginProvider",
    "Plugin",
    "PluginProvider",
    "SessionCallback",
    "create_plugin",
]

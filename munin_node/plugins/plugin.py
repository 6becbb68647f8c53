"""
插件（Plugin）与插件集合

插件 = 名称 + 图表属性 + 有序字段列表 + 可选的会话回调。
PluginProvider 维护节点对外暴露的插件集合，名称唯一，按名称精确匹配查找。
"""

from typing import Iterable, Iterator, List, Optional, Protocol, Sequence, runtime_checkable

from .field import PluginField
from .graph import GraphAttributes


@runtime_checkable
class SessionCallback(Protocol):
    """会话生命周期回调，每个被接受的连接各调用一次"""

    async def report_session_started(self, session_id: str) -> None:
        ...

    async def report_session_closed(self, session_id: str) -> None:
        ...


class Plugin:
    """
    插件

    Args:
        name: 插件名（list/fetch/config 使用的标识）
        graph_attributes: 图表属性
        fields: 字段列表，顺序即输出顺序
        session_callback: 可选的会话回调
    """

    def __init__(
        self,
        name: str,
        graph_attributes: GraphAttributes,
        fields: Iterable[PluginField],
        session_callback: Optional[SessionCallback] = None,
    ):
        if not name:
            raise ValueError("plugin name must be a non-empty string")
        if graph_attributes is None:
            raise TypeError("graph_attributes is required")

        fields = tuple(fields)
        seen = set()
        for field in fields:
            if field.name in seen:
                raise ValueError(f"duplicate field name '{field.name}' in plugin '{name}'")
            seen.add(field.name)

        self._name = name
        self._graph_attributes = graph_attributes
        self._fields = fields
        self._session_callback = session_callback

    @property
    def name(self) -> str:
        return self._name

    @property
    def graph_attributes(self) -> GraphAttributes:
        return self._graph_attributes

    @property
    def fields(self) -> Sequence[PluginField]:
        return self._fields

    @property
    def session_callback(self) -> Optional[SessionCallback]:
        return self._session_callback

    def find_field(self, name: str) -> Optional[PluginField]:
        for field in self._fields:
            if field.name == name:
                return field
        return None

    def is_negative_field(self, field: PluginField) -> bool:
        """该字段是否被其他字段的 negative 属性引用"""
        return any(f.negative_field_name == field.name for f in self._fields)

    def __repr__(self) -> str:
        return f"<Plugin name={self._name!r} fields={[f.name for f in self._fields]!r}>"


def create_plugin(
    name: str,
    graph_attributes: GraphAttributes,
    fields: Iterable[PluginField],
    session_callback: Optional[SessionCallback] = None,
) -> Plugin:
    """创建插件"""
    return Plugin(name, graph_attributes, fields, session_callback=session_callback)


class PluginProvider:
    """
    插件集合

    保持插入顺序，插件名唯一（区分大小写）。
    """

    def __init__(
        self,
        plugins: Iterable[Plugin] = (),
        session_callback: Optional[SessionCallback] = None,
    ):
        self._plugins: List[Plugin] = []
        self._session_callback = session_callback
        for plugin in plugins:
            self._add(plugin)

    def _add(self, plugin: Plugin):
        if self.find(plugin.name) is not None:
            raise ValueError(f"duplicate plugin name '{plugin.name}'")
        self._plugins.append(plugin)

    @property
    def plugins(self) -> Sequence[Plugin]:
        return tuple(self._plugins)

    @property
    def session_callback(self) -> Optional[SessionCallback]:
        return self._session_callback

    def find(self, name: str) -> Optional[Plugin]:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    def names(self) -> List[str]:
        return [plugin.name for plugin in self._plugins]

    async def report_session_started(self, session_id: str):
        """通知提供者及其插件：会话开始"""
        for callback in self._session_callbacks():
            await callback.report_session_started(session_id)

    async def report_session_closed(self, session_id: str):
        """通知提供者及其插件：会话结束"""
        for callback in self._session_callbacks():
            await callback.report_session_closed(session_id)

    def _session_callbacks(self) -> Iterator[SessionCallback]:
        if self._session_callback is not None:
            yield self._session_callback
        for plugin in self._plugins:
            if plugin.session_callback is not None:
                yield plugin.session_callback

    def __iter__(self) -> Iterator[Plugin]:
        return iter(tuple(self._plugins))

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find(name) is not None


class AggregatePluginProvider(PluginProvider):
    """合并多个插件提供者，会话回调分发给每个提供者"""

    def __init__(self, providers: Iterable[PluginProvider]):
        self._providers = tuple(providers)
        super().__init__(
            plugin for provider in self._providers for plugin in provider.plugins
        )

    @property
    def providers(self) -> Sequence[PluginProvider]:
        return self._providers

    async def report_session_started(self, session_id: str):
        for provider in self._providers:
            await provider.report_session_started(session_id)

    async def report_session_closed(self, session_id: str):
        for provider in self._providers:
            await provider.report_session_closed(session_id)

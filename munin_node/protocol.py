"""
协议引擎

把一行命令解析为 fetch / nodes / list / config / quit / cap / version 之一，
查询 NodeProfile 中的插件并通过 Client 写回响应。
除了每次调用内使用的响应缓冲区外，命令之间不保存任何状态。
"""

import asyncio
import codecs
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from munin_node.plugins import NormalValueRange, Plugin, PluginField, PluginProvider
from munin_node.transport.base import Client

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "ascii"

UNKNOWN_COMMAND_RESPONSE = "# Unknown command. Try cap, list, nodes, config, fetch, version or quit"
UNKNOWN_SERVICE_RESPONSE = ("# Unknown service", ".")

_SP = b" "
_QUIT_SHORT = b"."


@dataclass(frozen=True)
class NodeProfile:
    """
    节点信息

    Attributes:
        hostname: 节点主机名（banner、nodes、version 响应中使用）
        version: 版本字符串
        plugins: 插件集合
        encoding: 所有文本 I/O 使用的字符编码
    """

    hostname: str
    version: str
    plugins: PluginProvider
    encoding: str = DEFAULT_ENCODING

    def __post_init__(self):
        if not self.hostname:
            raise ValueError("hostname must be a non-empty string")
        if self.plugins is None:
            raise TypeError("plugins is required")
        # 未知编码在构造时报错
        codecs.lookup(self.encoding)


def expect_command(line: bytes, command: bytes) -> Tuple[bool, Optional[bytes]]:
    """
    判断命令行是否为指定命令

    命令后只能是行尾，或一个空格加参数。

    Returns:
        (是否匹配, 参数部分；没有参数时为 None)
    """
    if not line.startswith(command):
        return False, None

    rest = line[len(command):]
    if not rest:
        return True, None
    if rest.startswith(_SP):
        return True, rest[1:]
    return False, None


class ProtocolHandler:
    """
    协议处理器

    Args:
        profile: 节点信息
    """

    def __init__(self, profile: NodeProfile):
        if profile is None:
            raise TypeError("profile is required")

        self._profile = profile
        self._banner = f"# munin node at {profile.hostname}"
        self._version_information = f"munins node on {profile.hostname} version: {profile.version}"
        self._response_buffer = bytearray()

    @property
    def profile(self) -> NodeProfile:
        return self._profile

    async def handle_transaction_start(self, client: Client):
        """连接建立：发送 banner"""
        await self._send_lines(client, [self._banner])

    async def handle_transaction_end(self, client: Client):
        """连接结束：目前无操作"""

    async def handle_command(self, client: Client, line: bytes):
        """
        处理一行命令（不含行尾）

        Args:
            client: 连接
            line: 命令行字节串
        """
        if client is None:
            raise TypeError("client is required")

        line = bytes(line)

        matched, arguments = expect_command(line, b"fetch")
        if matched:
            await self.handle_fetch(client, arguments)
            return

        matched, _ = expect_command(line, b"nodes")
        if matched:
            await self.handle_nodes(client)
            return

        matched, arguments = expect_command(line, b"list")
        if matched:
            await self.handle_list(client, arguments)
            return

        matched, arguments = expect_command(line, b"config")
        if matched:
            await self.handle_config(client, arguments)
            return

        if expect_command(line, b"quit")[0] or line == _QUIT_SHORT:
            await self.handle_quit(client)
            return

        matched, arguments = expect_command(line, b"cap")
        if matched:
            await self.handle_cap(client, arguments)
            return

        matched, _ = expect_command(line, b"version")
        if matched:
            await self.handle_version(client)
            return

        await self._send_lines(client, [UNKNOWN_COMMAND_RESPONSE])

    async def handle_quit(self, client: Client):
        await client.disconnect()

    async def handle_nodes(self, client: Client):
        await self._send_lines(client, [self._profile.hostname, "."])

    async def handle_version(self, client: Client):
        await self._send_lines(client, [self._version_information])

    async def handle_cap(self, client: Client, arguments: Optional[bytes]):
        # 暂不声明任何能力（multigraph、dirtyconfig），参数忽略
        await self._send_lines(client, ["cap"])

    async def handle_list(self, client: Client, arguments: Optional[bytes]):
        # 单节点：忽略 [node] 参数
        await self._send_lines(client, [" ".join(self._profile.plugins.names())])

    async def handle_fetch(self, client: Client, arguments: Optional[bytes]):
        plugin = self._find_plugin(arguments)
        if plugin is None:
            await self._send_lines(client, UNKNOWN_SERVICE_RESPONSE)
            return

        lines = []
        for field in plugin.fields:
            value = await self._fetch_formatted_value(plugin, field)
            lines.append(f"{field.name}.value {value}")
        lines.append(".")

        await self._send_lines(client, lines)

    async def handle_config(self, client: Client, arguments: Optional[bytes]):
        plugin = self._find_plugin(arguments)
        if plugin is None:
            await self._send_lines(client, UNKNOWN_SERVICE_RESPONSE)
            return

        lines = list(plugin.graph_attributes.enumerate_attributes())
        for field in order_fields_for_config(plugin):
            lines.extend(config_lines_for_field(plugin, field))
        lines.append(".")

        await self._send_lines(client, lines)

    def _find_plugin(self, arguments: Optional[bytes]) -> Optional[Plugin]:
        if not arguments:
            return None
        try:
            name = arguments.decode(self._profile.encoding)
        except UnicodeDecodeError:
            return None
        return self._profile.plugins.find(name)

    async def _fetch_formatted_value(self, plugin: Plugin, field: PluginField) -> str:
        try:
            return await field.get_formatted_value()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"fetch failed for {plugin.name}.{field.name}: {e}")
            return "U"

    async def _send_lines(self, client: Client, lines: Iterable[str]):
        """把多行响应编码到缓冲区后一次写出"""
        buffer = self._response_buffer
        try:
            for line in lines:
                buffer.extend(line.encode(self._profile.encoding, errors="replace"))
                buffer.extend(b"\n")
            await client.send(bytes(buffer))
        finally:
            buffer.clear()


def order_fields_for_config(plugin: Plugin) -> List[PluginField]:
    """
    config 输出的字段顺序

    被其他字段引用为 negative 的字段排在最前，两组内部各自保持原有顺序。
    """
    negatives = [f for f in plugin.fields if plugin.is_negative_field(f)]
    others = [f for f in plugin.fields if not plugin.is_negative_field(f)]
    return negatives + others


def _range_line(field: PluginField, attribute: str, value_range: NormalValueRange) -> Optional[str]:
    text = value_range.format()
    if text is None:
        return None
    return f"{field.name}.{attribute} {text}"


def config_lines_for_field(plugin: Plugin, field: PluginField) -> List[str]:
    """单个字段的 config 响应行"""
    lines = [f"{field.name}.label {field.label}"]

    draw = field.graph_style.draw
    if draw is not None:
        lines.append(f"{field.name}.draw {draw}")

    for attribute, value_range in (("warning", field.warning), ("critical", field.critical)):
        line = _range_line(field, attribute, value_range)
        if line is not None:
            lines.append(line)

    if field.negative_field_name:
        # 引用不存在的字段时省略
        negative = plugin.find_field(field.negative_field_name)
        if negative is not None:
            lines.append(f"{field.name}.negative {negative.name}")

    if plugin.is_negative_field(field):
        lines.append(f"{field.name}.graph no")

    return lines

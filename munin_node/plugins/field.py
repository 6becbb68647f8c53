"""
字段（Field）模型

一个字段对应插件中的一条时间序列：名称、标签、绘图样式、告警阈值、
负向字段引用，以及取值操作。
"""

import inspect
import math
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

UNKNOWN_VALUE = "U"

# 标签: 除 # 和 \ 之外的任意字符
_RE_VALID_LABEL = re.compile(r"^[^#\\]+$")
# 字段名: [a-zA-Z0-9_]，首字符必须是 [a-zA-Z_]
_RE_VALID_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_RE_INVALID_NAME_PREFIX = re.compile(r"^[0-9_]+")
_RE_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")


class GraphStyle(Enum):
    """字段绘图样式，值为 `.draw` 属性的取值（default 不输出）"""

    DEFAULT = None
    AREA = "AREA"
    STACK = "STACK"
    AREA_STACK = "AREASTACK"
    LINE = "LINE"
    LINE_WIDTH_1 = "LINE1"
    LINE_WIDTH_2 = "LINE2"
    LINE_WIDTH_3 = "LINE3"
    LINE_STACK = "LINESTACK"
    LINE_STACK_WIDTH_1 = "LINE1STACK"
    LINE_STACK_WIDTH_2 = "LINE2STACK"
    LINE_STACK_WIDTH_3 = "LINE3STACK"

    @property
    def draw(self) -> Optional[str]:
        return self.value


def format_value(value: Any) -> str:
    """
    将数值格式化为协议中的取值字符串

    与区域设置无关，使用最短可往返表示（1.0 -> "1"）。
    None、NaN、无穷大均返回 "U"。
    """
    if value is None or isinstance(value, bool):
        return UNKNOWN_VALUE
    if isinstance(value, int):
        return str(value)

    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return UNKNOWN_VALUE

    text = repr(value)
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _validate_bound(value: float, name: str) -> float:
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"{name}: the value must be a finite number")
    return value


class NormalValueRange:
    """
    正常值范围（用于 warning / critical 阈值）

    输出格式: min:max、min: 或 :max
    """

    __slots__ = ("_min", "_max")

    def __init__(self, min: Optional[float] = None, max: Optional[float] = None):
        self._min = min
        self._max = max

    @classmethod
    def none(cls) -> "NormalValueRange":
        return cls()

    @classmethod
    def min_only(cls, min: float) -> "NormalValueRange":
        return cls(min=_validate_bound(min, "min"))

    @classmethod
    def max_only(cls, max: float) -> "NormalValueRange":
        return cls(max=_validate_bound(max, "max"))

    @classmethod
    def range(cls, min: float, max: float) -> "NormalValueRange":
        min = _validate_bound(min, "min")
        max = _validate_bound(max, "max")
        if min == max:
            raise ValueError("the values of 'min' and 'max' are equal and do not compose a range")
        if min > max:
            raise ValueError("the value of 'min' is greater than 'max' and do not compose a range")
        return cls(min=min, max=max)

    @property
    def min(self) -> Optional[float]:
        return self._min

    @property
    def max(self) -> Optional[float]:
        return self._max

    @property
    def has_value(self) -> bool:
        return self._min is not None or self._max is not None

    def format(self) -> Optional[str]:
        if not self.has_value:
            return None
        lower = format_value(self._min) if self._min is not None else ""
        upper = format_value(self._max) if self._max is not None else ""
        return f"{lower}:{upper}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, NormalValueRange):
            return NotImplemented
        return (self._min, self._max) == (other._min, other._max)

    def __hash__(self) -> int:
        return hash((self._min, self._max))

    def __repr__(self) -> str:
        return f"NormalValueRange(min={self._min!r}, max={self._max!r})"


def default_name_from_label(label: str) -> str:
    """根据标签生成默认字段名：去掉开头的数字/下划线，再删除非法字符"""
    if not label:
        raise ValueError("label must be a non-empty string")
    return _RE_INVALID_NAME_CHARS.sub("", _RE_INVALID_NAME_PREFIX.sub("", label))


class PluginField(ABC):
    """字段基类，子类实现 fetch_value()"""

    def __init__(
        self,
        label: str,
        name: Optional[str] = None,
        graph_style: GraphStyle = GraphStyle.DEFAULT,
        warning: Optional[NormalValueRange] = None,
        critical: Optional[NormalValueRange] = None,
        negative_field_name: Optional[str] = None,
    ):
        if not label:
            raise ValueError("label must be a non-empty string")
        if not _RE_VALID_LABEL.match(label):
            raise ValueError(
                f"'{label}' is invalid for field label, it must match '{_RE_VALID_LABEL.pattern}'"
            )

        if name is None:
            name = default_name_from_label(label)
        if not name:
            raise ValueError("name must be a non-empty string")
        if not _RE_VALID_NAME.match(name):
            raise ValueError(
                f"'{name}' is invalid for field name, it must match '{_RE_VALID_NAME.pattern}'"
            )

        self._label = label
        self._name = name
        self._graph_style = graph_style
        self._warning = warning or NormalValueRange.none()
        self._critical = critical or NormalValueRange.none()
        self._negative_field_name = negative_field_name or None

    @property
    def name(self) -> str:
        return self._name

    @property
    def label(self) -> str:
        return self._label

    @property
    def graph_style(self) -> GraphStyle:
        return self._graph_style

    @property
    def warning(self) -> NormalValueRange:
        return self._warning

    @property
    def critical(self) -> NormalValueRange:
        return self._critical

    @property
    def negative_field_name(self) -> Optional[str]:
        return self._negative_field_name

    @abstractmethod
    async def fetch_value(self) -> Optional[float]:
        """读取当前值，无法获取时返回 None"""

    async def get_formatted_value(self) -> str:
        """读取并格式化当前值"""
        return format_value(await self.fetch_value())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self._name!r}>"


FetchValue = Callable[[], Union[Optional[float], Awaitable[Optional[float]]]]


class ValueFromFuncField(PluginField):
    """通过回调函数取值的字段，回调可以是普通函数或协程函数"""

    def __init__(self, label: str, fetch: FetchValue, **kwargs):
        super().__init__(label, **kwargs)
        if not callable(fetch):
            raise TypeError("fetch must be callable")
        self._fetch = fetch

    async def fetch_value(self) -> Optional[float]:
        value = self._fetch()
        if inspect.isawaitable(value):
            value = await value
        return value


def create_field(
    label: str,
    fetch: FetchValue,
    name: Optional[str] = None,
    graph_style: GraphStyle = GraphStyle.DEFAULT,
    warning: Optional[NormalValueRange] = None,
    critical: Optional[NormalValueRange] = None,
    negative_field_name: Optional[str] = None,
) -> PluginField:
    """
    创建由回调函数取值的字段

    Args:
        label: 字段标签
        fetch: 取值回调，返回数值或 None（未知）
        name: 字段名，省略时由标签生成
        graph_style: 绘图样式
        warning: 告警范围
        critical: 严重告警范围
        negative_field_name: 作为本字段负向值绘制的另一个字段名

    Returns:
        PluginField 实例
    """
    return ValueFromFuncField(
        label,
        fetch,
        name=name,
        graph_style=graph_style,
        warning=warning,
        critical=critical,
        negative_field_name=negative_field_name,
    )

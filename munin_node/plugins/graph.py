"""
图表属性（Graph Attributes）

插件的全局绘图属性，一经构建不可修改，按固定顺序输出 `<key> <value>` 行。
"""

import re
import unicodedata
from datetime import timedelta
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple, Union

_RE_CATEGORY = re.compile(r"^[a-z0-9\-.]+\Z")

UpdateRate = Union[int, float, timedelta]


class WellKnownCategory(Enum):
    """munin 常用的图表分类"""

    ONE_SEC = "1sec"
    ANTIVIRUS = "antivirus"
    APPLICATION_SERVER = "appserver"
    AUTHENTICATION_SERVER = "auth"
    BACKUP = "backup"
    MESSAGING_SERVER = "chat"
    CLOUD = "cloud"
    CONTENT_MANAGEMENT_SYSTEM = "cms"
    CPU = "cpu"
    DATABASE_SERVER = "db"
    DEVELOPMENT_TOOL = "devel"
    DISK = "disk"
    DNS = "dns"
    FILE_TRANSFER = "filetransfer"
    FORUM = "forum"
    FILE_SYSTEM = "fs"
    NETWORK_FILTERING = "fw"
    GAME_SERVER = "games"
    HIGH_THROUGHPUT_COMPUTING = "htc"
    LOAD_BALANCER = "loadbalancer"
    MAIL = "mail"
    MAILING_LIST = "mailinglist"
    MEMORY = "memory"
    MUNIN = "munin"
    NETWORK = "network"
    OTHER = "other"
    PRINTING = "printing"
    PROCESS = "processes"
    RADIO = "radio"
    STORAGE_AREA_NETWORK = "san"
    SEARCH = "search"
    SECURITY = "security"
    SENSOR = "sensors"
    SPAM_FILTER = "spamfilter"
    STREAMING = "streaming"
    SYSTEM = "system"
    TIME_SYNCHRONIZATION = "time"
    VIDEO = "tv"
    VIRTUALIZATION = "virtualization"
    VOIP = "voip"
    WEB_SERVER = "webserver"
    WIKI = "wiki"
    WIRELESS = "wireless"


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def _update_rate_seconds(update_rate: UpdateRate) -> int:
    if isinstance(update_rate, timedelta):
        seconds = update_rate.total_seconds()
    else:
        seconds = float(update_rate)
    if seconds < 1.0:
        raise ValueError(f"update_rate must be at least 1 second: {update_rate!r}")
    return int(seconds)


def _require_text(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value


def _require_positive(value: int, name: str) -> int:
    if value <= 0:
        raise ValueError(f"{name} must be greater than 0: {value}")
    return value


def _category_value(category: Union[str, WellKnownCategory]) -> str:
    if isinstance(category, WellKnownCategory):
        return category.value
    _require_text(category, "category")
    if not _RE_CATEGORY.match(category):
        raise ValueError(
            f"'{category}' is invalid for graph_category, it must match '{_RE_CATEGORY.pattern}'"
        )
    return category


class GraphAttributes:
    """不可变的图表属性集合"""

    __slots__ = ("_lines",)

    def __init__(self, lines: Iterable[str]):
        self._lines: Tuple[str, ...] = tuple(lines)

    @classmethod
    def create(
        cls,
        title: str,
        category: Union[str, WellKnownCategory],
        vertical_label: str,
        scale: bool,
        arguments: str,
        update_rate: Optional[UpdateRate] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        order: Optional[Iterable[str]] = None,
        total: Optional[str] = None,
    ) -> "GraphAttributes":
        """
        以固定字段构建图表属性

        输出顺序: graph_title, graph_category, graph_args, graph_scale,
        graph_vlabel, update_rate, graph_width, graph_height, graph_order, graph_total
        """
        _require_text(title, "title")
        _require_text(arguments, "arguments")
        _require_text(vertical_label, "vertical_label")

        lines = [
            f"graph_title {title}",
            f"graph_category {_category_value(category)}",
            f"graph_args {arguments}",
            f"graph_scale {_yes_no(scale)}",
            f"graph_vlabel {vertical_label}",
        ]

        if update_rate is not None:
            lines.append(f"update_rate {_update_rate_seconds(update_rate)}")
        if width is not None:
            lines.append(f"graph_width {_require_positive(width, 'width')}")
        if height is not None:
            lines.append(f"graph_height {_require_positive(height, 'height')}")
        if order:
            lines.append(f"graph_order {' '.join(order)}")
        if total:
            lines.append(f"graph_total {total}")

        return cls(lines)

    def enumerate_attributes(self) -> Iterator[str]:
        return iter(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __eq__(self, other) -> bool:
        if not isinstance(other, GraphAttributes):
            return NotImplemented
        return self._lines == other._lines

    def __hash__(self) -> int:
        return hash(self._lines)

    def __repr__(self) -> str:
        return f"GraphAttributes({list(self._lines)!r})"


class GraphAttributesBuilder:
    """
    图表属性构建器

    链式调用设置各属性，最后 build() 生成不可变的 GraphAttributes。
    参考: https://guide.munin-monitoring.org/en/latest/reference/plugin.html#global-attributes
    """

    def __init__(self, title: str, base: Optional["GraphAttributesBuilder"] = None):
        self._title: str = ""
        self._show_graph: Optional[bool] = None
        self._category: Optional[str] = None
        self._height: Optional[int] = None
        self._order: Optional[str] = None
        self._printf: Optional[str] = None
        self._scale: Optional[bool] = None
        self._total: Optional[str] = None
        self._vertical_label: Optional[str] = None
        self._width: Optional[int] = None
        self._update_rate: Optional[int] = None
        self._graph_data_size: Optional[str] = None
        self._graph_args: List[str] = []

        if base is not None:
            self._show_graph = base._show_graph
            self._category = base._category
            self._height = base._height
            self._order = base._order
            self._printf = base._printf
            self._scale = base._scale
            self._total = base._total
            self._vertical_label = base._vertical_label
            self._width = base._width
            self._update_rate = base._update_rate
            self._graph_data_size = base._graph_data_size
            self._graph_args = list(base._graph_args)

        self.with_title(title)

    def show_graph(self) -> "GraphAttributesBuilder":
        self._show_graph = True
        return self

    def hide_graph(self) -> "GraphAttributesBuilder":
        self._show_graph = False
        return self

    def with_title(self, title: str) -> "GraphAttributesBuilder":
        _require_text(title, "title")
        if any(unicodedata.category(c).startswith("C") for c in title):
            raise ValueError(f"'{title}' is invalid for graph_title")
        self._title = title
        return self

    def with_category(self, category: Union[str, WellKnownCategory]) -> "GraphAttributesBuilder":
        self._category = _category_value(category)
        return self

    def with_category_other(self) -> "GraphAttributesBuilder":
        return self.with_category(WellKnownCategory.OTHER)

    def with_height(self, height: int) -> "GraphAttributesBuilder":
        self._height = _require_positive(height, "height")
        return self

    def with_width(self, width: int) -> "GraphAttributesBuilder":
        self._width = _require_positive(width, "width")
        return self

    def with_size(self, width: int, height: int) -> "GraphAttributesBuilder":
        return self.with_width(width).with_height(height)

    def with_field_order(self, order: Iterable[str]) -> "GraphAttributesBuilder":
        self._order = " ".join(order)
        return self

    def with_format_string(self, printf: str) -> "GraphAttributesBuilder":
        self._printf = _require_text(printf, "printf")
        return self

    def enable_unit_scaling(self) -> "GraphAttributesBuilder":
        self._scale = True
        return self

    def disable_unit_scaling(self) -> "GraphAttributesBuilder":
        self._scale = False
        return self

    def with_total(self, label: str) -> "GraphAttributesBuilder":
        self._total = _require_text(label, "label")
        return self

    def with_vertical_label(self, vertical_label: str) -> "GraphAttributesBuilder":
        self._vertical_label = _require_text(vertical_label, "vertical_label")
        return self

    def with_update_rate(self, update_rate: UpdateRate) -> "GraphAttributesBuilder":
        self._update_rate = _update_rate_seconds(update_rate)
        return self

    def with_graph_data_size(self, graph_data_size: str) -> "GraphAttributesBuilder":
        _require_text(graph_data_size, "graph_data_size")
        if not graph_data_size.startswith("custom ") and graph_data_size not in ("normal", "huge"):
            raise ValueError(f"the value '{graph_data_size}' is invalid for 'graph_data_size'")
        self._graph_data_size = graph_data_size
        return self

    # graph_args

    def add_graph_argument(self, argument: str) -> "GraphAttributesBuilder":
        self._graph_args.append(_require_text(argument, "argument"))
        return self

    def clear_graph_arguments(self) -> "GraphAttributesBuilder":
        self._graph_args.clear()
        return self

    def with_graph_lower_limit(self, value: float) -> "GraphAttributesBuilder":
        return self.add_graph_argument(f"--lower-limit {value}")

    def with_graph_upper_limit(self, value: float) -> "GraphAttributesBuilder":
        return self.add_graph_argument(f"--upper-limit {value}")

    def with_graph_limit(self, lower: float, upper: float) -> "GraphAttributesBuilder":
        return self.with_graph_lower_limit(lower).with_graph_upper_limit(upper)

    def with_graph_rigid(self) -> "GraphAttributesBuilder":
        return self.add_graph_argument("--rigid")

    def with_graph_decimal_base(self) -> "GraphAttributesBuilder":
        return self.add_graph_argument("--base 1000")

    def with_graph_binary_base(self) -> "GraphAttributesBuilder":
        return self.add_graph_argument("--base 1024")

    def with_graph_logarithmic(self) -> "GraphAttributesBuilder":
        return self.add_graph_argument("--logarithmic")

    def build(self) -> GraphAttributes:
        lines = []

        if self._show_graph is not None:
            lines.append(f"graph {_yes_no(self._show_graph)}")
        if self._graph_args:
            lines.append(f"graph_args {' '.join(self._graph_args)}")
        if self._category is not None:
            lines.append(f"graph_category {self._category}")
        if self._graph_data_size is not None:
            lines.append(f"graph_data_size {self._graph_data_size}")
        if self._height is not None:
            lines.append(f"graph_height {self._height}")
        if self._order:
            lines.append(f"graph_order {self._order}")
        if self._printf is not None:
            lines.append(f"graph_printf {self._printf}")
        if self._scale is not None:
            lines.append(f"graph_scale {_yes_no(self._scale)}")

        lines.append(f"graph_title {self._title}")

        if self._total is not None:
            lines.append(f"graph_total {self._total}")
        if self._vertical_label is not None:
            lines.append(f"graph_vlabel {self._vertical_label}")
        if self._width is not None:
            lines.append(f"graph_width {self._width}")
        if self._update_rate is not None:
            lines.append(f"update_rate {self._update_rate}")

        return GraphAttributes(lines)

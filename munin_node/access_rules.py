"""
访问规则

根据远端地址决定是否接受连接。纯函数判断，无副作用、无 I/O。
节点最多只有一个生效的规则，未配置规则时接受所有连接。
"""

import ipaddress
from typing import Iterable, NamedTuple, Optional, Protocol, Union, runtime_checkable

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class Endpoint(NamedTuple):
    """网络端点（地址 + 端口）"""

    address: IPAddress
    port: int

    @classmethod
    def parse(cls, host: str, port: int) -> "Endpoint":
        # IPv6 地址可能带有 scope id (fe80::1%eth0)
        return cls(ipaddress.ip_address(host.split("%", 1)[0]), int(port))

    def __str__(self) -> str:
        if self.address.version == 6:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


@runtime_checkable
class AccessRule(Protocol):
    """访问规则协议"""

    def is_acceptable(self, remote: Endpoint) -> bool:
        ...


def _unmap(address: IPAddress) -> IPAddress:
    """IPv4 映射的 IPv6 地址 (::ffff:a.b.c.d) 转为 IPv4"""
    if address.version == 6 and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


class LoopbackOnlyAccessRule:
    """仅接受回环地址（IPv4 / IPv6）"""

    def is_acceptable(self, remote: Endpoint) -> bool:
        return _unmap(remote.address).is_loopback

    def __repr__(self) -> str:
        return "LoopbackOnlyAccessRule()"


class AddressListAccessRule:
    """
    地址白名单

    远端地址与名单中的某一项完全相等时接受。名单构建后不可修改。

    Args:
        addresses: 允许的地址列表
        consider_ipv4_mapped: 是否把 IPv4 映射的 IPv6 远端地址按 IPv4 比较
    """

    def __init__(
        self,
        addresses: Iterable[Union[str, IPAddress]],
        consider_ipv4_mapped: bool = True,
    ):
        self._addresses = frozenset(ipaddress.ip_address(a) for a in addresses)
        self._consider_ipv4_mapped = consider_ipv4_mapped

    @property
    def addresses(self) -> frozenset:
        return self._addresses

    def is_acceptable(self, remote: Endpoint) -> bool:
        address = remote.address
        if address in self._addresses:
            return True
        if self._consider_ipv4_mapped:
            return _unmap(address) in self._addresses
        return False

    def __repr__(self) -> str:
        return f"AddressListAccessRule({sorted(str(a) for a in self._addresses)!r})"


LOOPBACK_ONLY = LoopbackOnlyAccessRule()


def is_acceptable(rule: Optional[AccessRule], remote: Endpoint) -> bool:
    """未配置规则时接受所有连接"""
    if rule is None:
        return True
    return rule.is_acceptable(remote)

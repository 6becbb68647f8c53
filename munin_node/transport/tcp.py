"""
TCP 传输实现

基于 asyncio 事件循环的非阻塞 socket：监听、接受连接、收发数据。
"""

import asyncio
import ipaddress
import logging
import socket
from typing import Optional, Tuple, Union

from munin_node.access_rules import Endpoint, IPAddress
from munin_node.transport.base import Client, ClientDisconnectedError, Listener

logger = logging.getLogger(__name__)

RECEIVE_CHUNK_SIZE = 256
MAX_CLIENTS = 1

# 对端断开时 send 可能出现的错误
_SEND_DISCONNECT_ERRORS = (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)
# 对端断开时 recv 可能出现的错误，按流结束处理
_RECEIVE_DISCONNECT_ERRORS = (ConnectionResetError, ConnectionAbortedError)


def _ipv6_supported() -> bool:
    if not socket.has_ipv6:
        return False
    sock = None
    try:
        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        sock.bind(("::1", 0))
        return True
    except OSError:
        return False
    finally:
        if sock is not None:
            sock.close()


def resolve_listen_address(value: Union[str, IPAddress]) -> IPAddress:
    """
    解析监听地址

    Args:
        value: "any"、"loopback" 或 IP 地址字面量

    Returns:
        IP 地址；any/loopback 在支持 IPv6 时优先使用 IPv6（双栈），否则回退到 IPv4
    """
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value

    text = value.strip().lower()
    if text == "any":
        return ipaddress.ip_address("::" if _ipv6_supported() else "0.0.0.0")
    if text in ("loopback", "localhost"):
        return ipaddress.ip_address("::1" if _ipv6_supported() else "127.0.0.1")
    return ipaddress.ip_address(value.strip())


def create_server_socket(
    address: IPAddress,
    port: int,
    dual_mode: bool = True,
    backlog: int = MAX_CLIENTS,
) -> socket.socket:
    """创建并绑定监听 socket（同步操作）"""
    family = socket.AF_INET6 if address.version == 6 else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        if family == socket.AF_INET6 and dual_mode and socket.has_dualstack_ipv6():
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((str(address), port))
        sock.listen(backlog)
        sock.setblocking(False)
    except BaseException:
        sock.close()
        raise
    return sock


def _endpoint_from_sockaddr(sockaddr: Tuple) -> Optional[Endpoint]:
    try:
        return Endpoint.parse(sockaddr[0], sockaddr[1])
    except (ValueError, IndexError, TypeError):
        return None


class TcpClient(Client):
    """已接受的 TCP 连接"""

    def __init__(self, sock: socket.socket, remote: Optional[Endpoint]):
        self._sock: Optional[socket.socket] = sock
        self._remote = remote

    @property
    def remote_endpoint(self) -> Optional[Endpoint]:
        return self._remote

    @property
    def connected(self) -> bool:
        return self._sock is not None

    async def send(self, data: bytes) -> None:
        if self._sock is None:
            raise ClientDisconnectedError("client disconnected")

        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendall(self._sock, data)
        except _SEND_DISCONNECT_ERRORS as e:
            raise ClientDisconnectedError("client disconnected") from e

    async def receive(self, buffer: bytearray) -> int:
        if self._sock is None:
            return 0

        loop = asyncio.get_running_loop()
        try:
            data = await loop.sock_recv(self._sock, RECEIVE_CHUNK_SIZE)
        except _RECEIVE_DISCONNECT_ERRORS as e:
            logger.debug(f"[{self._remote}] expected socket error while receiving: {e}")
            return 0

        buffer.extend(data)
        return len(data)

    async def disconnect(self) -> None:
        self.close()

    def close(self):
        sock = self._sock
        self._sock = None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # 对端已断开
            pass
        sock.close()


class TcpListener(Listener):
    """
    TCP 监听器

    Args:
        address: 监听地址
        port: 监听端口，0 表示由系统分配
        dual_mode: 绑定 IPv6 地址时是否同时接受 IPv4 连接
    """

    def __init__(self, address: IPAddress, port: int, dual_mode: bool = True):
        self._address = address
        self._port = port
        self._dual_mode = dual_mode
        self._sock: Optional[socket.socket] = None
        self._closed = False

    @property
    def local_endpoint(self) -> Optional[Endpoint]:
        if self._sock is None:
            return None
        return _endpoint_from_sockaddr(self._sock.getsockname())

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("listener already closed")
        if self._sock is not None:
            raise RuntimeError("already started")
        self._sock = create_server_socket(self._address, self._port, dual_mode=self._dual_mode)

    async def accept(self) -> Client:
        if self._sock is None:
            raise RuntimeError("not started or already closed")

        loop = asyncio.get_running_loop()
        conn, sockaddr = await loop.sock_accept(self._sock)
        conn.setblocking(False)
        return TcpClient(conn, _endpoint_from_sockaddr(sockaddr))

    def close(self) -> None:
        self._closed = True
        sock = self._sock
        self._sock = None
        if sock is not None:
            sock.close()

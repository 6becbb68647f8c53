"""
内存管道传输

不依赖网络栈的 Listener/Client 实现，主要用于测试协议引擎和节点。
PipeListener.connect() 模拟一个 master 连入，返回 master 侧的 PipePeer。
"""

import asyncio
from typing import List, Optional

from munin_node.access_rules import Endpoint
from munin_node.transport.base import Client, ClientDisconnectedError, Listener

RECEIVE_CHUNK_SIZE = 256

DEFAULT_REMOTE = Endpoint.parse("127.0.0.1", 49152)
DEFAULT_LOCAL = Endpoint.parse("127.0.0.1", 4949)


class _Pipe:
    """单向字节管道"""

    def __init__(self):
        self._buffer = bytearray()
        self._event = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes):
        if self._closed:
            raise ClientDisconnectedError("pipe closed")
        self._buffer.extend(data)
        self._event.set()

    async def read(self, max_bytes: int) -> bytes:
        while not self._buffer and not self._closed:
            self._event.clear()
            await self._event.wait()

        data = bytes(self._buffer[:max_bytes])
        del self._buffer[:max_bytes]
        return data

    def close(self):
        self._closed = True
        self._event.set()


class PipeClient(Client):
    """node 侧的连接"""

    def __init__(self, inbound: _Pipe, outbound: _Pipe, remote: Optional[Endpoint]):
        self._inbound = inbound
        self._outbound = outbound
        self._remote = remote
        self._connected = True

    @property
    def remote_endpoint(self) -> Optional[Endpoint]:
        return self._remote

    @property
    def connected(self) -> bool:
        return self._connected

    async def send(self, data: bytes) -> None:
        if not self._connected:
            raise ClientDisconnectedError("client disconnected")
        # 让出一次控制权，使 send 与真实 socket 一样是挂起点
        await asyncio.sleep(0)
        self._outbound.write(data)

    async def receive(self, buffer: bytearray) -> int:
        if not self._connected:
            return 0
        data = await self._inbound.read(RECEIVE_CHUNK_SIZE)
        buffer.extend(data)
        return len(data)

    async def disconnect(self) -> None:
        self._connected = False
        self._inbound.close()
        self._outbound.close()


class PipePeer:
    """master 侧的连接，按行收发文本"""

    def __init__(self, outbound: _Pipe, inbound: _Pipe, encoding: str = "ascii"):
        self._outbound = outbound
        self._inbound = inbound
        self._encoding = encoding
        self._pending = bytearray()

    @property
    def closed_by_node(self) -> bool:
        """node 已关闭连接且没有未读数据"""
        return self._inbound.closed and not self._pending

    def send(self, data: bytes):
        self._outbound.write(data)

    def send_line(self, line: str):
        self.send(line.encode(self._encoding) + b"\n")

    async def read_line(self) -> Optional[str]:
        """读取一行（不含换行符），连接关闭且无数据时返回 None"""
        while b"\n" not in self._pending:
            chunk = await self._inbound.read(RECEIVE_CHUNK_SIZE)
            if not chunk:
                if not self._pending:
                    return None
                line, self._pending = bytes(self._pending), bytearray()
                return line.decode(self._encoding)
            self._pending.extend(chunk)

        line, _, rest = bytes(self._pending).partition(b"\n")
        self._pending = bytearray(rest)
        return line.decode(self._encoding)

    async def read_lines_until_dot(self) -> List[str]:
        """读取多行响应，直到单独的 "." 行（包含在结果中）"""
        lines = []
        while True:
            line = await self.read_line()
            if line is None:
                return lines
            lines.append(line)
            if line == ".":
                return lines

    async def read_all(self) -> bytes:
        """读取直到 node 关闭连接"""
        data = bytearray(self._pending)
        self._pending.clear()
        while True:
            chunk = await self._inbound.read(RECEIVE_CHUNK_SIZE)
            if not chunk:
                return bytes(data)
            data.extend(chunk)

    def close(self):
        self._outbound.close()


class PipeListener(Listener):
    """内存监听器"""

    def __init__(self, local: Endpoint = DEFAULT_LOCAL):
        self._local = local
        self._queue: Optional[asyncio.Queue] = None
        self._started = False
        self._closed = False

    @property
    def local_endpoint(self) -> Optional[Endpoint]:
        return self._local if self._started and not self._closed else None

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("listener already closed")
        if self._started:
            raise RuntimeError("already started")
        self._started = True

    def _get_queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    def connect(
        self,
        remote: Optional[Endpoint] = DEFAULT_REMOTE,
        encoding: str = "ascii",
    ) -> PipePeer:
        """模拟 master 发起连接"""
        if not self._started or self._closed:
            raise ConnectionRefusedError("listener is not accepting connections")

        to_node = _Pipe()
        to_master = _Pipe()
        self._get_queue().put_nowait(PipeClient(to_node, to_master, remote))
        return PipePeer(to_node, to_master, encoding=encoding)

    async def accept(self) -> Client:
        if not self._started or self._closed:
            raise RuntimeError("not started or already closed")
        return await self._get_queue().get()

    def close(self) -> None:
        self._closed = True

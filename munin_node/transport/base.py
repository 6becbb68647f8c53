"""
传输层接口

协议引擎与节点只依赖 Listener / Client，不直接接触 socket。
"""

from abc import ABC, abstractmethod
from typing import Optional

from munin_node.access_rules import Endpoint


class ClientDisconnectedError(ConnectionError):
    """对端关闭或重置了连接"""


class Client(ABC):
    """已接受的连接"""

    @property
    @abstractmethod
    def remote_endpoint(self) -> Optional[Endpoint]:
        """远端端点，不是 IP 端点时为 None"""

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """发送全部数据，对端断开时抛出 ClientDisconnectedError"""

    @abstractmethod
    async def receive(self, buffer: bytearray) -> int:
        """把收到的字节追加到 buffer，返回 0 表示连接已结束"""

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    async def aclose(self) -> None:
        if self.connected:
            await self.disconnect()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


class Listener(ABC):
    """监听端点"""

    @property
    @abstractmethod
    def local_endpoint(self) -> Optional[Endpoint]:
        """绑定的本地端点，启动前为 None"""

    @abstractmethod
    def start(self) -> None:
        """绑定并开始监听（同步）"""

    @abstractmethod
    async def accept(self) -> Client:
        """等待下一个连接"""

    @abstractmethod
    def close(self) -> None:
        """释放监听资源，可重复调用"""

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> "Listener":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

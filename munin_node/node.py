"""
节点

持有监听端点，驱动 接受连接 -> 访问规则检查 -> 协议会话 的循环。
同一时刻最多只有一个活动会话，会话之间不重叠。

状态: created -> started -> accepting -> stopped -> disposed
"""

import asyncio
import base64
import hashlib
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from munin_node.access_rules import AccessRule, Endpoint, IPAddress, is_acceptable
from munin_node.plugins import PluginProvider
from munin_node.protocol import NodeProfile, ProtocolHandler
from munin_node.transport.base import Client, ClientDisconnectedError, Listener
from munin_node.transport.tcp import TcpListener

if TYPE_CHECKING:
    from munin_node.config import NodeConfig

logger = logging.getLogger(__name__)

ListenerFactory = Callable[[IPAddress, int], Listener]

_LF = b"\n"
_CR = b"\r"


def generate_session_id(local: Optional[Endpoint], remote: Endpoint) -> str:
    """会话 ID: 本地端点、远端端点与时间戳的 SHA-1，Base64 编码"""
    identity = f"{local}\n{remote}\n{datetime.now().astimezone().isoformat()}"
    digest = hashlib.sha1(identity.encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")


class NodeBase(ABC):
    """
    节点基类

    子类通过 create_listener() 提供具体的监听器。

    Args:
        profile: 节点信息（主机名、版本、编码、插件）
        access_rule: 访问规则，None 表示接受所有连接
    """

    def __init__(self, profile: NodeProfile, access_rule: Optional[AccessRule] = None):
        self._profile = profile
        self._access_rule = access_rule
        self._handler = ProtocolHandler(profile)
        self._listener: Optional[Listener] = None
        self._lock: Optional[asyncio.Lock] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._state = "created"
        self._accepting = 0

    @abstractmethod
    def create_listener(self) -> Listener:
        """创建（尚未启动的）监听器"""

    @property
    def profile(self) -> NodeProfile:
        return self._profile

    @property
    def hostname(self) -> str:
        return self._profile.hostname

    @property
    def plugins(self) -> PluginProvider:
        return self._profile.plugins

    @property
    def access_rule(self) -> Optional[AccessRule]:
        return self._access_rule

    @property
    def state(self) -> str:
        """created | started | accepting | stopped | disposed"""
        if self._state == "started" and self._accepting:
            return "accepting"
        return self._state

    @property
    def local_endpoint(self) -> Optional[Endpoint]:
        """监听中的本地端点，未启动或已停止时为 None"""
        if self._listener is None:
            return None
        return self._listener.local_endpoint

    # asyncio 原语在首次使用时创建，绑定到当时运行的事件循环
    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _get_stop_event(self) -> asyncio.Event:
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        return self._stop_event

    def start(self):
        """绑定并开始监听（同步），重复调用抛出 RuntimeError"""
        if self._state == "disposed":
            raise RuntimeError("node already closed")
        if self._state != "created":
            raise RuntimeError("already started")

        logger.info("starting")
        listener = self.create_listener()
        if listener is None:
            raise RuntimeError("cannot start server")
        listener.start()

        self._listener = listener
        self._state = "started"
        logger.info(f"started (end point: {listener.local_endpoint})")

    def _ensure_accepting(self) -> Listener:
        if self._state in ("stopped", "disposed") or self._listener is None:
            raise RuntimeError("not started or already closed")
        return self._listener

    async def accept(self, throw_if_cancelled: bool = True):
        """
        接受并处理一个连接，直到会话结束

        Args:
            throw_if_cancelled: 为 False 时取消不再抛出 CancelledError
        """
        listener = self._ensure_accepting()

        self._accepting += 1
        try:
            async with self._get_lock():
                client = await self._wait_for_client(listener)
                if client is not None:
                    await self._process_client(client)
        except asyncio.CancelledError:
            logger.info("accept cancelled")
            self._stop_listening()
            if throw_if_cancelled:
                raise
        finally:
            self._accepting -= 1

    async def run(self, throw_if_cancelled: bool = True):
        """
        启动（如尚未启动）后循环接受连接，直到 stop() 或被取消

        Args:
            throw_if_cancelled: 为 False 时取消后正常返回
        """
        if self._state == "created":
            self.start()

        listener = self._ensure_accepting()
        stop_event = self._get_stop_event()

        logger.info("accepting connections")
        self._accepting += 1
        try:
            while not stop_event.is_set():
                async with self._get_lock():
                    client = await self._wait_for_client(listener)
                    if client is None:
                        break
                    await self._process_client(client)
        except asyncio.CancelledError:
            logger.info("run cancelled")
            if throw_if_cancelled:
                raise
        finally:
            self._accepting -= 1
            self._stop_listening()
            logger.info("stopped accepting connections")

    async def stop(self):
        """
        平滑停止

        不再接受新连接；当前会话结束后关闭监听。
        """
        if self._state in ("created", "stopped", "disposed"):
            return

        logger.info("stopping")
        self._get_stop_event().set()
        # 等待当前会话结束
        async with self._get_lock():
            self._stop_listening()

    def close(self):
        """释放全部资源，可重复调用"""
        if self._state == "disposed":
            return
        if self._stop_event is not None:
            self._stop_event.set()
        self._stop_listening()
        self._state = "disposed"

    async def aclose(self):
        self.close()

    async def __aenter__(self) -> "NodeBase":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def _stop_listening(self):
        listener = self._listener
        self._listener = None
        if listener is not None:
            listener.close()
            logger.info("listener closed")
        if self._state in ("created", "started"):
            self._state = "stopped"

    async def _wait_for_client(self, listener: Listener) -> Optional[Client]:
        """等待新连接或停止信号，停止时返回 None"""
        stop_event = self._get_stop_event()
        if stop_event.is_set():
            return None

        logger.info("accepting...")
        accept_task = asyncio.ensure_future(listener.accept())
        stop_task = asyncio.ensure_future(stop_event.wait())
        waited = False
        try:
            await asyncio.wait({accept_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            waited = True
        finally:
            pending = [t for t in (accept_task, stop_task) if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            # 被取消时已接受的连接不会返回给调用方
            if not waited and _has_client(accept_task):
                await accept_task.result().aclose()

        if accept_task.done() and not accept_task.cancelled():
            return accept_task.result()
        return None

    async def _process_client(self, client: Client):
        remote = client.remote_endpoint
        try:
            if remote is None:
                logger.warning("cannot accept client without an IP end point")
                return

            if not is_acceptable(self._access_rule, remote):
                logger.warning(f"access refused: {remote}")
                return

            session_id = generate_session_id(self.local_endpoint, remote)

            logger.debug(f"[{remote}] sending banner")
            try:
                await self._handler.handle_transaction_start(client)
            except ClientDisconnectedError:
                logger.warning(f"[{remote}] client closed session while sending banner")
                return
            except Exception as e:
                logger.critical(f"[{remote}] unexpected exception while sending banner: {e}", exc_info=True)
                return

            logger.info(f"[{remote}] session started; ID={session_id}")
            await self._profile.plugins.report_session_started(session_id)
            try:
                await self._run_session(client, remote)
                logger.info(f"[{remote}] session closed; ID={session_id}")
            finally:
                await self._handler.handle_transaction_end(client)
                await self._profile.plugins.report_session_closed(session_id)
        finally:
            await client.aclose()
            logger.info(f"[{remote}] connection closed")

    async def _run_session(self, client: Client, remote: Endpoint):
        """按行读取命令并逐条处理，直到断开"""
        buffer = bytearray()

        while client.connected:
            try:
                received = await client.receive(buffer)
            except ClientDisconnectedError:
                logger.info(f"[{remote}] client disconnected")
                return
            except asyncio.CancelledError:
                logger.info(f"[{remote}] operation cancelled")
                raise
            except Exception as e:
                logger.error(f"[{remote}] unexpected exception while receiving: {e}", exc_info=True)
                return

            if received == 0:
                return

            while client.connected:
                eol = buffer.find(_LF)
                if eol < 0:
                    break

                line = bytes(buffer[:eol])
                del buffer[:eol + 1]
                if line.endswith(_CR):
                    line = line[:-1]

                try:
                    await self._handler.handle_command(client, line)
                except ClientDisconnectedError:
                    logger.info(f"[{remote}] client disconnected")
                    return
                except asyncio.CancelledError:
                    logger.info(f"[{remote}] operation cancelled")
                    raise
                except Exception as e:
                    logger.error(
                        f"[{remote}] unexpected exception while processing command: {e}",
                        exc_info=True,
                    )
                    return


def _has_client(accept_task: "asyncio.Future") -> bool:
    return accept_task.done() and not accept_task.cancelled() and accept_task.exception() is None


class MuninNode(NodeBase):
    """
    监听 TCP 端点的节点

    Args:
        profile: 节点信息
        address: 监听地址
        port: 监听端口（0 由系统分配）
        access_rule: 访问规则
        listener_factory: 自定义监听器工厂（测试中可替换为内存管道）
    """

    def __init__(
        self,
        profile: NodeProfile,
        address: IPAddress,
        port: int,
        access_rule: Optional[AccessRule] = None,
        listener_factory: Optional[ListenerFactory] = None,
    ):
        super().__init__(profile, access_rule=access_rule)
        self._address = address
        self._port = port
        self._listener_factory = listener_factory

    @property
    def address(self) -> IPAddress:
        return self._address

    @property
    def port(self) -> int:
        return self._port

    def create_listener(self) -> Listener:
        if self._listener_factory is not None:
            return self._listener_factory(self._address, self._port)
        return TcpListener(self._address, self._port)


def create_node(
    config: "NodeConfig",
    plugins: PluginProvider,
    listener_factory: Optional[ListenerFactory] = None,
) -> MuninNode:
    """
    由配置创建节点

    Args:
        config: 已校验的节点配置
        plugins: 插件集合
        listener_factory: 可选的监听器工厂

    Returns:
        MuninNode 实例（尚未启动）
    """
    profile = NodeProfile(
        hostname=config.hostname,
        version=config.version,
        plugins=plugins,
        encoding=config.encoding,
    )
    return MuninNode(
        profile,
        address=config.listen_address(),
        port=config.port,
        access_rule=config.access_rule(),
        listener_factory=listener_factory,
    )

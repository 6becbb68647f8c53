"""
测试传输层

覆盖：
- 内存管道：连接、收发、断开、EOF
- 监听器生命周期错误
- TCP 回环冒烟测试
"""

import asyncio
import ipaddress

import pytest

from munin_node.access_rules import Endpoint
from munin_node.transport import ClientDisconnectedError, PipeListener, TcpListener, resolve_listen_address

from conftest import EXTERNAL_REMOTE


def test_pipe_listener_connect_requires_start():
    listener = PipeListener()
    with pytest.raises(ConnectionRefusedError):
        listener.connect()


def test_pipe_listener_start_twice():
    listener = PipeListener()
    listener.start()
    with pytest.raises(RuntimeError):
        listener.start()


def test_pipe_listener_local_endpoint():
    listener = PipeListener()
    assert listener.local_endpoint is None
    listener.start()
    assert listener.local_endpoint == Endpoint.parse("127.0.0.1", 4949)
    listener.close()
    assert listener.local_endpoint is None
    # 重复关闭无副作用
    listener.close()


@pytest.mark.asyncio
async def test_pipe_round_trip():
    """测试：master 与 node 之间双向收发"""
    listener = PipeListener()
    listener.start()

    peer = listener.connect(remote=EXTERNAL_REMOTE)
    client = await listener.accept()
    assert client.remote_endpoint == EXTERNAL_REMOTE
    assert client.connected

    peer.send_line("list")
    buffer = bytearray()
    received = await client.receive(buffer)
    assert received == 5
    assert bytes(buffer) == b"list\n"

    await client.send(b"a b\nline\n.\n")
    assert await peer.read_line() == "a b"
    assert await peer.read_lines_until_dot() == ["line", "."]


@pytest.mark.asyncio
async def test_pipe_disconnect_by_node():
    """测试：node 断开后 master 读到 EOF，node 再发送报错"""
    listener = PipeListener()
    listener.start()
    peer = listener.connect()
    client = await listener.accept()

    await client.disconnect()

    assert not client.connected
    assert await peer.read_line() is None
    with pytest.raises(ClientDisconnectedError):
        await client.send(b"x\n")


@pytest.mark.asyncio
async def test_pipe_disconnect_by_master():
    """测试：master 关闭后 node 收到 0 字节"""
    listener = PipeListener()
    listener.start()
    peer = listener.connect()
    client = await listener.accept()

    peer.send(b"partial")
    peer.close()

    buffer = bytearray()
    assert await client.receive(buffer) == 7
    assert await client.receive(buffer) == 0


def test_resolve_listen_address():
    assert resolve_listen_address("192.0.2.5") == ipaddress.ip_address("192.0.2.5")
    assert resolve_listen_address("loopback").is_loopback
    assert resolve_listen_address("any").is_unspecified
    with pytest.raises(ValueError):
        resolve_listen_address("nowhere")


@pytest.mark.asyncio
async def test_tcp_listener_loopback_smoke():
    """测试：TCP 回环收发"""
    listener = TcpListener(ipaddress.ip_address("127.0.0.1"), 0)
    listener.start()
    try:
        endpoint = listener.local_endpoint
        assert endpoint.address == ipaddress.ip_address("127.0.0.1")
        assert endpoint.port > 0

        accept_task = asyncio.ensure_future(listener.accept())
        reader, writer = await asyncio.open_connection("127.0.0.1", endpoint.port)
        client = await asyncio.wait_for(accept_task, timeout=5)

        try:
            assert client.remote_endpoint.address.is_loopback

            await client.send(b"# hello\n")
            assert await asyncio.wait_for(reader.readline(), timeout=5) == b"# hello\n"

            writer.write(b"quit\n")
            await writer.drain()
            buffer = bytearray()
            while b"\n" not in buffer:
                assert await asyncio.wait_for(client.receive(buffer), timeout=5) > 0
            assert bytes(buffer) == b"quit\n"
        finally:
            await client.aclose()
            writer.close()

        assert not client.connected
    finally:
        listener.close()

    assert listener.local_endpoint is None
    with pytest.raises(RuntimeError):
        listener.start()

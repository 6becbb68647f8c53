"""
测试命令行入口
"""

import asyncio
import logging
import os
import signal
import sys

import pytest
import yaml

from munin_node import __main__ as entry
from munin_node.config import LoggingConfig, NodeConfig, PluginsConfig
from munin_node.node import create_node
from munin_node.transport.memory import PipeListener

from conftest import HOSTNAME

BANNER = f"# munin node at {HOSTNAME}"


def test_parse_args():
    assert entry.parse_args(["--config", "/tmp/x.yaml"]).config == "/tmp/x.yaml"
    assert entry.parse_args([]).config is None


def test_missing_config_exits_with_error(tmp_path, capsys):
    """测试：配置文件不存在时退出码为 1"""
    with pytest.raises(SystemExit) as exc_info:
        entry.main(["--config", str(tmp_path / "missing.yaml")])

    assert exc_info.value.code == 1
    assert "missing.yaml" in capsys.readouterr().err


def test_invalid_config_exits_with_error(tmp_path, capsys):
    """测试：配置校验失败时退出码为 1"""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"hostname": "", "port": 99999}), encoding="utf-8")

    with pytest.raises(SystemExit) as exc_info:
        entry.main(["--config", str(path)])

    assert exc_info.value.code == 1
    assert "invalid configuration" in capsys.readouterr().err


def test_main_runs_node_with_loaded_config(tmp_path, monkeypatch):
    """测试：main 加载配置后运行节点"""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"hostname": "cli-node", "port": 0}), encoding="utf-8")

    served = []

    async def fake_serve(config):
        served.append(config)

    monkeypatch.setattr(entry, "serve", fake_serve)
    monkeypatch.setattr(entry, "setup_logging", lambda config: None)

    entry.main(["--config", str(path)])

    assert [c.hostname for c in served] == ["cli-node"]


def test_setup_logging_file_handler(tmp_path):
    """测试：配置文件日志时追加 FileHandler"""
    log_file = tmp_path / "logs" / "node.log"
    root = logging.getLogger()
    before = list(root.handlers)

    try:
        entry.setup_logging(LoggingConfig(level="DEBUG", file=str(log_file)))
        added = [h for h in root.handlers if h not in before]
        assert any(isinstance(h, logging.FileHandler) for h in added)
        assert log_file.parent.is_dir()
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()


async def start_idle_session(node_factory, pipe_listener: PipeListener):
    """启动节点并建立一个只收到 banner 的空闲会话"""
    node = node_factory()
    run_task = asyncio.ensure_future(node.run(throw_if_cancelled=False))
    await asyncio.sleep(0)

    peer = pipe_listener.connect()
    assert await asyncio.wait_for(peer.read_line(), timeout=5) == BANNER
    return node, run_task, peer


@pytest.mark.asyncio
async def test_sigterm_closes_idle_session(node_factory, pipe_listener: PipeListener):
    """测试：SIGTERM 立即关闭空闲会话并停止节点"""
    node, run_task, peer = await start_idle_session(node_factory, pipe_listener)
    handler = entry.ShutdownHandler(node, run_task)

    handler(signal.SIGTERM)

    await asyncio.wait_for(run_task, timeout=5)
    await handler.wait_stopped()
    assert await asyncio.wait_for(peer.read_all(), timeout=5) == b""
    assert pipe_listener.closed


@pytest.mark.asyncio
async def test_second_sigint_closes_session(node_factory, pipe_listener: PipeListener):
    """测试：第一次 SIGINT 等待会话结束，第二次立即关闭"""
    node, run_task, peer = await start_idle_session(node_factory, pipe_listener)
    handler = entry.ShutdownHandler(node, run_task)

    handler(signal.SIGINT)
    await asyncio.sleep(0.05)
    assert not run_task.done()
    assert not pipe_listener.closed

    handler(signal.SIGINT)

    await asyncio.wait_for(run_task, timeout=5)
    await asyncio.wait_for(handler.wait_stopped(), timeout=5)
    assert await asyncio.wait_for(peer.read_all(), timeout=5) == b""
    assert node.state == "stopped"


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="事件循环不支持信号处理")
async def test_serve_exits_on_sigterm_with_connected_master(monkeypatch):
    """测试：master 保持连接时 serve 收到 SIGTERM 仍能退出"""
    listener = PipeListener()
    monkeypatch.setattr(
        entry,
        "create_node",
        lambda config, plugins: create_node(config, plugins, listener_factory=lambda address, port: listener),
    )
    config = NodeConfig(
        hostname=HOSTNAME,
        plugins=PluginsConfig(cpu=False, memory=False, uptime=False, disks=[]),
    )

    serve_task = asyncio.ensure_future(entry.serve(config))
    await asyncio.sleep(0)

    peer = listener.connect()
    assert await asyncio.wait_for(peer.read_line(), timeout=5) == BANNER

    os.kill(os.getpid(), signal.SIGTERM)

    await asyncio.wait_for(serve_task, timeout=5)
    assert await asyncio.wait_for(peer.read_all(), timeout=5) == b""
    assert listener.closed

"""
Munin Node 主程序入口

使用方式:
    python -m munin_node [--config PATH]
    或
    munin-node [--config PATH]
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from munin_node import __version__
from munin_node.collectors import create_builtin_plugins
from munin_node.config import LoggingConfig, NodeConfig, load_config
from munin_node.node import NodeBase, create_node

logger = logging.getLogger(__name__)


def setup_logging(config: LoggingConfig):
    """配置日志"""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)


class ShutdownHandler:
    """
    停止信号处理

    第一次 SIGINT 平滑停止（等待当前会话结束）；
    SIGTERM 或再次收到信号时取消运行任务，立即关闭当前会话。

    Args:
        node: 运行中的节点
        run_task: node.run() 所在的任务
    """

    def __init__(self, node: NodeBase, run_task: "asyncio.Future"):
        self._node = node
        self._run_task = run_task
        self._stop_task: Optional[asyncio.Future] = None

    def __call__(self, sig: signal.Signals):
        if sig == signal.SIGTERM or self._stop_task is not None:
            logger.info(f"{sig.name} received, closing current session")
            self._run_task.cancel()
            return

        logger.info(f"{sig.name} received, waiting for current session to end")
        self._stop_task = asyncio.ensure_future(self._node.stop())

    async def wait_stopped(self):
        """等待已发起的平滑停止完成"""
        if self._stop_task is not None:
            await self._stop_task


async def serve(config: NodeConfig):
    """运行节点直到收到 SIGINT / SIGTERM"""
    plugins = create_builtin_plugins(config.plugins)
    node = create_node(config, plugins)
    loop = asyncio.get_running_loop()

    async with node:
        node.start()
        logger.info(f"Listening on: {node.local_endpoint}")
        logger.info(f"Plugins: {' '.join(plugins.names())}")

        run_task = asyncio.ensure_future(node.run(throw_if_cancelled=False))
        handler = ShutdownHandler(node, run_task)

        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handler, sig)
                installed.append(sig)
            except NotImplementedError:
                # Windows 事件循环不支持，依赖 KeyboardInterrupt
                pass

        try:
            await run_task
            await handler.wait_stopped()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            if not run_task.done():
                run_task.cancel()
                await asyncio.gather(run_task, return_exceptions=True)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="munin-node", description="munin node agent")
    parser.add_argument("--config", "-c", help="配置文件路径（默认 $MUNIN_NODE_CONFIG 或 /etc/munin-node/config.yaml）")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """主程序入口"""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Please create config file at /etc/munin-node/config.yaml", file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f"Error: invalid configuration\n{e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.logging)

    logger.info("=" * 60)
    logger.info(f"Munin Node v{__version__}")
    logger.info("=" * 60)
    logger.info(f"Hostname: {config.hostname}")

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    except OSError as e:
        logger.error(f"Cannot start node: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

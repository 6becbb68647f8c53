"""
配置管理模块

从 YAML 文件加载节点配置，支持环境变量指定路径
"""

import codecs
import ipaddress
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from munin_node import __version__
from munin_node.access_rules import LOOPBACK_ONLY, AccessRule, AddressListAccessRule, IPAddress
from munin_node.transport.tcp import resolve_listen_address

DEFAULT_CONFIG_PATH = "/etc/munin-node/config.yaml"
CONFIG_PATH_ENV = "MUNIN_NODE_CONFIG"


class LoggingConfig(BaseModel):
    """日志配置"""

    level: str = Field(default="INFO", description="日志级别")
    file: Optional[str] = Field(default=None, description="日志文件路径（可选）")


class PluginsConfig(BaseModel):
    """内置插件配置"""

    cpu: bool = Field(default=True, description="CPU 使用率")
    memory: bool = Field(default=True, description="内存使用量")
    uptime: bool = Field(default=True, description="运行时间")
    disks: List[str] = Field(default=["/"], description="监控的磁盘挂载点，空列表表示不启用")
    interface: Optional[str] = Field(default=None, description="监控流量的网卡名（可选）")


class NodeConfig(BaseModel):
    """节点配置模型"""

    hostname: str = Field(default="munin-node.localhost", description="节点主机名")
    listen: str = Field(default="loopback", description="监听地址: loopback|any|IP")
    port: int = Field(default=4949, ge=0, le=65535, description="监听端口")
    allow_from: Optional[List[str]] = Field(default=None, description="允许连接的地址列表")
    loopback_only: bool = Field(default=True, description="仅允许回环地址（设置 allow_from 时忽略）")
    encoding: str = Field(default="ascii", description="协议文本编码")
    version: str = Field(default=__version__, description="version 命令返回的版本")
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("hostname")
    @classmethod
    def _check_hostname(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("hostname must not be empty")
        return value

    @field_validator("listen")
    @classmethod
    def _check_listen(cls, value: str) -> str:
        text = value.strip()
        if text.lower() not in ("any", "loopback", "localhost"):
            ipaddress.ip_address(text)
        return text

    @field_validator("allow_from")
    @classmethod
    def _check_allow_from(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is not None:
            for address in value:
                ipaddress.ip_address(address)
        return value

    @field_validator("encoding")
    @classmethod
    def _check_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError:
            raise ValueError(f"unknown encoding: {value}")
        return value

    def listen_address(self) -> IPAddress:
        """解析后的监听地址"""
        return resolve_listen_address(self.listen)

    def access_rule(self) -> Optional[AccessRule]:
        """
        生效的访问规则

        allow_from 优先；否则 loopback_only 时仅允许回环；都未设置时接受所有连接。
        """
        if self.allow_from is not None:
            return AddressListAccessRule(self.allow_from)
        if self.loopback_only:
            return LOOPBACK_ONLY
        return None


def load_config(config_path: Optional[str] = None) -> NodeConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 MUNIN_NODE_CONFIG
    3. 默认路径 /etc/munin-node/config.yaml

    Returns:
        NodeConfig 实例

    Raises:
        FileNotFoundError: 配置文件不存在
        pydantic.ValidationError: 配置值无效
    """
    if config_path is None:
        config_path = os.getenv(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"配置文件不存在: {config_path}")

    with open(config_file, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f)

    return NodeConfig(**(config_data or {}))


# 全局配置实例（延迟加载）
_config: Optional[NodeConfig] = None


def get_config() -> NodeConfig:
    """获取全局配置实例"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置全局配置（测试用）"""
    global _config
    _config = None

"""Transport layer (TCP sockets and in-memory pipes)."""

from .base import Client, ClientDisconnectedError, Listener
from .memory import PipeClient, PipeListener, PipePeer
from .tcp import TcpClient, TcpListener, create_server_socket, resolve_listen_address

__all__ = [
    "Client",
    "ClientDisconnectedError",
    "Listener",
    "PipeClient",
    "PipeListener",
    "PipePeer",
    "TcpClient",
    "TcpListener",
    "create_server_socket",
    "resolve_listen_address",
]

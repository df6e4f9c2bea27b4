"""
Networking core: the accept loop, client connections and the worker pool
the HTTP server is built from.
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool, Worker, WorkerState

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ThreadPool",
    "Worker",
    "WorkerState",
]

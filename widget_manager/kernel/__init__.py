"""
Kernel connections, comms and sessions
"""

from .base import Comm, Kernel
from .memory import BackendWidget, InMemoryKernel
from .session import Session
from .websocket_kernel import WebSocketKernel

__all__ = ["Comm", "Kernel", "BackendWidget", "InMemoryKernel", "Session", "WebSocketKernel"]

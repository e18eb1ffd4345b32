"""
Client session holding the current kernel connection
"""

import logging
from typing import Optional

from ..events import EventBus, EventTypes
from .base import Kernel

logger = logging.getLogger(__name__)


class Session:
    """
    Tracks which kernel a document talks to and re-emits its status.

    Emits ``kernel.changed`` with ``old_value``/``new_value`` when the kernel
    is swapped and ``kernel.status_changed`` with ``status`` whenever the
    current kernel reports a new status.
    """
    
    def __init__(self, event_bus: Optional[EventBus] = None, name: str = ""):
        self.events = event_bus or EventBus()
        self.name = name
        self.status = "unknown"
        self._kernel: Optional[Kernel] = None
        
    @property
    def kernel(self) -> Optional[Kernel]:
        return self._kernel
        
    def change_kernel(self, kernel: Optional[Kernel]) -> Optional[Kernel]:
        """Swap the current kernel; returns the previous one"""
        old = self._kernel
        if old is kernel:
            return old
        if old is not None:
            old.remove_status_listener(self._handle_kernel_status)
        self._kernel = kernel
        if kernel is not None:
            kernel.add_status_listener(self._handle_kernel_status)
            
        logger.info(f"Session kernel changed: {getattr(old, 'id', None)} → {getattr(kernel, 'id', None)}")
        self.events.emit(EventTypes.KERNEL_CHANGED, {
            "old_value": old,
            "new_value": kernel
        }, source="session")
        return old
        
    def set_status(self, status: str):
        """Publish a session status (connected, restarting, idle, ...)"""
        self.status = status
        self.events.emit(EventTypes.KERNEL_STATUS_CHANGED, {
            "status": status,
            "kernel_id": getattr(self._kernel, "id", None)
        }, source="session")
        
    def shutdown(self):
        """Detach from the kernel"""
        self.change_kernel(None)
        
    def _handle_kernel_status(self, kernel: Kernel, status: str):
        if kernel is self._kernel:
            self.set_status(status)

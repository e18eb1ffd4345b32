"""
Lifecycle controller binding the widget comm target to the session's kernel
"""

import logging
from typing import Optional, Callable, Dict, Any

from ..events import EventBus, EventTypes, SystemEvent
from .state_manager import StateManager, BindingState

logger = logging.getLogger(__name__)


class ChannelLifecycleController:
    """
    Keeps the comm-open handler registered on whichever kernel the session
    currently holds, and turns kernel status changes into restore/teardown
    """
    
    def __init__(self,
                 session,
                 target_name: str,
                 on_comm_open: Callable[[Any, Dict[str, Any]], Any],
                 on_connected: Optional[Callable[[], None]] = None,
                 on_restarting: Optional[Callable[[], None]] = None):
        """
        Initialize lifecycle controller
        
        Args:
            session: Session whose kernel and status are followed
            target_name: Comm target the handler is registered under
            on_comm_open: Called with (comm, msg) for backend-opened comms
            on_connected: Called when the kernel reports "connected"
            on_restarting: Called when the kernel reports "restarting"
        """
        self.session = session
        self.target_name = target_name
        self.on_comm_open = on_comm_open
        self.on_connected = on_connected
        self.on_restarting = on_restarting
        
        self.events: EventBus = session.events
        self.state_manager = StateManager(event_bus=self.events)
        self.kernel = None
        self._attached = False
        
        # Stats
        self.rebinds = 0
        self.status_signals = 0
        
    def attach(self):
        """Start following the session and bind to its current kernel"""
        if self._attached or self.state_manager.is_disposed():
            return
        self.events.on(EventTypes.KERNEL_CHANGED, self._handle_kernel_changed)
        self.events.on(EventTypes.KERNEL_STATUS_CHANGED, self._handle_status_changed)
        self._attached = True
        
        if self.session.kernel is not None:
            self.rebind(self.session.kernel)
            
    def detach(self):
        """Stop following the session"""
        if not self._attached:
            return
        self.events.off(EventTypes.KERNEL_CHANGED, self._handle_kernel_changed)
        self.events.off(EventTypes.KERNEL_STATUS_CHANGED, self._handle_status_changed)
        self._attached = False
        
    def rebind(self, kernel):
        """
        Move the comm-open handler to ``kernel``
        
        The handler is removed from the previous kernel before it is
        registered on the new one. Passing None leaves the controller unbound.
        """
        if self.state_manager.is_disposed():
            logger.warning("Ignoring rebind on a disposed lifecycle controller")
            return
        if kernel is self.kernel:
            return
            
        old = self.kernel
        if old is not None:
            old.remove_comm_target(self.target_name, self._handle_comm_open)
            self.kernel = None
            self.state_manager.transition_to(BindingState.UNBOUND, f"kernel {old.id} removed")
            self.events.emit(EventTypes.COMM_TARGET_REMOVED, {
                "target_name": self.target_name,
                "kernel_id": old.id
            }, source="lifecycle")
            
        if kernel is not None:
            kernel.register_comm_target(self.target_name, self._handle_comm_open)
            self.kernel = kernel
            self.rebinds += 1
            self.state_manager.transition_to(BindingState.BOUND, f"kernel {kernel.id} available")
            self.events.emit(EventTypes.COMM_TARGET_REGISTERED, {
                "target_name": self.target_name,
                "kernel_id": kernel.id
            }, source="lifecycle")
            logger.info(f"Comm target {self.target_name} bound to kernel {kernel.id}")
            
    def handle_status(self, status: str):
        """React to a kernel status signal"""
        self.status_signals += 1
        if status == "connected":
            # Prior state is kept: "connected" also covers the first connection
            logger.info("Kernel connected, restoring widgets")
            if self.on_connected:
                self.on_connected()
        elif status == "restarting":
            logger.info("Kernel restarting, disconnecting widgets")
            if self.on_restarting:
                self.on_restarting()
        else:
            logger.debug(f"Ignoring kernel status {status!r}")
            
    def dispose(self):
        """Unbind from the kernel and stop following the session"""
        if self.state_manager.is_disposed():
            return
        self.rebind(None)
        self.detach()
        self.state_manager.transition_to(BindingState.DISPOSED, "controller disposed")
        
    @property
    def is_bound(self) -> bool:
        return self.state_manager.is_bound()
        
    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self.state_manager.get_state().value,
            "kernel_id": getattr(self.kernel, "id", None),
            "target_name": self.target_name,
            "rebinds": self.rebinds,
            "status_signals": self.status_signals,
        }
        
    def _handle_comm_open(self, comm, msg: Dict[str, Any]):
        return self.on_comm_open(comm, msg)
        
    def _handle_kernel_changed(self, event: SystemEvent):
        self.rebind(event.data.get("new_value"))
        
    def _handle_status_changed(self, event: SystemEvent):
        self.handle_status(event.data.get("status"))

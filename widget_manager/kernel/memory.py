"""
Loopback kernel that keeps kernel-side widget state in memory
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from .. import config
from .base import Comm, Kernel
from .messages import create_message

logger = logging.getLogger(__name__)


@dataclass
class BackendWidget:
    """Kernel-side state of one widget"""
    comm_id: str
    state: Dict[str, Any]
    target_name: str = config.COMM_CONFIG["target_name"]
    buffer_paths: List[List[Any]] = field(default_factory=list)
    buffers: List[bytes] = field(default_factory=list)
    # False: request_state is never answered
    responsive: bool = True
    # Seconds before a request_state reply is delivered
    reply_delay: float = 0.0


class InMemoryKernel(Kernel):
    """
    Kernel double that answers the widget protocol without a process.

    Replies are delivered through the running event loop, never synchronously
    from inside ``send_comm_message``, so callers observe the same ordering as
    with a remote kernel.
    """
    
    def __init__(self, kernel_id: Optional[str] = None,
                 protocol_version: str = config.PROTOCOL_VERSION):
        super().__init__(kernel_id)
        self.protocol_version = protocol_version
        self.backend_widgets: Dict[str, BackendWidget] = {}
        self.sent_messages: List[Dict[str, Any]] = []
        self.comm_info_requests = 0
        self._set_status("connected")
        
    def add_backend_widget(self, comm_id: str, state: Dict[str, Any], **options) -> BackendWidget:
        """Create kernel-side widget state without notifying the frontend"""
        widget = BackendWidget(comm_id=comm_id, state=dict(state), **options)
        self.backend_widgets[comm_id] = widget
        return widget
        
    async def request_comm_info(self, target_name: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        self.comm_info_requests += 1
        await asyncio.sleep(0)
        return {
            comm_id: {"target_name": widget.target_name}
            for comm_id, widget in self.backend_widgets.items()
            if target_name is None or widget.target_name == target_name
        }
        
    def send_comm_message(self, comm: Comm, msg_type: str, content: Dict[str, Any],
                          metadata: Optional[Dict[str, Any]] = None,
                          buffers: Optional[List[bytes]] = None) -> str:
        msg = create_message(msg_type, content, metadata=metadata, buffers=buffers)
        self.sent_messages.append(msg)
        data = content.get("data", {})
        
        if msg_type == "comm_open":
            state = dict(data.get("state", {}))
            self.backend_widgets[comm.comm_id] = BackendWidget(comm.comm_id, state, target_name=comm.target_name)
        elif msg_type == "comm_msg":
            widget = self.backend_widgets.get(comm.comm_id)
            method = data.get("method")
            if widget is None:
                logger.debug(f"Kernel has no widget for comm {comm.comm_id}")
            elif method == "request_state":
                if widget.responsive:
                    self._schedule(widget.reply_delay, self._update_message(widget))
            elif method == "update":
                widget.state.update(data.get("state", {}))
        elif msg_type == "comm_close":
            self.backend_widgets.pop(comm.comm_id, None)
            
        return msg["header"]["msg_id"]
        
    # Kernel-initiated traffic
    
    def open_comm(self, comm_id: str, state: Dict[str, Any], **options) -> BackendWidget:
        """Create a kernel-side widget and announce it with comm_open"""
        widget = self.add_backend_widget(comm_id, state, **options)
        msg = create_message("comm_open", {
            "comm_id": comm_id,
            "target_name": widget.target_name,
            "data": {"state": copy.deepcopy(widget.state), "buffer_paths": list(widget.buffer_paths)},
        }, channel="iopub", metadata={"version": self.protocol_version}, buffers=widget.buffers)
        self.handle_message(msg)
        return widget
        
    def push_update(self, comm_id: str, state: Dict[str, Any]):
        """Change kernel-side state and send it to the frontend"""
        widget = self.backend_widgets[comm_id]
        widget.state.update(state)
        msg = create_message("comm_msg", {
            "comm_id": comm_id,
            "data": {"method": "update", "state": dict(state), "buffer_paths": []},
        }, channel="iopub", metadata={"version": self.protocol_version})
        self.handle_message(msg)
        
    def close_comm(self, comm_id: str):
        """Close a kernel-side widget"""
        self.backend_widgets.pop(comm_id, None)
        self.handle_message(create_message("comm_close", {"comm_id": comm_id, "data": {}}, channel="iopub"))
        
    def restart(self, reconnect: bool = True):
        """Drop all kernel-side widgets, reporting restarting (then connected)"""
        self._set_status("restarting")
        self.backend_widgets.clear()
        if reconnect:
            self._set_status("connected")
            
    # Helpers
    
    def _update_message(self, widget: BackendWidget) -> Dict[str, Any]:
        return create_message("comm_msg", {
            "comm_id": widget.comm_id,
            "data": {
                "method": "update",
                "state": copy.deepcopy(widget.state),
                "buffer_paths": list(widget.buffer_paths),
            },
        }, channel="iopub", metadata={"version": self.protocol_version}, buffers=widget.buffers)
        
    def _schedule(self, delay: float, msg: Dict[str, Any]):
        loop = asyncio.get_running_loop()
        if delay > 0:
            loop.call_later(delay, self.handle_message, msg)
        else:
            loop.call_soon(self.handle_message, msg)

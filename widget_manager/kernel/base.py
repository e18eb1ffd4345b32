"""
Base classes for kernel connections and the comms opened over them
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Callable

from ..core.exceptions import CommClosedError
from ..core.tasks import maybe_spawn
from .messages import msg_type_of

logger = logging.getLogger(__name__)

CommCallback = Callable[[Dict[str, Any]], Any]
CommTargetHandler = Callable[["Comm", Dict[str, Any]], Any]


class Comm:
    """
    One end of a bidirectional message link to a kernel-side object.

    Outbound traffic goes through the owning kernel; inbound comm_msg and
    comm_close messages are routed here by the kernel.
    """
    
    def __init__(self, kernel: "Kernel", target_name: str, comm_id: Optional[str] = None):
        self.kernel = kernel
        self.target_name = target_name
        self.comm_id = comm_id or uuid.uuid4().hex
        self.is_disposed = False
        self._msg_callback: Optional[CommCallback] = None
        self._close_callback: Optional[CommCallback] = None
        
    def open(self, data: Optional[Dict[str, Any]] = None,
             metadata: Optional[Dict[str, Any]] = None,
             buffers: Optional[List[bytes]] = None) -> str:
        """Open the comm on the kernel side"""
        content = {"comm_id": self.comm_id, "target_name": self.target_name, "data": data or {}}
        return self._send("comm_open", content, metadata, buffers)
        
    def send(self, data: Dict[str, Any],
             metadata: Optional[Dict[str, Any]] = None,
             buffers: Optional[List[bytes]] = None) -> str:
        """Send a comm_msg; returns the message id"""
        content = {"comm_id": self.comm_id, "data": data}
        return self._send("comm_msg", content, metadata, buffers)
        
    def close(self, data: Optional[Dict[str, Any]] = None,
              metadata: Optional[Dict[str, Any]] = None,
              buffers: Optional[List[bytes]] = None) -> Optional[str]:
        """Close the comm on both ends"""
        if self.is_disposed:
            return None
        content = {"comm_id": self.comm_id, "data": data or {}}
        msg_id = self._send("comm_close", content, metadata, buffers)
        self.handle_close({"content": content, "metadata": metadata or {}, "buffers": []})
        return msg_id
        
    def on_msg(self, callback: Optional[CommCallback]):
        """Set the handler for inbound comm_msg messages (replaces the previous one)"""
        self._msg_callback = callback
        
    def on_close(self, callback: Optional[CommCallback]):
        """Set the handler for comm_close"""
        self._close_callback = callback

    @property
    def msg_callback(self) -> Optional[CommCallback]:
        return self._msg_callback

    @property
    def close_callback(self) -> Optional[CommCallback]:
        return self._close_callback

    def handle_msg(self, msg: Dict[str, Any]):
        if self.is_disposed or self._msg_callback is None:
            return
        maybe_spawn(self._msg_callback(msg), "comm message handler", comm_id=self.comm_id)
        
    def handle_close(self, msg: Dict[str, Any]):
        if self.is_disposed:
            return
        callback = self._close_callback
        self.dispose()
        if callback is not None:
            maybe_spawn(callback(msg), "comm close handler", comm_id=self.comm_id)
            
    def dispose(self):
        """Sever the comm locally; later sends raise CommClosedError"""
        if self.is_disposed:
            return
        self.is_disposed = True
        self._msg_callback = None
        self.kernel.unregister_comm(self)
        
    def _send(self, msg_type: str, content: Dict[str, Any],
              metadata: Optional[Dict[str, Any]], buffers: Optional[List[bytes]]) -> str:
        if self.is_disposed:
            raise CommClosedError(self.comm_id)
        return self.kernel.send_comm_message(self, msg_type, content, metadata, buffers)
        
    def __repr__(self):
        state = "disposed" if self.is_disposed else "live"
        return f"<Comm {self.target_name}:{self.comm_id} {state}>"


class Kernel(ABC):
    """Abstract connection to a running kernel"""
    
    def __init__(self, kernel_id: Optional[str] = None):
        self.id = kernel_id or uuid.uuid4().hex
        self.status = "unknown"
        self._targets: Dict[str, CommTargetHandler] = {}
        self._comms: Dict[str, Comm] = {}
        self._status_listeners: List[Callable[["Kernel", str], None]] = []
        
    # Comm targets
    
    def register_comm_target(self, target_name: str, callback: CommTargetHandler):
        """Route comm_open messages for ``target_name`` to ``callback``"""
        self._targets[target_name] = callback
        logger.debug(f"Registered comm target {target_name} on kernel {self.id}")
        
    def remove_comm_target(self, target_name: str, callback: CommTargetHandler):
        """Remove ``callback`` if it is the handler registered for ``target_name``"""
        if self._targets.get(target_name) == callback:
            del self._targets[target_name]
            logger.debug(f"Removed comm target {target_name} from kernel {self.id}")
            
    def has_comm_target(self, target_name: str) -> bool:
        return target_name in self._targets
        
    # Comms
    
    def connect_to_comm(self, target_name: str, comm_id: Optional[str] = None) -> Comm:
        """
        Frontend comm for an (optionally existing) kernel comm id

        A live comm already open for ``comm_id`` is returned as is, so kernel
        traffic keeps reaching whoever listens on it.
        """
        existing = self._comms.get(comm_id) if comm_id else None
        if existing is not None and not existing.is_disposed:
            return existing
        comm = Comm(self, target_name, comm_id)
        self._comms[comm.comm_id] = comm
        return comm
        
    def unregister_comm(self, comm: Comm):
        if self._comms.get(comm.comm_id) is comm:
            del self._comms[comm.comm_id]
            
    def get_comm(self, comm_id: str) -> Optional[Comm]:
        return self._comms.get(comm_id)
        
    def list_comms(self, target_name: Optional[str] = None) -> List[Comm]:
        """Open frontend comms, optionally only those for ``target_name``"""
        return [comm for comm in self._comms.values()
                if target_name is None or comm.target_name == target_name]
        
    @abstractmethod
    async def request_comm_info(self, target_name: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        """
        Ask the kernel for its open comms
        
        Returns:
            Mapping of comm id to comm metadata (``{"target_name": ...}``)
        """
        
    @abstractmethod
    def send_comm_message(self, comm: Comm, msg_type: str, content: Dict[str, Any],
                          metadata: Optional[Dict[str, Any]] = None,
                          buffers: Optional[List[bytes]] = None) -> str:
        """Send a comm message to the kernel; returns the message id"""
        
    # Inbound routing
    
    def handle_message(self, msg: Dict[str, Any]):
        """Route an inbound kernel message"""
        msg_type = msg_type_of(msg)
        content = msg.get("content", {})
        
        if msg_type == "comm_open":
            self._handle_comm_open(content, msg)
        elif msg_type == "comm_msg":
            comm = self._comms.get(content.get("comm_id"))
            if comm is not None:
                comm.handle_msg(msg)
            else:
                logger.debug(f"Dropping message for unknown comm {content.get('comm_id')}")
        elif msg_type == "comm_close":
            comm = self._comms.get(content.get("comm_id"))
            if comm is not None:
                comm.handle_close(msg)
                
    def _handle_comm_open(self, content: Dict[str, Any], msg: Dict[str, Any]):
        target_name = content.get("target_name", "")
        callback = self._targets.get(target_name)
        if callback is None:
            logger.warning(f"No comm target registered for {target_name!r}, ignoring comm_open")
            return
        comm = self.connect_to_comm(target_name, content.get("comm_id"))
        maybe_spawn(callback(comm, msg), "comm_open handler",
                    comm_id=comm.comm_id, target_name=target_name)
        
    # Status
    
    def add_status_listener(self, listener: Callable[["Kernel", str], None]):
        self._status_listeners.append(listener)
        
    def remove_status_listener(self, listener: Callable[["Kernel", str], None]):
        if listener in self._status_listeners:
            self._status_listeners.remove(listener)
            
    def _set_status(self, status: str):
        if status == self.status:
            return
        self.status = status
        for listener in list(self._status_listeners):
            try:
                listener(self, status)
            except Exception as e:
                logger.error(f"Error in kernel status listener: {e}", exc_info=True)

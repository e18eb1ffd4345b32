"""
Kernel connection over a Jupyter server kernel-channels websocket
"""

import asyncio
import logging
from typing import Dict, Any, List, Optional
from urllib.parse import urlencode, urlparse, urlunparse

import websockets

from .. import config
from ..core.tasks import spawn
from .base import Comm, Kernel
from .messages import create_message, decode_message, encode_message, msg_type_of, new_msg_id

logger = logging.getLogger(__name__)

# Kernel execution states that mean the kernel process is going away
RESTARTING_STATES = ("restarting", "autorestarting")


class WebSocketKernel(Kernel):
    """Talks the kernel messaging protocol to a Jupyter server"""
    
    def __init__(self, url: str,
                 kernel_id: Optional[str] = None,
                 session_id: Optional[str] = None,
                 username: str = "",
                 connection_timeout: float = config.KERNEL_CONFIG["connection_timeout"]):
        """
        Initialize the websocket kernel
        
        Args:
            url: Kernel channels websocket URL
            kernel_id: Kernel id on the server
            session_id: Client session id stamped on outgoing messages
            username: User name stamped on outgoing messages
            connection_timeout: Seconds to wait for the websocket handshake
        """
        super().__init__(kernel_id)
        self.url = url
        self.session_id = session_id or new_msg_id()
        self.username = username
        self.connection_timeout = connection_timeout
        
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._pending_replies: Dict[str, asyncio.Future] = {}
        
        # Stats
        self.messages_sent = 0
        self.messages_received = 0
        
    @classmethod
    def from_server(cls, base_url: str, kernel_id: str, token: str = "", **kwargs) -> "WebSocketKernel":
        """Build the channels URL for ``kernel_id`` on a Jupyter server"""
        parsed = urlparse(base_url)
        scheme = "wss" if parsed.scheme == "https" else "ws"
        path = parsed.path.rstrip("/") + f"/api/kernels/{kernel_id}/channels"
        session_id = kwargs.pop("session_id", None) or new_msg_id()
        query = {"session_id": session_id}
        if token:
            query["token"] = token
        url = urlunparse((scheme, parsed.netloc, path, "", urlencode(query), ""))
        return cls(url, kernel_id=kernel_id, session_id=session_id, **kwargs)
        
    @property
    def is_connected(self) -> bool:
        return self._ws is not None
        
    async def connect(self):
        """Open the websocket and start reading messages"""
        if self._ws is not None:
            return
        logger.info(f"Connecting to kernel {self.id}")
        self._ws = await asyncio.wait_for(
            websockets.connect(self.url, max_size=None),
            timeout=self.connection_timeout
        )
        self._reader = asyncio.get_running_loop().create_task(self._read_loop())
        self._set_status("connected")
        
    async def disconnect(self):
        """Close the websocket"""
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None
        self._fail_pending(ConnectionError("Kernel connection closed"))
        self._set_status("disconnected")
        
    async def request_comm_info(self, target_name: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        content = {"target_name": target_name} if target_name else {}
        msg = self._message("comm_info_request", content)
        reply_future = asyncio.get_running_loop().create_future()
        self._pending_replies[msg["header"]["msg_id"]] = reply_future
        await self._send(msg)
        reply = await reply_future
        return reply.get("content", {}).get("comms", {})
        
    def send_comm_message(self, comm: Comm, msg_type: str, content: Dict[str, Any],
                          metadata: Optional[Dict[str, Any]] = None,
                          buffers: Optional[List[bytes]] = None) -> str:
        msg = self._message(msg_type, content, metadata=metadata, buffers=buffers)
        spawn(self._send(msg), f"send {msg_type}", comm_id=comm.comm_id)
        return msg["header"]["msg_id"]
        
    def handle_message(self, msg: Dict[str, Any]):
        self.messages_received += 1
        msg_type = msg_type_of(msg)
        
        if msg_type == "comm_info_reply":
            parent_id = msg.get("parent_header", {}).get("msg_id")
            future = self._pending_replies.pop(parent_id, None)
            if future is not None and not future.done():
                future.set_result(msg)
            return
            
        if msg_type == "status":
            self._handle_execution_state(msg.get("content", {}).get("execution_state", ""))
            return
            
        super().handle_message(msg)
        
    def _handle_execution_state(self, execution_state: str):
        if execution_state in RESTARTING_STATES:
            self._set_status("restarting")
        elif self.status == "restarting" and execution_state in ("starting", "idle"):
            # Back after a restart
            self._set_status("connected")
        elif execution_state == "dead":
            self._set_status("dead")
            
    def _message(self, msg_type: str, content: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        return create_message(msg_type, content, channel="shell",
                              session=self.session_id, username=self.username, **kwargs)
        
    async def _send(self, msg: Dict[str, Any]):
        if self._ws is None:
            raise ConnectionError(f"Kernel {self.id} is not connected")
        await self._ws.send(encode_message(msg))
        self.messages_sent += 1
        
    async def _read_loop(self):
        try:
            async for frame in self._ws:
                try:
                    self.handle_message(decode_message(frame))
                except Exception as e:
                    logger.error(f"Error handling kernel message: {e}", exc_info=True)
        except websockets.ConnectionClosed as e:
            logger.warning(f"Kernel websocket closed: {e}")
        finally:
            self._fail_pending(ConnectionError("Kernel connection closed"))
            
    def _fail_pending(self, error: Exception):
        pending, self._pending_replies = self._pending_replies, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)
                
    def get_stats(self) -> Dict[str, Any]:
        return {
            "kernel_id": self.id,
            "status": self.status,
            "connected": self.is_connected,
            "messages_sent": self.messages_sent,
            "messages_received": self.messages_received,
            "open_comms": len(self._comms),
            "pending_replies": len(self._pending_replies),
        }

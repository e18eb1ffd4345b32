"""
Jupyter kernel message helpers and the websocket wire codec
"""

import json
import struct
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from ..core.exceptions import InvalidMessageError

KERNEL_PROTOCOL_VERSION = "5.3"


def new_msg_id() -> str:
    return uuid.uuid4().hex


def create_message(msg_type: str,
                   content: Dict[str, Any],
                   channel: str = "shell",
                   session: str = "",
                   username: str = "",
                   metadata: Optional[Dict[str, Any]] = None,
                   buffers: Optional[List[bytes]] = None,
                   parent_header: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build a kernel message
    
    Args:
        msg_type: Message type (comm_open, comm_msg, comm_info_request, ...)
        content: Message content
        channel: Kernel channel the message travels on
        session: Client session id
        username: Client user name
        metadata: Message metadata
        buffers: Binary buffers sent alongside the JSON message
        parent_header: Header of the message this one answers
        
    Returns:
        Message dict
    """
    return {
        "header": {
            "msg_id": new_msg_id(),
            "msg_type": msg_type,
            "session": session,
            "username": username,
            "date": datetime.now(timezone.utc).isoformat(),
            "version": KERNEL_PROTOCOL_VERSION,
        },
        "parent_header": parent_header or {},
        "metadata": metadata or {},
        "content": content,
        "channel": channel,
        "buffers": list(buffers or []),
    }


def msg_type_of(msg: Dict[str, Any]) -> str:
    return msg.get("header", {}).get("msg_type") or msg.get("msg_type", "")


def serialize_binary_message(msg: Dict[str, Any]) -> bytes:
    """
    Serialize a message with buffers into one binary websocket frame.

    Layout: ``!I`` buffer count, ``!I`` offsets, JSON message, raw buffers.
    """
    msg = dict(msg)
    buffers = [bytes(b) for b in msg.pop("buffers", [])]
    buffers.insert(0, json.dumps(msg, default=str).encode("utf8"))
    nbufs = len(buffers)
    offsets = [4 * (nbufs + 1)]
    for buf in buffers[:-1]:
        offsets.append(offsets[-1] + len(buf))
    header = struct.pack("!" + "I" * (nbufs + 1), nbufs, *offsets)
    return header + b"".join(buffers)


def deserialize_binary_message(bmsg: bytes) -> Dict[str, Any]:
    """Inverse of serialize_binary_message"""
    if len(bmsg) < 8:
        raise InvalidMessageError("Binary message too short", {"length": len(bmsg)})
    nbufs = struct.unpack("!I", bmsg[:4])[0]
    offsets = list(struct.unpack("!" + "I" * nbufs, bmsg[4:4 * (nbufs + 1)]))
    offsets.append(None)
    bufs = [bmsg[start:stop] for start, stop in zip(offsets[:-1], offsets[1:])]
    msg = json.loads(bufs[0].decode("utf8"))
    msg["buffers"] = bufs[1:]
    return msg


def encode_message(msg: Dict[str, Any]):
    """Text frame for plain messages, binary frame when buffers are attached"""
    if msg.get("buffers"):
        return serialize_binary_message(msg)
    plain = {k: v for k, v in msg.items() if k != "buffers"}
    return json.dumps(plain, default=str)


def decode_message(frame) -> Dict[str, Any]:
    if isinstance(frame, (bytes, bytearray, memoryview)):
        return deserialize_binary_message(bytes(frame))
    msg = json.loads(frame)
    msg.setdefault("buffers", [])
    return msg


def validate_update_payload(data: Any) -> None:
    """
    Check the shape of a comm ``update`` payload
    
    Raises:
        InvalidMessageError: If ``state`` is not a mapping or ``buffer_paths``
            is not a list of paths
    """
    if not isinstance(data, dict):
        raise InvalidMessageError("Comm data must be a mapping", {"data": repr(data)})
    if not isinstance(data.get("state"), dict):
        raise InvalidMessageError("Update message has no state mapping", {"method": data.get("method")})
    paths = data.get("buffer_paths", [])
    if not isinstance(paths, list) or not all(isinstance(p, list) for p in paths):
        raise InvalidMessageError("buffer_paths must be a list of paths", {"buffer_paths": repr(paths)})

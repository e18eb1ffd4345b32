"""
Frontend widget models synchronized with kernel-side widgets
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Callable, TYPE_CHECKING

from ..core.exceptions import CommClosedError
from ..events import EventBus
from ..kernel.base import Comm
from ..kernel.messages import validate_update_payload
from .buffers import put_buffers, remove_buffers

if TYPE_CHECKING:
    from .view import WidgetView

logger = logging.getLogger(__name__)

# Prefix of a model reference inside serialized state
MODEL_REF_PREFIX = "IPY_MODEL_"


async def unpack_models(value: Any, manager) -> Any:
    """Replace ``IPY_MODEL_<id>`` references, recursively, with the models they name"""
    if isinstance(value, (list, tuple)):
        return list(await asyncio.gather(*(unpack_models(item, manager) for item in value)))
    if isinstance(value, dict):
        keys = list(value)
        unpacked = await asyncio.gather(*(unpack_models(value[key], manager) for key in keys))
        return dict(zip(keys, unpacked))
    if isinstance(value, str) and value.startswith(MODEL_REF_PREFIX):
        return await manager.get_model(value[len(MODEL_REF_PREFIX):])
    return value


def pack_models(value: Any, manager=None) -> Any:
    """Inverse of unpack_models"""
    if isinstance(value, WidgetModel):
        return MODEL_REF_PREFIX + value.model_id
    if isinstance(value, (list, tuple)):
        return [pack_models(item, manager) for item in value]
    if isinstance(value, dict):
        return {key: pack_models(item, manager) for key, item in value.items()}
    return value


@dataclass
class ModelOptions:
    """Type descriptor and identity of a model to construct"""
    model_name: str
    model_module: str
    model_module_version: str = ""
    model_id: Optional[str] = None
    comm: Optional[Comm] = None
    
    @classmethod
    def from_state(cls, state: Dict[str, Any], **kwargs) -> "ModelOptions":
        """Read the descriptor carried in a widget state"""
        return cls(
            model_name=state.get("_model_name", ""),
            model_module=state.get("_model_module", ""),
            model_module_version=state.get("_model_module_version", ""),
            **kwargs
        )
        
    @property
    def resolved_id(self) -> Optional[str]:
        if self.model_id:
            return self.model_id
        if self.comm is not None:
            return self.comm.comm_id
        return None


class WidgetModel:
    """
    Base class for widget models.

    Subclasses are exported from widget modules and looked up by name. An
    attribute listed in ``serializers`` is passed through its ``deserialize``
    (and ``serialize``) callable when state crosses the comm.
    """
    
    serializers: Dict[str, Dict[str, Callable]] = {}
    defaults: Dict[str, Any] = {}
    
    def __init__(self, attributes: Dict[str, Any], *,
                 model_id: str,
                 widget_manager,
                 options: Optional[ModelOptions] = None,
                 comm: Optional[Comm] = None):
        self.model_id = model_id
        self.widget_manager = widget_manager
        self.options = options
        self.events = EventBus(max_history=0)
        self.views: List["WidgetView"] = []
        self.is_closed = False
        self._state: Dict[str, Any] = {**self.defaults, **attributes}
        
        self.comm = None
        self.comm_live = False
        if comm is not None:
            self.attach_comm(comm)

    @classmethod
    async def deserialize_state(cls, state: Dict[str, Any], manager) -> Dict[str, Any]:
        """Turn serialized state into attributes"""
        attributes = dict(state)
        for key, serializer in cls.serializers.items():
            deserialize = serializer.get("deserialize")
            if key in attributes and deserialize is not None:
                value = deserialize(attributes[key], manager)
                if inspect.isawaitable(value):
                    value = await value
                attributes[key] = value
        return attributes
        
    def serialize_state(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        """Turn attributes into JSON-able state (binary values left in place)"""
        state = {}
        for key, value in attributes.items():
            serialize = self.serializers.get(key, {}).get("serialize", pack_models)
            state[key] = serialize(value, self.widget_manager)
        return state
        
    # State access
    
    def get(self, key: str, default: Any = None) -> Any:
        return self._state.get(key, default)
        
    def set(self, key: str, value: Any):
        self.set_state({key: value})
        
    def set_state(self, attributes: Dict[str, Any]):
        """Apply attributes and emit ``change`` with the changed keys"""
        changed = [key for key, value in attributes.items() if self._state.get(key, _MISSING) != value]
        self._state.update(attributes)
        if changed:
            self.events.emit("change", {"keys": changed}, source=self.model_id)
            
    def get_state(self, drop_defaults: bool = False) -> Dict[str, Any]:
        state = dict(self._state)
        if drop_defaults:
            state = {key: value for key, value in state.items()
                     if key not in self.defaults or self.defaults[key] != value}
        return state
        
    @property
    def name(self) -> str:
        return self.options.model_name if self.options else type(self).__name__
        
    @property
    def module(self) -> str:
        return self.options.model_module if self.options else ""
        
    @property
    def module_version(self) -> str:
        return self.options.model_module_version if self.options else ""
        
    # Comm traffic
    
    def send_state(self, keys: Optional[List[str]] = None) -> str:
        """Push (part of) the state to the kernel"""
        attributes = self._state if keys is None else {key: self._state[key] for key in keys}
        state, buffer_paths, buffers = remove_buffers(self.serialize_state(attributes))
        return self._comm_send({"method": "update", "state": state, "buffer_paths": buffer_paths}, buffers)
        
    def send(self, content: Dict[str, Any], buffers: Optional[List[bytes]] = None) -> str:
        """Send a custom message to the kernel-side widget"""
        return self._comm_send({"method": "custom", "content": content}, buffers)
        
    def _comm_send(self, data: Dict[str, Any], buffers: Optional[List[bytes]]) -> str:
        if not self.comm_live or self.comm is None:
            raise CommClosedError(self.comm.comm_id if self.comm is not None else self.model_id)
        return self.comm.send(data, buffers=buffers)
        
    async def _handle_comm_msg(self, msg: Dict[str, Any]):
        data = msg.get("content", {}).get("data", {})
        method = data.get("method")
        
        if method in ("update", "echo_update"):
            validate_update_payload(data)
            state = data["state"]
            put_buffers(state, data.get("buffer_paths", []), msg.get("buffers", []))
            attributes = await self.deserialize_state(state, self.widget_manager)
            self.set_state(attributes)
        elif method == "custom":
            self.events.emit("msg:custom", {
                "content": data.get("content"),
                "buffers": msg.get("buffers", [])
            }, source=self.model_id)
        else:
            logger.debug(f"Model {self.model_id} ignoring comm message method {method!r}")
            
    def _handle_comm_closed(self, msg: Dict[str, Any]):
        self.close(comm_closed=True)
        
    # Lifecycle

    def attach_comm(self, comm: Comm):
        """Listen on ``comm`` and send through it (also after a reconnect)"""
        if self.comm is not None and self.comm is not comm:
            self.comm.dispose()
        self.comm = comm
        comm.on_msg(self._handle_comm_msg)
        comm.on_close(self._handle_comm_closed)
        self.comm_live = not comm.is_disposed

    def disconnect(self):
        """Sever the comm without closing the kernel-side widget"""
        self.comm_live = False
        if self.comm is not None:
            self.comm.dispose()
            
    def close(self, comm_closed: bool = False):
        """Close the model, its views and (unless the kernel closed it) its comm"""
        if self.is_closed:
            return
        self.is_closed = True
        comm, self.comm = self.comm, None
        self.comm_live = False
        if comm is not None and not comm_closed and not comm.is_disposed:
            comm.close()
        for view in list(self.views):
            view.remove()
        self.events.emit("comm:close", {"model_id": self.model_id}, source=self.model_id)
        self.events.emit("close", {"model_id": self.model_id}, source=self.model_id)
        
    def __repr__(self):
        return f"<{type(self).__name__} {self.model_id}>"


_MISSING = object()

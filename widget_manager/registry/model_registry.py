"""
Registry of widget models by id.

Each id owns one slot: an ``asyncio.Task`` that resolves to the model. The slot
is allocated synchronously in ``new_model``, before any awaiting, so models
created in the same loop turn can already look each other up while their
state is still being hydrated. A slot goes from pending to resolved exactly
once and is only dropped when its model closes or the registry is cleared.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.exceptions import ModelNotFoundError
from ..core.logging_config import log_error_with_context, log_with_context
from ..events import EventBus, EventTypes
from ..widgets.model import ModelOptions, WidgetModel

logger = logging.getLogger(__name__)

ClassLoader = Callable[[str, str, str], Awaitable[Any]]


class ModelRegistry:
    """Id → model slots, with lookups that cooperate with state restoration"""
    
    def __init__(self, load_class: ClassLoader, widget_manager=None,
                 event_bus: Optional[EventBus] = None):
        """
        Initialize model registry
        
        Args:
            load_class: Coroutine function (class name, module, version) → class
            widget_manager: Owner passed to models (used to resolve references)
            event_bus: Bus for model.created / model.closed events
        """
        self._load_class = load_class
        self.widget_manager = widget_manager if widget_manager is not None else self
        self.event_bus = event_bus
        self._slots: Dict[str, asyncio.Task] = {}
        
        # True while a restoration is running; lookups then fail fast
        self.reconciling = False
        # Most recently scheduled restoration
        self.restored: Optional[Awaitable[None]] = None
        
    # Slots
    
    def new_model(self, options: ModelOptions, serialized_state: Optional[Dict[str, Any]] = None) -> asyncio.Task:
        """
        Return the slot for the model described by ``options``, creating it if needed
        
        Args:
            options: Descriptor; the id comes from ``model_id`` or the comm
            serialized_state: State to hydrate the model from
            
        Returns:
            Task resolving to the model
        """
        model_id = options.resolved_id
        if not model_id:
            raise ValueError("Neither comm nor model_id provided in options object. At least one must exist.")
            
        existing = self._slots.get(model_id)
        if existing is not None:
            logger.debug(f"Model {model_id} already has a slot, reusing it")
            return existing
            
        slot = asyncio.get_running_loop().create_task(self._make_model(model_id, options, serialized_state or {}))
        self._slots[model_id] = slot
        slot.add_done_callback(lambda done: self._log_failure(model_id, options, done))
        return slot
        
    def get(self, model_id: str) -> Optional[asyncio.Task]:
        """The slot for ``model_id`` (pending or resolved), or None"""
        return self._slots.get(model_id)
        
    def has(self, model_id: str) -> bool:
        return model_id in self._slots
        
    def model_ids(self) -> List[str]:
        return list(self._slots)
        
    def resolved_models(self) -> List[WidgetModel]:
        """Models whose slot finished successfully"""
        return [
            slot.result() for slot in self._slots.values()
            if slot.done() and not slot.cancelled() and slot.exception() is None
        ]
        
    def remove(self, model_id: str) -> Optional[asyncio.Task]:
        return self._slots.pop(model_id, None)
        
    def clear(self):
        """Close every resolved model and drop all slots"""
        for model in self.resolved_models():
            model.close()
        for slot in self._slots.values():
            if not slot.done():
                slot.cancel()
        self._slots.clear()
        
    # Lookup
    
    async def get_model(self, model_id: str) -> WidgetModel:
        """
        Resolve a model by id
        
        An existing slot is awaited directly. Without a slot the lookup fails
        immediately while a restoration runs (restoration itself resolves
        references through here); otherwise it waits for the latest
        restoration and looks once more.
        
        Raises:
            ModelNotFoundError: No slot for ``model_id``
        """
        slot = self._slots.get(model_id)
        if slot is not None:
            return await slot
            
        if self.reconciling:
            raise ModelNotFoundError(model_id, restoring=True)
            
        await self._wait_restored()
        slot = self._slots.get(model_id)
        if slot is None:
            raise ModelNotFoundError(model_id)
        return await slot
        
    async def _wait_restored(self):
        restored = self.restored
        if restored is None:
            return
        try:
            await restored
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The restoration already reported its own failure
            logger.debug(f"Lookup continuing after failed restoration: {e}")
            
    # Construction
    
    async def _make_model(self, model_id: str, options: ModelOptions,
                          serialized_state: Dict[str, Any]) -> WidgetModel:
        model_class = await self._load_class(
            options.model_name, options.model_module, options.model_module_version
        )
        attributes = await model_class.deserialize_state(serialized_state, self.widget_manager)
        model = model_class(
            attributes,
            model_id=model_id,
            widget_manager=self.widget_manager,
            options=options,
            comm=options.comm,
        )
        model.events.on("close", lambda event: self._handle_model_closed(model_id, model))
        
        log_with_context(logger, logging.DEBUG, f"Created model {model_id}",
                         model_id=model_id, model_name=options.model_name,
                         model_module=options.model_module,
                         model_module_version=options.model_module_version,
                         live=options.comm is not None)
        if self.event_bus is not None:
            self.event_bus.emit(EventTypes.MODEL_CREATED, {
                "model_id": model_id,
                "model_name": options.model_name,
                "live": options.comm is not None
            }, source="model_registry")
        return model
        
    def _handle_model_closed(self, model_id: str, model: WidgetModel):
        slot = self._slots.get(model_id)
        if slot is not None and slot.done() and not slot.cancelled() \
                and slot.exception() is None and slot.result() is model:
            del self._slots[model_id]
        if self.event_bus is not None:
            self.event_bus.emit(EventTypes.MODEL_CLOSED, {"model_id": model_id}, source="model_registry")
            
    def _log_failure(self, model_id: str, options: ModelOptions, slot: asyncio.Task):
        if slot.cancelled():
            return
        error = slot.exception()
        if error is not None:
            log_error_with_context(logger, error, "model construction",
                                   model_id=model_id, model_name=options.model_name,
                                   model_module=options.model_module,
                                   model_module_version=options.model_module_version)

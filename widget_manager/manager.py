"""
Widget manager for a notebook document.

Owns the model registry of one document context. Models come from three
places: comms the kernel opens (``handle_comm_open``), live comms found when
restoring, and the state persisted in the notebook. Restoration runs when
the manager is created and again whenever the kernel reports "connected";
a kernel restart disconnects every model without dropping it.
"""

import asyncio
import logging
from typing import Dict, Any, List, Optional

from . import config
from .context.document import DocumentContext
from .core.exceptions import ManagerDisposedError, ProtocolVersionError
from .core.lifecycle import ChannelLifecycleController
from .display import DisplayBinder, ViewWrapper
from .events import EventTypes
from .kernel.base import Comm
from .reconciler import StateReconciler
from .registry.export_registry import ExportRegistry
from .registry.loader import ExportBundle
from .registry.model_registry import ModelRegistry
from .widgets.buffers import put_buffers
from .widgets.model import ModelOptions, WidgetModel
from .widgets.persisted import build_state
from .widgets.view import WidgetView

logger = logging.getLogger(__name__)


class WidgetManager:
    """Manages the widget models and views of a document context"""
    
    def __init__(self,
                 context: DocumentContext,
                 export_registry: Optional[ExportRegistry] = None,
                 comm_target_name: str = config.COMM_CONFIG["target_name"],
                 protocol_version: str = config.COMM_CONFIG["protocol_version"],
                 isolate_failures: bool = config.RESTORE_CONFIG["isolate_failures"]):
        """
        Initialize widget manager (requires a running event loop)
        
        Args:
            context: Document context (notebook, session, URL resolver)
            export_registry: Registry of widget modules; a new one by default
            comm_target_name: Comm target of widget comms
            protocol_version: Widget protocol version spoken by this frontend
            isolate_failures: Keep restoring other widgets when one fails
        """
        self._context: Optional[DocumentContext] = context
        self.events = context.events
        self.comm_target_name = comm_target_name
        self.protocol_version = protocol_version
        
        self.export_registry = export_registry or ExportRegistry(config.MODULE_CONFIG["caret_widened_modules"])
        self.registry = ModelRegistry(self.load_class, self, event_bus=self.events)
        self.reconciler = StateReconciler(
            self.registry,
            context.session,
            target_name=comm_target_name,
            event_bus=self.events,
            isolate_failures=isolate_failures,
        )
        self.display = DisplayBinder(self.load_class)
        self.lifecycle = ChannelLifecycleController(
            context.session,
            comm_target_name,
            on_comm_open=self.handle_comm_open,
            on_connected=self._handle_connected,
            on_restarting=self.disconnect,
        )
        self.lifecycle.attach()
        self._restored = self.reconciler.schedule(context.model)
        
    @property
    def context(self) -> Optional[DocumentContext]:
        return self._context
        
    @property
    def is_disposed(self) -> bool:
        return self._context is None
        
    @property
    def restored(self) -> asyncio.Task:
        """The most recently scheduled restoration"""
        return self._restored
        
    # Restoration
    
    async def restore_widgets(self, notebook=None) -> Dict[str, Any]:
        """Restore widgets from the kernel and the notebook's saved state"""
        self._check_not_disposed()
        self._restored = self.reconciler.schedule(notebook if notebook is not None else self._context.model)
        return await self._restored
        
    def _handle_connected(self):
        self._restored = self.reconciler.schedule(self._context.model)
        
    # Models
    
    async def get_model(self, model_id: str) -> WidgetModel:
        """
        Get a model by id
        
        Raises:
            ModelNotFoundError: If no model with that id exists
        """
        return await self.registry.get_model(model_id)
        
    def has_model(self, model_id: str) -> bool:
        return self.registry.has(model_id)
        
    def new_model(self, options: ModelOptions, serialized_state: Optional[Dict[str, Any]] = None) -> asyncio.Task:
        """Create a model, or return the pending or resolved one with the same id"""
        self._check_not_disposed()
        return self.registry.new_model(options, serialized_state)
        
    async def handle_comm_open(self, comm: Comm, msg: Dict[str, Any]) -> WidgetModel:
        """
        Create a model for a comm the kernel opened
        
        Raises:
            ProtocolVersionError: If the kernel speaks another protocol major version
        """
        self._check_not_disposed()
        version = (msg.get("metadata") or {}).get("version", "")
        expected_major = self.protocol_version.split(".", 1)[0]
        if version.split(".", 1)[0] != expected_major:
            raise ProtocolVersionError(version, expected_major)
            
        data = msg.get("content", {}).get("data", {})
        state = data.get("state", {})
        put_buffers(state, data.get("buffer_paths", []), msg.get("buffers", []))
        return await self.new_model(ModelOptions.from_state(state, comm=comm), state)
        
    async def set_state(self, state: Dict[str, Any]) -> List[WidgetModel]:
        """Load a widget state blob (versioned or flat) into the registry"""
        self._check_not_disposed()
        return await self.reconciler.set_state(state)
        
    def filter_existing_model_state(self, state: Dict[str, Any]) -> Dict[str, Any]:
        return self.reconciler.filter_existing_model_state(state)
        
    def get_state(self, drop_defaults: bool = False) -> Dict[str, Any]:
        """Versioned state blob of every resolved model"""
        return build_state(self.registry.resolved_models(), drop_defaults)
        
    # Modules
    
    def register(self, name: str, version: str, exports: Any) -> ExportBundle:
        """Register a widget module's exports under a semver range"""
        return self.export_registry.register(name, version, exports)
        
    async def load_class(self, class_name: str, module_name: str, module_version: str) -> Any:
        return await self.export_registry.load_class(class_name, module_name, module_version)
        
    # Views
    
    async def create_view(self, model: WidgetModel, options: Optional[Dict[str, Any]] = None) -> WidgetView:
        return await self.display.create_view(model, options)
        
    async def display_view(self, msg: Any, view: WidgetView, options: Optional[Dict[str, Any]] = None) -> ViewWrapper:
        """Return a displayable surface for ``view``"""
        return await self.display.display_view(msg, view, options)
        
    async def display_model(self, msg: Any, model: WidgetModel, options: Optional[Dict[str, Any]] = None) -> ViewWrapper:
        return await self.display.display_model(msg, model, options)
        
    async def resolve_url(self, url: str) -> str:
        """Resolve a URL relative to the current notebook location"""
        self._check_not_disposed()
        resolver = self._context.url_resolver
        partial = await resolver.resolve_url(url)
        return await resolver.get_download_url(partial)
        
    # Lifecycle
    
    def disconnect(self):
        """
        Sever every widget comm, keeping the models
        
        Requests still waiting for a state reply fail with CommClosedError.
        """
        models = self.registry.resolved_models()
        for model in models:
            model.disconnect()
            
        kernel = self._context.session.kernel if self._context is not None else None
        if kernel is not None:
            for comm in kernel.list_comms(self.comm_target_name):
                comm.handle_close({"content": {"comm_id": comm.comm_id, "data": {}}, "metadata": {}, "buffers": []})
                
        logger.info(f"Disconnected {len(models)} widget models")
        self.events.emit(EventTypes.MANAGER_DISCONNECTED, {"models": len(models)}, source="widget_manager")
        
    def clear_state(self):
        """Close every model and empty the registry"""
        self.display.clear()
        self.registry.clear()
        
    def dispose(self):
        """Release the manager; safe to call more than once"""
        if self.is_disposed:
            return
        self.lifecycle.dispose()
        self.clear_state()
        self._context = None
        logger.info("Widget manager disposed")
        self.events.emit(EventTypes.MANAGER_DISPOSED, {}, source="widget_manager")
        
    def _check_not_disposed(self):
        if self.is_disposed:
            raise ManagerDisposedError()
            
    def get_stats(self) -> Dict[str, Any]:
        return {
            "disposed": self.is_disposed,
            "models": len(self.registry.model_ids()),
            "resolved_models": len(self.registry.resolved_models()),
            "modules": self.export_registry.get_modules(),
            "lifecycle": self.lifecycle.get_stats(),
            "reconciler": self.reconciler.get_stats(),
        }

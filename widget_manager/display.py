"""
Displayable surfaces for widget views
"""

import asyncio
import logging
from typing import Dict, Any, Optional, Callable, Awaitable

from .events import SystemEvent
from .widgets.model import WidgetModel
from .widgets.view import WidgetView

logger = logging.getLogger(__name__)


class ViewWrapper:
    """Surface holding one view, attached to and detached from visible containers"""
    
    def __init__(self, view: WidgetView):
        self.view: Optional[WidgetView] = view
        self.container = None
        self.is_disposed = False
        self.attach_count = 0
        view.on("remove", self._handle_view_removed)
        
    @property
    def is_attached(self) -> bool:
        return self.container is not None
        
    def attach(self, container: Any):
        """Place the surface in ``container``; the view is told it was displayed"""
        if self.is_disposed:
            raise RuntimeError("Cannot attach a disposed view wrapper")
        self.container = container
        self.on_after_attach()
        
    def detach(self):
        self.container = None
        
    def on_after_attach(self):
        self.attach_count += 1
        self.view.trigger("displayed")
        
    def dispose(self):
        """Release the surface and remove its view"""
        if self.is_disposed:
            return
        self.is_disposed = True
        self.container = None
        view, self.view = self.view, None
        if view is not None and not view.is_removed:
            view.remove()
            
    def _handle_view_removed(self, event: SystemEvent):
        self.dispose()
        
    def __repr__(self):
        state = "disposed" if self.is_disposed else ("attached" if self.is_attached else "detached")
        return f"<ViewWrapper {state}>"


class DisplayBinder:
    """Creates views for models and one displayable surface per model"""
    
    def __init__(self, load_class: Callable[[str, str, str], Awaitable[Any]]):
        self._load_class = load_class
        self._surfaces: Dict[str, asyncio.Task] = {}
        
    async def create_view(self, model: WidgetModel, options: Optional[Dict[str, Any]] = None) -> WidgetView:
        """Instantiate and render the view class named in the model's state"""
        view_class = await self._load_class(
            model.get("_view_name"),
            model.get("_view_module"),
            model.get("_view_module_version", ""),
        )
        view = view_class(model, options)
        view.render()
        return view
        
    async def display_view(self, msg: Any, view: WidgetView, options: Optional[Dict[str, Any]] = None) -> ViewWrapper:
        """The view's own surface, or a new wrapper around it"""
        if view.surface is None or view.surface.is_disposed:
            view.surface = ViewWrapper(view)
        return view.surface
        
    async def display_model(self, msg: Any, model: WidgetModel, options: Optional[Dict[str, Any]] = None) -> ViewWrapper:
        """The surface for ``model``, created with its first view if needed"""
        pending = self._surfaces.get(model.model_id)
        if pending is None or self._is_stale(pending):
            pending = asyncio.get_running_loop().create_task(self._make_surface(msg, model, options))
            if model.is_closed:
                return await pending
            if model.model_id not in self._surfaces:
                model.events.once("close", lambda event: self._evict(model.model_id))
            self._surfaces[model.model_id] = pending
        return await pending
        
    def _evict(self, model_id: str):
        pending = self._surfaces.pop(model_id, None)
        if pending is not None and not pending.done():
            pending.cancel()
        logger.debug(f"Dropped surface for closed model {model_id}")
        
    async def _make_surface(self, msg: Any, model: WidgetModel, options: Optional[Dict[str, Any]]) -> ViewWrapper:
        view = await self.create_view(model, options)
        surface = await self.display_view(msg, view, options)
        logger.debug(f"Created surface for model {model.model_id}")
        return surface
        
    @staticmethod
    def _is_stale(pending: asyncio.Task) -> bool:
        if not pending.done():
            return False
        if pending.cancelled() or pending.exception() is not None:
            return True
        return pending.result().is_disposed
        
    def get_surface(self, model_id: str) -> Optional[ViewWrapper]:
        pending = self._surfaces.get(model_id)
        if pending is None or not pending.done() or self._is_stale(pending):
            return None
        return pending.result()
        
    def clear(self):
        """Dispose every surface"""
        for pending in self._surfaces.values():
            if not pending.done():
                pending.cancel()
            elif not self._is_stale(pending):
                pending.result().dispose()
        self._surfaces.clear()

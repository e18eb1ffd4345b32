"""
Base class for widget views
"""

from typing import Dict, Any, Optional, Callable

from ..events import EventBus, SystemEvent
from .model import WidgetModel


class WidgetView:
    """A rendering of a widget model, owned by the rendering layer"""
    
    def __init__(self, model: WidgetModel, options: Optional[Dict[str, Any]] = None):
        self.model = model
        self.options = options or {}
        self.events = EventBus(max_history=0)
        # Displayable surface wrapping this view, set by the display binder
        self.surface = None
        self.is_removed = False
        model.views.append(self)
        
    def render(self):
        """Hook for subclasses: build the view's content"""
        
    def on(self, event_type: str, callback: Callable[[SystemEvent], None]):
        self.events.on(event_type, callback)
        
    def trigger(self, event_type: str, **data):
        self.events.emit(event_type, data, source=self.model.model_id)
        
    def remove(self):
        """Tear the view down and tell listeners (its surface included)"""
        if self.is_removed:
            return
        self.is_removed = True
        if self in self.model.views:
            self.model.views.remove(self)
        self.trigger("remove")

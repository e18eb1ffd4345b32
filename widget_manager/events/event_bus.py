"""
Event bus for tracking and broadcasting widget manager events
"""

import time
import uuid
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Any, List, Callable, Optional

logger = logging.getLogger(__name__)


class SystemEvent:
    """Represents a system event"""
    
    def __init__(self, event_type: str, data: Dict[str, Any], source: str = None):
        self.id = str(uuid.uuid4())
        self.type = event_type
        self.data = data
        self.source = source or "system"
        self.timestamp = time.time()
        self.datetime = datetime.now().isoformat()
        
    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp,
            "datetime": self.datetime
        }


class EventBus:
    """
    Event bus for signals between the session, the manager and models.

    Listeners run synchronously inside ``emit`` on the caller's event loop
    turn, so a listener may rely on state the emitter set just before.
    """
    
    def __init__(self, max_history: int = 1000):
        self.listeners: Dict[str, List[Callable]] = defaultdict(list)
        self.event_history: List[SystemEvent] = []
        self.max_history = max_history
        
        # Performance metrics
        self.event_counts = defaultdict(int)
        
    def emit(self, event_type: str, data: Optional[Dict[str, Any]] = None, source: str = None) -> SystemEvent:
        """Emit an event and notify listeners"""
        event = SystemEvent(event_type, data if data is not None else {}, source)
        
        self.event_counts[event.type] += 1
        
        if self.max_history:
            self.event_history.append(event)
            if len(self.event_history) > self.max_history:
                self.event_history.pop(0)
        
        # Copy so listeners may unsubscribe themselves while being notified
        for listener in list(self.listeners.get(event.type, [])):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in event listener for {event.type}: {e}", exc_info=True)
                
        for listener in list(self.listeners.get("*", [])):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in wildcard event listener: {e}", exc_info=True)
                
        return event
        
    def on(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Register a listener for specific event type"""
        self.listeners[event_type].append(callback)
        
    def once(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Register a listener that is removed after its first call"""
        def wrapper(event):
            self.off(event_type, wrapper)
            callback(event)
        self.on(event_type, wrapper)
        
    def on_all(self, callback: Callable[[SystemEvent], None]):
        """Register a listener for all events"""
        self.listeners["*"].append(callback)
        
    def off(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Remove a listener"""
        if callback in self.listeners[event_type]:
            self.listeners[event_type].remove(callback)
            
    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics"""
        return {
            "total_events": sum(self.event_counts.values()),
            "event_counts": dict(self.event_counts),
            "history_size": len(self.event_history),
            "listener_counts": {
                event_type: len(listeners)
                for event_type, listeners in self.listeners.items()
            }
        }
        
    def get_recent_events(self, count: int = 50, event_type: str = None) -> List[Dict[str, Any]]:
        """Get recent events from history"""
        events = self.event_history[-count:]
        
        if event_type:
            events = [e for e in events if e.type == event_type]
            
        return [e.to_dict() for e in events]
        
    def shutdown(self):
        """Drop every listener"""
        self.listeners.clear()


# Event type constants
class EventTypes:
    # Session events
    KERNEL_CHANGED = "kernel.changed"
    KERNEL_STATUS_CHANGED = "kernel.status_changed"
    
    # Lifecycle events
    BINDING_TRANSITION = "binding.transition"
    COMM_TARGET_REGISTERED = "comm_target.registered"
    COMM_TARGET_REMOVED = "comm_target.removed"
    
    # Restore events
    RESTORE_START = "widgets.restore_start"
    RESTORE_COMPLETE = "widgets.restore_complete"
    RESTORE_ERROR = "widgets.restore_error"
    
    # Model events
    MODEL_CREATED = "model.created"
    MODEL_CLOSED = "model.closed"
    
    # Manager events
    MANAGER_DISCONNECTED = "manager.disconnected"
    MANAGER_DISPOSED = "manager.disposed"

"""
Event tracking for the widget manager
"""

from .event_bus import EventBus, EventTypes, SystemEvent

__all__ = ['EventBus', 'EventTypes', 'SystemEvent']

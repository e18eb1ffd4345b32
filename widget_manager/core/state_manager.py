"""
Binding state manager for tracking the manager's attachment to a kernel
"""

import time
import logging
from enum import Enum
from typing import Dict, Any, Optional, Callable, List
from datetime import datetime

from ..events import EventBus, EventTypes

logger = logging.getLogger(__name__)


class BindingState(Enum):
    """Comm target binding states"""
    UNBOUND = "unbound"  # No kernel, or handler removed from the previous kernel
    BOUND = "bound"      # Comm-open handler registered on the current kernel
    DISPOSED = "disposed"


class StateTransition:
    """Represents a state transition"""
    def __init__(self, from_state: BindingState, to_state: BindingState, reason: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        self.timestamp = time.time()
        self.datetime = datetime.now()
        
    def __str__(self):
        return f"{self.from_state.value} → {self.to_state.value} ({self.reason})"


class StateManager:
    """Manages binding state and enforces valid transitions"""
    
    VALID_TRANSITIONS = {
        BindingState.UNBOUND: [BindingState.BOUND, BindingState.DISPOSED],
        BindingState.BOUND: [BindingState.UNBOUND, BindingState.DISPOSED],
        BindingState.DISPOSED: []  # Terminal state
    }
    
    def __init__(self, event_bus: Optional[EventBus] = None, max_history: int = 100):
        self.current_state = BindingState.UNBOUND
        self.event_bus = event_bus
        
        self.transitions: List[StateTransition] = []
        self.max_history = max_history
        
        self.state_listeners: List[Callable[[BindingState, BindingState], None]] = []
        
    def get_state(self) -> BindingState:
        """Get current state"""
        return self.current_state
            
    def transition_to(self, new_state: BindingState, reason: str = "") -> bool:
        """
        Transition to a new state
        
        Args:
            new_state: Target state
            reason: Reason for transition
            
        Returns:
            True if transition successful, False if invalid
        """
        if not self._is_valid_transition(self.current_state, new_state):
            logger.warning(f"Invalid binding transition: {self.current_state.value} → {new_state.value}")
            return False
            
        transition = StateTransition(self.current_state, new_state, reason)
        self.transitions.append(transition)
        if len(self.transitions) > self.max_history:
            self.transitions = self.transitions[-self.max_history:]
            
        old_state = self.current_state
        self.current_state = new_state
        
        logger.debug(f"Binding transition: {transition}")
        
        if self.event_bus is not None:
            self.event_bus.emit(EventTypes.BINDING_TRANSITION, {
                "from_state": old_state.value,
                "to_state": new_state.value,
                "reason": reason
            }, source="state_manager")
            
        self._notify_listeners(old_state, new_state)
        
        return True
        
    def add_listener(self, listener: Callable[[BindingState, BindingState], None]):
        """Add state change listener"""
        self.state_listeners.append(listener)
        
    def remove_listener(self, listener: Callable[[BindingState, BindingState], None]):
        """Remove state change listener"""
        if listener in self.state_listeners:
            self.state_listeners.remove(listener)
            
    def _is_valid_transition(self, from_state: BindingState, to_state: BindingState) -> bool:
        valid_targets = self.VALID_TRANSITIONS.get(from_state, [])
        return to_state in valid_targets
        
    def _notify_listeners(self, old_state: BindingState, new_state: BindingState):
        for listener in self.state_listeners:
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in binding state listener: {e}", exc_info=True)
                
    def is_bound(self) -> bool:
        return self.current_state == BindingState.BOUND
        
    def is_disposed(self) -> bool:
        return self.current_state == BindingState.DISPOSED
            
    def get_transition_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Get recent state transitions"""
        recent = self.transitions[-limit:] if self.transitions else []
        return [
            {
                "from": t.from_state.value,
                "to": t.to_state.value,
                "reason": t.reason,
                "timestamp": t.timestamp,
                "datetime": t.datetime.isoformat()
            }
            for t in recent
        ]

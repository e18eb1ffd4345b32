"""
Core components for kernel binding and error handling
"""

from .exceptions import (
    WidgetManagerError,
    ModuleResolutionError,
    ClassNotFoundError,
    ModelNotFoundError,
    CommClosedError,
    ProtocolVersionError,
    UnsupportedStateError,
    InvalidMessageError,
    ManagerDisposedError,
    ConfigValidationError,
)
from .state_manager import StateManager, BindingState
from .lifecycle import ChannelLifecycleController

__all__ = [
    "WidgetManagerError",
    "ModuleResolutionError",
    "ClassNotFoundError",
    "ModelNotFoundError",
    "CommClosedError",
    "ProtocolVersionError",
    "UnsupportedStateError",
    "InvalidMessageError",
    "ManagerDisposedError",
    "ConfigValidationError",
    "StateManager",
    "BindingState",
    "ChannelLifecycleController",
]

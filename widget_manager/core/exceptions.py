"""
Custom exceptions for the widget manager
"""

from typing import Optional, Dict, Any


class WidgetManagerError(Exception):
    """Base exception for all widget manager errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ModuleResolutionError(WidgetManagerError):
    """Raised when no registered export bundle satisfies a module version"""
    def __init__(self, module: str, version: str):
        self.module = module
        self.version = version
        super().__init__(
            f"Module {module}, semver range {version} is not registered as a widget module",
            {"module": module, "version": version}
        )


class ClassNotFoundError(WidgetManagerError):
    """Raised when a resolved export bundle lacks the requested class"""
    def __init__(self, class_name: str, module: str):
        self.class_name = class_name
        self.module = module
        super().__init__(
            f"Class {class_name} not found in module {module}",
            {"class_name": class_name, "module": module}
        )


class ModelNotFoundError(WidgetManagerError):
    """Raised when a model id has no registry slot"""
    def __init__(self, model_id: str, restoring: bool = False):
        self.model_id = model_id
        self.restoring = restoring
        reason = "while widget state is being restored" if restoring else "after widget state was restored"
        super().__init__(
            f"widget model {model_id!r} not found {reason}",
            {"model_id": model_id, "restoring": restoring}
        )


class CommClosedError(WidgetManagerError):
    """Raised when sending on a comm that was closed or severed"""
    def __init__(self, comm_id: str):
        self.comm_id = comm_id
        super().__init__(f"Comm {comm_id} is closed", {"comm_id": comm_id})


class ProtocolVersionError(WidgetManagerError):
    """Raised when a comm_open message uses an incompatible widget protocol"""
    def __init__(self, version: str, expected_major: str):
        self.version = version
        super().__init__(
            f"Wrong widget protocol version: received protocol version '{version}', "
            f"but was expecting major version '{expected_major}'",
            {"version": version, "expected_major": expected_major}
        )


class UnsupportedStateError(WidgetManagerError):
    """Raised when a persisted widget state blob has an unsupported format"""
    def __init__(self, version_major: Any):
        self.version_major = version_major
        super().__init__(
            f"Unsupported widget state format (version_major={version_major!r})",
            {"version_major": version_major}
        )


class InvalidMessageError(WidgetManagerError):
    """Raised when a comm message payload is malformed"""
    pass


class ManagerDisposedError(WidgetManagerError):
    """Raised when using a widget manager after dispose()"""
    def __init__(self):
        super().__init__("Widget manager is disposed")


class ConfigValidationError(WidgetManagerError):
    """Raised when configuration validation fails"""
    pass

"""
Registries for widget modules and widget models
"""

from .export_registry import ExportRegistry
from .loader import ExportBundle, discover_exports, load_exports
from .model_registry import ModelRegistry
from .semver_cache import SemVerCache

__all__ = [
    "ExportRegistry",
    "ExportBundle",
    "discover_exports",
    "load_exports",
    "ModelRegistry",
    "SemVerCache",
]

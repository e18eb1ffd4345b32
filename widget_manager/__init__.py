"""
Widget manager: reconciles live kernel widgets with widget state saved in notebooks
"""

from .context import DocumentContext, NotebookDocument, UrlResolver
from .display import DisplayBinder, ViewWrapper
from .manager import WidgetManager
from .reconciler import StateReconciler
from .registry import ExportRegistry, ModelRegistry, SemVerCache
from .widgets import ModelOptions, WidgetModel, WidgetView

__version__ = "0.1.0"

__all__ = [
    "DocumentContext",
    "NotebookDocument",
    "UrlResolver",
    "DisplayBinder",
    "ViewWrapper",
    "WidgetManager",
    "StateReconciler",
    "ExportRegistry",
    "ModelRegistry",
    "SemVerCache",
    "ModelOptions",
    "WidgetModel",
    "WidgetView",
]

"""
Widget models, views and buffer helpers
"""

from .buffers import put_buffers, remove_buffers
from .model import MODEL_REF_PREFIX, ModelOptions, WidgetModel, pack_models, unpack_models
from .view import WidgetView

__all__ = [
    "put_buffers",
    "remove_buffers",
    "MODEL_REF_PREFIX",
    "ModelOptions",
    "WidgetModel",
    "WidgetView",
    "pack_models",
    "unpack_models",
]

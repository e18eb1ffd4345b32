"""
Built-in models and views for the core Jupyter widget modules
"""

from .model import WidgetModel, unpack_models
from .view import WidgetView

BASE_MODULE = "@jupyter-widgets/base"
CONTROLS_MODULE = "@jupyter-widgets/controls"
MODULE_VERSION = "2.0.0"


class BaseWidgetModel(WidgetModel):
    defaults = {
        "_model_module": BASE_MODULE,
        "_model_module_version": MODULE_VERSION,
        "_view_module": BASE_MODULE,
        "_view_module_version": MODULE_VERSION,
    }


class LayoutModel(BaseWidgetModel):
    defaults = {**BaseWidgetModel.defaults, "_model_name": "LayoutModel", "_view_name": "LayoutView"}


class DOMWidgetModel(BaseWidgetModel):
    """Model with a layout reference"""
    serializers = {"layout": {"deserialize": unpack_models}}
    defaults = {**BaseWidgetModel.defaults, "_model_name": "DOMWidgetModel", "_dom_classes": []}


class DescriptionStyleModel(BaseWidgetModel):
    defaults = {
        **BaseWidgetModel.defaults,
        "_model_module": CONTROLS_MODULE,
        "_model_name": "DescriptionStyleModel",
        "_view_name": "StyleView",
    }


class ControlModel(DOMWidgetModel):
    serializers = {
        "layout": {"deserialize": unpack_models},
        "style": {"deserialize": unpack_models},
    }
    defaults = {
        **DOMWidgetModel.defaults,
        "_model_module": CONTROLS_MODULE,
        "_view_module": CONTROLS_MODULE,
        "description": "",
    }


class IntSliderModel(ControlModel):
    defaults = {**ControlModel.defaults, "_model_name": "IntSliderModel", "_view_name": "IntSliderView",
                "value": 0, "min": 0, "max": 100, "step": 1}


class FloatSliderModel(ControlModel):
    defaults = {**ControlModel.defaults, "_model_name": "FloatSliderModel", "_view_name": "FloatSliderView",
                "value": 0.0, "min": 0.0, "max": 10.0, "step": 0.1}


class TextModel(ControlModel):
    defaults = {**ControlModel.defaults, "_model_name": "TextModel", "_view_name": "TextView", "value": ""}


class BoxModel(ControlModel):
    """Container whose ``children`` are model references"""
    serializers = {
        **ControlModel.serializers,
        "children": {"deserialize": unpack_models},
    }
    defaults = {**ControlModel.defaults, "_model_name": "BoxModel", "_view_name": "BoxView", "children": []}


class HBoxModel(BoxModel):
    defaults = {**BoxModel.defaults, "_model_name": "HBoxModel", "_view_name": "HBoxView"}


class VBoxModel(BoxModel):
    defaults = {**BoxModel.defaults, "_model_name": "VBoxModel", "_view_name": "VBoxView"}


class DOMWidgetView(WidgetView):
    def render(self):
        self.children = [getattr(child, "model_id", child) for child in self.model.get("children", [])]


BASE_EXPORTS = {
    "LayoutModel": LayoutModel,
    "DOMWidgetModel": DOMWidgetModel,
    "LayoutView": WidgetView,
    "StyleView": WidgetView,
    "DOMWidgetView": DOMWidgetView,
}

CONTROLS_EXPORTS = {
    "DescriptionStyleModel": DescriptionStyleModel,
    "SliderStyleModel": DescriptionStyleModel,
    "IntSliderModel": IntSliderModel,
    "FloatSliderModel": FloatSliderModel,
    "TextModel": TextModel,
    "BoxModel": BoxModel,
    "HBoxModel": HBoxModel,
    "VBoxModel": VBoxModel,
    "IntSliderView": DOMWidgetView,
    "FloatSliderView": DOMWidgetView,
    "TextView": DOMWidgetView,
    "BoxView": DOMWidgetView,
    "HBoxView": DOMWidgetView,
    "VBoxView": DOMWidgetView,
}


# Releases of the core modules these exports stand in for (ipywidgets 7 and 8)
BUILTIN_VERSIONS = {
    BASE_MODULE: ["1.2.0", MODULE_VERSION],
    CONTROLS_MODULE: ["1.5.0", MODULE_VERSION],
}


def register_builtin_modules(manager):
    """Register the core widget modules on ``manager``"""
    for version in BUILTIN_VERSIONS[BASE_MODULE]:
        manager.register(BASE_MODULE, version, BASE_EXPORTS)
    for version in BUILTIN_VERSIONS[CONTROLS_MODULE]:
        manager.register(CONTROLS_MODULE, version, CONTROLS_EXPORTS)

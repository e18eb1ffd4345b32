import argparse
import asyncio

import pytest

from widget_manager.context import DocumentContext
from widget_manager.main import build_demo, build_parser, describe_registry, parse_module_option
from widget_manager.manager import WidgetManager
from widget_manager.widgets.builtin import register_builtin_modules


def test_demo_restores_live_and_saved_widgets():
    async def scenario():
        kernel, notebook = build_demo()
        context = DocumentContext(model=notebook)
        context.session.change_kernel(kernel)
        manager = WidgetManager(context)
        register_builtin_modules(manager)
        summary = await manager.restored
        return summary, describe_registry(manager), await manager.get_model("box")

    summary, registry, box = asyncio.run(scenario())
    models = registry["models"]
    assert summary["live"] == ["box", "layout", "slider"]
    assert summary["persisted"] == ["saved-text"]
    assert models["slider"]["state"]["value"] == 42
    assert models["slider"]["live"]
    assert not models["saved-text"]["live"]
    assert models["box"]["state"]["children"] == ["IPY_MODEL_slider"]
    assert box.get("children")[0].get("layout") is box.get("layout")
    assert registry["failed"] == []


def test_parse_module_option():
    assert parse_module_option("my-widgets@^1.0.0=my_pkg.widgets") == ("my-widgets", "^1.0.0", "my_pkg.widgets")
    assert parse_module_option("@scope/pkg@1.2.0=mod") == ("@scope/pkg", "1.2.0", "mod")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_module_option("missing-version=mod")


def test_parser_defaults():
    args = build_parser().parse_args(["nb.ipynb", "--demo", "--module", "a@1.0.0=m"])

    assert args.notebook == "nb.ipynb"
    assert args.demo
    assert args.module == ["a@1.0.0=m"]
    assert not args.watch

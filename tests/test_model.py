import asyncio

import pytest

from widget_manager.core.exceptions import CommClosedError, InvalidMessageError
from widget_manager.kernel import InMemoryKernel
from widget_manager.widgets import ModelOptions, WidgetModel, WidgetView, pack_models, unpack_models


class _Manager:
    def __init__(self, models):
        self.models = models

    async def get_model(self, model_id):
        return self.models[model_id]


def _live_model(kernel, comm_id="w", **state):
    kernel.add_backend_widget(comm_id, dict(state))
    comm = kernel.connect_to_comm("jupyter.widget", comm_id)
    return WidgetModel(dict(state), model_id=comm_id, widget_manager=None, comm=comm)


def test_unpack_and_pack_model_references():
    child = WidgetModel({}, model_id="child", widget_manager=None)
    manager = _Manager({"child": child})
    value = {"children": ["IPY_MODEL_child", "text"], "nested": {"ref": "IPY_MODEL_child"}}

    unpacked = asyncio.run(unpack_models(value, manager))

    assert unpacked == {"children": [child, "text"], "nested": {"ref": child}}
    assert pack_models(unpacked) == value


def test_set_state_emits_changed_keys_only():
    model = WidgetModel({"a": 1, "b": 2}, model_id="m", widget_manager=None)
    changes = []
    model.events.on("change", lambda event: changes.append(event.data["keys"]))

    model.set_state({"a": 1, "b": 3})
    model.set("c", 4)

    assert changes == [["b"], ["c"]]
    assert model.get_state() == {"a": 1, "b": 3, "c": 4}


def test_drop_defaults():
    class _Model(WidgetModel):
        defaults = {"value": 0, "description": ""}

    model = _Model({"value": 5}, model_id="m", widget_manager=None)

    assert model.get_state(drop_defaults=True) == {"value": 5}


def test_send_state_reaches_kernel():
    async def scenario():
        kernel = InMemoryKernel()
        model = _live_model(kernel, value=1)
        model.set("value", 2)
        model.send_state(["value"])
        return kernel

    kernel = asyncio.run(scenario())
    assert kernel.backend_widgets["w"].state["value"] == 2
    assert kernel.sent_messages[-1]["content"]["data"]["method"] == "update"


def test_inbound_update_and_custom_messages():
    async def scenario():
        kernel = InMemoryKernel()
        model = _live_model(kernel, value=1)
        custom = []
        model.events.on("msg:custom", lambda event: custom.append(event.data["content"]))
        kernel.push_update("w", {"value": 9})
        kernel.handle_message({
            "header": {"msg_type": "comm_msg"},
            "content": {"comm_id": "w", "data": {"method": "custom", "content": {"event": "click"}}},
            "buffers": [],
        })
        await asyncio.sleep(0)
        return model, custom

    model, custom = asyncio.run(scenario())
    assert model.get("value") == 9
    assert custom == [{"event": "click"}]


def test_malformed_update_is_rejected():
    async def scenario():
        kernel = InMemoryKernel()
        model = _live_model(kernel)
        await model._handle_comm_msg({"content": {"data": {"method": "update", "state": "nope"}}})

    with pytest.raises(InvalidMessageError):
        asyncio.run(scenario())


def test_disconnect_severs_comm():
    kernel = InMemoryKernel()
    model = _live_model(kernel)

    model.disconnect()

    assert not model.comm_live
    assert model.comm.is_disposed
    with pytest.raises(CommClosedError):
        model.send({"event": "click"})


def test_close_removes_views_and_closes_comm():
    async def scenario():
        kernel = InMemoryKernel()
        model = _live_model(kernel)
        view = WidgetView(model)
        events = []
        model.events.on("close", lambda event: events.append("close"))
        model.close()
        model.close()
        return kernel, model, view, events

    kernel, model, view, events = asyncio.run(scenario())
    assert view.is_removed
    assert model.views == []
    assert events == ["close"]
    assert "w" not in kernel.backend_widgets


def test_model_options_from_state():
    options = ModelOptions.from_state({
        "_model_name": "IntSliderModel",
        "_model_module": "@jupyter-widgets/controls",
        "_model_module_version": "2.0.0",
    }, model_id="x")

    assert options.resolved_id == "x"
    assert options.model_module_version == "2.0.0"
    assert ModelOptions("M", "pkgA").resolved_id is None

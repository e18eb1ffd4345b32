import asyncio
import base64

import pytest

from widget_manager.core.exceptions import (
    CommClosedError,
    ManagerDisposedError,
    ProtocolVersionError,
    UnsupportedStateError,
)
from widget_manager.events import EventTypes
from widget_manager.kernel import InMemoryKernel
from widget_manager.widgets import ModelOptions


def test_persisted_widget_restored_without_live_channels(make_manager, kernel_factory, record_factory):
    async def scenario():
        manager = make_manager(kernel_factory(), widget_state={"m1": record_factory(value=4)})
        # Called before restoration has started: waits for it instead of failing
        model = await manager.get_model("m1")
        return manager, model

    manager, model = asyncio.run(scenario())
    assert type(model).__name__ == "SampleModel"
    assert model.module == "pkgA"
    assert model.get("value") == 4
    assert not model.comm_live


def test_versioned_blob_in_notebook(make_manager, record_factory):
    blob = {"version_major": 2, "version_minor": 0, "state": {"m1": record_factory(value=1)}}

    async def scenario():
        manager = make_manager(widget_state=blob)
        await manager.restored
        return await manager.get_model("m1")

    assert asyncio.run(scenario()).get("value") == 1


def test_restart_disconnects_live_models_but_keeps_them(make_manager, kernel_factory, state_factory, record_factory):
    disconnected = []

    async def scenario():
        kernel = kernel_factory(live=state_factory(value=1))
        manager = make_manager(kernel, widget_state={"saved": record_factory(value=2)})
        manager.events.on(EventTypes.MANAGER_DISCONNECTED, lambda event: disconnected.append(event.data))
        await manager.restored
        live = await manager.get_model("live")
        assert live.comm_live

        kernel.restart(reconnect=False)

        assert not live.comm_live
        with pytest.raises(CommClosedError):
            live.send_state()
        saved = await manager.get_model("saved")
        return await manager.get_model("live"), saved

    live, saved = asyncio.run(scenario())
    assert live.get("value") == 1
    assert saved.get("value") == 2
    assert disconnected == [{"models": 2}]


def test_reconnect_restores_again(make_manager, kernel_factory, state_factory):
    async def scenario():
        kernel = kernel_factory(live=state_factory(value=1))
        manager = make_manager(kernel)
        first = manager.restored
        await first
        kernel.restart()
        kernel.add_backend_widget("fresh", state_factory(value=7))
        assert manager.restored is not first
        await manager.restored
        return kernel, await manager.get_model("fresh")

    kernel, fresh = asyncio.run(scenario())
    assert kernel.comm_info_requests == 2
    assert fresh.comm_live


def test_reconnect_keeps_live_model_on_its_comm(make_manager, kernel_factory, state_factory):
    async def scenario():
        kernel = kernel_factory(w=state_factory(value=1))
        manager = make_manager(kernel)
        await manager.restored
        model = await manager.get_model("w")
        comm = model.comm
        # Kernel-side change the frontend missed while disconnected
        kernel.backend_widgets["w"].state["value"] = 5

        manager.context.session.set_status("connected")
        summary = await manager.restored
        assert model.get("value") == 5

        kernel.push_update("w", {"value": 42})
        await asyncio.sleep(0.01)
        return kernel, manager, model, comm, summary

    kernel, manager, model, comm, summary = asyncio.run(scenario())
    assert summary["live"] == ["w"]
    assert kernel.get_comm("w") is comm
    assert model.comm is comm
    assert model.comm_live
    assert model.get("value") == 42


def test_reconnect_after_restart_reattaches_severed_model(make_manager, kernel_factory, state_factory):
    async def scenario():
        kernel = kernel_factory(w=state_factory(value=1))
        manager = make_manager(kernel)
        await manager.restored
        model = await manager.get_model("w")
        kernel.restart(reconnect=False)
        assert not model.comm_live

        # The kernel re-creates the widget before reporting back
        kernel.add_backend_widget("w", state_factory(value=3))
        manager.context.session.set_status("connected")
        await manager.restored
        assert await manager.get_model("w") is model

        kernel.push_update("w", {"value": 4})
        await asyncio.sleep(0.01)
        return kernel, model

    kernel, model = asyncio.run(scenario())
    assert model.comm_live
    assert model.comm is kernel.get_comm("w")
    assert model.get("value") == 4


def test_restart_fails_pending_state_requests(make_manager, state_factory):
    async def scenario():
        kernel = InMemoryKernel()
        kernel.add_backend_widget("stuck", state_factory(), responsive=False)
        manager = make_manager(kernel)
        await asyncio.sleep(0.01)
        kernel.restart(reconnect=False)
        return await manager.restored

    summary = asyncio.run(scenario())
    assert summary["live"] == []


def test_kernel_opened_comm_creates_live_model(make_manager, kernel_factory, state_factory):
    async def scenario():
        kernel = kernel_factory()
        manager = make_manager(kernel)
        await manager.restored
        kernel.open_comm("new", state_factory(value=3))
        await asyncio.sleep(0)
        model = await manager.get_model("new")
        kernel.push_update("new", {"value": 8})
        await asyncio.sleep(0)
        return kernel, model

    kernel, model = asyncio.run(scenario())
    assert model.comm_live
    assert model.get("value") == 8


def test_kernel_closing_comm_closes_model(make_manager, kernel_factory, state_factory):
    async def scenario():
        kernel = kernel_factory(w=state_factory())
        manager = make_manager(kernel)
        await manager.restored
        model = await manager.get_model("w")
        kernel.close_comm("w")
        return manager, model

    manager, model = asyncio.run(scenario())
    assert model.is_closed
    assert not manager.has_model("w")


def test_comm_open_with_wrong_protocol_is_rejected(make_manager, kernel_factory, state_factory):
    async def scenario():
        kernel = kernel_factory()
        manager = make_manager(kernel)
        await manager.restored
        comm = kernel.connect_to_comm(manager.comm_target_name, "old")
        msg = {"metadata": {"version": "1.0.0"}, "content": {"data": {"state": state_factory()}}, "buffers": []}
        with pytest.raises(ProtocolVersionError):
            await manager.handle_comm_open(comm, msg)
        return manager

    assert not asyncio.run(scenario()).has_model("old")


def test_set_state_decodes_buffers_and_reapplies_existing(make_manager, record_factory):
    record = record_factory(value=1, data=None)
    record["buffers"] = [{"path": ["data"], "data": base64.b64encode(b"abc").decode(), "encoding": "base64"}]
    hex_record = record_factory(data=None)
    hex_record["buffers"] = [{"path": ["data"], "data": "646566", "encoding": "hex"}]

    async def scenario():
        manager = make_manager()
        await manager.restored
        await manager.set_state({"a": record, "b": hex_record})
        a = await manager.get_model("a")
        await manager.set_state({"a": record_factory(value=5)})
        return a, await manager.get_model("a"), await manager.get_model("b")

    a, a_again, b = asyncio.run(scenario())
    assert a is a_again
    assert a.get("value") == 5
    assert a.get("data") == b"abc"
    assert b.get("data") == b"def"


def test_set_state_rejects_newer_format(make_manager):
    async def scenario():
        manager = make_manager()
        await manager.restored
        await manager.set_state({"version_major": 3, "version_minor": 0, "state": {}})

    with pytest.raises(UnsupportedStateError):
        asyncio.run(scenario())


def test_filter_existing_model_state_keeps_blob_shape(make_manager, record_factory):
    async def scenario():
        manager = make_manager(widget_state={"kept": record_factory()})
        await manager.restored
        versioned = {"version_major": 2, "version_minor": 0,
                     "state": {"kept": record_factory(), "other": record_factory()}}
        return (manager.filter_existing_model_state(versioned),
                manager.filter_existing_model_state({"kept": {}, "other": {}}))

    versioned, flat = asyncio.run(scenario())
    assert list(versioned["state"]) == ["other"]
    assert versioned["version_major"] == 2
    assert list(flat) == ["other"]


def test_get_state_snapshots_resolved_models(make_manager, state_factory):
    async def scenario():
        manager = make_manager()
        await manager.restored
        options = ModelOptions.from_state(state_factory(), model_id="snap")
        await manager.new_model(options, state_factory(value=3, blob=b"\x00\x01"))
        return manager.get_state(drop_defaults=True)

    blob = asyncio.run(scenario())
    record = blob["state"]["snap"]
    assert blob["version_major"] == 2
    assert record["model_name"] == "SampleModel"
    assert record["state"]["value"] == 3
    assert "blob" not in record["state"]
    assert record["buffers"] == [{"path": ["blob"], "data": "AAE=", "encoding": "base64"}]


def test_kernel_change_moves_comm_target(make_manager, kernel_factory):
    async def scenario():
        old = kernel_factory()
        manager = make_manager(old)
        await manager.restored
        new = kernel_factory()
        manager.context.session.change_kernel(new)
        return manager, old, new

    manager, old, new = asyncio.run(scenario())
    assert not old.has_comm_target(manager.comm_target_name)
    assert new.has_comm_target(manager.comm_target_name)
    assert manager.lifecycle.is_bound


def test_resolve_url_uses_notebook_directory(make_manager):
    async def scenario():
        manager = make_manager()
        await manager.restored
        base_url = manager.context.url_resolver.base_url
        return base_url, await manager.resolve_url("data/points.csv"), await manager.resolve_url("https://x.org/a.js")

    base_url, local, remote = asyncio.run(scenario())
    assert local == base_url + "files/work/data/points.csv"
    assert remote == "https://x.org/a.js"


def test_display_model_reuses_surface(make_manager, state_factory):
    async def scenario():
        manager = make_manager()
        await manager.restored
        model = await manager.new_model(ModelOptions.from_state(state_factory(), model_id="d"), state_factory())
        first = await manager.display_model(None, model)
        second = await manager.display_model(None, model)
        return first, second

    first, second = asyncio.run(scenario())
    assert first is second
    assert first.view.rendered == 1


def test_dispose_is_idempotent_and_unbinds(make_manager, kernel_factory, state_factory):
    async def scenario():
        kernel = kernel_factory(w=state_factory())
        manager = make_manager(kernel)
        await manager.restored
        model = await manager.get_model("w")
        manager.dispose()
        manager.dispose()
        with pytest.raises(ManagerDisposedError):
            await manager.restore_widgets()
        return manager, kernel, model

    manager, kernel, model = asyncio.run(scenario())
    assert manager.is_disposed
    assert not kernel.has_comm_target(manager.comm_target_name)
    assert model.is_closed
    assert "w" not in kernel.backend_widgets

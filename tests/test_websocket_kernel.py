import asyncio

import pytest

from widget_manager.kernel import WebSocketKernel
from widget_manager.kernel.messages import create_message, decode_message


class _FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send(self, frame):
        self.sent.append(decode_message(frame))

    async def close(self):
        pass


def _connected_kernel():
    kernel = WebSocketKernel("ws://localhost:8888/api/kernels/k1/channels", kernel_id="k1")
    kernel._ws = _FakeWebSocket()
    return kernel


def test_from_server_builds_channels_url():
    kernel = WebSocketKernel.from_server("https://hub.example.org/user/ana/", "k1", token="t0k", session_id="s1")

    assert kernel.url == "wss://hub.example.org/user/ana/api/kernels/k1/channels?session_id=s1&token=t0k"
    assert kernel.id == "k1"
    assert kernel.session_id == "s1"


def test_comm_info_request_resolved_by_reply():
    async def scenario():
        kernel = _connected_kernel()
        request = asyncio.ensure_future(kernel.request_comm_info("jupyter.widget"))
        await asyncio.sleep(0)
        sent = kernel._ws.sent[0]
        reply = create_message("comm_info_reply", {"comms": {"c1": {"target_name": "jupyter.widget"}}},
                               parent_header=sent["header"])
        kernel.handle_message(reply)
        return sent, await request

    sent, comms = asyncio.run(scenario())
    assert sent["header"]["msg_type"] == "comm_info_request"
    assert sent["content"] == {"target_name": "jupyter.widget"}
    assert comms == {"c1": {"target_name": "jupyter.widget"}}


def test_comm_messages_routed_to_comm():
    async def scenario():
        kernel = _connected_kernel()
        comm = kernel.connect_to_comm("jupyter.widget", "c1")
        received = []
        comm.on_msg(received.append)
        comm.send({"method": "request_state"})
        await asyncio.sleep(0)
        kernel.handle_message(create_message("comm_msg", {"comm_id": "c1", "data": {"method": "update", "state": {}}},
                                             channel="iopub", buffers=[b"x"]))
        return kernel, received

    kernel, received = asyncio.run(scenario())
    assert kernel._ws.sent[0]["content"] == {"comm_id": "c1", "data": {"method": "request_state"}}
    assert received[0]["buffers"] == [b"x"]
    assert kernel.messages_sent == 1


def test_restart_status_sequence():
    kernel = _connected_kernel()
    kernel._set_status("connected")
    seen = []
    kernel.add_status_listener(lambda k, status: seen.append(status))

    for state in ("busy", "restarting", "starting", "idle", "dead"):
        kernel.handle_message(create_message("status", {"execution_state": state}, channel="iopub"))

    assert seen == ["restarting", "connected", "dead"]


def test_disconnect_fails_pending_requests():
    async def scenario():
        kernel = _connected_kernel()
        request = asyncio.ensure_future(kernel.request_comm_info())
        await asyncio.sleep(0)
        await kernel.disconnect()
        return kernel, request

    async def run():
        kernel, request = await scenario()
        with pytest.raises(ConnectionError):
            await request
        return kernel

    kernel = asyncio.run(run())
    assert kernel.status == "disconnected"
    assert not kernel.is_connected

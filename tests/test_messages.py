import json
import struct

import pytest

from widget_manager.core.exceptions import InvalidMessageError
from widget_manager.kernel.messages import (
    create_message,
    decode_message,
    deserialize_binary_message,
    encode_message,
    msg_type_of,
    serialize_binary_message,
    validate_update_payload,
)


def test_create_message_fills_header():
    msg = create_message("comm_msg", {"comm_id": "c"}, session="s1", metadata={"version": "2.0.0"})

    assert msg_type_of(msg) == "comm_msg"
    assert msg["header"]["session"] == "s1"
    assert msg["metadata"] == {"version": "2.0.0"}
    assert msg["buffers"] == []
    assert len(msg["header"]["msg_id"]) == 32


def test_binary_frame_layout():
    msg = create_message("comm_msg", {"comm_id": "c"}, buffers=[b"abc", b"de"])

    frame = serialize_binary_message(msg)

    nbufs = struct.unpack("!I", frame[:4])[0]
    offsets = struct.unpack("!III", frame[4:16])
    assert nbufs == 3
    assert offsets[0] == 16
    assert frame[offsets[1]:offsets[2]] == b"abc"
    assert frame[offsets[2]:] == b"de"
    assert json.loads(frame[offsets[0]:offsets[1]])["content"] == {"comm_id": "c"}


def test_binary_frame_decodes_buffers():
    msg = create_message("comm_msg", {"comm_id": "c", "data": {"method": "update"}}, buffers=[b"\x00\xff"])

    decoded = deserialize_binary_message(serialize_binary_message(msg))

    assert decoded["buffers"] == [b"\x00\xff"]
    assert decoded["content"]["data"]["method"] == "update"


def test_short_binary_frame_rejected():
    with pytest.raises(InvalidMessageError):
        deserialize_binary_message(b"\x00\x00")


def test_text_and_binary_frames_chosen_by_buffers():
    plain = create_message("comm_info_request", {})
    with_buffers = create_message("comm_msg", {}, buffers=[b"x"])

    assert isinstance(encode_message(plain), str)
    assert isinstance(encode_message(with_buffers), bytes)
    assert decode_message(encode_message(plain))["buffers"] == []


@pytest.mark.parametrize("data", [
    None,
    {"method": "update"},
    {"method": "update", "state": []},
    {"method": "update", "state": {}, "buffer_paths": "data"},
    {"method": "update", "state": {}, "buffer_paths": ["data"]},
])
def test_malformed_update_payloads(data):
    with pytest.raises(InvalidMessageError):
        validate_update_payload(data)


def test_valid_update_payload():
    validate_update_payload({"method": "update", "state": {"x": None}, "buffer_paths": [["x"]]})

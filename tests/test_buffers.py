from widget_manager.widgets.buffers import put_buffers, remove_buffers


def test_put_buffers_places_nested_values():
    state = {"data": None, "series": [{"x": None}, {"x": None}]}

    put_buffers(state, [["data"], ["series", 1, "x"]], [b"a", memoryview(b"b")])

    assert state["data"] == b"a"
    assert bytes(state["series"][1]["x"]) == b"b"
    assert state["series"][0]["x"] is None


def test_remove_buffers_splits_binary_values():
    state = {"value": 1, "image": b"png", "frames": [b"f0", 2], "nested": {"raw": bytearray(b"r")}}

    cleaned, paths, buffers = remove_buffers(state)

    assert cleaned == {"value": 1, "frames": [None, 2], "nested": {}}
    assert paths == [["image"], ["frames", 0], ["nested", "raw"]]
    assert buffers == [b"png", b"f0", b"r"]
    assert state["image"] == b"png"


def test_remove_then_put_restores_state():
    state = {"image": b"png", "frames": [b"f0", 2]}

    cleaned, paths, buffers = remove_buffers(state)
    put_buffers(cleaned, paths, buffers)

    assert cleaned == state

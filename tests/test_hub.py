"""Tests for ConnectionHub room multicast."""

from dm_table.hub import ConnectionHub


def _drain(queue):
    frames = []
    while not queue.empty():
        frames.append(queue.get_nowait())
    return frames


async def test_emit_reaches_room_members_only():
    hub = ConnectionHub()
    a, b, c = hub.register("a"), hub.register("b"), hub.register("c")
    hub.join("r1", "a")
    hub.join("r1", "b")
    hub.join("r2", "c")

    hub.emit("r1", "system", "hola")

    assert _drain(a) == [{"event": "system", "data": "hola"}]
    assert _drain(b) == [{"event": "system", "data": "hola"}]
    assert _drain(c) == []


async def test_emit_exclude():
    hub = ConnectionHub()
    a, b = hub.register("a"), hub.register("b")
    hub.join("r1", "a")
    hub.join("r1", "b")

    hub.emit("r1", "system", "X se ha unido", exclude="a")

    assert _drain(a) == []
    assert len(_drain(b)) == 1


async def test_send_is_private():
    hub = ConnectionHub()
    a, b = hub.register("a"), hub.register("b")
    hub.send("a", "joined", {"room_id": "r1"})
    assert _drain(a) == [{"event": "joined", "data": {"room_id": "r1"}}]
    assert _drain(b) == []


async def test_unregister_drops_membership():
    hub = ConnectionHub()
    hub.register("a")
    hub.join("r1", "a")
    hub.unregister("a")
    assert hub.connections("r1") == set()
    hub.send("a", "system", "nadie")  # dropped silently

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from dundra_live.core.errors import TransportClosedError
from dundra_live.server.rooms import RoomHub, room_name
from dundra_live.server.sessions import SessionRegistry


class _Member:
    def __init__(self, name, error=None, is_open=True):
        self.id = name
        self.is_open = is_open
        self.send = AsyncMock(side_effect=error)


def test_room_name():
    assert room_name("g1") == "session_g1"


@pytest.mark.asyncio
async def test_publish_reaches_only_room_members():
    hub = RoomHub()
    a, b, outsider = _Member("a"), _Member("b"), _Member("c")
    hub.join("g1", a)
    hub.join("g1", b)
    hub.join("g2", outsider)

    delivered = await hub.publish("g1", "analysis:complete", {"sessionId": "g1"})

    assert delivered == 2
    a.send.assert_awaited_once_with("analysis:complete", {"sessionId": "g1"})
    b.send.assert_awaited_once()
    outsider.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_publish_to_empty_room_is_noop():
    assert await RoomHub().publish("nobody", "cards:generate_triggers", {}) == 0


@pytest.mark.asyncio
async def test_failed_member_dropped_when_closed():
    hub = RoomHub()
    healthy = _Member("ok")
    gone = _Member("gone", error=TransportClosedError("closed"), is_open=False)
    flaky = _Member("flaky", error=RuntimeError("busy"))
    for member in (healthy, gone, flaky):
        hub.join("g1", member)

    delivered = await hub.publish("g1", "characters:updates", {"updates": []})

    assert delivered == 1
    assert hub.members("g1") == {healthy, flaky}


def test_leave_and_leave_all():
    hub = RoomHub()
    member = _Member("a")
    hub.join("g1", member)
    hub.join("g2", member)

    hub.leave("g1", member)
    hub.leave("unknown", member)
    assert hub.room_count() == 1

    assert hub.leave_all(member) == ["session_g2"]
    assert hub.room_count() == 0


@pytest.mark.asyncio
async def test_session_registry_tracks_active_streams():
    stream = SimpleNamespace(cleanup=AsyncMock())
    gateway = SimpleNamespace(session_id="s1", stream=stream, get_status=lambda: {"is_active": True})
    registry = SessionRegistry()

    registry.register(gateway)
    assert "s1" in registry
    assert registry.get_active_session_count() == 1
    assert registry.get_session_info("s1") == {"is_active": True}
    assert registry.get_session_info("s2") is None

    assert await registry.cleanup_all() == 1
    stream.cleanup.assert_awaited_once()
    registry.unregister("s1")
    assert registry.get_active_session_count() == 0

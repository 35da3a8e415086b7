"""
Tests for the Socket.IO proctoring relay, with the server mocked out
"""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.proctoring_relay import ProctoringRelay, room_name

TOKEN = "proctor_q1_u1_1700000000000_abcd"


@pytest.fixture
def sio():
    server = MagicMock()
    server.emit = AsyncMock()
    server.enter_room = AsyncMock()
    server.leave_room = AsyncMock()
    return server


@pytest.fixture
def relay(sio):
    return ProctoringRelay(sio)


def emitted(sio, event):
    return [c for c in sio.emit.await_args_list if c.args[0] == event]


class TestRegistration:

    def test_registers_every_handler(self, sio):
        relay = ProctoringRelay(sio).register()
        events = {c.args[0] for c in sio.on.call_args_list}
        assert {"join-proctoring-session", "webrtc-offer", "student-stream-started", "end-student-quiz"} <= events
        assert relay.sio is sio


class TestRooms:

    async def test_join_enters_room(self, relay, sio):
        await relay.on_join_session("sid-1", {"sessionToken": TOKEN})
        sio.enter_room.assert_awaited_once_with("sid-1", room_name(TOKEN))
        sio.emit.assert_not_awaited()

    async def test_dashboard_join_notifies_room(self, relay, sio):
        await relay.on_join_session("dash", {"sessionToken": TOKEN, "role": "dashboard"})
        (call,) = emitted(sio, "dashboard-reconnected")
        assert call.kwargs == {"room": room_name(TOKEN), "skip_sid": "dash"}

    async def test_leave_accepts_bare_token(self, relay, sio):
        await relay.on_leave_session("sid-1", TOKEN)
        sio.leave_room.assert_awaited_once_with("sid-1", room_name(TOKEN))


class TestStreamRegistry:

    async def test_stream_lifecycle(self, relay, sio):
        await relay.on_stream_started("sid-1", {"sessionToken": TOKEN, "studentInfo": {"name": "Alice"}})
        assert relay.list_streams()[0]["student"] == {"name": "Alice"}
        assert emitted(sio, "stream-started")[0].args[1]["isReconnection"] is False

        await relay.on_disconnect("sid-1")
        stream = relay.active_streams[TOKEN]
        assert not stream.is_live and stream.socket_id is None
        assert emitted(sio, "stream-paused")[0].args[1]["reason"] == "student_disconnected"

        await relay.on_resume_stream("sid-2", {"sessionToken": TOKEN})
        assert stream.is_live and stream.socket_id == "sid-2"
        assert emitted(sio, "stream-resumed")[0].args[1]["wasDisconnected"] is True

        await relay.on_stream_ended("sid-2", {"sessionToken": TOKEN})
        assert relay.list_streams() == []
        assert len(emitted(sio, "stream-ended")) == 1

    async def test_restart_is_a_reconnection(self, relay, sio):
        await relay.on_stream_started("sid-1", {"sessionToken": TOKEN})
        await relay.on_stream_started("sid-2", {"sessionToken": TOKEN})
        assert emitted(sio, "stream-started")[1].args[1]["isReconnection"] is True
        assert relay.active_streams[TOKEN].last_reconnection is not None

    async def test_resume_unknown_stream(self, relay, sio):
        await relay.on_resume_stream("sid-1", {"sessionToken": "missing"})
        sio.emit.assert_awaited_once_with("stream-not-found", {"sessionToken": "missing"}, to="sid-1")

    async def test_resume_live_stream_is_ignored(self, relay, sio):
        await relay.on_stream_started("sid-1", {"sessionToken": TOKEN})
        sio.emit.reset_mock()
        await relay.on_resume_stream("sid-2", {"sessionToken": TOKEN})
        sio.emit.assert_not_awaited()
        assert relay.active_streams[TOKEN].socket_id == "sid-1"

    async def test_get_active_streams_replies_to_caller(self, relay, sio):
        await relay.on_stream_started("sid-1", {"sessionToken": TOKEN})
        await relay.on_get_active_streams("dash")
        (call,) = emitted(sio, "active-streams")
        assert call.kwargs == {"to": "dash"}
        assert call.args[1][0]["sessionToken"] == TOKEN

    async def test_prune_stale_streams(self, relay):
        await relay.on_stream_started("sid-1", {"sessionToken": TOKEN})
        await relay.on_disconnect("sid-1")
        relay.active_streams[TOKEN].disconnected_at = datetime.utcnow() - timedelta(hours=2)

        assert relay.prune_stale_streams(timedelta(hours=1)) == [TOKEN]
        assert relay.active_streams == {}

    async def test_stale_streams_are_pruned_when_another_starts(self, sio):
        relay = ProctoringRelay(sio, max_pause=timedelta(minutes=30))
        await relay.on_stream_started("sid-1", {"sessionToken": TOKEN})
        await relay.on_disconnect("sid-1")
        relay.active_streams[TOKEN].disconnected_at = datetime.utcnow() - timedelta(hours=1)

        await relay.on_stream_started("sid-2", {"sessionToken": "other-token"})
        assert list(relay.active_streams) == ["other-token"]

    async def test_recent_pauses_survive_pruning(self, relay):
        await relay.on_stream_started("sid-1", {"sessionToken": TOKEN})
        await relay.on_disconnect("sid-1")
        await relay.on_stream_started("sid-2", {"sessionToken": "other-token"})
        assert set(relay.active_streams) == {TOKEN, "other-token"}

    async def test_disconnect_tolerates_registry_changes_during_emit(self, relay, sio):
        await relay.on_stream_started("sid-1", {"sessionToken": TOKEN})
        await relay.on_stream_started("sid-1", {"sessionToken": "second-token"})
        await relay.on_stream_started("sid-2", {"sessionToken": "third-token"})

        async def end_third_stream(event, payload, **kwargs):
            if event == "stream-paused":
                relay.active_streams.pop("third-token", None)

        sio.emit.side_effect = end_third_stream
        await relay.on_disconnect("sid-1")

        assert set(relay.active_streams) == {TOKEN, "second-token"}
        assert not relay.active_streams[TOKEN].is_live
        assert not relay.active_streams["second-token"].is_live


class TestSignalling:

    async def test_offer_is_forwarded_to_the_room_except_sender(self, relay, sio):
        await relay.on_webrtc_offer("sid-1", {"sessionToken": TOKEN, "offer": {"sdp": "x"}})
        sio.emit.assert_awaited_once_with(
            "webrtc-offer",
            {"offer": {"sdp": "x"}, "from": "sid-1", "sessionToken": TOKEN},
            room=room_name(TOKEN),
            skip_sid="sid-1",
        )

    async def test_messages_without_token_are_dropped(self, relay, sio):
        await relay.on_webrtc_ice_candidate("sid-1", {"candidate": "c"})
        sio.emit.assert_not_awaited()

    async def test_audio_request_defaults(self, relay, sio):
        await relay.on_request_audio_confirmation("dash", {"sessionToken": TOKEN, "requestId": "r1"})
        payload = emitted(sio, "request-student-audio-confirmation")[0].args[1]
        assert payload["volume"] == 0.5
        assert payload["micGain"] == 0.6

    async def test_violation_goes_to_room_and_everyone(self, relay, sio):
        await relay.on_violation("sid-1", {"sessionToken": TOKEN, "violation": "tab_switch"})
        assert len(emitted(sio, "proctoring-violation")) == 1
        (broadcast,) = emitted(sio, "global-proctoring-violation")
        assert broadcast.kwargs == {}

    async def test_terminate_quiz(self, relay, sio):
        await relay.terminate_quiz(TOKEN, "High risk score")
        (call,) = emitted(sio, "quiz-terminated")
        assert call.args[1]["reason"] == "High risk score"
        assert call.kwargs["room"] == room_name(TOKEN)

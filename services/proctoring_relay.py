# services/proctoring_relay.py
"""
Socket.IO signalling relay for webcam proctoring.

Students and instructor dashboards join a room per proctoring session and
exchange WebRTC offers, answers and ICE candidates through it. The server
never touches media; it forwards messages and keeps a small in-memory
registry of the streams it has seen so dashboards can list live students.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import socketio
from pydantic import BaseModel

from config import CORS_ORIGINS, STREAM_MAX_PAUSE_MINUTES

logger = logging.getLogger(__name__)

DEFAULT_VOLUME = 0.5
DEFAULT_MIC_GAIN = 0.6


def room_name(session_token: str) -> str:
    return f"proctoring-{session_token}"

def _now() -> str:
    return datetime.utcnow().isoformat()


class ActiveStream(BaseModel):
    session_token: str
    socket_id: Optional[str] = None
    student: Any = None
    quiz: Any = None
    start_time: datetime
    is_live: bool = True
    last_reconnection: Optional[datetime] = None
    disconnected_at: Optional[datetime] = None

    def to_payload(self) -> dict:
        return {
            "sessionToken": self.session_token,
            "socketId": self.socket_id,
            "student": self.student,
            "quiz": self.quiz,
            "startTime": self.start_time.isoformat(),
            "isLive": self.is_live,
            "lastReconnection": self.last_reconnection.isoformat() if self.last_reconnection else None,
            "disconnectedAt": self.disconnected_at.isoformat() if self.disconnected_at else None,
        }


def _as_dict(data: Any) -> dict:
    # some events send the bare session token instead of an object
    if isinstance(data, dict):
        return data
    return {"sessionToken": data}


class ProctoringRelay:

    def __init__(self, sio: socketio.AsyncServer, max_pause: Optional[timedelta] = None):
        self.sio = sio
        self.active_streams: Dict[str, ActiveStream] = {}
        self.max_pause = max_pause or timedelta(minutes=STREAM_MAX_PAUSE_MINUTES)

    def register(self):
        handlers = {
            "connect": self.on_connect,
            "disconnect": self.on_disconnect,
            "join-proctoring-session": self.on_join_session,
            "leave-proctoring-session": self.on_leave_session,
            "student-stream-started": self.on_stream_started,
            "student-stream-ended": self.on_stream_ended,
            "resume-stream": self.on_resume_stream,
            "get-active-streams": self.on_get_active_streams,
            "student-webrtc-ready": self.on_webrtc_ready,
            "webrtc-offer": self.on_webrtc_offer,
            "webrtc-answer": self.on_webrtc_answer,
            "webrtc-ice-candidate": self.on_webrtc_ice_candidate,
            "request-student-audio-confirmation": self.on_request_audio_confirmation,
            "student-audio-confirmation": self.on_audio_confirmation,
            "force-student-audio": self.on_force_audio,
            "proctoring-violation": self.on_violation,
            "end-student-quiz": self.on_end_student_quiz,
        }
        for event, handler in handlers.items():
            self.sio.on(event, handler)
        return self

    async def _to_room(self, event: str, session_token: str, payload: dict, skip_sid: Optional[str] = None):
        if not session_token:
            return
        await self.sio.emit(event, payload, room=room_name(session_token), skip_sid=skip_sid)

    # -- connection ---------------------------------------------------------

    async def on_connect(self, sid, environ, auth=None):
        logger.debug(f"Client connected: {sid}")

    async def on_disconnect(self, sid, *args):
        logger.debug(f"Client disconnected: {sid}")
        # snapshot: other handlers may add or drop streams while we await the emit
        for stream in list(self.active_streams.values()):
            if stream.socket_id != sid:
                continue
            stream.socket_id = None
            stream.is_live = False
            stream.disconnected_at = datetime.utcnow()
            await self.sio.emit("stream-paused", {
                "sessionToken": stream.session_token,
                "reason": "student_disconnected",
                "disconnectedAt": stream.disconnected_at.isoformat(),
            })
            logger.info(f"Stream {stream.session_token} paused, student disconnected")
        self.prune_stale_streams(self.max_pause)

    # -- rooms --------------------------------------------------------------

    async def on_join_session(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        if not token:
            return
        role = data.get("role", "student")
        await self.sio.enter_room(sid, room_name(token))
        logger.info(f"Client {sid} joined proctoring session {token} as {role}")

        if role == "dashboard":
            await self._to_room("dashboard-reconnected", token, {
                "sessionToken": token,
                "message": "Dashboard has reconnected, please reset your WebRTC connection",
            }, skip_sid=sid)

    async def on_leave_session(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        if token:
            await self.sio.leave_room(sid, room_name(token))

    # -- stream registry ----------------------------------------------------

    async def on_stream_started(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        if not token:
            return
        self.prune_stale_streams(self.max_pause)
        is_reconnection = token in self.active_streams
        now = datetime.utcnow()
        stream = ActiveStream(
            session_token=token,
            socket_id=sid,
            student=data.get("studentInfo"),
            quiz=data.get("quizInfo"),
            start_time=now,
            last_reconnection=now if is_reconnection else None,
        )
        self.active_streams[token] = stream

        await self.sio.emit("stream-started", {
            "sessionToken": token,
            "student": stream.student,
            "quiz": stream.quiz,
            "startTime": now.isoformat(),
            "isLive": True,
            "isReconnection": is_reconnection,
        })
        logger.info(f"Stream started for {token} (reconnection={is_reconnection}), {len(self.active_streams)} active")

    async def on_stream_ended(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        if token and self.active_streams.pop(token, None) is not None:
            await self.sio.emit("stream-ended", {"sessionToken": token})
            logger.info(f"Stream ended for {token}, {len(self.active_streams)} active")

    async def on_resume_stream(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        stream = self.active_streams.get(token) if token else None
        if stream is None:
            await self.sio.emit("stream-not-found", {"sessionToken": token}, to=sid)
            return
        if stream.socket_id:
            # still attached to a live socket
            return

        stream.socket_id = sid
        stream.is_live = True
        stream.last_reconnection = datetime.utcnow()
        stream.disconnected_at = None
        await self.sio.emit("stream-resumed", {
            "sessionToken": token,
            "resumedAt": stream.last_reconnection.isoformat(),
            "wasDisconnected": True,
        })

    async def on_get_active_streams(self, sid, data=None):
        await self.sio.emit("active-streams", self.list_streams(), to=sid)

    def list_streams(self) -> List[dict]:
        return [stream.to_payload() for stream in self.active_streams.values()]

    def prune_stale_streams(self, max_age: timedelta) -> List[str]:
        """Forget paused streams that have been disconnected for longer than ``max_age``."""
        cutoff = datetime.utcnow() - max_age
        stale = [
            token for token, stream in self.active_streams.items()
            if not stream.is_live and stream.disconnected_at and stream.disconnected_at < cutoff
        ]
        for token in stale:
            del self.active_streams[token]
        if stale:
            logger.info(f"Pruned {len(stale)} stale proctoring streams")
        return stale

    # -- signalling ---------------------------------------------------------

    async def on_webrtc_ready(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        await self._to_room("student-webrtc-ready", token, {
            "sessionToken": token, "message": data.get("message"), "from": sid,
        }, skip_sid=sid)

    async def on_webrtc_offer(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        await self._to_room("webrtc-offer", token, {
            "offer": data.get("offer"), "from": sid, "sessionToken": token,
        }, skip_sid=sid)

    async def on_webrtc_answer(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        await self._to_room("webrtc-answer", token, {
            "answer": data.get("answer"), "from": sid, "sessionToken": token,
        }, skip_sid=sid)

    async def on_webrtc_ice_candidate(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        await self._to_room("webrtc-ice-candidate", token, {
            "candidate": data.get("candidate"), "from": sid, "sessionToken": token,
        }, skip_sid=sid)

    async def on_request_audio_confirmation(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        await self._to_room("request-student-audio-confirmation", token, {
            "sessionToken": token,
            "volume": data.get("volume") or DEFAULT_VOLUME,
            "micGain": data.get("micGain") or DEFAULT_MIC_GAIN,
            "requestId": data.get("requestId"),
        }, skip_sid=sid)

    async def on_audio_confirmation(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        await self._to_room("student-audio-confirmation", token, {
            "sessionToken": token,
            "confirmed": data.get("confirmed"),
            "requestId": data.get("requestId"),
        }, skip_sid=sid)

    async def on_force_audio(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        await self._to_room("force-student-audio", token, {
            "sessionToken": token,
            "volume": data.get("volume") or DEFAULT_VOLUME,
            "micGain": data.get("micGain") or DEFAULT_MIC_GAIN,
        }, skip_sid=sid)

    # -- enforcement --------------------------------------------------------

    async def on_violation(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        payload = {
            "sessionToken": token,
            "quizId": data.get("quizId"),
            "violation": data.get("violation"),
            "timestamp": _now(),
        }
        await self._to_room("proctoring-violation", token, payload, skip_sid=sid)
        await self.sio.emit("global-proctoring-violation", payload)

    async def on_end_student_quiz(self, sid, data):
        data = _as_dict(data)
        token = data.get("sessionToken")
        await self.terminate_quiz(token, data.get("reason"), skip_sid=sid)

    async def terminate_quiz(self, session_token: str, reason: Optional[str], skip_sid: Optional[str] = None):
        await self._to_room("quiz-terminated", session_token, {
            "sessionToken": session_token,
            "reason": reason,
            "terminatedAt": _now(),
        }, skip_sid=skip_sid)
        logger.info(f"Quiz terminated for proctoring session {session_token}: {reason}")


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if CORS_ORIGINS == ["*"] else CORS_ORIGINS,
)
relay = ProctoringRelay(sio).register()

# services/proctoring_service.py
import logging
import secrets
import time
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from fastapi import HTTPException

from crud.proctoring import ProctoringCRUD
from models.base import naive_utc
from models.proctoring import (
    OPEN_SESSION_STATUSES, SESSION_MODE_FOR, SEVERITY_IMPACT, EventTypeEnum, ProctoringEvent,
    ProctoringModeEnum, ProctoringSession, SessionStatusEnum, SeverityEnum
)
from models.user import User
from services.proctoring_relay import ProctoringRelay, relay as default_relay

logger = logging.getLogger(__name__)

MAX_RISK_SCORE = 100


def generate_session_token(quiz_id: str, user_id: str) -> str:
    return f"proctor_{quiz_id}_{user_id}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class ProctoringService:
    """Proctoring sessions, their event log and the risk score the events drive."""

    def __init__(self, relay: Optional[ProctoringRelay] = None):
        self.crud = ProctoringCRUD()
        self.relay = relay or default_relay

    async def start_session(
        self,
        quiz_id: str,
        student: User,
        submission_id: Optional[str] = None
    ) -> Tuple[Dict[str, Any], bool]:
        """Returns the session and whether an open one was resumed."""
        settings = await self.crud.get_settings(quiz_id)
        if not settings["enabled"] or settings["mode"] == ProctoringModeEnum.disabled.value:
            raise HTTPException(status_code=400, detail="Proctoring is not enabled for this quiz")

        existing = await self.crud.get_open_session(quiz_id, student.id)
        if existing:
            update: Dict[str, Any] = {"last_connection_time": datetime.utcnow()}
            if submission_id and not existing.get("submission_id"):
                update["submission_id"] = submission_id
            return await self.crud.update_session(existing["id"], update), True

        session = await self.crud.create_session(ProctoringSession(
            quiz_id=quiz_id,
            student_id=student.id,
            submission_id=submission_id,
            session_token=generate_session_token(quiz_id, student.id),
            mode=SESSION_MODE_FOR[ProctoringModeEnum(settings["mode"])],
        ))
        await self.crud.create_event(ProctoringEvent(
            session_id=session["id"],
            event_type=EventTypeEnum.session_start,
            description="Proctoring session started",
            metadata={"quiz_id": quiz_id, "mode": session["mode"]},
        ))
        logger.info(f"🎥 Proctoring session {session['session_token']} started for {student.username}")
        return session, False

    async def log_event(
        self,
        session: Dict[str, Any],
        event_type: EventTypeEnum,
        severity: SeverityEnum = SeverityEnum.low,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Tuple[Dict[str, Any], Dict[str, Any], bool]:
        """
        Record an event and fold its severity into the session. High and
        critical events add a flag and raise the risk score. Exceeding the
        allowed flags marks the session flagged; reaching the risk threshold
        terminates it when the quiz auto-terminates on high risk.

        Returns the event, the updated session and whether it was terminated.
        """
        event = await self.crud.create_event(ProctoringEvent(
            session_id=session["id"],
            event_type=event_type,
            severity=severity,
            description=description,
            metadata=metadata or {},
        ))

        flags, risk = SEVERITY_IMPACT[SeverityEnum(severity)]
        if not flags and not risk:
            return event, session, False

        settings = await self.crud.get_settings(session["quiz_id"])
        # counters are bumped in the database so concurrent events all count
        session = await self.crud.increment_risk(session["id"], flags, risk, MAX_RISK_SCORE)
        if session is None:
            raise HTTPException(status_code=404, detail="Proctoring session not found")
        risk_score = session["risk_score"]

        live_statuses = [s.value for s in OPEN_SESSION_STATUSES] + [SessionStatusEnum.flagged.value]
        if session["status"] not in live_statuses:
            return event, session, False

        if settings["auto_terminate_on_high_risk"] and risk_score >= settings["risk_threshold"]:
            now = datetime.utcnow()
            terminated = await self.crud.transition_session(session["id"], live_statuses, {
                "status": SessionStatusEnum.terminated.value,
                "ended_at": now,
                "duration_minutes": self._duration(session, now),
            })
            if terminated is None:
                # another event got there first
                return event, await self.crud.get_session(session["id"]), False
            logger.warning(f"🚫 Proctoring session {terminated['session_token']} terminated at risk {risk_score}")
            await self.relay.terminate_quiz(terminated["session_token"], "High risk score")
            return event, terminated, True

        if session["flags_count"] > settings["max_flags_allowed"] and session["status"] != SessionStatusEnum.flagged.value:
            flagged = await self.crud.transition_session(
                session["id"],
                [s.value for s in OPEN_SESSION_STATUSES],
                {"status": SessionStatusEnum.flagged.value}
            )
            session = flagged or await self.crud.get_session(session["id"])
        return event, session, False

    @staticmethod
    def _duration(session: Dict[str, Any], ended_at: datetime) -> float:
        started_at = naive_utc(session["started_at"])
        return round((ended_at - started_at).total_seconds() / 60, 2)

    async def end_session(self, session: Dict[str, Any]) -> Dict[str, Any]:
        if session["status"] in (SessionStatusEnum.completed.value, SessionStatusEnum.terminated.value):
            raise HTTPException(status_code=400, detail="Session has already ended")

        now = datetime.utcnow()
        duration = self._duration(session, now)
        updated = await self.crud.update_session(session["id"], {
            "status": SessionStatusEnum.completed.value,
            "ended_at": now,
            "duration_minutes": duration,
            "is_connected": False,
        })
        await self.crud.create_event(ProctoringEvent(
            session_id=session["id"],
            event_type=EventTypeEnum.session_end,
            description="Proctoring session ended",
            metadata={"duration_minutes": duration},
        ))
        return updated

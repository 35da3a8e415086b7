# crud/proctoring.py
from typing import List, Optional, Dict, Any
from datetime import datetime

from pymongo import ReturnDocument

from database import get_database
from models.base import from_document
from models.proctoring import (
    OPEN_SESSION_STATUSES, ProctoringEvent, ProctoringSession, ProctoringSettings
)


class ProctoringCRUD:

    # -- settings -----------------------------------------------------------

    async def get_settings(self, quiz_id: str) -> Dict[str, Any]:
        """Settings for a quiz, created with defaults on first read."""
        db = await get_database()
        settings = await db.proctoring_settings.find_one({"quiz_id": quiz_id})
        if settings:
            return from_document(settings)

        document = ProctoringSettings(quiz_id=quiz_id).to_document()
        await db.proctoring_settings.insert_one(document)
        return from_document(document)

    async def update_settings(self, quiz_id: str, update: Dict[str, Any]) -> Dict[str, Any]:
        db = await get_database()
        await self.get_settings(quiz_id)
        update["updated_at"] = datetime.utcnow()
        await db.proctoring_settings.update_one({"quiz_id": quiz_id}, {"$set": update})
        return await self.get_settings(quiz_id)

    # -- sessions -----------------------------------------------------------

    async def create_session(self, session: ProctoringSession) -> Dict[str, Any]:
        db = await get_database()
        document = session.to_document()
        await db.proctoring_sessions.insert_one(document)
        return from_document(document)

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.proctoring_sessions.find_one({"_id": session_id}))

    async def get_session_by_token(self, session_token: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.proctoring_sessions.find_one({"session_token": session_token}))

    async def get_open_session(self, quiz_id: str, student_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        session = await db.proctoring_sessions.find_one({
            "quiz_id": quiz_id,
            "student_id": student_id,
            "status": {"$in": [status.value for status in OPEN_SESSION_STATUSES]},
        })
        return from_document(session)

    async def get_sessions(
        self,
        quiz_id: Optional[str] = None,
        student_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        db = await get_database()
        query: Dict[str, Any] = {}
        if quiz_id:
            query["quiz_id"] = quiz_id
        if student_id:
            query["student_id"] = student_id
        sessions = await db.proctoring_sessions.find(query).sort("started_at", -1).to_list(length=1000)
        return [from_document(s) for s in sessions]

    async def update_session(self, session_id: str, update: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        db = await get_database()
        update["updated_at"] = datetime.utcnow()
        result = await db.proctoring_sessions.update_one({"_id": session_id}, {"$set": update})
        if result.matched_count == 0:
            return None
        return await self.get_session(session_id)

    async def increment_risk(self, session_id: str, flags: int, risk: float, max_risk: float) -> Optional[Dict[str, Any]]:
        """Add to the flag count and risk score in place, then cap the score at ``max_risk``."""
        db = await get_database()
        session = await db.proctoring_sessions.find_one_and_update(
            {"_id": session_id},
            {"$inc": {"flags_count": flags, "risk_score": risk}, "$set": {"updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if session and session.get("risk_score", 0) > max_risk:
            await db.proctoring_sessions.update_one(
                {"_id": session_id, "risk_score": {"$gt": max_risk}},
                {"$set": {"risk_score": max_risk}}
            )
            return await self.get_session(session_id)
        return from_document(session)

    async def transition_session(
        self,
        session_id: str,
        from_statuses: List[str],
        update: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Apply ``update`` only while the session is still in one of ``from_statuses``."""
        db = await get_database()
        update["updated_at"] = datetime.utcnow()
        result = await db.proctoring_sessions.update_one(
            {"_id": session_id, "status": {"$in": from_statuses}}, {"$set": update}
        )
        if result.matched_count == 0:
            return None
        return await self.get_session(session_id)

    # -- events -------------------------------------------------------------

    async def create_event(self, event: ProctoringEvent) -> Dict[str, Any]:
        db = await get_database()
        document = event.to_document()
        await db.proctoring_events.insert_one(document)
        return from_document(document)

    async def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.proctoring_events.find_one({"_id": event_id}))

    async def get_session_events(self, session_id: str) -> List[Dict[str, Any]]:
        db = await get_database()
        events = await db.proctoring_events.find({"session_id": session_id}).sort("timestamp", 1).to_list(length=5000)
        return [from_document(e) for e in events]

    async def review_event(self, event_id: str, reviewer_id: str, notes: Optional[str] = None) -> Optional[Dict[str, Any]]:
        db = await get_database()
        now = datetime.utcnow()
        result = await db.proctoring_events.update_one(
            {"_id": event_id},
            {"$set": {"reviewed_by": reviewer_id, "reviewed_at": now, "review_notes": notes, "updated_at": now}}
        )
        if result.matched_count == 0:
            return None
        return await self.get_event(event_id)

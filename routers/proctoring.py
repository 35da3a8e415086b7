from fastapi import APIRouter, Depends, HTTPException, status
from datetime import datetime
from typing import List

from crud.proctoring import ProctoringCRUD
from models.user import User, RoleEnum
from schemas.proctoring import (
    EventCreate, EventLogged, EventResponse, EventReview, ProctoringSettingsResponse,
    ProctoringSettingsUpdate, SessionDetail, SessionResponse, SessionStart, SessionUpdate
)
from dependencies import require_any_user, require_instructor_or_admin, require_student
from routers.quiz import ensure_quiz_manager, get_quiz_or_404
from services.proctoring_service import ProctoringService

router = APIRouter(prefix="/proctoring", tags=["Proctoring"])

proctoring_crud = ProctoringCRUD()


def get_proctoring_service():
    return ProctoringService()


async def get_session_or_404(session_id: str) -> dict:
    session = await proctoring_crud.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Proctoring session not found")
    return session

async def ensure_session_access(session: dict, current_user: User):
    """The proctored student, or staff who manage the quiz"""
    if current_user.role == RoleEnum.student:
        if session["student_id"] != current_user.id:
            raise HTTPException(status_code=403, detail="This session belongs to another student")
        return
    await ensure_quiz_manager(await get_quiz_or_404(session["quiz_id"]), current_user)


# Settings

@router.get("/quizzes/{quiz_id}/settings", response_model=ProctoringSettingsResponse)
async def get_proctoring_settings(
    quiz_id: str,
    current_user: User = Depends(require_any_user)
):
    """Students need the settings to set up their camera and browser before starting"""
    await get_quiz_or_404(quiz_id)
    return await proctoring_crud.get_settings(quiz_id)

@router.put("/quizzes/{quiz_id}/settings", response_model=ProctoringSettingsResponse)
async def update_proctoring_settings(
    quiz_id: str,
    payload: ProctoringSettingsUpdate,
    current_user: User = Depends(require_instructor_or_admin)
):
    await ensure_quiz_manager(await get_quiz_or_404(quiz_id), current_user)
    update = payload.model_dump(exclude_unset=True)
    if "mode" in update and update["mode"] is not None:
        update["mode"] = payload.mode.value
    return await proctoring_crud.update_settings(quiz_id, update)

# Sessions

@router.post("/quizzes/{quiz_id}/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_proctoring_session(
    quiz_id: str,
    payload: SessionStart,
    service: ProctoringService = Depends(get_proctoring_service),
    current_user: User = Depends(require_student)
):
    """Start a session, or resume the student's open one"""
    await get_quiz_or_404(quiz_id)
    session, _ = await service.start_session(quiz_id, current_user, payload.submission_id)
    return session

@router.get("/my-sessions", response_model=List[SessionResponse])
async def get_my_sessions(current_user: User = Depends(require_student)):
    return await proctoring_crud.get_sessions(student_id=current_user.id)

@router.get("/active-streams")
async def get_active_streams(
    service: ProctoringService = Depends(get_proctoring_service),
    current_user: User = Depends(require_instructor_or_admin)
):
    """Streams currently known to the Socket.IO relay"""
    return service.relay.list_streams()

@router.get("/quizzes/{quiz_id}/sessions", response_model=List[SessionResponse])
async def get_quiz_sessions(
    quiz_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    await ensure_quiz_manager(await get_quiz_or_404(quiz_id), current_user)
    return await proctoring_crud.get_sessions(quiz_id=quiz_id)

@router.get("/sessions/{session_id}", response_model=SessionDetail)
async def get_session_detail(
    session_id: str,
    current_user: User = Depends(require_any_user)
):
    session = await get_session_or_404(session_id)
    await ensure_session_access(session, current_user)
    return {**session, "events": await proctoring_crud.get_session_events(session_id)}

@router.put("/sessions/{session_id}", response_model=SessionResponse)
async def update_proctoring_session(
    session_id: str,
    payload: SessionUpdate,
    current_user: User = Depends(require_any_user)
):
    session = await get_session_or_404(session_id)
    await ensure_session_access(session, current_user)

    update = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "status" in update:
        update["status"] = payload.status.value
    if "is_connected" in update and update["is_connected"]:
        update["last_connection_time"] = datetime.utcnow()
    return await proctoring_crud.update_session(session_id, update)

@router.post("/sessions/{session_id}/end", response_model=SessionResponse)
async def end_proctoring_session(
    session_id: str,
    service: ProctoringService = Depends(get_proctoring_service),
    current_user: User = Depends(require_any_user)
):
    session = await get_session_or_404(session_id)
    await ensure_session_access(session, current_user)
    return await service.end_session(session)

# Events

@router.post("/sessions/{session_id}/events", response_model=EventLogged, status_code=status.HTTP_201_CREATED)
async def log_proctoring_event(
    session_id: str,
    payload: EventCreate,
    service: ProctoringService = Depends(get_proctoring_service),
    current_user: User = Depends(require_any_user)
):
    session = await get_session_or_404(session_id)
    await ensure_session_access(session, current_user)

    event, session, terminated = await service.log_event(
        session, payload.event_type, payload.severity, payload.description, payload.metadata
    )
    return EventLogged(event=event, session=session, terminated=terminated)

@router.put("/events/{event_id}/review", response_model=EventResponse)
async def review_proctoring_event(
    event_id: str,
    payload: EventReview,
    current_user: User = Depends(require_instructor_or_admin)
):
    event = await proctoring_crud.get_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Proctoring event not found")
    await ensure_session_access(await get_session_or_404(event["session_id"]), current_user)
    return await proctoring_crud.review_event(event_id, current_user.id, payload.review_notes)

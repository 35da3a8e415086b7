# schemas/proctoring.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from models.proctoring import (
    EventTypeEnum, ProctoringModeEnum, SessionModeEnum, SessionStatusEnum, SeverityEnum
)

class ProctoringSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    mode: Optional[ProctoringModeEnum] = None
    require_webcam: Optional[bool] = None
    require_microphone: Optional[bool] = None
    require_screen_share: Optional[bool] = None
    require_identity_verification: Optional[bool] = None
    require_environment_scan: Optional[bool] = None
    allow_tab_switching: Optional[bool] = None
    require_fullscreen: Optional[bool] = None
    camera_level_threshold: Optional[float] = Field(default=None, ge=0, le=100)
    microphone_level_threshold: Optional[float] = Field(default=None, ge=0, le=100)
    speaker_level_threshold: Optional[float] = Field(default=None, ge=0, le=100)
    face_detection_sensitivity: Optional[float] = Field(default=None, ge=0, le=1)
    object_detection_sensitivity: Optional[float] = Field(default=None, ge=0, le=1)
    max_flags_allowed: Optional[int] = Field(default=None, ge=0)
    auto_terminate_on_high_risk: Optional[bool] = None
    risk_threshold: Optional[float] = Field(default=None, ge=0, le=100)

class ProctoringSettingsResponse(BaseModel):
    id: str
    quiz_id: str
    enabled: bool
    mode: ProctoringModeEnum
    require_webcam: bool
    require_microphone: bool
    require_screen_share: bool
    require_identity_verification: bool
    require_environment_scan: bool
    allow_tab_switching: bool
    require_fullscreen: bool
    camera_level_threshold: float
    microphone_level_threshold: float
    speaker_level_threshold: float
    face_detection_sensitivity: float
    object_detection_sensitivity: float
    max_flags_allowed: int
    auto_terminate_on_high_risk: bool
    risk_threshold: float

class SessionStart(BaseModel):
    submission_id: Optional[str] = None

class SessionUpdate(BaseModel):
    status: Optional[SessionStatusEnum] = None
    identity_verified: Optional[bool] = None
    environment_verified: Optional[bool] = None
    is_connected: Optional[bool] = None

class SessionResponse(BaseModel):
    id: str
    quiz_id: str
    student_id: str
    submission_id: Optional[str] = None
    session_token: str
    status: SessionStatusEnum
    mode: SessionModeEnum
    flags_count: int
    risk_score: float
    identity_verified: bool
    environment_verified: bool
    is_connected: bool
    last_connection_time: Optional[datetime] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[float] = None

class EventCreate(BaseModel):
    event_type: EventTypeEnum
    severity: SeverityEnum = SeverityEnum.low
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

class EventReview(BaseModel):
    review_notes: Optional[str] = None

class EventResponse(BaseModel):
    id: str
    session_id: str
    event_type: EventTypeEnum
    severity: SeverityEnum
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

class EventLogged(BaseModel):
    event: EventResponse
    session: SessionResponse
    terminated: bool = False

class SessionDetail(SessionResponse):
    events: List[EventResponse] = Field(default_factory=list)

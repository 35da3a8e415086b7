# models/proctoring.py
from pydantic import Field
from typing import Any, Dict, Optional
from datetime import datetime
from enum import Enum

from models.base import MongoDBModel

class ProctoringModeEnum(str, Enum):
    automated = "automated"
    live = "live"
    record_review = "record_review"
    disabled = "disabled"

class SessionModeEnum(str, Enum):
    live_proctoring = "live_proctoring"
    automated_proctoring = "automated_proctoring"
    record_review = "record_review"

# Quiz-level mode -> session mode
SESSION_MODE_FOR = {
    ProctoringModeEnum.automated: SessionModeEnum.automated_proctoring,
    ProctoringModeEnum.live: SessionModeEnum.live_proctoring,
    ProctoringModeEnum.record_review: SessionModeEnum.record_review,
}

class SessionStatusEnum(str, Enum):
    setup = "setup"
    active = "active"
    paused = "paused"
    completed = "completed"
    terminated = "terminated"
    flagged = "flagged"

OPEN_SESSION_STATUSES = (SessionStatusEnum.setup, SessionStatusEnum.active)

class EventTypeEnum(str, Enum):
    session_start = "session_start"
    session_end = "session_end"
    identity_verification = "identity_verification"
    environment_scan = "environment_scan"
    face_not_visible = "face_not_visible"
    multiple_faces = "multiple_faces"
    looking_away = "looking_away"
    tab_switch = "tab_switch"
    window_minimized = "window_minimized"
    browser_leave = "browser_leave"
    suspicious_audio = "suspicious_audio"
    device_disconnected = "device_disconnected"
    network_issue = "network_issue"
    screen_recording_start = "screen_recording_start"
    screen_recording_stop = "screen_recording_stop"
    manual_flag = "manual_flag"
    auto_flag = "auto_flag"
    proctor_message = "proctor_message"
    fullscreen_exited = "fullscreen_exited"
    camera_level_low = "camera_level_low"
    microphone_level_low = "microphone_level_low"
    speaker_level_low = "speaker_level_low"
    mobile_phone_detected = "mobile_phone_detected"
    unauthorized_object_detected = "unauthorized_object_detected"

class SeverityEnum(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

# severity -> (flags added, risk added)
SEVERITY_IMPACT = {
    SeverityEnum.low: (0, 0),
    SeverityEnum.medium: (0, 0),
    SeverityEnum.high: (1, 10),
    SeverityEnum.critical: (1, 20),
}

class ProctoringSettings(MongoDBModel):
    quiz_id: str
    enabled: bool = False
    mode: ProctoringModeEnum = ProctoringModeEnum.automated
    require_webcam: bool = True
    require_microphone: bool = False
    require_screen_share: bool = False
    require_identity_verification: bool = False
    require_environment_scan: bool = False
    allow_tab_switching: bool = False
    require_fullscreen: bool = True
    camera_level_threshold: float = Field(default=30, ge=0, le=100)
    microphone_level_threshold: float = Field(default=20, ge=0, le=100)
    speaker_level_threshold: float = Field(default=20, ge=0, le=100)
    face_detection_sensitivity: float = Field(default=0.7, ge=0, le=1)
    object_detection_sensitivity: float = Field(default=0.6, ge=0, le=1)
    max_flags_allowed: int = Field(default=5, ge=0)
    auto_terminate_on_high_risk: bool = False
    risk_threshold: float = Field(default=80, ge=0, le=100)

class ProctoringSession(MongoDBModel):
    quiz_id: str
    student_id: str
    submission_id: Optional[str] = None
    session_token: str
    status: SessionStatusEnum = SessionStatusEnum.setup
    mode: SessionModeEnum = SessionModeEnum.automated_proctoring
    flags_count: int = 0
    risk_score: float = Field(default=0, ge=0, le=100)
    identity_verified: bool = False
    environment_verified: bool = False
    is_connected: bool = False
    last_connection_time: Optional[datetime] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[float] = None

class ProctoringEvent(MongoDBModel):
    session_id: str
    event_type: EventTypeEnum
    severity: SeverityEnum = SeverityEnum.low
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

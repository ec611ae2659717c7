"""
FastAPI entry point for the rehab pose core.

One session per camera feed; every session owns its own ``RehabCore``
(counters, scorers) and shares the read-only activity classifier.

Endpoints:
    GET    /health
    POST   /api/sessions
    PUT    /api/sessions/{session_id}/exercise
    POST   /api/sessions/{session_id}/frames
    POST   /api/sessions/{session_id}/reset
    GET    /api/sessions/{session_id}/summary
    DELETE /api/sessions/{session_id}

Run:
    uvicorn rehabcore.main:app --host 0.0.0.0 --port 8000
"""

import logging
import threading
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .classifier import ActivityClassifier
from .config import LOG_LEVEL, MAX_SESSIONS, SESSION_TTL_S
from .core import RehabCore
from .state import ProcessResult, SetSnapshot

logger = logging.getLogger("rehabcore")
logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s")


# ============================================================================
# Pydantic request / response models
# ============================================================================

class Landmark(BaseModel):
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = None


class FrameRequest(BaseModel):
    landmarks: list[Landmark] = Field(..., description="33 normalized image-space landmarks")
    world_landmarks: Optional[list[Landmark]] = Field(
        default=None, description="33 metric-space landmarks (optional)"
    )
    timestamp_ms: Optional[float] = Field(default=None, description="Monotonic frame time")


class ExerciseRequest(BaseModel):
    name: str


class SessionCreated(BaseModel):
    session_id: str


class ExerciseSet(BaseModel):
    exercise: Optional[str]


class FrameSkipped(BaseModel):
    skipped: bool = True


class ErrorResponse(BaseModel):
    error_code: str
    message: str


# ============================================================================
# Shared state
# ============================================================================

@dataclass
class _Session:
    core: RehabCore
    lock: threading.Lock = field(default_factory=threading.Lock)
    last_seen: float = field(default_factory=time.monotonic)


_classifier: Optional[ActivityClassifier] = None
_sessions: dict[str, _Session] = {}
_sessions_lock = threading.Lock()


def get_classifier() -> ActivityClassifier:
    """Load (or return cached) activity classifier."""
    global _classifier
    if _classifier is None:
        _classifier = ActivityClassifier.from_json()
    return _classifier


def _get_session(session_id: str) -> Optional[_Session]:
    """Look up a live session and mark it as used; expired ones are dropped."""
    now = time.monotonic()
    with _sessions_lock:
        session = _sessions.get(session_id)
        if session is None:
            return None
        if now - session.last_seen > SESSION_TTL_S:
            del _sessions[session_id]
            logger.info("Session %s expired after %.0f s idle", session_id, now - session.last_seen)
            return None
        session.last_seen = now
        return session


def _evict_sessions(now: float) -> None:
    """Drop idle sessions, then the least recently used ones, to make room for one more.

    Caller holds ``_sessions_lock``.
    """
    for session_id, session in list(_sessions.items()):
        if now - session.last_seen > SESSION_TTL_S:
            del _sessions[session_id]
            logger.info("Session %s expired after %.0f s idle", session_id, now - session.last_seen)

    overflow = len(_sessions) - max(MAX_SESSIONS - 1, 0)
    if overflow > 0:
        oldest = sorted(_sessions, key=lambda k: _sessions[k].last_seen)[:overflow]
        for session_id in oldest:
            del _sessions[session_id]
            logger.warning("Session %s evicted: limit of %d sessions reached", session_id, MAX_SESSIONS)


def _not_found(session_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"error_code": "SESSION_NOT_FOUND", "message": f"No session '{session_id}'."},
    )


# ============================================================================
# App lifecycle: load the classifier once on startup
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting rehab pose core …")
    get_classifier()
    logger.info("Classifier loaded, server is ready.")
    yield
    _sessions.clear()
    logger.info("Shutting down.")


app = FastAPI(
    title="Rehab Pose Core API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error_code": "INVALID_REQUEST", "message": str(exc.errors())},
    )


# ============================================================================
# Health-check
# ============================================================================

@app.get("/health")
async def health():
    return {"status": "ok", "sessions": len(_sessions)}


# ============================================================================
# Sessions
# ============================================================================

@app.post("/api/sessions", response_model=SessionCreated)
def create_session():
    session_id = uuid.uuid4().hex
    core = RehabCore.from_settings(get_classifier())
    with _sessions_lock:
        _evict_sessions(time.monotonic())
        _sessions[session_id] = _Session(core=core)
        active = len(_sessions)
    logger.info("Session %s created (%d active)", session_id, active)
    return SessionCreated(session_id=session_id)


@app.put(
    "/api/sessions/{session_id}/exercise",
    response_model=ExerciseSet,
    responses={404: {"model": ErrorResponse}},
)
def set_exercise(session_id: str, request: ExerciseRequest):
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    with session.lock:
        session.core.set_exercise(request.name)
        return ExerciseSet(exercise=session.core.current_exercise)


@app.post(
    "/api/sessions/{session_id}/frames",
    responses={
        200: {"model": ProcessResult},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
def process_frame(session_id: str, request: FrameRequest):
    """Run one frame through the session's core.

    Sync on purpose: FastAPI runs it in a threadpool, and the per-session
    lock keeps frames of one session strictly sequential.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    landmarks = [lm.model_dump() for lm in request.landmarks]
    world = (
        [lm.model_dump() for lm in request.world_landmarks]
        if request.world_landmarks
        else None
    )
    with session.lock:
        result = session.core.process(landmarks, world, request.timestamp_ms)
    if result is None:
        return FrameSkipped()
    return result


@app.post(
    "/api/sessions/{session_id}/reset",
    response_model=SetSnapshot,
    responses={404: {"model": ErrorResponse}},
)
def reset_session(session_id: str):
    """Reset the set; returns the snapshot taken just before the reset."""
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    with session.lock:
        snapshot = session.core.snapshot()
        session.core.reset()
    return snapshot


@app.get(
    "/api/sessions/{session_id}/summary",
    response_model=SetSnapshot,
    responses={404: {"model": ErrorResponse}},
)
def session_summary(session_id: str):
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    with session.lock:
        return session.core.snapshot()


@app.delete("/api/sessions/{session_id}", responses={404: {"model": ErrorResponse}})
def delete_session(session_id: str):
    with _sessions_lock:
        session = _sessions.pop(session_id, None)
        active = len(_sessions)
    if session is None:
        return _not_found(session_id)
    logger.info("Session %s closed (%d active)", session_id, active)
    return {"deleted": session_id}

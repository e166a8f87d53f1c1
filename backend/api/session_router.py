"""API routes for learning sessions."""

import json
import logging

from fastapi import APIRouter, Depends, Request, Response, status

from backend.api.deps import get_controller, get_optional_user_id, get_user_id
from backend.api.schemas import (
    BeaconRequest,
    CurrentSessionResponse,
    ProgressRequest,
    ProgressResponse,
    SessionResponse,
    SessionStartRequest,
    SessionStartResponse,
    SetInfoResponse,
    SetWordsResponse,
    WordResponse,
)
from backend.errors import AuthenticationError, ValidationError
from backend.models.learning_session import SessionStatus
from backend.srs.session import LearningSessionController, SessionView
from backend.srs.word_source import StudyMode

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])

# Session positions change with every answer and must never be cached.
NO_STORE = "private, no-store"


def _words(view_words: list) -> list[WordResponse]:
    return [WordResponse.model_validate(word) for word in view_words]


def _set_info(view: SessionView) -> SetInfoResponse | None:
    return SetInfoResponse.model_validate(view.set_info) if view.set_info else None


@router.post("/start", response_model=SessionStartResponse)
async def session_start(
    request: SessionStartRequest,
    response: Response,
    user_id: int | None = Depends(get_optional_user_id),
    controller: LearningSessionController = Depends(get_controller),
) -> SessionStartResponse:
    """Start or resume a session; non-level modes return a stateless pass."""
    response.headers["Cache-Control"] = NO_STORE

    if request.mode != StudyMode.LEVEL:
        study_pass = await controller.start_pass(user_id, request.mode, request.exam, request.level)
        return SessionStartResponse(
            session=None,
            words=_words(study_pass.words),
            total_words=study_pass.total_words,
            is_new=True,
            mode=request.mode,
        )

    if user_id is None:
        raise AuthenticationError("Unauthorized")
    view = await controller.start(user_id, request.exam, request.level, restart=request.restart)
    if view.is_new:
        response.status_code = status.HTTP_201_CREATED
    return SessionStartResponse(
        session=SessionResponse.model_validate(view.session),
        words=_words(view.words),
        set_info=_set_info(view),
        total_words=view.session.total_words,
        is_new=view.is_new,
    )


@router.get("", response_model=CurrentSessionResponse)
async def session_current(
    exam: str,
    level: str,
    response: Response,
    user_id: int = Depends(get_user_id),
    controller: LearningSessionController = Depends(get_controller),
) -> CurrentSessionResponse:
    """Get the in-progress session for an exam/level, if there is one."""
    response.headers["Cache-Control"] = NO_STORE
    view = await controller.current(user_id, exam, level)
    if view is None:
        return CurrentSessionResponse(session=None, status=SessionStatus.NOT_STARTED)
    return CurrentSessionResponse(
        session=SessionResponse.model_validate(view.session),
        status=view.session.status,
        words=_words(view.words),
        set_info=_set_info(view),
    )


@router.patch("/progress", response_model=ProgressResponse)
async def session_progress(
    request: ProgressRequest,
    response: Response,
    user_id: int = Depends(get_user_id),
    controller: LearningSessionController = Depends(get_controller),
) -> ProgressResponse:
    """Checkpoint the position or complete the current set."""
    response.headers["Cache-Control"] = NO_STORE
    view = await controller.update_progress(
        user_id,
        request.session_id,
        current_index=request.current_index,
        completed_set=request.completed_set,
        current_set=request.current_set,
    )
    is_completed = view.session.status == SessionStatus.COMPLETED
    return ProgressResponse(
        session=SessionResponse.model_validate(view.session),
        words=_words(view.words) if request.completed_set and view.words else None,
        set_info=_set_info(view),
        is_completed=is_completed,
    )


@router.post("/progress-beacon")
async def session_progress_beacon(
    request: Request,
    user_id: int = Depends(get_user_id),
    controller: LearningSessionController = Depends(get_controller),
) -> dict:
    """Save the position sent on page exit.

    sendBeacon posts JSON as text/plain, so the body is parsed by hand.
    It cannot set headers either: the gateway derives ``X-User-Id`` from the
    session cookie for this route as for every other, and a beacon that
    reaches the service without it is rejected with 401.
    The checkpoint is best effort; a dropped write still answers 200.
    """
    raw = await request.body()
    try:
        beacon = BeaconRequest.model_validate(json.loads(raw or b"{}"))
    except ValueError as exc:
        raise ValidationError("Invalid beacon payload") from exc

    stored = await controller.checkpoint(
        user_id, beacon.session_id, beacon.current_index, beacon.current_set
    )
    return {"success": stored}


@router.get("/{session_id}/set/{set_number}", response_model=SetWordsResponse)
async def session_set(
    session_id: str,
    set_number: int,
    user_id: int = Depends(get_user_id),
    controller: LearningSessionController = Depends(get_controller),
) -> SetWordsResponse:
    """Get the words of a specific set, for jumping between sets."""
    words, set_info = await controller.set_words(user_id, session_id, set_number)
    return SetWordsResponse(words=_words(words), set_info=SetInfoResponse.model_validate(set_info))

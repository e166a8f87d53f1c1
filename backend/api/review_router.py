"""API routes for submitting reviews and listing due words."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_controller, get_user_id
from backend.api.schemas import (
    DueReviewsResponse,
    ReviewRequest,
    ReviewResponse,
    ScheduleStateResponse,
    SessionResponse,
    WordResponse,
)
from backend.database import get_session, storage_errors
from backend.srs.catalog import WordCatalog
from backend.srs.progress_store import ProgressStore
from backend.srs.session import LearningSessionController, validate_exam_level

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/review", tags=["review"])


@router.post("", response_model=ReviewResponse)
async def submit_review(
    request: ReviewRequest,
    user_id: int = Depends(get_user_id),
    controller: LearningSessionController = Depends(get_controller),
) -> ReviewResponse:
    """Record a rating and schedule the word's next review."""
    result = await controller.record_answer(
        user_id,
        request.word_id,
        request.rating,
        session_id=request.session_id,
        request_id=request.request_id,
        response_time_ms=request.response_time_ms,
        learning_method=request.learning_method,
    )
    return ReviewResponse(
        schedule_state=ScheduleStateResponse.model_validate(result.schedule),
        mastery_level=result.mastery_level,
        next_review_date=result.schedule.next_review_date,
        session=SessionResponse.model_validate(result.session) if result.session else None,
        set_complete=result.set_complete,
        replayed=result.replayed,
    )


@router.get("/due", response_model=DueReviewsResponse)
async def due_reviews(
    exam: str | None = None,
    level: str | None = None,
    user_id: int = Depends(get_user_id),
    db: AsyncSession = Depends(get_session),
) -> DueReviewsResponse:
    """List words due for review, weakest and most neglected first."""
    if exam is not None:
        exam, level = validate_exam_level(exam, level, level_required=False)
    with storage_errors("due_reviews"):
        word_ids = await ProgressStore(db).find_due(user_id, exam=exam, level=level)
        words = await WordCatalog(db).get_many(word_ids)
    return DueReviewsResponse(
        words=[WordResponse.model_validate(word) for word in words],
        count=len(words),
    )

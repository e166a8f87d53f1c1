"""Per-user study statistics shared by the API and the CLI."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import Date, and_, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.review_log import ReviewLog
from backend.models.user_progress import UserProgress
from backend.srs.progress_store import ProgressStore
from backend.srs.sm2 import PASSING_RATING

ACCURACY_WINDOW = timedelta(days=30)


@dataclass
class UserStats:
    words_studied: int
    words_due: int
    words_mastered: int
    total_reviews: int
    accuracy: float | None  # share of recalled answers in the accuracy window
    streak_days: int


def streak_length(review_days: Iterable[date], today: date) -> int:
    """Count consecutive review days ending today."""
    reviewed = set(review_days)
    streak = 0
    while today - timedelta(days=streak) in reviewed:
        streak += 1
    return streak


async def _count(db: AsyncSession, stmt) -> int:  # type: ignore[no-untyped-def]
    return (await db.execute(stmt)).scalar() or 0


async def collect_stats(db: AsyncSession, user_id: int, now: datetime) -> UserStats:
    """Gather the dashboard numbers for one user.

    Storage errors propagate; callers wrap this in ``storage_errors``.
    """
    studied = await _count(
        db, select(func.count(UserProgress.id)).where(UserProgress.user_id == user_id)
    )
    due = await ProgressStore(db).count_due(user_id, today=now.date())
    mastered = await _count(
        db,
        select(func.count(UserProgress.id)).where(
            and_(UserProgress.user_id == user_id, UserProgress.mastery_level == "MASTERED")
        ),
    )
    reviews = await _count(
        db, select(func.count(ReviewLog.id)).where(ReviewLog.user_id == user_id)
    )

    recent = and_(ReviewLog.user_id == user_id, ReviewLog.reviewed_at >= now - ACCURACY_WINDOW)
    recent_total = await _count(db, select(func.count(ReviewLog.id)).where(recent))
    recent_pass = await _count(
        db,
        select(func.count(ReviewLog.id)).where(and_(recent, ReviewLog.rating >= PASSING_RATING)),
    )
    accuracy = round(recent_pass / recent_total, 3) if recent_total else None

    review_day = func.date(ReviewLog.reviewed_at, type_=Date)
    days = (
        await db.execute(select(distinct(review_day)).where(ReviewLog.user_id == user_id))
    ).scalars()

    return UserStats(
        words_studied=studied,
        words_due=due,
        words_mastered=mastered,
        total_reviews=reviews,
        accuracy=accuracy,
        streak_days=streak_length(days, now.date()),
    )

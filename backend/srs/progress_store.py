"""Durable per-user scheduling state.

One ``UserProgress`` row per (user, word). ``apply_review`` is the only
mutation path used during study; it runs the SM-2 update against the
locked row and records a review log in the same transaction. Callers own
the commit.
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import date

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings, today as current_date, utcnow
from backend.errors import ConflictError
from backend.models.review_log import ReviewLog
from backend.models.user_progress import UserProgress
from backend.models.word import Word
from backend.srs import sm2
from backend.srs.sm2 import ScheduleState

logger = logging.getLogger(__name__)

# Words with fewer correct reviews than this still count as weak.
WEAK_CORRECT_THRESHOLD = 3

# Serializes read-modify-write cycles on the same (user, word) within this
# process. Row locks cover other processes on databases that support them.
_key_locks: "weakref.WeakValueDictionary[tuple[int, int], asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


@asynccontextmanager
async def key_lock(user_id: int, word_id: int) -> AsyncIterator[None]:
    """Hold the in-process write lock for one (user, word) record."""
    key = (user_id, word_id)
    lock = _key_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _key_locks[key] = lock
    async with lock:
        yield


@dataclass
class ReviewOutcome:
    """The result of applying one review to stored progress."""

    before: ScheduleState
    after: ScheduleState
    progress: UserProgress
    replayed: bool = False  # request id seen before; nothing was reapplied


def to_state(progress: UserProgress) -> ScheduleState:
    return ScheduleState(
        ease_factor=progress.ease_factor,
        interval=progress.interval,
        repetitions=progress.repetitions,
        next_review_date=progress.next_review_date,
        correct_count=progress.correct_count,
        incorrect_count=progress.incorrect_count,
    )


class ProgressStore:
    """Keyed access to ``UserProgress`` rows for one database session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _load(
        self, user_id: int, word_id: int, for_update: bool = False
    ) -> UserProgress | None:
        stmt = select(UserProgress).where(
            and_(UserProgress.user_id == user_id, UserProgress.word_id == word_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, user_id: int, word_id: int) -> ScheduleState | None:
        progress = await self._load(user_id, word_id)
        return to_state(progress) if progress is not None else None

    async def upsert(self, user_id: int, word_id: int, state: ScheduleState) -> UserProgress:
        """Create or overwrite the scheduling state of one record.

        Every scheduling field is written from ``state``; nothing is merged
        with what was stored before.
        """
        progress = await self._load(user_id, word_id, for_update=True)
        if progress is None:
            progress = UserProgress(
                user_id=user_id,
                word_id=word_id,
                total_reviews=0,
                mastery_level="NEW",
            )
            self.db.add(progress)
        progress.ease_factor = state.ease_factor
        progress.interval = state.interval
        progress.repetitions = state.repetitions
        progress.next_review_date = state.next_review_date
        progress.correct_count = state.correct_count
        progress.incorrect_count = state.incorrect_count
        await self.db.flush()
        return progress

    async def apply_review(
        self,
        user_id: int,
        word_id: int,
        rating: int,
        *,
        today: date | None = None,
        session_id: str | None = None,
        request_id: str | None = None,
        response_time_ms: int | None = None,
        learning_method: str = "FLASHCARD",
    ) -> ReviewOutcome:
        """Apply a validated rating to the stored state of one word.

        Args:
            user_id: The reviewing user.
            word_id: The reviewed word.
            rating: Recall quality 1-5 (validated by the caller).
            today: Review date (defaults to the current UTC date).
            session_id: Learning session the answer belongs to, if any.
            request_id: Client retry key; a repeat returns the stored state.
            response_time_ms: How long the answer took.
            learning_method: FLASHCARD, QUIZ, ...

        Returns:
            ReviewOutcome with the states before and after the review.

        Raises:
            ConflictError: request_id was already used for a different word.
        """
        today = today or current_date()

        if request_id is not None:
            log = await self._find_log(user_id, request_id)
            if log is not None:
                if log.word_id != word_id:
                    raise ConflictError(
                        "request_id was already used for another word",
                        details={"request_id": request_id, "word_id": log.word_id},
                    )
                progress = await self._load(user_id, log.word_id)
                if progress is not None:
                    state = to_state(progress)
                    logger.info(
                        "Replayed review request %s for user %d word %d",
                        request_id,
                        user_id,
                        log.word_id,
                    )
                    return ReviewOutcome(
                        before=state, after=state, progress=progress, replayed=True
                    )

        progress = await self._load(user_id, word_id, for_update=True)
        if progress is None:
            initial = ScheduleState.initial(today)
            progress = UserProgress(
                user_id=user_id,
                word_id=word_id,
                ease_factor=initial.ease_factor,
                interval=initial.interval,
                repetitions=initial.repetitions,
                next_review_date=initial.next_review_date,
                correct_count=0,
                incorrect_count=0,
                total_reviews=0,
                mastery_level="NEW",
            )
            self.db.add(progress)

        before = to_state(progress)
        after = sm2.update(rating, before, today)
        if sm2.is_correct(rating):
            after = replace(after, correct_count=before.correct_count + 1)
        else:
            after = replace(after, incorrect_count=before.incorrect_count + 1)

        progress.ease_factor = after.ease_factor
        progress.interval = after.interval
        progress.repetitions = after.repetitions
        progress.next_review_date = after.next_review_date
        progress.correct_count = after.correct_count
        progress.incorrect_count = after.incorrect_count
        progress.total_reviews = progress.total_reviews + 1
        progress.mastery_level = sm2.mastery_level(
            after.repetitions, after.ease_factor, progress.mastery_level
        )
        progress.last_review_date = utcnow()

        self.db.add(
            ReviewLog(
                user_id=user_id,
                word_id=word_id,
                session_id=session_id,
                request_id=request_id,
                rating=rating,
                response_time_ms=response_time_ms,
                learning_method=learning_method,
                ease_before=before.ease_factor,
                ease_after=after.ease_factor,
                interval_before=before.interval,
                interval_after=after.interval,
            )
        )
        await self.db.flush()

        logger.debug(
            "User %d word %d rated %d: interval %d -> %d, ease %.2f -> %.2f",
            user_id,
            word_id,
            rating,
            before.interval,
            after.interval,
            before.ease_factor,
            after.ease_factor,
        )
        return ReviewOutcome(before=before, after=after, progress=progress)

    async def _find_log(self, user_id: int, request_id: str) -> ReviewLog | None:
        stmt = select(ReviewLog).where(
            and_(ReviewLog.user_id == user_id, ReviewLog.request_id == request_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    def _filtered(self, stmt, exam: str | None, level: str | None):  # type: ignore[no-untyped-def]
        stmt = stmt.join(Word, Word.id == UserProgress.word_id).where(Word.is_active.is_(True))
        if exam:
            stmt = stmt.where(Word.exam_category == exam)
        if level:
            stmt = stmt.where(Word.level == level)
        return stmt

    async def find_due(
        self,
        user_id: int,
        exam: str | None = None,
        level: str | None = None,
        today: date | None = None,
        limit: int | None = None,
    ) -> list[int]:
        """Return ids of words due for review.

        Weakest first: fewest correct reviews, then the longest untouched.
        """
        today = today or current_date()
        stmt = select(UserProgress.word_id).where(
            and_(UserProgress.user_id == user_id, UserProgress.next_review_date <= today)
        )
        stmt = self._filtered(stmt, exam, level).order_by(
            UserProgress.correct_count.asc(),
            UserProgress.updated_at.asc(),
            UserProgress.id.asc(),
        )
        stmt = stmt.limit(limit or settings.due_review_limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_weak(
        self,
        user_id: int,
        exam: str | None = None,
        level: str | None = None,
        limit: int | None = None,
    ) -> list[int]:
        """Return ids of words the user has missed or not yet secured."""
        stmt = select(UserProgress.word_id).where(
            and_(
                UserProgress.user_id == user_id,
                or_(
                    UserProgress.incorrect_count > 0,
                    UserProgress.correct_count < WEAK_CORRECT_THRESHOLD,
                ),
            )
        )
        stmt = self._filtered(stmt, exam, level).order_by(
            UserProgress.correct_count.asc(),
            UserProgress.updated_at.asc(),
            UserProgress.id.asc(),
        )
        stmt = stmt.limit(limit or settings.due_review_limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_due(self, user_id: int, today: date | None = None) -> int:
        today = today or current_date()
        stmt = select(func.count(UserProgress.id)).where(
            and_(UserProgress.user_id == user_id, UserProgress.next_review_date <= today)
        )
        return (await self.db.execute(stmt)).scalar() or 0

"""Learning session controller.

Coordinates the set planner, the word catalog and the progress store into
a resumable multi-set study flow:

    start --> IN_PROGRESS --answer--> IN_PROGRESS
                   |
                   +--completed_set--> IN_PROGRESS (next set) | COMPLETED

The session row is the source of truth for position. Answers are durable
before the position moves; position-only checkpoints are best effort and
can only move forward.
"""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings, utcnow
from backend.database import STORAGE_ERRORS, storage_errors
from backend.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageUnavailable,
    ValidationError,
)
from backend.models.learning_session import LearningSession, SessionStatus
from backend.models.word import EXAM_CATEGORIES, LEVELS, Word
from backend.srs.catalog import WordCatalog
from backend.srs.planner import SetInfo, SetPlanner, shuffled_order
from backend.srs.progress_store import ProgressStore, key_lock
from backend.srs.sm2 import ScheduleState, validate_rating
from backend.srs.word_source import StudyMode, source_for

logger = logging.getLogger(__name__)


@dataclass
class SessionSnapshot:
    """Read-only copy of a session's position and counters."""

    id: str
    exam_category: str
    level: str
    total_words: int
    set_size: int
    total_sets: int
    current_set: int
    current_index: int
    completed_sets: int
    total_reviewed: int
    status: str

    @classmethod
    def of(cls, session: LearningSession) -> SessionSnapshot:
        planner = SetPlanner(session.word_ids, session.set_size)
        return cls(
            id=session.id,
            exam_category=session.exam_category,
            level=session.level,
            total_words=session.total_words,
            set_size=session.set_size,
            total_sets=planner.total_sets,
            current_set=session.current_set,
            current_index=session.current_index,
            completed_sets=session.completed_sets,
            total_reviewed=session.total_reviewed,
            status=session.status,
        )


@dataclass
class SessionView:
    """A session snapshot with the words of its current set."""

    session: SessionSnapshot
    words: list[Word]
    set_info: SetInfo | None
    is_new: bool = False


@dataclass
class StudyPass:
    """A single stateless pass for the review, weak and demo modes."""

    mode: StudyMode
    words: list[Word]
    total_words: int


@dataclass
class AnswerResult:
    schedule: ScheduleState
    mastery_level: str
    session: SessionSnapshot | None
    set_complete: bool
    replayed: bool = False


def validate_exam_level(
    exam: str | None, level: str | None, level_required: bool = True
) -> tuple[str, str | None]:
    """Normalize and check an exam category / level pair."""
    exam = (exam or "").upper()
    if exam not in EXAM_CATEGORIES:
        raise ValidationError("Unknown exam category", details={"exam": exam})
    if level is None and not level_required:
        return exam, None
    level = (level or "").upper()
    if level not in LEVELS:
        raise ValidationError("Unknown level", details={"level": level})
    return exam, level


class LearningSessionController:
    """Session lifecycle operations for one database session."""

    def __init__(self, db: AsyncSession, set_size: int | None = None) -> None:
        self.db = db
        self.set_size = set_size or settings.set_size
        self.catalog = WordCatalog(db)
        self.store = ProgressStore(db)

    # --- Lookup ---

    @staticmethod
    def _planner(session: LearningSession) -> SetPlanner:
        return SetPlanner(session.word_ids, session.set_size)

    async def _load_session(
        self, user_id: int, session_id: str, for_update: bool = False
    ) -> LearningSession:
        stmt = select(LearningSession).where(
            and_(LearningSession.id == session_id, LearningSession.user_id == user_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        session = (await self.db.execute(stmt)).scalar_one_or_none()
        if session is None:
            raise NotFoundError("Session not found", details={"session_id": session_id})
        return session

    async def _find_active(self, user_id: int, exam: str, level: str) -> LearningSession | None:
        stmt = select(LearningSession).where(
            and_(
                LearningSession.user_id == user_id,
                LearningSession.exam_category == exam,
                LearningSession.level == level,
                LearningSession.status == SessionStatus.IN_PROGRESS,
            )
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def get_next_set_words(self, session: LearningSession) -> list[Word]:
        """Return the words of the session's current set, empty once completed."""
        if session.status == SessionStatus.COMPLETED:
            return []
        planner = self._planner(session)
        if planner.total_sets == 0:
            return []
        return await self.catalog.get_many(planner.words_for_set(session.current_set))

    async def _view(self, session: LearningSession, is_new: bool = False) -> SessionView:
        words = await self.get_next_set_words(session)
        set_info = None
        if session.status != SessionStatus.COMPLETED:
            set_info = self._planner(session).bounds(session.current_set)
        return SessionView(
            session=SessionSnapshot.of(session), words=words, set_info=set_info, is_new=is_new
        )

    async def _safe_rollback(self) -> None:
        try:
            await self.db.rollback()
        except STORAGE_ERRORS as exc:
            logger.warning("Rollback failed after storage error: %s", exc)

    # --- Lifecycle ---

    async def start(
        self, user_id: int, exam: str, level: str, restart: bool = False
    ) -> SessionView:
        """Resume the in-progress session for exam/level or create a new one.

        Resuming performs no writes. ``restart`` abandons any in-progress
        session and snapshots the catalog again.
        """
        exam, level = validate_exam_level(exam, level)

        with storage_errors("start"):
            if restart:
                await self.db.execute(
                    update(LearningSession)
                    .where(
                        and_(
                            LearningSession.user_id == user_id,
                            LearningSession.exam_category == exam,
                            LearningSession.level == level,
                            LearningSession.status == SessionStatus.IN_PROGRESS,
                        )
                    )
                    .values(status=SessionStatus.ABANDONED)
                    .execution_options(synchronize_session=False)
                )
            else:
                existing = await self._find_active(user_id, exam, level)
                if existing is not None:
                    logger.info(
                        "Resuming session %s for user %d (%s/%s) at set %d index %d",
                        existing.id,
                        user_id,
                        exam,
                        level,
                        existing.current_set,
                        existing.current_index,
                    )
                    return await self._view(existing)

            word_ids = await source_for(StudyMode.LEVEL).word_ids(self.db, user_id, exam, level)
            if not word_ids:
                raise NotFoundError(
                    "No words found for this exam/level", details={"exam": exam, "level": level}
                )

            seed = random.randrange(2**31)
            order = shuffled_order(word_ids, seed)
            session = LearningSession(
                user_id=user_id,
                exam_category=exam,
                level=level,
                word_order=json.dumps(order),
                shuffle_seed=seed,
                set_size=self.set_size,
                total_words=len(order),
                current_set=0,
                current_index=0,
                completed_sets=0,
                total_reviewed=0,
                reviewed_word_ids="[]",
                status=SessionStatus.IN_PROGRESS,
            )
            self.db.add(session)
            try:
                await self.db.commit()
            except IntegrityError:
                # Another request created the session first; resume it.
                await self.db.rollback()
                existing = await self._find_active(user_id, exam, level)
                if existing is None:
                    raise
                logger.info(
                    "Concurrent start for user %d (%s/%s); resuming %s",
                    user_id,
                    exam,
                    level,
                    existing.id,
                )
                return await self._view(existing)

            logger.info(
                "Started session %s for user %d (%s/%s): %d words in %d sets",
                session.id,
                user_id,
                exam,
                level,
                session.total_words,
                self._planner(session).total_sets,
            )
            return await self._view(session, is_new=True)

    async def start_pass(
        self,
        user_id: int | None,
        mode: StudyMode,
        exam: str | None = None,
        level: str | None = None,
    ) -> StudyPass:
        """Build the first set of a stateless review, weak-word or demo pass."""
        source = source_for(mode)
        if source.persistent:
            raise ValidationError("Level sessions are started with start()", details={"mode": mode})
        if source.requires_user and user_id is None:
            raise AuthenticationError("Sign in to use this study mode")
        if mode == StudyMode.DEMO or exam is not None:
            exam, level = validate_exam_level(exam, level, level_required=False)

        with storage_errors("start_pass"):
            word_ids = await source.word_ids(self.db, user_id, exam, level)
            planner = SetPlanner(word_ids, self.set_size)
            words = []
            if planner.total_sets:
                words = await self.catalog.get_many(planner.words_for_set(0))

        logger.info("Started %s pass for user %s: %d words", mode, user_id, len(word_ids))
        return StudyPass(mode=mode, words=words, total_words=len(word_ids))

    async def current(self, user_id: int, exam: str, level: str) -> SessionView | None:
        """Return the in-progress session for exam/level without creating one."""
        exam, level = validate_exam_level(exam, level)
        with storage_errors("current"):
            session = await self._find_active(user_id, exam, level)
            if session is None:
                return None
            return await self._view(session)

    async def set_words(
        self, user_id: int, session_id: str, set_number: int
    ) -> tuple[list[Word], SetInfo]:
        """Return the words of any set in the session, for direct navigation."""
        with storage_errors("set_words"):
            session = await self._load_session(user_id, session_id)
            planner = self._planner(session)
            ids = planner.words_for_set(set_number)
            return await self.catalog.get_many(ids), planner.bounds(set_number)

    # --- Answers ---

    async def record_answer(
        self,
        user_id: int,
        word_id: int,
        rating: int,
        session_id: str | None = None,
        request_id: str | None = None,
        response_time_ms: int | None = None,
        learning_method: str = "FLASHCARD",
    ) -> AnswerResult:
        """Schedule the next review of a word and move the session forward.

        The progress update and the session position are committed
        together; on a storage failure neither changes and the call fails.
        A word counts towards ``total_reviewed`` the first time it is rated
        in the session; later ratings only update its schedule.
        """
        validate_rating(rating)
        try:
            with storage_errors("record_answer"):
                return await self._record_answer(
                    user_id,
                    word_id,
                    rating,
                    session_id,
                    request_id,
                    response_time_ms,
                    learning_method,
                )
        except StorageUnavailable:
            await self._safe_rollback()
            raise

    async def _record_answer(
        self,
        user_id: int,
        word_id: int,
        rating: int,
        session_id: str | None,
        request_id: str | None,
        response_time_ms: int | None,
        learning_method: str,
    ) -> AnswerResult:
        session = None
        planner = None
        position = None
        if session_id is not None:
            session = await self._load_session(user_id, session_id, for_update=True)
            if session.status != SessionStatus.IN_PROGRESS:
                raise ConflictError(
                    "Session is no longer in progress; start a new session",
                    details={"session_id": session_id, "status": session.status},
                )
            planner = self._planner(session)
            position = planner.set_position(word_id)
            if position is None:
                raise ValidationError(
                    "Word is not part of this session",
                    details={"session_id": session_id, "word_id": word_id},
                )

        if await self.catalog.get(word_id) is None:
            raise NotFoundError("Word not found", details={"word_id": word_id})

        async with key_lock(user_id, word_id):
            outcome = await self.store.apply_review(
                user_id,
                word_id,
                rating,
                session_id=session_id,
                request_id=request_id,
                response_time_ms=response_time_ms,
                learning_method=learning_method,
            )
            if session is not None and not outcome.replayed:
                self._track_answer(session, planner, word_id, position)
            await self.db.commit()

        snapshot = None
        set_complete = False
        if session is not None:
            snapshot = SessionSnapshot.of(session)
            set_complete = session.current_index >= planner.set_length(session.current_set)

        return AnswerResult(
            schedule=outcome.after,
            mastery_level=outcome.progress.mastery_level,
            session=snapshot,
            set_complete=set_complete,
            replayed=outcome.replayed,
        )

    @staticmethod
    def _track_answer(
        session: LearningSession,
        planner: SetPlanner,
        word_id: int,
        position: tuple[int, int],
    ) -> None:
        reviewed = session.reviewed_ids
        if word_id not in reviewed:
            reviewed.add(word_id)
            session.reviewed_word_ids = json.dumps(sorted(reviewed))
            session.total_reviewed = session.total_reviewed + 1

        word_set, word_index = position
        if word_set != session.current_set:
            return
        step = planner.advance(word_set, word_index)
        next_index = planner.set_length(word_set) if step.crossed_set_boundary else step.next_index
        # Re-rating an earlier word never moves the position back.
        session.current_index = max(session.current_index, next_index)

    # --- Progress ---

    async def update_progress(
        self,
        user_id: int,
        session_id: str,
        current_index: int | None = None,
        completed_set: bool = False,
        current_set: int | None = None,
    ) -> SessionView:
        """Checkpoint the position or formally complete the current set.

        Without ``completed_set`` this is a best-effort checkpoint of
        ``current_index``. With it, the current set is finished and the
        session moves to the next set or to COMPLETED. ``current_set`` names
        the set the client believes it is on; a mismatch makes the call a
        no-op so retried completions cannot skip a set.
        """
        if current_index is not None and current_index < 0:
            raise ValidationError(
                "current_index must not be negative", details={"current_index": current_index}
            )

        if completed_set:
            try:
                with storage_errors("complete_set"):
                    return await self._complete_set(user_id, session_id, current_set)
            except StorageUnavailable:
                await self._safe_rollback()
                raise

        if current_index is None:
            raise ValidationError("current_index or completed_set is required")

        with storage_errors("update_progress"):
            session = await self._load_session(user_id, session_id)
        await self._checkpoint(session, current_index, current_set)
        with storage_errors("update_progress"):
            return await self._view(session)

    async def _complete_set(
        self, user_id: int, session_id: str, expected_set: int | None
    ) -> SessionView:
        session = await self._load_session(user_id, session_id, for_update=True)

        if session.status == SessionStatus.COMPLETED and expected_set is not None:
            return await self._view(session)
        if session.status != SessionStatus.IN_PROGRESS:
            raise ConflictError(
                "Session is no longer in progress; start a new session",
                details={"session_id": session_id, "status": session.status},
            )
        if expected_set is not None and expected_set != session.current_set:
            logger.info(
                "Ignoring completion of set %d for session %s, already on set %d",
                expected_set,
                session.id,
                session.current_set,
            )
            return await self._view(session)

        planner = self._planner(session)
        finished_set = session.current_set
        session.completed_sets = session.completed_sets + 1
        session.current_index = 0
        if finished_set + 1 >= planner.total_sets:
            # The last set stays current so current_set remains a valid index.
            session.status = SessionStatus.COMPLETED
            session.completed_at = utcnow()
        else:
            session.current_set = finished_set + 1
        await self.db.commit()

        if session.status == SessionStatus.COMPLETED:
            logger.info(
                "Session %s completed: %d sets, %d words reviewed",
                session.id,
                session.completed_sets,
                session.total_reviewed,
            )
        else:
            logger.info(
                "Session %s finished set %d of %d",
                session.id,
                finished_set + 1,
                planner.total_sets,
            )
        return await self._view(session)

    async def checkpoint(
        self,
        user_id: int,
        session_id: str,
        current_index: int,
        current_set: int | None = None,
    ) -> bool:
        """Save the position sent on page exit. Returns whether it was stored."""
        try:
            session = await self._load_session(user_id, session_id)
        except STORAGE_ERRORS as exc:
            logger.warning("Dropped checkpoint for session %s: %s", session_id, exc)
            return False
        return await self._checkpoint(session, current_index, current_set)

    async def _checkpoint(
        self,
        session: LearningSession,
        current_index: int,
        current_set: int | None,
    ) -> bool:
        if session.status != SessionStatus.IN_PROGRESS:
            logger.debug("Checkpoint ignored for %s session %s", session.status, session.id)
            return False
        target_set = session.current_set if current_set is None else current_set
        if target_set != session.current_set:
            logger.info(
                "Dropped stale checkpoint for session %s: set %d, session on set %d",
                session.id,
                target_set,
                session.current_set,
            )
            return False

        index = min(current_index, self._planner(session).set_length(target_set))
        # Conditional update: never moves backwards and never touches a
        # session that completed its set in the meantime.
        stmt = (
            update(LearningSession)
            .where(
                and_(
                    LearningSession.id == session.id,
                    LearningSession.status == SessionStatus.IN_PROGRESS,
                    LearningSession.current_set == target_set,
                    LearningSession.current_index < index,
                )
            )
            .values(current_index=index)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
            if result.rowcount:
                await self.db.refresh(session)
        except STORAGE_ERRORS as exc:
            logger.warning(
                "Dropped checkpoint for session %s at index %d: %s", session.id, index, exc
            )
            await self._safe_rollback()
            return False
        return bool(result.rowcount)

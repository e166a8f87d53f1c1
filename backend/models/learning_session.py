"""Resumable multi-set study session for one exam/level."""

import json
import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class SessionStatus(StrEnum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"  # replaced by a restart


class LearningSession(Base, TimestampMixin):
    """Server-authoritative position within a paginated word list.

    ``word_order`` is the explicit ordering snapshotted at creation, so
    ``total_words`` and the set boundaries never drift while the user studies.
    """

    __tablename__ = "learning_sessions"
    __table_args__ = (
        # At most one resumable session per user/exam/level.
        Index(
            "uq_learning_sessions_active",
            "user_id",
            "exam_category",
            "level",
            unique=True,
            sqlite_where=text("status = 'IN_PROGRESS'"),
            postgresql_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    exam_category: Mapped[str] = mapped_column(String(20), nullable=False)
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    word_order: Mapped[str] = mapped_column(Text, nullable=False)  # JSON array of word ids
    shuffle_seed: Mapped[int] = mapped_column(Integer, nullable=False)
    set_size: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    total_words: Mapped[int] = mapped_column(Integer, nullable=False)
    current_set: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_sets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_reviewed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviewed_word_ids: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SessionStatus.IN_PROGRESS
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped["User"] = relationship(back_populates="learning_sessions")  # type: ignore[name-defined] # noqa: F821

    @property
    def word_ids(self) -> list[int]:
        return json.loads(self.word_order)

    @property
    def reviewed_ids(self) -> set[int]:
        return set(json.loads(self.reviewed_word_ids))

"""Per-user scheduling state for a single word."""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class UserProgress(Base, TimestampMixin):
    """SM-2 scheduling state for a user-word pair, created on the first review."""

    __tablename__ = "user_progress"
    __table_args__ = (UniqueConstraint("user_id", "word_id", name="uq_user_progress_user_word"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    word_id: Mapped[int] = mapped_column(ForeignKey("words.id", ondelete="CASCADE"), nullable=False)
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # days
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_review_date: Mapped[date] = mapped_column(Date, nullable=False)
    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    incorrect_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mastery_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default="NEW"
    )  # NEW, LEARNING, FAMILIAR, MASTERED
    last_review_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped["User"] = relationship(back_populates="progress")  # type: ignore[name-defined] # noqa: F821
    word: Mapped["Word"] = relationship()  # type: ignore[name-defined] # noqa: F821

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin

EXAM_CATEGORIES = ("CSAT", "TEPS", "TOEFL", "TOEIC", "SAT", "EBS")
LEVELS = ("L1", "L2", "L3")


class Word(Base, TimestampMixin):
    __tablename__ = "words"
    __table_args__ = (Index("ix_words_exam_level", "exam_category", "level"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    word: Mapped[str] = mapped_column(String(200), nullable=False)
    definition: Mapped[str] = mapped_column(Text, nullable=False)  # English definition
    definition_ko: Mapped[str | None] = mapped_column(Text, nullable=True)
    part_of_speech: Mapped[str | None] = mapped_column(String(50), nullable=True)
    pronunciation: Mapped[str | None] = mapped_column(String(200), nullable=True)
    exam_category: Mapped[str] = mapped_column(String(20), nullable=False)  # CSAT, TOEFL, ...
    level: Mapped[str] = mapped_column(String(10), nullable=False)  # L1-L3
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

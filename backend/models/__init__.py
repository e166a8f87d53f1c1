"""SQLAlchemy ORM models for the vocabulary SRS database."""

from backend.models.base import Base
from backend.models.learning_session import LearningSession, SessionStatus
from backend.models.review_log import ReviewLog
from backend.models.user import User
from backend.models.user_progress import UserProgress
from backend.models.word import EXAM_CATEGORIES, LEVELS, Word

__all__ = [
    "EXAM_CATEGORIES",
    "LEVELS",
    "Base",
    "LearningSession",
    "ReviewLog",
    "SessionStatus",
    "User",
    "UserProgress",
    "Word",
]

"""Pydantic schemas for API request/response models."""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from backend.srs.word_source import StudyMode

# --- Words ---


class WordResponse(BaseModel):
    """A word as shown on a flashcard."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    word: str
    definition: str
    definition_ko: str | None = None
    part_of_speech: str | None = None
    pronunciation: str | None = None
    exam_category: str
    level: str


# --- Session ---


class SessionResponse(BaseModel):
    """Position and counters of a learning session."""

    model_config = ConfigDict(from_attributes=True)

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


class SetInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    set_number: int
    total_sets: int
    words_in_set: int
    start_index: int
    end_index: int


class SessionStartRequest(BaseModel):
    """Request to start or resume studying an exam/level."""

    exam: str
    level: str | None = None
    restart: bool = False
    mode: StudyMode = StudyMode.LEVEL


class SessionStartResponse(BaseModel):
    """A resumable session with its current set, or a stateless pass."""

    session: SessionResponse | None
    words: list[WordResponse]
    set_info: SetInfoResponse | None = None
    total_words: int
    is_new: bool = False
    mode: StudyMode = StudyMode.LEVEL


class CurrentSessionResponse(BaseModel):
    session: SessionResponse | None
    status: str
    words: list[WordResponse] = []
    set_info: SetInfoResponse | None = None


class ProgressRequest(BaseModel):
    """Checkpoint of the position, or completion of the current set."""

    session_id: str
    current_index: int | None = Field(default=None, ge=0)
    completed_set: bool = False
    current_set: int | None = Field(default=None, ge=0)  # set the client is on


class ProgressResponse(BaseModel):
    session: SessionResponse
    words: list[WordResponse] | None = None  # next set after a completion
    set_info: SetInfoResponse | None = None
    is_completed: bool


class BeaconRequest(BaseModel):
    """Position sent with navigator.sendBeacon on page exit."""

    session_id: str
    current_index: int = Field(ge=0)
    current_set: int | None = Field(default=None, ge=0)


class SetWordsResponse(BaseModel):
    words: list[WordResponse]
    set_info: SetInfoResponse


# --- Review ---


class ReviewRequest(BaseModel):
    """A rating for one word. ``request_id`` makes retries safe."""

    word_id: int
    rating: int
    session_id: str | None = None
    request_id: str | None = Field(default=None, max_length=64)
    response_time_ms: int | None = Field(default=None, ge=0)
    learning_method: str = "FLASHCARD"


class ScheduleStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: date
    correct_count: int
    incorrect_count: int


class ReviewResponse(BaseModel):
    schedule_state: ScheduleStateResponse
    mastery_level: str
    next_review_date: date
    session: SessionResponse | None = None
    set_complete: bool = False
    replayed: bool = False


class DueReviewsResponse(BaseModel):
    words: list[WordResponse]
    count: int


# --- Stats ---


class UserStatsResponse(BaseModel):
    """Overall statistics for a user."""

    words_studied: int
    words_due: int
    words_mastered: int
    total_reviews: int
    accuracy: float | None
    streak_days: int

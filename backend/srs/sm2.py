"""SM-2 review scheduler.

A variant of the SuperMemo-2 algorithm for vocabulary review.
Reference: https://super-memory.com/english/ol/sm2.htm

Key concepts:
- Ease factor (EF): multiplier for interval growth, floored at 1.3.
- Interval: days until the next review.
- Repetitions: consecutive successful reviews since the last lapse.
- Rating: 1-5, where 3 and above counts as a successful recall.

Unlike canonical SM-2, a lapse (rating < 3) leaves the ease factor as it
was; only the repetition count and interval are reset.
"""

import math
from dataclasses import dataclass, replace
from datetime import date, timedelta

from backend.errors import ValidationError

INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MIN_RATING = 1
MAX_RATING = 5
PASSING_RATING = 3

# Intervals for the first two successful repetitions after a lapse
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6


@dataclass(frozen=True)
class ScheduleState:
    """The scheduling state of a word for one user."""

    ease_factor: float
    interval: int  # days
    repetitions: int
    next_review_date: date
    correct_count: int = 0
    incorrect_count: int = 0

    @classmethod
    def initial(cls, today: date) -> "ScheduleState":
        """State of a word that has never been reviewed."""
        return cls(
            ease_factor=INITIAL_EASE_FACTOR,
            interval=0,
            repetitions=0,
            next_review_date=today,
        )


def validate_rating(rating: int) -> int:
    """Reject ratings outside 1-5 before they reach the scheduler."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be an integer", details={"rating": rating})
    if rating < MIN_RATING or rating > MAX_RATING:
        raise ValidationError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}", details={"rating": rating}
        )
    return rating


def is_correct(rating: int) -> bool:
    return rating >= PASSING_RATING


def round_half_up(value: float) -> int:
    # round() uses banker's rounding; 12.5 days should become 13.
    return int(math.floor(value + 0.5))


def update(rating: int, state: ScheduleState, today: date) -> ScheduleState:
    """Apply one review to a scheduling state.

    Pure and deterministic: the review counters are carried over untouched,
    incrementing them is the caller's job.

    Args:
        rating: Recall quality, 1-5. Must already be validated.
        state: Current scheduling state.
        today: The review date; the next review is scheduled relative to it.

    Returns:
        The new ScheduleState.
    """
    ease = state.ease_factor

    if rating >= PASSING_RATING:
        repetitions = state.repetitions + 1
        if repetitions == 1:
            interval = FIRST_INTERVAL
        elif repetitions == 2:
            interval = SECOND_INTERVAL
        else:
            interval = round_half_up(state.interval * state.ease_factor)
        miss = MAX_RATING - rating
        ease = state.ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
    else:
        repetitions = 0
        interval = FIRST_INTERVAL

    ease = max(MIN_EASE_FACTOR, ease)

    return replace(
        state,
        ease_factor=ease,
        interval=interval,
        repetitions=repetitions,
        next_review_date=today + timedelta(days=interval),
    )


def mastery_level(repetitions: int, ease_factor: float, current: str = "NEW") -> str:
    """Classify a word's mastery from its scheduling state.

    A lapse resets repetitions to 0, which keeps the current level until
    the repetitions build back up.
    """
    if repetitions >= 5 and ease_factor >= INITIAL_EASE_FACTOR:
        return "MASTERED"
    if repetitions >= 3:
        return "FAMILIAR"
    if repetitions >= 1:
        return "LEARNING"
    return current

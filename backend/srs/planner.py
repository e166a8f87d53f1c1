"""Set planning for multi-set learning sessions.

Maps a session's stored word ordering onto fixed-size sets and back.
Everything here is pure: the ordering is produced once at session
creation (seeded shuffle) and stored, so resuming a session always
yields the same sets.
"""

import math
import random
from dataclasses import dataclass

from backend.config import settings
from backend.errors import ValidationError


@dataclass(frozen=True)
class SetInfo:
    """Where a set sits inside the session's word ordering."""

    set_number: int
    total_sets: int
    words_in_set: int
    start_index: int
    end_index: int  # inclusive


@dataclass(frozen=True)
class Advance:
    """The position after answering the word at the current position."""

    next_set: int
    next_index: int
    crossed_set_boundary: bool


def shuffled_order(word_ids: list[int], seed: int) -> list[int]:
    """Return a deterministic permutation of ``word_ids`` for ``seed``."""
    order = list(word_ids)
    random.Random(seed).shuffle(order)
    return order


def total_sets_for(total_words: int, set_size: int) -> int:
    return math.ceil(total_words / set_size) if total_words > 0 else 0


class SetPlanner:
    """Partitions an ordered word list into sets of ``set_size`` words.

    The final set may be short; there is no padding or wraparound.
    """

    def __init__(self, word_order: list[int], set_size: int | None = None) -> None:
        self.word_order = list(word_order)
        self.set_size = set_size or settings.set_size
        if self.set_size < 1:
            raise ValueError("set_size must be positive")

    @property
    def total_words(self) -> int:
        return len(self.word_order)

    @property
    def total_sets(self) -> int:
        return total_sets_for(self.total_words, self.set_size)

    def _check_set(self, set_index: int) -> None:
        if set_index < 0 or set_index >= self.total_sets:
            raise ValidationError(
                "Set number out of range",
                details={"set_number": set_index, "total_sets": self.total_sets},
            )

    def set_length(self, set_index: int) -> int:
        self._check_set(set_index)
        start = set_index * self.set_size
        return min(self.set_size, self.total_words - start)

    def words_for_set(self, set_index: int) -> list[int]:
        """Return the word ids of one set, in session order."""
        self._check_set(set_index)
        start = set_index * self.set_size
        return self.word_order[start : start + self.set_size]

    def bounds(self, set_index: int) -> SetInfo:
        length = self.set_length(set_index)
        start = set_index * self.set_size
        return SetInfo(
            set_number=set_index,
            total_sets=self.total_sets,
            words_in_set=length,
            start_index=start,
            end_index=start + length - 1,
        )

    def advance(self, current_set: int, current_index: int) -> Advance:
        """Step one word forward from ``(current_set, current_index)``.

        Moving past the last word of a set lands on index 0 of the next set
        and reports the crossing; past the final set, ``next_set`` equals
        ``total_sets``.
        """
        length = self.set_length(current_set)
        if current_index < 0 or current_index > length:
            raise ValidationError(
                "Index out of range for set",
                details={"set_number": current_set, "index": current_index},
            )
        next_index = current_index + 1
        if next_index >= length:
            return Advance(next_set=current_set + 1, next_index=0, crossed_set_boundary=True)
        return Advance(next_set=current_set, next_index=next_index, crossed_set_boundary=False)

    def set_position(self, word_id: int) -> tuple[int, int] | None:
        """Return ``(set_index, index_within_set)`` of a word, or None."""
        try:
            position = self.word_order.index(word_id)
        except ValueError:
            return None
        return divmod(position, self.set_size)

"""Tests for set planning over a session's word ordering."""

import pytest

from backend.errors import ValidationError
from backend.srs.planner import SetPlanner, shuffled_order, total_sets_for


class TestSetPlanner:
    def setup_method(self) -> None:
        self.planner = SetPlanner(list(range(100, 145)), set_size=20)

    def test_three_sets_with_short_tail(self) -> None:
        assert self.planner.total_words == 45
        assert self.planner.total_sets == 3
        assert self.planner.set_length(0) == 20
        assert self.planner.set_length(2) == 5
        assert self.planner.words_for_set(2) == list(range(140, 145))

    def test_bounds(self) -> None:
        info = self.planner.bounds(1)
        assert info.set_number == 1
        assert info.total_sets == 3
        assert info.words_in_set == 20
        assert info.start_index == 20
        assert info.end_index == 39

    def test_bounds_of_last_set(self) -> None:
        info = self.planner.bounds(2)
        assert info.start_index == 40
        assert info.end_index == 44

    @pytest.mark.parametrize("total", [0, 1, 19, 20, 21, 40, 45, 199])
    def test_sets_cover_every_word_once(self, total: int) -> None:
        planner = SetPlanner(list(range(total)), set_size=20)
        assert planner.total_sets == -(-total // 20)
        covered = [w for i in range(planner.total_sets) for w in planner.words_for_set(i)]
        assert sorted(covered) == list(range(total))

    def test_set_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            self.planner.words_for_set(3)
        with pytest.raises(ValidationError):
            self.planner.bounds(-1)

    def test_empty_order_has_no_sets(self) -> None:
        planner = SetPlanner([], set_size=20)
        assert planner.total_sets == 0
        with pytest.raises(ValidationError):
            planner.words_for_set(0)

    def test_invalid_set_size(self) -> None:
        with pytest.raises(ValueError):
            SetPlanner([1, 2, 3], set_size=-5)

    def test_advance_within_set(self) -> None:
        step = self.planner.advance(0, 5)
        assert step.next_set == 0
        assert step.next_index == 6
        assert not step.crossed_set_boundary

    def test_advance_crosses_set_boundary(self) -> None:
        step = self.planner.advance(0, 19)
        assert step.next_set == 1
        assert step.next_index == 0
        assert step.crossed_set_boundary

    def test_advance_past_final_set(self) -> None:
        step = self.planner.advance(2, 4)
        assert step.crossed_set_boundary
        assert step.next_set == self.planner.total_sets

    def test_advance_rejects_bad_index(self) -> None:
        with pytest.raises(ValidationError):
            self.planner.advance(2, 9)

    def test_set_position(self) -> None:
        assert self.planner.set_position(100) == (0, 0)
        assert self.planner.set_position(125) == (1, 5)
        assert self.planner.set_position(144) == (2, 4)
        assert self.planner.set_position(999) is None


class TestShuffledOrder:
    def test_same_seed_same_order(self) -> None:
        ids = list(range(50))
        assert shuffled_order(ids, 42) == shuffled_order(ids, 42)

    def test_is_a_permutation(self) -> None:
        ids = list(range(50))
        order = shuffled_order(ids, 3)
        assert sorted(order) == ids
        assert ids == list(range(50))  # input untouched

    def test_different_seeds_differ(self) -> None:
        ids = list(range(50))
        assert shuffled_order(ids, 1) != shuffled_order(ids, 2)


def test_total_sets_for() -> None:
    assert total_sets_for(0, 20) == 0
    assert total_sets_for(20, 20) == 1
    assert total_sets_for(45, 20) == 3

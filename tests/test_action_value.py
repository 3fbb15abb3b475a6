"""
Tests for the tabular action-value function.

Validates that the table:
- Reads unseen entries as 0.0
- Writes and accumulates exactly
- Selects greedily, with the preferred action winning ties
- Explores untried actions first under UCB
- Never returns the excluded action
- Keys states by a stable quantized encoding
"""
import math
import random

import pytest

from help_reasoner.learning import ActionValueTable, state_key
from help_reasoner.types import Action


STATE = [0.5, 1.0, 0.25]
OTHER_STATE = [0.1, 0.2, 0.3]


def make_table(**kwargs):
    kwargs.setdefault("actions", list(Action))
    kwargs.setdefault("preferred_action", Action.ASK_USER)
    kwargs.setdefault("excluded_action", Action.IGNORE)
    kwargs.setdefault("rng", random.Random(3))
    return ActionValueTable(**kwargs)


class TestStateKey:
    """Tests for the canonical state encoding."""

    def test_float_noise_shares_key(self):
        assert state_key([0.1 + 0.2]) == state_key([0.3])

    def test_negative_zero_folded(self):
        key = state_key([-0.0, 1.0])
        assert key == state_key([0.0, 1.0])
        assert math.copysign(1.0, key[0]) == 1.0

    def test_precision_controls_quantization(self):
        assert state_key([1.234], precision=2) == state_key([1.23], precision=2)
        assert state_key([1.234], precision=3) != state_key([1.23], precision=3)

    def test_missing_state_has_no_key(self):
        assert state_key(None) is None
        assert state_key([]) is None

    def test_non_numeric_kept_as_text(self):
        assert state_key([1, "n/a"]) == (1.0, "n/a")

    def test_equal_vectors_equal_keys(self):
        """Lists and tuples of the same values are the same state."""
        assert state_key([1, 2.0]) == state_key((1.0, 2))


class TestValues:
    """Tests for reading and writing Q values."""

    def test_unwritten_value_is_zero(self):
        table = make_table()
        for action in Action:
            assert table.value(STATE, action) == 0.0
        assert table.value(None, Action.NOP) == 0.0

    def test_insert_then_value(self):
        table = make_table()
        table.insert(STATE, Action.SHOW_HELP, 3.75)
        assert table.value(STATE, Action.SHOW_HELP) == 3.75
        assert table.value(OTHER_STATE, Action.SHOW_HELP) == 0.0

    def test_insert_overwrites(self):
        table = make_table()
        table.insert(STATE, Action.NOP, 1.0)
        table.insert(STATE, Action.NOP, -2.0)
        assert table.value(STATE, Action.NOP) == -2.0

    def test_updates_accumulate(self):
        table = make_table()
        table.update(STATE, Action.NOP, 0.25)
        table.update(STATE, Action.NOP, -1.5)
        assert table.value(STATE, Action.NOP) == pytest.approx(-1.25)

    def test_insert_without_state_is_noop(self):
        table = make_table()
        table.insert(None, Action.NOP, 1.0)
        assert len(table) == 0

    def test_max_value(self):
        table = make_table()
        assert table.max_value(STATE) == 0.0
        table.insert(STATE, Action.NOP, -5.0)
        table.insert(STATE, Action.ASK_USER, 2.0)
        assert table.max_value(STATE) == 2.0

    def test_statistics(self):
        table = make_table()
        table.insert(STATE, Action.NOP, 1.0)
        table.insert(STATE, Action.ASK_USER, 1.0)
        stats = table.get_statistics()
        assert stats["states"] == 1
        assert stats["entries"] == 2
        assert stats["preferred_action"] == "askuser"
        assert "ignore" not in stats["visits"]


class TestGreedySelection:
    """Tests for greedy and epsilon-greedy selection."""

    def test_greedy_picks_best_action(self):
        table = make_table()
        table.insert(STATE, Action.SHOW_HELP, 5.0)
        table.insert(STATE, Action.ASK_USER, 1.0)
        assert table.greedy_action(STATE) == Action.SHOW_HELP

    def test_zero_exploration_is_deterministic(self):
        table = make_table()
        table.insert(STATE, Action.NOP, 0.7)
        table.insert(STATE, Action.SHOW_HELP, 0.2)
        picks = {table.epsilon_greedy_action(STATE, eps=0.0) for _ in range(50)}
        assert picks == {Action.NOP}

    def test_exploration_at_threshold_never_explores(self):
        table = make_table()
        table.insert(STATE, Action.NOP, 0.7)
        picks = {table.epsilon_greedy_action(STATE, eps=0.01) for _ in range(50)}
        assert picks == {Action.NOP}

    def test_full_exploration_returns_preferred(self):
        table = make_table()
        table.insert(STATE, Action.SHOW_HELP, 9.0)
        assert table.epsilon_greedy_action(STATE, eps=1.0) == Action.ASK_USER

    def test_exploration_flag(self):
        table = make_table()
        table.epsilon_greedy_action(STATE, eps=1.0)
        assert table.last_explored
        table.epsilon_greedy_action(STATE, eps=0.0)
        assert not table.last_explored

    def test_equal_values_return_preferred(self):
        table = make_table()
        for _ in range(30):
            assert table.greedy_action(STATE) == Action.ASK_USER

    def test_values_within_tolerance_are_tied(self):
        table = make_table()
        table.insert(STATE, Action.NOP, 1.0)
        table.insert(STATE, Action.ASK_USER, 1.0 - 5e-5)
        assert table.greedy_action(STATE) == Action.ASK_USER

    def test_random_tie_break_without_preference(self):
        table = make_table(preferred_action=None)
        picks = {table.greedy_action(STATE) for _ in range(200)}
        assert picks == {Action.NOP, Action.ASK_USER, Action.SHOW_HELP}

    def test_missing_state_uses_random_action(self):
        table = make_table()
        assert table.greedy_action(None) == Action.ASK_USER

    def test_double_tables_sum_estimates(self):
        a = make_table()
        b = make_table()
        a.insert(STATE, Action.NOP, 1.0)
        b.insert(STATE, Action.SHOW_HELP, 1.5)
        assert a.greedy_action(STATE, other=b) == Action.SHOW_HELP

    def test_visits_counted(self):
        table = make_table()
        table.greedy_action(STATE)
        table.greedy_action(STATE, count=False)
        assert table.count_actions[Action.ASK_USER] == 1

    def test_missing_state_respects_count_flag(self):
        table = make_table()
        assert table.greedy_action([], count=False) == Action.ASK_USER
        assert sum(table.count_actions.values()) == 0

        table = make_table(preferred_action=None)
        table.greedy_action(None, count=False)
        assert sum(table.count_actions.values()) == 0

    def test_random_action_count_flag(self):
        table = make_table()
        table.random_action(count=False)
        assert table.count_actions[Action.ASK_USER] == 0
        table.random_action()
        assert table.count_actions[Action.ASK_USER] == 1


class TestPreferredIndex:
    """A preferred action stored first in the action list."""

    ORDER = [Action.ASK_USER, Action.NOP, Action.SHOW_HELP, Action.IGNORE]

    def test_fixed_behaviour_honours_index_zero(self):
        table = make_table(actions=self.ORDER)
        assert table.preferred_index == 0
        for _ in range(30):
            assert table.greedy_action(STATE) == Action.ASK_USER

    def test_legacy_behaviour_ignores_index_zero(self):
        table = make_table(actions=self.ORDER, legacy_preferred_index=True)
        assert table.tie_break_action is None
        picks = {table.greedy_action(STATE) for _ in range(100)}
        assert len(picks) > 1

    def test_legacy_behaviour_keeps_later_index(self):
        table = make_table(legacy_preferred_index=True)
        assert table.preferred_index == 1
        assert table.greedy_action(STATE) == Action.ASK_USER

    def test_legacy_random_action_still_preferred(self):
        """Pure exploration is not affected by the index quirk."""
        table = make_table(actions=self.ORDER, legacy_preferred_index=True)
        assert table.random_action() == Action.ASK_USER


class TestExcludedAction:
    """The permanently excluded action."""

    def test_excluded_never_selected(self):
        table = make_table(preferred_action=None)
        table.insert(STATE, Action.IGNORE, 1000.0)
        for _ in range(50):
            assert table.greedy_action(STATE) != Action.IGNORE
            assert table.random_action() != Action.IGNORE

    def test_excluded_preferred_is_dropped(self):
        table = make_table(preferred_action=Action.IGNORE)
        assert table.preferred_action is None

    def test_excluded_not_counted(self):
        table = make_table()
        assert Action.IGNORE not in table.count_actions


class TestUCB:
    """Upper Confidence Bound exploration."""

    def test_bonus_formula(self):
        table = make_table(ucb_c=2.0)
        table.count_actions[Action.NOP] = 4
        assert table.ucb_bonus(Action.NOP, 10) == pytest.approx(2.0 * math.sqrt(math.log(10) / 4))

    def test_untried_action_gets_infinite_bonus(self):
        table = make_table(ucb_c=1.0)
        assert table.ucb_bonus(Action.NOP, 5) == math.inf

    def test_no_bonus_without_constant_or_time(self):
        table = make_table(ucb_c=0.0)
        assert table.ucb_bonus(Action.NOP, 5) == 0.0
        table = make_table(ucb_c=1.0)
        assert table.ucb_bonus(Action.NOP, 0) == 0.0

    def test_untried_action_beats_stored_values(self):
        table = make_table(ucb_c=0.5)
        table.insert(STATE, Action.ASK_USER, 100.0)
        table.insert(STATE, Action.SHOW_HELP, 50.0)
        table.insert(STATE, Action.NOP, -100.0)
        table.count_actions[Action.ASK_USER] = 10
        table.count_actions[Action.SHOW_HELP] = 10
        assert table.greedy_action(STATE, t=5) == Action.NOP

    def test_every_action_tried_once_first(self):
        table = make_table(ucb_c=1.0)
        picks = [table.greedy_action(STATE, t=t) for t in range(1, 4)]
        assert sorted(picks) == sorted([Action.NOP, Action.ASK_USER, Action.SHOW_HELP])

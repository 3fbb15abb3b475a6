"""
Tabular action-value function for the help reasoner.

Lazily populated Q(s, a) table with per-action visit counts,
epsilon-greedy selection and an optional Upper Confidence Bound
exploration bonus. Supports double Q-learning by combining the
estimates of a second table during action selection.
"""
from __future__ import annotations

import math
import random
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..types import Action
from ..util import to_float

StateKey = Tuple[Union[float, str], ...]


def state_key(state: Optional[Iterable[Any]], precision: int = 6) -> Optional[StateKey]:
    """
    Build a deterministic, hashable key for a feature vector.

    Numeric components are rounded to ``precision`` decimal places so
    that vectors differing only by floating point noise share a table
    entry. Negative zero is folded into zero. Non-numeric components are
    kept as their string form.

    Returns:
        Tuple key, or None for a missing or empty state
    """
    if state is None:
        return None
    try:
        components = list(state)
    except TypeError:
        return None
    if not components:
        return None

    key: List[Union[float, str]] = []
    for value in components:
        f = to_float(value)
        if f is None:
            key.append(str(value))
        else:
            key.append(round(f, precision) + 0.0)
    return tuple(key)


class ActionValueTable:
    """
    Q-table mapping state keys to per-action value estimates.

    Entries are created on first write and default to 0.0 when read.
    Visit counts are kept per action (not per state) and drive the UCB
    bonus.

    Tie-breaking: among actions whose score lies within TIE_TOLERANCE
    of the best score (or is +inf), the preferred action wins if it is
    one of them, otherwise a random member is chosen.
    """

    TIE_TOLERANCE = 1e-4
    EXPLORATION_THRESHOLD = 0.01  # eps at or below this never explores

    def __init__(
        self,
        actions: Sequence[Action],
        preferred_action: Optional[Action] = None,
        excluded_action: Optional[Action] = None,
        ucb_c: float = 0.0,
        precision: int = 6,
        legacy_preferred_index: bool = False,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the table.

        Args:
            actions: Full action set, in order
            preferred_action: Action returned on ties and under pure exploration
            excluded_action: Action that is never returned by selection
            ucb_c: UCB exploration constant (0 disables the bonus)
            precision: Decimal places used when building state keys
            legacy_preferred_index: Ignore a preferred action sitting at
                index 0 of ``actions`` during greedy tie-breaking
            rng: Random source for exploration and tie-breaking
        """
        self.excluded_action = excluded_action
        self.actions: List[Action] = [a for a in actions if a != excluded_action]
        self.ucb_c = max(0.0, ucb_c)
        self.precision = precision
        self.rng = rng or random.Random()

        self.preferred_action: Optional[Action] = None
        self.preferred_index = -1
        if preferred_action is not None and preferred_action in self.actions:
            self.preferred_action = preferred_action
            self.preferred_index = list(actions).index(preferred_action)
        self.legacy_preferred_index = legacy_preferred_index

        self.q: Dict[StateKey, Dict[Action, float]] = {}
        self.count_actions: Dict[Action, int] = {a: 0 for a in self.actions}
        self.last_explored = False

    @property
    def tie_break_action(self) -> Optional[Action]:
        """Preferred action as used by greedy tie-breaking."""
        if self.legacy_preferred_index and self.preferred_index <= 0:
            return None
        return self.preferred_action

    def key(self, state: Optional[Iterable[Any]]) -> Optional[StateKey]:
        return state_key(state, self.precision)

    def value(self, state: Optional[Iterable[Any]], action: Action) -> float:
        """Stored estimate for (state, action), 0.0 when never written."""
        k = self.key(state)
        if k is None:
            return 0.0
        return self.q.get(k, {}).get(action, 0.0)

    def max_value(self, state: Optional[Iterable[Any]]) -> float:
        """max_a Q(state, a) over selectable actions."""
        if not self.actions:
            return 0.0
        return max(self.value(state, a) for a in self.actions)

    def ucb_bonus(self, action: Action, t: int) -> float:
        """
        Exploration bonus c * sqrt(ln(t) / N(a)).

        Untried actions get +inf so they are explored first.
        """
        if t <= 0 or self.ucb_c <= 0 or action not in self.count_actions:
            return 0.0
        n = self.count_actions[action]
        if n == 0:
            return math.inf
        return self.ucb_c * math.sqrt(math.log(t) / n)

    def scores(
        self,
        state: Optional[Iterable[Any]],
        other: Optional["ActionValueTable"] = None,
        t: int = 0,
        use_ucb: bool = True,
    ) -> Dict[Action, float]:
        """Selection score per action: Q [+ Q_other] [+ UCB bonus]."""
        result: Dict[Action, float] = {}
        for action in self.actions:
            g = self.value(state, action)
            if other is not None:
                g += other.value(state, action)
            if use_ucb:
                g += self.ucb_bonus(action, t)
            result[action] = g
        return result

    def tied_actions(self, scores: Dict[Action, float]) -> List[Action]:
        """Actions scoring within TIE_TOLERANCE of the best (or +inf)."""
        if not scores:
            return []
        best = max(scores.values())
        return [
            a for a, g in scores.items()
            if g == math.inf or abs(g - best) < self.TIE_TOLERANCE
        ]

    def greedy_action(
        self,
        state: Optional[Iterable[Any]],
        other: Optional["ActionValueTable"] = None,
        t: int = 0,
        count: bool = True,
    ) -> Action:
        """
        argmax_a Q(s,a) [+ Q_other(s,a)] [+ UCB(a, t)].

        Args:
            state: Feature vector
            other: Second table for double Q-learning
            t: Agent time step (enables the UCB bonus when > 0)
            count: Whether the returned action counts as a visit

        Returns:
            Selected action; the random action when state is missing
        """
        if self.key(state) is None:
            return self.random_action(count=count)

        tied = self.tied_actions(self.scores(state, other, t))
        preferred = self.tie_break_action
        if preferred is not None and preferred in tied:
            chosen = preferred
        else:
            chosen = self.rng.choice(tied)

        if count:
            self.count_actions[chosen] += 1
        return chosen

    def epsilon_greedy_action(
        self,
        state: Optional[Iterable[Any]],
        eps: float,
        other: Optional["ActionValueTable"] = None,
        t: int = 0,
    ) -> Action:
        """With probability eps explore, otherwise act greedily."""
        self.last_explored = eps > self.EXPLORATION_THRESHOLD and self.rng.random() <= eps
        if self.last_explored:
            return self.random_action()
        return self.greedy_action(state, other, t)

    def random_action(self, count: bool = True) -> Action:
        """Preferred action if configured, else a uniformly random one."""
        if self.preferred_action is not None:
            action = self.preferred_action
        else:
            action = self.rng.choice(self.actions)
        if count:
            self.count_actions[action] += 1
        return action

    def insert(
        self,
        state: Optional[Iterable[Any]],
        action: Action,
        value: float,
        accumulate: bool = False,
    ) -> None:
        """
        Write Q(state, action).

        Args:
            accumulate: Add to the stored value instead of overwriting it
        """
        k = self.key(state)
        if k is None:
            return
        row = self.q.setdefault(k, {})
        if accumulate and action in row:
            row[action] += value
        else:
            row[action] = value

    def update(self, state: Optional[Iterable[Any]], action: Action, delta: float) -> None:
        """Q(s,a) <- Q(s,a) + delta."""
        self.insert(state, action, delta, accumulate=True)

    def __len__(self) -> int:
        return len(self.q)

    def get_statistics(self) -> Dict:
        """Table size and visit counts."""
        return {
            "states": len(self.q),
            "entries": sum(len(row) for row in self.q.values()),
            "visits": {a.value: n for a, n in self.count_actions.items()},
            "ucb_c": self.ucb_c,
            "preferred_action": self.preferred_action.value if self.preferred_action else None,
        }

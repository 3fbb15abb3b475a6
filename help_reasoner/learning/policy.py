"""
Action selection policy for the reasoner.

Delegates to one action-value table (Q-learning) or a pair of tables
(double Q-learning, selecting on the sum of both estimates). Without a
learned table it falls back to a context-free random policy that favours
asking the user.
"""
from __future__ import annotations

import random
from typing import Any, Iterable, Optional

from ..types import Action, UserMood
from .action_value import ActionValueTable


def context_free_action(rng: random.Random) -> Action:
    """
    Random action regardless of state.

    ASK_USER half of the time, NOP a quarter, SHOW_HELP a quarter.
    """
    roll = rng.random()
    if roll <= 0.5:
        return Action.ASK_USER
    if roll < 0.75:
        return Action.NOP
    return Action.SHOW_HELP


def estimate_mood(action: Action, current: UserMood) -> UserMood:
    """Mood implied by taking ``action``; NOP keeps the current estimate."""
    if action == Action.NOP:
        return current
    if action == Action.SHOW_HELP:
        return UserMood.CONFUSED
    return UserMood.UNSURE


class PolicySelector:
    """
    Epsilon-greedy selection over the reasoner's tables.

    Attributes:
        table_a: Primary action-value table (None for the random policy)
        table_b: Second table for double Q-learning
    """

    def __init__(
        self,
        table_a: Optional[ActionValueTable] = None,
        table_b: Optional[ActionValueTable] = None,
        rng: Optional[random.Random] = None,
    ):
        self.table_a = table_a
        self.table_b = table_b if table_a is not None else None
        self.rng = rng or random.Random()
        self.explored = False  # whether the last select() explored

    @property
    def is_learning(self) -> bool:
        return self.table_a is not None

    @property
    def is_double(self) -> bool:
        return self.table_a is not None and self.table_b is not None

    def select(
        self,
        state: Optional[Iterable[Any]],
        eps: float,
        t: int,
    ) -> Action:
        """
        Choose an action for ``state``.

        Args:
            state: Preprocessed feature vector
            eps: Current exploration rate
            t: Agent time step

        Returns:
            A decision action (never IGNORE)
        """
        action: Optional[Action] = None
        self.explored = False
        if state is not None and self.table_a is not None:
            action = self.table_a.epsilon_greedy_action(state, eps, self.table_b, t)
            self.explored = self.table_a.last_explored
        if action is None or action == Action.IGNORE:
            action = context_free_action(self.rng)
        return action

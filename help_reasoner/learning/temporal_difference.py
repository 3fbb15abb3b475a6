"""
Temporal-difference updates for single and double Q-learning.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..types import Action
from .action_value import ActionValueTable


@dataclass(frozen=True)
class TDResult:
    """
    Outcome of one TD step.

    Attributes:
        table: Which table was written ("a" or "b")
        target: reward + discount * bootstrap value
        delta: Increment applied to Q(s, a)
    """
    table: str
    target: float
    delta: float


def q_update(
    table: ActionValueTable,
    state: Iterable[Any],
    action: Action,
    reward: float,
    next_state: Iterable[Any],
    learning_rate: float,
    discount: float,
) -> TDResult:
    """
    Q(s,a) += alpha * (r + gamma * max_a' Q(s',a') - Q(s,a)).
    """
    target = reward + discount * table.max_value(next_state)
    delta = learning_rate * (target - table.value(state, action))
    table.update(state, action, delta)
    return TDResult(table="a", target=target, delta=delta)


def double_q_update(
    table_a: ActionValueTable,
    table_b: ActionValueTable,
    state: Iterable[Any],
    action: Action,
    reward: float,
    next_state: Iterable[Any],
    learning_rate: float,
    discount: float,
    rng: Optional[random.Random] = None,
) -> TDResult:
    """
    Double Q-learning step.

    One table, picked uniformly at random, is updated. Its greedy action
    at s' is evaluated with the other table's estimate:

        Q1(s,a) += alpha * (r + gamma * Q2(s', argmax_a' Q1(s',a')) - Q1(s,a))

    The greedy choice used for the target neither adds a UCB bonus nor
    counts as a visit.
    """
    rng = rng or random.Random()
    if rng.random() < 0.5:
        name, updated, evaluator = "b", table_b, table_a
    else:
        name, updated, evaluator = "a", table_a, table_b

    best_next = updated.greedy_action(next_state, t=0, count=False)
    target = reward + discount * evaluator.value(next_state, best_next)
    delta = learning_rate * (target - updated.value(state, action))
    updated.update(state, action, delta)
    return TDResult(table=name, target=target, delta=delta)

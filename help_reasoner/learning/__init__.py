"""
Learning layer for the help reasoner.

Tabular Q-learning (optionally double Q-learning) over aggregated
telemetry states.

Key principles:
- Values live in lazily populated tables; unseen entries read as 0.0
- Exploration through epsilon-greedy and an optional UCB bonus
- Ties resolve to the preferred action (asking the user)
- Rewards are asymmetric: missing a confused user costs the most
"""

from .action_value import ActionValueTable, StateKey, state_key
from .aggregator import aggregate_states
from .policy import PolicySelector, context_free_action, estimate_mood
from .reward import RewardEvaluator
from .temporal_difference import TDResult, double_q_update, q_update


__all__ = [
    # Action values
    "ActionValueTable",
    "StateKey",
    "state_key",

    # State aggregation
    "aggregate_states",

    # Policy
    "PolicySelector",
    "context_free_action",
    "estimate_mood",

    # Rewards and updates
    "RewardEvaluator",
    "TDResult",
    "q_update",
    "double_q_update",
]

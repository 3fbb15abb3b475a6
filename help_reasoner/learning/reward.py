"""
Reward shaping from user feedback.

Rewards compare the mood reported by the user (explicitly or inferred)
against the mood the reasoner estimated when it acted. Costs are
asymmetric: assuming the user was relaxed when they were actually
confused is by far the most expensive mistake.
"""
from __future__ import annotations

from typing import Dict, Optional, Tuple

from ..types import UserMood


class RewardEvaluator:
    """
    Maps (feedback mood, estimated mood) pairs to numeric rewards.

    Only CONFUSED and RELAXED are valid feedback moods; anything else
    yields 0.0.
    """

    DEFAULT_REWARDS: Dict[Tuple[UserMood, UserMood], float] = {
        # user was confused
        (UserMood.CONFUSED, UserMood.CONFUSED): 10.0,
        (UserMood.CONFUSED, UserMood.RELAXED): -200.0,
        (UserMood.CONFUSED, UserMood.UNSURE): -10.0,
        # user was fine
        (UserMood.RELAXED, UserMood.CONFUSED): -20.0,
        (UserMood.RELAXED, UserMood.RELAXED): 1.0,
        (UserMood.RELAXED, UserMood.UNSURE): -10.0,
    }

    def __init__(
        self,
        custom_rewards: Optional[Dict[Tuple[UserMood, UserMood], float]] = None,
    ):
        """
        Args:
            custom_rewards: Overrides keyed by (feedback mood, estimated mood)
        """
        self.rewards = self.DEFAULT_REWARDS.copy()
        if custom_rewards:
            self.rewards.update(custom_rewards)

    def evaluate(self, feedback: UserMood, estimated: UserMood) -> float:
        """
        Reward for receiving ``feedback`` while the estimate was ``estimated``.

        Args:
            feedback: Mood the user reported (CONFUSED or RELAXED)
            estimated: Mood estimate held at prediction time
        """
        return self.rewards.get((feedback, estimated), 0.0)

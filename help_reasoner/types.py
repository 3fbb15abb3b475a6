from __future__ import annotations
from enum import Enum
from typing import Any, Mapping


class Action(str, Enum):
    """
    Decisions the reasoner can hand back to the caller.

    IGNORE is never chosen by the learner or by exploration; it only
    tells the caller that a sample was dropped (disabled, paused or
    malformed input).
    """
    NOP = "nop"
    ASK_USER = "askuser"
    SHOW_HELP = "showhelp"
    IGNORE = "ignore"

    @classmethod
    def parse(cls, value: Any) -> "Action":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class UserMood(str, Enum):
    """Running estimate of how the user is doing."""
    RELAXED = "relaxed"
    CONFUSED = "confused"
    UNSURE = "unsure"


class Feedback(str, Enum):
    """Feedback kinds accepted from the UI layer."""
    HELP = "help"
    OK = "ok"

    @classmethod
    def parse(cls, value: Any) -> "Feedback":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())

    def to_mood(self) -> UserMood:
        """'help' means the user was confused, 'ok' means relaxed."""
        return UserMood.CONFUSED if self is Feedback.HELP else UserMood.RELAXED


class CollectPhase(str, Enum):
    """Whether incoming samples describe the state before or after an action."""
    BEFORE = "before"
    AFTER = "after"


# Labeled telemetry sample: feature name -> value
Sample = Mapping[str, Any]

"""
Help reasoner: online reinforcement learning for reading-support interventions.

Watches behavioural telemetry and learns when to stay silent, ask the
user, or show help, from explicit and inferred user feedback.
"""

from .config import ConfigManager, ReasonerConfig, get_preset, list_presets
from .reasoner import Reasoner
from .types import Action, CollectPhase, Feedback, UserMood

__version__ = "0.3.0"

__all__ = [
    "Reasoner",
    "ReasonerConfig",
    "ConfigManager",
    "get_preset",
    "list_presets",
    "Action",
    "CollectPhase",
    "Feedback",
    "UserMood",
    "__version__",
]

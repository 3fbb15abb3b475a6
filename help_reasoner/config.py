"""
Configuration for the help reasoner.

All learning and timing parameters are bounded with safe defaults.
Configs can be created programmatically, picked from built-in presets,
or loaded from JSON/YAML files.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, List, Optional

import yaml

from .types import Action

logger = logging.getLogger(__name__)

MODEL_TYPES = ("q_learning", "double_q_learning", "none")


@dataclass
class ReasonerConfig:
    """
    Parameters of one reasoner instance.

    Attributes:
        model_type: "q_learning", "double_q_learning" or "none" (random policy)
        learning_rate: TD step size alpha (0.0 to 1.0)
        discount: Discount factor gamma (0.0 to 1.0)
        exploration_rate: Initial epsilon for epsilon-greedy (0.0 to 1.0)
        exploration_decay: Multiplier applied to epsilon after each prediction
        ucb_c: UCB exploration constant (0 disables the bonus)
        episode_length: Updates per episode
        buffer_size: Capacity of each sample buffer
        min_samples: Buffered samples required before predicting
        idle_timeout: Seconds of user silence before feedback is inferred
        next_state_timeout: Seconds spent collecting the post-action state
        unfreeze_timeout: Seconds before a paused reasoner resets itself
        tick_interval: Polling interval of all waits
        state_precision: Decimal places kept in state keys
        preferred_action: Action chosen on ties and under pure exploration
        excluded_action: Action never chosen by the learner
        legacy_preferred_index: Ignore a preferred action at index 0 on ties
        testing: Keep the reasoner permanently disabled
        prng_seed: Seed for exploration/tie-breaking (None = random)
    """
    model_type: str = "q_learning"

    # Learning parameters
    learning_rate: float = 0.01
    discount: float = 0.1
    exploration_rate: float = 0.1
    exploration_decay: float = 1.0
    ucb_c: float = 0.0

    # Episodes and buffering
    episode_length: int = 20
    buffer_size: int = 5
    min_samples: int = 1

    # Timing (seconds)
    idle_timeout: float = 10.0
    next_state_timeout: float = 10.0
    unfreeze_timeout: float = 120.0
    tick_interval: float = 0.5

    # Table behaviour
    state_precision: int = 6
    preferred_action: Optional[str] = Action.ASK_USER.value
    excluded_action: Optional[str] = Action.IGNORE.value
    legacy_preferred_index: bool = False

    testing: bool = False
    prng_seed: Optional[int] = None

    def __post_init__(self):
        """Clamp every parameter to a safe range."""
        if self.model_type not in MODEL_TYPES:
            logger.warning(f"Unknown model type {self.model_type!r}; using random policy")
            self.model_type = "none"

        self.learning_rate = max(0.0, min(1.0, float(self.learning_rate)))
        self.discount = max(0.0, min(1.0, float(self.discount)))
        self.exploration_rate = max(0.0, min(1.0, float(self.exploration_rate)))
        self.exploration_decay = max(0.0, min(1.0, float(self.exploration_decay)))
        self.ucb_c = max(0.0, min(100.0, float(self.ucb_c)))

        self.episode_length = max(1, int(self.episode_length))
        self.buffer_size = max(1, min(1000, int(self.buffer_size)))
        self.min_samples = max(1, min(self.buffer_size, int(self.min_samples)))

        self.idle_timeout = max(0.0, float(self.idle_timeout))
        self.next_state_timeout = max(0.0, float(self.next_state_timeout))
        self.unfreeze_timeout = max(0.0, float(self.unfreeze_timeout))
        self.tick_interval = max(0.01, float(self.tick_interval))

        self.state_precision = max(0, min(15, int(self.state_precision)))
        self.preferred_action = self._valid_action(self.preferred_action)
        self.excluded_action = self._valid_action(self.excluded_action)

    @staticmethod
    def _valid_action(value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        try:
            return Action.parse(value).value
        except ValueError:
            logger.warning(f"Unknown action {value!r} in config; ignoring")
            return None

    @property
    def is_double(self) -> bool:
        return self.model_type == "double_q_learning"

    @property
    def is_learning(self) -> bool:
        return self.model_type in ("q_learning", "double_q_learning")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReasonerConfig":
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def with_overrides(self, **overrides: Any) -> "ReasonerConfig":
        """Copy with some fields replaced (re-validated)."""
        return replace(self, **overrides)

    def save(self, path: str) -> None:
        """Save config to a JSON or YAML file (by extension)."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            if path.endswith((".yaml", ".yml")):
                yaml.safe_dump(self.to_dict(), f, sort_keys=False)
            else:
                json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> Optional["ReasonerConfig"]:
        """Load config from a JSON or YAML file; None if missing or invalid."""
        if not os.path.exists(path):
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()

            if path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)

            if not isinstance(data, dict):
                logger.warning(f"Config file {path} does not hold a mapping")
                return None
            return cls.from_dict(data)

        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return None


# Built-in presets
PRESETS: Dict[str, ReasonerConfig] = {
    "q_learning": ReasonerConfig(model_type="q_learning"),
    "double_q_learning": ReasonerConfig(model_type="double_q_learning"),
    "ucb": ReasonerConfig(
        model_type="double_q_learning",
        exploration_rate=0.0,
        ucb_c=2.0,
    ),
    "random": ReasonerConfig(model_type="none"),
    "testing": ReasonerConfig(testing=True),
}


def get_preset(name: str) -> Optional[ReasonerConfig]:
    """Get a copy of a built-in preset by name."""
    preset = PRESETS.get(name.lower())
    return replace(preset) if preset else None


def list_presets() -> List[str]:
    """List available preset names."""
    return list(PRESETS.keys())


class ConfigManager:
    """
    Resolves reasoner configs by name from files and presets.

    Example:
        >>> manager = ConfigManager("./reasoner_configs")
        >>> config = manager.get("ucb")        # built-in preset
        >>> config = manager.get("classroom")  # ./reasoner_configs/classroom.yaml
    """

    def __init__(self, config_dir: str = "./reasoner_configs"):
        self.config_dir = config_dir
        self._cache: Dict[str, ReasonerConfig] = {}

    def get(self, name: str) -> Optional[ReasonerConfig]:
        """
        Get config by name.

        Checks in order:
        1. Cache
        2. Custom file (config_dir/name.json, .yaml or .yml)
        3. Built-in presets
        """
        name_lower = name.lower()

        if name_lower in self._cache:
            return self._cache[name_lower]

        for ext in [".json", ".yaml", ".yml"]:
            path = os.path.join(self.config_dir, f"{name_lower}{ext}")
            config = ReasonerConfig.load(path)
            if config:
                self._cache[name_lower] = config
                return config

        preset = get_preset(name_lower)
        if preset:
            self._cache[name_lower] = preset
            return preset

        return None

    def save(self, config: ReasonerConfig, name: str) -> str:
        """Save a config under ``name``; returns the written path."""
        os.makedirs(self.config_dir, exist_ok=True)
        path = os.path.join(self.config_dir, f"{name.lower()}.json")
        config.save(path)
        self._cache[name.lower()] = config
        return path

    def list_available(self) -> List[str]:
        """List all available configs (presets + files)."""
        available = set(list_presets())

        if os.path.exists(self.config_dir):
            for f in os.listdir(self.config_dir):
                if f.endswith((".json", ".yaml", ".yml")):
                    available.add(os.path.splitext(f)[0])

        return sorted(available)

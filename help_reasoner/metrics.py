"""
Metrics collection for the reasoner.

Tracks:
- Predictions per action and explorations
- TD updates per table
- Explicit vs inferred feedback and reward statistics
- Self-healing resets by cause
- Episodes, ignored samples and collaborator errors
"""
from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class RewardStats:
    """Running statistics over received rewards."""
    count: int = 0
    total: float = 0.0
    min: float = float("inf")
    max: float = float("-inf")

    _recent: List[float] = field(default_factory=list)
    _max_recent: int = 100

    def record(self, reward: float) -> None:
        self.count += 1
        self.total += reward
        self.min = min(self.min, reward)
        self.max = max(self.max, reward)

        self._recent.append(reward)
        if len(self._recent) > self._max_recent:
            self._recent = self._recent[-self._max_recent:]

    @property
    def mean(self) -> float:
        return self.total / max(1, self.count)

    @property
    def recent_mean(self) -> float:
        """Mean over the last ``_max_recent`` rewards."""
        if not self._recent:
            return 0.0
        return sum(self._recent) / len(self._recent)

    def to_dict(self) -> Dict:
        return {
            "count": self.count,
            "total": round(self.total, 4),
            "mean": round(self.mean, 4),
            "recent_mean": round(self.recent_mean, 4),
            "min": round(self.min, 4) if self.count else 0.0,
            "max": round(self.max, 4) if self.count else 0.0,
        }


class Counter:
    """Thread-safe counter."""

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, n: int = 1) -> int:
        """Increment and return new value."""
        with self._lock:
            self._value += n
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class MetricsCollector:
    """
    Metrics of one reasoner.

    Example:
        >>> metrics = MetricsCollector()
        >>> metrics.increment("askuser", subsystem="predictions")
        >>> metrics.record_reward(-10.0)
        >>> metrics.summary()["rewards"]["mean"]
        -10.0
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._start_time = datetime.now()
        self._counters: Dict[str, Counter] = defaultdict(Counter)
        self._errors: Dict[str, Counter] = defaultdict(Counter)
        self._rewards = RewardStats()

    def increment(self, counter: str, n: int = 1, subsystem: Optional[str] = None) -> int:
        """Increment a counter (namespaced as ``subsystem.counter``)."""
        key = f"{subsystem}.{counter}" if subsystem else counter
        with self._lock:
            c = self._counters[key]
        return c.inc(n)

    def record_error(self, subsystem: str, error_type: str = "unknown") -> None:
        key = f"{subsystem}.{error_type}"
        with self._lock:
            c = self._errors[key]
        c.inc()

    def record_reward(self, reward: float) -> None:
        with self._lock:
            self._rewards.record(reward)

    def get_counter(self, counter: str) -> int:
        with self._lock:
            c = self._counters.get(counter)
        return c.value if c else 0

    def get_total_errors(self) -> int:
        with self._lock:
            errors = list(self._errors.values())
        return sum(c.value for c in errors)

    @property
    def rewards(self) -> RewardStats:
        return self._rewards

    def summary(self) -> Dict:
        """Get full metrics summary."""
        uptime = (datetime.now() - self._start_time).total_seconds()
        with self._lock:
            counters = {name: c.value for name, c in self._counters.items()}
            errors = {name: c.value for name, c in self._errors.items()}
            rewards = self._rewards.to_dict()

        return {
            "uptime_seconds": round(uptime, 1),
            "counters": counters,
            "errors": errors,
            "rewards": rewards,
            "totals": {"errors": sum(errors.values())},
        }

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._counters.clear()
            self._errors.clear()
            self._rewards = RewardStats()
            self._start_time = datetime.now()

"""
Default collaborators for turning telemetry into learner state.

The reasoner treats these as pluggable: any callable with the same
signature can replace them (e.g. a normaliser fitted on recorded
sessions).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .util import clamp, to_float

logger = logging.getLogger(__name__)

GAZE_X_LABELS = ("gaze_x", "gazex", "x")
GAZE_Y_LABELS = ("gaze_y", "gazey", "y")


class FeaturePreprocessor:
    """
    Converts an aggregated labeled sample into a numeric feature vector.

    Features are emitted in the sample's key order. Labels listed in
    ``drop`` are left out (e.g. gaze coordinates that only feed the side
    channel). Optional per-feature ranges rescale values to [0, 1].

    Attributes:
        ranges: label -> (low, high) used for min-max scaling
        fill_value: Substitute for non-numeric values (None = reject sample)
        drop: Labels excluded from the state
    """

    def __init__(
        self,
        ranges: Optional[Dict[str, Tuple[float, float]]] = None,
        fill_value: Optional[float] = None,
        drop: Sequence[str] = (),
    ):
        self.ranges = dict(ranges or {})
        self.fill_value = fill_value
        self.drop = set(drop)

    def __call__(self, sample: Mapping[str, Any]) -> Optional[List[float]]:
        """
        Args:
            sample: feature name -> (aggregated) value

        Returns:
            Feature vector, or None when the sample cannot be processed
        """
        if not sample:
            return None

        vector: List[float] = []
        for label, value in sample.items():
            if label in self.drop:
                continue
            f = to_float(value)
            if f is None:
                if self.fill_value is None:
                    logger.debug(f"Cannot process sample: feature {label!r} = {value!r}")
                    return None
                f = self.fill_value
            elif label in self.ranges:
                f = self._scale(f, *self.ranges[label])
            vector.append(f)

        return vector or None

    @staticmethod
    def _scale(value: float, low: float, high: float) -> float:
        if high <= low:
            return 0.0
        return clamp((value - low) / (high - low), 0.0, 1.0)


def extract_gaze(labels: Sequence[str], buffer: Sequence[Sequence[Any]]) -> List[Dict[str, float]]:
    """
    Gaze coordinates (viewport-relative) of every buffered sample.

    Looks for x/y gaze columns by label; samples whose coordinates are
    missing or non-numeric are skipped.
    """
    lowered = [str(label).lower() for label in labels]
    x_idx = next((lowered.index(n) for n in GAZE_X_LABELS if n in lowered), None)
    y_idx = next((lowered.index(n) for n in GAZE_Y_LABELS if n in lowered), None)
    if x_idx is None or y_idx is None:
        return []

    points: List[Dict[str, float]] = []
    for sample in buffer:
        if len(sample) <= max(x_idx, y_idx):
            continue
        x, y = to_float(sample[x_idx]), to_float(sample[y_idx])
        if x is not None and y is not None:
            points.append({"x": x, "y": y})
    return points

"""
Aggregation of buffered telemetry into a single representative sample.

Numeric feature columns are averaged over the window. A column that held
a non-numeric value (missing-value sentinel, label, ...) in any buffered
sample is not averaged: the most recent sample's value is carried forward.
"""
from __future__ import annotations

import logging
from typing import Any, List, Sequence

import numpy as np

from ..util import to_float

logger = logging.getLogger(__name__)


def aggregate_states(buffer: Sequence[Sequence[Any]]) -> List[Any]:
    """
    Reduce a window of raw samples to one sample.

    Args:
        buffer: Samples, oldest first, all of the same length

    Returns:
        Aggregated sample (same length as the inputs); empty list for an
        empty buffer. A single-sample window is returned unchanged.
    """
    rows = [list(s) for s in buffer if len(s) > 0]
    if not rows:
        return []
    if len(rows) == 1:
        return rows[0]

    width = len(rows[-1])
    rows = [r for r in rows if len(r) == width]
    logger.debug(f"Aggregating {len(rows)} user states")

    latest = rows[-1]
    numeric = np.full((len(rows), width), np.nan, dtype=float)
    skipped = set()
    for i, row in enumerate(rows):
        for j, value in enumerate(row):
            f = to_float(value)
            if f is None:
                skipped.add(j)
            else:
                numeric[i, j] = f

    means = numeric.mean(axis=0)
    return [
        latest[j] if j in skipped else float(means[j])
        for j in range(width)
    ]

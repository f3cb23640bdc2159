"""
Goal percentage -> progress band and visual fill.

The bar is split into three equal thirds:
  0..50%    -> low  (red),    fills the first third linearly
  50..100%  -> mid  (yellow), fills the second third linearly
  100..150% -> high (green),  fills the last third; anything above 150% is full
"""

from __future__ import annotations

import math
from dataclasses import dataclass

FULL_SCALE = 1.0
THIRD = FULL_SCALE / 3

LOW_CEILING = 50.0
GOAL = 100.0
OVERACHIEVE_CAP = 150.0

BAND_COLORS = {"low": "red", "mid": "yellow", "high": "green"}


@dataclass(frozen=True)
class ProgressBand:
    band: str
    visual_fill: float

    @property
    def color(self) -> str:
        return BAND_COLORS[self.band]


def classify(percentage: float) -> ProgressBand:
    p = float(percentage)
    if not math.isfinite(p):
        return ProgressBand("low", 0.0)

    if p <= LOW_CEILING:
        fill = (p / LOW_CEILING) * THIRD
        return ProgressBand("low", max(0.0, fill))

    if p < GOAL:
        fill = THIRD + ((p - LOW_CEILING) / (GOAL - LOW_CEILING)) * THIRD
        return ProgressBand("mid", fill)

    over = min(p, OVERACHIEVE_CAP) - GOAL
    fill = 2 * THIRD + (over / (OVERACHIEVE_CAP - GOAL)) * THIRD
    return ProgressBand("high", min(FULL_SCALE, fill))


def is_goal_met(percentage: float) -> bool:
    return percentage >= GOAL

"""Angle-of-attack bucketing for approach grading."""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from .domain import AoaBucket
from .units import AircraftProfile

# Deviation anchors: on-speed edges, then the too-fast/too-slow thresholds,
# then one more bracket width out where the deviation saturates.
EDGE_DEVIATION = 1.0 / 3.0
THRESHOLD_DEVIATION = 2.0 / 3.0


@dataclass(frozen=True)
class AoaReading:
    bucket: AoaBucket
    deviation: float  # -1 (fast) .. +1 (slow)

    @property
    def gradable(self) -> bool:
        return self.bucket is not AoaBucket.INVALID


def aoa_bucket(aoa_deg: float, aircraft: AircraftProfile) -> AoaBucket:
    if aoa_deg <= aircraft.too_fast_deg:
        return AoaBucket.TOO_FAST
    if aoa_deg <= aircraft.on_speed_min_deg:
        return AoaBucket.FAST
    if aoa_deg < aircraft.on_speed_max_deg:
        return AoaBucket.ON_SPEED
    if aoa_deg < aircraft.too_slow_deg:
        return AoaBucket.SLOW
    return AoaBucket.TOO_SLOW


def aoa_deviation(aoa_deg: float, aircraft: AircraftProfile) -> float:
    """Piecewise-linear deviation around the on-speed center, clamped to [-1, 1]."""
    fast_width = aircraft.on_speed_min_deg - aircraft.too_fast_deg
    slow_width = aircraft.too_slow_deg - aircraft.on_speed_max_deg
    xp = [
        aircraft.too_fast_deg - fast_width,
        aircraft.too_fast_deg,
        aircraft.on_speed_min_deg,
        aircraft.on_speed_center_deg,
        aircraft.on_speed_max_deg,
        aircraft.too_slow_deg,
        aircraft.too_slow_deg + slow_width,
    ]
    fp = [-1.0, -THRESHOLD_DEVIATION, -EDGE_DEVIATION, 0.0, EDGE_DEVIATION, THRESHOLD_DEVIATION, 1.0]
    return float(np.interp(aoa_deg, xp, fp))


def classify_aoa(aoa_deg: float, aircraft: AircraftProfile, sanity_max_deg: float = 30.0) -> AoaReading:
    """
    Classify a raw AOA value for the given aircraft.

    Values that are not finite, negative or above sanity_max_deg are Invalid:
    the point stays in the trace but is not graded.
    """
    if not np.isfinite(aoa_deg) or aoa_deg < 0.0 or aoa_deg > sanity_max_deg:
        return AoaReading(AoaBucket.INVALID, 0.0)
    return AoaReading(aoa_bucket(aoa_deg, aircraft), aoa_deviation(aoa_deg, aircraft))

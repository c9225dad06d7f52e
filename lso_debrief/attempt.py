"""Per-aircraft recovery attempt state machine."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

import numpy as np

from .domain import AoaBucket, DeviationPoint, EngineConfig, Outcome, Phase, RecoveryAttempt
from .errors import AttemptClosedError
from .units import AircraftProfile, CarrierProfile

logger = logging.getLogger(__name__)


def match_wire(distance_astern_m: float, wires_m: Sequence[float], tolerance_m: float) -> Optional[int]:
    """
    Return the 1-based index of the wire nearest to the touchdown distance,
    or None when the nearest wire is farther than tolerance_m.
    """
    if len(wires_m) == 0:
        return None
    gaps = np.abs(np.asarray(wires_m, dtype=float) - distance_astern_m)
    idx = int(np.argmin(gaps))
    if gaps[idx] > tolerance_m:
        return None
    return idx + 1


class AttemptTracker:
    """
    Drives one RecoveryAttempt from InGroove to a terminal phase.

    Every observation goes through one of three entry points:
    - advance(point): a sample that could be measured against the carrier
    - miss(time): a sample that could not (too far, no carrier reference, ...)
    - passed_ahead(time, ...): the hook went past the landing reference point

    Each returns the Outcome once the attempt ends, otherwise None.
    """

    def __init__(
        self,
        attempt: RecoveryAttempt,
        carrier: CarrierProfile,
        aircraft: AircraftProfile,
        config: EngineConfig,
    ):
        self.attempt = attempt
        self.carrier = carrier
        self.aircraft = aircraft
        self.config = config

        self._last: Optional[DeviationPoint] = None  # last measured point, stored or not
        self._misses = 0
        self._climbs = 0
        self._touchdown: Optional[DeviationPoint] = None  # touchdown without a controlled arrival

    @property
    def phase(self) -> Phase:
        return self.attempt.phase

    @property
    def touched_down(self) -> bool:
        return self._touchdown is not None

    # -----------------------------
    # Entry points
    # -----------------------------
    def advance(self, point: DeviationPoint) -> Optional[Outcome]:
        self._ensure_open()
        if self.attempt.phase is Phase.NOT_TRACKED:
            self._transition(Phase.IN_GROOVE, point.time)

        if self._last is not None and point.time < self._last.time:
            logger.debug("%s: dropping out-of-order sample at t=%.2f", self.attempt.aircraft_id, point.time)
            return None

        previous = self._last
        self._last = point
        self.attempt.last_time = point.time

        # Touchdown first: a physical touchdown beats any envelope exit on the same sample.
        if self._is_touchdown(point):
            if self._is_controlled(point.airspeed_mps):
                self.attempt.trace.append(point)
                wire = match_wire(point.distance_astern_m, self.carrier.wires_m, self.config.wire_tolerance_m)
                if wire is None:
                    return self._finish(Outcome(Phase.BOLTER), point.time)
                return self._finish(Outcome.cable(wire), point.time)
            if self._touchdown is None:
                logger.debug("%s: uncontrolled touchdown at %.1f m", self.attempt.aircraft_id, point.distance_astern_m)
                self._touchdown = point

        rate = self._vertical_rate(previous, point)

        if (
            self._touchdown is not None
            and point is not self._touchdown
            and rate > 0.0
            and point.height_m > self.config.touchdown_height_m
            and point.time - self._touchdown.time <= self.config.bolter_window_s
        ):
            return self._finish(Outcome(Phase.BOLTER), point.time)

        if self._in_groove_envelope(point):
            self._misses = 0
            self.attempt.trace.append(point)
        else:
            self._misses += 1

        if rate >= self.config.waveoff_climb_rate_mps:
            self._climbs += 1
        else:
            self._climbs = 0

        if self._climbs >= self.config.climb_samples:
            return self._finish(self._exit_outcome(), point.time)
        if rate > 0.0 and point.distance_astern_m > self.config.entry_distance_m:
            return self._finish(self._exit_outcome(), point.time)
        if self._misses >= self.config.exit_after_misses:
            return self._finish(self._exit_outcome(), point.time)
        return None

    def miss(self, time: float) -> Optional[Outcome]:
        self._ensure_open()
        self.attempt.last_time = max(self.attempt.last_time, time)
        self._misses += 1
        self._climbs = 0
        if self._misses >= self.config.exit_after_misses:
            return self._finish(self._exit_outcome(), time)
        return None

    def passed_ahead(
        self,
        time: float,
        height_m: Optional[float] = None,
        distance_astern_m: Optional[float] = None,
        airspeed_mps: Optional[float] = None,
    ) -> Optional[Outcome]:
        """
        The hook went past the landing reference point. With the hook on deck
        this is the touchdown and the wires decide (distance_astern_m is
        negative here, so only the last wire can still match). Airborne it
        ends the attempt like any other exit.
        """
        self._ensure_open()
        self.attempt.last_time = max(self.attempt.last_time, time)
        if height_m is not None and height_m <= self.config.touchdown_height_m:
            if distance_astern_m is not None and airspeed_mps is not None and self._is_controlled(airspeed_mps):
                wire = match_wire(distance_astern_m, self.carrier.wires_m, self.config.wire_tolerance_m)
                if wire is not None:
                    return self._finish(Outcome.cable(wire), time)
            return self._finish(Outcome(Phase.BOLTER), time)
        return self._finish(self._exit_outcome(), time)

    def end(self, outcome: Optional[Outcome] = None) -> Outcome:
        """Close the attempt from outside the sample flow (despawn, timeout). Defaults to Incomplete."""
        self._ensure_open()
        return self._finish(outcome or Outcome(Phase.INCOMPLETE), self.attempt.last_time)

    # -----------------------------
    # Helpers
    # -----------------------------
    def _ensure_open(self) -> None:
        if self.attempt.phase.is_terminal:
            raise AttemptClosedError(
                f"{self.attempt.aircraft_id}: attempt already ended as {self.attempt.outcome}"
            )

    def _transition(self, phase: Phase, time: float) -> None:
        logger.debug(
            "%s: %s -> %s at t=%.2f", self.attempt.aircraft_id, self.attempt.phase.value, phase.value, time
        )
        self.attempt.phase = phase

    def _finish(self, outcome: Outcome, time: float) -> Outcome:
        self._transition(outcome.phase, time)
        self.attempt.outcome = outcome
        return outcome

    def _exit_outcome(self) -> Outcome:
        # Leaving the groove after any touchdown is a go-around from the deck.
        return Outcome(Phase.BOLTER) if self.touched_down else Outcome(Phase.WAVE_OFF)

    def _is_touchdown(self, point: DeviationPoint) -> bool:
        return (
            point.height_m <= self.config.touchdown_height_m
            and point.distance_astern_m <= self.config.touchdown_window_m
        )

    def _is_controlled(self, airspeed_mps: float) -> bool:
        return airspeed_mps >= self.config.controlled_arrival_ratio * self.aircraft.approach_speed_min_mps

    def _in_groove_envelope(self, point: DeviationPoint) -> bool:
        return (
            point.distance_astern_m <= self.config.entry_distance_m
            and abs(point.vertical_m) <= self.config.groove_vertical_m
            and abs(point.lateral_m) <= self.config.groove_lateral_m
        )

    @staticmethod
    def _vertical_rate(previous: Optional[DeviationPoint], point: DeviationPoint) -> float:
        if previous is None:
            return 0.0
        dt = point.time - previous.time
        if dt <= 0.0:
            return 0.0
        return (point.height_m - previous.height_m) / dt


def grade_trace(trace: Sequence[DeviationPoint], carrier: Optional[CarrierProfile] = None) -> Dict[str, float]:
    """
    Summary numbers for a finished trace.

    Invalid AOA points are excluded from the AOA shares. With a carrier
    profile, also reports how much of the trace stayed inside the lineup
    tolerance and the glide-slope band.
    """
    if len(trace) == 0:
        return {"points": 0.0}

    lateral = np.array([p.lateral_m for p in trace], dtype=float)
    vertical = np.array([p.vertical_m for p in trace], dtype=float)
    metrics = {
        "points": float(len(trace)),
        "mean_abs_lateral_m": float(np.mean(np.abs(lateral))),
        "max_abs_lateral_m": float(np.max(np.abs(lateral))),
        "mean_abs_vertical_m": float(np.mean(np.abs(vertical))),
        "max_abs_vertical_m": float(np.max(np.abs(vertical))),
    }

    graded = [p for p in trace if p.aoa_bucket is not AoaBucket.INVALID]
    for bucket in AoaBucket:
        if bucket is AoaBucket.INVALID:
            continue
        share = sum(1 for p in graded if p.aoa_bucket is bucket) / len(graded) if graded else 0.0
        metrics[f"pct_aoa_{bucket.value}"] = float(100 * share)

    if carrier is not None:
        d = np.array([p.distance_astern_m for p in trace], dtype=float)
        lineup_lim = d * np.tan(np.deg2rad(carrier.lineup_tolerance_deg))
        gs = np.deg2rad(carrier.glide_slope_deg)
        low = d * (np.tan(gs + np.deg2rad(carrier.glide_slope_band_deg[0])) - np.tan(gs))
        high = d * (np.tan(gs + np.deg2rad(carrier.glide_slope_band_deg[1])) - np.tan(gs))
        metrics["pct_on_lineup"] = float(100 * np.mean(np.abs(lateral) <= lineup_lim))
        metrics["pct_on_glide_slope"] = float(100 * np.mean((vertical >= low) & (vertical <= high)))

    return metrics

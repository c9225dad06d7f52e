from __future__ import annotations
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple, Union


# -----------------------------
# Enums
# -----------------------------
class AoaBucket(Enum):
    TOO_SLOW = "TooSlow"
    SLOW = "Slow"
    ON_SPEED = "OnSpeed"
    FAST = "Fast"
    TOO_FAST = "TooFast"
    INVALID = "Invalid"


class Phase(Enum):
    NOT_TRACKED = "NotTracked"
    IN_GROOVE = "InGroove"
    BOLTER = "Bolter"
    CABLE_CATCH = "CableCatch"
    WAVE_OFF = "WaveOff"
    INCOMPLETE = "Incomplete"

    @property
    def is_terminal(self) -> bool:
        return self not in (Phase.NOT_TRACKED, Phase.IN_GROOVE)


@dataclass(frozen=True)
class Outcome:
    phase: Phase
    wire: Optional[int] = None  # 1-based, only for CableCatch

    @classmethod
    def cable(cls, wire: int) -> "Outcome":
        return cls(Phase.CABLE_CATCH, wire)

    def __str__(self) -> str:
        if self.phase is Phase.CABLE_CATCH:
            return f"CableCatch({self.wire})"
        return self.phase.value

    @property
    def label(self) -> str:
        """Short human label used on charts and webhook posts."""
        if self.phase is Phase.CABLE_CATCH:
            return f"#{self.wire} wire"
        return {
            Phase.BOLTER: "Bolter",
            Phase.WAVE_OFF: "Wave-off",
            Phase.INCOMPLETE: "Incomplete",
        }.get(self.phase, self.phase.value)


# -----------------------------
# Telemetry
# -----------------------------
@dataclass(frozen=True)
class CarrierFix:
    carrier_id: str     # unit name, e.g. "CVN-72"
    carrier_type: str   # catalog key, e.g. "CVN_72"
    lat_deg: float
    lon_deg: float
    heading_deg: float  # true heading of the ship (BRC)


@dataclass(frozen=True)
class TelemetrySample:
    time: float             # seconds, stream time base
    aircraft_id: str
    aircraft_type: str
    lat_deg: float
    lon_deg: float
    alt_m: float            # MSL
    heading_deg: float
    pitch_deg: float
    roll_deg: float
    airspeed_mps: float
    aoa_deg: float
    carrier: Optional[CarrierFix] = None
    pilot: Optional[str] = None


@dataclass(frozen=True)
class LsoComment:
    """LSO grading comment published by the simulator for an aircraft."""
    aircraft_id: str
    comment: str


@dataclass(frozen=True)
class UnitGone:
    """The aircraft despawned or its player disconnected."""
    aircraft_id: str


StreamEvent = Union[TelemetrySample, LsoComment, UnitGone]


@dataclass(frozen=True)
class DeviationPoint:
    time: float
    distance_astern_m: float
    lateral_m: float    # + = right of centerline
    vertical_m: float   # + = above glide slope
    height_m: float     # hook height above deck
    airspeed_mps: float
    aoa_deg: float
    aoa_bucket: AoaBucket
    aoa_deviation: float  # -1 (fast) .. +1 (slow), 0 = on-speed center


# -----------------------------
# Attempts
# -----------------------------
@dataclass(frozen=True)
class FinalizedAttempt:
    """Immutable snapshot handed downstream once an attempt ends."""
    aircraft_id: str
    aircraft_type: str
    pilot: Optional[str]
    carrier_id: str
    carrier_type: str
    start_time: float
    end_time: float
    outcome: Outcome
    trace: Tuple[DeviationPoint, ...]
    lso_comment: Optional[str] = None

    @property
    def pilot_name(self) -> str:
        return self.pilot or self.aircraft_id


@dataclass     # not frozen: the state machine appends to trace and sets phase/outcome
class RecoveryAttempt:
    aircraft_id: str
    aircraft_type: str
    pilot: Optional[str]
    carrier_id: str
    carrier_type: str
    start_time: float
    last_time: float
    phase: Phase = Phase.NOT_TRACKED
    trace: List[DeviationPoint] = field(default_factory=list)
    outcome: Optional[Outcome] = None
    lso_comment: Optional[str] = None

    def snapshot(self) -> FinalizedAttempt:
        if self.outcome is None:
            raise ValueError("attempt has no outcome yet")
        return FinalizedAttempt(
            aircraft_id=self.aircraft_id,
            aircraft_type=self.aircraft_type,
            pilot=self.pilot,
            carrier_id=self.carrier_id,
            carrier_type=self.carrier_type,
            start_time=self.start_time,
            end_time=self.last_time,
            outcome=self.outcome,
            trace=tuple(self.trace),
            lso_comment=self.lso_comment,
        )


# -----------------------------
# Engine configuration
# -----------------------------
@dataclass(frozen=True)
class EngineConfig:
    max_range_m: float = 5556.0         # 3 nm; farther astern is out of range
    entry_distance_m: float = 2778.0    # 1.5 nm; groove starts inside this
    min_entry_distance_m: float = 200.0  # closer than this is a deck launch, not an approach

    capture_vertical_m: float = 60.0    # |offset from glide slope| to start an attempt
    capture_lateral_m: float = 300.0
    capture_heading_deg: float = 50.0   # aircraft heading vs landing-area heading

    groove_vertical_m: float = 120.0    # envelope kept while in the groove
    groove_lateral_m: float = 450.0
    exit_after_misses: int = 3          # consecutive out-of-envelope samples

    climb_samples: int = 3              # consecutive climbing samples = climb-out
    waveoff_climb_rate_mps: float = 2.5  # ~500 fpm

    touchdown_height_m: float = 0.1     # hook height above deck
    touchdown_window_m: float = 60.0    # touchdown must be this close to the landing point
    controlled_arrival_ratio: float = 0.5  # min airspeed as share of the approach band floor
    wire_tolerance_m: float = 3.0
    bolter_window_s: float = 3.0        # touchdown followed by climb within this window

    grace_period_s: float = 10.0        # no samples for this long ends the attempt
    aoa_sanity_max_deg: float = 30.0
    handoff_maxsize: int = 64

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "EngineConfig":
        """Build a config from a plain dict (e.g. parsed JSON), rejecting unknown keys."""
        known = {f.name: f.type for f in fields(cls)}
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}. Known keys: {sorted(known)}")

        kwargs = {}
        for name, value in values.items():
            kwargs[name] = int(value) if known[name] == "int" else float(value)
        return cls(**kwargs)

"""
Distances are meters, times are seconds, angles are degrees throughout.

A DeviationPoint is one graded position inside the groove. The trace of an
attempt is the ordered list of these points; it is what gets plotted,
exported and summarised once the attempt ends.
"""

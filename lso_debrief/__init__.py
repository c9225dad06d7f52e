"""
LSO Debrief - Carrier Recovery Analyzer

Detects carrier landing attempts in live or recorded flight-simulator
telemetry, measures each approach against the glide slope and landing
centerline of the carrier, buckets angle of attack, and classifies the
outcome (wire caught, bolter, wave-off).
"""

from .domain import (
    AoaBucket,
    CarrierFix,
    DeviationPoint,
    EngineConfig,
    FinalizedAttempt,
    LsoComment,
    Outcome,
    Phase,
    RecoveryAttempt,
    TelemetrySample,
    UnitGone,
)
from .errors import (
    AttemptClosedError,
    DuplicateAttemptError,
    LsoError,
    OutOfRangeError,
    TelemetryFormatError,
    UnknownAttemptError,
    UnknownUnitError,
)
from .units import AircraftProfile, CarrierProfile, aircraft_by_type, carrier_by_type
from .transform import CarrierFrame, to_carrier_frame, in_capture_envelope
from .aoa import AoaReading, classify_aoa
from .attempt import AttemptTracker, grade_trace, match_wire
from .registry import AttemptHandle, AttemptRegistry
from .engine import Engine, StaleSweeper
from .acmi import load_acmi_samples
from .replay import load_events, load_samples, trace_frame
from .analyze import analyze
from .render import make_attempt_figure

__all__ = [
    # Domain models
    "AoaBucket",
    "CarrierFix",
    "DeviationPoint",
    "EngineConfig",
    "FinalizedAttempt",
    "LsoComment",
    "Outcome",
    "Phase",
    "RecoveryAttempt",
    "TelemetrySample",
    "UnitGone",
    # Errors
    "AttemptClosedError",
    "DuplicateAttemptError",
    "LsoError",
    "OutOfRangeError",
    "TelemetryFormatError",
    "UnknownAttemptError",
    "UnknownUnitError",
    # Unit catalog
    "AircraftProfile",
    "CarrierProfile",
    "aircraft_by_type",
    "carrier_by_type",
    # Geometry
    "CarrierFrame",
    "to_carrier_frame",
    "in_capture_envelope",
    # AOA
    "AoaReading",
    "classify_aoa",
    # State machine
    "AttemptTracker",
    "grade_trace",
    "match_wire",
    # Engine
    "AttemptHandle",
    "AttemptRegistry",
    "Engine",
    "StaleSweeper",
    # Replay / pipeline
    "load_acmi_samples",
    "load_events",
    "load_samples",
    "trace_frame",
    "analyze",
    # Visualization
    "make_attempt_figure",
]

__version__ = "0.1.0"

"""Error types raised by the recovery detection engine."""

from typing import Optional


class LsoError(Exception):
    """Base class for all engine errors."""
    pass


class OutOfRangeError(LsoError):
    """Sample is not geometrically on an approach to the carrier.

    Raised when the hook is ahead of the landing reference point or farther
    astern than the tracking range. Callers drop the sample, but height_m
    (hook above deck) still tells a touchdown past the landing point from a
    pass overhead.
    """

    def __init__(self, distance_astern_m: float, max_range_m: float, height_m: Optional[float] = None):
        self.distance_astern_m = distance_astern_m
        self.max_range_m = max_range_m
        self.height_m = height_m
        if self.ahead:
            msg = f"aircraft is {-distance_astern_m:.1f} m ahead of the landing reference point"
        else:
            msg = f"aircraft is {distance_astern_m:.1f} m astern (max {max_range_m:.1f} m)"
        super().__init__(msg)

    @property
    def ahead(self) -> bool:
        return self.distance_astern_m < 0.0


class DuplicateAttemptError(LsoError):
    """An active attempt already exists for the aircraft."""

    def __init__(self, aircraft_id: str, carrier_id: str):
        self.aircraft_id = aircraft_id
        self.carrier_id = carrier_id
        super().__init__(f"{aircraft_id} already has an active attempt on {carrier_id}")


class UnknownAttemptError(LsoError):
    """The handle does not refer to an active attempt."""

    def __init__(self, aircraft_id: str):
        self.aircraft_id = aircraft_id
        super().__init__(f"no active attempt for {aircraft_id}")


class AttemptClosedError(LsoError):
    """The attempt already reached a terminal phase."""
    pass


class UnknownUnitError(LsoError):
    """Aircraft or carrier type is not in the unit catalog."""

    def __init__(self, kind: str, type_name: str):
        self.kind = kind
        self.type_name = type_name
        super().__init__(f"unsupported {kind} type: {type_name!r}")


class TelemetryFormatError(LsoError, ValueError):
    """Telemetry file does not have the expected columns."""
    pass

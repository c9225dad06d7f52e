"""Ownership of active recovery attempts, one per aircraft."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from .attempt import AttemptTracker
from .domain import DeviationPoint, EngineConfig, FinalizedAttempt, Outcome, RecoveryAttempt, TelemetrySample
from .errors import DuplicateAttemptError, UnknownAttemptError
from .units import AircraftProfile, CarrierProfile, aircraft_by_type, carrier_by_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptHandle:
    aircraft_id: str
    carrier_id: str
    serial: int  # distinguishes successive attempts of the same aircraft


class AttemptRegistry:
    """
    Maps aircraft identity -> active attempt.

    The registry is the only owner of active attempts. Once an attempt reaches
    a terminal phase it is removed and an immutable snapshot is returned.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        aircraft_lookup: Callable[[str], AircraftProfile] = aircraft_by_type,
        carrier_lookup: Callable[[str], CarrierProfile] = carrier_by_type,
    ):
        self.config = config or EngineConfig()
        self._aircraft_lookup = aircraft_lookup
        self._carrier_lookup = carrier_lookup
        self._active: Dict[str, tuple[AttemptHandle, AttemptTracker]] = {}
        self._serial = 0

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, aircraft_id: object) -> bool:
        return aircraft_id in self._active

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._active))

    def get(self, aircraft_id: str) -> Optional[AttemptHandle]:
        entry = self._active.get(aircraft_id)
        return entry[0] if entry else None

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def create(self, aircraft_id: str, carrier_id: str, sample: TelemetrySample) -> AttemptHandle:
        """
        Open a new attempt.

        Raises:
            DuplicateAttemptError: aircraft already has an active attempt
            UnknownUnitError: aircraft or carrier type not in the catalog
        """
        if aircraft_id in self._active:
            raise DuplicateAttemptError(aircraft_id, carrier_id)
        if sample.carrier is None:
            raise ValueError(f"{aircraft_id}: sample has no carrier reference")

        aircraft = self._aircraft_lookup(sample.aircraft_type)
        carrier = self._carrier_lookup(sample.carrier.carrier_type)

        self._serial += 1
        handle = AttemptHandle(aircraft_id=aircraft_id, carrier_id=carrier_id, serial=self._serial)
        attempt = RecoveryAttempt(
            aircraft_id=aircraft_id,
            aircraft_type=sample.aircraft_type,
            pilot=sample.pilot,
            carrier_id=carrier_id,
            carrier_type=sample.carrier.carrier_type,
            start_time=sample.time,
            last_time=sample.time,
        )
        self._active[aircraft_id] = (handle, AttemptTracker(attempt, carrier, aircraft, self.config))
        logger.info("recovery attempt started: %s (%s) on %s at t=%.2f",
                    aircraft_id, sample.pilot or "-", carrier_id, sample.time)
        return handle

    def lookup_or_create(self, aircraft_id: str, carrier_id: str, sample: TelemetrySample) -> AttemptHandle:
        """
        Return the aircraft's active attempt, creating it if there is none.

        Raises:
            DuplicateAttemptError: aircraft is already on an approach to a different carrier
        """
        handle = self.get(aircraft_id)
        if handle is None:
            return self.create(aircraft_id, carrier_id, sample)
        if handle.carrier_id != carrier_id:
            raise DuplicateAttemptError(aircraft_id, carrier_id)
        return handle

    def advance(self, handle: AttemptHandle, point: DeviationPoint) -> Optional[FinalizedAttempt]:
        tracker = self._tracker(handle)
        return self._settle(handle, tracker.advance(point))

    def record_miss(self, handle: AttemptHandle, time: float) -> Optional[FinalizedAttempt]:
        tracker = self._tracker(handle)
        return self._settle(handle, tracker.miss(time))

    def record_pass(
        self,
        handle: AttemptHandle,
        time: float,
        height_m: Optional[float] = None,
        distance_astern_m: Optional[float] = None,
        airspeed_mps: Optional[float] = None,
    ) -> Optional[FinalizedAttempt]:
        tracker = self._tracker(handle)
        return self._settle(handle, tracker.passed_ahead(time, height_m, distance_astern_m, airspeed_mps))

    def annotate(self, aircraft_id: str, comment: str) -> bool:
        entry = self._active.get(aircraft_id)
        if entry is None:
            return False
        entry[1].attempt.lso_comment = comment
        return True

    def finish(self, aircraft_id: str, outcome: Optional[Outcome] = None) -> Optional[FinalizedAttempt]:
        """End the aircraft's attempt now (despawn, disconnect). Defaults to Incomplete."""
        entry = self._active.get(aircraft_id)
        if entry is None:
            return None
        handle, tracker = entry
        return self._settle(handle, tracker.end(outcome))

    def expire_stale(self, now: float) -> List[FinalizedAttempt]:
        """Finalize as Incomplete every attempt with no sample for longer than the grace period."""
        stale = [
            aircraft_id
            for aircraft_id, (_, tracker) in sorted(self._active.items())
            if now - tracker.attempt.last_time > self.config.grace_period_s
        ]
        finalized = []
        for aircraft_id in stale:
            logger.debug("%s: no samples for %.1fs", aircraft_id, now - self._active[aircraft_id][1].attempt.last_time)
            snapshot = self.finish(aircraft_id)
            if snapshot is not None:
                finalized.append(snapshot)
        return finalized

    def close_all(self) -> List[FinalizedAttempt]:
        finalized = []
        for aircraft_id in sorted(self._active):
            snapshot = self.finish(aircraft_id)
            if snapshot is not None:
                finalized.append(snapshot)
        return finalized

    # -----------------------------
    # Internals
    # -----------------------------
    def _tracker(self, handle: AttemptHandle) -> AttemptTracker:
        entry = self._active.get(handle.aircraft_id)
        if entry is None or entry[0] != handle:
            raise UnknownAttemptError(handle.aircraft_id)
        return entry[1]

    def _settle(self, handle: AttemptHandle, outcome: Optional[Outcome]) -> Optional[FinalizedAttempt]:
        if outcome is None:
            return None
        _, tracker = self._active.pop(handle.aircraft_id)
        snapshot = tracker.attempt.snapshot()
        logger.info("recovery attempt finished: %s on %s -> %s (%d points)",
                    snapshot.aircraft_id, snapshot.carrier_id, snapshot.outcome, len(snapshot.trace))
        return snapshot

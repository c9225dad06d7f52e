"""
Single ingestion worker: telemetry samples in, finalized attempts out.

Samples are processed strictly in arrival order. Finalized attempts are put on
a bounded hand-off queue for the reporting side; when that queue is full they
wait in an overflow list and are retried on the next call, so ingestion never
blocks and never drops a result.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from typing import Callable, Deque, List, Optional

from .aoa import classify_aoa
from .domain import DeviationPoint, EngineConfig, FinalizedAttempt, TelemetrySample
from .errors import DuplicateAttemptError, OutOfRangeError, UnknownUnitError
from .registry import AttemptHandle, AttemptRegistry
from .transform import in_capture_envelope, to_carrier_frame
from .units import AircraftProfile, CarrierProfile, aircraft_by_type, carrier_by_type

logger = logging.getLogger(__name__)


class Engine:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        handoff: Optional[queue.Queue] = None,
        aircraft_lookup: Callable[[str], AircraftProfile] = aircraft_by_type,
        carrier_lookup: Callable[[str], CarrierProfile] = carrier_by_type,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or EngineConfig()
        self.registry = AttemptRegistry(self.config, aircraft_lookup, carrier_lookup)
        self.handoff: queue.Queue = handoff if handoff is not None else queue.Queue(maxsize=self.config.handoff_maxsize)

        self._aircraft_lookup = aircraft_lookup
        self._carrier_lookup = carrier_lookup
        self._clock = clock
        self._overflow: Deque[FinalizedAttempt] = deque()
        self._lock = threading.Lock()

        # last sample time and the local clock reading when it arrived
        self._last_sample_time: Optional[float] = None
        self._last_arrival: Optional[float] = None

    @property
    def active_count(self) -> int:
        return len(self.registry)

    @property
    def overflow_count(self) -> int:
        return len(self._overflow)

    # -----------------------------
    # Ingestion
    # -----------------------------
    def ingest(self, sample: TelemetrySample) -> List[FinalizedAttempt]:
        """
        Process one sample. Returns the attempts finalized by it (stale
        attempts expired against the sample's time first, then the sample's
        own attempt if it ended).
        """
        with self._lock:
            if self._last_sample_time is None or sample.time >= self._last_sample_time:
                self._last_sample_time = sample.time
                self._last_arrival = self._clock()

            finalized = self.registry.expire_stale(sample.time)
            snapshot = self._process(sample)
            if snapshot is not None:
                finalized.append(snapshot)
            self._publish(finalized)
        return finalized

    def ingest_many(self, samples) -> List[FinalizedAttempt]:
        finalized = []
        for sample in samples:
            finalized.extend(self.ingest(sample))
        return finalized

    def _process(self, sample: TelemetrySample) -> Optional[FinalizedAttempt]:
        aircraft_id = sample.aircraft_id
        handle = self.registry.get(aircraft_id)
        fix = sample.carrier

        if fix is None:
            return self._miss(handle, sample.time, "no carrier reference")

        try:
            aircraft = self._aircraft_lookup(sample.aircraft_type)
            carrier = self._carrier_lookup(fix.carrier_type)
            frame = to_carrier_frame(sample, fix, carrier, aircraft, self.config)
        except UnknownUnitError as exc:
            return self._miss(handle, sample.time, str(exc))
        except OutOfRangeError as exc:
            if handle is None or handle.carrier_id != fix.carrier_id:
                logger.debug("%s: ignoring sample at t=%.2f: %s", aircraft_id, sample.time, exc)
                return None
            if exc.ahead:
                return self.registry.record_pass(
                    handle, sample.time, exc.height_m, exc.distance_astern_m, sample.airspeed_mps
                )
            return self.registry.record_miss(handle, sample.time)

        if handle is None and not in_capture_envelope(frame, self.config):
            return None

        try:
            handle = self.registry.lookup_or_create(aircraft_id, fix.carrier_id, sample)
        except DuplicateAttemptError as exc:
            # existing attempt continues; this sample says nothing about it
            logger.warning("%s, ignoring sample at t=%.2f", exc, sample.time)
            return self._miss(self.registry.get(aircraft_id), sample.time, "different carrier")

        reading = classify_aoa(sample.aoa_deg, aircraft, self.config.aoa_sanity_max_deg)
        point = DeviationPoint(
            time=sample.time,
            distance_astern_m=frame.distance_astern_m,
            lateral_m=frame.lateral_m,
            vertical_m=frame.vertical_m,
            height_m=frame.height_m,
            airspeed_mps=sample.airspeed_mps,
            aoa_deg=sample.aoa_deg,
            aoa_bucket=reading.bucket,
            aoa_deviation=reading.deviation,
        )
        return self.registry.advance(handle, point)

    def _miss(self, handle: Optional[AttemptHandle], t: float, reason: str) -> Optional[FinalizedAttempt]:
        if handle is None:
            logger.debug("%s", reason)
            return None
        logger.debug("%s: miss at t=%.2f (%s)", handle.aircraft_id, t, reason)
        return self.registry.record_miss(handle, t)

    # -----------------------------
    # Out-of-band events
    # -----------------------------
    def annotate(self, aircraft_id: str, comment: str) -> bool:
        """Attach the simulator LSO comment to the aircraft's active attempt."""
        with self._lock:
            found = self.registry.annotate(aircraft_id, comment)
        if not found:
            logger.debug("%s: no active attempt for comment %r", aircraft_id, comment)
        return found

    def end_stream(self, aircraft_id: str) -> Optional[FinalizedAttempt]:
        """The aircraft left the stream (despawn, disconnect): its attempt is Incomplete."""
        with self._lock:
            snapshot = self.registry.finish(aircraft_id)
            if snapshot is not None:
                self._publish([snapshot])
        return snapshot

    def stream_time(self) -> Optional[float]:
        """Best estimate of the current stream time: last sample time plus local time since it arrived."""
        if self._last_sample_time is None:
            return None
        return self._last_sample_time + (self._clock() - self._last_arrival)

    def expire_stale(self, now: Optional[float] = None) -> List[FinalizedAttempt]:
        with self._lock:
            if now is None:
                now = self.stream_time()
            if now is None:
                return []
            finalized = self.registry.expire_stale(now)
            self._publish(finalized)
        return finalized

    def close(self) -> List[FinalizedAttempt]:
        """Finalize every active attempt as Incomplete (shutdown)."""
        with self._lock:
            finalized = self.registry.close_all()
            self._publish(finalized)
        return finalized

    # -----------------------------
    # Hand-off
    # -----------------------------
    def flush(self) -> int:
        """Move parked snapshots onto the hand-off queue. Returns how many are still parked."""
        with self._lock:
            self._publish([])
            return len(self._overflow)

    def collect(self) -> List[FinalizedAttempt]:
        """Drain everything finalized so far, in finalization order (no consumer thread)."""
        out: List[FinalizedAttempt] = []
        while True:
            try:
                out.append(self.handoff.get_nowait())
                continue
            except queue.Empty:
                pass
            if self.flush() == 0 and self.handoff.empty():
                return out

    def _publish(self, finalized: List[FinalizedAttempt]) -> None:
        self._overflow.extend(finalized)
        while self._overflow:
            try:
                self.handoff.put_nowait(self._overflow[0])
            except queue.Full:
                logger.debug("hand-off queue full, %d attempt(s) parked", len(self._overflow))
                return
            self._overflow.popleft()


class StaleSweeper(threading.Thread):
    """Periodically expires attempts that stopped receiving samples."""

    def __init__(self, engine: Engine, interval_s: Optional[float] = None):
        super().__init__(name="stale-sweeper", daemon=True)
        self.engine = engine
        self.interval_s = interval_s if interval_s is not None else engine.config.grace_period_s / 2
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            expired = self.engine.expire_stale()
            if expired:
                logger.info("expired %d stale attempt(s)", len(expired))

    def stop(self, timeout: Optional[float] = 2.0) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout=timeout)

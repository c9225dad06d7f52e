"""Live telemetry loop with reconnect."""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional

from .domain import FinalizedAttempt, LsoComment, StreamEvent, TelemetrySample, UnitGone
from .engine import Engine

logger = logging.getLogger(__name__)


@dataclass
class BackoffPolicy:
    """
    Exponential backoff with full jitter.

    The n-th delay is drawn uniformly from [0, min(max_s, initial_s * multiplier**n)].
    Retries are unlimited; call reset() once the connection delivers data again.
    """
    initial_s: float = 0.5
    multiplier: float = 1.5
    max_s: float = 30.0
    jitter: bool = True
    rng: random.Random = field(default_factory=random.Random, repr=False)

    _ceiling: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self):
        if self.initial_s <= 0 or self.multiplier < 1.0 or self.max_s < self.initial_s:
            raise ValueError("BackoffPolicy needs initial_s > 0, multiplier >= 1 and max_s >= initial_s")
        self.reset()

    def reset(self) -> None:
        self._ceiling = self.initial_s

    def next_delay(self) -> float:
        ceiling = self._ceiling
        self._ceiling = min(self.max_s, self._ceiling * self.multiplier)
        if self.jitter:
            return self.rng.uniform(0.0, ceiling)
        return ceiling

    def delays(self, n: int) -> Iterator[float]:
        for _ in range(n):
            yield self.next_delay()


def dispatch(engine: Engine, event: StreamEvent) -> List[FinalizedAttempt]:
    """Route one event to the engine. Returns the attempts it finalized."""
    if isinstance(event, TelemetrySample):
        return engine.ingest(event)
    if isinstance(event, LsoComment):
        engine.annotate(event.aircraft_id, event.comment)
        return []
    if isinstance(event, UnitGone):
        snapshot = engine.end_stream(event.aircraft_id)
        return [snapshot] if snapshot is not None else []
    raise TypeError(f"unsupported stream event: {type(event).__name__}")


def run_forever(
    connect: Callable[[], Iterable[StreamEvent]],
    engine: Engine,
    stop: threading.Event,
    backoff: Optional[BackoffPolicy] = None,
) -> int:
    """
    Feed the engine from connect() until stop is set.

    connect() opens the telemetry stream and returns an iterable of events.
    Any failure (or the stream simply ending) is followed by a backoff wait and
    a new connect(). The wait is cut short when stop is set.

    Returns the number of connections opened.
    """
    backoff = backoff or BackoffPolicy()
    connections = 0

    while not stop.is_set():
        connections += 1
        try:
            received = 0
            for event in connect():
                if stop.is_set():
                    return connections
                dispatch(engine, event)
                if received == 0:
                    backoff.reset()
                received += 1
            reason = f"stream ended after {received} event(s)"
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"

        if stop.is_set():
            break
        delay = backoff.next_delay()
        logger.warning("telemetry stream lost (%s), reconnecting in %.2fs", reason, delay)
        stop.wait(delay)

    return connections

"""
Live recording: telemetry feed in, reports out.

The feed is newline-delimited JSON over TCP, one event per line:

    {"event": "sample", "time": 12.5, "aircraft_id": "Hornet 1-1", ..., "carrier": {...}}
    {"event": "comment", "aircraft_id": "Hornet 1-1", "comment": "(OK) 3-wire"}
    {"event": "gone", "aircraft_id": "Hornet 1-1"}

Sample fields use the TelemetrySample names; "carrier" holds the CarrierFix
fields or null.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional

from .acmi import TrackBuffer
from .domain import CarrierFix, FinalizedAttempt, LsoComment, StreamEvent, TelemetrySample, UnitGone
from .engine import Engine, StaleSweeper
from .errors import TelemetryFormatError
from .report import ReportDispatcher
from .stream import BackoffPolicy, run_forever

logger = logging.getLogger(__name__)

Connect = Callable[[], Iterable[StreamEvent]]

SAMPLE_FLOATS = (
    "time", "lat_deg", "lon_deg", "alt_m", "heading_deg",
    "pitch_deg", "roll_deg", "airspeed_mps", "aoa_deg",
)
CARRIER_FLOATS = ("lat_deg", "lon_deg", "heading_deg")


def parse_event(data: Mapping[str, Any]) -> StreamEvent:
    """
    Build a stream event from one decoded feed line.

    Raises:
        TelemetryFormatError: unknown event kind or missing/invalid fields
    """
    kind = data.get("event", "sample")
    if kind not in ("sample", "comment", "gone"):
        raise TelemetryFormatError(f"unknown event kind: {kind!r}")
    try:
        if kind == "comment":
            return LsoComment(str(data["aircraft_id"]), str(data["comment"]))
        if kind == "gone":
            return UnitGone(str(data["aircraft_id"]))

        carrier = data.get("carrier")
        fix = None
        if carrier is not None:
            fix = CarrierFix(
                carrier_id=str(carrier["carrier_id"]),
                carrier_type=str(carrier["carrier_type"]),
                **{name: float(carrier[name]) for name in CARRIER_FLOATS},
            )
        pilot = data.get("pilot")
        return TelemetrySample(
            aircraft_id=str(data["aircraft_id"]),
            aircraft_type=str(data["aircraft_type"]),
            carrier=fix,
            pilot=str(pilot) if pilot else None,
            **{name: float(data[name]) for name in SAMPLE_FLOATS},
        )
    except KeyError as e:
        raise TelemetryFormatError(f"{kind} event is missing field {e.args[0]!r}") from e
    except (TypeError, ValueError) as e:
        raise TelemetryFormatError(f"{kind} event has an invalid field: {e}") from e


def _decode_line(raw: bytes) -> Optional[StreamEvent]:
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise TelemetryFormatError("feed line is not a JSON object")
        return parse_event(data)
    except ValueError as e:
        logger.warning("skipping feed line: %s", e)
        return None


def read_feed(sock: socket.socket) -> Iterator[StreamEvent]:
    """Events from a connected socket until the server closes it."""
    buffer = b""
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return
        buffer += chunk
        lines = buffer.split(b"\n")
        buffer = lines.pop()
        for line in lines:
            event = _decode_line(line)
            if event is not None:
                yield event


def tcp_source(host: str, port: int, timeout: Optional[float] = 30.0) -> Connect:
    """
    connect() factory for run_forever. Each call opens a new TCP connection;
    a read that stays silent for longer than timeout raises and triggers a
    reconnect.
    """

    def connect() -> Iterator[StreamEvent]:
        sock = socket.create_connection((host, port), timeout=timeout)
        logger.info("connected to telemetry feed %s:%d", host, port)
        try:
            yield from read_feed(sock)
        finally:
            sock.close()

    return connect


def _recording(connect: Connect, tracks: TrackBuffer) -> Connect:
    def recorded() -> Iterator[StreamEvent]:
        for event in connect():
            if isinstance(event, TelemetrySample):
                tracks.record(event)
            yield event

    return recorded


def _drain(engine: Engine) -> None:
    # parked snapshots only move when there is room, so alternate until both are empty
    while True:
        parked = engine.flush()
        engine.handoff.join()
        if parked == 0 and engine.overflow_count == 0:
            return


def run_live(
    connect: Connect,
    engine: Engine,
    dispatcher: ReportDispatcher,
    stop: threading.Event,
    backoff: Optional[BackoffPolicy] = None,
    sweeper_interval_s: Optional[float] = None,
) -> List[FinalizedAttempt]:
    """
    Record a live feed until stop is set (or KeyboardInterrupt).

    Runs the stale-attempt sweeper and the report dispatcher on their own
    threads while this thread feeds the engine. On the way out, open attempts
    are finalized as Incomplete and reported before both threads stop.

    Returns the attempts finalized by the shutdown itself.
    """
    if dispatcher.tracks is not None:
        connect = _recording(connect, dispatcher.tracks)

    sweeper = StaleSweeper(engine, sweeper_interval_s)
    sweeper.start()
    dispatcher.start()
    logger.info("live recording started")
    try:
        connections = run_forever(connect, engine, stop, backoff)
        logger.info("live recording stopped after %d connection(s)", connections)
    finally:
        stop.set()
        sweeper.stop()
        closed = engine.close()
        if closed:
            logger.info("closed %d open attempt(s) on shutdown", len(closed))
        _drain(engine)
        dispatcher.stop()
    return closed

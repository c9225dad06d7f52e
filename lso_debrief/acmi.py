"""
Tacview ACMI export of a recovery, and reading recordings back as telemetry.

The engine keeps only deviation points, so the raw samples needed for a 3D
replay are kept in a TrackBuffer next to it and cut to the attempt's time
window when the attempt ends.
"""

from __future__ import annotations

import logging
import math
import zipfile
from collections import defaultdict, deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from .domain import CarrierFix, FinalizedAttempt, LsoComment, StreamEvent, TelemetrySample, UnitGone
from .errors import TelemetryFormatError
from .transform import latlon_to_local_xy_m

logger = logging.getLogger(__name__)

ACMI_SUFFIX = ".zip.acmi"
CARRIER_OBJECT_ID = 1
AIRCRAFT_OBJECT_ID = 2

# Minimum change written for each T= field; smaller changes are left empty.
LATLON_PRECISION = 1e-7
ALT_PRECISION = 0.01
ANGLE_PRECISION = 0.1


class TrackBuffer:
    """Rolling window of raw samples per aircraft."""

    def __init__(self, window_s: float = 600.0):
        self.window_s = window_s
        self._samples: Dict[str, Deque[TelemetrySample]] = defaultdict(deque)

    def __len__(self) -> int:
        return sum(len(q) for q in self._samples.values())

    def record(self, sample: TelemetrySample) -> None:
        q = self._samples[sample.aircraft_id]
        q.append(sample)
        while q and sample.time - q[0].time > self.window_s:
            q.popleft()

    def segment(self, aircraft_id: str, start: float, end: float, margin_s: float = 5.0) -> List[TelemetrySample]:
        q = self._samples.get(aircraft_id)
        if not q:
            return []
        return [s for s in q if start - margin_s <= s.time <= end + margin_s]

    def for_attempt(self, attempt: FinalizedAttempt, margin_s: float = 5.0) -> List[TelemetrySample]:
        return self.segment(attempt.aircraft_id, attempt.start_time, attempt.end_time, margin_s)


def _fmt(value: float, precision: float) -> str:
    decimals = max(0, len(f"{precision:.10f}".rstrip("0").split(".")[1]))
    return f"{value:.{decimals}f}"


class _TransformWriter:
    """Writes T= values, leaving out fields that did not change since the last frame."""

    def __init__(self, lat_ref: float, lon_ref: float):
        self.lat_ref = lat_ref
        self.lon_ref = lon_ref
        self._known: Optional[List[float]] = None

    def format(self, lat: float, lon: float, alt: float, roll: float, pitch: float, yaw: float) -> Optional[str]:
        values = [lon - self.lon_ref, lat - self.lat_ref, alt, roll, pitch, yaw]
        precisions = [LATLON_PRECISION, LATLON_PRECISION, ALT_PRECISION, ANGLE_PRECISION, ANGLE_PRECISION, ANGLE_PRECISION]

        if self._known is None:
            self._known = list(values)
            return "|".join(_fmt(v, p) for v, p in zip(values, precisions))

        fields = []
        for i, (v, p) in enumerate(zip(values, precisions)):
            if abs(v - self._known[i]) >= p:
                self._known[i] = v
                fields.append(_fmt(v, p))
            else:
                fields.append("")
        if not any(fields):
            return None
        return "|".join(fields)


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace(",", "\\,").replace("\n", "\\\n")


def acmi_lines(
    samples: Sequence[TelemetrySample],
    title: Optional[str] = None,
    comment: Optional[str] = None,
    bookmark: Optional[str] = None,
    reference_time: Optional[datetime] = None,
) -> List[str]:
    """
    Text ACMI 2.2 for one aircraft and the carrier it approached.

    The first sample with a carrier reference fixes ReferenceLatitude/
    ReferenceLongitude; frame times are seconds since the first sample.
    """
    if len(samples) == 0:
        raise ValueError("no samples to export")

    first = samples[0]
    first_fix = next((s.carrier for s in samples if s.carrier is not None), None)
    lat_ref = first_fix.lat_deg if first_fix else first.lat_deg
    lon_ref = first_fix.lon_deg if first_fix else first.lon_deg
    ref_time = reference_time or datetime.now(timezone.utc)
    t0 = first.time

    lines = [
        "FileType=text/acmi/tacview",
        "FileVersion=2.2",
        f"0,ReferenceTime={ref_time.strftime('%Y-%m-%dT%H:%M:%SZ')}",
        f"0,ReferenceLatitude={lat_ref:.7f}",
        f"0,ReferenceLongitude={lon_ref:.7f}",
        f"0,Title={_escape(title or 'Carrier Recovery')}",
        "0,Author=lso-debrief",
        "#0.00",
    ]
    if first_fix is not None:
        lines.append(
            f"{CARRIER_OBJECT_ID},Name={_escape(first_fix.carrier_type)},"
            f"Type=Sea+Watercraft+AircraftCarrier,Color=Blue,CallSign={_escape(first_fix.carrier_id)}"
        )
    aircraft_props = (
        f"{AIRCRAFT_OBJECT_ID},Name={_escape(first.aircraft_type)},Type=Air+FixedWing,Color=Blue,"
        f"CallSign={_escape(first.aircraft_id)}"
    )
    if first.pilot:
        aircraft_props += f",Pilot={_escape(first.pilot)}"
    lines.append(aircraft_props)

    carrier_t = _TransformWriter(lat_ref, lon_ref)
    aircraft_t = _TransformWriter(lat_ref, lon_ref)

    for s in samples:
        frame = [f"#{s.time - t0:.2f}"]
        if s.carrier is not None:
            t = carrier_t.format(s.carrier.lat_deg, s.carrier.lon_deg, 0.0, 0.0, 0.0, s.carrier.heading_deg)
            if t is not None:
                frame.append(f"{CARRIER_OBJECT_ID},T={t}")
        t = aircraft_t.format(s.lat_deg, s.lon_deg, s.alt_m, s.roll_deg, s.pitch_deg, s.heading_deg)
        flight = f"AOA={s.aoa_deg:.2f},IAS={s.airspeed_mps:.2f}"
        if t is not None:
            frame.append(f"{AIRCRAFT_OBJECT_ID},T={t},{flight}")
        else:
            frame.append(f"{AIRCRAFT_OBJECT_ID},{flight}")
        lines.extend(frame)

    if bookmark:
        lines.append(f"0,Event=Bookmark|{AIRCRAFT_OBJECT_ID}|{_escape(bookmark)}")
    if comment:
        lines.append(f"0,Event=Message|{AIRCRAFT_OBJECT_ID}|{CARRIER_OBJECT_ID}|{_escape(comment)}")
    return lines


def write_acmi(
    path: Union[str, Path],
    samples: Sequence[TelemetrySample],
    title: Optional[str] = None,
    comment: Optional[str] = None,
    bookmark: Optional[str] = None,
    reference_time: Optional[datetime] = None,
) -> Path:
    """Write a zip-compressed ACMI; the path gets the .zip.acmi suffix."""
    path = Path(path)
    if not path.name.endswith(ACMI_SUFFIX):
        path = path.with_name(path.name + ACMI_SUFFIX)
    path.parent.mkdir(parents=True, exist_ok=True)

    text = "\n".join(acmi_lines(samples, title, comment, bookmark, reference_time)) + "\n"
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        z.writestr(path.name[: -len(ACMI_SUFFIX)] + ".txt.acmi", text.encode("utf-8"))
    logger.debug("wrote %s (%d samples)", path, len(samples))
    return path


def write_attempt_acmi(
    path: Union[str, Path],
    attempt: FinalizedAttempt,
    samples: Sequence[TelemetrySample],
    reference_time: Optional[datetime] = None,
) -> Path:
    return write_acmi(
        path,
        samples,
        title=f"Carrier Recovery: {attempt.pilot_name} on {attempt.carrier_id}",
        comment=attempt.lso_comment,
        bookmark=attempt.outcome.label,
        reference_time=reference_time,
    )


def iter_acmi_lines(path: Union[str, Path]) -> Iterator[str]:
    """Yield lines from an ACMI file (handles zip compression)."""
    with open(path, "rb") as f:
        header = f.read(4)

    if header.startswith(b"PK\x03\x04"):
        with zipfile.ZipFile(path, "r") as z:
            info = z.infolist()[0]
            with z.open(info) as f:
                content = f.read().decode("utf-8", errors="replace")
        yield from content.splitlines()
    else:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                yield line.rstrip("\r\n")


# -----------------------------
# Reading
# -----------------------------
REMOVAL_EVENTS = ("Destroyed", "LeftArea")


def is_acmi_path(path: Union[str, Path]) -> bool:
    return str(path).lower().endswith(".acmi")


def _split_fields(text: str) -> List[str]:
    """Split on unescaped commas, dropping the escapes."""
    fields: List[str] = []
    current: List[str] = []
    escaped = False
    for ch in text:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == ",":
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
    fields.append("".join(current))
    return fields


def _continues(line: str) -> bool:
    # odd number of trailing backslashes = escaped line break
    return (len(line) - len(line.rstrip("\\"))) % 2 == 1


def _logical_lines(lines: Iterable[str]) -> Iterator[str]:
    pending: Optional[str] = None
    for line in lines:
        if pending is not None:
            line = pending + "\n" + line
            pending = None
        if _continues(line):
            pending = line
            continue
        yield line
    if pending is not None:
        yield pending


class _AcmiObject:
    """Accumulated state of one object; ACMI lines only carry what changed."""

    def __init__(self, object_id: str):
        self.object_id = object_id
        self.props: Dict[str, str] = {}
        self.transform: List[Optional[float]] = [None] * 6  # lon, lat, alt, roll, pitch, yaw (offsets for lon/lat)
        self.heading: Optional[float] = None
        self.last_fix: Optional[Tuple[float, float, float, float]] = None  # time, lat, lon, alt

    @property
    def tags(self) -> Set[str]:
        return set(self.props.get("Type", "").split("+"))

    @property
    def is_carrier(self) -> bool:
        return "AircraftCarrier" in self.tags

    @property
    def is_aircraft(self) -> bool:
        return "FixedWing" in self.tags

    @property
    def call_sign(self) -> str:
        return (
            self.props.get("CallSign")
            or self.props.get("Pilot")
            or f"{self.props.get('Name', 'object')}#{self.object_id}"
        )

    def apply_transform(self, value: str) -> None:
        parts = value.split("|")
        if len(parts) in (3, 5):
            slots = range(3)  # U|V native coordinates ignored
        elif len(parts) in (6, 9):
            slots = range(6)
        else:
            raise ValueError(f"T= with {len(parts)} fields")
        for slot in slots:
            if parts[slot] != "":
                self.transform[slot] = float(parts[slot])
        if len(parts) == 9 and parts[8] != "":
            self.heading = float(parts[8])

    def position(self, lat_ref: float, lon_ref: float) -> Optional[Tuple[float, float, float]]:
        lon, lat, alt = self.transform[:3]
        if lon is None or lat is None:
            return None
        return lat_ref + lat, lon_ref + lon, alt or 0.0

    def heading_deg(self) -> float:
        if self.heading is not None:
            return self.heading
        return self.transform[5] or 0.0

    def number(self, key: str) -> Optional[float]:
        value = self.props.get(key)
        if value is None or value == "":
            return None
        return float(value)


class _AcmiReader:
    """
    Turns ACMI lines into stream events, one frame at a time.

    Each aircraft updated in a frame becomes a TelemetrySample paired with the
    nearest aircraft carrier. Message events aimed at an aircraft become
    LsoComment, removals become UnitGone.
    """

    def __init__(self):
        self.lat_ref = 0.0
        self.lon_ref = 0.0
        self.time = 0.0
        self.objects: Dict[str, _AcmiObject] = {}
        self._updated: List[str] = []
        self._events: List[StreamEvent] = []
        self._removed: List[str] = []

    def read(self, lines: Iterable[str]) -> Iterator[StreamEvent]:
        n = 0
        for n, line in enumerate(_logical_lines(lines), start=1):
            line = line.strip()
            if not line or line.startswith("//") or line.startswith("FileType=") or line.startswith("FileVersion="):
                continue
            try:
                events = self._flush() if line.startswith("#") else []
                self._parse(line)
            except ValueError as e:
                raise TelemetryFormatError(f"ACMI line {n}: {e}") from e
            yield from events
        try:
            events = self._flush()
        except ValueError as e:
            raise TelemetryFormatError(f"ACMI line {n}: {e}") from e
        yield from events

    def _parse(self, line: str) -> None:
        if line.startswith("#"):
            self.time = float(line[1:])
            return
        if line.startswith("-"):
            self._remove(line[1:])
            return

        object_id, _, rest = line.partition(",")
        fields = _split_fields(rest)
        if object_id == "0":
            for field_ in fields:
                self._global(*field_.split("=", 1))
            return

        obj = self.objects.get(object_id)
        if obj is None:
            obj = self.objects[object_id] = _AcmiObject(object_id)
        for field_ in fields:
            key, _, value = field_.partition("=")
            if key == "T":
                obj.apply_transform(value)
            else:
                obj.props[key] = value
        if obj.is_aircraft and object_id not in self._updated:
            self._updated.append(object_id)

    def _global(self, key: str, value: str = "") -> None:
        if key == "ReferenceLatitude":
            self.lat_ref = float(value)
        elif key == "ReferenceLongitude":
            self.lon_ref = float(value)
        elif key == "Event":
            parts = value.split("|", 3)
            if parts[0] == "Message" and len(parts) >= 3:
                target = self.objects.get(parts[1])
                if target is not None and target.is_aircraft:
                    self._events.append(LsoComment(target.call_sign, parts[-1]))
            elif parts[0] in REMOVAL_EVENTS and len(parts) >= 2:
                self._remove(parts[1])

    def _remove(self, object_id: str) -> None:
        obj = self.objects.get(object_id)
        if obj is None or object_id in self._removed:
            return
        if obj.is_aircraft:
            self._events.append(UnitGone(obj.call_sign))
        self._removed.append(object_id)

    def _flush(self) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for object_id in self._updated:
            sample = self._sample(self.objects[object_id])
            if sample is not None:
                events.append(sample)
        events.extend(self._events)
        for object_id in self._removed:
            self.objects.pop(object_id, None)
        self._updated, self._events, self._removed = [], [], []
        return events

    def _sample(self, obj: _AcmiObject) -> Optional[TelemetrySample]:
        position = obj.position(self.lat_ref, self.lon_ref)
        if position is None:
            return None
        lat, lon, alt = position

        airspeed = obj.number("IAS")
        if airspeed is None:
            airspeed = obj.number("TAS")
        if airspeed is None:
            airspeed = self._ground_speed(obj, lat, lon, alt)
        obj.last_fix = (self.time, lat, lon, alt)

        aoa = obj.number("AOA")
        return TelemetrySample(
            time=self.time,
            aircraft_id=obj.call_sign,
            aircraft_type=obj.props.get("Name", ""),
            lat_deg=lat,
            lon_deg=lon,
            alt_m=alt,
            heading_deg=obj.heading_deg(),
            pitch_deg=obj.transform[4] or 0.0,
            roll_deg=obj.transform[3] or 0.0,
            airspeed_mps=airspeed,
            aoa_deg=aoa if aoa is not None else math.nan,
            carrier=self._nearest_carrier(lat, lon),
            pilot=obj.props.get("Pilot") or None,
        )

    def _ground_speed(self, obj: _AcmiObject, lat: float, lon: float, alt: float) -> float:
        if obj.last_fix is None or self.time <= obj.last_fix[0]:
            return math.nan
        t0, lat0, lon0, alt0 = obj.last_fix
        x, y = latlon_to_local_xy_m(lat, lon, lat0, lon0)
        return math.sqrt(float(x) ** 2 + float(y) ** 2 + (alt - alt0) ** 2) / (self.time - t0)

    def _nearest_carrier(self, lat: float, lon: float) -> Optional[CarrierFix]:
        best = None
        best_d2 = math.inf
        for obj in self.objects.values():
            if not obj.is_carrier or obj.object_id in self._removed:
                continue
            position = obj.position(self.lat_ref, self.lon_ref)
            if position is None:
                continue
            x, y = latlon_to_local_xy_m(position[0], position[1], lat, lon)
            d2 = float(x) ** 2 + float(y) ** 2
            if d2 < best_d2:
                best, best_d2 = (obj, position), d2
        if best is None:
            return None
        obj, (c_lat, c_lon, _) = best
        return CarrierFix(
            carrier_id=obj.props.get("CallSign") or obj.props.get("Name", obj.object_id),
            carrier_type=obj.props.get("Name", ""),
            lat_deg=c_lat,
            lon_deg=c_lon,
            heading_deg=obj.heading_deg(),
        )


def iter_acmi_events(lines: Iterable[str]) -> Iterator[StreamEvent]:
    """Stream events from ACMI text lines, in frame order."""
    return _AcmiReader().read(lines)


def read_acmi_events(path: Union[str, Path]) -> List[StreamEvent]:
    """
    Read a Tacview recording (plain or zipped) as stream events.

    Raises:
        TelemetryFormatError: a line could not be parsed
    """
    events = list(iter_acmi_events(iter_acmi_lines(path)))
    logger.debug("read %d event(s) from %s", len(events), path)
    return events


def load_acmi_samples(path: Union[str, Path]) -> List[TelemetrySample]:
    """Aircraft samples from a Tacview recording, paired with the nearest carrier."""
    return [e for e in read_acmi_events(path) if isinstance(e, TelemetrySample)]

from __future__ import annotations
import logging
from pathlib import Path
from typing import IO, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .acmi import is_acmi_path, read_acmi_events
from .domain import CarrierFix, DeviationPoint, FinalizedAttempt, StreamEvent, TelemetrySample
from .errors import TelemetryFormatError
from .units import KT_TO_MPS

logger = logging.getLogger(__name__)

CSVSource = Union[str, Path, IO[bytes], IO[str]]

FT_TO_M = 0.3048

# -----------------------------
# Helpers
# -----------------------------

def _normalize_col(c: str) -> str:
    return c.strip().lower().replace(" ", "").replace("_", "")

def _pick_col(df: pd.DataFrame, candidates: Sequence[str]) -> Optional[str]:
    # match by normalized name
    norm_map = {_normalize_col(c): c for c in df.columns}
    for cand in candidates:
        key = _normalize_col(cand)
        if key in norm_map:
            return norm_map[key]
    return None


# canonical column -> accepted spellings (first match wins)
COLUMNS: Dict[str, List[str]] = {
    "t": ["t", "time", "time_s"],
    "aircraft_id": ["aircraft_id", "unit", "unit_name", "id"],
    "aircraft_type": ["aircraft_type", "type", "unit_type"],
    "lat_deg": ["lat_deg", "lat", "latitude"],
    "lon_deg": ["lon_deg", "lon", "longitude"],
    "heading_deg": ["heading_deg", "hdg_deg", "heading", "yaw_deg"],
    "pitch_deg": ["pitch_deg", "pitch"],
    "roll_deg": ["roll_deg", "roll", "bank_deg"],
    "aoa_deg": ["aoa_deg", "aoa", "alpha_deg"],
}

OPTIONAL_COLUMNS: Dict[str, List[str]] = {
    "pilot": ["pilot", "player", "player_name"],
    "carrier_id": ["carrier_id", "carrier", "carrier_name"],
    "carrier_type": ["carrier_type"],
    "carrier_lat_deg": ["carrier_lat_deg", "carrier_lat"],
    "carrier_lon_deg": ["carrier_lon_deg", "carrier_lon"],
    "carrier_heading_deg": ["carrier_heading_deg", "carrier_hdg_deg", "carrier_heading", "brc"],
}

CARRIER_FIELDS = ["carrier_id", "carrier_lat_deg", "carrier_lon_deg", "carrier_heading_deg"]


def read_telemetry(csv_source: CSVSource) -> pd.DataFrame:
    """
    Load a telemetry CSV into a DataFrame with canonical column names.

    Required: time, aircraft id/type, lat/lon, altitude (alt_m or alt_msl_ft),
    heading, pitch, roll, airspeed (airspeed_mps or ias_kt), AOA.
    Optional: pilot, carrier id/type/lat/lon/heading. A row with an empty
    carrier position has no carrier reference.

    Rows are deduplicated on (t, aircraft_id) and sorted by time; rows at the
    same time keep their file order.
    """
    try:
        raw = pd.read_csv(csv_source)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise TelemetryFormatError(f"Cannot read telemetry CSV: {e}") from e

    df = pd.DataFrame(index=raw.index)

    missing = []
    for name, candidates in COLUMNS.items():
        col = _pick_col(raw, candidates)
        if col is None:
            missing.append(name)
        else:
            df[name] = raw[col]

    # altitude can be meters (alt_m / alt_msl_m) or feet (alt_msl_ft)
    alt_col = _pick_col(raw, ["alt_m", "alt_msl_m", "altitude_m"])
    alt_ft_col = _pick_col(raw, ["alt_msl_ft", "alt_ft"])
    if alt_col is not None:
        df["alt_m"] = pd.to_numeric(raw[alt_col], errors="coerce")
    elif alt_ft_col is not None:
        df["alt_m"] = pd.to_numeric(raw[alt_ft_col], errors="coerce") * FT_TO_M
    else:
        missing.append("alt_m")

    # airspeed can be m/s or knots
    spd_col = _pick_col(raw, ["airspeed_mps", "tas_mps", "speed_mps"])
    kt_col = _pick_col(raw, ["ias_kt", "airspeed_kt", "tas_kt"])
    if spd_col is not None:
        df["airspeed_mps"] = pd.to_numeric(raw[spd_col], errors="coerce")
    elif kt_col is not None:
        df["airspeed_mps"] = pd.to_numeric(raw[kt_col], errors="coerce") * KT_TO_MPS
    else:
        missing.append("airspeed_mps")

    if missing:
        raise TelemetryFormatError(f"Missing required columns: {missing}. Found columns: {list(raw.columns)}")

    for name, candidates in OPTIONAL_COLUMNS.items():
        col = _pick_col(raw, candidates)
        df[name] = raw[col] if col is not None else np.nan

    if df["carrier_id"].isna().all():
        logger.warning("telemetry has no carrier columns; no approach can be detected")
    # carrier type defaults to the carrier id ("CVN-72" -> CVN_72 lookup)
    df["carrier_type"] = df["carrier_type"].where(df["carrier_type"].notna(), df["carrier_id"])

    numeric = ["t", "lat_deg", "lon_deg", "heading_deg", "pitch_deg", "roll_deg", "aoa_deg",
               "carrier_lat_deg", "carrier_lon_deg", "carrier_heading_deg"]
    for name in numeric:
        df[name] = pd.to_numeric(df[name], errors="coerce").astype(float)

    df["aircraft_id"] = df["aircraft_id"].astype(str)
    df["aircraft_type"] = df["aircraft_type"].astype(str)

    before = len(df)
    df = df.dropna(subset=["t", "lat_deg", "lon_deg", "alt_m"])
    if len(df) < before:
        logger.debug("dropped %d row(s) without time or position", before - len(df))

    df = df.drop_duplicates(subset=["t", "aircraft_id"], keep="first")
    df = df.sort_values("t", kind="mergesort").reset_index(drop=True)
    return df


def _optional_str(value) -> Optional[str]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    s = str(value).strip()
    return s or None


def _carrier_fix(row) -> Optional[CarrierFix]:
    if any(pd.isna(row[name]) for name in CARRIER_FIELDS):
        return None
    return CarrierFix(
        carrier_id=str(row["carrier_id"]),
        carrier_type=str(row["carrier_type"]),
        lat_deg=float(row["carrier_lat_deg"]),
        lon_deg=float(row["carrier_lon_deg"]),
        heading_deg=float(row["carrier_heading_deg"]),
    )


def samples_from_frame(df: pd.DataFrame) -> List[TelemetrySample]:
    samples = []
    for row in df.to_dict(orient="records"):
        samples.append(
            TelemetrySample(
                time=float(row["t"]),
                aircraft_id=row["aircraft_id"],
                aircraft_type=row["aircraft_type"],
                lat_deg=float(row["lat_deg"]),
                lon_deg=float(row["lon_deg"]),
                alt_m=float(row["alt_m"]),
                heading_deg=float(row["heading_deg"]),
                pitch_deg=float(row["pitch_deg"]),
                roll_deg=float(row["roll_deg"]),
                airspeed_mps=float(row["airspeed_mps"]),
                aoa_deg=float(row["aoa_deg"]),
                carrier=_carrier_fix(row),
                pilot=_optional_str(row["pilot"]),
            )
        )
    return samples


def load_samples(csv_source: CSVSource) -> List[TelemetrySample]:
    """Read a telemetry CSV and return time-ordered samples for the engine."""
    return samples_from_frame(read_telemetry(csv_source))


def load_events(source: CSVSource) -> List[StreamEvent]:
    """
    Time-ordered stream events from a recording. A path ending in .acmi is
    read as a Tacview recording (samples, LSO messages, despawns); anything
    else is telemetry CSV.
    """
    if isinstance(source, (str, Path)) and is_acmi_path(source):
        return read_acmi_events(source)
    return list(load_samples(source))


# -----------------------------
# Traces back to tables
# -----------------------------
TRACE_COLUMNS = [
    "t", "distance_astern_m", "lateral_m", "vertical_m", "height_m",
    "airspeed_mps", "aoa_deg", "aoa_bucket", "aoa_deviation",
]


def trace_frame(attempt_or_trace: Union[FinalizedAttempt, Sequence[DeviationPoint]]) -> pd.DataFrame:
    trace = attempt_or_trace.trace if isinstance(attempt_or_trace, FinalizedAttempt) else attempt_or_trace
    rows = [
        {
            "t": p.time,
            "distance_astern_m": p.distance_astern_m,
            "lateral_m": p.lateral_m,
            "vertical_m": p.vertical_m,
            "height_m": p.height_m,
            "airspeed_mps": p.airspeed_mps,
            "aoa_deg": p.aoa_deg,
            "aoa_bucket": p.aoa_bucket.value,
            "aoa_deviation": p.aoa_deviation,
        }
        for p in trace
    ]
    return pd.DataFrame(rows, columns=TRACE_COLUMNS)


def attempts_frame(attempts: Sequence[FinalizedAttempt]) -> pd.DataFrame:
    """One row per finalized attempt, for tables and CSV export."""
    rows = [
        {
            "pilot": a.pilot_name,
            "aircraft_id": a.aircraft_id,
            "aircraft_type": a.aircraft_type,
            "carrier": a.carrier_id,
            "start_t": a.start_time,
            "end_t": a.end_time,
            "outcome": str(a.outcome),
            "points": len(a.trace),
            "lso_comment": a.lso_comment or "",
        }
        for a in attempts
    ]
    return pd.DataFrame(
        rows,
        columns=["pilot", "aircraft_id", "aircraft_type", "carrier", "start_t", "end_t", "outcome", "points", "lso_comment"],
    )

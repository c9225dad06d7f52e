"""Carrier-relative geometry for telemetry samples."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .domain import CarrierFix, EngineConfig, TelemetrySample
from .errors import OutOfRangeError
from .units import AircraftProfile, CarrierProfile

EARTH_R_M = 6371000.0


@dataclass(frozen=True)
class CarrierFrame:
    distance_astern_m: float
    lateral_m: float        # + = right of the landing centerline
    height_m: float         # hook height above deck
    vertical_m: float       # + = above the ideal glide slope
    heading_error_deg: float  # aircraft heading minus landing-area heading, -180..180


def latlon_to_local_xy_m(lat_deg, lon_deg, lat0_deg: float, lon0_deg: float):
    """
    Small-area approximation: converts lat/lon to local meters (east, north)
    around (lat0, lon0). Good enough inside the few miles behind a carrier.
    """
    lat = np.deg2rad(lat_deg)
    lon = np.deg2rad(lon_deg)
    lat0 = np.deg2rad(lat0_deg)
    lon0 = np.deg2rad(lon0_deg)

    x = EARTH_R_M * np.cos(lat0) * (lon - lon0)
    y = EARTH_R_M * (lat - lat0)
    return x, y


def hook_offset_m(aircraft: AircraftProfile, pitch_deg: float) -> Tuple[float, float]:
    """
    Tailhook offset from the aircraft reference point as (forward, up) in meters,
    rotated by the aircraft pitch. Roll is ignored.
    """
    pitch = np.deg2rad(pitch_deg)
    fwd = -aircraft.hook_aft_m * np.cos(pitch) + aircraft.hook_below_m * np.sin(pitch)
    up = -aircraft.hook_aft_m * np.sin(pitch) - aircraft.hook_below_m * np.cos(pitch)
    return float(fwd), float(up)


def wrap_deg(angle_deg: float) -> float:
    """Wrap an angle to [-180, 180)."""
    return (angle_deg + 180.0) % 360.0 - 180.0


def ideal_height_m(distance_astern_m: float, carrier: CarrierProfile) -> float:
    return distance_astern_m * float(np.tan(np.deg2rad(carrier.glide_slope_deg)))


def to_carrier_frame(
    sample: TelemetrySample,
    fix: CarrierFix,
    carrier: CarrierProfile,
    aircraft: AircraftProfile,
    config: EngineConfig,
) -> CarrierFrame:
    """
    Measure the sample's tailhook against the carrier's approach corridor.

    Steps:
    1. Project aircraft lat/lon into local east/north meters around the ship.
    2. Move from the aircraft reference point to the tailhook.
    3. Rotate into the ship frame (ship heading = forward axis), then into the
       angled-deck frame anchored at the landing reference point.
    4. Compare hook height with the ideal glide slope at that distance.

    Raises:
        OutOfRangeError: hook is ahead of the landing reference point or
            farther astern than config.max_range_m
    """
    east, north = latlon_to_local_xy_m(sample.lat_deg, sample.lon_deg, fix.lat_deg, fix.lon_deg)

    hook_fwd, hook_up = hook_offset_m(aircraft, sample.pitch_deg)
    psi = np.deg2rad(sample.heading_deg)
    east = float(east) + hook_fwd * float(np.sin(psi))
    north = float(north) + hook_fwd * float(np.cos(psi))
    hook_alt_m = sample.alt_m + hook_up

    # ship frame
    h = np.deg2rad(fix.heading_deg)
    fwd_s = east * np.sin(h) + north * np.cos(h)
    right_s = east * np.cos(h) - north * np.sin(h)

    # angled-deck frame around the landing reference point
    rf = fwd_s - carrier.landing_point_fwd_m
    rr = right_s - carrier.landing_point_right_m
    a = np.deg2rad(carrier.deck_angle_deg)
    along = -rr * np.sin(a) + rf * np.cos(a)
    lateral = rr * np.cos(a) + rf * np.sin(a)

    distance_astern = float(-along)
    height = hook_alt_m - carrier.deck_altitude_m
    if distance_astern < 0.0 or distance_astern > config.max_range_m:
        raise OutOfRangeError(distance_astern, config.max_range_m, float(height))

    vertical = height - ideal_height_m(distance_astern, carrier)
    heading_error = wrap_deg(sample.heading_deg - carrier.landing_heading_deg(fix.heading_deg))

    return CarrierFrame(
        distance_astern_m=distance_astern,
        lateral_m=float(lateral),
        height_m=float(height),
        vertical_m=float(vertical),
        heading_error_deg=float(heading_error),
    )


def in_capture_envelope(frame: CarrierFrame, config: EngineConfig) -> bool:
    """Wide enough for a normal approach, narrow enough to reject flybys."""
    return (
        config.min_entry_distance_m <= frame.distance_astern_m <= config.entry_distance_m
        and abs(frame.vertical_m) <= config.capture_vertical_m
        and abs(frame.lateral_m) <= config.capture_lateral_m
        and abs(frame.heading_error_deg) <= config.capture_heading_deg
    )

"""Shared fixtures: synthetic telemetry placed in carrier-frame meters."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from lso_debrief.domain import CarrierFix, DeviationPoint, TelemetrySample
from lso_debrief.transform import EARTH_R_M, hook_offset_m
from lso_debrief.units import NIMITZ, aircraft_by_type
from lso_debrief.aoa import classify_aoa
from lso_debrief.stream import BackoffPolicy

LAT0 = 26.5
LON0 = 56.25
SHIP_HEADING = 20.0

FIX = CarrierFix("CVN-72", "CVN_72", LAT0, LON0, SHIP_HEADING)


def ideal_height(d):
    return d * np.tan(np.deg2rad(NIMITZ.glide_slope_deg))


def place_sample(
    d,
    lateral=0.0,
    vertical=0.0,
    height=None,
    t=0.0,
    aircraft_id="Hornet 1-1",
    aircraft_type="FA-18C_hornet",
    pilot="Pilot A",
    aoa=8.1,
    airspeed=70.0,
    pitch=0.0,
    heading=None,
    fix=FIX,
    carrier=NIMITZ,
):
    """
    Build a TelemetrySample whose tailhook sits at distance d astern of the
    landing point, `lateral` m right of the centerline and `height` m above
    the deck (default: glide slope height + vertical).
    """
    aircraft = aircraft_by_type(aircraft_type)
    if height is None:
        height = d * np.tan(np.deg2rad(carrier.glide_slope_deg)) + vertical
    if heading is None:
        heading = carrier.landing_heading_deg(fix.heading_deg)

    # angled-deck frame -> ship frame
    a = np.deg2rad(carrier.deck_angle_deg)
    rr = d * np.sin(a) + lateral * np.cos(a)
    rf = -d * np.cos(a) + lateral * np.sin(a)
    fwd_s = rf + carrier.landing_point_fwd_m
    right_s = rr + carrier.landing_point_right_m

    # ship frame -> east/north of the hook
    h = np.deg2rad(fix.heading_deg)
    east = fwd_s * np.sin(h) + right_s * np.cos(h)
    north = fwd_s * np.cos(h) - right_s * np.sin(h)

    # hook -> aircraft reference point
    hook_fwd, hook_up = hook_offset_m(aircraft, pitch)
    psi = np.deg2rad(heading)
    east -= hook_fwd * np.sin(psi)
    north -= hook_fwd * np.cos(psi)
    alt = height + carrier.deck_altitude_m - hook_up

    lat = fix.lat_deg + np.rad2deg(north / EARTH_R_M)
    lon = fix.lon_deg + np.rad2deg(east / (EARTH_R_M * np.cos(np.deg2rad(fix.lat_deg))))

    return TelemetrySample(
        time=float(t),
        aircraft_id=aircraft_id,
        aircraft_type=aircraft_type,
        lat_deg=float(lat),
        lon_deg=float(lon),
        alt_m=float(alt),
        heading_deg=float(heading),
        pitch_deg=float(pitch),
        roll_deg=0.0,
        airspeed_mps=float(airspeed),
        aoa_deg=float(aoa),
        carrier=fix,
        pilot=pilot,
    )


def make_point(t, d, vertical=0.0, lateral=0.0, height=None, airspeed=70.0, aoa=8.1):
    """DeviationPoint for the state machine, bypassing the geometry."""
    if height is None:
        height = ideal_height(d) + vertical
    else:
        vertical = height - ideal_height(d)
    reading = classify_aoa(aoa, aircraft_by_type("FA-18C_hornet"))
    return DeviationPoint(
        time=float(t),
        distance_astern_m=float(d),
        lateral_m=float(lateral),
        vertical_m=float(vertical),
        height_m=float(height),
        airspeed_mps=float(airspeed),
        aoa_deg=float(aoa),
        aoa_bucket=reading.bucket,
        aoa_deviation=reading.deviation,
    )


def approach_samples(t0=0.0, aircraft_id="Hornet 1-1", pilot="Pilot A", touchdown_d=14.7, dt=1.0, **kwargs):
    """A short on-slope approach ending with the hook on deck at touchdown_d."""
    distances = [1500.0, 1200.0, 900.0, 600.0, 300.0, 100.0]
    samples = [
        place_sample(d, t=t0 + i * dt, aircraft_id=aircraft_id, pilot=pilot, **kwargs)
        for i, d in enumerate(distances)
    ]
    samples.append(
        place_sample(touchdown_d, height=0.0, t=t0 + len(distances) * dt,
                     aircraft_id=aircraft_id, pilot=pilot, **kwargs)
    )
    return samples


def fast_backoff():
    """Reconnect delays short enough for tests."""
    return BackoffPolicy(initial_s=0.001, multiplier=2.0, max_s=0.01, jitter=False)


def sample_row(s):
    """CSV row (dict) for a TelemetrySample."""
    row = {
        "t": s.time,
        "aircraft_id": s.aircraft_id,
        "aircraft_type": s.aircraft_type,
        "pilot": s.pilot,
        "lat_deg": s.lat_deg,
        "lon_deg": s.lon_deg,
        "alt_m": s.alt_m,
        "heading_deg": s.heading_deg,
        "pitch_deg": s.pitch_deg,
        "roll_deg": s.roll_deg,
        "airspeed_mps": s.airspeed_mps,
        "aoa_deg": s.aoa_deg,
        "carrier_id": None,
        "carrier_type": None,
        "carrier_lat_deg": None,
        "carrier_lon_deg": None,
        "carrier_heading_deg": None,
    }
    if s.carrier is not None:
        row.update(
            carrier_id=s.carrier.carrier_id,
            carrier_type=s.carrier.carrier_type,
            carrier_lat_deg=s.carrier.lat_deg,
            carrier_lon_deg=s.carrier.lon_deg,
            carrier_heading_deg=s.carrier.heading_deg,
        )
    return row


@pytest.fixture
def carrier_fix():
    return FIX


@pytest.fixture
def sample_at():
    """Factory: sample_at(d, lateral=..., vertical=..., height=..., t=...)."""
    return place_sample


@pytest.fixture
def point_at():
    return make_point


@pytest.fixture
def approach():
    return approach_samples


@pytest.fixture
def to_row():
    return sample_row

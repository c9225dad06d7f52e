from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import UnknownUnitError

KT_TO_MPS = 0.514444


@dataclass(frozen=True)
class AircraftProfile:
    ident: str
    # AOA brackets (deg): <= too_fast | <= on_speed_min | < on_speed_max | < too_slow | slow
    too_fast_deg: float
    on_speed_min_deg: float
    on_speed_max_deg: float
    too_slow_deg: float
    approach_speed_kt: Tuple[float, float]  # (min, max) on-speed approach airspeed
    hook_aft_m: float     # tailhook point behind the aircraft reference point
    hook_below_m: float   # and below it, at zero pitch

    @property
    def on_speed_center_deg(self) -> float:
        return 0.5 * (self.on_speed_min_deg + self.on_speed_max_deg)

    @property
    def approach_speed_min_mps(self) -> float:
        return self.approach_speed_kt[0] * KT_TO_MPS


@dataclass(frozen=True)
class CarrierProfile:
    ident: str
    # Landing reference point in the ship frame, relative to the ship's position fix.
    # The glide slope meets the deck here; distance astern is measured from it.
    landing_point_fwd_m: float
    landing_point_right_m: float
    deck_angle_deg: float   # angled deck, counter-clockwise from the ship's heading
    deck_altitude_m: float
    glide_slope_deg: float
    wires_m: Tuple[float, ...]  # distance astern of each wire, wire 1 first (aftmost)
    lineup_tolerance_deg: float
    glide_slope_band_deg: Tuple[float, float]  # (low, high) offset from glide slope

    def landing_heading_deg(self, ship_heading_deg: float) -> float:
        return (ship_heading_deg - self.deck_angle_deg) % 360.0


# Aircraft values from the module manuals (AOA indexer brackets, degrees) and
# hook connector positions read from the model files.
# F-14 AOA converted from units with degrees = units / 1.0989 - 3.01.
# T-45 brackets copy the Hornet's until better numbers are available.

FA18C = AircraftProfile(
    ident="FA-18C_hornet",
    too_fast_deg=6.9,
    on_speed_min_deg=7.4,
    on_speed_max_deg=8.8,
    too_slow_deg=9.3,
    approach_speed_kt=(130.0, 145.0),
    hook_aft_m=7.237,
    hook_below_m=2.241,
)

F14 = AircraftProfile(
    ident="F-14",
    too_fast_deg=9.7,
    on_speed_min_deg=10.2,
    on_speed_max_deg=11.1,
    too_slow_deg=11.6,
    approach_speed_kt=(125.0, 140.0),
    hook_aft_m=6.564,
    hook_below_m=1.979,
)

T45 = AircraftProfile(
    ident="T-45",
    too_fast_deg=6.9,
    on_speed_min_deg=7.4,
    on_speed_max_deg=8.8,
    too_slow_deg=9.3,
    approach_speed_kt=(115.0, 125.0),
    hook_aft_m=4.783,
    hook_below_m=1.779,
)


# Carrier wire positions are the pendant midpoints projected on the angled-deck
# axis (precomputed for brevity). The landing reference point sits 2 m forward
# of the last wire so a hook on the last wire still counts as astern.
#
# Nimitz pendant midpoints (right, fwd) in m:
#   wire 1 (0.41, -109.08), wire 2 (-1.53, -96.89), wire 3 (-3.55, -84.46), wire 4 (-5.58, -71.91)
# Forrestal:
#   wire 1 (-0.33, -93.48), wire 2 (-2.10, -83.85), wire 3 (-3.83, -73.28), wire 4 (-5.71, -63.07)

NIMITZ = CarrierProfile(
    ident="Nimitz",
    landing_point_fwd_m=-69.93,
    landing_point_right_m=-5.90,
    deck_angle_deg=9.1359,
    deck_altitude_m=20.1494,
    glide_slope_deg=3.5,
    wires_m=(39.6, 27.3, 14.7, 2.0),
    lineup_tolerance_deg=0.75,
    glide_slope_band_deg=(-0.6, 0.7),
)

FORRESTAL = CarrierProfile(
    ident="Forrestal",
    landing_point_fwd_m=-61.09,
    landing_point_right_m=-6.04,
    deck_angle_deg=9.42,
    deck_altitude_m=18.46,
    glide_slope_deg=3.5,
    wires_m=(32.9, 23.1, 12.4, 2.0),
    lineup_tolerance_deg=0.75,
    glide_slope_band_deg=(-0.6, 0.7),
)


AIRCRAFT: Dict[str, AircraftProfile] = {
    "FA-18C_hornet": FA18C,
    "F-14A-135-GR": F14,
    "F-14B": F14,
    "T-45": T45,
}

CARRIERS: Dict[str, CarrierProfile] = {
    "CVN_71": NIMITZ,
    "CVN_72": NIMITZ,
    "CVN_73": NIMITZ,
    "CVN_75": NIMITZ,
    "Stennis": NIMITZ,
    "Forrestal": FORRESTAL,
}


def _normalize_type(name: str) -> str:
    return name.strip().replace("-", "_").lower()


_AIRCRAFT_BY_KEY = {_normalize_type(k): v for k, v in AIRCRAFT.items()}
_CARRIERS_BY_KEY = {_normalize_type(k): v for k, v in CARRIERS.items()}


def aircraft_by_type(type_name: str) -> AircraftProfile:
    try:
        return _AIRCRAFT_BY_KEY[_normalize_type(type_name)]
    except KeyError:
        raise UnknownUnitError("aircraft", type_name) from None


def carrier_by_type(type_name: str) -> CarrierProfile:
    """Look up a carrier by type; "CVN-72" and "CVN_72" are the same key."""
    try:
        return _CARRIERS_BY_KEY[_normalize_type(type_name)]
    except KeyError:
        raise UnknownUnitError("carrier", type_name) from None

from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np

from .domain import AoaBucket, DeviationPoint, FinalizedAttempt
from .units import CarrierProfile, carrier_by_type

M_PER_NM = 1852.0
M_TO_FT = 3.28084

THEME_BG = "#1F2937"
THEME_FG = "#9CA3AF"

GUIDE_RED = "#EF4444"
GUIDE_YELLOW = "#FEF08A"
GUIDE_GREEN = "#22C55E"
GUIDE_GRAY = "#64748B"

AOA_COLORS = {
    AoaBucket.TOO_FAST: "#EF4444",
    AoaBucket.FAST: "#EFA544",
    AoaBucket.ON_SPEED: "#FEF08A",
    AoaBucket.SLOW: "#AAC522",
    AoaBucket.TOO_SLOW: "#22C55E",
    AoaBucket.INVALID: GUIDE_GRAY,
}

# Lineup guide lines, degrees either side of the landing centerline.
LINEUP_GUIDES = [(0.25, GUIDE_GRAY), (0.75, GUIDE_GREEN), (3.0, GUIDE_YELLOW), (6.0, GUIDE_RED)]

# Glide-slope guide lines, degrees relative to the nominal glide slope.
GLIDE_SLOPE_GUIDES = [
    (-0.9, GUIDE_RED),
    (-0.6, GUIDE_YELLOW),
    (-0.25, GUIDE_GREEN),
    (0.0, GUIDE_GRAY),
    (0.25, GUIDE_GREEN),
    (0.7, GUIDE_YELLOW),
    (1.5, GUIDE_RED),
]

RANGE_X_NM = (-0.02, 0.78)
SIDE_RANGE_FT = (0.0, 350.0)
TOP_RANGE_NM = (-0.15, 0.15)


def _color_runs(points: Sequence[DeviationPoint], xs: np.ndarray, ys: np.ndarray) -> List[Tuple[str, np.ndarray, np.ndarray]]:
    """
    Split a trace into runs of the same AOA color. Each run also takes the
    first point of the next run so the drawn line has no gaps.
    """
    runs = []
    start = 0
    for i in range(1, len(points) + 1):
        if i == len(points) or points[i].aoa_bucket is not points[start].aoa_bucket:
            stop = min(i + 1, len(points))
            runs.append((AOA_COLORS[points[start].aoa_bucket], xs[start:stop], ys[start:stop]))
            start = i
    return runs


def _monotonic(points: Sequence[DeviationPoint]) -> List[DeviationPoint]:
    # keep points whose distance keeps shrinking (the line folds back on itself otherwise)
    kept = []
    last = np.inf
    for p in points:
        if p.distance_astern_m < last:
            kept.append(p)
            last = p.distance_astern_m
    return kept


def _style_axes(ax):
    ax.set_facecolor(THEME_BG)
    ax.tick_params(colors=THEME_FG)
    for spine in ax.spines.values():
        spine.set_color(THEME_FG)
    ax.yaxis.label.set_color(THEME_FG)
    ax.xaxis.label.set_color(THEME_FG)


def make_attempt_figure(attempt: FinalizedAttempt, carrier: Optional[CarrierProfile] = None):
    """
    Side view (hook height vs distance) over top view (lineup vs distance).

    Distance runs from the landing reference point (left) out to ~0.78 nm;
    the trace is colored by AOA bucket, guide lines show the glide-slope and
    lineup corridor.
    """
    if carrier is None:
        carrier = carrier_by_type(attempt.carrier_type)

    points = _monotonic(attempt.trace)
    d_nm = np.array([p.distance_astern_m for p in points], dtype=float) / M_PER_NM
    height_ft = np.array([p.height_m for p in points], dtype=float) * M_TO_FT
    lateral_nm = np.array([p.lateral_m for p in points], dtype=float) / M_PER_NM

    fig, (ax_side, ax_top) = plt.subplots(
        nrows=2,
        ncols=1,
        figsize=(12, 7),
        sharex=True,
        gridspec_kw={"height_ratios": [1.3, 1.0]},
    )
    fig.patch.set_facecolor(THEME_BG)

    # --- Side view ---
    x_end = RANGE_X_NM[1]
    for offset_deg, color in GLIDE_SLOPE_GUIDES:
        slope = np.tan(np.deg2rad(carrier.glide_slope_deg + offset_deg))
        y_end = slope * x_end * M_PER_NM * M_TO_FT
        x = x_end
        if y_end > SIDE_RANGE_FT[1]:
            x = SIDE_RANGE_FT[1] / (slope * M_PER_NM * M_TO_FT)
            y_end = SIDE_RANGE_FT[1]
        ax_side.plot([0.0, x], [0.0, y_end], color=color, alpha=0.4, linewidth=1.0)

    ax_side.plot(d_nm, height_ft, color=THEME_BG, linewidth=4.0)
    for color, xs, ys in _color_runs(points, d_nm, height_ft):
        ax_side.plot(xs, ys, color=color, linewidth=2.0)
    ax_side.set_ylim(*SIDE_RANGE_FT)
    ax_side.set_ylabel("Hook height (ft)")
    _style_axes(ax_side)

    # --- Top view ---
    for deg, color in LINEUP_GUIDES:
        y = np.tan(np.deg2rad(deg)) * x_end
        ax_top.plot([0.0, x_end], [0.0, y], color=color, alpha=0.4, linewidth=1.0)
        ax_top.plot([0.0, x_end], [0.0, -y], color=color, alpha=0.4, linewidth=1.0)

    ax_top.plot(d_nm, lateral_nm, color=THEME_BG, linewidth=4.0)
    for color, xs, ys in _color_runs(points, d_nm, lateral_nm):
        ax_top.plot(xs, ys, color=color, linewidth=2.0)
    ax_top.set_ylim(*TOP_RANGE_NM)
    ax_top.set_xlim(*RANGE_X_NM)
    ax_top.set_xticks([0.25, 0.5, 0.75])
    ax_top.set_ylabel("Lineup (nm, + right)")
    ax_top.set_xlabel("Distance astern (nm)")
    _style_axes(ax_top)

    title = f"Pilot: {attempt.pilot_name}   {attempt.outcome.label}"
    if attempt.lso_comment:
        title += f"\nLSO: {attempt.lso_comment}"
    fig.suptitle(title, color=THEME_FG, x=0.02, ha="left", y=0.995)
    fig.tight_layout(rect=(0.0, 0.0, 1.0, 0.95))
    return fig


def save_attempt_figure(
    attempt: FinalizedAttempt,
    path: Union[str, Path],
    carrier: Optional[CarrierProfile] = None,
) -> Path:
    path = Path(path).with_suffix(".png")
    path.parent.mkdir(parents=True, exist_ok=True)
    fig = make_attempt_figure(attempt, carrier)
    try:
        fig.savefig(path, facecolor=fig.get_facecolor(), dpi=100)
    finally:
        plt.close(fig)
    return path

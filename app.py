import streamlit as st
import pandas as pd

from lso_debrief.domain import EngineConfig
from lso_debrief.analyze import analyze
from lso_debrief.attempt import grade_trace
from lso_debrief.render import make_attempt_figure
from lso_debrief.replay import attempts_frame, trace_frame
from lso_debrief.units import AIRCRAFT, CARRIERS, carrier_by_type

# -----------------------------
# Preset engine configs
# -----------------------------
PRESET_CONFIGS: dict[str, EngineConfig] = {
    "Default": EngineConfig(),
    "Strict capture (training)": EngineConfig(
        capture_vertical_m=30.0,
        capture_lateral_m=150.0,
        capture_heading_deg=30.0,
        exit_after_misses=2,
        wire_tolerance_m=2.0,
    ),
    "Loose (noisy multiplayer)": EngineConfig(
        capture_vertical_m=90.0,
        capture_lateral_m=450.0,
        groove_vertical_m=150.0,
        groove_lateral_m=600.0,
        exit_after_misses=5,
        grace_period_s=20.0,
    ),
}

# editable fields: (label, step)
EDITABLE = {
    "entry_distance_m": ("Groove entry distance (m)", 50.0),
    "min_entry_distance_m": ("Min entry distance (m)", 10.0),
    "capture_vertical_m": ("Capture: |vertical| (m)", 5.0),
    "capture_lateral_m": ("Capture: |lateral| (m)", 10.0),
    "capture_heading_deg": ("Capture: heading error (deg)", 1.0),
    "groove_vertical_m": ("Groove: |vertical| (m)", 5.0),
    "groove_lateral_m": ("Groove: |lateral| (m)", 10.0),
    "exit_after_misses": ("Misses before exit", 1),
    "climb_samples": ("Climbing samples = climb-out", 1),
    "waveoff_climb_rate_mps": ("Climb rate (m/s)", 0.1),
    "touchdown_height_m": ("Touchdown hook height (m)", 0.05),
    "wire_tolerance_m": ("Wire tolerance (m)", 0.5),
    "bolter_window_s": ("Bolter window (s)", 0.5),
    "grace_period_s": ("Grace period (s)", 1.0),
}


# -----------------------------
# Streamlit page setup
# -----------------------------
st.set_page_config(page_title="LSO Debrief", layout="wide")
st.title("⚓ LSO Debrief: Carrier Recovery Analyzer")
st.write("Upload a telemetry CSV and get every carrier approach in it, graded against the glide slope, lineup and AOA.")


# -----------------------------
# Session-state helper
# -----------------------------
def _load_config_into_state(c: EngineConfig) -> None:
    for name in EDITABLE:
        value = getattr(c, name)
        st.session_state[f"c_{name}"] = int(value) if isinstance(value, int) else float(value)


# -----------------------------
# Sidebar: config selection/edit
# -----------------------------
with st.sidebar:
    st.header("Settings")

    st.caption(f"Known aircraft: {', '.join(AIRCRAFT)}")
    st.caption(f"Known carriers: {', '.join(CARRIERS)}")

    st.divider()
    st.header("Engine thresholds")

    preset_name = st.selectbox("Preset", options=list(PRESET_CONFIGS.keys()), index=0)
    preset = PRESET_CONFIGS[preset_name]

    # Initialize state on first run or when preset changes
    if st.session_state.get("selected_preset_name") != preset_name:
        st.session_state["selected_preset_name"] = preset_name
        _load_config_into_state(preset)

    edit = st.checkbox("Edit thresholds", value=False)
    if st.button("Reset to preset"):
        _load_config_into_state(preset)

    if edit:
        st.subheader("Edit values")
        for name, (label, step) in EDITABLE.items():
            st.number_input(label, step=step, key=f"c_{name}")
    else:
        st.subheader("Preset values (read-only)")
        st.write({name: getattr(preset, name) for name in EDITABLE})


# Build the config AFTER sidebar widgets exist
if edit:
    config = EngineConfig.from_mapping({name: st.session_state[f"c_{name}"] for name in EDITABLE})
else:
    config = preset


# -----------------------------
# Upload + preview
# -----------------------------
uploaded = st.file_uploader("Upload telemetry CSV", type=["csv"])

if uploaded is None:
    st.info("Upload a CSV to begin.")
    st.stop()

uploaded.seek(0)
df_preview = pd.read_csv(uploaded, nrows=20)
st.subheader("Raw preview (as uploaded)")
st.dataframe(df_preview, use_container_width=True)
uploaded.seek(0)


# -----------------------------
# Run analysis
# -----------------------------
attempts, err = analyze(uploaded, config=config)

if err or attempts is None:
    st.error(err or "Analysis failed (no result returned).")
    st.stop()

if len(attempts) == 0:
    st.warning("No recovery attempts found in this file.")
    st.stop()


# -----------------------------
# Display results
# -----------------------------
st.subheader("Recovery attempts")
st.dataframe(attempts_frame(attempts), use_container_width=True)

labels = [f"{i + 1}. {a.pilot_name} on {a.carrier_id}: {a.outcome.label}" for i, a in enumerate(attempts)]
choice = st.selectbox("Attempt", options=range(len(attempts)), format_func=lambda i: labels[i])
attempt = attempts[choice]
carrier = carrier_by_type(attempt.carrier_type)

col1, col2, col3 = st.columns([1, 1, 1])
col1.metric("Outcome", attempt.outcome.label)
col2.metric("Points", len(attempt.trace))
col3.metric("LSO comment", attempt.lso_comment or "-")

st.subheader("Grading")
st.json(grade_trace(attempt.trace, carrier))

st.subheader("Approach plot")
fig = make_attempt_figure(attempt, carrier)
st.pyplot(fig, clear_figure=True)

with st.expander("Deviation trace"):
    st.dataframe(trace_frame(attempt), use_container_width=True)

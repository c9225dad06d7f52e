"""Tests for recording loading (replay.py) and the analyze() pipeline"""

import io

import numpy as np
import pandas as pd
import pytest

from lso_debrief.acmi import write_acmi
from lso_debrief.analyze import analyze
from lso_debrief.domain import LsoComment, Outcome, TelemetrySample
from lso_debrief.engine import Engine
from lso_debrief.errors import TelemetryFormatError
from lso_debrief.replay import (
    TRACE_COLUMNS,
    attempts_frame,
    load_events,
    load_samples,
    read_telemetry,
    trace_frame,
)
from lso_debrief.units import KT_TO_MPS


def csv_of(rows):
    buf = io.StringIO()
    pd.DataFrame(rows).to_csv(buf, index=False)
    buf.seek(0)
    return buf


@pytest.fixture
def approach_csv(approach, to_row):
    return csv_of([to_row(s) for s in approach()])


class TestReadTelemetry:
    """Tests for read_telemetry / load_samples."""

    def test_round_trip_of_samples(self, approach, to_row):
        samples = approach()
        loaded = load_samples(csv_of([to_row(s) for s in samples]))
        assert len(loaded) == len(samples)
        for got, want in zip(loaded, samples):
            assert got.aircraft_id == want.aircraft_id
            assert got.pilot == want.pilot
            assert got.carrier == want.carrier
            assert got.time == pytest.approx(want.time)
            assert got.lat_deg == pytest.approx(want.lat_deg, abs=1e-12)
            assert got.lon_deg == pytest.approx(want.lon_deg, abs=1e-12)
            assert got.alt_m == pytest.approx(want.alt_m)

    def test_alternate_units(self):
        csv = io.StringIO(
            "time,unit,type,lat,lon,alt_msl_ft,heading,pitch,roll,ias_kt,aoa\n"
            "0.0,Hornet 1-1,FA-18C_hornet,26.5,56.25,1000,0,0,0,140,8.1\n"
        )
        df = read_telemetry(csv)
        assert df.loc[0, "alt_m"] == pytest.approx(304.8)
        assert df.loc[0, "airspeed_mps"] == pytest.approx(140 * KT_TO_MPS)
        assert df.loc[0, "aircraft_id"] == "Hornet 1-1"

    def test_missing_column_raises(self):
        csv = io.StringIO("t,aircraft_id,lat_deg,lon_deg\n0,a,1,2\n")
        with pytest.raises(TelemetryFormatError) as exc:
            read_telemetry(csv)
        assert "aircraft_type" in str(exc.value)
        assert "alt_m" in str(exc.value)

    def test_empty_file_raises(self):
        with pytest.raises(TelemetryFormatError):
            read_telemetry(io.StringIO(""))

    def test_no_carrier_columns_means_no_reference(self, sample_at, to_row, caplog):
        row = to_row(sample_at(1000.0))
        for key in [k for k in row if k.startswith("carrier")]:
            del row[key]
        with caplog.at_level("WARNING", logger="lso_debrief.replay"):
            samples = load_samples(csv_of([row]))
        assert samples[0].carrier is None
        assert "no carrier columns" in caplog.text

    def test_empty_carrier_cells_mean_no_reference(self, sample_at, to_row):
        s = sample_at(1000.0)
        rows = [to_row(s), to_row(s)]
        rows[1]["t"] = 1.0
        for key in ("carrier_lat_deg", "carrier_lon_deg"):
            rows[1][key] = None
        samples = load_samples(csv_of(rows))
        assert samples[0].carrier is not None
        assert samples[1].carrier is None

    def test_carrier_type_defaults_to_carrier_id(self, sample_at, to_row):
        row = to_row(sample_at(1000.0))
        del row["carrier_type"]
        samples = load_samples(csv_of([row]))
        assert samples[0].carrier.carrier_type == "CVN-72"

    def test_sorted_and_deduplicated(self, sample_at, to_row):
        rows = [
            to_row(sample_at(900.0, t=2.0)),
            to_row(sample_at(1000.0, t=1.0)),
            to_row(sample_at(1000.0, t=1.0, aircraft_id="Hornet 1-2")),
            to_row(sample_at(950.0, t=1.0)),  # duplicate (t, aircraft_id): first wins
        ]
        df = read_telemetry(csv_of(rows))
        assert df["t"].tolist() == [1.0, 1.0, 2.0]
        assert df["aircraft_id"].tolist() == ["Hornet 1-1", "Hornet 1-2", "Hornet 1-1"]

    def test_rows_without_position_dropped(self, sample_at, to_row):
        rows = [to_row(sample_at(1000.0, t=0.0)), to_row(sample_at(900.0, t=1.0))]
        rows[0]["lat_deg"] = None
        df = read_telemetry(csv_of(rows))
        assert df["t"].tolist() == [1.0]

    def test_missing_pilot_is_none(self, sample_at, to_row):
        row = to_row(sample_at(1000.0, pilot=None))
        assert load_samples(csv_of([row]))[0].pilot is None


class TestFrames:
    """Trace and attempt tables."""

    def test_trace_frame(self, approach):
        engine = Engine()
        attempt = engine.ingest_many(approach())[0]
        df = trace_frame(attempt)
        assert list(df.columns) == TRACE_COLUMNS
        assert len(df) == 7
        assert df["aoa_bucket"].iloc[0] == "OnSpeed"
        assert np.all(np.diff(df["distance_astern_m"].to_numpy()) < 0)

    def test_trace_frame_empty(self):
        df = trace_frame([])
        assert list(df.columns) == TRACE_COLUMNS
        assert df.empty

    def test_attempts_frame(self, approach_csv):
        attempts, err = analyze(approach_csv)
        assert err is None
        df = attempts_frame(attempts)
        assert df.loc[0, "outcome"] == "CableCatch(3)"
        assert df.loc[0, "pilot"] == "Pilot A"
        assert df.loc[0, "points"] == 7


class TestAnalyze:
    """Tests for the analyze() orchestration."""

    def test_end_to_end(self, approach_csv):
        attempts, err = analyze(approach_csv)
        assert err is None
        assert [a.outcome for a in attempts] == [Outcome.cable(3)]

    def test_unfinished_approach_closed_at_end(self, approach, to_row):
        rows = [to_row(s) for s in approach()[:3]]
        attempts, err = analyze(csv_of(rows))
        assert err is None
        assert [str(a.outcome) for a in attempts] == ["Incomplete"]

    def test_empty_file(self, to_row, sample_at):
        header_only = io.StringIO(",".join(to_row(sample_at(1000.0)).keys()) + "\n")
        attempts, err = analyze(header_only)
        assert attempts is None
        assert err == "Telemetry file contains no samples."

    def test_bad_file_reports_error(self):
        attempts, err = analyze(io.StringIO("a,b\n1,2\n"))
        assert attempts is None
        assert "Missing required columns" in err

    def test_acmi_recording(self, tmp_path, approach):
        path = write_acmi(tmp_path / "rec", approach(), comment="(OK) 3-wire")
        attempts, err = analyze(str(path))
        assert err is None
        assert [a.outcome for a in attempts] == [Outcome.cable(3)]


class TestLoadEvents:
    """Tests for load_events."""

    def test_csv_path_gives_samples(self, tmp_path, approach, to_row):
        path = tmp_path / "t.csv"
        pd.DataFrame([to_row(s) for s in approach()]).to_csv(path, index=False)
        events = load_events(path)
        assert len(events) == 7
        assert all(isinstance(e, TelemetrySample) for e in events)

    def test_acmi_path_keeps_comments(self, tmp_path, approach):
        path = write_acmi(tmp_path / "rec", approach(), comment="(OK) 3-wire")
        events = load_events(path)
        assert sum(isinstance(e, TelemetrySample) for e in events) == 7
        assert events[-1] == LsoComment("Hornet 1-1", "(OK) 3-wire")

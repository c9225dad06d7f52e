"""Tests for carrier-relative geometry in transform.py"""

import numpy as np
import pytest

from lso_debrief.domain import EngineConfig
from lso_debrief.errors import OutOfRangeError
from lso_debrief.transform import (
    CarrierFrame,
    hook_offset_m,
    in_capture_envelope,
    latlon_to_local_xy_m,
    to_carrier_frame,
    wrap_deg,
)
from lso_debrief.units import FA18C, NIMITZ

from conftest import FIX, ideal_height


@pytest.fixture
def config():
    return EngineConfig()


def frame_of(sample, config):
    return to_carrier_frame(sample, FIX, NIMITZ, FA18C, config)


class TestLocalProjection:
    """Tests for latlon_to_local_xy_m."""

    def test_origin_is_zero(self):
        x, y = latlon_to_local_xy_m(26.5, 56.25, 26.5, 56.25)
        assert x == pytest.approx(0.0)
        assert y == pytest.approx(0.0)

    def test_one_minute_north_is_about_one_nm(self):
        x, y = latlon_to_local_xy_m(26.5 + 1 / 60, 56.25, 26.5, 56.25)
        assert x == pytest.approx(0.0)
        assert y == pytest.approx(1853.2, abs=1.0)

    def test_vectorized(self):
        x, y = latlon_to_local_xy_m(np.array([0.0, 0.0]), np.array([0.0, 1.0]), 0.0, 0.0)
        np.testing.assert_allclose(x, [0.0, 6371000.0 * np.deg2rad(1.0)])
        np.testing.assert_allclose(y, [0.0, 0.0])


class TestHookOffset:
    """Tests for hook_offset_m."""

    def test_level_attitude(self):
        fwd, up = hook_offset_m(FA18C, 0.0)
        assert fwd == pytest.approx(-FA18C.hook_aft_m)
        assert up == pytest.approx(-FA18C.hook_below_m)

    def test_nose_up_lowers_the_hook(self):
        _, up_level = hook_offset_m(FA18C, 0.0)
        _, up_nose_up = hook_offset_m(FA18C, 8.0)
        assert up_nose_up < up_level


class TestWrap:
    def test_wrap(self):
        assert wrap_deg(190.0) == pytest.approx(-170.0)
        assert wrap_deg(-190.0) == pytest.approx(170.0)
        assert wrap_deg(10.0) == pytest.approx(10.0)


class TestToCarrierFrame:
    """Tests for to_carrier_frame."""

    def test_on_centerline_on_slope(self, sample_at, config):
        f = frame_of(sample_at(800.0), config)
        assert f.distance_astern_m == pytest.approx(800.0, abs=1e-6)
        assert f.lateral_m == pytest.approx(0.0, abs=1e-6)
        assert f.vertical_m == pytest.approx(0.0, abs=1e-6)
        assert f.height_m == pytest.approx(ideal_height(800.0), abs=1e-6)
        assert f.heading_error_deg == pytest.approx(0.0, abs=1e-9)

    def test_offsets_with_pitch_and_heading(self, sample_at, config):
        """Offsets survive the hook offset at any pitch/heading."""
        s = sample_at(1200.0, lateral=-35.0, vertical=12.0, pitch=6.5, heading=335.0)
        f = frame_of(s, config)
        assert f.distance_astern_m == pytest.approx(1200.0, abs=1e-6)
        assert f.lateral_m == pytest.approx(-35.0, abs=1e-6)
        assert f.vertical_m == pytest.approx(12.0, abs=1e-6)
        expected_err = wrap_deg(335.0 - NIMITZ.landing_heading_deg(FIX.heading_deg))
        assert f.heading_error_deg == pytest.approx(expected_err)

    def test_ideal_height_follows_glide_slope(self, sample_at, config):
        f = frame_of(sample_at(1000.0, vertical=0.0), config)
        assert f.height_m == pytest.approx(1000.0 * np.tan(np.deg2rad(3.5)), abs=1e-6)

    def test_just_astern_of_landing_point(self, sample_at, config):
        f = frame_of(sample_at(0.5, height=0.0), config)
        assert f.distance_astern_m == pytest.approx(0.5, abs=1e-6)
        assert f.height_m == pytest.approx(0.0, abs=1e-6)

    def test_ahead_of_landing_point_raises(self, sample_at, config):
        with pytest.raises(OutOfRangeError) as exc:
            frame_of(sample_at(-25.0, height=0.0), config)
        assert exc.value.ahead
        assert exc.value.distance_astern_m == pytest.approx(-25.0, abs=1e-6)
        assert exc.value.height_m == pytest.approx(0.0, abs=1e-6)

    def test_out_of_range_carries_hook_height(self, sample_at, config):
        with pytest.raises(OutOfRangeError) as exc:
            frame_of(sample_at(-10.0, height=15.0), config)
        assert exc.value.height_m == pytest.approx(15.0, abs=1e-6)

    def test_beyond_max_range_raises(self, sample_at, config):
        with pytest.raises(OutOfRangeError) as exc:
            frame_of(sample_at(config.max_range_m + 100.0), config)
        assert not exc.value.ahead

    @pytest.mark.parametrize("d", [-0.5, -5.0, -300.0])
    def test_negative_distance_never_valid(self, sample_at, config, d):
        with pytest.raises(OutOfRangeError):
            frame_of(sample_at(d, lateral=20.0), config)


class TestCaptureEnvelope:
    """Tests for in_capture_envelope."""

    @pytest.fixture
    def config(self):
        return EngineConfig()

    def _frame(self, d=1000.0, lateral=0.0, vertical=0.0, heading_error=0.0):
        return CarrierFrame(d, lateral, ideal_height(d) + vertical, vertical, heading_error)

    def test_inside(self, config):
        assert in_capture_envelope(self._frame(), config)

    def test_too_far(self, config):
        assert not in_capture_envelope(self._frame(d=config.entry_distance_m + 1.0), config)

    def test_too_close(self, config):
        assert not in_capture_envelope(self._frame(d=config.min_entry_distance_m - 1.0), config)

    def test_too_high(self, config):
        assert not in_capture_envelope(self._frame(vertical=config.capture_vertical_m + 1.0), config)

    def test_too_wide(self, config):
        assert not in_capture_envelope(self._frame(lateral=-(config.capture_lateral_m + 1.0)), config)

    def test_wrong_heading(self, config):
        """A flyby on the reciprocal heading is not an approach."""
        assert not in_capture_envelope(self._frame(heading_error=180.0), config)

"""Tests for AOA bucketing in aoa.py"""

import numpy as np
import pytest

from lso_debrief.aoa import aoa_bucket, aoa_deviation, classify_aoa
from lso_debrief.domain import AoaBucket
from lso_debrief.units import F14, FA18C


class TestAoaBucket:
    """Bracket boundaries for the Hornet: 6.9 / 7.4 / 8.8 / 9.3 deg."""

    @pytest.mark.parametrize(
        "aoa, expected",
        [
            (5.0, AoaBucket.TOO_FAST),
            (6.9, AoaBucket.TOO_FAST),
            (7.0, AoaBucket.FAST),
            (7.4, AoaBucket.FAST),
            (7.5, AoaBucket.ON_SPEED),
            (8.1, AoaBucket.ON_SPEED),
            (8.8, AoaBucket.SLOW),
            (9.2, AoaBucket.SLOW),
            (9.3, AoaBucket.TOO_SLOW),
            (12.0, AoaBucket.TOO_SLOW),
        ],
    )
    def test_hornet_boundaries(self, aoa, expected):
        assert aoa_bucket(aoa, FA18C) is expected

    def test_tomcat_uses_its_own_brackets(self):
        assert aoa_bucket(8.1, FA18C) is AoaBucket.ON_SPEED
        assert aoa_bucket(8.1, F14) is AoaBucket.TOO_FAST
        assert aoa_bucket(10.6, F14) is AoaBucket.ON_SPEED


class TestAoaDeviation:
    """Tests for the continuous deviation."""

    def test_zero_at_on_speed_center(self):
        assert aoa_deviation(FA18C.on_speed_center_deg, FA18C) == pytest.approx(0.0)

    def test_on_speed_edges(self):
        assert aoa_deviation(FA18C.on_speed_min_deg, FA18C) == pytest.approx(-1 / 3)
        assert aoa_deviation(FA18C.on_speed_max_deg, FA18C) == pytest.approx(1 / 3)

    def test_thresholds(self):
        assert aoa_deviation(FA18C.too_fast_deg, FA18C) == pytest.approx(-2 / 3)
        assert aoa_deviation(FA18C.too_slow_deg, FA18C) == pytest.approx(2 / 3)

    def test_clamped(self):
        assert aoa_deviation(0.5, FA18C) == pytest.approx(-1.0)
        assert aoa_deviation(25.0, FA18C) == pytest.approx(1.0)

    def test_monotonic(self):
        aoa = np.linspace(4.0, 12.0, 81)
        dev = np.array([aoa_deviation(a, FA18C) for a in aoa])
        assert np.all(np.diff(dev) >= 0.0)
        assert dev.min() >= -1.0 and dev.max() <= 1.0


class TestClassifyAoa:
    """Tests for classify_aoa."""

    def test_valid_reading(self):
        r = classify_aoa(8.1, FA18C)
        assert r.bucket is AoaBucket.ON_SPEED
        assert r.gradable
        assert r.deviation == pytest.approx(0.0)

    @pytest.mark.parametrize("aoa", [float("nan"), float("inf"), -0.1, 30.5])
    def test_invalid_values(self, aoa):
        r = classify_aoa(aoa, FA18C)
        assert r.bucket is AoaBucket.INVALID
        assert not r.gradable
        assert r.deviation == 0.0

    def test_sanity_limit_configurable(self):
        assert classify_aoa(20.0, FA18C, sanity_max_deg=15.0).bucket is AoaBucket.INVALID
        assert classify_aoa(20.0, FA18C, sanity_max_deg=30.0).bucket is AoaBucket.TOO_SLOW

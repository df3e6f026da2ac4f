"""Tests for the RGB near-duplicate metric."""

import itertools

import pytest

from palette_merge.palette_ops import Color
from palette_merge.similarity import (
    DEFAULT_TOLERANCE,
    channel_spread,
    effective_tolerance,
    is_similar,
)


def _c(r, g, b, color_id="x"):
    return Color(id=color_id, r=r, g=g, b=b)


class TestEffectiveTolerance:

    def test_scales_by_three(self):
        assert effective_tolerance(DEFAULT_TOLERANCE) == 24
        assert effective_tolerance(1) == 3
        assert effective_tolerance(255) == 765

    @pytest.mark.parametrize("value", [0, -4, 256])
    def test_out_of_range_rejected(self, value):
        with pytest.raises(ValueError):
            effective_tolerance(value)


class TestIsSimilar:

    def test_concrete_pair_is_similar(self):
        sum_diff, max_dev = channel_spread(_c(100, 100, 100), _c(104, 102, 103))
        assert sum_diff == 9
        assert max_dev == pytest.approx(1.0)
        assert is_similar(_c(100, 100, 100), _c(104, 102, 103), 24)

    def test_far_pair_rejected_by_sum(self):
        assert not is_similar(_c(100, 100, 100), _c(200, 10, 10), 24)
        assert not is_similar(_c(104, 102, 103), _c(200, 10, 10), 24)

    def test_single_channel_shift_rejected(self):
        # sum 9 fits the bound but it all sits in the red channel
        assert not is_similar(_c(100, 100, 100), _c(109, 100, 100), 24)

    def test_identical_colors_similar(self):
        assert is_similar(_c(7, 8, 9), _c(7, 8, 9), 3)

    def test_boundary_is_inclusive(self):
        # diffs (11, 20, 29): sum 60, mean 20, max deviation 9 == 60 * 0.15
        base = _c(100, 100, 100)
        edge = _c(111, 120, 129)
        assert channel_spread(base, edge) == (60, 9)
        assert is_similar(base, edge, 60)

    def test_sum_one_over_bound_never_similar(self):
        base = _c(100, 100, 100)
        # diffs (20, 20, 21): sum 61, deviation tiny
        assert not is_similar(base, _c(120, 120, 121), 60)

    def test_symmetric(self):
        samples = [
            _c(0, 0, 0),
            _c(3, 2, 1),
            _c(100, 100, 100),
            _c(104, 102, 103),
            _c(96, 99, 101),
            _c(200, 10, 10),
            _c(255, 255, 250),
        ]
        for a, b in itertools.product(samples, repeat=2):
            for tolerance in (3, 24, 60, 765):
                assert is_similar(a, b, tolerance) == is_similar(b, a, tolerance)

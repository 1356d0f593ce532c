"""Tests for tissuealign.align.downsample."""

import logging

import numpy as np
import pytest

from tissuealign.align.downsample import scaled_size, select_downsample
from tissuealign.exceptions import ValidationError


class TestSelectDownsample:
    def test_calibrated(self):
        assert select_downsample(8000, 0.25, 20) == pytest.approx(80)

    def test_calibrated_finer_than_native(self):
        """Targets finer than the native pixel size are not rejected."""
        assert select_downsample(8000, 0.5, 0.25) == pytest.approx(0.5)

    @pytest.mark.parametrize("pixel_size", [None, np.nan, np.inf, 0, -1.0])
    def test_fallback_without_pixel_size(self, pixel_size, caplog):
        with caplog.at_level(logging.WARNING):
            downsample = select_downsample(8000, pixel_size, 20, "slide-1")

        assert downsample == 4
        assert "slide-1" in caplog.text
        assert "4" in caplog.text

    def test_fallback_small_image(self):
        assert select_downsample(1500, None, 20) == 1

    def test_fallback_integer_steps(self):
        # 2001 / 1 > 2000, 2001 / 2 <= 2000
        assert select_downsample(2001, None, 20) == 2

    def test_invalid_target(self):
        with pytest.raises(ValidationError):
            select_downsample(8000, 0.25, 0)


def test_scaled_size():
    assert scaled_size(8000, 6000, 4) == (2000, 1500)
    assert scaled_size(3, 3, 10) == (1, 1)

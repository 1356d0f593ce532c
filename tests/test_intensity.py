"""Tests for tissuealign.align.intensity."""

import cv2
import numpy as np
import pytest

from tissuealign.affine import AffineTransform2D
from tissuealign.align.intensity import maximize_correlation, register_intensity
from tissuealign.exceptions import RegistrationError
from tissuealign.models import RegistrationKind


class TestMaximizeCorrelation:
    def test_identical_images_stay_identity(self, base_image):
        matrix, score = maximize_correlation(
            base_image, base_image, np.eye(2, 3), RegistrationKind.AFFINE
        )

        np.testing.assert_allclose(matrix, np.eye(2, 3), atol=1e-3)
        assert score == pytest.approx(1.0, abs=1e-3)

    @pytest.mark.parametrize("kind", [RegistrationKind.AFFINE, RegistrationKind.RIGID])
    def test_recovers_shift(self, base_image, shifted_image, kind):
        matrix, score = maximize_correlation(base_image, shifted_image, np.eye(2, 3), kind)

        np.testing.assert_allclose(matrix[:, 2], [10, -5], atol=0.5)
        np.testing.assert_allclose(matrix[:, :2], np.eye(2), atol=0.02)
        assert score > 0.95

    def test_solver_failure_wrapped(self, base_image, monkeypatch):
        def fail(*args, **kwargs):
            raise cv2.error("images may be uncorrelated or non-overlapped")

        monkeypatch.setattr(cv2, "findTransformECC", fail)
        with pytest.raises(RegistrationError):
            maximize_correlation(base_image, base_image, np.eye(2, 3), RegistrationKind.AFFINE)


class TestRegisterIntensity:
    def test_seed_scaled_to_downsampled_space(self, base_image, shifted_image):
        """The full-resolution seed (16, -8) becomes (8, -4) at downsample 2."""
        seed = AffineTransform2D(1, 0, 16, 0, 1, -8)
        half_base = base_image[::2, ::2]
        half_shifted = shifted_image[::2, ::2]
        matrix, _ = register_intensity(
            half_base, half_shifted, seed, RegistrationKind.AFFINE, downsample=2
        )

        # result stays in downsampled pixels: (10, -5) / 2
        np.testing.assert_allclose(matrix[:, 2], [5, -2.5], atol=0.5)

    def test_does_not_reject_poor_results(self, base_image, monkeypatch, caplog):
        """Whatever the solver reaches is returned with its score."""
        reached = np.array([[1, 0, 3], [0, 1, -2]], dtype="float32")

        def weak_fit(template, image, warp, motion, criteria, **kwargs):
            return 0.05, reached.copy()

        monkeypatch.setattr(cv2, "findTransformECC", weak_fit)
        with caplog.at_level("INFO"):
            matrix, score = register_intensity(
                base_image, base_image, np.eye(2, 3), RegistrationKind.RIGID, 1.0
            )

        np.testing.assert_array_equal(matrix, reached)
        assert score == pytest.approx(0.05)
        assert "ECC correlation coefficient: 0.0500" in caplog.text

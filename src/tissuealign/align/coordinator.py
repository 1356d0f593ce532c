"""Moves affine matrices between full-resolution and downsampled pixel space."""

import logging

import numpy as np

from ..affine import AffineTransform2D
from ..exceptions import ValidationError

log = logging.getLogger(__name__)


def _as_matrix(matrix) -> np.ndarray:
    if isinstance(matrix, AffineTransform2D):
        return matrix.to_matrix()
    mx = np.array(matrix, dtype="float64")
    if mx.shape == (3, 3):
        mx = mx[:2]
    if mx.shape != (2, 3):
        raise ValidationError(f"Expected a 2x3 or 3x3 matrix, got {mx.shape}")
    return mx


def _check_downsample(downsample):
    if downsample == 0 or not np.isfinite(downsample):
        raise ValidationError(f"Invalid downsample {downsample}")


def _downsamples(downsample, selected_downsample):
    if selected_downsample is None:
        selected_downsample = downsample
    _check_downsample(downsample)
    _check_downsample(selected_downsample)
    return downsample, selected_downsample


def to_downsampled(matrix, downsample: float, selected_downsample: float = None) -> np.ndarray:
    """
    Full-resolution matrix to the pixel space of images read at `downsample`.

    When the selected image was read at its own `selected_downsample`, the
    linear block takes the ratio of the two factors. With a single factor
    only the translation changes; the linear block is scale-free.
    """
    downsample, selected_downsample = _downsamples(downsample, selected_downsample)
    mx = _as_matrix(matrix)
    if selected_downsample != downsample:
        mx[:, :2] *= downsample / selected_downsample
    mx[:, 2] /= selected_downsample
    return mx


def to_full_resolution(matrix, downsample: float, selected_downsample: float = None) -> np.ndarray:
    downsample, selected_downsample = _downsamples(downsample, selected_downsample)
    mx = _as_matrix(matrix)
    if selected_downsample != downsample:
        mx[:, :2] *= selected_downsample / downsample
    mx[:, 2] *= selected_downsample
    return mx


def write_transform(
    sink, matrix, downsample: float = 1.0, selected_downsample: float = None
) -> AffineTransform2D:
    """Converts `matrix` to full resolution and sets it on `sink` in one call."""
    transform = AffineTransform2D.from_matrix(
        to_full_resolution(matrix, downsample, selected_downsample)
    )
    sink.set(transform)
    return transform

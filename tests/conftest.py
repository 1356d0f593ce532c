"""Pytest fixtures for tissuealign tests."""

import numpy as np
import pytest

from tissuealign.affine import SharedAffine

# (x, y, sigma, amplitude) of the blobs making up the synthetic tissue
BLOBS = [
    (70, 80, 22, 110),
    (160, 70, 28, 90),
    (110, 150, 18, 120),
    (185, 175, 25, 80),
    (60, 190, 15, 100),
    (125, 100, 10, 60),
]


def blob_image(shape=(256, 256), shift=(0.0, 0.0)) -> np.ndarray:
    """Smooth uint8 test image; `shift` moves its content by (dx, dy)."""
    yy, xx = np.mgrid[: shape[0], : shape[1]].astype("float64")
    img = np.full(shape, 20.0)
    dx, dy = shift
    for cx, cy, sigma, amplitude in BLOBS:
        img += amplitude * np.exp(
            -((xx - dx - cx) ** 2 + (yy - dy - cy) ** 2) / (2 * sigma**2)
        )
    return np.clip(np.round(img), 0, 255).astype("uint8")


@pytest.fixture
def base_image() -> np.ndarray:
    return blob_image()


@pytest.fixture
def shifted_image() -> np.ndarray:
    """Base image content moved by (10, -5) pixels."""
    return blob_image(shift=(10, -5))


@pytest.fixture
def shared_transform() -> SharedAffine:
    return SharedAffine()

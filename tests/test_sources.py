"""Tests for tissuealign.sources."""

import numpy as np
import pytest

from tissuealign.exceptions import ResourceError, ValidationError
from tissuealign.sources import ArrayImageSource, ImageSource, resize


def test_protocol():
    assert isinstance(ArrayImageSource(np.zeros((4, 4))), ImageSource)


def test_rejects_bad_shape():
    with pytest.raises(ValidationError):
        ArrayImageSource(np.zeros(4))


@pytest.mark.parametrize("pixel_size, expected", [(0.5, 0.5), (None, None), (0, None), (np.nan, None)])
def test_physical_pixel_size(pixel_size, expected):
    assert ArrayImageSource(np.zeros((4, 4)), pixel_size=pixel_size).physical_pixel_size() == expected


def test_read_region_downsampled(base_image):
    source = ArrayImageSource(base_image)
    raster = source.read_region(4, 0, 0, 256, 256)

    assert raster.pixels.shape == (64, 64)
    assert not raster.is_indexed


def test_read_region_full_resolution_crop(base_image):
    raster = ArrayImageSource(base_image).read_region(1, 10, 20, 30, 40)
    np.testing.assert_array_equal(raster.pixels, base_image[20:60, 10:40])


def test_read_region_keeps_palette():
    palette = np.zeros((256, 3), "uint8")
    labels = np.repeat(np.arange(8, dtype="uint8"), 8)[np.newaxis].repeat(64, axis=0)
    raster = ArrayImageSource(labels, palette=palette).read_region(2, 0, 0, 64, 64)

    assert raster.is_indexed
    # nearest neighbour never invents labels
    assert set(np.unique(raster.pixels)) <= set(range(8))


def test_read_region_outside():
    with pytest.raises(ResourceError):
        ArrayImageSource(np.zeros((10, 10))).read_region(1, 20, 20, 5, 5)


def test_resize_many_channels():
    img = np.ones((20, 30, 6), "uint8")
    out = resize(img, (15, 10), 0)
    assert out.shape == (10, 15, 6)


def test_resize_single_channel_kept():
    out = resize(np.ones((20, 30, 1), "uint8"), (15, 10), 0)
    assert out.shape == (10, 15, 1)

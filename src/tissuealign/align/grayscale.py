"""Turns any raster into the single-channel 8-bit image ECC works on."""

import cv2
import numpy as np
import skimage.exposure
import skimage.util

from ..models import Raster


def ensure_grayscale(raster) -> np.ndarray:
    """
    Returns a 2D uint8 image with the same height and width as `raster`.

    Gray 8-bit data is returned as is. Indexed data is used directly as
    intensities (the palette is ignored) so label images are registered on
    their label values. Everything else is converted to 8 bits and
    composited to luminance.
    """
    if not isinstance(raster, Raster):
        raster = Raster(np.asarray(raster))
    img = raster.pixels

    if img.ndim == 2 and img.dtype == np.uint8:
        # covers indexed data too: the index buffer is the gray image
        return img

    img = _to_ubyte(img)
    if img.ndim == 2:
        return img

    n_channels = img.shape[2]
    if n_channels == 1:
        return np.ascontiguousarray(img[..., 0])
    if n_channels == 2:
        gray, alpha = img[..., 0], img[..., 1]
        return _over_black(gray, alpha)
    if n_channels == 3:
        return cv2.cvtColor(np.ascontiguousarray(img), cv2.COLOR_RGB2GRAY)
    if n_channels == 4:
        rgb, alpha = img[..., :3], img[..., 3]
        gray = cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2GRAY)
        return _over_black(gray, alpha)
    return np.round(img.mean(axis=2)).astype("uint8")


def _to_ubyte(img: np.ndarray) -> np.ndarray:
    if img.dtype == np.uint8:
        return img
    if img.dtype == bool or np.issubdtype(img.dtype, np.integer):
        return skimage.util.img_as_ubyte(img)
    if np.iscomplexobj(img):
        img = np.abs(img)
    img = img.astype("float64")
    finite = np.isfinite(img)
    if not finite.any():
        return np.zeros(img.shape, dtype="uint8")
    img = np.where(finite, img, np.min(img[finite]))
    if img.min() == img.max():
        return np.full(img.shape, np.clip(np.round(img.min()), 0, 255), dtype="uint8")
    return (
        skimage.exposure.rescale_intensity(img, out_range="uint8")
        .round()
        .astype("uint8")
    )


def _over_black(gray: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    composited = gray.astype("float32") * (alpha.astype("float32") / 255)
    return np.round(composited).astype("uint8")

"""Interfaces the aligner consumes, and an in-memory image source."""

import logging
from typing import Optional, Protocol, Tuple, Union, runtime_checkable

import cv2
import numpy as np

from .affine import AffineTransform2D
from .align.downsample import scaled_size, valid_pixel_size
from .exceptions import ResourceError, ValidationError
from .models import CategoryLabelTable, ImageEntry, Raster

log = logging.getLogger(__name__)


@runtime_checkable
class ImageSource(Protocol):
    def read_region(
        self, downsample: float, x: int, y: int, width: int, height: int
    ) -> Union[Raster, np.ndarray]: ...

    def pixel_dimensions(self) -> Tuple[int, int]:
        """(width, height) at full resolution."""
        ...

    def physical_pixel_size(self) -> Optional[float]: ...


@runtime_checkable
class TransformSink(Protocol):
    def get(self) -> AffineTransform2D: ...

    def set(self, transform: AffineTransform2D): ...


class LabelRenderer(Protocol):
    def render(
        self, entry: ImageEntry, label_table: CategoryLabelTable, downsample: float
    ) -> Union[Raster, np.ndarray]: ...


class ArrayImageSource:
    """Image source backed by a full-resolution numpy array (Y, X[, C])."""

    def __init__(
        self,
        pixels: np.ndarray,
        pixel_size: Optional[float] = None,
        palette: Optional[np.ndarray] = None,
        name: str = "",
    ):
        pixels = np.asarray(pixels)
        if pixels.ndim not in (2, 3):
            raise ValidationError(f"Expected a (Y, X) or (Y, X, C) array, got {pixels.shape}")
        self.pixels = pixels
        self.pixel_size = pixel_size
        self.palette = palette
        self.name = name

    def pixel_dimensions(self) -> Tuple[int, int]:
        height, width = self.pixels.shape[:2]
        return width, height

    def physical_pixel_size(self) -> Optional[float]:
        return valid_pixel_size(self.pixel_size)

    def read_region(self, downsample, x, y, width, height) -> Raster:
        full_width, full_height = self.pixel_dimensions()
        x0, y0 = max(int(x), 0), max(int(y), 0)
        x1 = min(int(x + width), full_width)
        y1 = min(int(y + height), full_height)
        if x1 <= x0 or y1 <= y0 or downsample <= 0:
            raise ResourceError(
                f"Region ({x}, {y}, {width}, {height}) at downsample {downsample} "
                f"is outside of {self}"
            )
        region = self.pixels[y0:y1, x0:x1]
        out_w, out_h = scaled_size(x1 - x0, y1 - y0, downsample)
        if (out_w, out_h) != (x1 - x0, y1 - y0):
            interpolation = cv2.INTER_AREA if downsample > 1 else cv2.INTER_LINEAR
            if self.palette is not None:
                interpolation = cv2.INTER_NEAREST
            region = resize(region, (out_w, out_h), interpolation)
        return Raster(np.ascontiguousarray(region), palette=self.palette)

    def __str__(self) -> str:
        return self.name or f"ArrayImageSource{self.pixels.shape}"


def resize(img: np.ndarray, size, interpolation) -> np.ndarray:
    """cv2.resize that keeps a trailing channel axis and handles >4 channels."""
    if img.dtype == bool:
        img = img.astype("uint8") * 255
    if img.ndim == 3 and img.shape[2] > 4:
        return np.dstack(
            [cv2.resize(img[..., cc], size, interpolation=interpolation) for cc in range(img.shape[2])]
        )
    out = cv2.resize(np.ascontiguousarray(img), size, interpolation=interpolation)
    if img.ndim == 3 and out.ndim == 2:
        out = out[..., np.newaxis]
    return out

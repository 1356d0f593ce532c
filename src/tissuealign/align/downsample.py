"""Picks the downsample factor images are registered at."""

import logging
import math
from typing import Optional, Tuple

from ..exceptions import ValidationError

log = logging.getLogger(__name__)

MAX_WIDTH_WHEN_DETERMINING_DOWNSAMPLE = 2000


def valid_pixel_size(pixel_size) -> Optional[float]:
    """Returns the pixel size if it is a finite positive number."""
    if pixel_size is None:
        return None
    try:
        pixel_size = float(pixel_size)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(pixel_size) or pixel_size <= 0:
        return None
    return pixel_size


def select_downsample(
    width: int,
    pixel_size: Optional[float],
    target_pixel_size: float,
    name: str = "",
) -> float:
    """
    Downsample that brings an image of `pixel_size` to `target_pixel_size`.

    Without a usable pixel size, the smallest whole-number downsample that
    makes the image at most 2000 pixels wide is used instead.
    """
    pixel_size = valid_pixel_size(pixel_size)
    if pixel_size is not None:
        target = valid_pixel_size(target_pixel_size)
        if target is None:
            raise ValidationError(
                f"Target pixel size must be a finite positive number, got {target_pixel_size}"
            )
        return target / pixel_size

    downsample = 1
    while width / downsample > MAX_WIDTH_WHEN_DETERMINING_DOWNSAMPLE:
        downsample += 1
    log.warning(
        f"Pixel size is unavailable for {name or 'image'}! "
        f"Default downsample value of {downsample} will be used"
    )
    return float(downsample)


def scaled_size(width: int, height: int, downsample: float) -> Tuple[int, int]:
    """(width, height) of a region read at `downsample`."""
    return (
        max(1, int(round(width / downsample))),
        max(1, int(round(height / downsample))),
    )

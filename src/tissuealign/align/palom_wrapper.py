"""Image source on top of palom pyramid readers."""

import logging
from typing import Optional, Tuple

import cv2
import dask.array as da
import numpy as np
from palom.cli import align_he

from ..exceptions import ResourceError
from ..models import Raster
from ..sources import resize
from .downsample import scaled_size, valid_pixel_size

log = logging.getLogger(__name__)


class PalomImageSource:
    """
    Reads regions from a palom reader's pyramid (a list of dask arrays
    shaped (C, Y, X), full resolution first).

    Each request is served from the coarsest level that is not coarser than
    the requested downsample, then resized to the exact output size.
    """

    def __init__(
        self,
        reader,
        channel: Optional[int] = None,
        pixel_size: Optional[float] = None,
        name: str = "",
    ):
        if not reader.pyramid:
            raise ResourceError(f"Reader for {name or reader} has no pyramid levels")
        self.reader = reader
        self.channel = channel
        self.pixel_size = pixel_size
        self.name = name or str(getattr(reader, "path", ""))

    @property
    def level_downsamples(self):
        width = self.reader.pyramid[0].shape[-1]
        return {ii: width / pp.shape[-1] for ii, pp in enumerate(self.reader.pyramid)}

    def pixel_dimensions(self) -> Tuple[int, int]:
        _, height, width = self.reader.pyramid[0].shape
        return width, height

    def physical_pixel_size(self) -> Optional[float]:
        if self.pixel_size is not None:
            return valid_pixel_size(self.pixel_size)
        return valid_pixel_size(getattr(self.reader, "pixel_size", None))

    def select_level(self, downsample: float) -> int:
        valid_levels = [
            ll for ll, dd in self.level_downsamples.items() if dd <= downsample * 1.0001
        ]
        return max(valid_levels) if valid_levels else 0

    def read_region(self, downsample, x, y, width, height) -> Raster:
        level = self.select_level(downsample)
        level_downsample = self.level_downsamples[level]
        img = da.asarray(self.reader.pyramid[level])

        r0, c0 = int(y / level_downsample), int(x / level_downsample)
        r1 = int(np.ceil((y + height) / level_downsample))
        c1 = int(np.ceil((x + width) / level_downsample))
        channels = slice(None) if self.channel is None else [self.channel]
        log.debug(
            f"Reading {self.name} level {level} (downsample {level_downsample:.3f}) "
            f"rows {r0}:{r1}, cols {c0}:{c1}"
        )
        try:
            region = np.asarray(img[channels, r0:r1, c0:c1].compute())
        except Exception as e:
            log.error(f"Failed reading {self.name} level {level}: {e}")
            raise ResourceError(f"Could not read region from {self.name}: {e}") from e

        # channel-last, gray images as 2D
        region = np.moveaxis(region, 0, -1)
        if region.shape[-1] == 1:
            region = region[..., 0]

        out_size = scaled_size(width, height, downsample)
        if region.shape[1::-1] != out_size:
            region = resize(region, out_size, cv2.INTER_AREA)
        return Raster(np.ascontiguousarray(region))

    def __str__(self) -> str:
        return self.name


def open_image(
    path, channel: Optional[int] = None, pixel_size: Optional[float] = None
) -> PalomImageSource:
    """Opens an OME-TIFF or SVS file with the matching palom reader."""
    try:
        reader = align_he.get_reader(path)(path)
    except Exception as e:
        log.error(f"Failed opening {path}: {e}")
        raise ResourceError(f"Could not open image {path}: {e}") from e
    source = PalomImageSource(reader, channel=channel, pixel_size=pixel_size, name=str(path))
    log.info(
        f"Opened {path}: {len(reader.pyramid)} levels, "
        f"size {source.pixel_dimensions()}, pixel size {source.physical_pixel_size()}"
    )
    return source

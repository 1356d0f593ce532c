"""Label images built from annotation categories, for area-based alignment."""

import logging
from typing import Sequence, Tuple

import numpy as np
import skimage.draw

from ..exceptions import ResourceError, ValidationError
from ..models import Annotation, CategoryLabelTable, ImageEntry, Raster
from .downsample import scaled_size, select_downsample

log = logging.getLogger(__name__)

BACKGROUND_LABEL = 0
NO_CATEGORY = None


def build_label_table(
    base_annotations: Sequence[Annotation],
    selected_annotations: Sequence[Annotation],
) -> CategoryLabelTable:
    """
    One category-to-label mapping shared by both images.

    "No category" is labeled 1, then categories seen in the base image, then
    categories only seen in the selected image. 0 stays background.
    """
    labels: CategoryLabelTable = {NO_CATEGORY: 1}
    for annotation in [*base_annotations, *selected_annotations]:
        category = annotation.category
        if category is not None and category not in labels:
            labels[category] = len(labels) + 1
    if len(labels) > 255:
        raise ValidationError(
            f"{len(labels)} annotation categories do not fit in an 8-bit label image"
        )
    log.debug(f"Label table: {labels}")
    return labels


class PolygonLabelRenderer:
    """Fills area annotations with their category label, in annotation order."""

    def render(
        self, entry: ImageEntry, label_table: CategoryLabelTable, downsample: float
    ) -> Raster:
        width, height = entry.source.pixel_dimensions()
        out_w, out_h = scaled_size(width, height, downsample)
        img = np.full((out_h, out_w), BACKGROUND_LABEL, dtype="uint8")

        for annotation in entry.annotations:
            geometry = annotation.geometry
            if geometry is None or not geometry.is_area:
                continue
            label = label_table.get(annotation.category, label_table[NO_CATEGORY])
            mask = np.zeros(img.shape, dtype="bool")
            for part in geometry.parts:
                mask[_polygon(part, downsample, img.shape)] = True
            for hole in geometry.holes:
                mask[_polygon(hole, downsample, img.shape)] = False
            img[mask] = label

        palette = np.zeros((256, 3), dtype="uint8")
        return Raster(img, palette=palette)


def _polygon(coords: np.ndarray, downsample: float, shape):
    coords = np.asarray(coords) / downsample
    return skimage.draw.polygon(coords[:, 1], coords[:, 0], shape=shape)


def render_label_maps(
    base: ImageEntry,
    selected: ImageEntry,
    label_table: CategoryLabelTable,
    target_pixel_size: float,
    renderer=None,
) -> Tuple[Raster, Raster, float, float]:
    """
    Renders both images' label maps at the same physical pixel size.

    Each image gets its own downsample from its own pixel size, so images
    with different native resolutions end up comparable pixel for pixel.
    """
    renderer = renderer or PolygonLabelRenderer()
    rasters = []
    downsamples = []
    for entry in (base, selected):
        width, _ = entry.source.pixel_dimensions()
        downsample = select_downsample(
            width, entry.source.physical_pixel_size(), target_pixel_size, str(entry)
        )
        try:
            raster = renderer.render(entry, label_table, downsample)
        except Exception as e:
            log.error(f"Failed rendering labels of {entry} at downsample {downsample}: {e}")
            raise ResourceError(f"Could not render label image of {entry}: {e}") from e
        rasters.append(raster)
        downsamples.append(downsample)
    return rasters[0], rasters[1], downsamples[0], downsamples[1]

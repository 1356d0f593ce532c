"""Main alignment entry point."""

import dataclasses
import logging
import pathlib
from typing import List, Sequence

import cv2
import numpy as np
import skimage.exposure

from ..affine import AffineTransform2D
from ..exceptions import ResourceError
from ..models import (
    AlignmentOutcome,
    AlignmentStrategy,
    Annotation,
    Geometry,
    ImageEntry,
    RegistrationKind,
)
from .coordinator import to_downsampled, write_transform
from .downsample import select_downsample
from .grayscale import ensure_grayscale
from .intensity import register_intensity
from .labels import build_label_table, render_label_maps
from .points import register_points

log = logging.getLogger(__name__)


def read_full_image(entry: ImageEntry, downsample: float) -> np.ndarray:
    """Reads the whole image at `downsample` as 8-bit gray."""
    width, height = entry.source.pixel_dimensions()
    try:
        raster = entry.source.read_region(downsample, 0, 0, width, height)
    except Exception as e:
        log.error(f"Failed reading {entry} at downsample {downsample}: {e}")
        raise ResourceError(f"Could not read image region of {entry}: {e}") from e
    if raster is None:
        raise ResourceError(f"Image source of {entry} returned no pixels")
    return ensure_grayscale(raster)


# --- Strategies ---
def _align_intensity(base, selected, initial, kind, pixel_size, renderer):
    log.debug(f"Image alignment of {selected} on {base} using intensities")
    width, _ = base.source.pixel_dimensions()
    downsample = select_downsample(
        width, base.source.physical_pixel_size(), pixel_size, str(base)
    )
    img_base = read_full_image(base, downsample)
    img_selected = read_full_image(selected, downsample)
    matrix, score = register_intensity(img_base, img_selected, initial, kind, downsample)
    return matrix, score, downsample, downsample


def _align_area_annotations(base, selected, initial, kind, pixel_size, renderer):
    log.debug(f"Image alignment of {selected} on {base} using area annotations")
    labels = build_label_table(base.annotations, selected.annotations)
    label_base, label_selected, downsample, selected_downsample = render_label_maps(
        base, selected, labels, pixel_size, renderer
    )
    matrix, score = register_intensity(
        ensure_grayscale(label_base),
        ensure_grayscale(label_selected),
        initial,
        kind,
        downsample,
        selected_downsample,
    )
    return matrix, score, downsample, selected_downsample


def _align_point_annotations(base, selected, initial, kind, pixel_size, renderer):
    log.debug(f"Image alignment of {selected} on {base} using point annotations")
    matrix = register_points(base.annotations, selected.annotations, kind)
    return matrix, None, 1.0, 1.0


STRATEGIES = {
    AlignmentStrategy.INTENSITY: _align_intensity,
    AlignmentStrategy.AREA_ANNOTATIONS: _align_area_annotations,
    AlignmentStrategy.POINT_ANNOTATIONS: _align_point_annotations,
}


def align(
    base: ImageEntry,
    selected: ImageEntry,
    transform,
    strategy: AlignmentStrategy,
    kind: RegistrationKind,
    pixel_size: float,
    renderer=None,
) -> AlignmentOutcome:
    """
    Estimates the transform between `base` and `selected` and writes it to
    `transform` (anything with ``get()`` and ``set()``).

    The current value of `transform` seeds the intensity-based strategies.
    `pixel_size` is the physical pixel size registration runs at, in the
    units of the images' calibration. On any error `transform` is left as
    it was.
    """
    strategy = AlignmentStrategy.parse(strategy)
    kind = RegistrationKind.parse(kind)
    initial = transform.get()

    matrix, score, downsample, selected_downsample = STRATEGIES[strategy](
        base, selected, initial, kind, pixel_size, renderer
    )
    result = write_transform(transform, matrix, downsample, selected_downsample)
    log.info(
        f"Aligned {selected} to {base} ({strategy.value}, {kind.value}):\n"
        f"{result.format()}"
    )
    return AlignmentOutcome(
        transform=result,
        score=score,
        downsample=downsample,
        strategy=strategy,
        kind=kind,
    )


# --- Annotation propagation ---
def propagate_annotations(
    annotations: Sequence[Annotation], transform: AffineTransform2D
) -> List[Annotation]:
    """Maps base-image annotations into selected-image coordinates."""
    out = []
    for annotation in annotations:
        geometry = annotation.geometry
        tformed = Geometry(
            kind=geometry.kind,
            parts=[transform.transform_points(pp) for pp in geometry.parts],
            holes=[transform.transform_points(hh) for hh in geometry.holes],
        )
        out.append(dataclasses.replace(annotation, geometry=tformed))
    return out


# --- QC Plotter ---
class QcPlotter:
    def __init__(self, qc_out_dir, name_base="base", name_selected="selected"):
        self.qc_out_dir = qc_out_dir
        self.name_base = name_base
        self.name_selected = name_selected
        self.figures = []

    def plot_alignment(self, img_base, img_selected, initial, result, downsample):
        """Overlays the selected image on the base before and after alignment.

        `img_base` and `img_selected` are gray images read at `downsample`;
        `initial` and `result` are full-resolution transforms.
        """
        import functools

        import matplotlib.patches as mpatches
        import matplotlib.pyplot as plt
        from palom.cli.align_he import set_matplotlib_font

        set_matplotlib_font(10)
        viz_base = get_viz_img(img_base)
        viz_before, viz_after = (
            get_viz_img(
                warp_to_base(img_selected, to_downsampled(tt, downsample), img_base.shape)
            )
            for tt in (initial, result)
        )

        Square = functools.partial(mpatches.Rectangle, xy=(0, 0), width=1, height=1)
        fig, (ax1, ax2) = plt.subplots(1, 2, sharex=True, sharey=True)
        ax1.imshow(np.dstack([viz_base, viz_before, viz_base]))
        ax2.imshow(np.dstack([viz_base, viz_after, viz_base]))
        ax1.set_title("Initial transform", fontsize=8)
        ax2.set_title("Aligned", fontsize=8)

        name1, name2 = self._get_truncated_names(self.name_base, self.name_selected)
        handles = [
            Square(color="magenta", label=f"Base: {name1}"),
            Square(color="lime", label=f"Selected: {name2}"),
        ]
        ax1.legend(handles=handles, fontsize=8)
        ax2.legend(handles=handles, fontsize=8)

        fig.suptitle(f"Alignment: {name2} on {name1}", fontsize=10)
        self._set_figure_size(fig, viz_base.shape[:2], 2)
        self._add_figure(fig, "alignment")
        return fig

    def save_figures(self) -> List[pathlib.Path]:
        paths = []
        if len(self.figures) and (self.qc_out_dir is not None):
            import matplotlib.pyplot as plt

            qc_dir = pathlib.Path(self.qc_out_dir)
            qc_dir.mkdir(parents=True, exist_ok=True)
            for fig in self.figures:
                path = qc_dir / f"{fig.name}.jpg"
                fig.savefig(path, dpi=144, bbox_inches="tight")
                plt.close(fig)
                paths.append(path)
        return paths

    def _add_figure(self, fig, suffix):
        pair_label = f"{pathlib.Path(self.name_selected).stem}_on_{pathlib.Path(self.name_base).stem}"
        fig.name = f"qc_alignment-{pair_label}-{suffix}"
        self.figures.append(fig)

    @staticmethod
    def _get_truncated_names(name1, name2):
        name1 = str(name1)
        name2 = str(name2)
        if len(name1) > 23:
            name1 = name1[:20] + "..."
        if len(name2) > 23:
            name2 = name2[:20] + "..."
        return name1, name2

    @staticmethod
    def _set_figure_size(fig, shape, num_subplots):
        im_h, im_w = shape
        if im_w < 500:
            im_h *= 500 / im_w
            im_w = 500
        _size_factor = np.divide([im_h, im_w], 2500).max()
        if _size_factor > 1:
            im_h, im_w = np.divide([im_h, im_w], _size_factor)
        fig.set_size_inches(im_w * num_subplots / 144, (im_h + 50) / 144)
        fig.tight_layout(pad=1.5)


def warp_to_base(img_selected, matrix, shape) -> np.ndarray:
    """Resamples the selected image onto the base image grid."""
    return cv2.warpAffine(
        img_selected,
        np.asarray(matrix, dtype="float64")[:2],
        (shape[1], shape[0]),
        flags=cv2.INTER_LINEAR + cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )


def get_viz_img(img):
    in_range = np.percentile(img, [0.1, 99.9])
    if in_range[0] == in_range[1]:
        return np.zeros(img.shape, dtype="uint8")
    return skimage.exposure.adjust_gamma(
        skimage.exposure.rescale_intensity(
            img, in_range=tuple(in_range), out_range="uint8"
        )
        .round()
        .astype("uint8"),
        gain=1.2,
    )

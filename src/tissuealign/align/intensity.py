"""ECC (enhanced correlation coefficient) registration of two gray images."""

import logging
from typing import Tuple

import cv2
import numpy as np

from ..exceptions import RegistrationError
from ..models import RegistrationKind
from .coordinator import to_downsampled

log = logging.getLogger(__name__)

ECC_MAX_COUNT = 100
ECC_EPSILON = 0.0001
ECC_GAUSS_FILTER_SIZE = 5

MOTION_TYPES = {
    RegistrationKind.AFFINE: cv2.MOTION_AFFINE,
    RegistrationKind.RIGID: cv2.MOTION_EUCLIDEAN,
}


def maximize_correlation(
    base: np.ndarray,
    overlay: np.ndarray,
    initial,
    kind: RegistrationKind,
    max_iterations: int = ECC_MAX_COUNT,
    epsilon: float = ECC_EPSILON,
) -> Tuple[np.ndarray, float]:
    """
    Refines `initial` (2x3) so that `overlay` sampled at the warped
    coordinates matches `base`.

    Returns the refined matrix and the correlation coefficient reached when
    the iteration count or the epsilon criterion stopped the solver.
    """
    warp_matrix = np.array(initial, dtype="float32").reshape(2, 3)
    criteria = (
        cv2.TERM_CRITERIA_COUNT | cv2.TERM_CRITERIA_EPS,
        max_iterations,
        epsilon,
    )
    try:
        score, warp_matrix = cv2.findTransformECC(
            np.ascontiguousarray(base),
            np.ascontiguousarray(overlay),
            warp_matrix,
            MOTION_TYPES[RegistrationKind.parse(kind)],
            criteria,
            inputMask=None,
            gaussFiltSize=ECC_GAUSS_FILTER_SIZE,
        )
    except cv2.error as e:
        raise RegistrationError(f"ECC registration failed: {e}") from e
    return warp_matrix.astype("float64"), float(score)


def register_intensity(
    base: np.ndarray,
    overlay: np.ndarray,
    initial,
    kind: RegistrationKind,
    downsample: float,
    selected_downsample: float = None,
) -> Tuple[np.ndarray, float]:
    """
    Registers two rasters read at `downsample`, seeded with the
    full-resolution transform `initial`.

    `selected_downsample` is given when `overlay` was read at its own
    factor. The returned matrix is in downsampled pixel space.
    """
    seed = to_downsampled(initial, downsample, selected_downsample)
    log.debug(
        f"ECC seed at downsample {downsample:.4g}: {seed.ravel().round(4).tolist()}"
    )
    matrix, score = maximize_correlation(base, overlay, seed, kind)
    log.info(f"ECC correlation coefficient: {score:.4f} ({RegistrationKind.parse(kind).value})")
    return matrix, score

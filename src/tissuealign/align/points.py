"""Least-squares transform from corresponding point annotations."""

import logging
from typing import Sequence

import numpy as np
import skimage.transform

from ..exceptions import ValidationError
from ..models import Annotation, RegistrationKind

log = logging.getLogger(__name__)

TRANSFORM_TYPES = {
    RegistrationKind.AFFINE: "affine",
    RegistrationKind.RIGID: "similarity",
}


def extract_points(annotations: Sequence[Annotation]) -> np.ndarray:
    """Vertices of all point and line annotations, in annotation order."""
    coords = [
        aa.geometry.points
        for aa in annotations
        if aa.geometry is not None and not aa.geometry.is_area
    ]
    if not coords:
        return np.zeros((0, 2))
    return np.vstack(coords)


def fit_transform(points_base, points_selected, kind: RegistrationKind) -> np.ndarray:
    """2x3 matrix mapping `points_base` onto `points_selected`."""
    src = np.asarray(points_base, dtype="float64")
    dst = np.asarray(points_selected, dtype="float64")
    ttype = TRANSFORM_TYPES[RegistrationKind.parse(kind)]
    tform = skimage.transform.estimate_transform(ttype, src, dst)
    params = getattr(tform, "params", None)
    if params is None or not np.all(np.isfinite(params)):
        raise ValidationError(
            f"Could not estimate a {ttype} transform from {len(src)} points; "
            "the points may be collinear or coincident"
        )
    return np.array(params[:2], dtype="float64")


def register_points(
    base_annotations: Sequence[Annotation],
    selected_annotations: Sequence[Annotation],
    kind: RegistrationKind,
) -> np.ndarray:
    points_base = extract_points(base_annotations)
    points_selected = extract_points(selected_annotations)
    if len(points_base) == 0 and len(points_selected) == 0:
        raise ValidationError("No points found for either image")
    if len(points_base) != len(points_selected):
        raise ValidationError(
            "Images have different numbers of annotated points "
            f"({len(points_base)} & {len(points_selected)})"
        )
    log.debug(f"Fitting {RegistrationKind.parse(kind).value} transform to {len(points_base)} point pairs")
    matrix = fit_transform(points_base, points_selected, kind)

    residuals = np.linalg.norm(
        points_base @ matrix[:, :2].T + matrix[:, 2] - points_selected, axis=1
    )
    log.info(f"Point fit RMS residual: {np.sqrt(np.mean(residuals**2)):.4f} px")
    return matrix

"""Affine transform value and the shared holder the aligner writes into."""

import dataclasses
import logging
import re
import threading

import numpy as np
import skimage.transform

from .exceptions import ValidationError

log = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class AffineTransform2D:
    """
    2D affine transform in full-resolution pixel space.

    ``x' = m00 * x + m01 * y + m02`` and ``y' = m10 * x + m11 * y + m12``
    where (x, y) is a base-image pixel coordinate and (x', y') is the
    corresponding pixel in the selected image. The selected image is
    rendered over the base through the inverse of this transform.
    """

    m00: float = 1.0
    m01: float = 0.0
    m02: float = 0.0
    m10: float = 0.0
    m11: float = 1.0
    m12: float = 0.0

    @classmethod
    def identity(cls) -> "AffineTransform2D":
        return cls()

    @classmethod
    def from_matrix(cls, matrix) -> "AffineTransform2D":
        """Builds a transform from a 2x3 or 3x3 matrix."""
        mx = np.asarray(matrix, dtype="float64")
        if mx.shape not in ((2, 3), (3, 3)):
            raise ValidationError(f"Expected a 2x3 or 3x3 matrix, got {mx.shape}")
        return cls(*(float(vv) for vv in mx[:2].ravel()))

    def to_matrix(self) -> np.ndarray:
        return np.array(
            [[self.m00, self.m01, self.m02], [self.m10, self.m11, self.m12]],
            dtype="float64",
        )

    def to_homogeneous(self) -> np.ndarray:
        return np.vstack([self.to_matrix(), [0, 0, 1]])

    def inverted(self) -> "AffineTransform2D":
        determinant = self.m00 * self.m11 - self.m01 * self.m10
        if not np.isfinite(determinant) or np.isclose(determinant, 0):
            raise ValidationError(f"Transform {self} is not invertible")
        return self.from_matrix(np.linalg.inv(self.to_homogeneous()))

    def translated(self, dx: float, dy: float) -> "AffineTransform2D":
        """Appends a translation, applied before this transform."""
        mx = self.to_homogeneous() @ skimage.transform.AffineTransform(
            translation=(dx, dy)
        ).params
        return self.from_matrix(mx)

    def rotated(
        self, theta_degrees: float, cx: float = 0.0, cy: float = 0.0
    ) -> "AffineTransform2D":
        """Appends a rotation of `theta_degrees` about the pivot (cx, cy)."""
        Affine = skimage.transform.AffineTransform
        rotation = (
            Affine(translation=(cx, cy)).params
            @ Affine(rotation=np.deg2rad(theta_degrees)).params
            @ Affine(translation=(-cx, -cy)).params
        )
        return self.from_matrix(self.to_homogeneous() @ rotation)

    def transform_points(self, points) -> np.ndarray:
        points = np.asarray(points, dtype="float64").reshape(-1, 2)
        return skimage.transform.AffineTransform(matrix=self.to_homogeneous())(points)

    @classmethod
    def parse(cls, text: str) -> "AffineTransform2D":
        """Parses six numbers separated by commas and/or whitespace."""
        tokens = [tt for tt in re.split(r"[\s,;\[\]()]+", str(text)) if tt]
        if len(tokens) != 6:
            raise ValidationError(
                f"Expected 6 values for an affine transform, got {len(tokens)}: {text!r}"
            )
        try:
            values = [float(tt) for tt in tokens]
        except ValueError as e:
            raise ValidationError(f"Cannot parse transform {text!r}: {e}") from e
        if not all(np.isfinite(values)):
            raise ValidationError(f"Transform {text!r} has non-finite values")
        return cls(*values)

    def format(self) -> str:
        return (
            f"{self.m00:.4f},\t{self.m01:.4f},\t{self.m02:.4f},\n"
            f"{self.m10:.4f},\t{self.m11:.4f},\t{self.m12:.4f}"
        )


class SharedAffine:
    """
    Holds the transform shared between the aligner and whoever displays or
    edits it. Reads and writes swap one immutable value under a lock, so a
    reader never observes a half-written matrix.
    """

    def __init__(self, transform: AffineTransform2D = None):
        self._lock = threading.Lock()
        self._transform = transform or AffineTransform2D.identity()

    def get(self) -> AffineTransform2D:
        with self._lock:
            return self._transform

    def set(self, transform: AffineTransform2D):
        if not isinstance(transform, AffineTransform2D):
            transform = AffineTransform2D.from_matrix(transform)
        with self._lock:
            self._transform = transform
        log.debug(f"Transform updated to\n{transform.format()}")

    def reset(self):
        self.set(AffineTransform2D.identity())

    def __repr__(self) -> str:
        return f"SharedAffine({self.get()})"

"""Tests for tissuealign.align.points."""

import numpy as np
import pytest
import skimage.transform

from tissuealign.align.points import extract_points, fit_transform, register_points
from tissuealign.exceptions import ValidationError
from tissuealign.models import Annotation, Geometry, RegistrationKind


def _points(coords):
    return [Annotation(Geometry.point(x, y)) for x, y in coords]


class TestExtractPoints:
    def test_non_area_vertices_in_order(self):
        annotations = [
            Annotation(Geometry.point(1, 2)),
            Annotation(Geometry.rectangle(0, 0, 10, 10), "Tumor"),
            Annotation(Geometry.polyline([[3, 4], [5, 6], [7, 8]])),
            Annotation(Geometry.line(9, 10, 11, 12)),
            Annotation(Geometry.ellipse(50, 50, 5, 5)),
            Annotation(Geometry.multi_point([[13, 14], [15, 16]])),
        ]
        points = extract_points(annotations)

        np.testing.assert_array_equal(
            points,
            [[1, 2], [3, 4], [5, 6], [7, 8], [9, 10], [11, 12], [13, 14], [15, 16]],
        )

    def test_no_points(self):
        annotations = [Annotation(Geometry.rectangle(0, 0, 10, 10))]
        assert extract_points(annotations).shape == (0, 2)


class TestRegisterPoints:
    def test_both_empty(self):
        with pytest.raises(ValidationError, match="No points"):
            register_points([], [], RegistrationKind.AFFINE)

    def test_count_mismatch(self):
        base = _points([[0, 0], [10, 0], [0, 10]])
        selected = _points([[0, 0], [10, 0], [0, 10], [10, 10]])
        with pytest.raises(ValidationError, match=r"\(3 & 4\)"):
            register_points(base, selected, RegistrationKind.AFFINE)

    def test_one_side_empty(self):
        with pytest.raises(ValidationError):
            register_points(_points([[0, 0]]), [], RegistrationKind.RIGID)

    def test_three_points_affine_exact(self):
        base = np.array([[10.0, 20.0], [200.0, 35.0], [80.0, 150.0]])
        selected = np.array([[31.5, 12.0], [250.0, 60.25], [95.0, 190.0]])
        matrix = register_points(_points(base), _points(selected), RegistrationKind.AFFINE)

        mapped = base @ matrix[:, :2].T + matrix[:, 2]
        np.testing.assert_allclose(mapped, selected, atol=1e-8)

    def test_rigid_recovers_similarity(self):
        tform = skimage.transform.SimilarityTransform(
            scale=1.3, rotation=np.deg2rad(25), translation=(40, -12)
        )
        base = np.array(
            [[0, 0], [100, 5], [20, 130], [150, 160], [75, 60], [10, 90]], dtype=float
        )
        selected = tform(base)
        matrix = register_points(_points(base), _points(selected), RegistrationKind.RIGID)

        np.testing.assert_allclose(matrix, tform.params[:2], atol=1e-8)

    def test_rigid_has_no_shear(self):
        rng = np.random.default_rng(1)
        base = rng.uniform(0, 500, size=(10, 2))
        # anisotropic target; a rigid fit must stay a similarity
        selected = base * [1.0, 2.0]
        matrix = register_points(_points(base), _points(selected), RegistrationKind.RIGID)

        assert matrix[0, 0] == pytest.approx(matrix[1, 1])
        assert matrix[0, 1] == pytest.approx(-matrix[1, 0])


def test_fit_transform_coincident_points():
    points = np.zeros((3, 2))
    with pytest.raises(ValidationError):
        fit_transform(points, points, RegistrationKind.AFFINE)

"""Tests for tissuealign.annotations."""

import json

import numpy as np

from tissuealign.annotations import parse_annotations, read_geojson, write_geojson
from tissuealign.models import Annotation, Geometry

QUPATH_EXPORT = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "id": "b6b5b6d4",
            "geometry": {
                "type": "Polygon",
                "coordinates": [
                    [[0, 0], [100, 0], [100, 50], [0, 50], [0, 0]],
                    [[10, 10], [20, 10], [20, 20], [10, 10]],
                ],
            },
            "properties": {
                "objectType": "annotation",
                "classification": {"name": "Tumor", "color": [200, 0, 0]},
            },
        },
        {
            "type": "Feature",
            "geometry": {"type": "MultiPoint", "coordinates": [[5, 6], [7, 8]]},
            "properties": {"objectType": "annotation", "name": "landmarks"},
        },
        {
            "type": "Feature",
            "geometry": {"type": "LineString", "coordinates": [[1, 1], [2, 2], [3, 1]]},
            "properties": {"objectType": "annotation"},
        },
        {
            "type": "Feature",
            "geometry": {"type": "GeometryCollection", "geometries": []},
            "properties": {},
        },
    ],
}


def test_parse_qupath_export(caplog):
    annotations = parse_annotations(QUPATH_EXPORT)

    assert len(annotations) == 3
    assert "Skipping GeoJSON feature 3" in caplog.text

    polygon, points, line = annotations
    assert polygon.category == "Tumor"
    assert polygon.geometry.is_area
    # closing vertex dropped
    assert polygon.geometry.parts[0].shape == (4, 2)
    assert len(polygon.geometry.holes) == 1

    assert points.category is None
    assert points.name == "landmarks"
    np.testing.assert_array_equal(points.geometry.points, [[5, 6], [7, 8]])
    assert line.geometry.kind == "polyline"
    assert not line.geometry.is_area


def test_write_then_read(tmp_path):
    annotations = [
        Annotation(Geometry.rectangle(0, 0, 10, 20), "Stroma"),
        Annotation(Geometry.point(3.5, 4.5), name="p1"),
        Annotation(Geometry.line(0, 0, 5, 5)),
    ]
    path = tmp_path / "out" / "annotations.geojson"
    assert write_geojson(path, annotations) == 3

    with open(path) as f:
        data = json.load(f)
    assert data["type"] == "FeatureCollection"
    assert data["features"][0]["properties"]["classification"] == {"name": "Stroma"}

    restored = read_geojson(path)
    assert [aa.category for aa in restored] == ["Stroma", None, None]
    assert [aa.geometry.kind for aa in restored] == ["polygon", "point", "line"]
    np.testing.assert_array_equal(
        restored[0].geometry.parts[0], annotations[0].geometry.parts[0]
    )


def test_multipolygon_with_holes():
    square = [[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]
    hole = [[2, 2], [4, 2], [4, 4], [2, 2]]
    far = [[[50, 50], [60, 50], [60, 60], [50, 50]]]
    feature = {
        "type": "Feature",
        "geometry": {"type": "MultiPolygon", "coordinates": [[square, hole], far]},
        "properties": {"classification": {"name": "Stroma"}},
    }

    (annotation,) = parse_annotations(feature)

    assert annotation.category == "Stroma"
    assert [pp.shape for pp in annotation.geometry.parts] == [(4, 2), (3, 2)]
    assert [hh.shape for hh in annotation.geometry.holes] == [(3, 2)]


def test_unknown_geometry_type_skipped(caplog):
    features = [
        {"type": "Feature", "geometry": {"type": "Circle", "coordinates": [0, 0]}},
        {"type": "Feature", "geometry": {"type": "Point", "coordinates": [1, 2]}},
    ]

    annotations = parse_annotations(features)

    assert len(annotations) == 1
    assert "Skipping GeoJSON feature 0" in caplog.text

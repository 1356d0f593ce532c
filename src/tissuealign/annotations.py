"""Reading and writing annotations as GeoJSON, in the layout QuPath exports."""

import json
import logging
import pathlib
from typing import Iterable, List

import numpy as np
import shapely.errors
from shapely.geometry import (
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    mapping,
    shape,
)

from .models import Annotation, Geometry

log = logging.getLogger(__name__)


def _xy(coords) -> np.ndarray:
    return np.asarray(coords, dtype="float64")[:, :2]


def _ring(ring) -> np.ndarray:
    """Ring vertices without the closing vertex shapely repeats."""
    return _xy(ring.coords)[:-1]


def geometry_from_geojson(geometry: dict) -> Geometry:
    geom = shape(geometry)
    if geom.is_empty:
        raise ValueError(f"Empty {geom.geom_type} geometry")

    gtype = geom.geom_type
    if gtype == "Point":
        return Geometry.point(geom.x, geom.y)
    if gtype == "MultiPoint":
        return Geometry.multi_point([(pp.x, pp.y) for pp in geom.geoms])
    if gtype == "LineString":
        coords = _xy(geom.coords)
        if len(coords) == 2:
            return Geometry("line", [coords])
        return Geometry.polyline(coords)
    if gtype == "MultiLineString":
        return Geometry("polyline", [_xy(ll.coords) for ll in geom.geoms])
    if gtype in ("Polygon", "MultiPolygon"):
        polygons = [geom] if gtype == "Polygon" else list(geom.geoms)
        return Geometry(
            "polygon",
            [_ring(pp.exterior) for pp in polygons],
            [_ring(hh) for pp in polygons for hh in pp.interiors],
        )
    raise ValueError(f"Unsupported GeoJSON geometry type {gtype!r}")


def geometry_to_geojson(geometry: Geometry) -> dict:
    parts = geometry.parts
    if geometry.kind == "point":
        geom = Point(parts[0][0])
    elif geometry.kind == "points":
        geom = MultiPoint(geometry.points)
    elif geometry.kind in ("line", "polyline"):
        geom = LineString(parts[0]) if len(parts) == 1 else MultiLineString(parts)
    else:
        # holes are not tracked per part, so they go on the first one
        polygons = [Polygon(parts[0], geometry.holes)]
        polygons.extend(Polygon(pp) for pp in parts[1:])
        geom = polygons[0] if len(polygons) == 1 else MultiPolygon(polygons)
    return mapping(geom)


def annotation_from_feature(feature: dict) -> Annotation:
    properties = feature.get("properties") or {}
    classification = properties.get("classification") or {}
    category = classification.get("name") or properties.get("category")
    return Annotation(
        geometry=geometry_from_geojson(feature["geometry"]),
        category=category,
        name=properties.get("name"),
    )


def annotation_to_feature(annotation: Annotation) -> dict:
    properties = {"objectType": "annotation"}
    if annotation.name is not None:
        properties["name"] = annotation.name
    if annotation.category is not None:
        properties["classification"] = {"name": annotation.category}
    return {
        "type": "Feature",
        "geometry": geometry_to_geojson(annotation.geometry),
        "properties": properties,
    }


def parse_annotations(data) -> List[Annotation]:
    """Annotations from a FeatureCollection, a Feature, or a list of Features."""
    if isinstance(data, dict) and data.get("type") == "FeatureCollection":
        features = data.get("features", [])
    elif isinstance(data, dict):
        features = [data]
    else:
        features = list(data)

    annotations = []
    for idx, feature in enumerate(features):
        try:
            annotations.append(annotation_from_feature(feature))
        except (
            KeyError,
            TypeError,
            ValueError,
            IndexError,
            shapely.errors.ShapelyError,
        ) as e:
            log.warning(f"Skipping GeoJSON feature {idx}: {e}")
    return annotations


def read_geojson(path) -> List[Annotation]:
    with open(path, mode="r", encoding="utf-8") as infile:
        data = json.load(infile)
    annotations = parse_annotations(data)
    log.info(f"Read {len(annotations)} annotations from {path}")
    return annotations


def write_geojson(path, annotations: Iterable[Annotation]) -> int:
    features = [annotation_to_feature(aa) for aa in annotations]
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, mode="w", encoding="utf-8") as outfile:
        json.dump({"type": "FeatureCollection", "features": features}, outfile)
    log.info(f"Wrote {len(features)} annotations to {path}")
    return len(features)

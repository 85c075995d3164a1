"""Planar geometry for spatial selections.

Record coordinates and drawn shapes live in Web Mercator (EPSG:3857, meters),
the same plane a slippy map draws in. Containment is inclusive: a point lying
exactly on a polygon edge counts as selected.
"""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Iterable, List, Sequence, Tuple

import numpy as np
import shapely
from pyproj import Transformer
from shapely.geometry import Point, Polygon


CRS_WGS84 = "EPSG:4326"
CRS_WEB_MERCATOR = "EPSG:3857"

DEFAULT_BUFFER_SEGMENTS = 64

# Web Mercator is undefined at the poles; slippy maps clip here.
MAX_MERCATOR_LAT = 85.0511


class SpatialSelectionError(ValueError):
    """Base class for recoverable spatial selection failures."""


class InvalidRadius(SpatialSelectionError):
    pass


class EmptyPolygon(SpatialSelectionError):
    pass


class InvalidCenter(SpatialSelectionError):
    pass


@lru_cache(maxsize=2)
def _transformer(src: str, dst: str) -> Transformer:
    return Transformer.from_crs(src, dst, always_xy=True)


def project_lonlat(lng, lat):
    """(lng, lat) degrees -> (x, y) Web Mercator meters. Accepts scalars or arrays."""
    return _transformer(CRS_WGS84, CRS_WEB_MERCATOR).transform(lng, lat)


def unproject_xy(x, y):
    return _transformer(CRS_WEB_MERCATOR, CRS_WGS84).transform(x, y)


def project_point(lng: float, lat: float) -> Tuple[float, float]:
    """Project one (lng, lat) point, rejecting anything outside the map plane."""
    try:
        lng, lat = float(lng), float(lat)
    except (TypeError, ValueError):
        raise InvalidCenter(f"point must be numeric, got ({lng!r}, {lat!r})") from None
    if not (-180.0 <= lng <= 180.0) or not (-MAX_MERCATOR_LAT <= lat <= MAX_MERCATOR_LAT):
        raise InvalidCenter(f"point ({lng}, {lat}) is outside the map")
    x, y = project_lonlat(lng, lat)
    if not (math.isfinite(x) and math.isfinite(y)):
        raise InvalidCenter(f"point ({lng}, {lat}) does not project")
    return float(x), float(y)


def contains_point(polygon: Polygon, point: Tuple[float, float]) -> bool:
    return bool(polygon.covers(Point(point[0], point[1])))


def contains_points(polygon: Polygon, xs: Sequence[float], ys: Sequence[float]) -> np.ndarray:
    """Vectorised ``contains_point``; for points, intersects is the same as covers."""
    xs = np.asarray(xs, dtype=float)
    ys = np.asarray(ys, dtype=float)
    if xs.size == 0:
        return np.zeros(0, dtype=bool)
    return np.asarray(shapely.intersects_xy(polygon, xs, ys), dtype=bool)


def mercator_scale(lat_deg: float) -> float:
    """Map units per ground meter at a latitude."""
    return 1.0 / math.cos(math.radians(lat_deg))


def buffer_polygon(
    center: Tuple[float, float],
    radius_km: float,
    *,
    segments: int = DEFAULT_BUFFER_SEGMENTS,
) -> Polygon:
    """Circle of ``radius_km`` around a projected ``center``.

    Mercator stretches distances by 1/cos(lat); one scale factor taken at the
    centre is applied to the whole ring, which is fine for regional radii.
    """
    try:
        radius = float(radius_km)
    except (TypeError, ValueError):
        raise InvalidRadius(f"radius must be a number, got {radius_km!r}") from None
    if not math.isfinite(radius) or radius <= 0:
        raise InvalidRadius(f"radius must be > 0 km, got {radius_km!r}")

    _, lat = unproject_xy(center[0], center[1])
    radius_units = radius * 1000.0 * mercator_scale(lat)
    quad_segs = max(1, int(segments) // 4)
    return Point(center[0], center[1]).buffer(radius_units, quad_segs=quad_segs)


def ensure_valid_polygon(polygon: Polygon) -> Polygon:
    if polygon is None or polygon.is_empty:
        raise EmptyPolygon("drawn geometry is empty")
    if not isinstance(polygon, Polygon):
        raise EmptyPolygon(f"expected a polygon, got {polygon.geom_type}")
    if not polygon.is_valid:
        raise EmptyPolygon(f"drawn polygon is invalid: {shapely.is_valid_reason(polygon)}")
    if polygon.area <= 0:
        raise EmptyPolygon("drawn polygon has no area")
    return polygon


def _dedupe_ring(coords: Iterable[Sequence[float]]) -> List[Tuple[float, float]]:
    ring: List[Tuple[float, float]] = []
    for c in coords:
        pt = (float(c[0]), float(c[1]))
        if ring and ring[-1] == pt:
            continue
        ring.append(pt)
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring.pop()
    return ring


def polygon_from_lonlat(coords: Iterable[Sequence[float]]) -> Polygon:
    """Project a drawn ring of ``(lng, lat)`` pairs (GeoJSON order)."""
    try:
        ring = _dedupe_ring(coords)
    except (TypeError, ValueError, IndexError):
        raise EmptyPolygon("polygon coordinates must be (lng, lat) pairs") from None
    if len(set(ring)) < 3:
        raise EmptyPolygon(f"polygon needs at least 3 distinct vertices, got {len(set(ring))}")

    lngs = np.array([p[0] for p in ring])
    lats = np.array([p[1] for p in ring])
    if (np.abs(lngs) > 180.0).any() or (np.abs(lats) > MAX_MERCATOR_LAT).any():
        raise EmptyPolygon("polygon has vertices outside the map")
    xs, ys = project_lonlat(lngs, lats)
    if not (np.isfinite(xs).all() and np.isfinite(ys).all()):
        raise EmptyPolygon("polygon vertices do not project")
    return ensure_valid_polygon(Polygon(zip(xs, ys)))


def polygon_to_lonlat(polygon: Polygon) -> List[List[float]]:
    xs, ys = polygon.exterior.coords.xy
    lngs, lats = unproject_xy(np.asarray(xs), np.asarray(ys))
    return [[float(lng), float(lat)] for lng, lat in zip(lngs, lats)]

"""Spatial selection controller.

Owns the draw mode, the drawn geometry and the per-record dimming flags shown
on the map. It evaluates containment against the base set it is handed and
returns a ``SpatialSelection``; storing that selection is the caller's job.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd
from shapely.geometry import Polygon

from surveillance.filters import DrawMode, SpatialSelection
from surveillance.geometry import (
    DEFAULT_BUFFER_SEGMENTS,
    EmptyPolygon,
    InvalidCenter,
    buffer_polygon,
    contains_points,
    ensure_valid_polygon,
    polygon_to_lonlat,
    unproject_xy,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawnGeometry:
    polygon: Polygon
    center: Optional[Tuple[float, float]] = None
    radius_km: Optional[float] = None

    @property
    def kind(self) -> str:
        return "buffer" if self.center is not None else "polygon"

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"kind": self.kind, "ring": polygon_to_lonlat(self.polygon)}
        if self.center is not None:
            lng, lat = unproject_xy(self.center[0], self.center[1])
            out["center"] = [float(lng), float(lat)]
            out["radius_km"] = self.radius_km
        return out


@dataclass(frozen=True)
class PendingBuffer:
    """A chosen buffer centre waiting for the user to supply a radius."""

    center: Tuple[float, float]

    def center_lonlat(self) -> List[float]:
        lng, lat = unproject_xy(self.center[0], self.center[1])
        return [float(lng), float(lat)]


class SpatialSelectionController:
    def __init__(self, *, buffer_segments: int = DEFAULT_BUFFER_SEGMENTS) -> None:
        self.buffer_segments = buffer_segments
        self.draw_mode = DrawMode.IDLE
        self.geometry: Optional[DrawnGeometry] = None
        self.pending: Optional[PendingBuffer] = None
        self.dimmed: Dict[str, bool] = {}
        self._base: pd.DataFrame = pd.DataFrame(columns=["id", "x", "y"])

    @property
    def has_geometry(self) -> bool:
        return self.geometry is not None

    def load_base_set(self, base_set: pd.DataFrame) -> None:
        """Track a new base set without evaluating any geometry against it."""
        self._base = base_set
        self.dimmed = {str(i): False for i in base_set["id"]} if not base_set.empty else {}

    def _reset_drawing(self) -> None:
        self.geometry = None
        self.pending = None
        self.dimmed = {k: False for k in self.dimmed}

    def _enter(self, mode: DrawMode) -> DrawMode:
        if self.draw_mode == mode:
            self.draw_mode = DrawMode.IDLE
            return self.draw_mode
        # A new draw session starts from a clean map.
        self._reset_drawing()
        self.draw_mode = mode
        return self.draw_mode

    def enter_draw_polygon(self) -> DrawMode:
        return self._enter(DrawMode.DRAWING_POLYGON)

    def enter_draw_buffer(self) -> DrawMode:
        return self._enter(DrawMode.DRAWING_BUFFER)

    def _select(self, geometry: DrawnGeometry) -> SpatialSelection:
        base = self._base
        if base.empty:
            inside = []
            self.dimmed = {}
        else:
            mask = contains_points(geometry.polygon, base["x"].to_numpy(), base["y"].to_numpy())
            ids = base["id"].astype(str).tolist()
            self.dimmed = {rid: not hit for rid, hit in zip(ids, mask)}
            inside = [rid for rid, hit in zip(ids, mask) if hit]
        self.geometry = geometry
        logger.debug("Spatial %s selected %d of %d records", geometry.kind, len(inside), len(base))
        return SpatialSelection.active(inside)

    def on_polygon_drawn(self, polygon: Polygon) -> SpatialSelection:
        try:
            polygon = ensure_valid_polygon(polygon)
        except EmptyPolygon:
            self._reset_drawing()
            self.draw_mode = DrawMode.IDLE
            raise
        self.pending = None
        self.draw_mode = DrawMode.IDLE
        return self._select(DrawnGeometry(polygon))

    def on_buffer_point_chosen(self, center: Tuple[float, float]) -> PendingBuffer:
        x, y = float(center[0]), float(center[1])
        if not (math.isfinite(x) and math.isfinite(y)):
            raise InvalidCenter(f"buffer centre ({x}, {y}) is not on the map")
        self.pending = PendingBuffer((x, y))
        self.draw_mode = DrawMode.IDLE
        return self.pending

    def confirm_buffer(self, center: Tuple[float, float], radius_km: float) -> SpatialSelection:
        # buffer_polygon raises InvalidRadius before anything here changes
        polygon = buffer_polygon(center, radius_km, segments=self.buffer_segments)
        self.pending = None
        self.draw_mode = DrawMode.IDLE
        return self._select(DrawnGeometry(polygon, center=(float(center[0]), float(center[1])), radius_km=float(radius_km)))

    def recompute_against_base_set(self, base_set: pd.DataFrame) -> SpatialSelection:
        self._base = base_set
        if self.geometry is None:
            self.dimmed = {str(i): False for i in base_set["id"]} if not base_set.empty else {}
            return SpatialSelection.none()
        return self._select(self.geometry)

    def cancel(self) -> None:
        self.pending = None
        self.draw_mode = DrawMode.IDLE

    def clear(self) -> SpatialSelection:
        self._reset_drawing()
        self.draw_mode = DrawMode.IDLE
        return SpatialSelection.none()

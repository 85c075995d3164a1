"""Reconciliation loop.

Every user action enters through one ``Dashboard`` method, updates the filter
store and/or the spatial controller, then runs ``_reconcile`` exactly once:

1. base set from the categorical filters
2. spatial selection against that base set (or the one the action just
   computed, which is applied as-is)
3. final set
4. KPIs and chart inputs from the final set
5. dimming flags for the map

Renderers are notified once per action with the resulting ``DashboardView``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import altair as alt
import pandas as pd
from shapely.geometry import Polygon

from surveillance.charts import build_charts, to_vega_spec
from surveillance.config import DashboardSettings
from surveillance.data import load_dataset
from surveillance.filters import FilterState, FilterStore, SpatialSelection
from surveillance.geometry import EmptyPolygon, SpatialSelectionError, polygon_from_lonlat, project_point
from surveillance.metrics import compute_kpis, summarize
from surveillance.spatial import SpatialSelectionController


logger = logging.getLogger(__name__)

DatasetProvider = Callable[[], pd.DataFrame]
Renderer = Callable[["DashboardView"], None]
LonLat = Tuple[float, float]


@dataclass(frozen=True)
class DashboardView:
    state: FilterState
    base: pd.DataFrame
    final: pd.DataFrame
    kpis: Dict[str, int]
    dimmed: Dict[str, bool]
    geometry: Optional[Dict[str, Any]] = None
    pending_buffer: Optional[List[float]] = None
    notice: Optional[str] = None
    _charts: Dict[str, alt.Chart] = field(default_factory=dict, repr=False, compare=False)

    @property
    def final_ids(self) -> List[str]:
        return self.final["id"].astype(str).tolist()

    def charts(self) -> Dict[str, alt.Chart]:
        if not self._charts:
            self._charts.update(build_charts(self.final, self.state.categorical.severity))
        return self._charts

    def map_points(self) -> pd.DataFrame:
        """Base-set records with their dimming flag, for map styling."""
        if self.base.empty:
            return self.base.assign(dimmed=pd.Series(dtype=bool))
        return self.base.assign(dimmed=self.base["id"].map(self.dimmed).fillna(False).astype(bool))

    def to_payload(self, *, include_charts: bool = True) -> Dict[str, Any]:
        state = self.state
        payload: Dict[str, Any] = {
            "state": {
                "disease": state.categorical.disease,
                "severity": state.categorical.severity,
                "draw_mode": state.draw_mode.value,
                "spatial_active": state.spatial.is_active,
                "spatial_ids": sorted(state.spatial.included_ids) if state.spatial.is_active else None,
            },
            "kpis": self.kpis,
            "records": self.final.drop(columns=["x", "y"], errors="ignore").to_dict(orient="records"),
            "map_points": self.map_points().drop(columns=["x", "y"], errors="ignore").to_dict(orient="records"),
            "geometry": self.geometry,
            "pending_buffer": self.pending_buffer,
            "notice": self.notice,
        }
        payload.update(summarize(self.final))
        if include_charts:
            payload["charts"] = {name: to_vega_spec(chart) for name, chart in self.charts().items()}
        return payload


class Dashboard:
    """Owns the dataset, the filter store and the spatial controller for one session."""

    def __init__(
        self,
        provider: Optional[DatasetProvider] = None,
        *,
        settings: Optional[DashboardSettings] = None,
        renderers: Iterable[Renderer] = (),
    ) -> None:
        self.settings = settings or DashboardSettings()
        self._provider = provider or (lambda: load_dataset(self.settings.record_count, self.settings.seed))
        self.store = FilterStore()
        self.controller = SpatialSelectionController(buffer_segments=self.settings.buffer_segments)
        self._renderers: List[Renderer] = list(renderers)
        self.records = self._provider()
        self.view = self._reconcile()

    @property
    def state(self) -> FilterState:
        return FilterState(
            categorical=self.store.categorical,
            spatial=self.store.spatial,
            draw_mode=self.controller.draw_mode,
        )

    def subscribe(self, renderer: Renderer) -> None:
        self._renderers.append(renderer)

    def _reconcile(self, selection: Optional[SpatialSelection] = None, *, notice: Optional[str] = None) -> DashboardView:
        base = self.store.apply_base_filter(self.records)

        if selection is None:
            if self.controller.has_geometry:
                selection = self.controller.recompute_against_base_set(base)
            else:
                self.controller.load_base_set(base)
                selection = SpatialSelection.none()
        self.store.set_spatial(selection)

        final = self.store.final_set(self.records)
        kpis = compute_kpis(final)
        pending = self.controller.pending
        geometry = self.controller.geometry

        view = DashboardView(
            state=self.state,
            base=base,
            final=final,
            kpis=kpis,
            dimmed=dict(self.controller.dimmed),
            geometry=geometry.to_dict() if geometry is not None else None,
            pending_buffer=pending.center_lonlat() if pending is not None else None,
            notice=notice,
        )
        self.view = view
        logger.debug(
            "Reconciled: base=%d final=%d spatial=%s mode=%s",
            len(base),
            len(final),
            "active" if selection.is_active else "none",
            view.state.draw_mode.value,
        )
        for render in self._renderers:
            render(view)
        return view

    # ---------- categorical ----------

    def set_disease(self, value: object) -> DashboardView:
        self.store.set_disease(value)
        return self._reconcile()

    def severity_clicked(self, value: object) -> DashboardView:
        self.store.set_severity(value)
        return self._reconcile()

    def chart_clicked(self, kind: str, value: object) -> DashboardView:
        if kind == "severity":
            return self.severity_clicked(value)
        if kind == "country":
            # Country clicks are accepted from the bar chart but do not filter.
            logger.info("Ignoring country click on %r; filtering is by disease", value)
            return self.view
        raise ValueError(f"unknown chart click kind {kind!r}")

    # ---------- spatial ----------

    def begin_polygon_draw(self) -> DashboardView:
        self.controller.enter_draw_polygon()
        return self._reconcile()

    def begin_buffer_draw(self) -> DashboardView:
        self.controller.enter_draw_buffer()
        return self._reconcile()

    def polygon_drawn(self, polygon: Union[Polygon, Sequence[Sequence[float]]]) -> DashboardView:
        """Apply a finished drawing; plain coordinate rings are (lng, lat) pairs."""
        try:
            if not isinstance(polygon, Polygon):
                polygon = polygon_from_lonlat(polygon)
            selection = self.controller.on_polygon_drawn(polygon)
        except EmptyPolygon as exc:
            logger.warning("Discarding drawn polygon: %s", exc)
            self.controller.clear()
            return self._reconcile(notice=str(exc))
        # The controller has just evaluated this base set; don't run containment twice.
        return self._reconcile(selection)

    def buffer_point_chosen(self, center: LonLat) -> DashboardView:
        self.controller.on_buffer_point_chosen(project_point(center[0], center[1]))
        return self._reconcile()

    def confirm_buffer(self, center: Optional[LonLat], radius_km: float) -> DashboardView:
        """Buffer around ``center`` (lng, lat), or around the pending point when it is None."""
        if center is not None:
            xy = project_point(center[0], center[1])
        elif self.controller.pending is not None:
            xy = self.controller.pending.center
        else:
            raise SpatialSelectionError("no buffer centre has been chosen")
        selection = self.controller.confirm_buffer(xy, radius_km)
        return self._reconcile(selection)

    def cancel_draw(self) -> DashboardView:
        self.controller.cancel()
        return self._reconcile()

    def clear_selection(self) -> DashboardView:
        self.controller.clear()
        return self._reconcile()

    def refresh(self) -> DashboardView:
        self.store.reset()
        self.controller.clear()
        self.records = self._provider()
        logger.info("Dataset refreshed: %d records", len(self.records))
        return self._reconcile()

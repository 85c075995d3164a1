from __future__ import annotations

import logging
import math
import threading
from typing import Callable, Optional

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import BufferConfirmModel, ChartClickModel, DiseaseModel, MetaListResponse, PointModel, PolygonModel
from surveillance.config import settings_from_env
from surveillance.data import DISEASES, SEVERITY_ORDER
from surveillance.filters import CategoricalFilter, normalize_filters
from surveillance.reconcile import Dashboard, DashboardView


settings = settings_from_env()
app = FastAPI(title="Surveillance Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One dashboard session per process; handlers may run in a thread pool.
_dashboard: Optional[Dashboard] = None
_lock = threading.Lock()


def get_dashboard() -> Dashboard:
    global _dashboard
    if _dashboard is None:
        _dashboard = Dashboard(settings=settings)
    return _dashboard


def set_dashboard(dashboard: Optional[Dashboard]) -> None:
    global _dashboard
    with _lock:
        _dashboard = dashboard


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _filters_from_model(model: DiseaseModel) -> CategoricalFilter:
    return normalize_filters(model.model_dump())


def _error(exc: Exception, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _apply(label: str, action: Callable[[Dashboard], DashboardView], *, include_charts: bool = True) -> JSONResponse:
    try:
        with _lock:
            view = action(get_dashboard())
            payload = view.to_payload(include_charts=include_charts)
        return _json(payload)
    except ValueError as exc:
        # InvalidRadius, unknown filter values and the like; state is unchanged.
        logger.info("%s rejected: %s", label, exc)
        return _error(exc, 422)
    except Exception as exc:
        logger.exception("%s failed", label)
        return _error(exc, 500)


@app.get("/")
def root():
    return {"status": "ok", "message": "Surveillance Dashboard API"}


@app.get("/health")
def health():
    return {"status": "healthy", "api_version": app.version}


@app.get("/meta/diseases", response_model=MetaListResponse)
def meta_diseases():
    return MetaListResponse(values=sorted(DISEASES))


@app.get("/meta/severities", response_model=MetaListResponse)
def meta_severities():
    return MetaListResponse(values=list(SEVERITY_ORDER))


@app.get("/state")
def state(charts: bool = True):
    return _apply("state", lambda d: d.view, include_charts=charts)


@app.post("/filters/disease")
def filter_disease(body: DiseaseModel):
    return _apply("filter_disease", lambda d: d.set_disease(_filters_from_model(body).disease))


@app.post("/chart/click")
def chart_click(body: ChartClickModel):
    return _apply("chart_click", lambda d: d.chart_clicked(body.kind, body.value))


@app.post("/draw/polygon")
def draw_polygon():
    return _apply("draw_polygon", lambda d: d.begin_polygon_draw())


@app.post("/draw/buffer")
def draw_buffer():
    return _apply("draw_buffer", lambda d: d.begin_buffer_draw())


@app.post("/spatial/polygon")
def spatial_polygon(body: PolygonModel):
    return _apply("spatial_polygon", lambda d: d.polygon_drawn(body.coordinates))


@app.post("/spatial/buffer-point")
def spatial_buffer_point(body: PointModel):
    return _apply("spatial_buffer_point", lambda d: d.buffer_point_chosen((body.lng, body.lat)))


@app.post("/spatial/buffer-confirm")
def spatial_buffer_confirm(body: BufferConfirmModel):
    center = (body.center.lng, body.center.lat) if body.center is not None else None
    return _apply("spatial_buffer_confirm", lambda d: d.confirm_buffer(center, body.radius_km))


@app.post("/spatial/cancel")
def spatial_cancel():
    return _apply("spatial_cancel", lambda d: d.cancel_draw())


@app.post("/spatial/clear")
def spatial_clear():
    return _apply("spatial_clear", lambda d: d.clear_selection())


@app.post("/refresh")
def refresh():
    return _apply("refresh", lambda d: d.refresh())


@app.get("/export")
def export_final_set():
    with _lock:
        final = get_dashboard().view.final
    export_df = final.drop(columns=["x", "y"], errors="ignore")
    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": "attachment; filename=surveillance.csv"})

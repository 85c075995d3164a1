from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class DiseaseModel(BaseModel):
    disease: str = "All"


class ChartClickModel(BaseModel):
    kind: Literal["severity", "country"]
    value: str


class PolygonModel(BaseModel):
    # (lng, lat) pairs, GeoJSON order; the ring may or may not be closed.
    coordinates: List[List[float]] = Field(default_factory=list)


class PointModel(BaseModel):
    # Web Mercator clips at +/-85.0511 degrees latitude.
    lng: float = Field(ge=-180.0, le=180.0)
    lat: float = Field(ge=-85.0511, le=85.0511)


class BufferConfirmModel(BaseModel):
    radius_km: float
    center: Optional[PointModel] = None


class MetaListResponse(BaseModel):
    values: List[str]

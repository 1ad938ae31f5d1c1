from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ViewState(BaseModel):
    center_lat: float = Field(ge=-90.0, le=90.0)
    center_lon: float = Field(ge=-180.0, le=180.0)
    mode: str
    radius_km: float


class ForwardResult(BaseModel):
    view: ViewState
    lat: float
    lon: float
    x_km: float
    y_km: float
    clamped: bool = False


class InverseResult(BaseModel):
    view: ViewState
    x_km: float
    y_km: float
    lat: float
    lon: float
    label: str


class DistanceResult(BaseModel):
    lat1: float
    lon1: float
    lat2: float
    lon2: float
    distance_km: float = Field(ge=0.0)
    azimuth_to_deg: float = Field(ge=0.0, lt=360.0)
    azimuth_from_deg: float = Field(ge=0.0, lt=360.0)


class SubsolarResult(BaseModel):
    at: str
    lat: float
    lon: float
    label: str


class LayerInfo(BaseModel):
    name: str
    path: str
    strategy: str
    available: bool
    rings: int | None = None
    vertices: int | None = None
    warnings: list[str] = Field(default_factory=list)


class NightMeshResult(BaseModel):
    view: ViewState
    at: str
    subsolar: SubsolarResult
    triangle_count: int
    # Flat (x_km, y_km, alpha) rows, three per triangle.
    vertices: list[list[float]]
    meta: dict[str, Any] = Field(default_factory=dict)

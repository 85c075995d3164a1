from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional


DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8501"]


@dataclass(frozen=True)
class DashboardSettings:
    record_count: int = 200
    seed: Optional[int] = None
    buffer_segments: int = 64
    default_radius_km: float = 100.0
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(",")
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def normalize_settings(raw: Mapping[str, object]) -> DashboardSettings:
    record_count = raw.get("record_count", 200)
    try:
        record_count = int(record_count)
    except Exception:
        record_count = 200
    record_count = max(1, min(5000, record_count))

    seed = raw.get("seed")
    if seed in (None, ""):
        seed = None
    else:
        try:
            seed = int(seed)
        except Exception:
            seed = None

    segments = raw.get("buffer_segments", 64)
    try:
        segments = int(segments)
    except Exception:
        segments = 64
    # shapely wants quadrant segments, so round to a multiple of four
    segments = max(8, min(256, segments - segments % 4))

    radius = raw.get("default_radius_km", 100.0)
    try:
        radius = float(radius)
    except Exception:
        radius = 100.0
    if radius <= 0:
        radius = 100.0

    origins = _as_str_list(raw.get("cors_origins")) or list(DEFAULT_CORS_ORIGINS)
    return DashboardSettings(
        record_count=record_count,
        seed=seed,
        buffer_segments=segments,
        default_radius_km=radius,
        cors_origins=origins,
    )


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> DashboardSettings:
    """Build settings from ``SURVEILLANCE_*`` environment variables."""
    env = os.environ if environ is None else environ
    raw = {
        "record_count": env.get("SURVEILLANCE_RECORD_COUNT", 200),
        "seed": env.get("SURVEILLANCE_SEED"),
        "buffer_segments": env.get("SURVEILLANCE_BUFFER_SEGMENTS", 64),
        "default_radius_km": env.get("SURVEILLANCE_DEFAULT_RADIUS_KM", 100.0),
        "cors_origins": env.get("SURVEILLANCE_CORS_ORIGINS"),
    }
    return normalize_settings(raw)

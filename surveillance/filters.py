from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional

import pandas as pd

from surveillance.data import ALL, DISEASES, SEVERITY_ORDER


class DrawMode(str, Enum):
    IDLE = "idle"
    DRAWING_POLYGON = "drawing_polygon"
    DRAWING_BUFFER = "drawing_buffer"


@dataclass(frozen=True)
class CategoricalFilter:
    disease: str = ALL
    severity: str = ALL


@dataclass(frozen=True)
class SpatialSelection:
    """``included_ids is None`` means no spatial restriction."""

    included_ids: Optional[FrozenSet[str]] = None

    @classmethod
    def none(cls) -> "SpatialSelection":
        return cls(None)

    @classmethod
    def active(cls, ids: Iterable[str]) -> "SpatialSelection":
        return cls(frozenset(str(i) for i in ids))

    @property
    def is_active(self) -> bool:
        return self.included_ids is not None


@dataclass(frozen=True)
class FilterState:
    categorical: CategoricalFilter = field(default_factory=CategoricalFilter)
    spatial: SpatialSelection = field(default_factory=SpatialSelection.none)
    draw_mode: DrawMode = DrawMode.IDLE


def _check_choice(value: object, options: Iterable[str], label: str) -> str:
    value = ALL if value is None else str(value).strip()
    if not value or value.lower() == ALL.lower():
        return ALL
    if value not in options:
        raise ValueError(f"unknown {label} {value!r}")
    return value


def normalize_filters(raw: Mapping[str, object]) -> CategoricalFilter:
    return CategoricalFilter(
        disease=_check_choice(raw.get("disease"), DISEASES, "disease"),
        severity=_check_choice(raw.get("severity"), SEVERITY_ORDER, "severity"),
    )


class FilterStore:
    """Categorical filters plus the current spatial selection."""

    def __init__(self) -> None:
        self.categorical = CategoricalFilter()
        self.spatial = SpatialSelection.none()

    def set_disease(self, value: object) -> CategoricalFilter:
        disease = _check_choice(value, DISEASES, "disease")
        self.categorical = CategoricalFilter(disease=disease, severity=self.categorical.severity)
        return self.categorical

    def set_severity(self, value: object) -> CategoricalFilter:
        # Click-to-toggle: picking the active severity again clears it.
        severity = _check_choice(value, SEVERITY_ORDER, "severity")
        if severity == self.categorical.severity:
            severity = ALL
        self.categorical = CategoricalFilter(disease=self.categorical.disease, severity=severity)
        return self.categorical

    def set_spatial(self, selection: SpatialSelection) -> None:
        self.spatial = selection

    def reset(self) -> None:
        self.categorical = CategoricalFilter()
        self.spatial = SpatialSelection.none()

    def apply_base_filter(self, records: pd.DataFrame) -> pd.DataFrame:
        if records.empty:
            return records
        mask = pd.Series(True, index=records.index)
        if self.categorical.disease != ALL:
            mask &= records["disease"] == self.categorical.disease
        if self.categorical.severity != ALL:
            mask &= records["severity"] == self.categorical.severity
        return records[mask]

    def final_set(self, records: pd.DataFrame) -> pd.DataFrame:
        base = self.apply_base_filter(records)
        if not self.spatial.is_active or base.empty:
            return base
        return base[base["id"].isin(list(self.spatial.included_ids))]

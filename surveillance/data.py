from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from surveillance.geometry import project_lonlat


logger = logging.getLogger(__name__)

ALL = "All"

DISEASES = ["Influenza B", "Measles", "Norovirus", "Viral Meningitis", "Legionnaires"]
COUNTRIES = ["France", "Germany", "Italy", "Spain", "Poland", "Sweden", "Romania", "Greece"]

# Approximate country centres, records are scattered around them.
COUNTRY_COORDS: Dict[str, Tuple[float, float]] = {
    "France": (46.2276, 2.2137),
    "Germany": (51.1657, 10.4515),
    "Italy": (41.8719, 12.5674),
    "Spain": (40.4637, -3.7492),
    "Poland": (51.9194, 19.1451),
    "Sweden": (60.1282, 18.6435),
    "Romania": (45.9432, 24.9668),
    "Greece": (39.0742, 21.8243),
}

LAT_SCATTER_DEG = 6.0
LNG_SCATTER_DEG = 8.0
DATA_YEAR = 2024

RECORD_COLUMNS = ["id", "disease", "country", "cases", "severity", "lat", "lng", "x", "y", "date"]


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


SEVERITY_ORDER = [s.value for s in Severity]

SEVERITY_COLORS = {
    Severity.LOW.value: "#ed87ff",
    Severity.MEDIUM.value: "#D627F5",
    Severity.HIGH.value: "#AB09C8",
    Severity.CRITICAL.value: "#860779",
}

# Lower bound (inclusive) of each band above Low.
SEVERITY_THRESHOLDS = [
    (450, Severity.CRITICAL),
    (300, Severity.HIGH),
    (100, Severity.MEDIUM),
]


def severity_for_cases(cases: int) -> Severity:
    for bound, severity in SEVERITY_THRESHOLDS:
        if cases >= bound:
            return severity
    return Severity.LOW


@dataclass(frozen=True)
class Record:
    id: str
    disease: str
    country: str
    cases: int
    lat: float
    lng: float
    date: date

    def __post_init__(self) -> None:
        if self.cases <= 0:
            raise ValueError(f"cases must be positive, got {self.cases}")

    @property
    def severity(self) -> Severity:
        return severity_for_cases(self.cases)


def generate_mock_data(count: int = 200, seed: Optional[int] = None) -> List[Record]:
    """Synthetic surveillance records scattered around each country's centre."""
    rng = np.random.default_rng(seed)
    records: List[Record] = []
    for i in range(max(0, int(count))):
        country = COUNTRIES[int(rng.integers(len(COUNTRIES)))]
        disease = DISEASES[int(rng.integers(len(DISEASES)))]
        base_lat, base_lng = COUNTRY_COORDS[country]
        lat = base_lat + (float(rng.random()) - 0.5) * LAT_SCATTER_DEG
        lng = base_lng + (float(rng.random()) - 0.5) * LNG_SCATTER_DEG
        cases = int(rng.integers(10, 510))
        day = date(DATA_YEAR, int(rng.integers(1, 13)), int(rng.integers(1, 29)))
        records.append(
            Record(id=f"evt-{i}", disease=disease, country=country, cases=cases, lat=lat, lng=lng, date=day)
        )
    logger.info("Generated %d mock records (seed=%s)", len(records), seed)
    return records


def records_to_frame(records: Iterable[Record]) -> pd.DataFrame:
    rows = []
    for rec in records:
        row = asdict(rec)
        row["severity"] = rec.severity.value
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)

    df = pd.DataFrame(rows)
    if df["id"].duplicated().any():
        dupes = sorted(df.loc[df["id"].duplicated(), "id"].unique().tolist())
        raise ValueError(f"duplicate record ids: {dupes[:5]}")
    xs, ys = project_lonlat(df["lng"].to_numpy(dtype=float), df["lat"].to_numpy(dtype=float))
    df["x"] = xs
    df["y"] = ys
    df["cases"] = df["cases"].astype(int)
    return df[RECORD_COLUMNS].reset_index(drop=True)


def load_dataset(count: int = 200, seed: Optional[int] = None) -> pd.DataFrame:
    return records_to_frame(generate_mock_data(count, seed))

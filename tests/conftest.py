from datetime import date

import pytest

from surveillance.data import Record, records_to_frame

# Roughly the area around France, as a (lng, lat) ring.
FRANCE_RING = [[0.0, 44.0], [5.0, 44.0], [5.0, 48.0], [0.0, 48.0], [0.0, 44.0]]


def make_record(rid, *, disease="Measles", country="France", cases=50, lat=46.0, lng=2.0, day=None):
    return Record(
        id=rid,
        disease=disease,
        country=country,
        cases=cases,
        lat=lat,
        lng=lng,
        date=day or date(2024, 3, 1),
    )


@pytest.fixture
def three_records():
    """R1/R2 in France, R3 in Germany; severities Low, High, Critical."""
    return records_to_frame(
        [
            make_record("R1", country="France", cases=50, lat=46.0, lng=2.0),
            make_record("R2", country="France", cases=350, lat=46.5, lng=2.5, disease="Norovirus", day=date(2024, 4, 2)),
            make_record("R3", country="Germany", cases=500, lat=51.0, lng=10.0, day=date(2024, 5, 3)),
        ]
    )


@pytest.fixture
def provider(three_records):
    calls = {"count": 0}

    def _provide():
        calls["count"] += 1
        return three_records.copy()

    _provide.calls = calls
    return _provide

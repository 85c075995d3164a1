"""
Tests for the surveillance dashboard HTTP API
"""
import pytest
from fastapi.testclient import TestClient

from api.main import app, set_dashboard
from surveillance.reconcile import Dashboard
from tests.conftest import FRANCE_RING

client = TestClient(app)


@pytest.fixture(autouse=True)
def fixed_dashboard(provider):
    set_dashboard(Dashboard(provider))
    yield
    set_dashboard(None)


class TestHealthEndpoints:
    def test_root(self):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health(self):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_meta(self):
        assert "Measles" in client.get("/meta/diseases").json()["values"]
        assert client.get("/meta/severities").json()["values"] == ["Low", "Medium", "High", "Critical"]


class TestFilterEndpoints:
    def test_state(self):
        data = client.get("/state").json()
        assert data["kpis"]["total_cases"] == 900
        assert data["state"]["disease"] == "All"
        assert len(data["records"]) == 3
        assert data["records"][0]["date"] == "2024-03-01"
        assert "charts" in data
        assert {row["severity"] for row in data["severity_share"]} == {"Low", "Medium", "High", "Critical"}
        assert len(data["by_country"]) == 3

    def test_state_without_charts(self):
        assert "charts" not in client.get("/state", params={"charts": False}).json()

    def test_severity_click_toggles(self):
        data = client.post("/chart/click", json={"kind": "severity", "value": "Critical"}).json()
        assert [r["id"] for r in data["records"]] == ["R3"]
        assert data["kpis"]["critical_cases"] == 500

        data = client.post("/chart/click", json={"kind": "severity", "value": "Critical"}).json()
        assert data["state"]["severity"] == "All"
        assert len(data["records"]) == 3

    def test_unknown_disease_is_422(self):
        response = client.post("/filters/disease", json={"disease": "Cholera"})
        assert response.status_code == 422
        assert response.json()["type"] == "ValueError"

    def test_disease_body_is_normalized(self):
        client.post("/filters/disease", json={"disease": "Norovirus"})
        data = client.post("/filters/disease", json={"disease": " all "}).json()
        assert data["state"]["disease"] == "All"
        assert len(data["records"]) == 3

    def test_disease_filter(self):
        data = client.post("/filters/disease", json={"disease": "Norovirus"}).json()
        assert [r["id"] for r in data["records"]] == ["R2"]


class TestSpatialEndpoints:
    def test_polygon_then_disease_then_clear(self):
        client.post("/draw/polygon")
        data = client.post("/spatial/polygon", json={"coordinates": FRANCE_RING}).json()
        assert data["state"]["spatial_ids"] == ["R1", "R2"]

        data = client.post("/filters/disease", json={"disease": "Measles"}).json()
        assert [r["id"] for r in data["records"]] == ["R1"]

        data = client.post("/spatial/clear").json()
        assert data["state"]["spatial_active"] is False
        assert [r["id"] for r in data["records"]] == ["R1", "R3"]

    def test_degenerate_polygon_returns_notice(self):
        client.post("/draw/polygon")
        response = client.post("/spatial/polygon", json={"coordinates": [[0, 0], [1, 1]]})
        assert response.status_code == 200
        assert response.json()["notice"]
        assert response.json()["state"]["spatial_active"] is False

    def test_buffer_flow(self):
        client.post("/draw/buffer")
        data = client.post("/spatial/buffer-point", json={"lng": 10.0, "lat": 51.0}).json()
        assert data["pending_buffer"] == pytest.approx([10.0, 51.0])

        response = client.post("/spatial/buffer-confirm", json={"radius_km": 0})
        assert response.status_code == 422
        assert response.json()["type"] == "InvalidRadius"

        data = client.post("/spatial/buffer-confirm", json={"radius_km": 50}).json()
        assert [r["id"] for r in data["records"]] == ["R3"]
        assert data["geometry"]["kind"] == "buffer"

    def test_buffer_point_off_the_map_is_422(self):
        client.post("/draw/buffer")
        response = client.post("/spatial/buffer-point", json={"lng": 10.0, "lat": 95.0})
        assert response.status_code == 422
        assert client.get("/state", params={"charts": False}).json()["pending_buffer"] is None

        response = client.post("/spatial/buffer-confirm", json={"radius_km": 50})
        assert response.status_code == 422
        assert response.json()["type"] == "SpatialSelectionError"

    def test_buffer_confirm_center_off_the_map_is_422(self):
        response = client.post("/spatial/buffer-confirm", json={"radius_km": 50, "center": {"lng": 200.0, "lat": 0.0}})
        assert response.status_code == 422

    def test_polygon_off_the_map_returns_notice(self):
        client.post("/draw/polygon")
        response = client.post("/spatial/polygon", json={"coordinates": [[0, 80], [10, 95], [20, 80]]})
        assert response.status_code == 200
        assert response.json()["notice"]
        assert response.json()["state"]["spatial_active"] is False

    def test_cancel(self):
        client.post("/draw/buffer")
        client.post("/spatial/buffer-point", json={"lng": 10.0, "lat": 51.0})
        data = client.post("/spatial/cancel").json()
        assert data["pending_buffer"] is None
        assert data["state"]["draw_mode"] == "idle"

    def test_refresh(self):
        client.post("/filters/disease", json={"disease": "Measles"})
        data = client.post("/refresh").json()
        assert data["state"]["disease"] == "All"
        assert len(data["records"]) == 3

    def test_export_csv(self):
        client.post("/chart/click", json={"kind": "severity", "value": "High"})
        response = client.get("/export")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("id,disease,country,cases,severity")
        assert len(lines) == 2

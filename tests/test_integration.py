import json

import pytest
from fastapi.testclient import TestClient

from fieldmap.config import settings
from fieldmap.context import AppContext
from fieldmap.main import create_app
from fieldmap.persistence.filesystem import KMLFileStorage
from fieldmap.persistence.remote_routes import RemoteRouteStore
from fieldmap.services.routing.service import RoadRouter

from conftest import SAMPLE_KML

API = settings.api_prefix
HERE = {"latitude": 44.96544, "longitude": 9.58337, "accuracy": 8.0}


@pytest.fixture
def client(kml_storage: KMLFileStorage, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "osrm_base_url", None)
    monkeypatch.setattr("fieldmap.persistence.remote_routes.get_supabase_client", lambda: None)
    context = AppContext.build(
        kml_directory=kml_storage.root,
        database_path=":memory:",
        router=RoadRouter(),
        remote=RemoteRouteStore(),
    )
    with TestClient(create_app(context)) as test_client:
        yield test_client


def _load(client: TestClient, zone: int = 9, plan: str = "B") -> dict:
    response = client.post(f"{API}/zones/{zone}/{plan}/load")
    assert response.status_code == 200, response.text
    return response.json()


def test_health_endpoints(client: TestClient) -> None:
    assert client.get("/").json()["status"] == "running"
    assert client.get(f"{API}/health").json() == {"status": "ok"}
    assert client.get(f"{API}/health/osrm").json()["configured"] is False

    database = client.get(f"{API}/health/database").json()
    assert database["connected"] is True
    assert database["sync_configured"] is False


def test_kml_file_endpoints(client: TestClient) -> None:
    files = client.get(f"{API}/kml/files").json()
    assert {(item["zone"], item["plan"]) for item in files} == {(9, "A"), (9, "B")}

    validation = client.get(f"{API}/kml/9/B/validation").json()
    assert validation["is_valid"] is True
    assert validation["route_count"] == 1
    assert client.get(f"{API}/kml/3/A/validation").status_code == 404

    report = client.get(f"{API}/kml/9/B/report").json()
    assert report["report"].startswith("=== KML VALIDATION REPORT ===")
    assert "Status: VALID" in report["report"]

    assert client.put(f"{API}/kml/4/A", json={"content": "<kml>"}).status_code == 400
    uploaded = client.put(f"{API}/kml/4/a", json={"content": SAMPLE_KML})
    assert uploaded.status_code == 200
    assert uploaded.json()["exists"] is True
    assert uploaded.json()["filename"] == "Zona4_SottozonaA.kml"


def test_load_zone(client: TestClient) -> None:
    body = _load(client)

    assert body["success"] is True
    assert body["routes"][0]["name"] == "Giro Centro"
    assert body["routes"][0]["point_count"] == 3
    assert body["is_valid"] is True

    current = client.get(f"{API}/zones/current").json()
    assert (current["zone"], current["plan"], current["is_loaded"]) == (9, "B", True)
    assert client.get(f"{API}/kml/cache").json()["cached_keys"] == ["9_B"]

    geojson = client.get(f"{API}/zones/current/geojson").json()
    assert geojson["type"] == "FeatureCollection"

    assert client.post(f"{API}/zones/7/A/load").status_code == 404
    assert client.post(f"{API}/zones/9/C/load").status_code == 422


def test_location_manual_stops_and_selection(client: TestClient) -> None:
    _load(client)

    bad = client.post(f"{API}/zones/manual-stops", json={"zone_id": 9, "plan": "B", "name": "", "latitude": 1, "longitude": 2})
    assert bad.status_code == 422
    created = client.post(
        f"{API}/zones/manual-stops",
        json={"zone_id": 9, "plan": "b", "name": "Cancello", "latitude": 44.96552, "longitude": 9.58331},
    )
    assert created.status_code == 201
    stop = created.json()
    assert stop["id"].startswith("manual_")
    assert stop["is_manual"] is True
    assert [item["name"] for item in client.get(f"{API}/zones/manual-stops").json()] == ["Cancello"]

    markers = client.post(f"{API}/zones/location", json=HERE).json()
    assert [marker["title"] for marker in markers] == ["Cancello"]
    assert markers[0]["distance"] == 10
    assert client.post(f"{API}/zones/location", json={"latitude": 120, "longitude": 9.5}).status_code == 422

    nearest = client.get(f"{API}/zones/nearest").json()
    assert nearest["stop"]["name"] == "Cancello"

    selected = client.post(f"{API}/zones/select", json={"stop_id": stop["id"]}).json()
    assert selected["navigation"]["can_navigate"] is True
    assert selected["navigation"]["distance_text"] == "10m"
    assert client.get(f"{API}/zones/current").json()["selected_stop"]["id"] == stop["id"]
    assert client.post(f"{API}/zones/select", json={"stop_id": "missing"}).status_code == 422

    assert client.post(f"{API}/zones/deselect").json() == {"success": True}
    assert client.get(f"{API}/zones/current").json()["selected_stop"] is None


def test_road_path_falls_back_without_osrm(client: TestClient) -> None:
    body = _load(client)
    route_id = body["routes"][0]["id"]

    path = client.get(f"{API}/zones/current/routes/{route_id}/road-path").json()

    assert path["is_fallback"] is True
    assert len(path["coordinates"]) == 3
    assert client.get(f"{API}/zones/current/routes/missing/road-path").status_code == 422


def test_run_flow(client: TestClient) -> None:
    assert client.post(f"{API}/runs/start", json={}).status_code == 409
    _load(client)
    client.post(f"{API}/zones/location", json=HERE)
    stop = client.post(
        f"{API}/zones/manual-stops",
        json={"zone_id": 9, "plan": "B", "name": "Cancello", "latitude": 44.96552, "longitude": 9.58331},
    ).json()

    assert client.post(f"{API}/runs/complete-stop", json={"stop_id": stop["id"]}).status_code == 409
    started = client.post(f"{API}/runs/start", json={"notes": "giro"})
    assert started.status_code == 201
    run = started.json()
    assert (run["zone_id"], run["plan"], run["status"]) == (9, "B", "active")
    assert client.post(f"{API}/runs/start", json={"zone_id": 9, "plan": "A"}).status_code == 409
    assert client.get(f"{API}/runs/active").json()["id"] == run["id"]

    done = client.post(f"{API}/runs/complete-stop", json={"stop_id": stop["id"], "notes": "ok"}).json()
    assert done["status"] == "completed"
    assert done["latitude"] == HERE["latitude"]
    assert client.get(f"{API}/runs/{run['id']}/stats").json()["completed"] == 1

    finished = client.post(f"{API}/runs/complete", json={"total_distance": 1200, "total_time": 900}).json()
    assert finished["status"] == "completed"
    assert client.get(f"{API}/runs/active").json() is None
    assert [item["id"] for item in client.get(f"{API}/runs/zone/9/B").json()] == [run["id"]]


def test_session_endpoints(client: TestClient) -> None:
    _load(client)
    client.post(
        f"{API}/zones/manual-stops",
        json={"zone_id": 9, "plan": "B", "name": "Cancello", "latitude": 44.96552, "longitude": 9.58331},
    )

    stats = client.get(f"{API}/session/stats").json()
    assert stats["database"]["manual_stops"] == 1
    assert stats["map"]["stop_count"] == 1

    exported = client.get(f"{API}/session/export")
    assert exported.headers["content-disposition"].startswith("attachment")
    assert json.loads(exported.text)["data"]["manual_stops"][0]["name"] == "Cancello"

    assert client.post(f"{API}/session/sync").json() == {"enabled": False, "saved": 0}

    assert client.put(f"{API}/session/settings/radius", json={"value": 150, "type": "number"}).json()["value"] == 150
    assert client.get(f"{API}/session/settings/radius").json()["value"] == 150

    assert client.post(f"{API}/session/reset").json() == {"success": True}
    assert client.get(f"{API}/zones/current").json()["zone"] is None
    assert client.get(f"{API}/session/stats").json()["database"]["total_stops"] == 0


def test_selected_stop_keeps_navigation_tracking(client: TestClient) -> None:
    _load(client)
    client.post(f"{API}/zones/location", json=HERE)
    stop = client.post(
        f"{API}/zones/manual-stops",
        json={"zone_id": 9, "plan": "B", "name": "Cancello", "latitude": 44.96552, "longitude": 9.58331},
    ).json()
    navigation = client.app.state.context.session.navigation

    client.post(f"{API}/zones/select", json={"stop_id": stop["id"]})
    assert navigation.is_tracking
    client.post(f"{API}/zones/location", json=HERE)
    assert navigation.is_tracking

    client.post(f"{API}/zones/deselect")
    assert not navigation.is_tracking

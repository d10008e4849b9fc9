"""
Tests for the HTTP view surface:
- Listing, map and analytics endpoints.
- Mutations and their error envelopes.
- Health reporting.
"""

# Third-party imports
from fastapi.testclient import TestClient
import pytest

# Local application imports
from civicsync.sync import SyncSession
from main import create_app

BASE = "/api/v1/reports"


@pytest.fixture
def client(remote, channel):
    """A client whose app runs a session over the in-memory fakes."""
    app = create_app(lambda: SyncSession(remote, channel, remote, reconciliation_timeout=0.5))
    with TestClient(app) as test_client:
        yield test_client


# --- Reads ---


def test_list_reports(client):
    response = client.get(f"{BASE}/")

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert [r["id"] for r in body["data"]] == ["r3", "r2", "r1"]
    assert body["meta"]["total_items"] == 3


def test_list_reports_with_filters(client):
    response = client.get(f"{BASE}/", params={"status": "open", "order": "asc"})

    assert [r["id"] for r in response.json()["data"]] == ["r1", "r2"]


def test_invalid_filter_is_a_bad_request(client):
    response = client.get(f"{BASE}/", params={"status": "finished"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "bad_request"


def test_map_excludes_reports_without_location(client):
    response = client.get(f"{BASE}/map")

    assert [r["id"] for r in response.json()["data"]] == ["r2", "r1"]


def test_analytics(client):
    data = client.get(f"{BASE}/analytics").json()["data"]

    assert data["total"] == 3
    assert data["by_status"]["resolved"] == 1
    assert sum(data["by_status"].values()) == 3


def test_get_report(client):
    response = client.get(f"{BASE}/r2")

    assert response.status_code == 200
    assert response.json()["data"]["category"] == "garbage"


def test_unknown_report_is_not_found(client):
    response = client.get(f"{BASE}/missing")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


# --- Writes ---


def test_update_status(client, remote):
    response = client.patch(f"{BASE}/r1/status", json={"status": "resolved"})

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "resolved"
    assert client.get(f"{BASE}/r1").json()["data"]["status"] == "resolved"
    assert remote.writes[0][0] == "write_status"


def test_failed_write_is_a_bad_gateway_and_rolls_back(client, remote):
    remote.write_mode = "fail"

    response = client.patch(f"{BASE}/r1/status", json={"status": "resolved"})

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "bad_gateway"
    assert client.get(f"{BASE}/r1").json()["data"]["status"] == "open"


def test_patch_rejects_remote_owned_fields(client, remote):
    response = client.patch(f"{BASE}/r1", json={"id": "other"})

    assert response.status_code == 400
    assert remote.writes == []


def test_patch_report(client):
    response = client.patch(f"{BASE}/r2", json={"title": "Bins overflowing"})

    assert response.status_code == 200
    assert response.json()["data"]["title"] == "Bins overflowing"


def test_submit_report(client, remote):
    response = client.post(
        f"{BASE}/",
        json={
            "title": "Graffiti",
            "description": "Wall by the park",
            "category": "vandalism",
            "latitude": 12.1,
            "longitude": 77.2,
        },
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] in remote.rows
    assert data["address"] == "Lat: 12.1, Lng: 77.2"
    assert len(client.get(f"{BASE}/").json()["data"]) == 4


# --- Health ---


def test_health_reports_sync_state(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["realtime"] == "connected"
    assert body["reports"] == 3
    assert body["last_error"] is None

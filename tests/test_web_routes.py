"""
Tests for the wizard HTTP driver.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from core.movement.schema import HOUSING_UNITS_TABLE
from core.wizard.schema import HORSES_TABLE
from web.app import create_app

TENANT = {"X-Tenant-ID": "t-1"}


@pytest.fixture
def client(config, records, storage):
    return TestClient(create_app(config, records=records, storage=storage))


def _open_horse(client):
    response = client.post("/wizards/horse", json={"mode": "create"}, headers=TENANT)
    assert response.status_code == 201
    return response.json()["session_id"]


class TestHealth:
    def test_health_endpoints(self, client):
        assert client.get("/").json() == {"status": "ok"}
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/api/health").json()["open_sessions"] == 0


class TestHorseRoutes:
    def test_create_flow(self, client, records):
        sid = _open_horse(client)
        base = f"/wizards/horse/{sid}"

        assert client.post(f"{base}/next", headers=TENANT).json()["progress"]["step"] == "basic"

        blocked = client.post(f"{base}/next", headers=TENANT)
        assert blocked.status_code == 409
        assert blocked.json()["error"] == "StepBlockedError"

        client.patch(f"{base}/draft", json={"fields": {"name": "Storm", "gender": "female"}}, headers=TENANT)
        for _ in range(4):
            client.post(f"{base}/next", headers=TENANT)
        state = client.post(f"{base}/owners", json={"holder_id": "o-1"}, headers=TENANT).json()
        assert state["ownership"]["summary"] == "100% total • 1 primary owner"
        assert client.post(f"{base}/next", headers=TENANT).json()["progress"]["step"] == "media"

        upload = client.post(
            f"{base}/media",
            files=[("files", ("a.jpg", b"jpegdata", "image/jpeg")), ("files", ("b.txt", b"no", "text/plain"))],
            headers=TENANT,
        ).json()
        assert len(upload["upload"]["uploaded"]) == 1
        assert upload["upload"]["failures"][0]["filename"] == "b.txt"

        committed = client.post(f"{base}/commit", headers=TENANT)
        assert committed.status_code == 200
        body = committed.json()
        assert body["status"] == "committed"
        assert body["migrated_assets"] == 1
        assert records.get(HORSES_TABLE, body["entity_id"])["name"] == "Storm"

        assert client.get(base, headers=TENANT).status_code == 404

    def test_invalid_patch_is_422(self, client):
        sid = _open_horse(client)
        response = client.patch(
            f"/wizards/horse/{sid}/draft", json={"fields": {"gender": "unicorn"}}, headers=TENANT
        )
        assert response.status_code == 422

    @pytest.mark.parametrize(
        "fields",
        [
            {"entity_id": "someone-else"},
            {"media": []},
            {"owners": ["x"]},
            {"external_links": 5},
        ],
    )
    def test_malformed_or_managed_fields_are_422(self, client, fields):
        sid = _open_horse(client)
        response = client.patch(f"/wizards/horse/{sid}/draft", json={"fields": fields}, headers=TENANT)
        assert response.status_code == 422

    def test_owner_limit_is_422(self, client):
        sid = _open_horse(client)
        owners = [{"holder_id": f"o-{i}", "percentage": 1, "is_primary": i == 0} for i in range(100)]
        client.patch(f"/wizards/horse/{sid}/draft", json={"fields": {"owners": owners}}, headers=TENANT)

        response = client.post(f"/wizards/horse/{sid}/owners", json={"holder_id": "o-100"}, headers=TENANT)

        assert response.status_code == 422

    def test_other_tenant_cannot_see_session(self, client):
        sid = _open_horse(client)
        assert client.get(f"/wizards/horse/{sid}", headers={"X-Tenant-ID": "t-2"}).status_code == 404

    def test_missing_tenant_header(self, client):
        assert client.post("/wizards/horse", json={"mode": "create"}).status_code == 422

    def test_edit_missing_horse_is_404(self, client):
        response = client.post(
            "/wizards/horse", json={"mode": "edit", "entity_id": "ghost"}, headers=TENANT
        )
        assert response.status_code == 404

    def test_remove_missing_owner_is_404(self, client):
        sid = _open_horse(client)
        assert client.delete(f"/wizards/horse/{sid}/owners/3", headers=TENANT).status_code == 404

    def test_close(self, client):
        sid = _open_horse(client)
        assert client.delete(f"/wizards/horse/{sid}", headers=TENANT).json() == {"closed": True}
        assert client.get(f"/wizards/horse/{sid}", headers=TENANT).status_code == 404


class TestMovementRoutes:
    @pytest.fixture
    def seeded(self, records):
        records.create(HORSES_TABLE, {"id": "h-1", "tenant_id": "t-1", "name": "Storm", "branch_id": "b-1"})
        records.create(
            HOUSING_UNITS_TABLE,
            {"id": "u-1", "tenant_id": "t-1", "code": "A1", "occupancy": "single",
             "capacity": 1, "current_occupants": 1, "branch_id": "b-2"},
        )
        records.create(
            HOUSING_UNITS_TABLE,
            {"id": "u-2", "tenant_id": "t-1", "code": "A2", "occupancy": "single",
             "capacity": 1, "current_occupants": 0, "branch_id": "b-2"},
        )
        return records

    def test_movement_flow(self, client, seeded):
        opened = client.post("/wizards/movement", json={"horse_id": "h-1"}, headers=TENANT)
        assert opened.status_code == 201
        sid = opened.json()["session_id"]
        base = f"/wizards/movement/{sid}"

        client.patch(f"{base}/draft", json={"fields": {"movement_type": "transfer"}}, headers=TENANT)
        client.post(f"{base}/next", headers=TENANT)
        client.post(f"{base}/next", headers=TENANT)
        client.patch(
            f"{base}/draft",
            json={"fields": {"from_location_id": "b-1", "to_location_id": "b-2"}},
            headers=TENANT,
        )
        assert client.post(f"{base}/next", headers=TENANT).json()["progress"]["step"] == "housing"

        options = client.get(f"{base}/housing", headers=TENANT).json()["options"]
        assert [(o["unit"]["code"], o["selectable"], o["label"]) for o in options] == [
            ("A1", False, "occupied"),
            ("A2", True, "available"),
        ]

        full = client.post(f"{base}/housing", json={"unit_id": "u-1"}, headers=TENANT)
        assert full.status_code == 409
        assert full.json()["error"] == "HousingUnavailableError"

        state = client.post(f"{base}/housing", json={"unit_id": "u-2"}, headers=TENANT).json()
        assert state["needs_housing_reminder"] is False

        client.post(f"{base}/next", headers=TENANT)
        client.post(f"{base}/next", headers=TENANT)
        result = client.post(f"{base}/commit", headers=TENANT)
        assert result.status_code == 200
        assert result.json()["status"] == "recorded"
        assert seeded.get(HORSES_TABLE, "h-1")["housing_unit_id"] == "u-2"
        assert seeded.get(HOUSING_UNITS_TABLE, "u-2")["current_occupants"] == 1

    def test_skip_housing(self, client, seeded):
        sid = client.post("/wizards/movement", json={"horse_id": "h-1"}, headers=TENANT).json()["session_id"]
        base = f"/wizards/movement/{sid}"
        client.patch(
            f"{base}/draft",
            json={"fields": {"movement_type": "in", "to_location_id": "b-2"}},
            headers=TENANT,
        )
        for _ in range(3):
            client.post(f"{base}/next", headers=TENANT)

        state = client.post(f"{base}/housing/skip", headers=TENANT).json()

        assert state["progress"]["step"] == "details"
        assert state["draft"]["housing_decision"] == "skipped"


class TestReapRoute:
    def test_open_session_assets_survive(self, client, records):
        sid = _open_horse(client)
        client.post(
            f"/wizards/horse/{sid}/media",
            files=[("files", ("a.jpg", b"jpegdata", "image/jpeg"))],
            headers=TENANT,
        )

        result = client.post("/wizards/media/reap", json={"ttl_hours": 0}, headers=TENANT).json()

        assert result["reaped"] == []

    def test_closed_session_assets_are_reaped(self, client):
        sid = _open_horse(client)
        client.post(
            f"/wizards/horse/{sid}/media",
            files=[("files", ("a.jpg", b"jpegdata", "image/jpeg"))],
            headers=TENANT,
        )
        client.delete(f"/wizards/horse/{sid}", headers=TENANT)

        result = client.post(
            "/wizards/media/reap", json={"ttl_hours": 0, "dry_run": True}, headers=TENANT
        ).json()

        assert len(result["reaped"]) == 1
        assert result["dry_run"] is True

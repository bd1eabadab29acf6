"""
API Integration Tests — Alert and alert-rule endpoints with seeded data.
"""

import uuid
from datetime import datetime

import pytest
from httpx import AsyncClient

from alerts.engine import evaluate
from alerts.store import resolve_alert, upsert_rule


@pytest.fixture
async def seeded_alerts(test_db, seeded_db):
    """One open critical, one open warning and one resolved alert."""
    system_id = seeded_db["system_id"]
    row_id = seeded_db["row_ids"][1]
    await upsert_rule(test_db, system_id, "airTemp", {"max_threshold": 30, "severity": "critical"})
    await upsert_rule(test_db, system_id, "humidity", {"max_threshold": 80})
    await upsert_rule(test_db, system_id, "waterTemp", {"min_threshold": 15})

    critical = await evaluate(test_db, system_id, "airTemp", 32.0, row_id=row_id)
    warning = await evaluate(test_db, system_id, "humidity", 85.0, row_id=row_id)
    resolved = await evaluate(test_db, system_id, "waterTemp", 12.0, row_id=seeded_db["row_ids"][2])

    await resolve_alert(test_db, resolved.alert_id)
    return {
        "critical_id": critical.alert_id,
        "warning_id": warning.alert_id,
        "resolved_id": resolved.alert_id,
        **seeded_db,
    }


@pytest.mark.asyncio
class TestAlertsIntegration:
    async def test_list_alerts_with_data(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/")
        assert resp.status_code == 200
        assert len(resp.json()) == 3

    async def test_filter_open(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/", params={"is_resolved": "false"})
        ids = {a["alert_id"] for a in resp.json()}
        assert ids == {str(seeded_alerts["critical_id"]), str(seeded_alerts["warning_id"])}

    async def test_filter_by_row(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/", params={"row_id": str(seeded_alerts["row_ids"][2])})
        assert [a["alert_id"] for a in resp.json()] == [str(seeded_alerts["resolved_id"])]

    async def test_alert_shape(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/", params={"is_resolved": "false"})
        critical = next(a for a in resp.json() if a["alert_id"] == str(seeded_alerts["critical_id"]))
        assert critical["alert_type"] == "critical"
        assert critical["parameter"] == "airTemp"
        assert critical["value"] == 32.0
        assert critical["threshold"] == 30.0
        assert critical["resolved_at"] is None

    async def test_summary(self, client: AsyncClient, seeded_alerts):
        resp = await client.get("/api/v1/alerts/summary")
        assert resp.status_code == 200
        assert resp.json() == {"total": 3, "open": 2, "resolved": 1, "critical": 1, "warning": 1}

    async def test_resolve_alert(self, client: AsyncClient, seeded_alerts):
        alert_id = seeded_alerts["critical_id"]
        resp = await client.patch(f"/api/v1/alerts/{alert_id}/resolve")
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_resolved"] is True
        assert data["resolved_at"] is not None

        again = await client.patch(f"/api/v1/alerts/{alert_id}/resolve")
        assert again.status_code == 200
        assert datetime.fromisoformat(again.json()["resolved_at"]) >= datetime.fromisoformat(data["resolved_at"])

    async def test_resolve_unknown_alert(self, client: AsyncClient, seeded_db):
        resp = await client.patch(f"/api/v1/alerts/{uuid.uuid4()}/resolve")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NotFoundError"


@pytest.mark.asyncio
class TestAlertRulesAPI:
    async def test_put_creates_with_defaults(self, client: AsyncClient, seeded_db):
        resp = await client.put(
            "/api/v1/alert-rules/",
            json={"system_id": str(seeded_db["system_id"]), "parameter": "airTemp", "max_threshold": 30},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["severity"] == "warning"
        assert data["is_enabled"] is True
        assert data["notification_methods"] == []
        assert data["min_threshold"] is None

    async def test_put_patches_only_sent_fields(self, client: AsyncClient, seeded_db):
        system_id = str(seeded_db["system_id"])
        await client.put(
            "/api/v1/alert-rules/",
            json={
                "system_id": system_id,
                "parameter": "airTemp",
                "min_threshold": 18,
                "max_threshold": 30,
                "severity": "critical",
                "notification_methods": ["push", "sound"],
            },
        )

        resp = await client.put(
            "/api/v1/alert-rules/",
            json={"system_id": system_id, "parameter": "airTemp", "max_threshold": 29, "severity": None},
        )
        data = resp.json()
        assert data["max_threshold"] == 29
        assert data["min_threshold"] == 18
        assert data["severity"] == "critical"
        assert data["notification_methods"] == ["push", "sound"]

        listed = await client.get("/api/v1/alert-rules/", params={"system_id": system_id})
        assert len(listed.json()) == 1

    async def test_invalid_method_is_422(self, client: AsyncClient, seeded_db):
        resp = await client.put(
            "/api/v1/alert-rules/",
            json={"system_id": str(seeded_db["system_id"]), "parameter": "airTemp", "notification_methods": ["sms"]},
        )
        assert resp.status_code == 422

    async def test_unknown_system_is_404(self, client: AsyncClient, seeded_db):
        resp = await client.put(
            "/api/v1/alert-rules/",
            json={"system_id": str(uuid.uuid4()), "parameter": "airTemp", "max_threshold": 30},
        )
        assert resp.status_code == 404

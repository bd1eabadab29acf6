"""
Tests for the Alert Lifecycle Store — listing, resolution, rule upserts.
"""

import uuid
from datetime import timedelta

import pytest

from alerts import store as alert_store
from alerts.engine import evaluate
from alerts.store import RULE_DEFAULTS, list_alerts, list_rules, resolve_alert, upsert_rule
from core.errors import NotFoundError, ValidationError
from db.models import Alert, utcnow


async def _add_alert(db, system_id, parameter, *, row_id=None, resolved=False, age_minutes=0, alert_type="warning"):
    created_at = utcnow() - timedelta(minutes=age_minutes)
    alert = Alert(
        system_id=system_id,
        row_id=row_id,
        alert_type=alert_type,
        parameter=parameter,
        message=f"Test {parameter} alert",
        value=1.0,
        threshold=0.5,
        is_resolved=resolved,
        created_at=created_at,
        resolved_at=created_at if resolved else None,
    )
    db.add(alert)
    await db.commit()
    return alert.alert_id


@pytest.mark.asyncio
class TestListAlerts:
    async def test_newest_first(self, test_db, seeded_db):
        system_id = seeded_db["system_id"]
        oldest = await _add_alert(test_db, system_id, "airTemp", age_minutes=30, resolved=True)
        middle = await _add_alert(test_db, system_id, "humidity", age_minutes=20)
        newest = await _add_alert(test_db, system_id, "waterTemp", age_minutes=10)

        alerts = await list_alerts(test_db, system_id=system_id)
        assert [a.alert_id for a in alerts] == [newest, middle, oldest]

    async def test_filters_are_anded(self, test_db, seeded_db, other_tenant):
        system_id = seeded_db["system_id"]
        row_1 = seeded_db["row_ids"][1]
        row_2 = seeded_db["row_ids"][2]
        match = await _add_alert(test_db, system_id, "airTemp", row_id=row_1)
        await _add_alert(test_db, system_id, "humidity", row_id=row_1, resolved=True)
        await _add_alert(test_db, system_id, "waterTemp", row_id=row_2)
        await _add_alert(test_db, other_tenant["system_id"], "airTemp")

        alerts = await list_alerts(test_db, system_id=system_id, row_id=row_1, is_resolved=False)
        assert [a.alert_id for a in alerts] == [match]

    async def test_no_filters_returns_everything(self, test_db, seeded_db, other_tenant):
        await _add_alert(test_db, seeded_db["system_id"], "airTemp")
        await _add_alert(test_db, other_tenant["system_id"], "airTemp")

        assert len(await list_alerts(test_db)) == 2

    async def test_skip_and_limit(self, test_db, seeded_db):
        system_id = seeded_db["system_id"]
        for i, parameter in enumerate(["a", "b", "c", "d"]):
            await _add_alert(test_db, system_id, parameter, age_minutes=i)

        page = await list_alerts(test_db, system_id=system_id, skip=1, limit=2)
        assert [a.parameter for a in page] == ["b", "c"]


@pytest.mark.asyncio
class TestResolveAlert:
    async def test_resolve_sets_flag_and_timestamp(self, test_db, seeded_db):
        alert_id = await _add_alert(test_db, seeded_db["system_id"], "airTemp", age_minutes=5)

        alert = await resolve_alert(test_db, alert_id)

        assert alert.is_resolved is True
        assert alert.resolved_at >= alert.created_at

    async def test_resolve_twice_restamps(self, test_db, seeded_db):
        alert_id = await _add_alert(test_db, seeded_db["system_id"], "airTemp", age_minutes=5)

        first = (await resolve_alert(test_db, alert_id)).resolved_at
        second = await resolve_alert(test_db, alert_id)

        assert second.is_resolved is True
        assert second.resolved_at >= first

    async def test_resolve_unknown_alert(self, test_db, seeded_db):
        with pytest.raises(NotFoundError) as exc_info:
            await resolve_alert(test_db, uuid.uuid4())
        assert exc_info.value.entity == "Alert"

    async def test_resolved_alert_leaves_rule_free_to_reopen(self, test_db, seeded_db):
        system_id = seeded_db["system_id"]
        await upsert_rule(test_db, system_id, "humidity", {"max_threshold": 80})
        opened = await evaluate(test_db, system_id, "humidity", 90.0)

        await resolve_alert(test_db, opened.alert_id)

        assert await list_alerts(test_db, system_id=system_id, is_resolved=False) == []


@pytest.mark.asyncio
class TestUpsertRule:
    async def test_create_applies_defaults(self, test_db, seeded_db):
        rule = await upsert_rule(test_db, seeded_db["system_id"], "airTemp", {"max_threshold": 30})

        assert rule.max_threshold == 30
        assert rule.min_threshold is None
        assert rule.severity == RULE_DEFAULTS["severity"]
        assert rule.is_enabled is True
        assert rule.notification_methods == []

    async def test_patch_changes_only_supplied_fields(self, test_db, seeded_db):
        system_id = seeded_db["system_id"]
        created = await upsert_rule(
            test_db,
            system_id,
            "airTemp",
            {"min_threshold": 18, "max_threshold": 30, "severity": "critical", "notification_methods": ["push"]},
        )
        rule_id = created.rule_id

        patched = await upsert_rule(test_db, system_id, "airTemp", {"max_threshold": 28})

        assert patched.rule_id == rule_id
        assert patched.max_threshold == 28
        assert patched.min_threshold == 18
        assert patched.severity == "critical"
        assert patched.notification_methods == ["push"]

    async def test_explicit_none_clears_threshold(self, test_db, seeded_db):
        system_id = seeded_db["system_id"]
        await upsert_rule(test_db, system_id, "airTemp", {"min_threshold": 18, "max_threshold": 30})

        patched = await upsert_rule(test_db, system_id, "airTemp", {"min_threshold": None})

        assert patched.min_threshold is None
        assert patched.max_threshold == 30

    async def test_one_rule_per_system_parameter(self, test_db, seeded_db):
        system_id = seeded_db["system_id"]
        await upsert_rule(test_db, system_id, "airTemp", {"max_threshold": 30})
        await upsert_rule(test_db, system_id, "airTemp", {"max_threshold": 31})
        await upsert_rule(test_db, system_id, "humidity", {"max_threshold": 80})

        rules = await list_rules(test_db, system_id=system_id)
        assert [r.parameter for r in rules] == ["airTemp", "humidity"]

    async def test_notification_methods_deduplicated(self, test_db, seeded_db):
        rule = await upsert_rule(
            test_db, seeded_db["system_id"], "airTemp", {"notification_methods": ["push", "email", "push"]}
        )
        assert rule.notification_methods == ["push", "email"]

    async def test_invalid_severity(self, test_db, seeded_db):
        with pytest.raises(ValidationError):
            await upsert_rule(test_db, seeded_db["system_id"], "airTemp", {"severity": "urgent"})

    async def test_invalid_notification_method(self, test_db, seeded_db):
        with pytest.raises(ValidationError):
            await upsert_rule(test_db, seeded_db["system_id"], "airTemp", {"notification_methods": ["sms"]})

    async def test_unknown_field(self, test_db, seeded_db):
        with pytest.raises(ValidationError):
            await upsert_rule(test_db, seeded_db["system_id"], "airTemp", {"threshold": 3})

    async def test_unknown_system(self, test_db, seeded_db):
        with pytest.raises(NotFoundError) as exc_info:
            await upsert_rule(test_db, uuid.uuid4(), "airTemp", {"max_threshold": 30})
        assert exc_info.value.entity == "System"

    async def test_lost_create_race_patches_winner(self, test_db, seeded_db, monkeypatch):
        system_id = seeded_db["system_id"]
        winner = await upsert_rule(
            test_db, system_id, "airTemp", {"min_threshold": 18, "max_threshold": 30, "severity": "critical"}
        )
        winner_id = winner.rule_id

        # A concurrent writer that looked before the winner committed sees no rule.
        real_get = alert_store._get_rule
        calls = {"n": 0}

        async def stale_then_real(db, sid, parameter):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await real_get(db, sid, parameter)

        monkeypatch.setattr(alert_store, "_get_rule", stale_then_real)

        rule = await upsert_rule(
            test_db, system_id, "airTemp", {"max_threshold": 28, "notification_methods": ["email"]}
        )

        assert calls["n"] == 2
        assert rule.rule_id == winner_id
        assert rule.max_threshold == 28
        assert rule.notification_methods == ["email"]
        assert rule.min_threshold == 18
        assert rule.severity == "critical"

        rules = await list_rules(test_db, system_id=system_id)
        assert [r.rule_id for r in rules] == [winner_id]

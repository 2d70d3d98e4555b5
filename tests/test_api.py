"""End-to-end tests of the HTTP surface over in-memory SQLite."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from abtesting.core.cache import TTLCache
from abtesting.core.db import get_db
from abtesting.core.settings import config_settings
from abtesting.main import app
from abtesting.models.orm.profile import UserProfileORM

from conftest import NOW

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}

EXPERIMENT_PAYLOAD = {
    "name": "Watermark visibility",
    "feature": "watermark",
    "hypothesis": "A subtler watermark increases premium upgrades",
    "variants": [
        {"variant_name": "Control", "traffic_split": 50, "is_control": True},
        {
            "variant_name": "Subtle",
            "traffic_split": 50,
            "configuration_json": {"config_id": "subtle"},
        },
    ],
    "conversion_goal": "upgrade_to_premium",
    "secondary_metrics": ["document_exported"],
}


@pytest.fixture
def client(session_factory, monkeypatch):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(config_settings, "TOKENS", [TOKEN])
    # Fresh caches per test so definitions never leak between databases
    monkeypatch.setattr(app.state, "definition_cache", TTLCache(ttl_seconds=30), raising=False)
    monkeypatch.setattr(app.state, "session_cache", TTLCache(ttl_seconds=0), raising=False)
    app.dependency_overrides[get_db] = override_get_db
    # No context manager: the lifespan hook would create tables in the configured database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def profiles(session_factory):
    db = session_factory()
    for i in range(20):
        db.add(UserProfileORM(user_id=f"user_{i}", tier="free", created_at=NOW - timedelta(days=30)))
    db.commit()
    db.close()


def create_running_experiment(client):
    response = client.post("/experiments", json=EXPERIMENT_PAYLOAD, headers=AUTH)
    assert response.status_code == 201
    experiment_id = response.json()["experiment_id"]
    response = client.post(
        f"/experiments/{experiment_id}/status", json={"status": "running"}, headers=AUTH
    )
    assert response.status_code == 200
    return experiment_id


class TestAuth:
    def test_missing_token(self, client):
        assert client.get("/experiments/anything").status_code == 401

    def test_unknown_token(self, client):
        response = client.get("/experiments/anything", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401


class TestExperiments:
    def test_create_and_get(self, client):
        response = client.post("/experiments", json=EXPERIMENT_PAYLOAD, headers=AUTH)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "draft"
        assert [v["variant_name"] for v in body["variants"]] == ["Control", "Subtle"]

        fetched = client.get(f"/experiments/{body['experiment_id']}", headers=AUTH)
        assert fetched.status_code == 200
        assert fetched.json()["name"] == "Watermark visibility"

    def test_invalid_split_is_400(self, client):
        payload = dict(EXPERIMENT_PAYLOAD)
        payload["variants"] = [
            {"variant_name": "Control", "traffic_split": 60, "is_control": True},
            {"variant_name": "Subtle", "traffic_split": 60},
        ]
        response = client.post("/experiments", json=payload, headers=AUTH)
        assert response.status_code == 400
        assert "100%" in response.json()["detail"]

    def test_unknown_experiment_is_404(self, client):
        assert client.get("/experiments/missing", headers=AUTH).status_code == 404

    def test_invalid_transition_is_409(self, client):
        experiment_id = client.post("/experiments", json=EXPERIMENT_PAYLOAD, headers=AUTH).json()[
            "experiment_id"
        ]
        response = client.post(
            f"/experiments/{experiment_id}/status", json={"status": "completed"}, headers=AUTH
        )
        assert response.status_code == 409


class TestAssignmentFlow:
    def test_assignment_events_and_results(self, client, profiles):
        experiment_id = create_running_experiment(client)

        first = client.get(f"/experiments/{experiment_id}/assignment/user_1", headers=AUTH)
        assert first.status_code == 200
        body = first.json()
        assert body["in_experiment"] is True
        again = client.get(f"/experiments/{experiment_id}/assignment/user_1", headers=AUTH)
        assert again.json()["variant"]["variant_id"] == body["variant"]["variant_id"]

        event = client.post(
            "/events",
            json={"user_id": "user_1", "event_type": "upgrade_to_premium", "conversion_value": 9.99},
            headers=AUTH,
        )
        assert event.status_code == 201
        assert event.json()["experiment_ids"] == [experiment_id]

        results = client.get(f"/experiments/{experiment_id}/results", headers=AUTH)
        assert results.status_code == 200
        payload = results.json()
        assert payload["status"] == "insufficient_data"
        assert sum(v["conversions"] for v in payload["variant_results"]) == 1

    def test_user_without_profile_is_not_in_experiment(self, client):
        experiment_id = create_running_experiment(client)

        response = client.get(f"/experiments/{experiment_id}/assignment/ghost", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "experiment_id": experiment_id,
            "user_id": "ghost",
            "in_experiment": False,
            "variant": None,
        }

    def test_event_for_explicit_experiment_without_assignment(self, client):
        experiment_id = create_running_experiment(client)
        response = client.post(
            "/events",
            json={"user_id": "ghost", "event_type": "upgrade_to_premium", "experiment_id": experiment_id},
            headers=AUTH,
        )
        assert response.status_code == 201
        assert response.json()["experiment_ids"] == []


class TestFeatures:
    def test_config_without_experiment_is_default(self, client):
        response = client.post(
            "/features/watermark/config",
            json={"user_id": "user_1", "default_config": {"enabled": True, "config_id": "default"}},
            headers=AUTH,
        )
        assert response.status_code == 200
        assert response.json() == {
            "feature": "watermark",
            "config": {"enabled": True, "config_id": "default"},
        }

    def test_config_for_assigned_user(self, client, profiles):
        create_running_experiment(client)

        configs = [
            client.post(
                "/features/watermark/config",
                json={"user_id": f"user_{i}", "default_config": {"config_id": "default"}},
                headers=AUTH,
            ).json()["config"]["config_id"]
            for i in range(20)
        ]

        assert set(configs) <= {"default", "subtle"}
        assert "subtle" in configs

    def test_flag_default(self, client):
        response = client.get("/flags/new_editor", params={"user_id": "user_1", "default": True}, headers=AUTH)
        assert response.json() == {"flag": "new_editor", "enabled": True}


class TestTemplates:
    def test_list(self, client):
        response = client.get("/templates", headers=AUTH)

        assert response.status_code == 200
        by_key = {t["key"]: t for t in response.json()}
        assert by_key["gamification"]["variant_names"] == [
            "No Gamification",
            "Achievement System",
            "Full Gamification",
        ]
        assert by_key["watermark_message"]["feature"] == "watermark"

    def test_create_from_template(self, client):
        response = client.post(
            "/templates/watermark_message/experiments",
            json={"name": "Watermark urgency, June"},
            headers=AUTH,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "draft"
        assert body["name"] == "Watermark urgency, June"
        assert body["traffic_allocation"] == 50
        assert body["target_audience"]["user_tiers"] == ["free"]

    def test_unknown_template_is_400(self, client):
        response = client.post("/templates/nope/experiments", json={}, headers=AUTH)
        assert response.status_code == 400


class TestSessionsAndActions:
    def test_session_then_action(self, client, profiles):
        experiment_id = create_running_experiment(client)

        session = client.post("/sessions/user_1", headers=AUTH)
        assert session.status_code == 200
        variants = session.json()["variants"]
        assert list(variants) == [experiment_id]

        action = client.post(
            "/actions",
            json={
                "user_id": "user_1",
                "action": "document_exported",
                "feature": "export_options",
                "metadata": {"format": "pdf", "has_watermark": True},
            },
            headers=AUTH,
        )
        assert action.status_code == 201
        assert action.json()["experiment_ids"] == [experiment_id]

        results = client.get(f"/experiments/{experiment_id}/results", headers=AUTH).json()
        assert sum(v["conversions"] for v in results["variant_results"]) == 0

    def test_session_for_unknown_user_is_empty(self, client):
        create_running_experiment(client)

        response = client.post("/sessions/ghost", headers=AUTH)

        assert response.json() == {"user_id": "ghost", "variants": {}}

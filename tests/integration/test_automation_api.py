"""Integration tests for workflow automation API endpoints."""

from uuid import uuid4

import pytest
import pytest_asyncio

from packages.database.src.repositories import LeadRepository, LeadTaskRepository

RULES_URL = "/api/v1/automation/rules"

FOLLOW_UP_RULE = {
    "name": "Qualified follow-up",
    "trigger_type": "status_change",
    "trigger_config": {"target_status": "qualified"},
    "actions": [{"action_type": "create_task", "action_config": {"title": "Follow up"}}],
}


@pytest_asyncio.fixture
async def client(db_session):
    """HTTP client bound to the test database session."""
    from httpx import ASGITransport, AsyncClient

    from packages.database.src.session import get_db_session
    from services.gateway.src.main import app

    # Override the database dependency
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


class TestAuthentication:
    """Every automation endpoint needs a bearer token."""

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get(RULES_URL)

        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get(RULES_URL, headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401


class TestRuleEndpoints:
    """Tests for /api/v1/automation/rules."""

    @pytest.mark.asyncio
    async def test_create_and_list_rules(self, client, auth_headers):
        response = await client.post(RULES_URL, json=FOLLOW_UP_RULE, headers=auth_headers)

        assert response.status_code == 201
        created = response.json()
        assert created["name"] == "Qualified follow-up"
        assert created["execution_count"] == 0

        response = await client.get(RULES_URL, headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["rules"][0]["id"] == created["id"]

    @pytest.mark.asyncio
    async def test_create_rule_with_unknown_trigger(self, client, auth_headers):
        response = await client.post(
            RULES_URL,
            json={**FOLLOW_UP_RULE, "trigger_type": "form_submitted"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "UNKNOWN_TRIGGER_TYPE"

    @pytest.mark.asyncio
    async def test_create_rule_with_bad_action_config(self, client, auth_headers):
        response = await client.post(
            RULES_URL,
            json={
                **FOLLOW_UP_RULE,
                "actions": [{"action_type": "send_email", "action_config": {}}],
            },
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_update_toggle_and_delete(self, client, auth_headers):
        created = (await client.post(RULES_URL, json=FOLLOW_UP_RULE, headers=auth_headers)).json()
        url = f"{RULES_URL}/{created['id']}"

        response = await client.patch(url, json={"priority": 5}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["priority"] == 5

        response = await client.post(f"{url}/toggle", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = await client.delete(url, headers=auth_headers)
        assert response.status_code == 204

        response = await client.get(url, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "RULE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_other_users_rule_is_not_found(self, client, make_rule, auth_headers):
        rule = await make_rule(owner_id=uuid4())

        response = await client.get(f"{RULES_URL}/{rule.id}", headers=auth_headers)

        assert response.status_code == 404


class TestExecuteEndpoint:
    @pytest.mark.asyncio
    async def test_execute_rule(self, client, db_session, make_rule, make_lead, auth_headers):
        rule = await make_rule(
            actions=[{"action_type": "add_tag", "action_config": {"tags": ["vip"]}}]
        )
        lead = await make_lead()

        response = await client.post(
            f"{RULES_URL}/{rule.id}/execute",
            json={"lead_id": str(lead.id)},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["execution_status"] == "completed"
        assert data["actions_executed"] == 1
        assert (await LeadRepository(db_session).require(lead.id)).tags == ["vip"]

        response = await client.get(
            f"/api/v1/automation/executions/{data['id']}/actions", headers=auth_headers
        )
        assert response.status_code == 200
        assert [e["status"] for e in response.json()] == ["success"]

    @pytest.mark.asyncio
    async def test_execute_inactive_rule(self, client, make_rule, make_lead, auth_headers):
        rule = await make_rule(is_active=False)
        lead = await make_lead()

        response = await client.post(
            f"{RULES_URL}/{rule.id}/execute",
            json={"lead_id": str(lead.id)},
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "RULE_INACTIVE"

    @pytest.mark.asyncio
    async def test_conditions_not_met(self, client, make_rule, make_lead, auth_headers):
        rule = await make_rule(
            conditions=[{"field": "status", "operator": "equals", "value": "enrolled"}]
        )
        lead = await make_lead()

        response = await client.post(
            f"{RULES_URL}/{rule.id}/execute",
            json={"lead_id": str(lead.id)},
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "CONDITIONS_NOT_MET"

    @pytest.mark.asyncio
    async def test_someone_elses_lead(self, client, make_rule, make_lead, auth_headers):
        rule = await make_rule()
        lead = await make_lead(user_id=uuid4())

        response = await client.post(
            f"{RULES_URL}/{rule.id}/execute",
            json={"lead_id": str(lead.id)},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"] == "RECORD_NOT_FOUND"


class TestEventEndpoint:
    """Tests for POST /api/v1/automation/events."""

    @pytest.mark.asyncio
    async def test_status_change_event(self, client, db_session, make_lead, auth_headers):
        await client.post(RULES_URL, json=FOLLOW_UP_RULE, headers=auth_headers)
        lead = await make_lead(status="qualified")

        response = await client.post(
            "/api/v1/automation/events",
            json={
                "lead_id": str(lead.id),
                "trigger_type": "status_change",
                "previous_values": {"status": "contacted"},
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["executed"] == 1
        assert data["failed"] == 0
        tasks = await LeadTaskRepository(db_session).list_for_lead(lead.id)
        assert [t.title for t in tasks] == ["Follow up"]

    @pytest.mark.asyncio
    async def test_failed_rule_is_reported(self, client, make_rule, make_lead, auth_headers):
        await make_rule(actions=[{"action_type": "send_sms", "action_config": {}}])
        lead = await make_lead()

        response = await client.post(
            "/api/v1/automation/events",
            json={"lead_id": str(lead.id), "trigger_type": "lead_created"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["failed"] == 1
        assert data["outcomes"][0]["error_code"] == "UNKNOWN_ACTION_TYPE"


class TestTemplatesAndMetrics:
    @pytest.mark.asyncio
    async def test_templates(self, client, auth_headers):
        response = await client.get("/api/v1/automation/templates", headers=auth_headers)
        assert response.status_code == 200
        template_id = response.json()[0]["id"]

        response = await client.post(
            f"/api/v1/automation/templates/{template_id}/rules",
            json={"overrides": {"priority": 3}},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["priority"] == 3

    @pytest.mark.asyncio
    async def test_unknown_template(self, client, auth_headers):
        response = await client.post(
            "/api/v1/automation/templates/nope/rules", headers=auth_headers
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_metrics(self, client, make_rule, make_lead, auth_headers):
        rule = await make_rule(
            actions=[{"action_type": "add_tag", "action_config": {"tags": ["vip"]}}]
        )
        lead = await make_lead()
        await client.post(
            f"{RULES_URL}/{rule.id}/execute",
            json={"lead_id": str(lead.id)},
            headers=auth_headers,
        )

        response = await client.get("/api/v1/automation/metrics", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_rules"] == 1
        assert data["total_executions"] == 1
        assert data["success_rate"] == 100.0
        assert data["top_performing_rules"][0]["rule_id"] == str(rule.id)


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_ready(self, client):
        response = await client.get("/health/ready")

        assert response.status_code == 200

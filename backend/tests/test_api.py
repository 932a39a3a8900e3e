"""Tests for the HTTP API."""

import pytest
from httpx import ASGITransport, AsyncClient

from policy_engine.deps import get_store
from policy_engine.main import app
from policy_engine.repositories import InMemoryPolicyStore

POLICY_PAYLOAD = {
    "name": "Personal Loan Eligibility",
    "description": "Salaried applicants",
    "category": "ELIGIBILITY",
    "loanType": "PERSONAL_LOAN",
    "priority": 10,
    "tags": ["retail"],
    "rules": [
        {
            "name": "Salaried approval",
            "priority": 10,
            "conditions": [
                {"field": "applicant.employmentType", "operator": "IN", "values": ["SALARIED", "PROFESSIONAL"]},
                {"field": "applicant.cibilScore", "operator": "GREATER_THAN_OR_EQUAL", "value": 700},
            ],
            "actions": [
                {"type": "APPROVE"},
                {"type": "SET_INTEREST_RATE", "parameters": {"rate": "12.5", "type": "FIXED"}},
            ],
        }
    ],
}


@pytest.fixture
async def client():
    store = InMemoryPolicyStore()
    app.dependency_overrides[get_store] = lambda: store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_policy(client, **overrides) -> dict:
    response = await client.post("/api/v1/policies", json={**POLICY_PAYLOAD, **overrides}, headers={"X-User": "alice"})
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    """Tests for the health and root endpoints."""

    async def test_health(self, client):
        """Health reports the store as reachable."""
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_root(self, client):
        """Root describes the API."""
        response = await client.get("/")
        assert response.json()["message"] == "Policy Engine API"


class TestPolicyEndpoints:
    """Tests for policy CRUD and lifecycle endpoints."""

    async def test_create_policy(self, client):
        """POST returns the stored DRAFT policy in camelCase."""
        body = await create_policy(client)
        assert body["policyCode"].startswith("POL-")
        assert body["status"] == "DRAFT"
        assert body["versionNumber"] == 1
        assert body["lockVersion"] == 0
        assert body["createdBy"] == "alice"
        assert body["ruleCount"] == 1
        condition = body["rules"][0]["conditions"][1]
        assert condition["value"] == "700"

    async def test_create_invalid_policy(self, client):
        """Malformed conditions are reported with their location."""
        payload = {
            **POLICY_PAYLOAD,
            "rules": [{"name": "Bad", "conditions": [{"field": "age", "operator": "BETWEEN", "minValue": 60, "maxValue": 21}]}],
        }
        response = await client.post("/api/v1/policies", json=payload)
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["errors"][0].startswith("rules[0].conditions[0]")

    async def test_invalid_action_parameters(self, client):
        """Missing action parameters are a 422."""
        payload = {**POLICY_PAYLOAD, "rules": [{"name": "Bad", "actions": [{"type": "SET_MAX_AMOUNT"}]}]}
        response = await client.post("/api/v1/policies", json=payload)
        assert response.status_code == 422

    async def test_get_and_list(self, client):
        """Policies can be fetched by id and code, and listed with filters."""
        created = await create_policy(client)
        await create_policy(client, name="Home Pricing", category="PRICING", loanType="HOME_LOAN", tags=["home"])

        response = await client.get(f"/api/v1/policies/{created['id']}")
        assert response.json()["name"] == "Personal Loan Eligibility"

        response = await client.get(f"/api/v1/policies/code/{created['policyCode']}")
        assert response.json()["id"] == created["id"]

        response = await client.get("/api/v1/policies")
        assert response.json()["total"] == 2

        response = await client.get("/api/v1/policies", params={"category": "PRICING"})
        assert [p["name"] for p in response.json()["items"]] == ["Home Pricing"]

        response = await client.get("/api/v1/policies", params={"tag": "retail", "q": "personal"})
        assert [p["name"] for p in response.json()["items"]] == ["Personal Loan Eligibility"]

        response = await client.get("/api/v1/policies", params={"pageSize": 1, "page": 2})
        body = response.json()
        assert len(body["items"]) == 1
        assert body["totalPages"] == 2

    async def test_unknown_policy_is_404(self, client):
        """Unknown ids and codes return 404."""
        assert (await client.get("/api/v1/policies/does-not-exist")).status_code == 404
        assert (await client.get("/api/v1/policies/code/POL-2026-999999")).status_code == 404

    async def test_lifecycle(self, client):
        """Activate, deactivate and archive through PATCH."""
        created = await create_policy(client)
        policy_id = created["id"]

        response = await client.patch(f"/api/v1/policies/{policy_id}/activate", json={"lockVersion": 0})
        assert response.status_code == 200
        assert response.json()["status"] == "ACTIVE"

        response = await client.put(f"/api/v1/policies/{policy_id}", json=POLICY_PAYLOAD)
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state"

        response = await client.patch(f"/api/v1/policies/{policy_id}/deactivate")
        assert response.json()["status"] == "INACTIVE"

        response = await client.patch(f"/api/v1/policies/{policy_id}/archive")
        assert response.json()["status"] == "ARCHIVED"

        response = await client.delete(f"/api/v1/policies/{policy_id}")
        assert response.status_code == 409

    async def test_stale_lock_version_is_409(self, client):
        """A stale lockVersion (body or If-Match) is a concurrency conflict."""
        created = await create_policy(client)
        policy_id = created["id"]

        response = await client.put(
            f"/api/v1/policies/{policy_id}", json={**POLICY_PAYLOAD, "description": "v1", "lockVersion": 0}
        )
        assert response.status_code == 200
        assert response.json()["lockVersion"] == 1

        response = await client.put(
            f"/api/v1/policies/{policy_id}", json={**POLICY_PAYLOAD, "description": "v2", "lockVersion": 0}
        )
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "concurrency_conflict"
        assert body["actualLockVersion"] == 1

        response = await client.patch(f"/api/v1/policies/{policy_id}/activate", headers={"If-Match": '"0"'})
        assert response.status_code == 409

        response = await client.patch(f"/api/v1/policies/{policy_id}/activate", headers={"If-Match": "nope"})
        assert response.status_code == 400

    async def test_versions(self, client):
        """New versions share the code and appear in the history."""
        created = await create_policy(client)
        await client.patch(f"/api/v1/policies/{created['id']}/activate")

        response = await client.post(f"/api/v1/policies/{created['id']}/versions", headers={"X-User": "bob"})
        assert response.status_code == 201
        v2 = response.json()
        assert v2["versionNumber"] == 2
        assert v2["previousVersionId"] == created["id"]
        assert v2["createdBy"] == "bob"

        code = created["policyCode"]
        response = await client.get(f"/api/v1/policies/code/{code}/versions")
        assert [p["versionNumber"] for p in response.json()] == [2, 1]

        response = await client.get(f"/api/v1/policies/code/{code}/versions/1")
        assert response.json()["status"] == "ACTIVE"

    async def test_rules(self, client):
        """Rules are added and removed by name."""
        created = await create_policy(client)
        policy_id = created["id"]

        response = await client.post(
            f"/api/v1/policies/{policy_id}/rules",
            json={"name": "Docs", "actions": [{"type": "REQUIRE_DOCUMENT", "parameters": {"documentType": "PAN"}}]},
        )
        assert response.status_code == 201
        assert response.json()["ruleCount"] == 2

        response = await client.delete(f"/api/v1/policies/{policy_id}/rules/Docs")
        assert response.json()["ruleCount"] == 1

        response = await client.delete(f"/api/v1/policies/{policy_id}/rules/Docs")
        assert response.status_code == 404

    async def test_delete_draft(self, client):
        """DRAFT policies are deleted with 204."""
        created = await create_policy(client)
        response = await client.delete(f"/api/v1/policies/{created['id']}", params={"lockVersion": 0})
        assert response.status_code == 204
        assert (await client.get(f"/api/v1/policies/{created['id']}")).status_code == 404

    async def test_stats(self, client):
        """Stats count policies by status."""
        created = await create_policy(client)
        await client.patch(f"/api/v1/policies/{created['id']}/activate")
        await create_policy(client, name="Second")
        body = (await client.get("/api/v1/policies/stats")).json()
        assert body["total"] == 2
        assert body["active"] == 1
        assert body["draft"] == 1
        assert body["activeByCategory"] == {"ELIGIBILITY": 1}


class TestEvaluationEndpoint:
    """Tests for POST /evaluations."""

    async def test_evaluate_application(self, client):
        """An ACTIVE policy approves a matching application."""
        created = await create_policy(client)
        await client.patch(f"/api/v1/policies/{created['id']}/activate")

        response = await client.post(
            "/api/v1/evaluations",
            json={
                "applicationId": "APP-1",
                "loanType": "PERSONAL_LOAN",
                "facts": {"applicant": {"employmentType": "SALARIED", "cibilScore": 742}},
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "APPROVED"
        assert body["interestRate"] == 12.5
        assert body["interestRateType"] == "FIXED"
        assert body["applicationId"] == "APP-1"
        assert body["rulesMatched"] == 1
        assert [entry["actionType"] for entry in body["trace"]] == ["APPROVE", "SET_INTEREST_RATE"]

    async def test_no_policies_is_undecided(self, client):
        """Nothing to evaluate gives UNDECIDED and an empty trace."""
        response = await client.post(
            "/api/v1/evaluations", json={"loanType": "GOLD_LOAN", "category": "PRICING", "facts": {}}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "UNDECIDED"
        assert body["trace"] == []

    async def test_unknown_loan_type(self, client):
        """Request validation rejects unknown loan types."""
        response = await client.post("/api/v1/evaluations", json={"loanType": "SPACESHIP", "facts": {}})
        assert response.status_code == 422

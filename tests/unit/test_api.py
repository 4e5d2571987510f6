"""
HTTP API Tests.
Routing, principal headers and error mapping through FastAPI's TestClient.
"""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from claim_adjudication.api.deps import get_claim_lifecycle
from claim_adjudication.api.main import app
from claim_adjudication.api.middleware import principal_rate_limit
from claim_adjudication.core.enums import ClaimStatus
from claim_adjudication.utils.errors import DependencyError
from tests.fakes import make_claim

USER = {"X-Principal-Id": "user-1", "X-Principal-Role": "USER"}
ADMIN = {"X-Principal-Id": "admin-1", "X-Principal-Role": "ADMIN"}

CLAIM_BODY = {
    "patient_id": "p1",
    "amount": 1000,
    "procedure_codes": ["99213"],
    "diagnosis_codes": ["I10"],
}


@pytest.fixture
def client(lifecycle):
    principal_rate_limit.limiter.clear()
    app.dependency_overrides[get_claim_lifecycle] = lambda: lifecycle
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.api
class TestClaimsApi:
    """Tests for the claims endpoints."""

    def test_create_claim(self, client):
        response = client.post("/api/v1/claims", json=CLAIM_BODY, headers=USER)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["created_by"] == "user-1"
        assert body["fraud_check_details"]["riskScore"] == 0.3
        assert body["fraud_check_details"]["reasons"] == ["Unusually high claim amount"]

    def test_create_rejects_non_positive_amount(self, client):
        response = client.post("/api/v1/claims", json={**CLAIM_BODY, "amount": 0}, headers=USER)

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_principal_header_is_required(self, client):
        response = client.post("/api/v1/claims", json=CLAIM_BODY)

        assert response.status_code == 422

    def test_unknown_role_is_rejected(self, client):
        response = client.get(
            "/api/v1/claims", headers={"X-Principal-Id": "x", "X-Principal-Role": "ROOT"}
        )

        assert response.status_code == 422

    def test_get_unknown_claim(self, client):
        response = client.get(f"/api/v1/claims/{uuid4()}", headers=USER)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_user_cannot_approve(self, client, repository):
        claim = make_claim(created_by="user-1")
        repository.seed(claim)

        response = client.post(
            f"/api/v1/claims/{claim.id}/transition", json={"status": "APPROVED"}, headers=USER
        )

        assert response.status_code == 403
        assert response.json() == {
            "error": "insufficient_permissions",
            "detail": "Insufficient permissions",
        }

    def test_admin_approves(self, client, repository):
        claim = make_claim()
        repository.seed(claim)

        response = client.post(
            f"/api/v1/claims/{claim.id}/transition",
            json={"status": "APPROVED", "reason": "verified"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "APPROVED"
        assert body["fraud_check_details"]["processedBy"] == "admin-1"

    def test_processed_claim_conflicts(self, client, repository):
        claim = make_claim(status=ClaimStatus.DENIED)
        repository.seed(claim)

        response = client.post(
            f"/api/v1/claims/{claim.id}/transition", json={"status": "APPROVED"}, headers=ADMIN
        )

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state_transition"

    def test_update_paid_claim_conflicts(self, client, repository):
        claim = make_claim(status=ClaimStatus.PAID, created_by="user-1")
        repository.seed(claim)

        response = client.patch(f"/api/v1/claims/{claim.id}", json={"notes": "x"}, headers=USER)

        assert response.status_code == 409

    def test_update_cannot_set_status(self, client, repository):
        claim = make_claim(created_by="user-1")
        repository.seed(claim)

        response = client.patch(
            f"/api/v1/claims/{claim.id}", json={"status": "APPROVED"}, headers=USER
        )

        assert response.status_code == 422
        assert repository.claims[claim.id].status == ClaimStatus.PENDING

    def test_bulk_transition(self, client, repository):
        pending = make_claim()
        denied = make_claim(status=ClaimStatus.DENIED)
        repository.seed(pending, denied)

        response = client.post(
            "/api/v1/claims/bulk-transition",
            json={"claim_ids": [str(pending.id), str(denied.id)], "status": "APPROVED"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json() == {"updated_count": 1}

    def test_bulk_transition_requires_admin(self, client):
        response = client.post(
            "/api/v1/claims/bulk-transition",
            json={"claim_ids": [str(uuid4())], "status": "DENIED"},
            headers=USER,
        )

        assert response.status_code == 403

    def test_list_claims(self, client, repository):
        repository.seed(make_claim(created_by="user-1"), make_claim(created_by="user-2"))

        response = client.get("/api/v1/claims", params={"status": "PENDING"}, headers=USER)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["page"] == 1
        assert body["total_pages"] == 1

    def test_list_page_size_is_bounded(self, client):
        response = client.get("/api/v1/claims", params={"limit": 1000}, headers=USER)

        assert response.status_code == 422

    def test_claim_stats(self, client, repository):
        repository.seed(make_claim(), make_claim(status=ClaimStatus.APPROVED))

        response = client.get("/api/v1/claims/stats", headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["total_claims"] == 2
        assert response.json()["approved_claims"] == 1


@pytest.mark.api
class TestFraudApi:
    """Tests for the pre-submission assessment endpoint."""

    def test_assess(self, client):
        response = client.post("/api/v1/fraud/assess", json={**CLAIM_BODY, "patient_id": "p9"}, headers=USER)

        assert response.status_code == 200
        assert response.json() == {
            "isFraudulent": True,
            "reasons": ["No medical record found for patient"],
            "riskScore": 1.0,
        }


@pytest.mark.api
class TestErrorMapping:
    """Tests for dependency failures and health endpoints."""

    def test_dependency_error_maps_to_503(self):
        lifecycle = AsyncMock()
        lifecycle.get_claim.side_effect = DependencyError(
            "Claim read timed out", dependency="database"
        )
        app.dependency_overrides[get_claim_lifecycle] = lambda: lifecycle
        try:
            response = TestClient(app).get(f"/api/v1/claims/{uuid4()}", headers=USER)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json() == {
            "error": "dependency_unavailable",
            "detail": "Claim read timed out",
        }

    def test_health(self):
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

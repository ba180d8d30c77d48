"""
Integration tests for user, subscription and report endpoints
"""
import pytest
from unittest.mock import Mock
from api.dependencies import get_user_service
from db.models.user import User, SubscriptionTier
from main import app


@pytest.fixture
def user_id(client):
    response = client.post(
        "/api/signup",
        data={"name": "Report User", "email": "reports@example.com", "password": "secret123"},
    )
    assert response.status_code == 200
    return response.json()["id"]


class TestUserEndpoints:
    def test_get_user(self, client, user_id):
        response = client.get(f"/api/users/{user_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "reports@example.com"
        assert "password" not in data

    def test_get_user_not_found(self, client, test_db):
        response = client.get("/api/users/999")
        assert response.status_code == 404

    def test_update_profile(self, client, user_id):
        response = client.patch(f"/api/users/{user_id}", json={"name": "  New Name  "})
        assert response.status_code == 200
        assert response.json()["name"] == "New Name"

    def test_update_profile_invalid_email(self, client, user_id):
        response = client.patch(f"/api/users/{user_id}", json={"email": "broken"})
        assert response.status_code == 422

    def test_change_password(self, client, user_id):
        response = client.put(
            f"/api/users/{user_id}/password",
            json={"current_password": "secret123", "new_password": "changed123"},
        )
        assert response.status_code == 200
        login = client.post(
            "/api/login", data={"username": "reports@example.com", "password": "changed123"}
        )
        assert login.status_code == 200

    def test_change_password_wrong_current(self, client, user_id):
        response = client.put(
            f"/api/users/{user_id}/password",
            json={"current_password": "nope-nope", "new_password": "changed123"},
        )
        assert response.status_code == 400

    def test_delete_user(self, client, user_id):
        assert client.delete(f"/api/users/{user_id}").status_code == 204
        assert client.get(f"/api/users/{user_id}").status_code == 404


class TestReportEntitlements:
    def test_free_tier_allows_two_reports(self, client, user_id):
        for _ in range(2):
            assert client.get(f"/api/users/{user_id}/entitlements").json()["allowed"] is True
            assert client.post(f"/api/users/{user_id}/reports").status_code == 200

        entitlement = client.get(f"/api/users/{user_id}/entitlements").json()
        assert entitlement == {
            "user_id": user_id,
            "subscription": "free",
            "report_type": "basic",
            "allowed": False,
        }
        response = client.post(f"/api/users/{user_id}/reports")
        assert response.status_code == 403
        assert client.get(f"/api/users/{user_id}").json()["report_count"]["free"] == 2

    def test_ai_enhanced_credit_flow(self, client, user_id):
        response = client.put(
            f"/api/users/{user_id}/subscription",
            json={"subscription": "ai_enhanced", "stripe_customer_id": "cus_1", "ai_credits": 1},
        )
        assert response.status_code == 200
        assert response.json()["stripe_customer_id"] == "cus_1"

        params = {"report_type": "ai"}
        assert client.get(f"/api/users/{user_id}/entitlements", params=params).json()["allowed"] is True
        consumed = client.post(f"/api/users/{user_id}/reports", params=params)
        assert consumed.status_code == 200
        assert consumed.json()["ai_credits"] == 0
        assert client.get(f"/api/users/{user_id}/entitlements", params=params).json()["allowed"] is False
        assert client.post(f"/api/users/{user_id}/reports", params=params).status_code == 403

        # non-ai reports stay unlimited and leave credits alone
        basic = client.post(f"/api/users/{user_id}/reports")
        assert basic.status_code == 200
        assert basic.json()["ai_credits"] == 0

    def test_basic_tier_unlimited(self, client, user_id):
        client.put(f"/api/users/{user_id}/subscription", json={"subscription": "basic"})
        for _ in range(4):
            assert client.post(f"/api/users/{user_id}/reports").status_code == 200
        data = client.get(f"/api/users/{user_id}").json()
        assert data["report_count"] == {"free": 0, "basic": 0, "ai": 0}

    def test_subscription_rejects_unknown_tier(self, client, user_id):
        response = client.put(f"/api/users/{user_id}/subscription", json={"subscription": "gold"})
        assert response.status_code == 422

    def test_subscription_rejects_negative_credits(self, client, user_id):
        response = client.put(
            f"/api/users/{user_id}/subscription",
            json={"subscription": "ai_enhanced", "ai_credits": -1},
        )
        assert response.status_code == 422

    def test_entitlement_endpoint_asks_service(self, client):
        user_service = Mock()
        user_service.check_entitlement.return_value = True
        user_service.get_by_id.return_value = User(
            id=5, name="Mocked", email="mocked@example.com", subscription=SubscriptionTier.AI_ENHANCED
        )
        app.dependency_overrides[get_user_service] = lambda: user_service

        response = client.get("/api/users/5/entitlements", params={"report_type": "ai"})
        assert response.status_code == 200
        assert response.json() == {
            "user_id": 5,
            "subscription": "ai_enhanced",
            "report_type": "ai",
            "allowed": True,
        }
        user_service.check_entitlement.assert_called_once_with(5, "ai")

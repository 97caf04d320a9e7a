"""
Unit tests for the Rule Store main service.
"""

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from rules_sync.models import TERMINATOR_KEY
from service_rules.app.main import RulesService, create_app
from service_rules.app.store.repository import RuleRepository
from shared.test_helpers import TestDataFactory


def rule_body(priority, name="Rule"):
    return {
        "name": name,
        "action": "Allow",
        "sources": [{"name": "A", "address": "a@example.com"}],
        "destinations": [{"name": "B", "address": "b@example.com"}],
        "priority": priority,
    }


class TestRulesService:
    """Test cases for RulesService."""

    @pytest.fixture
    def repository(self):
        """Repository seeded with two rules of tenant-1."""
        return RuleRepository([
            TestDataFactory.create_rule(10, tenant_id="tenant-1"),
            TestDataFactory.create_rule(20, tenant_id="tenant-1"),
        ])

    @pytest.fixture
    def app(self, repository):
        """Create FastAPI app instance."""
        return create_app(repository=repository)

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return TestClient(app)

    @pytest.fixture
    def logged_in(self, client):
        """Client holding a tenant-1 session cookie."""
        response = client.post("/api/login", json={"tenant_id": "tenant-1", "password": "1234"})
        assert response.status_code == 200
        return client

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "rules"
        assert "bulk_save" in data["capabilities"]

    def test_health_endpoint(self, client):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "rules"
        assert data["status"] == "ok"
        assert data["dependencies"]["repository"] == "ok"

    @patch('service_rules.app.main.RulesService._check_dependencies')
    def test_health_dependency_failure(self, mock_check_deps, client):
        """Test health endpoint when a dependency check fails."""
        mock_check_deps.side_effect = RuntimeError("repository unavailable")

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "error"

    def test_login_wrong_password(self, client):
        """Test login with a wrong password."""
        response = client.post("/api/login", json={"tenant_id": "tenant-1", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_login_sets_cookie(self, client):
        """Test successful login."""
        response = client.post("/api/login", json={"tenant_id": "tenant-1", "password": "1234"})

        assert response.status_code == 200
        data = response.json()
        assert data["tenant_id"] == "tenant-1"
        assert data["see_all"] is False
        assert response.cookies.get("token") == data["token"]

    def test_me(self, logged_in):
        """Test the current session is described."""
        response = logged_in.get("/api/me")

        assert response.status_code == 200
        assert response.json() == {"tenant_id": "tenant-1", "see_all": False}

    def test_logout(self, logged_in):
        """Test logout drops the session."""
        assert logged_in.post("/api/logout").status_code == 200
        logged_in.cookies.clear()

        assert logged_in.get("/api/me").status_code == 401

    def test_rules_require_session(self, client):
        """Test unauthenticated reads."""
        response = client.get("/rules")

        assert response.status_code == 401

    def test_rules_with_bearer_header(self, client):
        """Test a Bearer header is accepted instead of the cookie."""
        token = client.post("/api/login", json={"tenant_id": "tenant-1", "password": "1234"}).json()["token"]
        client.cookies.clear()

        response = client.get("/rules", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200

    def test_get_rules_slice(self, logged_in):
        """Test ordered slice reads."""
        response = logged_in.get("/rules", params={"skip": 1, "take": 5})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["skip"] == 1
        assert [rule["priority"] for rule in data["rules"]] == [20, TERMINATOR_KEY]
        assert data["rules"][-1]["action"] == "default-action"

    def test_get_rules_invalid_take(self, logged_in):
        """Test take is bounded."""
        response = logged_in.get("/rules", params={"take": 5000})

        assert response.status_code == 422

    def test_bulk_save(self, logged_in):
        """Test a batch of create, update and delete."""
        response = logged_in.post("/rules/bulk-save", json={"operations": [
            {"op": "create", "rule": rule_body(15, "New")},
            {"op": "update", "id": "rule-20", "rule": rule_body(5, "Moved")},
            {"op": "delete", "id": "rule-10"},
        ]})

        assert response.status_code == 200
        assert response.json() == {"success": True, "created": 1, "updated": 1, "deleted": 1}

        rules = logged_in.get("/rules").json()["rules"]
        assert [(rule["name"], rule["priority"]) for rule in rules] == [
            ("Moved", 5), ("New", 15), ("Allow", TERMINATOR_KEY)
        ]

    def test_bulk_save_reserved_key(self, logged_in):
        """Test a key in the reserved range rejects the batch."""
        response = logged_in.post("/rules/bulk-save", json={"operations": [
            {"op": "delete", "id": "rule-10"},
            {"op": "create", "rule": rule_body(1_000_000_000)},
        ]})

        assert response.status_code == 400
        assert response.json()["code"] == "RESERVED_KEY"
        assert logged_in.get("/rules").json()["total"] == 3

    def test_bulk_save_terminator(self, logged_in, repository):
        """Test the terminator cannot be deleted."""
        response = logged_in.post("/rules/bulk-save", json={"operations": [
            {"op": "delete", "id": repository.terminator.rule_id},
        ]})

        assert response.status_code == 400
        assert response.json()["code"] == "IMMUTABLE_ITEM"

    def test_bulk_save_unknown_id(self, logged_in):
        """Test an unknown id rejects the batch."""
        response = logged_in.post("/rules/bulk-save", json={"operations": [
            {"op": "delete", "id": "missing"},
        ]})

        assert response.status_code == 404

    def test_bulk_save_duplicate_key(self, logged_in):
        """Test a batch producing equal keys."""
        response = logged_in.post("/rules/bulk-save", json={"operations": [
            {"op": "create", "rule": rule_body(10)},
        ]})

        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_KEY"

    def test_bulk_save_malformed_operation(self, logged_in):
        """Test an update without an id."""
        response = logged_in.post("/rules/bulk-save", json={"operations": [
            {"op": "update", "rule": rule_body(10)},
        ]})

        assert response.status_code == 422

    def test_metrics_endpoint(self, logged_in):
        """Test rule metrics are exported."""
        logged_in.post("/rules/bulk-save", json={"operations": [{"op": "create", "rule": rule_body(15)}]})

        response = logged_in.get("/metrics")

        assert response.status_code == 200
        assert "rules_committed_total" in response.text

    def test_dummy_rules_websocket(self, client):
        """Test the generator streams cleanup and creation progress."""
        token = client.post("/api/login", json={"tenant_id": "tenant-1", "password": "1234"}).json()["token"]

        messages = []
        with client.websocket_connect(f"/ws/dummy-rules?token={token}") as websocket:
            websocket.send_json({"count": 5})
            while True:
                message = websocket.receive_json()
                messages.append(message)
                if message.get("done"):
                    break

        assert messages[0] == {"deleteProgress": pytest.approx(1 / 3)}
        assert {"progress": 1.0} in messages
        assert messages[-1] == {"done": True}

        rules = client.get("/rules", headers={"Authorization": f"Bearer {token}"}).json()["rules"]
        assert [rule["name"] for rule in rules[:2]] == ["Dummy Rule 1", "Dummy Rule 2"]
        assert len(rules) == 6

    def test_dummy_rules_websocket_invalid_request(self, client):
        """Test a malformed generator request."""
        token = client.post("/api/login", json={"tenant_id": "tenant-1", "password": "1234"}).json()["token"]

        with client.websocket_connect(f"/ws/dummy-rules?token={token}") as websocket:
            websocket.send_json({"count": 0})
            message = websocket.receive_json()

        assert message["error"] == "INVALID_REQUEST"

    def test_dummy_rules_websocket_other_tenant(self, client):
        """Test only see-all sessions may target another tenant."""
        token = client.post("/api/login", json={"tenant_id": "tenant-1", "password": "1234"}).json()["token"]

        with client.websocket_connect(f"/ws/dummy-rules?token={token}") as websocket:
            websocket.send_json({"count": 1, "tenant_id": "tenant-2"})
            message = websocket.receive_json()

        assert message["error"] == "AUTHORIZATION_ERROR"

    def test_dummy_rules_websocket_requires_token(self, client):
        """Test the generator rejects anonymous connections."""
        with client.websocket_connect("/ws/dummy-rules") as websocket:
            message = websocket.receive_json()

        assert message["error"] == "AUTHENTICATION_ERROR"

    def test_service_initialization(self):
        """Test service initialization."""
        service = RulesService()

        assert service.service_name == "rules"
        assert service.port == 4001
        assert service.repository.terminator.key == TERMINATOR_KEY
        assert service.generator.batch_size == 20

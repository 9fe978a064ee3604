"""Edge case and error handling tests."""
import httpx
import respx
from fastapi import status
from sqlalchemy.exc import OperationalError

from forum_authz import main
from tests.helpers import ADMIN_HEADERS, DECISION_URL, OPA_URL, bearer, make_token, opa_result


class TestEdgeCases:
    """Test edge cases and error handling."""

    def test_invalid_json_payload(self, client):
        """Test handling of invalid JSON payload."""
        response = client.post(
            "/access",
            content="invalid json",
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_missing_action(self, client):
        """Test handling of missing required fields in request."""
        response = client.post("/access", json={"resource": {}})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_no_token_is_a_deny_not_an_http_error(self, client):
        """No Authorization header: 200 with allow=false and reason no-token."""
        with respx.mock(assert_all_called=False) as opa:
            route = opa.post(DECISION_URL).mock(return_value=httpx.Response(200, json=opa_result(True)))
            response = client.post("/access", json={"action": "read_post", "resource": {"id": "1"}})

        assert response.status_code == 200
        assert response.json()["allow"] is False
        assert response.json()["decision"]["reason"] == "no-token"
        assert response.json()["uid"] is None
        assert route.call_count == 0

    def test_invalid_token(self, client):
        """Unverifiable token: deny with the verification message."""
        response = client.post(
            "/access",
            json={"action": "read_post", "resource": {"id": "1"}},
            headers=bearer("definitely.not.valid"),
        )
        assert response.status_code == 200
        assert response.json()["allow"] is False
        assert response.json()["decision"]["reason"] == "Invalid ID token"

    def test_empty_batch_request(self, client):
        """Test batch request with empty list."""
        response = client.post("/access/batch", json={"requests": []}, headers=bearer(make_token("u1")))
        assert response.status_code == 200
        assert response.json() == []

    def test_empty_batch_all_and_any(self, client):
        """every() of nothing is true, some() of nothing is false."""
        headers = bearer(make_token("u1"))
        assert client.post("/access/all", json={"requests": []}, headers=headers).json()["all_allowed"] is True
        assert client.post("/access/any", json={"requests": []}, headers=headers).json()["any_allowed"] is False

    def test_batch_item_missing_action(self, client):
        """One malformed item rejects the whole batch at validation."""
        response = client.post("/access/batch", json={"requests": [
            {"action": "read_post", "resource": {}},
            {"resource": {}},
        ]})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_dry_run_no_audit_log(self, client):
        """Test that dry-run requests don't create audit logs."""
        with respx.mock(assert_all_called=False) as opa:
            opa.post(DECISION_URL).mock(return_value=httpx.Response(200, json=opa_result(True)))
            response = client.post("/access", json={
                "action": "read_post",
                "resource": {"id": "dry"},
                "dry_run": True
            }, headers=bearer(make_token("dry_run_user")))

        assert response.status_code == 200
        assert response.json()["allow"] is True
        assert response.json().get("trace_id") is None

        logs = client.get("/audit-logs", params={"subject": "dry_run_user"}, headers=ADMIN_HEADERS)
        assert logs.json() == []

    def test_dry_run_batch(self, client):
        with respx.mock(assert_all_called=False) as opa:
            opa.post(DECISION_URL).mock(return_value=httpx.Response(200, json=opa_result(True)))
            response = client.post("/access/batch", json={
                "requests": [{"action": "read_post", "resource": {"id": "x"}}],
                "dry_run": True
            }, headers=bearer(make_token("u1")))
        assert response.json()[0]["trace_id"] is None

    def test_non_json_resource_value_rejected(self, client):
        """Resources must be JSON objects."""
        response = client.post("/access", json={"action": "read_post", "resource": "post-1"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_admin_endpoints_require_api_key(self, client):
        """Cache and audit endpoints reject a wrong key."""
        wrong = {"Authorization": "Bearer WRONG_KEY"}
        assert client.delete("/cache", headers=wrong).status_code == status.HTTP_403_FORBIDDEN
        assert client.delete("/cache/subjects/u1", headers=wrong).status_code == status.HTTP_403_FORBIDDEN
        assert client.post("/cache/prune", headers=wrong).status_code == status.HTTP_403_FORBIDDEN
        assert client.get("/audit-logs", headers=wrong).status_code == status.HTTP_403_FORBIDDEN

    def test_admin_endpoints_without_credentials(self, client):
        response = client.delete("/cache")
        assert response.status_code in [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN]

    def test_prune_on_fresh_cache(self, client):
        response = client.post("/cache/prune", headers=ADMIN_HEADERS)
        assert response.status_code == 200
        assert response.json() == {"cleared": 0}

    def test_audit_log_limit_validation(self, client):
        response = client.get("/audit-logs", params={"limit": 0}, headers=ADMIN_HEADERS)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "Operational" in response.json()["status"]

    def test_health_closes_session_when_database_fails(self, client, monkeypatch):
        """A failing database check reports unhealthy and still releases its session."""
        sessions = []

        class FailingSession:
            closed = False

            def __enter__(self):
                sessions.append(self)
                return self

            def __exit__(self, *exc_info):
                self.closed = True
                return False

            def execute(self, statement):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(main, "SessionLocal", FailingSession)
        with respx.mock(assert_all_called=False) as opa:
            opa.get(f"{OPA_URL}/health").mock(return_value=httpx.Response(200, json={}))
            response = client.get("/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["checks"]["database"]["status"] == "unhealthy"
        assert len(sessions) == 1
        assert sessions[0].closed is True

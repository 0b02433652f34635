"""Integration tests for authentication, health and error payloads."""


def test_health_sets_security_headers(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "X-Response-Time" in response.headers


def test_readiness_checks_database(client) -> None:
    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"


def test_root_endpoint(client) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["health"] == "/health"


def test_missing_token_is_unauthorized(client) -> None:
    response = client.post("/check-subscription")

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


def test_invalid_tokens_are_rejected(client, make_token) -> None:
    cases = [
        "not-a-jwt",
        make_token("kid", secret="someone-elses-secret"),
        make_token("kid", expires_in=-60),
        make_token("kid", audience="anon"),
    ]

    for token in cases:
        response = client.post("/check-subscription", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


def test_admin_routes_require_admin_role(client, auth_headers) -> None:
    headers = auth_headers("kid")

    assert client.post("/analytics", json={"method": "getDashboardMetrics"}, headers=headers).status_code == 403
    assert client.get("/admin/referrals", headers=headers).status_code == 403
    assert client.post("/system-migration", json={"action": "status"}, headers=headers).status_code == 403
    assert client.post("/trial-expiry-check", headers=headers).status_code == 403


def test_malformed_body_is_a_validation_error(client, auth_headers) -> None:
    response = client.post("/ai-chat", json={"topic": "Delta"}, headers=auth_headers("kid"))

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["details"] == "field=message"

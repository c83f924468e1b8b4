import json
import logging

import pytest

from app import main as main_module
from app.core import config
from app.core.errors import TokenFailure, token_failure_message
from app.core.log import JSONFormatter, MASK, log_event, sanitize


@pytest.mark.parametrize("failure", list(TokenFailure))
def test_every_token_failure_has_a_message(failure):
    assert token_failure_message(failure)


def test_principal_failures_share_one_message():
    assert token_failure_message(TokenFailure.UNKNOWN_PRINCIPAL) == token_failure_message(TokenFailure.INACTIVE_PRINCIPAL)


def test_request_validation_shape(client, auth_headers, users):
    response = client.post("/api/v1/users", json={"username": "x"}, headers=auth_headers("admin"))

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["source"] == "body"
    assert {detail["field"] for detail in error["details"]} >= {"full_name", "password"}


def test_unknown_route(client):
    response = client.get("/api/v1/nowhere")

    assert response.status_code == 404
    assert response.json()["ok"] is False


def test_unhandled_error_in_development(client, app):
    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    response = client.get("/boom")

    assert response.status_code == 500
    body = response.json()
    assert body["ok"] is False
    assert body["error"]["detail"] == "Internal server error: kaboom"
    assert body["error"]["details"]["request_id"]


def test_unhandled_error_in_production_hides_detail(client, app, monkeypatch):
    monkeypatch.setattr("app.core.errors.is_production", lambda: True)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    response = client.get("/boom")

    assert response.status_code == 500
    assert response.json()["error"]["detail"] == "Internal server error"


def test_security_headers_and_request_id(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_sanitize_masks_nested_secrets():
    data = {"username": "a", "password": "p", "nested": [{"token": "t"}], "refreshToken": ""}

    assert sanitize(data) == {"username": "a", "password": MASK, "nested": [{"token": MASK}], "refreshToken": ""}


def test_json_formatter_merges_event(caplog):
    logger = logging.getLogger("tests.events")
    with caplog.at_level(logging.INFO, logger="tests.events"):
        log_event(logger, logging.INFO, "AUTH_SUCCESS", user_id=1, password="hunter2")

    line = json.loads(JSONFormatter().format(caplog.records[-1]))

    assert line["action"] == "AUTH_SUCCESS"
    assert line["user_id"] == 1
    assert line["password"] == MASK
    assert line["level"] == "info"


def test_login_body_is_masked_in_request_log(client, users, caplog):
    with caplog.at_level(logging.INFO, logger="app.main"):
        client.post("/api/v1/authn/login", json={"username": "admin", "password": "valid123"})

    requests = [r.event for r in caplog.records if getattr(r, "event", {}).get("action") == "REQUEST"]
    assert requests[0]["body"] == {"username": "admin", "password": MASK}


class UnreachableEngine:
    def connect(self):
        raise ConnectionError("could not open /var/lib/trynet/secret.db")


@pytest.mark.parametrize(
    "environment, expected",
    [
        ("development", "unhealthy: could not open /var/lib/trynet/secret.db"),
        ("production", "unhealthy"),
    ],
)
def test_health_withholds_database_error_in_production(client, monkeypatch, environment, expected):
    monkeypatch.setattr(main_module, "engine", UnreachableEngine())
    monkeypatch.setattr(config, "APP_ENV", environment)

    data = client.get("/health").json()["data"]

    assert data["status"] == "degraded"
    assert data["database"] == expected
    assert data["environment"] == environment


def test_error_envelope_is_documented(client):
    schema = client.get("/openapi.json").json()

    assert "ErrorResponse" in schema["components"]["schemas"]
    responses = schema["paths"]["/api/v1/users"]["post"]["responses"]
    assert responses["403"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")

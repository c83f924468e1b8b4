import logging

import pytest

CLIENTS = "/api/v1/clients"


@pytest.mark.parametrize(
    "username, expected",
    [
        ("admin", 201),
        ("supervisor", 201),
        ("technician", 403),
        ("viewer", 403),
    ],
)
def test_create_client_requires_admin_or_supervisor(client, auth_headers, username, expected):
    response = client.post(CLIENTS, json={"name": f"Client of {username}"}, headers=auth_headers(username))
    assert response.status_code == expected


def test_unauthenticated_is_401_not_403(client, users):
    response = client.post(CLIENTS, json={"name": "Nobody"})

    assert response.status_code == 401
    assert response.json()["error"]["detail"] == "Token not provided"


def test_forbidden_body(client, auth_headers):
    response = client.post(CLIENTS, json={"name": "Denied"}, headers=auth_headers("viewer"))

    assert response.json() == {
        "ok": False,
        "error": {
            "source": "authorization",
            "detail": "You do not have permission to access this resource",
        },
    }


@pytest.mark.parametrize("username", ["admin", "supervisor", "technician", "viewer"])
def test_any_role_reads_clients(client, auth_headers, username):
    assert client.get(CLIENTS, headers=auth_headers(username)).status_code == 200


@pytest.mark.parametrize(
    "username, expected",
    [("admin", 200), ("supervisor", 200), ("technician", 200), ("viewer", 403)],
)
def test_user_list_excludes_viewers(client, auth_headers, username, expected):
    assert client.get("/api/v1/users", headers=auth_headers(username)).status_code == expected


@pytest.mark.parametrize("username", ["supervisor", "technician", "viewer"])
def test_only_admin_creates_users(client, auth_headers, username):
    response = client.post(
        "/api/v1/users",
        json={"username": "newbie", "full_name": "New Bie", "password": "valid123"},
        headers=auth_headers(username),
    )
    assert response.status_code == 403


def test_only_admin_deletes_clients(client, auth_headers):
    created = client.post(CLIENTS, json={"name": "Keep"}, headers=auth_headers("supervisor")).json()["data"]

    assert client.delete(f"{CLIENTS}/{created['id']}", headers=auth_headers("supervisor")).status_code == 403
    assert client.delete(f"{CLIENTS}/{created['id']}", headers=auth_headers("admin")).status_code == 200


def authorization_events(caplog, action):
    return [r.event for r in caplog.records if getattr(r, "event", {}).get("action") == action]


def test_denied_role_is_logged(client, auth_headers, users, caplog):
    headers = {**auth_headers("viewer"), "X-Forwarded-For": "198.51.100.7"}

    with caplog.at_level(logging.INFO, logger="app.auth.dependencies"):
        response = client.post(CLIENTS, json={"name": "Denied"}, headers=headers)

    assert response.status_code == 403
    assert authorization_events(caplog, "AUTHORIZATION_FAILURE") == [{
        "action": "AUTHORIZATION_FAILURE",
        "error": "role not permitted",
        "user_role": "viewer",
        "required_roles": ["admin", "supervisor"],
        "user_id": users["viewer"],
        "ip": "198.51.100.7",
        "path": CLIENTS,
    }]
    assert authorization_events(caplog, "AUTHORIZATION_SUCCESS") == []


def test_permitted_role_is_logged(client, auth_headers, users, caplog):
    with caplog.at_level(logging.INFO, logger="app.auth.dependencies"):
        client.get(CLIENTS, headers=auth_headers("viewer"))

    [event] = authorization_events(caplog, "AUTHORIZATION_SUCCESS")
    assert event["user_role"] == "viewer"
    assert event["user_id"] == users["viewer"]
    assert event["required_roles"] == ["admin", "supervisor", "technician", "viewer"]
    assert event["path"] == CLIENTS

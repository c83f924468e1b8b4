import asyncio

import pytest
from sqlalchemy import select

from app.auth.audit import AuditRecorder, RequestMetadata
from app.core.store import AppendOnlyStore
from app.models.audit import AuditAction, AuditLog, AuditLogImmutableError, EntityType
from app.models.user import User
from app.schemas.common import PaginationMeta
from app.services import user_service


def history(client, headers, user_id, **params):
    response = client.get(f"/api/v1/users/{user_id}/history", params=params, headers=headers)
    assert response.status_code == 200
    return response.json()["data"]


def test_every_mutation_appends_one_record(client, auth_headers, users):
    admin = auth_headers("admin")
    target = users["technician"]

    client.put(f"/api/v1/users/{target}", json={"full_name": "First"}, headers=admin)
    client.put(f"/api/v1/users/{target}", json={"full_name": "Second"}, headers=admin)
    client.patch(f"/api/v1/users/{target}/password", json={"password": "other456"}, headers=admin)
    client.patch(f"/api/v1/users/{target}/status", json={"status": "inactive"}, headers=admin)

    data = history(client, admin, target)
    records = data["history"]

    assert data["pagination"] == {"total": 4, "page": 1, "limit": 20, "pages": 1}
    # newest first; reversed gives the order the mutations were applied in
    assert [r["action"] for r in reversed(records)] == ["update", "update", "password_change", "status_change"]
    assert [r["changes"] for r in reversed(records)][:2] == [{"full_name": "First"}, {"full_name": "Second"}]
    assert records[-1]["previous_data"] == {"full_name": "Technician"}
    assert all(r["performed_by"] == {"id": users["admin"], "username": "admin", "full_name": "Admin"} for r in records)
    assert all(r["entity_type"] == "user" and r["entity_id"] == str(target) for r in records)


def test_records_carry_client_metadata(client, auth_headers, users):
    headers = {**auth_headers("admin"), "User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
    client.put(f"/api/v1/users/{users['viewer']}", json={"full_name": "Vee", "notes": "rename"}, headers=headers)

    record = history(client, auth_headers("admin"), users["viewer"])["history"][0]

    assert record["ip_address"] == "203.0.113.9"
    assert record["user_agent"] == "pytest-agent"
    assert record["notes"] == "rename"


def test_history_has_no_write_routes(client, auth_headers, users):
    url = f"/api/v1/users/{users['admin']}/history"
    for method in ("put", "patch", "delete"):
        assert getattr(client, method)(url, headers=auth_headers("admin")).status_code == 405


def test_append_only_store_has_no_mutators():
    assert not hasattr(AppendOnlyStore, "find_by_id_and_update")
    assert not hasattr(AppendOnlyStore, "find_by_id_and_delete")
    assert not hasattr(AuditRecorder, "update")
    assert not hasattr(AuditRecorder, "delete")


def test_orm_refuses_to_modify_records(session_maker, users):
    async def scenario():
        async with session_maker() as session:
            record = await AuditRecorder(session).record(
                EntityType.USER, users["admin"], AuditAction.UPDATE, {"full_name": "x"}, None, RequestMetadata(),
            )
            record.notes = "tampered"
            with pytest.raises(AuditLogImmutableError):
                await session.commit()
            await session.rollback()

            await session.delete(record)
            with pytest.raises(AuditLogImmutableError):
                await session.commit()

    asyncio.run(scenario())


def test_audit_failure_does_not_fail_the_mutation(client, auth_headers, users, monkeypatch, caplog):
    async def broken_append(self, **fields):
        raise RuntimeError("audit sink down")

    monkeypatch.setattr(AppendOnlyStore, "append", broken_append)

    response = client.put(
        f"/api/v1/users/{users['viewer']}",
        json={"full_name": "Still Saved"},
        headers=auth_headers("admin"),
    )

    assert response.status_code == 200
    assert response.json()["data"]["full_name"] == "Still Saved"

    failures = [r for r in caplog.records if getattr(r, "event", {}).get("action") == "AUDIT_WRITE_FAILED"]
    assert len(failures) == 1
    assert failures[0].event["entity_id"] == str(users["viewer"])

    profile = client.get(f"/api/v1/users/{users['viewer']}", headers=auth_headers("admin")).json()["data"]
    assert profile["full_name"] == "Still Saved"


def test_audit_commit_failure_keeps_domain_write(session_maker, users, monkeypatch):
    """A failing commit of the audit row rolls back only the audit row."""
    async def failing_commit(self):
        await self.db.rollback()
        raise RuntimeError("disk full")

    monkeypatch.setattr(AppendOnlyStore, "_commit", failing_commit)

    async def scenario():
        async with session_maker() as session:
            actor = await session.get(User, users["admin"])
            user = await user_service.update_user(
                session, users["viewer"], {"full_name": "Durable"}, actor, RequestMetadata(),
            )
            assert user.full_name == "Durable"

        async with session_maker() as session:
            stored = await session.get(User, users["viewer"])
            records = (await session.execute(select(AuditLog))).scalars().all()
            return stored.full_name, records

    full_name, records = asyncio.run(scenario())
    assert full_name == "Durable"
    assert records == []


def test_pagination_page_two_of_forty_five(client, auth_headers, users, session_maker):
    target = users["supervisor"]

    async def seed():
        async with session_maker() as session:
            recorder = AuditRecorder(session)
            for i in range(1, 46):
                await recorder.record(
                    EntityType.USER, target, AuditAction.UPDATE, {"step": i}, None,
                    RequestMetadata(notes=f"change {i}"),
                )

    asyncio.run(seed())

    data = history(client, auth_headers("admin"), target, page=2, limit=20)

    assert data["pagination"] == {"total": 45, "page": 2, "limit": 20, "pages": 3}
    # newest first: positions 21..40 are changes 25 down to 6
    assert [r["notes"] for r in data["history"]] == [f"change {i}" for i in range(25, 5, -1)]


def test_last_page_is_partial(client, auth_headers, users, session_maker):
    target = users["supervisor"]

    async def seed():
        async with session_maker() as session:
            recorder = AuditRecorder(session)
            for i in range(5):
                await recorder.record(EntityType.USER, target, AuditAction.UPDATE, {"step": i}, None, RequestMetadata())

    asyncio.run(seed())

    data = history(client, auth_headers("admin"), target, page=2, limit=3)

    assert len(data["history"]) == 2
    assert data["pagination"]["pages"] == 2


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}])
def test_history_rejects_bad_paging(client, auth_headers, users, params):
    response = client.get(f"/api/v1/users/{users['admin']}/history", params=params, headers=auth_headers("admin"))
    assert response.status_code == 400


def test_history_of_unknown_user_is_404(client, auth_headers, users):
    response = client.get("/api/v1/users/9999/history", headers=auth_headers("admin"))

    assert response.status_code == 404
    assert response.json()["error"]["detail"] == "User not found"


def test_pagination_math():
    assert PaginationMeta.create(total=45, page=2, limit=20).pages == 3
    assert PaginationMeta.create(total=0, page=1, limit=20).pages == 0
    assert PaginationMeta.create(total=40, page=1, limit=20).pages == 2


def test_history_resolves_performer(client, auth_headers, users, session_maker):
    target = users["viewer"]

    async def seed():
        async with session_maker() as session:
            recorder = AuditRecorder(session)
            supervisor = await session.get(User, users["supervisor"])
            await recorder.record(EntityType.USER, target, AuditAction.UPDATE, {"step": 1}, None, RequestMetadata())
            await recorder.record(EntityType.USER, target, AuditAction.UPDATE, {"step": 2}, supervisor, RequestMetadata())
            # weak reference: the performer row does not exist
            await recorder.record(EntityType.USER, target, AuditAction.UPDATE, {"step": 3}, User(id=9999), RequestMetadata())

    asyncio.run(seed())

    records = history(client, auth_headers("admin"), target)["history"]

    assert [r["changes"]["step"] for r in records] == [3, 2, 1]
    assert records[0]["performed_by"] is None
    assert records[1]["performed_by"] == {"id": users["supervisor"], "username": "supervisor", "full_name": "Supervisor"}
    assert records[2]["performed_by"] is None


def test_history_timestamps_carry_utc_offset(client, auth_headers, users):
    admin = auth_headers("admin")
    client.put(f"/api/v1/users/{users['viewer']}", json={"full_name": "Zoned"}, headers=admin)

    record = history(client, admin, users["viewer"])["history"][0]
    profile = client.get(f"/api/v1/users/{users['viewer']}", headers=admin).json()["data"]

    assert record["created_at"].endswith("+00:00")
    assert profile["updated_at"].endswith("+00:00")

"""HTTP API tests: auth, ownership and the facade's error mapping."""
import pytest
from httpx import ASGITransport, AsyncClient

from pulse.main import app

USER = {"Authorization": "Bearer token-u1"}
OTHER = {"Authorization": "Bearer token-u2"}
ADMIN = {"Authorization": "Bearer token-admin"}


@pytest.fixture
async def client(components, identity):
    identity.tokens = {
        "token-u1": {"uid": "u1", "email": "una@example.com"},
        "token-u2": {"user_id": "u2"},
        "token-admin": {"sub": "admin", "admin": True},
    }
    app.state.components = components
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.components


@pytest.fixture
async def members(seed_users):
    await seed_users(
        {"id": "u1", "community_id": "c1", "full_name": "Una One"},
        {"id": "u2", "community_id": "c1", "full_name": "Theo Two"},
        {"id": "admin", "community_id": "c1", "full_name": "Ada Admin", "is_admin": True},
    )


async def test_health(client) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_requires_bearer_token(client) -> None:
    response = await client.post("/api/tokens/register", json={"userId": "u1", "token": "t", "platform": "ios"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized - No valid token provided"


async def test_rejects_invalid_token(client) -> None:
    response = await client.get("/api/notifications/user/u1", headers={"Authorization": "Bearer forged"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized - Invalid token"


async def test_register_token(client, components) -> None:
    response = await client.post(
        "/api/tokens/register",
        json={"userId": "u1", "token": "device-1", "platform": "android"},
        headers=USER,
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Token registered successfully"
    bundle = await components.registry.get_bundle("u1")
    assert [t.token for t in bundle.tokens] == ["device-1"]


async def test_register_for_someone_else_is_forbidden(client) -> None:
    response = await client.post(
        "/api/tokens/register",
        json={"userId": "u2", "token": "device-1", "platform": "android"},
        headers=USER,
    )

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Forbidden - You can only access your own resources"}


async def test_register_validation(client) -> None:
    missing = await client.post("/api/tokens/register", json={"userId": "u1", "platform": "ios"}, headers=USER)
    assert missing.status_code == 422

    platform = await client.post(
        "/api/tokens/register",
        json={"userId": "u1", "token": "device-1", "platform": "windows"},
        headers=USER,
    )
    assert platform.status_code == 400
    assert "Unsupported platform" in platform.json()["detail"]


async def test_preferences_logout_and_delete(client) -> None:
    await client.post("/api/tokens/register", json={"userId": "u1", "token": "device-1", "platform": "ios"}, headers=USER)

    prefs = await client.post(
        "/api/tokens/preferences", json={"userId": "u1", "preferences": {"marketplace": False}}, headers=USER
    )
    assert prefs.status_code == 200
    assert prefs.json()["preferences"]["marketplace"] is False

    unknown = await client.post(
        "/api/tokens/preferences", json={"userId": "u1", "preferences": {"weather": True}}, headers=USER
    )
    assert unknown.status_code == 400

    logout = await client.post("/api/tokens/logout", json={"userId": "u1"}, headers=USER)
    assert logout.status_code == 200

    deleted = await client.delete("/api/tokens/device-1", headers=USER)
    assert deleted.status_code == 200
    assert deleted.json()["token_count"] == 0

    again = await client.delete("/api/tokens/device-1", headers=USER)
    assert again.status_code == 404


async def test_inbox_flow(client, members, register) -> None:
    await register("u1", "device-u1")

    sent = await client.post(
        "/api/notifications/send", json={"userId": "u1", "title": "Hi", "body": "There"}, headers=USER
    )
    assert sent.status_code == 200
    assert sent.json()["success_count"] == 1

    inbox = await client.get("/api/notifications/user/u1", headers=USER)
    assert inbox.status_code == 200
    notifications = inbox.json()["notifications"]
    assert [n["title"] for n in notifications] == ["Hi"]
    status_id = notifications[0]["status_id"]

    stolen = await client.post(f"/api/notifications/read/{status_id}", headers=OTHER)
    assert stolen.status_code == 403
    assert stolen.json()["detail"] == "Forbidden - You can only access your own notifications"

    read = await client.post(f"/api/notifications/read/{status_id}", headers=USER)
    assert read.status_code == 200
    assert read.json()["notification"]["read"] is True

    missing = await client.post(f"/api/notifications/read/{status_id}", headers=USER)
    assert missing.status_code == 404


async def test_other_users_inbox_is_forbidden(client) -> None:
    response = await client.get("/api/notifications/user/u1", headers=OTHER)

    assert response.status_code == 403


async def test_admin_reads_any_inbox(client) -> None:
    response = await client.get("/api/notifications/user/u1", headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["count"] == 0


async def test_read_all(client, members, register) -> None:
    await register("u1", "device-u1")
    await client.post("/api/notifications/send", json={"userId": "u1", "title": "A", "body": "1"}, headers=USER)
    await client.post("/api/notifications/send", json={"userId": "u1", "title": "B", "body": "2"}, headers=USER)

    response = await client.post("/api/notifications/read-all/u1", headers=USER)

    assert response.status_code == 200
    assert response.json()["count"] == 2


async def test_send_without_tokens_is_bad_request(client, members) -> None:
    response = await client.post(
        "/api/notifications/send", json={"userId": "u2", "title": "Hi", "body": "There"}, headers=ADMIN
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "No tokens found"


async def test_send_community_is_admin_only(client, members, register, gateway) -> None:
    await register("u1", "device-u1")
    await register("u2", "device-u2")
    body = {"communityId": "c1", "title": "Notice", "body": "Bins on Monday", "excludeUserId": "u2"}

    denied = await client.post("/api/notifications/send-community", json=body, headers=USER)
    assert denied.status_code == 403
    assert denied.json()["error"] == "Forbidden - Admin access required"

    sent = await client.post("/api/notifications/send-community", json=body, headers=ADMIN)
    assert sent.status_code == 200
    assert sent.json()["sent_count"] == 1
    assert gateway.tokens == ["device-u1"]


async def test_cleanup(client, members, register, clock) -> None:
    await register("u1", "device-u1")
    await client.post("/api/notifications/send", json={"userId": "u1", "title": "A", "body": "1"}, headers=USER)
    clock.advance(days=10)

    denied = await client.post("/api/notifications/cleanup", headers=USER)
    assert denied.status_code == 403

    kept = await client.post("/api/notifications/cleanup", headers=ADMIN)
    assert kept.json() == {"success": True, "count": 0, "days": 30}

    purged = await client.post("/api/notifications/cleanup", json={"days": 7}, headers=ADMIN)
    assert purged.json()["count"] == 1

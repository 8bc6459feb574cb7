"""HTTP routes and the chat WebSocket endpoint through Starlette's TestClient."""
import json

from fastapi.testclient import TestClient

from application.services.token_service import TokenService
from application.services.user_service import UserApplicationService
from domain.user.service import GoogleProfile
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from main import app


INVALID_ROOM = "Invalid room. Choose room-1, room-2, or room-3."


def _login(client: TestClient, sub: str, email: str, name: str) -> str:
    service = UserApplicationService(SQLAlchemyUnitOfWork, TokenService())
    return client.portal.call(service.login_with_google, GoogleProfile(sub=sub, email=email, name=name))


def test_routes_registered():
    paths = {getattr(route, "path", None) for route in app.routes}
    for path in (
        "/",
        "/health",
        "/api/v1/ws",
        "/api/v1/auth/google/start",
        "/api/v1/auth/google/callback",
        "/api/v1/auth/me",
        "/api/v1/users/me",
        "/api/v1/users/me/username",
        "/api/v1/users/me/profile",
    ):
        assert path in paths


def test_health_and_root():
    with TestClient(app) as client:
        assert client.get("/health").json()["data"] == {"status": "healthy"}
        root = client.get("/")
        assert root.status_code == 200
        assert root.json()["data"]["name"] == "Room Relay"
        assert "X-Request-ID" in root.headers


def test_profile_routes_require_bearer_token():
    with TestClient(app) as client:
        response = client.get("/api/v1/users/me")
        assert response.status_code == 401
        assert response.json()["error"]["type"] == "Unauthorized"

        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401


def test_profile_update_flow():
    with TestClient(app) as client:
        token = _login(client, "g-1", "jane@example.com", "Jane Doe")
        headers = {"Authorization": f"Bearer {token}"}

        me = client.get("/api/v1/users/me", headers=headers).json()["data"]["user"]
        assert (me["username"], me["role"], me["displayName"]) == ("janedoe", "influencer", "Jane Doe")

        bad = client.patch("/api/v1/users/me/profile", json={"role": "admin"}, headers=headers)
        assert bad.status_code == 422
        assert bad.json()["message"] == "Role must be either influencer or brand."

        empty = client.patch("/api/v1/users/me/profile", json={}, headers=headers)
        assert empty.status_code == 400

        ok = client.patch("/api/v1/users/me/username", json={"username": "jane_d"}, headers=headers)
        assert ok.status_code == 200
        data = ok.json()["data"]
        assert data["user"]["username"] == "jane_d"
        assert data["token"]

        other_token = _login(client, "g-2", "other@example.com", "Other")
        taken = client.patch(
            "/api/v1/users/me/username",
            json={"username": "jane_d"},
            headers={"Authorization": f"Bearer {other_token}"},
        )
        assert taken.status_code == 409
        assert taken.json()["message"] == "Username is already taken."


def test_google_callback_without_configuration_redirects_to_login():
    with TestClient(app) as client:
        response = client.get("/api/v1/auth/google/callback?code=abc", follow_redirects=False)
        assert response.status_code in (302, 307)
        assert "/login?error=" in response.headers["location"]

        start = client.get("/api/v1/auth/google/start", follow_redirects=False)
        assert start.status_code == 503


def test_websocket_greets_and_rejects_unknown_room():
    with TestClient(app) as client:
        with client.websocket_connect("/api/v1/ws") as ws:
            assert ws.receive_json() == {"type": "room_options", "rooms": ["room-1", "room-2", "room-3"]}
            ws.send_text("not json")
            ws.send_text(json.dumps({"type": "join", "room": "lobby", "authToken": "x"}))
            assert ws.receive_json() == {"type": "error", "message": INVALID_ROOM}


def test_websocket_chat_between_two_roles():
    with TestClient(app) as client:
        influencer = _login(client, "g-a", "amy@example.com", "amy")
        brand = _login(client, "g-b", "bolt@example.com", "bolt")
        client.patch(
            "/api/v1/users/me/profile",
            json={"role": "brand"},
            headers={"Authorization": f"Bearer {brand}"},
        )

        with client.websocket_connect("/api/v1/ws") as a:
            a.receive_json()
            a.send_text(json.dumps({"type": "join", "room": "room-2", "authToken": influencer}))
            assert [a.receive_json()["type"] for _ in range(5)] == [
                "joined", "history", "system", "room_state", "typing_state",
            ]

            with client.websocket_connect("/api/v1/ws") as b:
                b.receive_json()
                b.send_text(json.dumps({"type": "join", "room": "room-2", "authToken": brand}))
                joined = b.receive_json()
                assert (joined["username"], joined["role"]) == ("bolt", "brand")
                assert a.receive_json()["message"] == "bolt (brand) joined the chat"
                assert a.receive_json()["type"] == "room_state"
                assert a.receive_json()["type"] == "typing_state"

                a.send_text(json.dumps({"type": "message", "message": "hello brand"}))
                assert a.receive_json()["message"] == "hello brand"

            left = a.receive_json()
            assert left["type"] == "system"
            assert left["message"] == "bolt (brand) left the chat"

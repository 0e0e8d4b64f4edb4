"""
Unit tests for the FastAPI application factory.
"""

import pytest
from starlette.testclient import TestClient

from unblocked.api.app import create_app
from unblocked.api.endpoints import Endpoint
from unblocked.options import UnblockedOptions
from unblocked.plugins.base import Plugin
from unblocked.plugins.host import compose


def header_user(request):
    user_id = request.header("x-user")
    return {"id": user_id} if user_id else None


async def echo(request):
    return {"path": request.path, "query": request.query, "body": request.body, "client": request.client_host}


@pytest.fixture
def client(test_settings):
    plugin = Plugin(id="echo", endpoints=[Endpoint("/echo", "POST", echo)])
    context = compose(UnblockedOptions(plugins=[plugin], get_user=header_user), settings=test_settings)
    return TestClient(create_app(context))


class TestCreateApp:
    def test_ok_under_base_path(self, client):
        response = client.get("/api/unblocked/ok")

        assert response.status_code == 200
        assert response.json() == {"data": {"ok": True}}

    def test_request_is_translated(self, client):
        response = client.post("/api/unblocked/echo?page=2", json={"hello": "world"})

        assert response.json() == {
            "data": {"path": "/echo", "query": {"page": "2"}, "body": {"hello": "world"}, "client": "testclient"}
        }

    def test_invalid_json_is_validation_error(self, client):
        response = client.post(
            "/api/unblocked/echo", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unknown_endpoint_uses_error_envelope(self, client):
        response = client.get("/api/unblocked/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ENDPOINT_NOT_FOUND"

    def test_paths_outside_base_path_are_not_served(self, client):
        assert client.get("/ok").status_code == 404

    def test_built_in_routes_are_mounted(self, client):
        created = client.post("/api/unblocked/chat", json={"title": "From HTTP"}, headers={"x-user": "u1"})
        history = client.get("/api/unblocked/chat/history", headers={"x-user": "u1"})

        assert created.status_code == 200
        assert [c["title"] for c in history.json()["data"]["chats"]] == ["From HTTP"]

    def test_context_is_exposed_on_state(self, test_settings):
        context = compose(UnblockedOptions(base_path="/"), settings=test_settings)
        app = create_app(context)

        assert app.state.unblocked is context
        assert TestClient(app).get("/ok").json() == {"data": {"ok": True}}

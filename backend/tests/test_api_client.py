import json

import httpx
import pytest

from kudumbam.client.api_client import (
    NETWORK_MESSAGE,
    ApiClient,
    ApiClientError,
    coerce_body,
    error_message,
)
from kudumbam.client.storage import MemoryStorage


def client_for(handler, storage=None, **kwargs):
    return ApiClient(
        storage=storage or MemoryStorage(),
        base_url="http://testserver/api/v1",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.parametrize("status, expected", [
    (400, "Bad request: Please check your input."),
    (401, "Unauthorized: Please log in again."),
    (403, "Forbidden: You do not have permission to perform this action."),
    (404, "Resource not found."),
    (500, "Server error: Something went wrong on the server."),
    (418, "HTTP error! Status: 418"),
])
def test_generic_messages_per_status(status, expected):
    assert error_message(status, {}) == expected


def test_server_error_message_wins():
    assert error_message(400, {"success": False, "error": "Email already registered"}) == "Email already registered"


def test_form_encoded_bodies_become_dicts():
    assert coerce_body("a=1&b=") == {"a": "1", "b": ""}
    assert coerce_body(b"step=spouse") == {"step": "spouse"}
    assert coerce_body([("x", "1"), ("y", "2")]) == {"x": "1", "y": "2"}
    assert coerce_body(httpx.QueryParams({"q": "v"})) == {"q": "v"}
    assert coerce_body({"already": "json"}) == {"already": "json"}


@pytest.mark.asyncio
async def test_bearer_token_and_json_headers():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers.get("authorization")
        seen["content_type"] = request.headers.get("content-type")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True})

    storage = MemoryStorage()
    storage.save_session("tok-123", {"id": 1})
    async with client_for(handler, storage) as api:
        await api.post("/profile_completion", "step=member_details")

    assert seen["auth"] == "Bearer tok-123"
    assert seen["content_type"] == "application/json"
    assert seen["body"] == {"step": "member_details"}


@pytest.mark.asyncio
async def test_none_params_are_dropped():
    seen = {}

    def handler(request: httpx.Request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"success": True, "invitations": []})

    async with client_for(handler) as api:
        await api.invitations(page=2)

    assert seen["params"] == {"page": "2"}


@pytest.mark.asyncio
async def test_unauthorized_clears_session_and_redirects():
    redirects = []

    def handler(request):
        return httpx.Response(401, json={"success": False, "error": "Invalid or expired session"})

    storage = MemoryStorage()
    storage.save_session("stale", {"id": 1})
    async with client_for(handler, storage, on_unauthorized=redirects.append) as api:
        with pytest.raises(ApiClientError) as exc:
            await api.profile()

    assert exc.value.status_code == 401
    assert exc.value.message == "Invalid or expired session"
    assert storage.session_token is None
    assert redirects == ["login"]


@pytest.mark.asyncio
async def test_admin_client_clears_only_admin_session():
    redirects = []

    async def redirect(page):
        redirects.append(page)

    storage = MemoryStorage()
    storage.save_session("user-token", {"id": 1})
    storage.save_admin_session("admin-token", {"id": 1})

    async with client_for(lambda r: httpx.Response(401), storage, on_unauthorized=redirect, admin=True) as api:
        with pytest.raises(ApiClientError):
            await api.get("/admin/users")

    assert storage.admin_session_token is None
    assert storage.session_token == "user-token"
    assert redirects == ["admin/login"]


@pytest.mark.asyncio
async def test_network_failure_is_reported_plainly():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(handler) as api:
        with pytest.raises(ApiClientError) as exc:
            await api.feature_switches()

    assert exc.value.message == NETWORK_MESSAGE
    assert exc.value.status_code is None


@pytest.mark.asyncio
async def test_login_stores_session_only_on_success():
    def handler(request):
        return httpx.Response(200, json={"success": True, "session_token": "new", "user": {"id": 7}})

    storage = MemoryStorage()
    async with client_for(handler, storage) as api:
        await api.login("secret123", email="x@y.com")

    assert storage.session_token == "new"
    assert storage.user_data == {"id": 7}


@pytest.mark.asyncio
async def test_logout_clears_even_when_server_fails():
    storage = MemoryStorage()
    storage.save_session("tok", {"id": 1})

    async with client_for(lambda r: httpx.Response(500), storage) as api:
        with pytest.raises(ApiClientError):
            await api.logout()

    assert storage.session_token is None

"""
Kudumbam — API Client
Async HTTP client used by every page controller. Injects the stored bearer
token, sends JSON, and turns error responses into ApiClientError with the
server's message (or a generic one for the status code).
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import parse_qsl

import httpx

from kudumbam.client.storage import ClientStorage, MemoryStorage
from kudumbam.config import get_settings
from kudumbam.utils.logger import logger


LOGIN_PAGE = "login"
ADMIN_LOGIN_PAGE = "admin/login"
JSON_METHODS = ("POST", "PUT", "DELETE", "PATCH")

STATUS_MESSAGES = {
    400: "Bad request: Please check your input.",
    403: "Forbidden: You do not have permission to perform this action.",
    404: "Resource not found.",
    500: "Server error: Something went wrong on the server.",
}
UNAUTHORIZED_MESSAGE = "Unauthorized: Please log in again."
NETWORK_MESSAGE = "Network error: Please check your connection and try again."

RedirectHook = Callable[[str], Union[None, Awaitable[None]]]


class ApiClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


def error_message(status_code: int, payload: Optional[dict]) -> str:
    """Server-supplied `error` first, then a message for the status code."""
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    if status_code == 401:
        return UNAUTHORIZED_MESSAGE
    return STATUS_MESSAGES.get(status_code, f"HTTP error! Status: {status_code}")


def coerce_body(body: Any) -> Any:
    """Form-encoded bodies (query strings, pairs, QueryParams) become a plain dict."""
    if isinstance(body, httpx.QueryParams):
        return dict(body.multi_items())
    if isinstance(body, bytes):
        body = body.decode()
    if isinstance(body, str):
        return dict(parse_qsl(body, keep_blank_values=True))
    if isinstance(body, (list, tuple)) and all(isinstance(p, (list, tuple)) and len(p) == 2 for p in body):
        return dict(body)
    return body


def _parse_json(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}


class ApiClient:
    """
    One instance per client session.

    `on_unauthorized` receives the login page name after a 401 has cleared the
    stored session; the request still raises afterwards.
    """

    def __init__(
        self,
        storage: Optional[ClientStorage] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_unauthorized: Optional[RedirectHook] = None,
        timeout: Optional[float] = None,
        admin: bool = False,
    ):
        settings = get_settings()
        self.storage = storage if storage is not None else MemoryStorage()
        self.on_unauthorized = on_unauthorized
        self.admin = admin
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            transport=transport,
            timeout=timeout or settings.api_timeout_seconds,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ──────────────────────────────────────────────────────────────
    # Core request
    # ──────────────────────────────────────────────────────────────

    def _token(self) -> Optional[str]:
        return self.storage.admin_session_token if self.admin else self.storage.session_token

    async def request(self, method: str, path: str, params: Optional[dict] = None, body: Any = None) -> dict:
        method = method.upper()
        headers = {"Accept": "application/json"}
        token = self._token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        kwargs: dict[str, Any] = {"headers": headers}
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if method in JSON_METHODS:
            headers["Content-Type"] = "application/json"
            if body is not None:
                kwargs["json"] = coerce_body(body)

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"🌐 {method} {path} failed: {e}")
            raise ApiClientError(NETWORK_MESSAGE) from e

        payload = _parse_json(response)
        if response.status_code == 401:
            await self._handle_unauthorized()
            raise ApiClientError(error_message(401, payload), 401, payload)
        if response.is_error:
            raise ApiClientError(error_message(response.status_code, payload), response.status_code, payload)
        return payload

    async def _handle_unauthorized(self) -> None:
        if self.admin:
            self.storage.clear_admin_session()
        else:
            self.storage.clear_session()
        logger.info("🔒 Session rejected by server; stored credentials cleared")
        if self.on_unauthorized is not None:
            result = self.on_unauthorized(ADMIN_LOGIN_PAGE if self.admin else LOGIN_PAGE)
            if inspect.isawaitable(result):
                await result

    async def get(self, path: str, **params) -> dict:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> dict:
        return await self.request("POST", path, body=body)

    async def put(self, path: str, body: Any = None) -> dict:
        return await self.request("PUT", path, body=body)

    async def delete(self, path: str, body: Any = None, **params) -> dict:
        return await self.request("DELETE", path, params=params, body=body)

    # ──────────────────────────────────────────────────────────────
    # Accounts
    # ──────────────────────────────────────────────────────────────

    async def register(
        self, email: str, password: str, full_name: str, invitation_code: str, phone: Optional[str] = None
    ) -> dict:
        data = await self.post("/register", {
            "email": email,
            "password": password,
            "full_name": full_name,
            "invitation_code": invitation_code,
            "phone": phone,
        })
        self._remember(data)
        return data

    async def login(self, password: str, phone: Optional[str] = None, email: Optional[str] = None) -> dict:
        data = await self.post("/login", {"phone": phone, "email": email, "password": password})
        self._remember(data)
        return data

    def _remember(self, data: dict) -> None:
        if data.get("success") and data.get("session_token"):
            self.storage.save_session(data["session_token"], data.get("user") or {})

    async def logout(self) -> None:
        try:
            await self.post("/logout")
        finally:
            self.storage.clear_session()

    async def account(self) -> dict:
        data = await self.get("/account")
        if data.get("success") and data.get("user"):
            self.storage.update_user(data["user"])
        return data

    async def change_password(self, current_password: str, new_password: str) -> dict:
        return await self.put("/account", {
            "action": "change_password",
            "current_password": current_password,
            "new_password": new_password,
        })

    async def invitation(self, code: str) -> dict:
        return await self.get("/invitation", code=code)

    async def forgot_password(self, email: str) -> dict:
        return await self.post("/forgot_password", {"email": email})

    async def reset_password(self, token: str, new_password: str, confirm_password: Optional[str] = None) -> dict:
        return await self.post("/reset_password", {
            "token": token,
            "new_password": new_password,
            "confirm_password": new_password if confirm_password is None else confirm_password,
        })

    # ──────────────────────────────────────────────────────────────
    # Onboarding & profile
    # ──────────────────────────────────────────────────────────────

    async def save_intro(self, gender: str, marriage_type: str, has_children: Optional[str] = None) -> dict:
        return await self.post("/intro_questions", {
            "gender": gender,
            "marriageType": marriage_type,
            "hasChildren": has_children,
        })

    async def profile_completion(self, step: str, payload: Optional[dict] = None) -> dict:
        return await self.post("/profile_completion", {"step": step, **(payload or {})})

    async def profile(self) -> dict:
        return await self.get("/profile")

    async def update_profile(self, payload: dict) -> dict:
        return await self.put("/profile", payload)

    # ──────────────────────────────────────────────────────────────
    # Reference data
    # ──────────────────────────────────────────────────────────────

    async def districts(self, state: Optional[str] = None) -> dict:
        return await self.get("/districts", state=state)

    async def post_offices(self, pin_code: str) -> dict:
        return await self.get("/post_offices", pin_code=pin_code)

    async def feature_switches(self) -> dict:
        return await self.get("/feature_switches")

    async def form_values(self, value_type: Optional[str] = None) -> dict:
        return await self.get("/form_values", type=value_type)

    # ──────────────────────────────────────────────────────────────
    # Community
    # ──────────────────────────────────────────────────────────────

    async def invitations(self, page: int = 1, status: Optional[str] = None, search: Optional[str] = None) -> dict:
        return await self.get("/invitations", page=page, status=status, search=search)

    async def create_invitation(self, payload: dict) -> dict:
        return await self.post("/invitations", payload)

    async def delete_invitation(self, invitation_id: int) -> dict:
        return await self.delete("/invitations", id=invitation_id)

    async def help_posts(self, **filters) -> dict:
        return await self.get("/help_posts", **filters)

    async def help_post_action(self, action: str, payload: dict) -> dict:
        return await self.post("/help_posts", {"action": action, **payload})

    async def user_groups(self, **filters) -> dict:
        return await self.get("/user_groups", **filters)

    async def announcements(self, **filters) -> dict:
        return await self.get("/announcements", **filters)

    async def announcement_action(self, action: str, payload: dict) -> dict:
        return await self.post("/announcements", {"action": action, **payload})

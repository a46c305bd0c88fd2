"""
Kudumbam — Flow Middleware
Page-load gate: checks the stored session, refreshes the account snapshot and
decides whether the current page may be shown or where to send the user.
"""

from dataclasses import dataclass
from typing import Optional

from kudumbam.client.api_client import ApiClient, ApiClientError
from kudumbam.client.storage import ClientStorage
from kudumbam.services.user_flow import (
    LOGIN_PAGE,
    next_step,
    redirect_target,
    should_redirect,
)
from kudumbam.utils.logger import logger


@dataclass(frozen=True)
class FlowDecision:
    allowed: bool
    redirect_to: Optional[str] = None
    step: Optional[str] = None
    user: Optional[dict] = None

    @classmethod
    def stay(cls, step: Optional[str] = None, user: Optional[dict] = None) -> "FlowDecision":
        return cls(allowed=True, step=step, user=user)

    @classmethod
    def redirect(cls, target: str, step: Optional[str] = None, user: Optional[dict] = None) -> "FlowDecision":
        return cls(allowed=False, redirect_to=target, step=step, user=user)


def require_session(storage: ClientStorage) -> Optional[str]:
    """Redirect target when nobody is logged in, else None."""
    return None if storage.session_token else LOGIN_PAGE


class FlowMiddleware:
    """
    Runs on every protected page.

    Errors while talking to the server leave the user where they are (fail
    open), except a rejected session which always ends at the login page.
    """

    def __init__(self, api: ApiClient, storage: Optional[ClientStorage] = None):
        self.api = api
        self.storage = storage if storage is not None else api.storage

    async def check(self, current_page: str, require_completed: bool = True) -> FlowDecision:
        target = require_session(self.storage)
        if target:
            return FlowDecision.redirect(target)

        try:
            data = await self.api.account()
        except Exception as e:
            if isinstance(e, ApiClientError) and e.status_code == 401:
                return FlowDecision.redirect(LOGIN_PAGE)
            logger.warning(f"🚦 Flow check failed on '{current_page}', staying put: {e}")
            return FlowDecision.stay(user=self.storage.user_data)

        if not data.get("success"):
            self.storage.clear_session()
            return FlowDecision.redirect(LOGIN_PAGE)

        user = data.get("user") or {}
        step = next_step(user)
        if should_redirect(current_page, step, require_completed):
            target = redirect_target(step, user)
            logger.info(f"🚦 {current_page} → {target} ({step})")
            return FlowDecision.redirect(target, step=step, user=user)
        return FlowDecision.stay(step=step, user=user)

"""
Kudumbam — Request Dependencies
Resolves the caller from `Authorization: Bearer <token>` or the
`session_token` cookie.
"""

from typing import Optional

from fastapi import Request

from kudumbam.core.errors import AuthenticationError
from kudumbam.services.sessions import ADMIN_SESSION, USER_SESSION, SessionManager
from kudumbam.utils.security import extract_bearer_token


def session_token(request: Request) -> Optional[str]:
    return extract_bearer_token(request.headers.get("Authorization")) or request.cookies.get("session_token")


def current_user(request: Request) -> dict:
    user = SessionManager().user_from_session(session_token(request))
    if not user or user["session_type"] != USER_SESSION:
        raise AuthenticationError("Invalid or expired session")
    return user


def current_admin(request: Request) -> dict:
    admin = SessionManager().user_from_session(session_token(request))
    if not admin or admin["session_type"] != ADMIN_SESSION:
        raise AuthenticationError("Admin access required")
    return admin

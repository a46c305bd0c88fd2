"""
Kudumbam — Error Types
Every service raises one of these; the app turns them into {"success": false, "error": ...}.
"""

from typing import Optional


class ApiError(Exception):
    """Base error carrying an HTTP status and a human-readable message."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message}


class ValidationError(ApiError):
    """Input rejected. `fields` maps form field names to their messages."""

    status_code = 400

    def __init__(self, message: str, fields: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.fields = fields or {}

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.fields:
            payload["fields"] = self.fields
        return payload


class AuthenticationError(ApiError):
    status_code = 401


class PermissionDeniedError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409

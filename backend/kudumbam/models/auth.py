"""
Kudumbam — Pydantic Models for Accounts & Sessions
Fields stay optional so the services can answer with their own messages.
"""

from pydantic import BaseModel
from typing import Optional


class RegisterRequest(BaseModel):
    """Invitation-only registration."""
    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = None
    invitation_code: Optional[str] = None
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    """Phone (with country code) or email, plus password."""
    phone: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class AccountUpdateRequest(BaseModel):
    action: Optional[str] = None  # change_password
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class AdminLoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: Optional[str] = None
    new_password: Optional[str] = None
    confirm_password: Optional[str] = None

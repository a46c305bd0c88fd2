"""
Kudumbam — Accounts API Router
Registration, login, logout, the account snapshot, invitation lookup and
admin-approved password resets.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from kudumbam.api.deps import current_user, session_token
from kudumbam.core.errors import ValidationError
from kudumbam.models import (
    AccountUpdateRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from kudumbam.services.accounts import AccountService
from kudumbam.services.invitations import InvitationService
from kudumbam.services.password_reset import PasswordResetService

router = APIRouter()


@router.post("/register")
def register(body: RegisterRequest):
    """Create an account from an invitation code and open a session."""
    return AccountService().register(
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        invitation_code=body.invitation_code,
        phone=body.phone,
    )


@router.post("/login")
def login(body: LoginRequest):
    return AccountService().login(body.password, phone=body.phone, email=body.email)


@router.post("/logout")
def logout(request: Request):
    return AccountService().logout(session_token(request))


@router.get("/account")
def account(user: dict = Depends(current_user)):
    """Fresh snapshot the flow middleware reads on every page."""
    return {"success": True, "user": AccountService().account(user["id"])}


@router.put("/account")
def update_account(body: AccountUpdateRequest, user: dict = Depends(current_user)):
    if body.action != "change_password":
        raise ValidationError("Invalid action")
    return AccountService().change_password(user["id"], body.current_password, body.new_password)


@router.get("/invitation")
def invitation(code: Optional[str] = None):
    """Public lookup used to prefill the registration form."""
    return InvitationService().lookup(code)


@router.post("/forgot_password")
def forgot_password(body: ForgotPasswordRequest, request: Request):
    """Files a reset request for an admin to review."""
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    ip_address = forwarded or (request.client.host if request.client else "unknown")
    return PasswordResetService().request(
        body.email, ip_address=ip_address, user_agent=request.headers.get("User-Agent", "unknown")
    )


@router.post("/reset_password")
def reset_password(body: ResetPasswordRequest):
    return PasswordResetService().reset(body.token, body.new_password, body.confirm_password)

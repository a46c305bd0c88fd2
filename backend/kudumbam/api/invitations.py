"""
Kudumbam — Invitations API Router
"""

from typing import Optional

from fastapi import APIRouter, Depends

from kudumbam.api.deps import current_user
from kudumbam.models import InvitationCreate
from kudumbam.services.invitations import InvitationService

router = APIRouter()


@router.get("/invitations")
def list_invitations(
    page: int = 1,
    status: str = "",
    search: str = "",
    user: dict = Depends(current_user),
):
    return InvitationService().list_for_user(user, page=page, status=status, search=search)


@router.post("/invitations")
def create_invitation(body: InvitationCreate, user: dict = Depends(current_user)):
    return InvitationService().create(
        user,
        invited_name=body.invited_name,
        invitation_type=body.invitation_type,
        invited_email=body.invited_email,
        invited_phone=body.invited_phone,
        message=body.message,
    )


@router.delete("/invitations")
def delete_invitation(id: Optional[int] = None, user: dict = Depends(current_user)):
    return InvitationService().delete(user, id)

"""
Kudumbam — Admin API Router
Admin login, member approvals, feature switches, help-post moderation,
admin-issued invitations, groups, announcements, password-reset review and
form values. Everything but login needs an admin session.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from kudumbam.api.deps import current_admin
from kudumbam.models import (
    AdminLoginRequest,
    AdminUserUpdate,
    AnnouncementBody,
    FeatureSwitchUpdate,
    FormValueCreate,
    FormValueUpdate,
    GroupBody,
    GroupMemberAdd,
    GroupMemberUpdate,
    HelpPostModeration,
    InvitationCreate,
    PasswordResetDecision,
)
from kudumbam.services.admin import AdminService
from kudumbam.services.announcements import AnnouncementService
from kudumbam.services.feature_switches import FeatureSwitchService
from kudumbam.services.form_values import FormValueService
from kudumbam.services.groups import GroupService
from kudumbam.services.help_posts import HelpPostService
from kudumbam.services.invitations import InvitationService
from kudumbam.services.password_reset import PasswordResetService

router = APIRouter()


@router.post("/login")
def admin_login(body: AdminLoginRequest):
    return AdminService().login(body.username, body.password)


@router.get("/users")
def list_users(page: int = 1, status: str = "", search: str = "", admin: dict = Depends(current_admin)):
    """Registered members plus still-pending invitees, newest first."""
    return AdminService().list_users(page=page, status=status, search=search)


@router.put("/users/{user_id}")
def update_user(user_id: int, body: AdminUserUpdate, admin: dict = Depends(current_admin)):
    return AdminService().update_user(admin["id"], user_id, body.approval_status, body.user_type)


@router.get("/feature_switches")
def list_feature_switches(admin: dict = Depends(current_admin)):
    return FeatureSwitchService().admin_list()


@router.put("/feature_switches")
def update_feature_switch(body: FeatureSwitchUpdate, admin: dict = Depends(current_admin)):
    return FeatureSwitchService().update(admin["id"], body.feature_name, body.is_enabled)


@router.put("/help_posts/{post_id}")
def moderate_help_post(post_id: int, body: HelpPostModeration, admin: dict = Depends(current_admin)):
    return HelpPostService().moderate(post_id, status=body.status, is_pinned=body.is_pinned)


@router.post("/invitations")
def create_invitation(body: InvitationCreate, admin: dict = Depends(current_admin)):
    return InvitationService().create(
        admin,
        invited_name=body.invited_name,
        invitation_type=body.invitation_type,
        invited_email=body.invited_email,
        invited_phone=body.invited_phone,
        message=body.message,
        inviter_type="admin",
    )


# --- Groups ---
@router.get("/groups")
def list_groups(
    page: int = 1, limit: Optional[int] = None, search: str = "", type: str = "", admin: dict = Depends(current_admin)
):
    return GroupService().list(page=page, limit=limit, search=search, group_type=type)


@router.get("/groups/{group_id}")
def get_group(group_id: int, admin: dict = Depends(current_admin)):
    return GroupService().get(group_id)


@router.post("/groups")
def create_group(body: GroupBody, admin: dict = Depends(current_admin)):
    """District and area groups are filled with matching approved members."""
    return GroupService().create(admin["id"], body.model_dump())


@router.put("/groups/{group_id}")
def update_group(group_id: int, body: GroupBody, admin: dict = Depends(current_admin)):
    return GroupService().update(group_id, body.model_dump())


@router.delete("/groups/{group_id}")
def delete_group(group_id: int, admin: dict = Depends(current_admin)):
    return GroupService().delete(group_id)


@router.get("/groups/{group_id}/members")
def list_group_members(
    group_id: int, page: int = 1, limit: Optional[int] = None, search: str = "", admin: dict = Depends(current_admin)
):
    return GroupService().members(group_id, page=page, limit=limit, search=search)


@router.post("/groups/{group_id}/members")
def add_group_member(group_id: int, body: GroupMemberAdd, admin: dict = Depends(current_admin)):
    return GroupService().add_member(admin["id"], group_id, body.user_id, body.role)


@router.put("/groups/{group_id}/members/{user_id}")
def update_group_member(group_id: int, user_id: int, body: GroupMemberUpdate, admin: dict = Depends(current_admin)):
    return GroupService().update_member(group_id, user_id, body.role)


@router.delete("/groups/{group_id}/members/{user_id}")
def remove_group_member(group_id: int, user_id: int, admin: dict = Depends(current_admin)):
    return GroupService().remove_member(group_id, user_id)


@router.get("/group_candidates")
def group_candidates(search: str = "", admin: dict = Depends(current_admin)):
    """Approved members an admin can add to a group."""
    return GroupService().candidates(search)


# --- Announcements ---
@router.get("/announcements")
def list_announcements(
    id: Optional[int] = None,
    page: int = 1,
    limit: Optional[int] = None,
    search: str = "",
    group_id: Optional[int] = None,
    status: str = "",
    admin: dict = Depends(current_admin),
):
    service = AnnouncementService()
    if id is not None:
        return service.admin_get(id)
    return service.admin_list(page=page, limit=limit, search=search, group_id=group_id, status=status)


@router.post("/announcements")
def create_announcement(body: AnnouncementBody, admin: dict = Depends(current_admin)):
    return AnnouncementService().create(admin["id"], body.model_dump())


@router.put("/announcements/{announcement_id}")
def update_announcement(announcement_id: int, body: AnnouncementBody, admin: dict = Depends(current_admin)):
    """`action`: update (default), pin or archive."""
    return AnnouncementService().update(announcement_id, body.model_dump())


@router.delete("/announcements/{announcement_id}")
def delete_announcement(announcement_id: int, admin: dict = Depends(current_admin)):
    return AnnouncementService().delete(announcement_id)


# --- Password reset review ---
@router.get("/password_reset_requests")
def list_password_reset_requests(
    page: int = 1, status: str = "pending", search: str = "", admin: dict = Depends(current_admin)
):
    return PasswordResetService().list_requests(page=page, status=status, search=search)


@router.put("/password_reset_requests")
def decide_password_reset_request(body: PasswordResetDecision, admin: dict = Depends(current_admin)):
    return PasswordResetService().decide(admin["id"], body.request_id, body.action)


# --- Form values ---
@router.get("/form_values")
def list_form_values(admin: dict = Depends(current_admin)):
    return FormValueService().admin_list()


@router.post("/form_values")
def create_form_value(body: FormValueCreate, admin: dict = Depends(current_admin)):
    return FormValueService().create(body.type, body.value, body.parent_id)


@router.put("/form_values/{value_id}")
def update_form_value(value_id: int, body: FormValueUpdate, admin: dict = Depends(current_admin)):
    return FormValueService().update(value_id, body.value)


@router.delete("/form_values/{value_id}")
def delete_form_value(value_id: int, admin: dict = Depends(current_admin)):
    return FormValueService().delete(value_id)

"""
Kudumbam — Pydantic Models for Invitations, Help Posts & Admin
"""

from pydantic import BaseModel, ConfigDict
from typing import Optional


class InvitationCreate(BaseModel):
    invited_name: Optional[str] = None
    invitation_type: Optional[str] = None  # email, phone
    invited_email: Optional[str] = None
    invited_phone: Optional[str] = None
    message: Optional[str] = None


class HelpPostAction(BaseModel):
    """POST /help_posts body: `action` is create, like or comment."""
    model_config = ConfigDict(extra="allow")

    action: Optional[str] = None
    post_id: Optional[int] = None
    content: Optional[str] = None
    parent_id: Optional[int] = None
    like_action: str = "toggle"


class HelpPostUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None


class AdminUserUpdate(BaseModel):
    approval_status: Optional[str] = None
    user_type: Optional[str] = None


class FeatureSwitchUpdate(BaseModel):
    feature_name: Optional[str] = None
    is_enabled: Optional[bool] = None


class HelpPostModeration(BaseModel):
    status: Optional[str] = None  # approved, rejected, pending
    is_pinned: Optional[bool] = None


class GroupBody(BaseModel):
    """Create/update body for a community group; type is district, area or custom."""
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    district: Optional[str] = None
    area: Optional[str] = None
    pin_code: Optional[str] = None


class GroupMemberAdd(BaseModel):
    user_id: Optional[int] = None
    role: Optional[str] = None  # member, moderator, admin


class GroupMemberUpdate(BaseModel):
    role: Optional[str] = None


class AnnouncementBody(BaseModel):
    """Admin create/update body; `action` on update is update, pin or archive."""
    action: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    target_groups: list[int] = []
    is_pinned: Optional[bool] = None


class AnnouncementAction(BaseModel):
    """POST /announcements body: `action` is like, comment or reply."""
    action: Optional[str] = None
    announcement_id: Optional[int] = None
    is_like: Optional[bool] = None
    content: Optional[str] = None
    parent_comment_id: Optional[int] = None


class PasswordResetDecision(BaseModel):
    request_id: Optional[int] = None
    action: Optional[str] = None  # approve, reject


class FormValueCreate(BaseModel):
    type: Optional[str] = None
    value: Optional[str] = None
    parent_id: Optional[int] = None


class FormValueUpdate(BaseModel):
    value: Optional[str] = None

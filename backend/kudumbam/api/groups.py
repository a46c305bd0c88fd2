"""
Kudumbam — Groups & Announcements API Router
A member's own groups and the announcements addressed to them.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from kudumbam.api.deps import current_user
from kudumbam.core.errors import ValidationError
from kudumbam.models import AnnouncementAction
from kudumbam.services.announcements import AnnouncementService
from kudumbam.services.groups import GroupService

router = APIRouter()


@router.get("/user_groups")
def user_groups(
    id: Optional[int] = None,
    page: int = 1,
    limit: Optional[int] = None,
    search: str = "",
    type: str = "",
    user: dict = Depends(current_user),
):
    """One group with its recent announcements when `id` is given, else the member's groups."""
    service = GroupService()
    if id is not None:
        return service.user_group(user["id"], id)
    return service.user_groups(user["id"], page=page, limit=limit, search=search, group_type=type)


@router.get("/announcements")
def announcements(
    id: Optional[int] = None,
    group_id: Optional[int] = None,
    page: int = 1,
    limit: Optional[int] = None,
    user: dict = Depends(current_user),
):
    service = AnnouncementService()
    if id is not None:
        return service.get(id, user["id"])
    return service.list(user["id"], page=page, limit=limit, group_id=group_id)


@router.post("/announcements")
def announcement_action(body: AnnouncementAction, user: dict = Depends(current_user)):
    service = AnnouncementService()
    if body.action == "like":
        return service.like(user["id"], body.announcement_id, body.is_like)
    if body.action == "comment":
        return service.comment(user["id"], body.announcement_id, body.content)
    if body.action == "reply":
        if not body.parent_comment_id:
            raise ValidationError("Announcement ID, parent comment ID, and content are required")
        return service.comment(user["id"], body.announcement_id, body.content, body.parent_comment_id)
    raise ValidationError("Invalid action")

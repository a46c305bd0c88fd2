"""
Kudumbam — Help Posts API Router
Community help requests: listing, detail, create/like/comment, edit and delete.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from kudumbam.api.deps import current_user
from kudumbam.core.errors import ValidationError
from kudumbam.models import HelpPostAction, HelpPostUpdate
from kudumbam.services.help_posts import HelpPostService

router = APIRouter()


@router.get("/help_posts")
def help_posts(
    id: Optional[int] = None,
    page: int = 1,
    limit: int = 20,
    category: str = "",
    my_posts: bool = False,
    sort: str = "newest",
    user: dict = Depends(current_user),
):
    """One post (with comments) when `id` is given, else a filtered page."""
    service = HelpPostService()
    if id is not None:
        return service.get(id, user["id"])
    return service.list(user["id"], page=page, limit=limit, category=category, my_posts=my_posts, sort=sort)


@router.post("/help_posts")
def help_post_action(body: HelpPostAction, user: dict = Depends(current_user)):
    service = HelpPostService()
    if body.action == "create":
        return service.create(user["id"], body.model_dump())
    if body.action == "like":
        return service.like(user["id"], body.post_id, body.like_action)
    if body.action == "comment":
        return service.comment(user["id"], body.post_id, body.content, body.parent_id)
    raise ValidationError("Invalid action")


@router.put("/help_posts")
def update_help_post(body: HelpPostUpdate, user: dict = Depends(current_user)):
    return HelpPostService().update(user["id"], body.id, body.model_dump())


@router.delete("/help_posts")
def delete_help_post(id: Optional[int] = None, user: dict = Depends(current_user)):
    return HelpPostService().delete(user["id"], id)

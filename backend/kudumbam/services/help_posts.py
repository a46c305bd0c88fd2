"""
Kudumbam — Help Posts
Members ask for (or offer) help. New posts wait for moderation; approved posts
are shown to the audience chosen by their visibility setting.
"""

from __future__ import annotations

from typing import Optional

from kudumbam.core.database import Database, dumps, get_database, loads, to_db_time, utc_now
from kudumbam.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from kudumbam.services.groups import GroupService
from kudumbam.utils.logger import logger
from kudumbam.utils.pagination import clamp_limit, page_meta
from kudumbam.utils.security import sanitize_input


VISIBILITIES = ("public", "groups", "custom")
LIKE_ACTIONS = ("toggle", "like", "unlike")
MODERATION_STATUSES = ("pending", "approved", "rejected")
TARGET_FIELDS = ("target_groups", "target_areas", "target_institutions", "target_companies")
DEFAULT_PAGE_SIZE = 20

POST_COLUMNS = """
    hp.*, u.email AS author_email, u.full_name AS author_name,
    (SELECT COUNT(*) FROM help_post_likes l WHERE l.post_id = hp.id) AS likes_count,
    (SELECT COUNT(*) FROM help_post_comments c WHERE c.post_id = hp.id) AS comments_count,
    (SELECT COUNT(*) FROM help_post_views v WHERE v.post_id = hp.id) AS views_count,
    EXISTS(SELECT 1 FROM help_post_likes l WHERE l.post_id = hp.id AND l.user_id = :viewer) AS user_liked
"""


def _decode(post: dict) -> dict:
    for name in TARGET_FIELDS:
        post[name] = loads(post.get(name), [])
    post["user_liked"] = bool(post.get("user_liked"))
    post["is_pinned"] = bool(post.get("is_pinned"))
    return post


def _as_list(value) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v not in (None, "")]
    return [value]


# Own posts always; otherwise approved posts whose audience includes the viewer.
VISIBLE_TO_VIEWER = """
    hp.user_id = :viewer OR (hp.status = 'approved' AND (
        hp.visibility = 'public'
        OR (hp.visibility = 'groups' AND EXISTS (
            SELECT 1 FROM json_each(hp.target_groups) t
            JOIN group_members gm ON gm.group_id = CAST(t.value AS INTEGER)
            JOIN user_groups g ON g.id = gm.group_id
            WHERE gm.user_id = :viewer AND gm.is_active = 1 AND g.is_active = 1
        ))
        OR (hp.visibility = 'custom' AND (
            (:district != '' AND EXISTS (
                SELECT 1 FROM json_each(hp.target_areas) t WHERE lower(t.value) = lower(:district)))
            OR (:institution != '' AND EXISTS (
                SELECT 1 FROM json_each(hp.target_institutions) t WHERE lower(t.value) = lower(:institution)))
            OR (:company != '' AND EXISTS (
                SELECT 1 FROM json_each(hp.target_companies) t WHERE lower(t.value) = lower(:company)))
        ))
    ))
"""

# Pinned posts first, then the requested order; newest breaks ties.
SORT_ORDERS = {
    "newest": "hp.is_pinned DESC, hp.created_at DESC, hp.id DESC",
    "oldest": "hp.is_pinned DESC, hp.created_at ASC, hp.id ASC",
    "most_liked": "hp.is_pinned DESC, likes_count DESC, hp.created_at DESC, hp.id DESC",
    "most_viewed": "hp.is_pinned DESC, views_count DESC, hp.created_at DESC, hp.id DESC",
}
SORTS = tuple(SORT_ORDERS)


class HelpPostService:
    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    # ──────────────────────────────────────────────────────────────
    # Access
    # ──────────────────────────────────────────────────────────────

    def _audience(self, user_id: int) -> dict:
        user = self.db.fetch_one("SELECT district, institution, company FROM users WHERE id = ?", (user_id,)) or {}
        return {
            "groups": GroupService(self.db).active_group_ids(user_id),
            "district": (user.get("district") or "").casefold(),
            "institution": (user.get("institution") or "").casefold(),
            "company": (user.get("company") or "").casefold(),
        }

    @staticmethod
    def can_view(post: dict, user_id: int, audience: dict) -> bool:
        if post["user_id"] == user_id:
            return True
        if post["status"] != "approved":
            return False
        visibility = post["visibility"]
        if visibility == "public":
            return True
        if visibility == "groups":
            targets = {int(g) for g in post["target_groups"] if str(g).isdigit()}
            return bool(targets & audience["groups"])
        if visibility == "custom":
            areas = {str(a).casefold() for a in post["target_areas"]}
            institutions = {str(i).casefold() for i in post["target_institutions"]}
            companies = {str(c).casefold() for c in post["target_companies"]}
            return bool(
                (audience["district"] and audience["district"] in areas)
                or (audience["institution"] and audience["institution"] in institutions)
                or (audience["company"] and audience["company"] in companies)
            )
        return False

    def _load(self, post_id, user_id: int) -> Optional[dict]:
        row = self.db.fetch_one(
            f"SELECT {POST_COLUMNS} FROM help_posts hp LEFT JOIN users u ON hp.user_id = u.id WHERE hp.id = :id",
            {"viewer": user_id, "id": post_id},
        )
        return _decode(row) if row else None

    def _accessible(self, post_id, user_id: int) -> dict:
        if not post_id:
            raise ValidationError("Post ID is required")
        post = self._load(post_id, user_id)
        if not post or post["status"] != "approved" or not self.can_view(post, user_id, self._audience(user_id)):
            raise PermissionDeniedError("Access denied")
        return post

    # ──────────────────────────────────────────────────────────────
    # Reading
    # ──────────────────────────────────────────────────────────────

    def get(self, post_id, user_id: int) -> dict:
        post = self._load(post_id, user_id)
        if not post:
            raise NotFoundError("Help post not found")
        if not self.can_view(post, user_id, self._audience(user_id)):
            raise PermissionDeniedError("Access denied")

        self.db.execute(
            "INSERT OR IGNORE INTO help_post_views (post_id, user_id) VALUES (?, ?)", (post["id"], user_id)
        )
        post["views_count"] = self.db.fetch_value(
            "SELECT COUNT(*) FROM help_post_views WHERE post_id = ?", (post["id"],)
        )
        comments = self.db.fetch_all(
            """
            SELECT c.*, u.email, u.full_name AS commenter_name
            FROM help_post_comments c LEFT JOIN users u ON c.user_id = u.id
            WHERE c.post_id = ? ORDER BY c.created_at, c.id
            """,
            (post["id"],),
        )
        top_level = [c for c in comments if c["parent_id"] is None]
        top_level.sort(key=lambda c: (c["created_at"], c["id"]), reverse=True)
        for comment in top_level:
            comment["replies"] = [c for c in comments if c["parent_id"] == comment["id"]]
        post["comments"] = top_level
        return {"success": True, "data": post}

    def list(
        self,
        user_id: int,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        category: str = "",
        my_posts: bool = False,
        sort: str = "newest",
    ) -> dict:
        """Filtering, ordering and paging all happen in SQL."""
        page = max(1, int(page or 1))
        limit = clamp_limit(limit, DEFAULT_PAGE_SIZE)
        user = self.db.fetch_one("SELECT district, institution, company FROM users WHERE id = ?", (user_id,)) or {}
        params: dict = {
            "viewer": user_id,
            "district": user.get("district") or "",
            "institution": user.get("institution") or "",
            "company": user.get("company") or "",
        }
        where = ["hp.user_id = :viewer" if my_posts else VISIBLE_TO_VIEWER]
        if category:
            where.append("hp.category = :category")
            params["category"] = category
        clause = " AND ".join(f"({w})" for w in where)

        total = self.db.fetch_value(f"SELECT COUNT(*) FROM help_posts hp WHERE {clause}", params)
        rows = self.db.fetch_all(
            f"""
            SELECT {POST_COLUMNS} FROM help_posts hp LEFT JOIN users u ON hp.user_id = u.id
            WHERE {clause}
            ORDER BY {SORT_ORDERS.get(sort, SORT_ORDERS["newest"])}
            LIMIT :limit OFFSET :offset
            """,
            {**params, "limit": limit, "offset": (page - 1) * limit},
        )
        return {
            "success": True,
            "data": [_decode(row) for row in rows],
            "pagination": page_meta(page, limit, total),
        }

    # ──────────────────────────────────────────────────────────────
    # Writing
    # ──────────────────────────────────────────────────────────────

    def create(self, user_id: int, body: dict) -> dict:
        title = sanitize_input(body.get("title"), max_length=255)
        content = sanitize_input(body.get("content"))
        if not title:
            raise ValidationError("Title is required")
        if not content:
            raise ValidationError("Content is required")
        visibility = body.get("visibility") or "public"
        if visibility not in VISIBILITIES:
            raise ValidationError("Invalid visibility")
        targets = {name: _as_list(body.get(name)) for name in TARGET_FIELDS}
        if visibility == "groups" and not targets["target_groups"]:
            raise ValidationError("Please select at least one group for group visibility")

        now = to_db_time(utc_now())
        cursor = self.db.execute(
            """
            INSERT INTO help_posts (
                user_id, title, content, category, visibility,
                target_groups, target_areas, target_institutions, target_companies,
                status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
            """,
            (
                user_id, title, content, sanitize_input(body.get("category"), 100) or "general", visibility,
                *(dumps(targets[name]) for name in TARGET_FIELDS), now, now,
            ),
        )
        logger.info(f"🆘 Help post {cursor.lastrowid} created by user {user_id} (awaiting moderation)")
        return {"success": True, "data": {"id": cursor.lastrowid, "title": title, "status": "pending"}}

    def like(self, user_id: int, post_id, like_action: str = "toggle") -> dict:
        post = self._accessible(post_id, user_id)
        if like_action not in LIKE_ACTIONS:
            raise ValidationError("Invalid like action")
        liked_before = post["user_liked"]
        liked = (not liked_before) if like_action == "toggle" else like_action == "like"

        if liked and not liked_before:
            self.db.execute(
                "INSERT OR IGNORE INTO help_post_likes (post_id, user_id, created_at) VALUES (?, ?, ?)",
                (post["id"], user_id, to_db_time(utc_now())),
            )
        elif not liked and liked_before:
            self.db.execute("DELETE FROM help_post_likes WHERE post_id = ? AND user_id = ?", (post["id"], user_id))

        likes = self.db.fetch_value("SELECT COUNT(*) FROM help_post_likes WHERE post_id = ?", (post["id"],))
        return {"success": True, "data": {"liked": liked, "likes_count": likes}}

    def comment(self, user_id: int, post_id, content: Optional[str], parent_id=None) -> dict:
        if not post_id or content is None:
            raise ValidationError("Post ID and content are required")
        content = sanitize_input(content)
        if not content:
            raise ValidationError("Comment content cannot be empty")
        post = self._accessible(post_id, user_id)
        if parent_id and not self.db.fetch_one(
            "SELECT id FROM help_post_comments WHERE id = ? AND post_id = ?", (parent_id, post["id"])
        ):
            raise ValidationError("Parent comment not found")

        cursor = self.db.execute(
            "INSERT INTO help_post_comments (post_id, user_id, parent_id, content, created_at) VALUES (?, ?, ?, ?, ?)",
            (post["id"], user_id, parent_id or None, content, to_db_time(utc_now())),
        )
        comment = self.db.fetch_one(
            """
            SELECT c.*, u.email, u.full_name AS commenter_name
            FROM help_post_comments c LEFT JOIN users u ON c.user_id = u.id WHERE c.id = ?
            """,
            (cursor.lastrowid,),
        )
        return {"success": True, "data": comment}

    def _own(self, user_id: int, post_id) -> dict:
        if not post_id:
            raise ValidationError("Post ID is required")
        post = self.db.fetch_one("SELECT * FROM help_posts WHERE id = ? AND user_id = ?", (post_id, user_id))
        if not post:
            raise NotFoundError("Help post not found or access denied")
        return post

    def update(self, user_id: int, post_id, body: dict) -> dict:
        post = self._own(user_id, post_id)
        if post["status"] == "rejected":
            raise ValidationError("Cannot edit rejected posts")
        title = sanitize_input(body.get("title"), max_length=255)
        content = sanitize_input(body.get("content"))
        if not title or not content:
            raise ValidationError("Title and content are required")

        self.db.execute(
            "UPDATE help_posts SET title = ?, content = ?, category = ?, updated_at = ? WHERE id = ?",
            (
                title, content, sanitize_input(body.get("category"), 100) or post["category"],
                to_db_time(utc_now()), post["id"],
            ),
        )
        return {"success": True, "message": "Help post updated successfully"}

    def delete(self, user_id: int, post_id) -> dict:
        post = self._own(user_id, post_id)
        with self.db.transaction() as conn:
            for table in ("help_post_likes", "help_post_comments", "help_post_views"):
                conn.execute(f"DELETE FROM {table} WHERE post_id = ?", (post["id"],))
            conn.execute("DELETE FROM help_posts WHERE id = ?", (post["id"],))
        logger.info(f"🗑️ Help post {post['id']} deleted by user {user_id}")
        return {"success": True, "message": "Help post deleted successfully"}

    # ──────────────────────────────────────────────────────────────
    # Moderation
    # ──────────────────────────────────────────────────────────────

    def moderate(self, post_id: int, status: Optional[str] = None, is_pinned: Optional[bool] = None) -> dict:
        post = self.db.fetch_one("SELECT * FROM help_posts WHERE id = ?", (post_id,))
        if not post:
            raise NotFoundError("Help post not found")
        if status is None and is_pinned is None:
            raise ValidationError("Nothing to update")
        if status is not None and status not in MODERATION_STATUSES:
            raise ValidationError("Invalid status")

        self.db.execute(
            "UPDATE help_posts SET status = ?, is_pinned = ?, updated_at = ? WHERE id = ?",
            (
                status or post["status"],
                int(is_pinned) if is_pinned is not None else post["is_pinned"],
                to_db_time(utc_now()), post_id,
            ),
        )
        logger.info(f"🛡️ Help post {post_id} moderated: status={status or post['status']} pinned={is_pinned}")
        return {"success": True, "message": "Help post updated successfully"}

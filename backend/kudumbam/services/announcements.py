"""
Kudumbam — Announcements
Admin-published notices. An announcement with no target groups is for every
member; otherwise only active members of one of its groups can see it.
Members can like, comment on and reply to what they can see.
"""

from __future__ import annotations

from typing import Optional

from kudumbam.config import get_settings
from kudumbam.core.database import Database, dumps, get_database, loads, to_db_time, utc_now
from kudumbam.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from kudumbam.utils.logger import logger
from kudumbam.utils.pagination import clamp_limit, page_meta
from kudumbam.utils.security import sanitize_input


ADMIN_STATUSES = ("active", "pinned", "archived")
ADMIN_ACTIONS = ("update", "pin", "archive")
CHILD_TABLES = ("announcement_likes", "announcement_comments", "announcement_views")

COUNT_COLUMNS = """
    (SELECT COUNT(*) FROM announcement_likes l WHERE l.announcement_id = an.id) AS likes_count,
    (SELECT COUNT(*) FROM announcement_comments c WHERE c.announcement_id = an.id) AS comments_count,
    (SELECT COUNT(*) FROM announcement_views v WHERE v.announcement_id = an.id) AS views_count
"""

VIEWER_COLUMNS = """,
    EXISTS(SELECT 1 FROM announcement_likes l WHERE l.announcement_id = an.id AND l.user_id = :viewer) AS user_liked,
    EXISTS(SELECT 1 FROM announcement_views v WHERE v.announcement_id = an.id AND v.user_id = :viewer) AS user_viewed
"""

# Everyone sees untargeted announcements; targeted ones need an active membership.
MEMBER_VISIBLE = """
    an.is_archived = 0 AND (
        json_array_length(an.target_groups) = 0
        OR EXISTS (
            SELECT 1 FROM json_each(an.target_groups) t
            JOIN group_members gm ON gm.group_id = CAST(t.value AS INTEGER)
            JOIN user_groups g ON g.id = gm.group_id
            WHERE gm.user_id = :viewer AND gm.is_active = 1 AND g.is_active = 1
        )
    )
"""


def _targets(value) -> list[int]:
    if not value:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    try:
        return sorted({int(v) for v in value})
    except (TypeError, ValueError):
        raise ValidationError("Some target groups are invalid")


class AnnouncementService:
    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()
        settings = get_settings()
        self.page_size = settings.list_page_size
        self.max_pinned = settings.max_pinned_announcements

    def _decode(self, row: dict) -> dict:
        row["target_groups"] = loads(row.get("target_groups"), [])
        row["is_pinned"] = bool(row.get("is_pinned"))
        row["is_archived"] = bool(row.get("is_archived"))
        for flag in ("user_liked", "user_viewed"):
            if flag in row:
                row[flag] = bool(row[flag])
        if row["target_groups"]:
            placeholders = ", ".join("?" for _ in row["target_groups"])
            row["target_group_names"] = self.db.fetch_all(
                f"SELECT id, name FROM user_groups WHERE id IN ({placeholders}) AND is_active = 1",
                tuple(row["target_groups"]),
            )
        else:
            row["target_group_names"] = []
        return row

    def _validate_targets(self, value) -> list[int]:
        targets = _targets(value)
        if targets:
            placeholders = ", ".join("?" for _ in targets)
            found = self.db.fetch_value(
                f"SELECT COUNT(*) FROM user_groups WHERE id IN ({placeholders}) AND is_active = 1", tuple(targets)
            )
            if found != len(targets):
                raise ValidationError("Some target groups are invalid")
        return targets

    @staticmethod
    def _title_and_content(body: dict) -> tuple[str, str]:
        title = sanitize_input(body.get("title"), max_length=255)
        content = sanitize_input(body.get("content"))
        if not title:
            raise ValidationError("Title is required")
        if not content:
            raise ValidationError("Content is required")
        return title, content

    def _pinned_elsewhere(self, announcement_id: int = 0) -> int:
        return self.db.fetch_value(
            "SELECT COUNT(*) FROM announcements WHERE is_pinned = 1 AND is_archived = 0 AND id != ?",
            (announcement_id,),
        )

    # ──────────────────────────────────────────────────────────────
    # Admin
    # ──────────────────────────────────────────────────────────────

    def admin_list(
        self, page: int = 1, limit: Optional[int] = None, search: str = "", group_id=None, status: str = ""
    ) -> dict:
        page = max(1, int(page or 1))
        limit = clamp_limit(limit, self.page_size)
        where, params = ["1 = 1"], []
        search = (search or "").strip()
        if search:
            where.append("(an.title LIKE ? OR an.content LIKE ?)")
            params.extend([f"%{search}%"] * 2)
        if group_id:
            where.append("EXISTS (SELECT 1 FROM json_each(an.target_groups) t WHERE CAST(t.value AS INTEGER) = ?)")
            params.append(int(group_id))
        if status == "pinned":
            where.append("an.is_pinned = 1 AND an.is_archived = 0")
        elif status == "archived":
            where.append("an.is_archived = 1")
        elif status == "active":
            where.append("an.is_archived = 0")
        clause = " AND ".join(where)

        total = self.db.fetch_value(f"SELECT COUNT(*) FROM announcements an WHERE {clause}", tuple(params))
        rows = self.db.fetch_all(
            f"""
            SELECT an.*, a.username AS created_by_name, {COUNT_COLUMNS}
            FROM announcements an LEFT JOIN admin_users a ON an.created_by = a.id
            WHERE {clause}
            ORDER BY an.is_pinned DESC, an.created_at DESC, an.id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, limit, (page - 1) * limit),
        )
        return {
            "success": True,
            "data": [self._decode(row) for row in rows],
            "pagination": page_meta(page, limit, total),
        }

    def admin_get(self, announcement_id: int) -> dict:
        row = self.db.fetch_one(
            f"""
            SELECT an.*, a.username AS created_by_name, {COUNT_COLUMNS}
            FROM announcements an LEFT JOIN admin_users a ON an.created_by = a.id
            WHERE an.id = ?
            """,
            (announcement_id,),
        )
        if not row:
            raise NotFoundError("Announcement not found")
        return {"success": True, "data": self._decode(row)}

    def create(self, admin_id: int, body: dict) -> dict:
        title, content = self._title_and_content(body)
        targets = self._validate_targets(body.get("target_groups"))
        pinned = bool(body.get("is_pinned"))
        if pinned and self._pinned_elsewhere() >= self.max_pinned:
            raise ValidationError(f"Maximum {self.max_pinned} announcements can be pinned at once")

        now = to_db_time(utc_now())
        cursor = self.db.execute(
            """
            INSERT INTO announcements (title, content, created_by, target_groups, is_pinned, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (title, content, admin_id, dumps(targets), int(pinned), now, now),
        )
        audience = f"groups {targets}" if targets else "everyone"
        logger.info(f"📣 Announcement {cursor.lastrowid} published by admin {admin_id} for {audience}")
        return {"success": True, "data": {"id": cursor.lastrowid, "title": title, "content": content}}

    def update(self, announcement_id, body: dict) -> dict:
        """`action` is update (content and targets), pin or archive."""
        if not announcement_id:
            raise ValidationError("Announcement ID is required")
        action = body.get("action") or "update"
        if action not in ADMIN_ACTIONS:
            raise ValidationError("Invalid action")
        current = self.db.fetch_one("SELECT * FROM announcements WHERE id = ?", (announcement_id,))
        if not current:
            raise NotFoundError("Announcement not found")
        now = to_db_time(utc_now())

        if action == "pin":
            pinned = body.get("is_pinned")
            pinned = True if pinned is None else bool(pinned)
            if pinned and current["is_archived"]:
                raise ValidationError("Archived announcements cannot be pinned")
            if pinned and self._pinned_elsewhere(announcement_id) >= self.max_pinned:
                raise ValidationError(f"Maximum {self.max_pinned} announcements can be pinned at once")
            self.db.execute(
                "UPDATE announcements SET is_pinned = ?, updated_at = ? WHERE id = ?",
                (int(pinned), now, announcement_id),
            )
            return {"success": True, "data": {"id": announcement_id, "is_pinned": pinned}}

        if action == "archive":
            self.db.execute(
                "UPDATE announcements SET is_archived = 1, is_pinned = 0, archived_at = ?, updated_at = ? WHERE id = ?",
                (now, now, announcement_id),
            )
            logger.info(f"📦 Announcement {announcement_id} archived")
            return {"success": True, "data": {"id": announcement_id, "is_archived": True}}

        title, content = self._title_and_content(body)
        targets = self._validate_targets(body.get("target_groups"))
        self.db.execute(
            "UPDATE announcements SET title = ?, content = ?, target_groups = ?, updated_at = ? WHERE id = ?",
            (title, content, dumps(targets), now, announcement_id),
        )
        return {"success": True, "data": {"id": announcement_id, "title": title, "content": content}}

    def delete(self, announcement_id) -> dict:
        if not announcement_id:
            raise ValidationError("Announcement ID is required")
        with self.db.transaction() as conn:
            deleted = conn.execute("DELETE FROM announcements WHERE id = ?", (announcement_id,)).rowcount
            if not deleted:
                raise NotFoundError("Announcement not found")
            for table in CHILD_TABLES:
                conn.execute(f"DELETE FROM {table} WHERE announcement_id = ?", (announcement_id,))
        logger.info(f"🗑️ Announcement {announcement_id} deleted")
        return {"success": True, "message": "Announcement deleted successfully"}

    # ──────────────────────────────────────────────────────────────
    # Members
    # ──────────────────────────────────────────────────────────────

    def list(self, user_id: int, page: int = 1, limit: Optional[int] = None, group_id=None) -> dict:
        page = max(1, int(page or 1))
        limit = clamp_limit(limit, self.page_size)
        clause = MEMBER_VISIBLE
        params: dict = {"viewer": user_id}
        if group_id:
            clause += " AND EXISTS (SELECT 1 FROM json_each(an.target_groups) t WHERE CAST(t.value AS INTEGER) = :group)"
            params["group"] = int(group_id)

        total = self.db.fetch_value(f"SELECT COUNT(*) FROM announcements an WHERE {clause}", params)
        rows = self.db.fetch_all(
            f"""
            SELECT an.id, an.title, an.content, an.target_groups, an.is_pinned, an.is_archived,
                   an.created_at, an.updated_at, {COUNT_COLUMNS}{VIEWER_COLUMNS}
            FROM announcements an
            WHERE {clause}
            ORDER BY an.is_pinned DESC, an.created_at DESC, an.id DESC
            LIMIT :limit OFFSET :offset
            """,
            {**params, "limit": limit, "offset": (page - 1) * limit},
        )
        return {
            "success": True,
            "data": [self._decode(row) for row in rows],
            "pagination": page_meta(page, limit, total),
        }

    def _visible(self, announcement_id, user_id: int) -> dict:
        if not announcement_id:
            raise ValidationError("Announcement ID is required")
        row = self.db.fetch_one(
            "SELECT id, is_archived FROM announcements WHERE id = ? AND is_archived = 0", (announcement_id,)
        )
        if not row:
            raise NotFoundError("Announcement not found")
        if not self.db.fetch_one(
            f"SELECT an.id FROM announcements an WHERE an.id = :id AND {MEMBER_VISIBLE}",
            {"id": announcement_id, "viewer": user_id},
        ):
            raise PermissionDeniedError("Access denied")
        return row

    def get(self, announcement_id, user_id: int) -> dict:
        """Detail view; opening it marks the announcement read."""
        self._visible(announcement_id, user_id)
        self.db.execute(
            "INSERT OR IGNORE INTO announcement_views (announcement_id, user_id, viewed_at) VALUES (?, ?, ?)",
            (announcement_id, user_id, to_db_time(utc_now())),
        )
        row = self.db.fetch_one(
            f"""
            SELECT an.id, an.title, an.content, an.target_groups, an.is_pinned, an.is_archived,
                   an.created_at, an.updated_at, {COUNT_COLUMNS}{VIEWER_COLUMNS}
            FROM announcements an WHERE an.id = :id
            """,
            {"id": announcement_id, "viewer": user_id},
        )
        announcement = self._decode(row)

        comments = self.db.fetch_all(
            """
            SELECT c.*, u.email, u.full_name AS author_name
            FROM announcement_comments c LEFT JOIN users u ON c.user_id = u.id
            WHERE c.announcement_id = ? ORDER BY c.created_at, c.id
            """,
            (announcement_id,),
        )
        top_level = [c for c in comments if c["parent_id"] is None]
        for comment in top_level:
            comment["replies"] = [c for c in comments if c["parent_id"] == comment["id"]]
        announcement["comments"] = top_level
        return {"success": True, "data": announcement}

    def like(self, user_id: int, announcement_id, is_like: Optional[bool] = True) -> dict:
        self._visible(announcement_id, user_id)
        liked = True if is_like is None else bool(is_like)
        if liked:
            self.db.execute(
                "INSERT OR IGNORE INTO announcement_likes (announcement_id, user_id, created_at) VALUES (?, ?, ?)",
                (announcement_id, user_id, to_db_time(utc_now())),
            )
        else:
            self.db.execute(
                "DELETE FROM announcement_likes WHERE announcement_id = ? AND user_id = ?", (announcement_id, user_id)
            )
        likes = self.db.fetch_value(
            "SELECT COUNT(*) FROM announcement_likes WHERE announcement_id = ?", (announcement_id,)
        )
        return {"success": True, "data": {"likes_count": likes, "user_liked": liked}}

    def comment(self, user_id: int, announcement_id, content: Optional[str], parent_id=None) -> dict:
        if not announcement_id or content is None:
            raise ValidationError("Announcement ID and content are required")
        content = sanitize_input(content)
        if not content:
            raise ValidationError("Content cannot be empty")
        self._visible(announcement_id, user_id)
        if parent_id and not self.db.fetch_one(
            "SELECT id FROM announcement_comments WHERE id = ? AND announcement_id = ? AND parent_id IS NULL",
            (parent_id, announcement_id),
        ):
            raise ValidationError("Parent comment not found")

        cursor = self.db.execute(
            """
            INSERT INTO announcement_comments (announcement_id, user_id, parent_id, content, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (announcement_id, user_id, parent_id or None, content, to_db_time(utc_now())),
        )
        data = {"id": cursor.lastrowid, "content": content}
        if parent_id:
            data["parent_comment_id"] = int(parent_id)
        return {"success": True, "data": data}

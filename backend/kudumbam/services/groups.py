"""
Kudumbam — Community Groups
Admin-managed groups (by district, by PIN-code area, or hand-picked) and their
memberships. Group ids are what help posts and announcements target.
"""

from __future__ import annotations

from typing import Optional

from kudumbam.config import get_settings
from kudumbam.core.database import Database, get_database, to_db_time, utc_now
from kudumbam.core.errors import ConflictError, NotFoundError, ValidationError
from kudumbam.utils.logger import logger
from kudumbam.utils.pagination import clamp_limit, page_meta
from kudumbam.utils.security import sanitize_input


GROUP_TYPES = ("district", "area", "custom")
MEMBER_ROLES = ("member", "moderator", "admin")
CANDIDATE_LIMIT = 50
RECENT_ANNOUNCEMENTS = 5

GROUP_COLUMNS = """
    g.*, a.username AS created_by_name,
    (SELECT COUNT(*) FROM group_members m WHERE m.group_id = g.id AND m.is_active = 1) AS member_count
"""


def _search_clause(search: str, group_type: str) -> tuple[str, list]:
    where, params = [], []
    if search:
        where.append("(g.name LIKE ? OR g.description LIKE ?)")
        params.extend([f"%{search}%"] * 2)
    if group_type:
        where.append("g.type = ?")
        params.append(group_type)
    return "".join(f" AND {w}" for w in where), params


class GroupService:
    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()
        self.page_size = get_settings().list_page_size

    def _active_group(self, group_id) -> dict:
        group = self.db.fetch_one("SELECT * FROM user_groups WHERE id = ? AND is_active = 1", (group_id,))
        if not group:
            raise NotFoundError("Group not found")
        return group

    def _name_taken(self, name: str, exclude_id: int = 0) -> bool:
        return bool(self.db.fetch_value(
            "SELECT COUNT(*) FROM user_groups WHERE lower(name) = lower(?) AND is_active = 1 AND id != ?",
            (name, exclude_id),
        ))

    # ──────────────────────────────────────────────────────────────
    # Admin: groups
    # ──────────────────────────────────────────────────────────────

    def list(self, page: int = 1, limit: Optional[int] = None, search: str = "", group_type: str = "") -> dict:
        page = max(1, int(page or 1))
        limit = clamp_limit(limit, self.page_size)
        clause, params = _search_clause((search or "").strip(), group_type or "")
        total = self.db.fetch_value(f"SELECT COUNT(*) FROM user_groups g WHERE g.is_active = 1{clause}", tuple(params))
        groups = self.db.fetch_all(
            f"""
            SELECT {GROUP_COLUMNS}
            FROM user_groups g LEFT JOIN admin_users a ON g.created_by = a.id
            WHERE g.is_active = 1{clause}
            ORDER BY g.created_at DESC, g.id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, limit, (page - 1) * limit),
        )
        return {"success": True, "data": groups, "pagination": page_meta(page, limit, total)}

    def get(self, group_id: int) -> dict:
        group = self.db.fetch_one(
            f"""
            SELECT {GROUP_COLUMNS}
            FROM user_groups g LEFT JOIN admin_users a ON g.created_by = a.id
            WHERE g.id = ? AND g.is_active = 1
            """,
            (group_id,),
        )
        if not group:
            raise NotFoundError("Group not found")
        group["members"] = self._member_rows(group_id)
        return {"success": True, "data": group}

    def create(self, admin_id: int, body: dict) -> dict:
        name = sanitize_input(body.get("name"), max_length=255)
        if not name:
            raise ValidationError("Group name is required")
        group_type = body.get("type")
        if group_type not in GROUP_TYPES:
            raise ValidationError("Valid group type is required")
        if self._name_taken(name):
            raise ConflictError("A group with this name already exists")

        district = (body.get("district") or "").strip() or None
        pin_code = (body.get("pin_code") or "").strip() or None
        now = to_db_time(utc_now())
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO user_groups
                    (name, description, type, district, area, pin_code, created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    name, sanitize_input(body.get("description")), group_type,
                    district, (body.get("area") or "").strip() or None, pin_code, admin_id, now, now,
                ),
            )
            group_id = cursor.lastrowid
            # District and area groups start with every approved member living there.
            match = {"district": ("district", district), "area": ("pin_code", pin_code)}.get(group_type)
            assigned = 0
            if match and match[1]:
                column, value = match
                assigned = conn.execute(
                    f"""
                    INSERT OR IGNORE INTO group_members (group_id, user_id, role, added_by, joined_at)
                    SELECT ?, id, 'member', ?, ? FROM users
                    WHERE lower({column}) = lower(?) AND approval_status = 'approved' AND is_active = 1
                    """,
                    (group_id, admin_id, now, value),
                ).rowcount
        logger.info(f"👥 Group {group_id} '{name}' ({group_type}) created by admin {admin_id}, {assigned} auto-assigned")
        return {
            "success": True,
            "data": {
                "id": group_id, "name": name, "type": group_type,
                "description": sanitize_input(body.get("description")), "member_count": assigned,
            },
        }

    def update(self, group_id: int, body: dict) -> dict:
        name = sanitize_input(body.get("name"), max_length=255)
        if not name:
            raise ValidationError("Group name is required")
        self._active_group(group_id)
        if self._name_taken(name, exclude_id=group_id):
            raise ConflictError("A group with this name already exists")
        description = sanitize_input(body.get("description"))
        self.db.execute(
            "UPDATE user_groups SET name = ?, description = ?, updated_at = ? WHERE id = ?",
            (name, description, to_db_time(utc_now()), group_id),
        )
        return {"success": True, "data": {"id": group_id, "name": name, "description": description}}

    def delete(self, group_id: int) -> dict:
        """Soft delete; memberships are deactivated with the group."""
        with self.db.transaction() as conn:
            updated = conn.execute(
                "UPDATE user_groups SET is_active = 0, updated_at = ? WHERE id = ? AND is_active = 1",
                (to_db_time(utc_now()), group_id),
            ).rowcount
            if not updated:
                raise NotFoundError("Group not found")
            conn.execute("UPDATE group_members SET is_active = 0 WHERE group_id = ?", (group_id,))
        logger.info(f"🗑️ Group {group_id} deleted")
        return {"success": True, "message": "Group deleted successfully"}

    # ──────────────────────────────────────────────────────────────
    # Admin: memberships
    # ──────────────────────────────────────────────────────────────

    def _member_rows(self, group_id: int, search: str = "", limit: int = -1, offset: int = 0) -> list[dict]:
        sql = """
            SELECT m.group_id, m.user_id, m.role, m.joined_at, m.added_by,
                   u.email, u.full_name, u.phone, a.username AS added_by_name
            FROM group_members m
            JOIN users u ON m.user_id = u.id
            LEFT JOIN admin_users a ON m.added_by = a.id
            WHERE m.group_id = ? AND m.is_active = 1
        """
        params: list = [group_id]
        if search:
            sql += " AND (u.full_name LIKE ? OR u.email LIKE ?)"
            params.extend([f"%{search}%"] * 2)
        sql += " ORDER BY CASE m.role WHEN 'admin' THEN 0 WHEN 'moderator' THEN 1 ELSE 2 END, u.full_name LIMIT ? OFFSET ?"
        return self.db.fetch_all(sql, (*params, limit, offset))

    def members(self, group_id: int, page: int = 1, limit: Optional[int] = None, search: str = "") -> dict:
        self._active_group(group_id)
        page = max(1, int(page or 1))
        limit = clamp_limit(limit, self.page_size)
        search = (search or "").strip()
        total = len(self._member_rows(group_id, search))
        rows = self._member_rows(group_id, search, limit, (page - 1) * limit)
        return {"success": True, "data": rows, "pagination": page_meta(page, limit, total)}

    def candidates(self, search: str = "") -> dict:
        """Approved, active members an admin can add to a group."""
        sql = """
            SELECT id, email, full_name, phone, district, pin_code FROM users
            WHERE approval_status = 'approved' AND is_active = 1
        """
        params: list = []
        search = (search or "").strip()
        if search:
            sql += " AND (full_name LIKE ? OR email LIKE ? OR phone LIKE ?)"
            params.extend([f"%{search}%"] * 3)
        sql += " ORDER BY full_name LIMIT ?"
        return {"success": True, "data": self.db.fetch_all(sql, (*params, CANDIDATE_LIMIT))}

    def add_member(self, admin_id: int, group_id, user_id, role: Optional[str] = None) -> dict:
        if not group_id or not user_id:
            raise ValidationError("Group ID and User ID are required")
        role = role or "member"
        if role not in MEMBER_ROLES:
            raise ValidationError("Invalid role")
        self._active_group(group_id)
        if not self.db.fetch_one(
            "SELECT id FROM users WHERE id = ? AND approval_status = 'approved' AND is_active = 1", (user_id,)
        ):
            raise NotFoundError("User not found or not approved")

        existing = self.db.fetch_one(
            "SELECT is_active FROM group_members WHERE group_id = ? AND user_id = ?", (group_id, user_id)
        )
        if existing and existing["is_active"]:
            raise ConflictError("User is already a member of this group")
        # A removed member keeps their row; adding them again reactivates it.
        self.db.execute(
            """
            INSERT INTO group_members (group_id, user_id, role, added_by, is_active, joined_at)
            VALUES (?, ?, ?, ?, 1, ?)
            ON CONFLICT (group_id, user_id) DO UPDATE SET
                role = excluded.role, added_by = excluded.added_by, is_active = 1, joined_at = excluded.joined_at
            """,
            (group_id, user_id, role, admin_id, to_db_time(utc_now())),
        )
        logger.info(f"👥 User {user_id} added to group {group_id} as {role}")
        return {"success": True, "data": {"group_id": int(group_id), "user_id": int(user_id), "role": role}}

    def update_member(self, group_id: int, user_id: int, role: Optional[str]) -> dict:
        if role not in MEMBER_ROLES:
            raise ValidationError("Invalid role")
        updated = self.db.execute(
            "UPDATE group_members SET role = ? WHERE group_id = ? AND user_id = ? AND is_active = 1",
            (role, group_id, user_id),
        ).rowcount
        if not updated:
            raise NotFoundError("Group member not found")
        return {"success": True, "data": {"group_id": group_id, "user_id": user_id, "role": role}}

    def remove_member(self, group_id: int, user_id: int) -> dict:
        updated = self.db.execute(
            "UPDATE group_members SET is_active = 0 WHERE group_id = ? AND user_id = ? AND is_active = 1",
            (group_id, user_id),
        ).rowcount
        if not updated:
            raise NotFoundError("Group member not found")
        logger.info(f"👥 User {user_id} removed from group {group_id}")
        return {"success": True, "message": "Member removed from group"}

    # ──────────────────────────────────────────────────────────────
    # Members: their own groups
    # ──────────────────────────────────────────────────────────────

    def user_groups(
        self, user_id: int, page: int = 1, limit: Optional[int] = None, search: str = "", group_type: str = ""
    ) -> dict:
        page = max(1, int(page or 1))
        limit = clamp_limit(limit, self.page_size)
        clause, params = _search_clause((search or "").strip(), group_type or "")
        base = f"""
            FROM user_groups g JOIN group_members gm ON gm.group_id = g.id
            WHERE g.is_active = 1 AND gm.user_id = ? AND gm.is_active = 1{clause}
        """
        total = self.db.fetch_value(f"SELECT COUNT(*) {base}", (user_id, *params))
        groups = self.db.fetch_all(
            f"""
            SELECT g.*, gm.role AS user_role, gm.joined_at,
                (SELECT COUNT(*) FROM group_members m WHERE m.group_id = g.id AND m.is_active = 1) AS member_count,
                (SELECT COUNT(*) FROM announcements an
                 WHERE an.is_archived = 0
                   AND EXISTS (SELECT 1 FROM json_each(an.target_groups) t WHERE CAST(t.value AS INTEGER) = g.id)
                   AND NOT EXISTS (SELECT 1 FROM announcement_views v
                                   WHERE v.announcement_id = an.id AND v.user_id = ?)
                ) AS unread_announcements
            {base}
            ORDER BY g.type, g.name
            LIMIT ? OFFSET ?
            """,
            (user_id, user_id, *params, limit, (page - 1) * limit),
        )
        return {"success": True, "data": groups, "pagination": page_meta(page, limit, total)}

    def user_group(self, user_id: int, group_id: int) -> dict:
        group = self.db.fetch_one(
            """
            SELECT g.*, gm.role AS user_role,
                (SELECT COUNT(*) FROM group_members m WHERE m.group_id = g.id AND m.is_active = 1) AS member_count
            FROM user_groups g JOIN group_members gm ON gm.group_id = g.id
            WHERE g.id = ? AND g.is_active = 1 AND gm.user_id = ? AND gm.is_active = 1
            """,
            (group_id, user_id),
        )
        if not group:
            raise NotFoundError("Group not found or access denied")
        group["recent_announcements"] = self.db.fetch_all(
            """
            SELECT an.id, an.title, an.content, an.is_pinned, an.created_at
            FROM announcements an
            WHERE an.is_archived = 0
              AND EXISTS (SELECT 1 FROM json_each(an.target_groups) t WHERE CAST(t.value AS INTEGER) = ?)
            ORDER BY an.is_pinned DESC, an.created_at DESC, an.id DESC
            LIMIT ?
            """,
            (group_id, RECENT_ANNOUNCEMENTS),
        )
        return {"success": True, "data": group}

    def active_group_ids(self, user_id: int) -> set[int]:
        rows = self.db.fetch_all(
            """
            SELECT gm.group_id FROM group_members gm JOIN user_groups g ON g.id = gm.group_id
            WHERE gm.user_id = ? AND gm.is_active = 1 AND g.is_active = 1
            """,
            (user_id,),
        )
        return {row["group_id"] for row in rows}

"""
Kudumbam — Form Values
Reference option lists behind the profile dropdowns, and their admin editing.
Kaani values hang off a kula deivam, departments off a degree.
"""

from __future__ import annotations

from typing import Optional

from kudumbam.core.database import Database, get_database
from kudumbam.core.errors import ConflictError, NotFoundError, ValidationError
from kudumbam.services.form_relationships import CASCADES, OPTION_TYPES
from kudumbam.utils.logger import logger
from kudumbam.utils.security import sanitize_input


# dependent option type → the type its parent_id points at
PARENT_TYPES = {child: parent for parent, child in CASCADES.items()}


class FormValueService:
    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def list(self, value_type: Optional[str] = None) -> dict:
        """One type, or every type keyed by name ({type: [{id, value, parent_id}]})."""
        if value_type:
            if value_type not in OPTION_TYPES:
                raise ValidationError("Invalid type")
            types = [value_type]
        else:
            types = list(OPTION_TYPES)

        data: dict[str, list[dict]] = {t: [] for t in types}
        placeholders = ", ".join("?" for _ in types)
        rows = self.db.fetch_all(
            f"""
            SELECT id, value_type, value, parent_id FROM form_values
            WHERE value_type IN ({placeholders}) ORDER BY value_type, value
            """,
            tuple(types),
        )
        for row in rows:
            data[row.pop("value_type")].append(row)
        return {"success": True, "data": data}

    # ──────────────────────────────────────────────────────────────
    # Admin editing
    # ──────────────────────────────────────────────────────────────

    def admin_list(self) -> dict:
        """Every type, plus each dependent type's children keyed by parent id."""
        payload = self.list()
        relationships: dict[str, dict[int, list[dict]]] = {child: {} for child in PARENT_TYPES}
        for child in PARENT_TYPES:
            for item in payload["data"][child]:
                if item["parent_id"] is not None:
                    relationships[child].setdefault(item["parent_id"], []).append(
                        {"id": item["id"], "value": item["value"]}
                    )
        payload["relationships"] = relationships
        return payload

    def _duplicate(self, value_type: str, value: str, exclude_id: int = 0) -> bool:
        return bool(self.db.fetch_value(
            "SELECT COUNT(*) FROM form_values WHERE value_type = ? AND lower(value) = lower(?) AND id != ?",
            (value_type, value, exclude_id),
        ))

    def _check_parent(self, value_type: str, parent_id) -> Optional[int]:
        if parent_id in (None, ""):
            return None
        parent_type = PARENT_TYPES.get(value_type)
        if not parent_type:
            raise ValidationError(f"'{value_type}' values cannot have a parent")
        if not self.db.fetch_one(
            "SELECT id FROM form_values WHERE id = ? AND value_type = ?", (parent_id, parent_type)
        ):
            raise ValidationError(f"Parent must be an existing {parent_type} value")
        return int(parent_id)

    def create(self, value_type: Optional[str], value: Optional[str], parent_id=None) -> dict:
        if value_type is None or value is None:
            raise ValidationError("Type and value are required")
        value_type = value_type.strip()
        if value_type not in OPTION_TYPES:
            raise ValidationError("Invalid type")
        value = sanitize_input(value, max_length=255)
        if not value:
            raise ValidationError("Value cannot be empty")
        parent_id = self._check_parent(value_type, parent_id)
        if self._duplicate(value_type, value):
            raise ConflictError("Value already exists")

        cursor = self.db.execute(
            "INSERT INTO form_values (value_type, value, parent_id) VALUES (?, ?, ?)",
            (value_type, value, parent_id),
        )
        logger.info(f"🗂️ Form value {cursor.lastrowid} added: {value_type}={value}")
        return {
            "success": True,
            "data": {"id": cursor.lastrowid, "type": value_type, "value": value, "parent_id": parent_id},
        }

    def update(self, value_id, value: Optional[str]) -> dict:
        if not value_id or value is None:
            raise ValidationError("ID and value are required")
        value = sanitize_input(value, max_length=255)
        if not value:
            raise ValidationError("Value cannot be empty")
        current = self.db.fetch_one("SELECT value_type FROM form_values WHERE id = ?", (value_id,))
        if not current:
            raise NotFoundError("Value not found")
        if self._duplicate(current["value_type"], value, exclude_id=int(value_id)):
            raise ConflictError("Value already exists")

        self.db.execute("UPDATE form_values SET value = ? WHERE id = ?", (value, value_id))
        return {"success": True, "data": {"id": int(value_id), "value": value}}

    def delete(self, value_id) -> dict:
        """Children of a deleted parent stay, detached from it."""
        if not value_id:
            raise ValidationError("ID is required")
        with self.db.transaction() as conn:
            if not conn.execute("DELETE FROM form_values WHERE id = ?", (value_id,)).rowcount:
                raise NotFoundError("Value not found")
            conn.execute("UPDATE form_values SET parent_id = NULL WHERE parent_id = ?", (value_id,))
        logger.info(f"🗑️ Form value {value_id} deleted")
        return {"success": True, "message": "Value deleted successfully"}

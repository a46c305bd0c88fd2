"""
Kudumbam — Feature Switches
Site-wide on/off switches, readable by members and toggled by admins.
"""

from typing import Optional

from kudumbam.core.database import Database, get_database, to_db_time, utc_now
from kudumbam.core.errors import NotFoundError, ValidationError
from kudumbam.utils.logger import logger


class FeatureSwitchService:
    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def _rows(self) -> list[dict]:
        rows = self.db.fetch_all("SELECT * FROM feature_switches ORDER BY category, feature_name")
        for row in rows:
            row["is_enabled"] = bool(row["is_enabled"])
        return rows

    def public(self) -> dict:
        rows = self._rows()
        return {
            "success": True,
            "enabled_features": [row["feature_name"] for row in rows if row["is_enabled"]],
            "all_features": {
                row["feature_name"]: {
                    "name": row["feature_name"],
                    "enabled": row["is_enabled"],
                    "category": row["category"],
                }
                for row in rows
            },
        }

    def admin_list(self) -> dict:
        rows = self._rows()
        grouped: dict[str, list[dict]] = {}
        for row in rows:
            grouped.setdefault(row["category"], []).append(row)
        return {"success": True, "switches": rows, "grouped_switches": grouped}

    def update(self, admin_id: int, feature_name: Optional[str], is_enabled) -> dict:
        if not feature_name or is_enabled is None:
            raise ValidationError("Feature key and enabled status are required")
        existing = self.db.fetch_one("SELECT * FROM feature_switches WHERE feature_name = ?", (feature_name,))
        if not existing:
            raise NotFoundError("Feature switch not found")

        enabled = bool(is_enabled)
        if bool(existing["is_enabled"]) == enabled:
            return {"success": True, "message": "No changes made - feature switch was already in the requested state"}

        self.db.execute(
            "UPDATE feature_switches SET is_enabled = ?, updated_by_admin = ?, updated_at = ? WHERE feature_name = ?",
            (int(enabled), admin_id, to_db_time(utc_now()), feature_name),
        )
        state = "enabled" if enabled else "disabled"
        logger.info(f"🎚️ Feature '{feature_name}' {state} by admin {admin_id}")
        return {"success": True, "message": f"Feature '{feature_name}' {state} successfully"}

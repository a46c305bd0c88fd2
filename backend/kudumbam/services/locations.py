"""
Kudumbam — Location Lookups
States, districts per state, and post offices per PIN code.
"""

from typing import Optional

from kudumbam.core.database import Database, get_database
from kudumbam.utils.validators import is_complete_pin_code


class LocationService:
    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def states(self) -> dict:
        rows = self.db.fetch_all("SELECT DISTINCT state FROM districts ORDER BY state")
        return {"success": True, "data": [row["state"] for row in rows]}

    def districts(self, state: str) -> dict:
        rows = self.db.fetch_all(
            "SELECT DISTINCT name FROM districts WHERE state = ? ORDER BY name", (state,)
        )
        return {"success": True, "data": rows}

    def post_offices(self, pin_code: Optional[str]) -> dict:
        pin_code = (pin_code or "").strip()
        if not pin_code:
            return {"success": False, "error": "PIN code is required"}
        if not is_complete_pin_code(pin_code):
            return {"success": False, "error": "Invalid PIN code"}
        rows = self.db.fetch_all(
            """
            SELECT office_name, office_type, district, state
            FROM post_offices WHERE pin_code = ? ORDER BY office_name
            """,
            (pin_code,),
        )
        return {"success": True, "data": rows}

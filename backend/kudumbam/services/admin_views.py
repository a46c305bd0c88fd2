"""
Kudumbam — Admin View Models
Pure functions turning admin API payloads into plain dict trees for the admin
pages: pagination bar, filter bar, badges, user table rows, modals and toasts.
Nothing here touches I/O, so every rule is unit-testable.
"""

from typing import Optional

from kudumbam.core.database import from_db_time


STATUS_TONES = {"approved": "green", "rejected": "red", "pending": "yellow"}
TOAST_ICONS = {"success": "check-circle", "error": "times-circle", "info": "info-circle"}
TOAST_TONES = {"success": "green", "error": "red", "info": "blue"}
DEFAULT_STATUS_OPTIONS = (
    ("", "All Statuses"),
    ("pending", "Pending"),
    ("approved", "Approved"),
    ("rejected", "Rejected"),
)


def page_window(current: int, total: int, width: int = 5) -> list[int]:
    """Up to `width` page numbers centred on the current page."""
    if total <= 0:
        return []
    width = min(width, total)
    start = max(1, min(current - width // 2, total - width + 1))
    return list(range(start, start + width))


def pagination_view(pagination: dict) -> dict:
    current = int(pagination.get("current_page") or 1)
    total_pages = int(pagination.get("total_pages") or 0)
    total = int(pagination.get("total", pagination.get("total_items", 0)) or 0)
    return {
        "label": f"Page {current}",
        "showing": {
            "start": pagination.get("start", 0),
            "end": pagination.get("end", 0),
            "total": total,
        },
        "prev": {"enabled": current > 1, "page": current - 1},
        "next": {"enabled": current < total_pages, "page": current + 1},
        "pages": [{"number": n, "active": n == current} for n in page_window(current, total_pages)],
    }


def filter_bar(status: str = "", search: str = "", status_options=DEFAULT_STATUS_OPTIONS) -> dict:
    return {
        "status": {
            "selected": status,
            "options": [{"value": v, "label": label, "selected": v == status} for v, label in status_options],
        },
        "search": {"value": search, "placeholder": "Search by name, email, phone or enrollment"},
        "reset_visible": bool(status or search),
    }


def status_badge(status: Optional[str]) -> dict:
    status = status or "pending"
    return {"label": status, "tone": STATUS_TONES.get(status, "yellow")}


def profile_badge(completed) -> dict:
    return {"label": "Complete", "tone": "green"} if completed else {"label": "Incomplete", "tone": "yellow"}


def format_date(value: Optional[str]) -> str:
    moment = from_db_time(value) if value else None
    if moment is None:
        return "-"
    return f"{moment.strftime('%b')} {moment.day}, {moment.year}"


def user_row(user: dict) -> dict:
    email = user.get("email") or ""
    invited = user.get("source_type") == "invited"
    actions = [] if invited else [
        {"action": "view", "label": "View", "user_id": user["id"]},
        {"action": "status", "label": "Status", "user_id": user["id"], "current": user.get("approval_status")},
    ]
    return {
        "id": user["id"],
        "avatar_initial": email[:1].upper(),
        "email": email,
        "name": user.get("full_name") or "",
        "enrollment": user.get("enrollment_number") or ("Invited" if invited else "No enrollment"),
        "user_type": user.get("user_type"),
        "status": status_badge(user.get("approval_status")),
        "profile": profile_badge(user.get("profile_completed")),
        "created": format_date(user.get("created_at")),
        "actions": actions,
    }


def users_table(users: list[dict]) -> dict:
    if not users:
        return {"rows": [], "empty_message": "No users found"}
    return {"rows": [user_row(u) for u in users], "empty_message": None}


def modal(title: str, message: str, is_error: bool = False, show_cancel: bool = False) -> dict:
    return {
        "title": title,
        "message": message,
        "tone": "red" if is_error else "indigo",
        "buttons": (["cancel", "confirm"] if show_cancel else ["ok"]),
    }


def status_modal(user: dict) -> dict:
    """Approval picker for one user; the current status is preselected."""
    current = user.get("approval_status") or "pending"
    return {
        **modal("Update User Status", f"Choose a new status for {user.get('email') or user.get('full_name')}",
                show_cancel=True),
        "options": [
            {"value": s, "label": s.title(), "selected": s == current}
            for s in ("pending", "approved", "rejected")
        ],
    }


def toast(message: str, kind: str = "info") -> dict:
    kind = kind if kind in TOAST_ICONS else "info"
    return {"message": message, "icon": TOAST_ICONS[kind], "tone": TOAST_TONES[kind]}


def feature_switch_groups(grouped: dict[str, list[dict]]) -> list[dict]:
    """Category sections with one toggle per switch, categories in name order."""
    return [
        {
            "category": category,
            "title": category.replace("_", " ").title(),
            "toggles": [
                {"name": s["feature_name"], "description": s.get("description") or "", "on": bool(s["is_enabled"])}
                for s in switches
            ],
        }
        for category, switches in sorted(grouped.items())
    ]

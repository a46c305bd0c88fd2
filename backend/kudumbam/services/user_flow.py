"""
Kudumbam — Onboarding Flow Rules
Pure functions deciding where a user belongs: intro questions, profile
completion, or the dashboard.
"""

from typing import Optional


INTRO_REQUIRED = "intro_required"
PROFILE_REQUIRED = "profile_required"
COMPLETED = "completed"
DASHBOARD = "dashboard"

INTRO_PAGE = "intro"
PROFILE_COMPLETION_PAGE = "profile_completion"
DASHBOARD_PAGE = "dashboard"
LOGIN_PAGE = "login"

PROFILE_STEP_NUMBERS = {
    "intro": 1,
    "questions": 1,
    "member_details": 1,
    "spouse_details": 2,
    "children_details": 3,
    "member_family_tree": 4,
    "spouse_family_tree": 5,
}


def next_step(user: dict) -> str:
    """Onboarding stage from the flags on an account snapshot."""
    if user.get("created_via_invitation"):
        if not user.get("intro_completed") or not user.get("questions_completed"):
            return INTRO_REQUIRED
        if user.get("profile_completion_step") != "completed":
            return PROFILE_REQUIRED
        return COMPLETED

    if not user.get("profile_completed"):
        return PROFILE_REQUIRED
    return DASHBOARD


def should_redirect(current_page: str, step: str, require_completed: bool) -> bool:
    """The required destination page never redirects to itself."""
    if step == INTRO_REQUIRED:
        return current_page != INTRO_PAGE
    if step == PROFILE_REQUIRED:
        return current_page != PROFILE_COMPLETION_PAGE
    if require_completed and step not in (COMPLETED, DASHBOARD):
        return True
    return False


def profile_step_number(user: dict) -> int:
    """Which of the five profile sections to open first (1-based)."""
    return PROFILE_STEP_NUMBERS.get(user.get("profile_completion_step") or "", 1)


def redirect_target(step: str, user: Optional[dict] = None) -> str:
    if step == INTRO_REQUIRED:
        return INTRO_PAGE
    if step == PROFILE_REQUIRED:
        return f"{PROFILE_COMPLETION_PAGE}?step={profile_step_number(user or {})}"
    return DASHBOARD_PAGE

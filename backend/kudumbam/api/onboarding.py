"""
Kudumbam — Onboarding & Profile API Router
Intro questions, the profile completion wizard and the combined profile.
"""

from fastapi import APIRouter, Depends

from kudumbam.api.deps import current_user
from kudumbam.models import IntroRequest, ProfileCompletionRequest, ProfileUpdateRequest
from kudumbam.services.intro import IntroService
from kudumbam.services.profile import ProfileService
from kudumbam.services.profile_completion import ProfileCompletionService

router = APIRouter()


@router.get("/intro_questions")
def get_intro(user: dict = Depends(current_user)):
    return {"success": True, "data": IntroService().get(user["id"])}


@router.post("/intro_questions")
def save_intro(body: IntroRequest, user: dict = Depends(current_user)):
    """Store the answers and derive marriage status and family role."""
    answers = IntroService().save(user["id"], body.gender, body.marriageType, body.hasChildren)
    return {"success": True, "message": "Intro questions saved successfully", "data": answers.to_dict()}


@router.post("/profile_completion")
def profile_completion(body: ProfileCompletionRequest, user: dict = Depends(current_user)):
    return ProfileCompletionService().handle(user["id"], body.step, body.section_data())


@router.get("/profile")
def get_profile(user: dict = Depends(current_user)):
    return ProfileService().get(user["id"])


@router.put("/profile")
def update_profile(body: ProfileUpdateRequest, user: dict = Depends(current_user)):
    return ProfileService().update(user["id"], body.model_dump(exclude_unset=True))

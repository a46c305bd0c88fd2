"""
Kudumbam — Pydantic Models for Onboarding & Profile
"""

from pydantic import BaseModel, ConfigDict
from typing import Optional


class IntroRequest(BaseModel):
    """Intro questionnaire; field names match the browser form."""
    gender: Optional[str] = None
    marriageType: Optional[str] = None
    hasChildren: Optional[str] = None


class ProfileCompletionRequest(BaseModel):
    """`step` picks the handler; the rest of the body is section data."""
    model_config = ConfigDict(extra="allow")

    step: Optional[str] = None

    def section_data(self) -> dict:
        return self.model_dump(exclude={"step"})


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    full_name: Optional[str] = None
    phone: Optional[str] = None

"""
Kudumbam — Reference Data API Router
Locations, feature switches and dropdown option lists. No login needed.
"""

from typing import Optional

from fastapi import APIRouter

from kudumbam.services.feature_switches import FeatureSwitchService
from kudumbam.services.form_values import FormValueService
from kudumbam.services.locations import LocationService

router = APIRouter()


@router.get("/districts")
def districts(state: Optional[str] = None):
    """States when no `state` is given, else that state's districts."""
    service = LocationService()
    if not state:
        return service.states()
    return service.districts(state)


@router.get("/post_offices")
def post_offices(pin_code: Optional[str] = None):
    return LocationService().post_offices(pin_code)


@router.get("/feature_switches")
def feature_switches():
    return FeatureSwitchService().public()


@router.get("/form_values")
def form_values(type: Optional[str] = None):
    return FormValueService().list(type)

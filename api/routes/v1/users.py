"""
api/routes/v1/users.py -- Profile endpoints.

Routes:
  GET /api/v1/users/profile      -- current account (requires bearer token)
  PUT /api/v1/users/profile      -- partial profile update (requires bearer token)
  GET /api/v1/users/{username}   -- public profile lookup

/profile is registered before /{username} so the literal path wins.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from api.models import UserResponse
from auth.dependencies import get_current_account, get_profile_service
from auth.models import Account
from auth.profiles import ProfileService

router = APIRouter()


@router.get("/users/profile", response_model=UserResponse)
def get_profile(
    current: Account = Depends(get_current_account),
    profiles: ProfileService = Depends(get_profile_service),
) -> UserResponse:
    return UserResponse.from_account(profiles.get_profile(current.id))


@router.put("/users/profile", response_model=UserResponse)
def update_profile(
    payload: dict[str, Any] = Body(...),
    current: Account = Depends(get_current_account),
    profiles: ProfileService = Depends(get_profile_service),
) -> UserResponse:
    """Update display_name, bio and/or profile_image_url. Omitted fields are kept."""
    return UserResponse.from_account(profiles.update_profile(current.id, payload))


@router.get("/users/{username}", response_model=UserResponse)
def get_user(username: str, profiles: ProfileService = Depends(get_profile_service)) -> UserResponse:
    return UserResponse.from_account(profiles.get_by_username(username))

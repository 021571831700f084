import uuid

from fastapi import APIRouter, Depends

from craftmarket.api.deps import DB, CurrentUser, require_roles
from craftmarket.models.user import User, UserRole, CustomerProfile, ArtisanProfile
from craftmarket.schemas.user import (
    UserProfileResponse, CustomerProfileResponse, ArtisanProfileResponse,
)
from craftmarket.services.user_service import UserService


router = APIRouter(tags=["Users"])


async def _build_profile(service: UserService, user: User) -> UserProfileResponse:
    profile = await service.get_profile(user)
    if isinstance(profile, CustomerProfile):
        profile_data = CustomerProfileResponse.model_validate(profile)
    elif isinstance(profile, ArtisanProfile):
        profile_data = ArtisanProfileResponse.model_validate(profile)
    else:
        profile_data = None

    response = UserProfileResponse.model_validate(user)
    response.profile = profile_data
    return response


@router.get("/me", response_model=UserProfileResponse)
async def get_my_profile(
    db: DB,
    current_user: CurrentUser,
):
    """Current user with loyalty statistics (customers) or shop details (artisans)."""
    return await _build_profile(UserService(db), current_user)


@router.get(
    "/{user_id}",
    response_model=UserProfileResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def get_user_profile(
    user_id: uuid.UUID,
    db: DB,
):
    service = UserService(db)
    user = await service.get_user(user_id)
    return await _build_profile(service, user)

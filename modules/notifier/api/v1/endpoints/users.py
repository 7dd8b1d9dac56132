"""
Users API Endpoints.

Contact details and notification preferences, keyed by the identity
service's user id.
"""

from fastapi import APIRouter

from modules.notifier.core.dependencies import PreferenceServiceDep
from modules.notifier.schemas.base import ApiResponse
from modules.notifier.schemas.user import PreferenceResponse, PreferenceUpdate, UserUpsert

router = APIRouter()


@router.put(
    "/{user_id}",
    response_model=ApiResponse[PreferenceResponse],
    summary="Create or update a user's contact details",
)
async def upsert_user(
    user_id: str,
    data: UserUpsert,
    service: PreferenceServiceDep,
) -> ApiResponse[PreferenceResponse]:
    preference = await service.upsert_user(user_id, data)
    return ApiResponse(data=PreferenceResponse.model_validate(preference))


@router.get(
    "/{user_id}/preferences",
    response_model=ApiResponse[PreferenceResponse],
    summary="Get a user's notification preferences",
)
async def get_preferences(user_id: str, service: PreferenceServiceDep) -> ApiResponse[PreferenceResponse]:
    preference = await service.get(user_id)
    return ApiResponse(data=PreferenceResponse.model_validate(preference))


@router.patch(
    "/{user_id}/preferences",
    response_model=ApiResponse[PreferenceResponse],
    summary="Change a user's notification preferences",
)
async def update_preferences(
    user_id: str,
    data: PreferenceUpdate,
    service: PreferenceServiceDep,
) -> ApiResponse[PreferenceResponse]:
    preference = await service.update(user_id, data)
    return ApiResponse(data=PreferenceResponse.model_validate(preference))

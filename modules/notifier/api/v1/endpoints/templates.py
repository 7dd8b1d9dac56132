"""
Templates API Endpoints.

Versioned notification templates. Creating a template for an existing code
adds a new version and makes it the active one.
"""

from fastapi import APIRouter, Query

from modules.notifier.core.dependencies import TemplateServiceDep
from modules.notifier.schemas.base import ApiResponse
from modules.notifier.schemas.template import (
    TemplateActivation,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[TemplateResponse],
    status_code=201,
    summary="Create a template version",
)
async def create_template(
    data: TemplateCreate,
    service: TemplateServiceDep,
) -> ApiResponse[TemplateResponse]:
    template = await service.create(data)
    return ApiResponse(data=TemplateResponse.model_validate(template))


@router.get(
    "",
    response_model=ApiResponse[list[TemplateResponse]],
    summary="List templates",
)
async def list_templates(
    service: TemplateServiceDep,
    active_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ApiResponse[list[TemplateResponse]]:
    templates = await service.list_templates(active_only=active_only, limit=limit, offset=offset)
    return ApiResponse(data=[TemplateResponse.model_validate(t) for t in templates])


@router.get(
    "/code/{code}",
    response_model=ApiResponse[TemplateResponse],
    summary="Get the active version for a code",
)
async def get_active_template(code: str, service: TemplateServiceDep) -> ApiResponse[TemplateResponse]:
    template = await service.get_active(code)
    return ApiResponse(data=TemplateResponse.model_validate(template))


@router.get(
    "/code/{code}/versions",
    response_model=ApiResponse[list[TemplateResponse]],
    summary="List every version of a code",
)
async def list_template_versions(code: str, service: TemplateServiceDep) -> ApiResponse[list[TemplateResponse]]:
    versions = await service.list_versions(code)
    return ApiResponse(data=[TemplateResponse.model_validate(t) for t in versions])


@router.get(
    "/{template_id}",
    response_model=ApiResponse[TemplateResponse],
    summary="Get a template version",
)
async def get_template(template_id: str, service: TemplateServiceDep) -> ApiResponse[TemplateResponse]:
    template = await service.get(template_id)
    return ApiResponse(data=TemplateResponse.model_validate(template))


@router.patch(
    "/{template_id}",
    response_model=ApiResponse[TemplateResponse],
    summary="Edit a template version",
)
async def update_template(
    template_id: str,
    data: TemplateUpdate,
    service: TemplateServiceDep,
) -> ApiResponse[TemplateResponse]:
    template = await service.update(template_id, data)
    return ApiResponse(data=TemplateResponse.model_validate(template))


@router.patch(
    "/{template_id}/active",
    response_model=ApiResponse[TemplateResponse],
    summary="Activate or deactivate a template version",
)
async def set_template_active(
    template_id: str,
    data: TemplateActivation,
    service: TemplateServiceDep,
) -> ApiResponse[TemplateResponse]:
    template = await service.set_active(template_id, data.is_active)
    return ApiResponse(data=TemplateResponse.model_validate(template))


@router.delete(
    "/{template_id}",
    status_code=204,
    summary="Delete a template version",
)
async def delete_template(template_id: str, service: TemplateServiceDep) -> None:
    await service.delete(template_id)

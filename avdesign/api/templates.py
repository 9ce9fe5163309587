"""
Templates API - Manage, version and apply templates
"""

import logging
from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from avdesign.content import TemplateContent, TemplateType
from avdesign.database import get_db
from avdesign.models import Template, TemplateVersion
from avdesign.schemas import (
    ApplyResult,
    TemplateCreate,
    TemplateFilters,
    TemplateFork,
    TemplatePromote,
    TemplateUpdate,
)
from avdesign.services import (
    ApplicationEngine,
    SQLProjectService,
    SQLQuoteService,
    SQLRoomService,
    TemplateService,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class TemplateCreateRequest(TemplateCreate):
    """Request to create a template with its first version."""
    scope: Literal["personal", "team", "org"] = "personal"
    author_id: str


class ContentUpdateRequest(BaseModel):
    """Request to store new content as the next version."""
    content: TemplateContent
    change_summary: str = Field(..., min_length=1)
    author_id: str


class ForkRequest(TemplateFork):
    author_id: str
    org_id: str


class DuplicateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    author_id: str


class RestoreRequest(BaseModel):
    author_id: str


class ApplyRequest(BaseModel):
    """Type-specific input for applying a template."""
    author_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class TemplateResponse(BaseModel):
    """Template response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    name: str
    description: str | None
    thumbnail_url: str | None
    scope: str
    owner_id: str | None
    team_id: str | None
    org_id: str
    category_tags: list[str]
    current_version: int
    is_published: bool
    is_archived: bool
    forked_from_id: str | None
    created_at: datetime
    updated_at: datetime


class TemplateWithContentResponse(TemplateResponse):
    content: dict[str, Any]


class TemplateListResponse(BaseModel):
    """List of templates response."""
    templates: list[TemplateResponse]
    total: int


class VersionResponse(BaseModel):
    """Template version response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    template_id: str
    version: int
    content: dict[str, Any]
    change_summary: str | None
    created_by: str
    created_at: datetime


# =============================================================================
# Dependencies
# =============================================================================

def get_template_service(db: AsyncSession = Depends(get_db)) -> TemplateService:
    return TemplateService(db)


def get_engine(
    db: AsyncSession = Depends(get_db),
    templates: TemplateService = Depends(get_template_service),
) -> ApplicationEngine:
    return ApplicationEngine(
        templates,
        rooms=SQLRoomService(db),
        projects=SQLProjectService(db),
        quotes=SQLQuoteService(db),
    )


def _template_response(template: Template) -> TemplateResponse:
    return TemplateResponse.model_validate(template)


def _version_response(version: TemplateVersion) -> VersionResponse:
    return VersionResponse.model_validate(version)


def _not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


# =============================================================================
# Template routes
# =============================================================================

@router.get("", response_model=TemplateListResponse)
async def list_templates(
    type: TemplateType | None = None,
    scope: str | None = None,
    platform: str | None = None,
    tier: str | None = None,
    search: str | None = None,
    is_published: bool | None = None,
    is_archived: bool = False,
    service: TemplateService = Depends(get_template_service),
):
    """List templates matching the filters."""
    try:
        filters = TemplateFilters(
            type=type,
            scope=scope,
            platform=platform,
            tier=tier,
            search=search,
            is_published=is_published,
            is_archived=is_archived,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    templates = await service.get_all(filters)
    return TemplateListResponse(
        templates=[_template_response(t) for t in templates],
        total=len(templates),
    )


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    request: TemplateCreateRequest,
    service: TemplateService = Depends(get_template_service),
):
    """Create a template and its first version."""
    template = await service.create(request, request.author_id)
    return _template_response(template)


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    """Get a specific template."""
    template = await service.get_by_id(template_id)
    if not template:
        raise _not_found(f"Template {template_id} not found")
    return _template_response(template)


@router.get("/{template_id}/content", response_model=TemplateWithContentResponse)
async def get_template_with_content(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    """Get a template together with its current content."""
    loaded = await service.get_with_version(template_id)
    if not loaded:
        raise _not_found(f"Template {template_id} not found")
    return TemplateWithContentResponse(
        **_template_response(loaded.template).model_dump(),
        content=loaded.content.model_dump(mode="json"),
    )


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: str,
    request: TemplateUpdate,
    service: TemplateService = Depends(get_template_service),
):
    """Update template metadata."""
    template = await service.update(template_id, request)
    return _template_response(template)


@router.put("/{template_id}/content", response_model=VersionResponse)
async def update_template_content(
    template_id: str,
    request: ContentUpdateRequest,
    service: TemplateService = Depends(get_template_service),
):
    """Store new content as the next version."""
    version = await service.update_content(
        template_id,
        request.content,
        request.change_summary,
        request.author_id,
    )
    return _version_response(version)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    """Delete a template and its history."""
    await service.delete(template_id)


@router.post("/{template_id}/archive", response_model=TemplateResponse)
async def archive_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    return _template_response(await service.archive(template_id))


@router.post("/{template_id}/unarchive", response_model=TemplateResponse)
async def unarchive_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    return _template_response(await service.unarchive(template_id))


@router.post("/{template_id}/publish", response_model=TemplateResponse)
async def publish_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    return _template_response(await service.publish(template_id))


@router.post("/{template_id}/unpublish", response_model=TemplateResponse)
async def unpublish_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    return _template_response(await service.unpublish(template_id))


@router.post("/{template_id}/fork", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def fork_template(
    template_id: str,
    request: ForkRequest,
    service: TemplateService = Depends(get_template_service),
):
    """Fork a template into an independent copy."""
    template = await service.fork(template_id, request, request.author_id, request.org_id)
    return _template_response(template)


@router.post("/{template_id}/duplicate", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_template(
    template_id: str,
    request: DuplicateRequest,
    service: TemplateService = Depends(get_template_service),
):
    """Duplicate a template within its scope."""
    template = await service.duplicate(template_id, request.name, request.author_id)
    return _template_response(template)


@router.post("/{template_id}/promote", response_model=TemplateResponse)
async def promote_template(
    template_id: str,
    request: TemplatePromote,
    service: TemplateService = Depends(get_template_service),
):
    """Move a template to a broader scope."""
    template = await service.promote(template_id, request)
    return _template_response(template)


# =============================================================================
# Version routes
# =============================================================================

@router.get("/{template_id}/versions", response_model=list[VersionResponse])
async def list_versions(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    """All versions of a template, newest first."""
    versions = await service.versions.get_versions(template_id)
    return [_version_response(v) for v in versions]


@router.get("/{template_id}/versions/current", response_model=VersionResponse)
async def get_current_version(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
):
    version = await service.versions.get_current_version(template_id)
    if not version:
        raise _not_found(f"Template {template_id} has no current version")
    return _version_response(version)


@router.get("/{template_id}/versions/{version}", response_model=VersionResponse)
async def get_version(
    template_id: str,
    version: int,
    service: TemplateService = Depends(get_template_service),
):
    found = await service.versions.get_version(template_id, version)
    if not found:
        raise _not_found(f"Version {version} of template {template_id} not found")
    return _version_response(found)


@router.post(
    "/{template_id}/versions/{version}/restore",
    response_model=VersionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def restore_version(
    template_id: str,
    version: int,
    request: RestoreRequest,
    service: TemplateService = Depends(get_template_service),
):
    """Copy an old version's content into a new version."""
    restored = await service.restore_version(template_id, version, request.author_id)
    return _version_response(restored)


# =============================================================================
# Apply
# =============================================================================

@router.post("/{template_id}/apply", response_model=ApplyResult, status_code=status.HTTP_201_CREATED)
async def apply_template(
    template_id: str,
    request: ApplyRequest,
    engine: ApplicationEngine = Depends(get_engine),
):
    """Instantiate a template into new rooms, projects or quotes."""
    return await engine.apply_template(template_id, request.data, request.author_id)

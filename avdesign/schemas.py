"""
Pydantic schemas shared by the services and the HTTP API.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from avdesign.content import (
    Ecosystem,
    Platform,
    QualityTier,
    RoomType,
    TemplateContent,
    TemplateScope,
    TemplateType,
)


# =============================================================================
# Template lifecycle
# =============================================================================

class TemplateCreate(BaseModel):
    """Data for a new template and its first version."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    type: TemplateType
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    thumbnail_url: str | None = None
    scope: TemplateScope = TemplateScope.PERSONAL
    team_id: str | None = None
    org_id: str
    category_tags: list[str] = Field(default_factory=list)
    is_published: bool = False
    forked_from_id: str | None = None
    content: TemplateContent
    change_summary: str | None = None


class TemplateUpdate(BaseModel):
    """Metadata patch. Content changes go through update_content."""
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    thumbnail_url: str | None = None
    category_tags: list[str] | None = None
    is_published: bool | None = None
    is_archived: bool | None = None


class TemplateFork(BaseModel):
    """Fork target. System scope is reserved for templates shipped with the product."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    scope: Literal["personal", "team", "org"] | None = None
    team_id: str | None = None


class TemplatePromote(BaseModel):
    scope: Literal["team", "org"]
    team_id: str | None = None


class TemplateFilters(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    type: TemplateType | None = None
    scope: TemplateScope | Literal["all"] | None = None
    platform: Platform | Literal["all"] | None = None
    tier: QualityTier | Literal["all"] | None = None
    search: str | None = None
    is_published: bool | None = None
    is_archived: bool = False


# =============================================================================
# Entities created by applying templates
# =============================================================================

class PlacedEquipment(BaseModel):
    """Equipment instance placed in a live room."""
    id: str
    equipment_id: str
    x: float
    y: float
    rotation: float = 0
    mount_type: Literal["floor", "wall", "ceiling", "rack"] = "floor"
    configuration: dict[str, Any] | None = None


class RoomSpec(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str
    room_type: RoomType
    width: float
    length: float
    ceiling_height: float
    platform: Platform
    ecosystem: Ecosystem
    tier: QualityTier


class ProjectSpec(BaseModel):
    name: str
    client_name: str
    client_id: str | None = None
    status: str = "draft"


class QuoteSection(BaseModel):
    id: str
    name: str
    category: str
    items: list[dict[str, Any]] = Field(default_factory=list)
    subtotal: float = 0


class QuoteTotals(BaseModel):
    equipment: float = 0
    labor: float = 0
    subtotal: float = 0
    tax: float = 0
    total: float = 0
    margin: float = 0
    margin_percentage: float = 0


class QuoteSpec(BaseModel):
    project_id: str
    room_id: str
    sections: list[QuoteSection] = Field(default_factory=list)
    totals: QuoteTotals = Field(default_factory=QuoteTotals)


# =============================================================================
# Apply inputs and result
# =============================================================================

class ApplyRoomInput(BaseModel):
    name: str = Field(..., min_length=1)
    project_id: str


class ApplyEquipmentPackageInput(BaseModel):
    room_id: str
    placement_mode: Literal["auto", "palette"] = "auto"


class ApplyProjectInput(BaseModel):
    name: str = Field(..., min_length=1)
    client_name: str
    client_id: str | None = None


class ApplyQuoteInput(BaseModel):
    project_id: str
    room_id: str


class ApplyResult(BaseModel):
    """What an apply created (or, for packages, touched)."""
    model_config = ConfigDict(use_enum_values=True)

    type: TemplateType
    project_id: str | None = None
    room_id: str | None = None
    quote_id: str | None = None

"""
Template Content Model

The four content shapes a template version can hold, stored as a JSON blob
keyed by its ``type`` tag.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# =============================================================================
# Enums
# =============================================================================

class TemplateType(str, Enum):
    """Kinds of template content."""
    ROOM = "room"
    EQUIPMENT_PACKAGE = "equipment_package"
    PROJECT = "project"
    QUOTE = "quote"


class TemplateScope(str, Enum):
    """Visibility tiers, narrowest first."""
    PERSONAL = "personal"
    TEAM = "team"
    ORG = "org"
    SYSTEM = "system"


class RoomType(str, Enum):
    HUDDLE = "huddle"
    CONFERENCE = "conference"
    TRAINING = "training"
    BOARDROOM = "boardroom"
    AUDITORIUM = "auditorium"


class Platform(str, Enum):
    TEAMS = "teams"
    ZOOM = "zoom"
    WEBEX = "webex"
    MEET = "meet"
    MULTI = "multi"
    NONE = "none"


class Ecosystem(str, Enum):
    POLY = "poly"
    LOGITECH = "logitech"
    CISCO = "cisco"
    CRESTRON = "crestron"
    BIAMP = "biamp"
    QSC = "qsc"
    MIXED = "mixed"


class QualityTier(str, Enum):
    BUDGET = "budget"
    STANDARD = "standard"
    PREMIUM = "premium"
    EXECUTIVE = "executive"


class ContentModel(BaseModel):
    model_config = ConfigDict(use_enum_values=True)


# =============================================================================
# Room
# =============================================================================

class Position(ContentModel):
    x: float
    y: float


class PlacedEquipmentItem(ContentModel):
    """A piece of equipment at a fixed spot in a room template."""
    equipment_id: str
    position: Position
    rotation: float = 0
    label: str | None = None


class ConnectionItem(ContentModel):
    """Cable run between two equipment ports."""
    from_equipment_id: str
    from_port: str
    to_equipment_id: str
    to_port: str
    cable_type: str | None = None


class RoomTemplateContent(ContentModel):
    type: Literal["room"] = "room"
    room_type: RoomType
    width: float = Field(..., gt=0)
    length: float = Field(..., gt=0)
    ceiling_height: float = Field(..., gt=0)
    platform: Platform
    ecosystem: Ecosystem
    tier: QualityTier
    placed_equipment: list[PlacedEquipmentItem] = Field(default_factory=list)
    connections: list[ConnectionItem] = Field(default_factory=list)


# =============================================================================
# Equipment package
# =============================================================================

class EquipmentPackageItem(ContentModel):
    equipment_id: str
    quantity: int = Field(1, ge=1)
    notes: str | None = None


class EquipmentPackageContent(ContentModel):
    type: Literal["equipment_package"] = "equipment_package"
    category: str = ""
    items: list[EquipmentPackageItem] = Field(default_factory=list)
    # Snapshot at save time; live catalog pricing may have moved since.
    total_estimated_cost: float = Field(0, ge=0)


# =============================================================================
# Project
# =============================================================================

class ProjectRoomTemplate(ContentModel):
    """Reference to a room template to instantiate inside a new project."""
    template_id: str
    default_name: str
    quantity: int = Field(1, ge=1)


class ProjectClientDefaults(ContentModel):
    industry: str | None = None
    standards_profile: str | None = None


class MarginDefaults(ContentModel):
    equipment: float = 20
    labor: float = 30


class ProjectTemplateContent(ContentModel):
    type: Literal["project"] = "project"
    room_templates: list[ProjectRoomTemplate] = Field(default_factory=list)
    client_defaults: ProjectClientDefaults = Field(default_factory=ProjectClientDefaults)
    default_margins: MarginDefaults = Field(default_factory=MarginDefaults)


# =============================================================================
# Quote
# =============================================================================

class QuoteSectionConfig(ContentModel):
    name: str
    category: str
    default_margin: float = 0


class QuoteLaborRate(ContentModel):
    category: str
    rate_per_hour: float = Field(..., ge=0)


class QuoteTaxSettings(ContentModel):
    rate: float = Field(0, ge=0)
    applies_to: list[Literal["equipment", "labor"]] = Field(default_factory=list)


class QuoteTemplateContent(ContentModel):
    type: Literal["quote"] = "quote"
    sections: list[QuoteSectionConfig] = Field(default_factory=list)
    default_margins: MarginDefaults = Field(default_factory=MarginDefaults)
    labor_rates: list[QuoteLaborRate] = Field(default_factory=list)
    tax_settings: QuoteTaxSettings = Field(default_factory=QuoteTaxSettings)
    terms_text: str = ""


TemplateContent = Annotated[
    Union[
        RoomTemplateContent,
        EquipmentPackageContent,
        ProjectTemplateContent,
        QuoteTemplateContent,
    ],
    Field(discriminator="type"),
]

_content_adapter: TypeAdapter = TypeAdapter(TemplateContent)


def parse_content(data: dict[str, Any]) -> TemplateContent:
    """Validate a stored JSON blob into its content model."""
    return _content_adapter.validate_python(data)


def dump_content(content: TemplateContent) -> dict[str, Any]:
    """Serialize content for storage in a version row."""
    return content.model_dump(mode="json")


# =============================================================================
# Builders
# =============================================================================

def create_empty_content(template_type: TemplateType | str) -> TemplateContent:
    """Default content for a freshly created template of the given type."""
    template_type = TemplateType(template_type)

    if template_type is TemplateType.ROOM:
        return RoomTemplateContent(
            room_type=RoomType.CONFERENCE,
            width=20,
            length=20,
            ceiling_height=9,
            platform=Platform.TEAMS,
            ecosystem=Ecosystem.POLY,
            tier=QualityTier.STANDARD,
        )
    if template_type is TemplateType.EQUIPMENT_PACKAGE:
        return EquipmentPackageContent()
    if template_type is TemplateType.PROJECT:
        return ProjectTemplateContent()
    if template_type is TemplateType.QUOTE:
        return QuoteTemplateContent()

    raise ValueError(f"Unsupported template type: {template_type}")


def build_room_template_content(room: Any, include_equipment: bool = True) -> RoomTemplateContent:
    """Snapshot a live room into room template content."""
    placed: list[PlacedEquipmentItem] = []
    if include_equipment:
        for item in room.placed_equipment or []:
            label = (item.get("configuration") or {}).get("label")
            placed.append(
                PlacedEquipmentItem(
                    equipment_id=item["equipment_id"],
                    position=Position(x=item["x"], y=item["y"]),
                    rotation=item.get("rotation", 0),
                    label=label if isinstance(label, str) else None,
                )
            )

    return RoomTemplateContent(
        room_type=room.room_type,
        width=room.width,
        length=room.length,
        ceiling_height=room.ceiling_height,
        platform=room.platform,
        ecosystem=room.ecosystem,
        tier=room.tier,
        placed_equipment=placed,
        connections=[],
    )


def _average_margin(items: list[dict[str, Any]], fallback: float) -> float:
    if not items:
        return fallback
    total = sum(item.get("margin_percentage", 0) for item in items)
    return round(total / len(items), 2)


def build_quote_template_content(quote: Any) -> QuoteTemplateContent:
    """
    Snapshot a live quote's section layout into quote template content.

    Section margins average the section's item margins; the tax rate is
    recovered from the quote totals.
    """
    totals = quote.totals or {}
    default_margin = round(totals.get("margin_percentage", 0), 2)

    sections = [
        QuoteSectionConfig(
            name=section["name"],
            category=section["category"],
            default_margin=_average_margin(section.get("items") or [], default_margin),
        )
        for section in quote.sections or []
    ]

    subtotal = totals.get("subtotal", 0)
    tax_rate = round(totals.get("tax", 0) / subtotal * 100, 2) if subtotal > 0 else 0

    return QuoteTemplateContent(
        sections=sections,
        default_margins=MarginDefaults(equipment=default_margin, labor=default_margin),
        labor_rates=[],
        tax_settings=QuoteTaxSettings(rate=tax_rate, applies_to=["equipment", "labor"]),
        terms_text="",
    )

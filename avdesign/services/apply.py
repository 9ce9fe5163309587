"""
Template Application Engine

Instantiates a template's current content into new rooms, projects and
quotes. Multi-step applies record a compensating action for every write so
a failure part way through can be undone in reverse order.
"""

import logging
import math
import random
import time
import uuid
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from avdesign.config import get_settings
from avdesign.content import (
    EquipmentPackageContent,
    ProjectTemplateContent,
    QuoteTemplateContent,
    RoomTemplateContent,
    TemplateType,
)
from avdesign.errors import (
    NotFoundError,
    PartialApplyFailure,
    TemplateValidationError,
)
from avdesign.schemas import (
    ApplyEquipmentPackageInput,
    ApplyProjectInput,
    ApplyQuoteInput,
    ApplyResult,
    ApplyRoomInput,
    PlacedEquipment,
    ProjectSpec,
    QuoteSection,
    QuoteSpec,
    QuoteTotals,
    RoomSpec,
)
from avdesign.services.collaborators import ProjectService, QuoteService, RoomService
from avdesign.services.templates import TemplateService

logger = logging.getLogger(__name__)

INPUT_MODELS: dict[str, type[BaseModel]] = {
    TemplateType.ROOM.value: ApplyRoomInput,
    TemplateType.EQUIPMENT_PACKAGE.value: ApplyEquipmentPackageInput,
    TemplateType.PROJECT.value: ApplyProjectInput,
    TemplateType.QUOTE.value: ApplyQuoteInput,
}


# =============================================================================
# Helpers
# =============================================================================

def generate_id(prefix: str) -> str:
    """Prefixed unique id for placements and quote sections."""
    try:
        return f"{prefix}-{uuid.uuid4()}"
    except NotImplementedError:
        # No OS randomness source for uuid4
        return f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 9999)}"


def build_grid_positions(
    count: int,
    width: float,
    length: float,
    spacing: float = 2,
) -> list[tuple[float, float]]:
    """
    Lay ``count`` items out left-to-right, top-to-bottom on a square grid.

    Every point is clamped to ``width - 1`` / ``length - 1``, so once the grid
    overflows the room the extra items stack along the far edge.
    """
    columns = max(1, math.floor(width / spacing))
    positions = []
    for index in range(count):
        column = index % columns
        row = index // columns
        x = min(width - 1, 1 + column * spacing)
        y = min(length - 1, 1 + row * spacing)
        positions.append((x, y))
    return positions


def placements_from_room_content(content: RoomTemplateContent) -> list[PlacedEquipment]:
    """Fresh placement records for every piece of equipment in a room template."""
    return [
        PlacedEquipment(
            id=generate_id("pe"),
            equipment_id=item.equipment_id,
            x=item.position.x,
            y=item.position.y,
            rotation=item.rotation,
            mount_type="floor",
            configuration={"label": item.label} if item.label else None,
        )
        for item in content.placed_equipment
    ]


def room_spec_from_content(name: str, content: RoomTemplateContent) -> RoomSpec:
    return RoomSpec(
        name=name,
        room_type=content.room_type,
        width=content.width,
        length=content.length,
        ceiling_height=content.ceiling_height,
        platform=content.platform,
        ecosystem=content.ecosystem,
        tier=content.tier,
    )


class ApplySaga:
    """Compensating actions for the writes made during one apply."""

    def __init__(self):
        self._steps: list[tuple[dict[str, str], Callable[[], Awaitable[None]]]] = []

    def record(self, kind: str, entity_id: str, compensate: Callable[[], Awaitable[None]]) -> None:
        self._steps.append(({"type": kind, "id": entity_id}, compensate))

    @property
    def created(self) -> list[dict[str, str]]:
        return [descriptor for descriptor, _ in self._steps]

    async def rollback(self) -> bool:
        """Run compensations newest first. Returns False if any of them failed."""
        clean = True
        for descriptor, compensate in reversed(self._steps):
            try:
                await compensate()
                logger.warning(f"Rolled back {descriptor['type']} {descriptor['id']}")
            except Exception as e:
                clean = False
                logger.error(f"Rollback of {descriptor['type']} {descriptor['id']} failed: {e}")
        return clean


# =============================================================================
# Engine
# =============================================================================

class ApplicationEngine:
    """Turns templates into live entities through the collaborator services."""

    def __init__(
        self,
        templates: TemplateService,
        rooms: RoomService,
        projects: ProjectService,
        quotes: QuoteService,
        grid_spacing: float | None = None,
        rollback: bool | None = None,
    ):
        settings = get_settings()
        self.templates = templates
        self.rooms = rooms
        self.projects = projects
        self.quotes = quotes
        self.grid_spacing = grid_spacing if grid_spacing is not None else settings.grid_spacing
        self.rollback = rollback if rollback is not None else settings.apply_rollback

    async def apply_template(
        self,
        template_id: str,
        data: dict[str, Any] | BaseModel,
        author_id: str | None = None,
    ) -> ApplyResult:
        """
        Instantiate the template's current content.

        Input is validated for the template's type before anything is
        written. If a later step fails, earlier writes are compensated; when
        that is disabled or does not fully succeed, PartialApplyFailure
        reports what was left behind.
        """
        loaded = await self.templates.get_with_version(template_id)
        if not loaded:
            raise NotFoundError("Template", template_id)
        content = loaded.content

        payload = self._validate_input(content.type, data)
        if isinstance(content, ProjectTemplateContent) and not author_id:
            raise TemplateValidationError("Applying a project template requires an author_id")

        saga = ApplySaga()
        try:
            if isinstance(content, RoomTemplateContent):
                result = await self._apply_room(content, payload, saga)
            elif isinstance(content, EquipmentPackageContent):
                result = await self._apply_equipment_package(content, payload, saga)
            elif isinstance(content, ProjectTemplateContent):
                result = await self._apply_project(content, payload, author_id, saga)
            elif isinstance(content, QuoteTemplateContent):
                result = await self._apply_quote(content, payload, saga)
            else:
                raise TemplateValidationError(f"Unsupported template type: {content.type}")
        except Exception as e:
            if not saga.created:
                raise
            logger.error(f"Applying template {template_id} failed after {len(saga.created)} write(s): {e}")
            if self.rollback and await saga.rollback():
                raise
            raise PartialApplyFailure(template_id, saga.created, e) from e

        logger.info(f"Applied {content.type} template {template_id}: {result.model_dump(exclude_none=True)}")
        return result

    def _validate_input(self, template_type: str, data: dict[str, Any] | BaseModel) -> BaseModel:
        model = INPUT_MODELS.get(template_type)
        if model is None:
            raise TemplateValidationError(f"Unsupported template type: {template_type}")
        if isinstance(data, BaseModel):
            data = data.model_dump()
        try:
            return model.model_validate(data)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise TemplateValidationError(
                f"Invalid input for applying a {template_type} template: {fields}"
            ) from e

    async def _create_room(
        self,
        project_id: str,
        name: str,
        content: RoomTemplateContent,
        saga: ApplySaga,
    ) -> str:
        room = await self.rooms.create(project_id, room_spec_from_content(name, content))
        room_id = room.id
        saga.record("room", room_id, lambda: self.rooms.delete(room_id))

        if content.placed_equipment:
            await self.rooms.set_placed_equipment(room_id, placements_from_room_content(content))
        return room_id

    async def _apply_room(
        self,
        content: RoomTemplateContent,
        data: ApplyRoomInput,
        saga: ApplySaga,
    ) -> ApplyResult:
        room_id = await self._create_room(data.project_id, data.name, content, saga)
        return ApplyResult(type=TemplateType.ROOM, room_id=room_id, project_id=data.project_id)

    async def _apply_equipment_package(
        self,
        content: EquipmentPackageContent,
        data: ApplyEquipmentPackageInput,
        saga: ApplySaga,
    ) -> ApplyResult:
        room = await self.rooms.get_by_id(data.room_id)
        if not room:
            raise NotFoundError("Room", data.room_id)

        slots = [item for item in content.items for _ in range(item.quantity)]
        positions = build_grid_positions(len(slots), room.width, room.length, self.grid_spacing)

        new_placements = [
            PlacedEquipment(
                id=generate_id("pe"),
                equipment_id=item.equipment_id,
                x=x,
                y=y,
                rotation=0,
                mount_type="floor",
                configuration=(
                    {"notes": item.notes, "placement_mode": data.placement_mode}
                    if item.notes else None
                ),
            )
            for item, (x, y) in zip(slots, positions)
        ]

        # Read-modify-write: concurrent applies to one room are last-write-wins
        try:
            existing = [PlacedEquipment.model_validate(p) for p in room.placed_equipment or []]
        except ValidationError as e:
            raise TemplateValidationError(
                f"Room {room.id} has malformed placed equipment and cannot take a package"
            ) from e
        room_id = room.id
        await self.rooms.set_placed_equipment(room_id, existing + new_placements)
        saga.record(
            "room_equipment",
            room_id,
            lambda: self.rooms.set_placed_equipment(room_id, existing),
        )

        return ApplyResult(
            type=TemplateType.EQUIPMENT_PACKAGE,
            room_id=room_id,
            project_id=room.project_id,
        )

    async def _apply_project(
        self,
        content: ProjectTemplateContent,
        data: ApplyProjectInput,
        author_id: str,
        saga: ApplySaga,
    ) -> ApplyResult:
        project = await self.projects.create(
            ProjectSpec(
                name=data.name,
                client_name=data.client_name,
                client_id=data.client_id,
                status="draft",
            ),
            author_id,
        )
        project_id = project.id
        saga.record("project", project_id, lambda: self.projects.delete(project_id))

        for ref in content.room_templates:
            nested = await self.templates.get_with_version(ref.template_id)
            if not nested or not isinstance(nested.content, RoomTemplateContent):
                logger.warning(
                    f"Skipping room template {ref.template_id} in project {project_id}: "
                    "not found or not a room template"
                )
                continue

            quantity = max(1, ref.quantity)
            for index in range(quantity):
                name = f"{ref.default_name} {index + 1}" if quantity > 1 else ref.default_name
                await self._create_room(project_id, name, nested.content, saga)

        return ApplyResult(type=TemplateType.PROJECT, project_id=project_id)

    async def _apply_quote(
        self,
        content: QuoteTemplateContent,
        data: ApplyQuoteInput,
        saga: ApplySaga,
    ) -> ApplyResult:
        # Only section scaffolding is created; margins, labor rates and tax
        # are configured on the quote afterwards.
        sections = [
            QuoteSection(
                id=generate_id("section"),
                name=section.name,
                category=section.category,
                items=[],
                subtotal=0,
            )
            for section in content.sections
        ]

        quote = await self.quotes.create(
            QuoteSpec(
                project_id=data.project_id,
                room_id=data.room_id,
                sections=sections,
                totals=QuoteTotals(),
            )
        )
        quote_id = quote.id
        saga.record("quote", quote_id, lambda: self.quotes.delete(quote_id))

        return ApplyResult(
            type=TemplateType.QUOTE,
            quote_id=quote_id,
            room_id=quote.room_id,
            project_id=quote.project_id,
        )

"""
Room, project and quote services consumed by the application engine.

The engine depends only on the Protocols below. The SQL implementations
store the bare entities in the same database session as the templates.
"""

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from avdesign.errors import NotFoundError
from avdesign.models import Project, Quote, Room
from avdesign.schemas import PlacedEquipment, ProjectSpec, QuoteSpec, RoomSpec

logger = logging.getLogger(__name__)


class RoomService(Protocol):
    async def create(self, project_id: str, spec: RoomSpec) -> Room: ...

    async def get_by_id(self, room_id: str) -> Room | None: ...

    async def set_placed_equipment(self, room_id: str, placements: list[PlacedEquipment]) -> None: ...

    async def delete(self, room_id: str) -> None: ...


class ProjectService(Protocol):
    async def create(self, spec: ProjectSpec, author_id: str) -> Project: ...

    async def delete(self, project_id: str) -> None: ...


class QuoteService(Protocol):
    async def create(self, spec: QuoteSpec) -> Quote: ...

    async def delete(self, quote_id: str) -> None: ...


# =============================================================================
# SQL implementations
# =============================================================================

class SQLRoomService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, project_id: str, spec: RoomSpec) -> Room:
        room = Room(project_id=project_id, placed_equipment=[], **spec.model_dump())
        self.db.add(room)
        await self.db.flush()
        logger.info(f"Created room {room.id} in project {project_id}")
        return room

    async def get_by_id(self, room_id: str) -> Room | None:
        result = await self.db.execute(select(Room).where(Room.id == room_id))
        return result.scalar_one_or_none()

    async def set_placed_equipment(self, room_id: str, placements: list[PlacedEquipment]) -> None:
        room = await self.get_by_id(room_id)
        if not room:
            raise NotFoundError("Room", room_id)
        # Reassign a fresh list so the JSON column is flagged dirty
        room.placed_equipment = [p.model_dump(mode="json") for p in placements]
        await self.db.flush()

    async def delete(self, room_id: str) -> None:
        room = await self.get_by_id(room_id)
        if room:
            await self.db.delete(room)
            await self.db.flush()


class SQLProjectService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, spec: ProjectSpec, author_id: str) -> Project:
        project = Project(created_by=author_id, **spec.model_dump())
        self.db.add(project)
        await self.db.flush()
        logger.info(f"Created project {project.id} ({project.name})")
        return project

    async def delete(self, project_id: str) -> None:
        result = await self.db.execute(select(Project).where(Project.id == project_id))
        project = result.scalar_one_or_none()
        if project:
            await self.db.delete(project)
            await self.db.flush()


class SQLQuoteService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, spec: QuoteSpec) -> Quote:
        data = spec.model_dump(mode="json")
        quote = Quote(
            project_id=data["project_id"],
            room_id=data["room_id"],
            sections=data["sections"],
            totals=data["totals"],
        )
        self.db.add(quote)
        await self.db.flush()
        logger.info(f"Created quote {quote.id} for room {quote.room_id}")
        return quote

    async def delete(self, quote_id: str) -> None:
        result = await self.db.execute(select(Quote).where(Quote.id == quote_id))
        quote = result.scalar_one_or_none()
        if quote:
            await self.db.delete(quote)
            await self.db.flush()

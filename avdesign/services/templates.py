"""
Template Service - scope rules and lifecycle of templates

Create, update, fork, duplicate, promote, archive and publish templates.
Content always goes through the VersionStore so history is never edited.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from avdesign.content import (
    TemplateContent,
    TemplateScope,
    TemplateType,
    parse_content,
)
from avdesign.errors import ImmutableTemplateError, NotFoundError, TemplateValidationError
from avdesign.models import Template, TemplateVersion
from avdesign.schemas import (
    TemplateCreate,
    TemplateFilters,
    TemplateFork,
    TemplatePromote,
    TemplateUpdate,
)
from avdesign.services.versions import VersionStore

logger = logging.getLogger(__name__)

# Promotion only ever moves right along this order
SCOPE_RANK = {
    TemplateScope.PERSONAL.value: 0,
    TemplateScope.TEAM.value: 1,
    TemplateScope.ORG.value: 2,
}


@dataclass
class TemplateWithContent:
    """A template together with the content of its current version."""
    template: Template
    content: TemplateContent


def normalize_scope(
    scope: str,
    author_id: str,
    team_id: str | None,
) -> tuple[str | None, str | None]:
    """
    Resolve (owner_id, team_id) for a template at the given scope.

    Personal templates belong to their author, team templates to a team;
    org and system templates have neither.
    """
    if scope == TemplateScope.PERSONAL.value:
        return author_id, None
    if scope == TemplateScope.TEAM.value:
        if not team_id:
            raise TemplateValidationError("Team templates require a team_id")
        return None, team_id
    if scope in (TemplateScope.ORG.value, TemplateScope.SYSTEM.value):
        return None, None
    raise TemplateValidationError(f"Unknown scope: {scope}")


class TemplateService:
    """Template CRUD and lifecycle operations bound to one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.versions = VersionStore(db)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_all(self, filters: TemplateFilters | None = None) -> list[Template]:
        """
        Templates matching the filters, sorted by name.

        Platform and tier live inside room content, so they are applied after
        the row query against each room template's current version. Templates
        of other types are never excluded by them.
        """
        filters = filters or TemplateFilters()

        query = select(Template).where(Template.is_archived == filters.is_archived)
        if filters.type:
            query = query.where(Template.type == filters.type)
        if filters.scope and filters.scope != "all":
            query = query.where(Template.scope == filters.scope)
        if filters.is_published is not None:
            query = query.where(Template.is_published == filters.is_published)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.where(
                or_(Template.name.ilike(pattern), Template.description.ilike(pattern))
            )

        result = await self.db.execute(query.order_by(Template.name))
        templates = list(result.scalars().all())

        platform = filters.platform if filters.platform != "all" else None
        tier = filters.tier if filters.tier != "all" else None
        if not platform and not tier:
            return templates
        if filters.type and filters.type != TemplateType.ROOM.value:
            return templates

        matches: set[str] = set()
        for template in templates:
            if template.type != TemplateType.ROOM.value:
                continue
            version = await self.versions.get_version(template.id, template.current_version)
            if not version or version.content.get("type") != TemplateType.ROOM.value:
                continue
            content = version.content
            if platform and content.get("platform") != platform:
                continue
            if tier and content.get("tier") != tier:
                continue
            matches.add(template.id)

        return [
            t for t in templates
            if t.type != TemplateType.ROOM.value or t.id in matches
        ]

    async def get_by_type(self, template_type: TemplateType | str) -> list[Template]:
        """Published, unarchived templates of one type."""
        result = await self.db.execute(
            select(Template)
            .where(
                Template.type == TemplateType(template_type).value,
                Template.is_archived.is_(False),
                Template.is_published.is_(True),
            )
            .order_by(Template.name)
        )
        return list(result.scalars().all())

    async def get_by_scope(self, scope: TemplateScope | str) -> list[Template]:
        """Unarchived templates of one scope."""
        result = await self.db.execute(
            select(Template)
            .where(
                Template.scope == TemplateScope(scope).value,
                Template.is_archived.is_(False),
            )
            .order_by(Template.name)
        )
        return list(result.scalars().all())

    async def get_by_id(self, template_id: str) -> Template | None:
        result = await self.db.execute(select(Template).where(Template.id == template_id))
        return result.scalar_one_or_none()

    async def get_with_version(self, template_id: str) -> TemplateWithContent | None:
        """The template and its current content, or None if either is missing."""
        template = await self.get_by_id(template_id)
        if not template:
            return None

        version = await self.versions.get_version(template_id, template.current_version)
        if not version:
            return None

        return TemplateWithContent(template=template, content=parse_content(version.content))

    async def _require(self, template_id: str) -> Template:
        template = await self.get_by_id(template_id)
        if not template:
            raise NotFoundError("Template", template_id)
        return template

    async def _require_mutable(self, template_id: str) -> Template:
        template = await self._require(template_id)
        if template.scope == TemplateScope.SYSTEM.value:
            raise ImmutableTemplateError(template_id)
        return template

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, data: TemplateCreate, author_id: str) -> Template:
        """Insert a template at version 0 and bind it to version 1."""
        if data.content.type != data.type:
            raise TemplateValidationError(
                f"Content of type '{data.content.type}' does not match template type '{data.type}'"
            )
        owner_id, team_id = normalize_scope(data.scope, author_id, data.team_id)

        template = Template(
            type=data.type,
            name=data.name,
            description=data.description,
            thumbnail_url=data.thumbnail_url,
            scope=data.scope,
            owner_id=owner_id,
            team_id=team_id,
            org_id=data.org_id,
            category_tags=list(data.category_tags),
            is_published=data.is_published,
            is_archived=False,
            forked_from_id=data.forked_from_id,
            current_version=0,
        )
        self.db.add(template)
        await self.db.flush()

        await self.versions.create_version(
            template.id,
            data.content,
            author_id,
            data.change_summary or "Initial version",
            forced_number=1,
        )

        logger.info(f"Created {data.scope} {data.type} template {template.id} ({data.name})")
        return template

    async def update(self, template_id: str, data: TemplateUpdate) -> Template:
        """Patch metadata fields that were explicitly provided."""
        template = await self._require_mutable(template_id)

        for field, value in data.model_dump(exclude_unset=True).items():
            if field in ("name", "is_published", "is_archived") and value is None:
                raise TemplateValidationError(f"{field} cannot be null")
            if field == "category_tags":
                value = list(value or [])
            setattr(template, field, value)

        await self.db.flush()
        await self.db.refresh(template)
        return template

    async def update_content(
        self,
        template_id: str,
        content: TemplateContent,
        change_summary: str,
        author_id: str,
    ) -> TemplateVersion:
        """Store new content as the next version."""
        await self._require_mutable(template_id)
        return await self.versions.create_version(template_id, content, author_id, change_summary)

    async def restore_version(self, template_id: str, version: int, author_id: str) -> TemplateVersion:
        return await self.versions.restore_version(template_id, version, author_id)

    async def delete(self, template_id: str) -> None:
        template = await self._require_mutable(template_id)
        await self.db.execute(
            delete(TemplateVersion).where(TemplateVersion.template_id == template_id)
        )
        # Forks outlive their source; they only lose the lineage link
        await self.db.execute(
            update(Template)
            .where(Template.forked_from_id == template_id)
            .values(forked_from_id=None)
        )
        await self.db.delete(template)
        await self.db.flush()
        logger.info(f"Deleted template {template_id}")

    async def archive(self, template_id: str) -> Template:
        return await self.update(template_id, TemplateUpdate(is_archived=True))

    async def unarchive(self, template_id: str) -> Template:
        return await self.update(template_id, TemplateUpdate(is_archived=False))

    async def publish(self, template_id: str) -> Template:
        return await self.update(template_id, TemplateUpdate(is_published=True))

    async def unpublish(self, template_id: str) -> Template:
        return await self.update(template_id, TemplateUpdate(is_published=False))

    async def fork(
        self,
        source_id: str,
        data: TemplateFork,
        author_id: str,
        org_id: str,
    ) -> Template:
        """
        Start an independent lineage from the source's current content.

        The fork lands in personal scope unless another scope is requested,
        is never published, and remembers where it came from.
        """
        source = await self.get_with_version(source_id)
        if not source:
            raise NotFoundError("Template", source_id)

        return await self.create(
            TemplateCreate(
                type=source.template.type,
                name=data.name,
                description=data.description or source.template.description,
                scope=data.scope or TemplateScope.PERSONAL,
                team_id=data.team_id,
                org_id=org_id,
                category_tags=list(source.template.category_tags or []),
                is_published=False,
                forked_from_id=source_id,
                content=source.content,
                change_summary=f'Forked from "{source.template.name}"',
            ),
            author_id,
        )

    async def duplicate(self, source_id: str, name: str, author_id: str) -> Template:
        """Copy a template within its own scope, without fork lineage."""
        source = await self.get_with_version(source_id)
        if not source:
            raise NotFoundError("Template", source_id)

        template = source.template
        scope = template.scope
        if scope == TemplateScope.SYSTEM.value:
            scope = TemplateScope.PERSONAL.value

        return await self.create(
            TemplateCreate(
                type=template.type,
                name=name,
                description=template.description,
                thumbnail_url=template.thumbnail_url,
                scope=scope,
                team_id=template.team_id,
                org_id=template.org_id,
                category_tags=list(template.category_tags or []),
                is_published=False,
                content=source.content,
                change_summary=f'Duplicated from "{template.name}"',
            ),
            author_id,
        )

    async def promote(self, template_id: str, data: TemplatePromote) -> Template:
        """Move a template to a broader scope, dropping narrower ownership."""
        template = await self._require_mutable(template_id)

        current_rank = SCOPE_RANK[template.scope]
        target_rank = SCOPE_RANK[data.scope]
        if target_rank <= current_rank:
            raise TemplateValidationError(
                f"Cannot promote a {template.scope} template to {data.scope}"
            )

        if data.scope == TemplateScope.TEAM.value:
            if not data.team_id:
                raise TemplateValidationError("Promoting to team scope requires a team_id")
            template.team_id = data.team_id
        else:
            template.team_id = None

        template.scope = data.scope
        template.owner_id = None

        await self.db.flush()
        await self.db.refresh(template)

        logger.info(f"Promoted template {template_id} to {data.scope}")
        return template

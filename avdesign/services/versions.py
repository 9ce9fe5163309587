"""
Version Store

Append-only history of template content. Each template row carries a
``current_version`` pointer; every new version advances it.
"""

import copy
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from avdesign.content import TemplateContent, TemplateScope, dump_content, parse_content
from avdesign.errors import (
    ImmutableTemplateError,
    NotFoundError,
    TemplateValidationError,
    VersionConflictError,
)
from avdesign.models import Template, TemplateVersion

logger = logging.getLogger(__name__)


class VersionStore:
    """Reads and appends template versions within one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_template(self, template_id: str) -> Template | None:
        result = await self.db.execute(select(Template).where(Template.id == template_id))
        return result.scalar_one_or_none()

    async def get_versions(self, template_id: str) -> list[TemplateVersion]:
        """All versions of a template, newest first."""
        result = await self.db.execute(
            select(TemplateVersion)
            .where(TemplateVersion.template_id == template_id)
            .order_by(TemplateVersion.version.desc())
        )
        return list(result.scalars().all())

    async def get_version(self, template_id: str, version: int) -> TemplateVersion | None:
        result = await self.db.execute(
            select(TemplateVersion).where(
                TemplateVersion.template_id == template_id,
                TemplateVersion.version == version,
            )
        )
        return result.scalar_one_or_none()

    async def get_current_version(self, template_id: str) -> TemplateVersion | None:
        template = await self._get_template(template_id)
        if not template:
            return None
        return await self.get_version(template_id, template.current_version)

    async def create_version(
        self,
        template_id: str,
        content: TemplateContent,
        author_id: str,
        change_summary: str | None,
        forced_number: int | None = None,
    ) -> TemplateVersion:
        """
        Append a version and move the template's pointer to it.

        The pointer update is a compare-and-swap on the number read here, so
        two writers racing on the same template cannot both win; the loser
        gets VersionConflictError and its transaction is rolled back by the
        session owner.
        """
        template = await self._get_template(template_id)
        if not template:
            raise NotFoundError("Template", template_id)
        if content.type != template.type:
            raise TemplateValidationError(
                f"Content of type '{content.type}' cannot be stored on a "
                f"'{template.type}' template"
            )

        expected = template.current_version
        number = forced_number if forced_number is not None else expected + 1
        if number != expected + 1:
            raise TemplateValidationError(
                f"Template {template_id} is at version {expected}; "
                f"the next version must be {expected + 1}, not {number}"
            )

        version = TemplateVersion(
            template_id=template_id,
            version=number,
            content=dump_content(content),
            change_summary=change_summary,
            created_by=author_id,
        )
        self.db.add(version)
        await self.db.flush()

        result = await self.db.execute(
            update(Template)
            .where(Template.id == template_id, Template.current_version == expected)
            .values(current_version=number)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise VersionConflictError(template_id, expected)
        await self.db.refresh(template)

        logger.info(f"Created version {number} of template {template_id}")
        return version

    async def restore_version(
        self,
        template_id: str,
        version: int,
        author_id: str,
    ) -> TemplateVersion:
        """Re-publish an old version's content as a brand new version."""
        template = await self._get_template(template_id)
        if not template:
            raise NotFoundError("Template", template_id)
        if template.scope == TemplateScope.SYSTEM.value:
            raise ImmutableTemplateError(template_id)

        old = await self.get_version(template_id, version)
        if not old:
            raise NotFoundError("Version", f"{version} of template {template_id}")

        content = parse_content(copy.deepcopy(old.content))
        return await self.create_version(
            template_id,
            content,
            author_id,
            f"Restored from version {version}",
        )

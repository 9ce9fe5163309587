"""
Tests for template scope rules and lifecycle operations
"""

import logging

import pytest
from pydantic import ValidationError

from avdesign.content import parse_content
from avdesign.errors import ImmutableTemplateError, NotFoundError, TemplateValidationError
from avdesign.schemas import (
    TemplateCreate,
    TemplateFilters,
    TemplateFork,
    TemplatePromote,
    TemplateUpdate,
)

from conftest import AUTHOR_ID, ORG_ID


class TestCreate:
    """Tests for template creation and scope normalization."""

    async def test_personal_scope_owned_by_author(self, create_template, room_content):
        template = await create_template(room_content, team_id="team-9")

        assert template.scope == "personal"
        assert template.owner_id == AUTHOR_ID
        assert template.team_id is None
        assert template.org_id == ORG_ID
        assert template.is_published is False
        assert template.is_archived is False

    async def test_team_scope_clears_owner(self, create_template, room_content):
        template = await create_template(room_content, scope="team", team_id="team-1")

        assert template.owner_id is None
        assert template.team_id == "team-1"

    async def test_team_scope_requires_team(self, create_template, room_content):
        with pytest.raises(TemplateValidationError):
            await create_template(room_content, scope="team")

    async def test_org_scope_has_no_owner_or_team(self, create_template, room_content):
        template = await create_template(room_content, scope="org", team_id="team-1")

        assert template.owner_id is None
        assert template.team_id is None

    async def test_content_must_match_type(self, template_service, room_content):
        data = TemplateCreate(type="quote", name="Mismatch", org_id=ORG_ID, content=room_content)

        with pytest.raises(TemplateValidationError):
            await template_service.create(data, AUTHOR_ID)

    async def test_custom_change_summary(self, create_template, template_service, package_content):
        template = await create_template(package_content, change_summary="Imported from catalog")

        version = await template_service.versions.get_current_version(template.id)
        assert version.change_summary == "Imported from catalog"

    async def test_default_scope_logged_as_value(self, create_template, room_content, caplog):
        with caplog.at_level(logging.INFO, logger="avdesign.services.templates"):
            template = await create_template(room_content, name="Defaults")

        assert f"Created personal room template {template.id}" in caplog.text
        assert "TemplateScope" not in caplog.text


class TestUpdate:
    """Tests for metadata updates and flag toggles."""

    async def test_update_metadata_only(self, create_template, template_service, room_content):
        template = await create_template(room_content, name="Huddle Room")

        updated = await template_service.update(
            template.id,
            TemplateUpdate(name="Small Huddle", category_tags=["huddle", "teams"]),
        )

        assert updated.name == "Small Huddle"
        assert updated.category_tags == ["huddle", "teams"]
        assert updated.current_version == 1

    async def test_description_can_be_cleared(self, create_template, template_service, room_content):
        template = await create_template(room_content, description="Old")

        updated = await template_service.update(template.id, TemplateUpdate(description=None))

        assert updated.description is None

    async def test_archive_and_publish_are_independent(self, create_template, template_service, room_content):
        template = await create_template(room_content)

        await template_service.publish(template.id)
        archived = await template_service.archive(template.id)
        assert archived.is_archived is True
        assert archived.is_published is True

        unpublished = await template_service.unpublish(template.id)
        assert unpublished.is_archived is True
        assert unpublished.is_published is False

        restored = await template_service.unarchive(template.id)
        assert restored.is_archived is False

    async def test_update_content_mints_version(self, create_template, template_service, room_content):
        template = await create_template(room_content)

        version = await template_service.update_content(
            template.id,
            parse_content({**room_content, "tier": "premium"}),
            "Upgrade tier",
            "user-2",
        )

        assert version.version == 2
        assert version.content["tier"] == "premium"
        assert template.current_version == 2

    async def test_update_missing_template(self, template_service):
        with pytest.raises(NotFoundError):
            await template_service.update("missing", TemplateUpdate(name="x"))

    async def test_system_templates_are_immutable(self, create_template, template_service, room_content):
        template = await create_template(room_content, scope="system")

        with pytest.raises(ImmutableTemplateError):
            await template_service.update(template.id, TemplateUpdate(name="Changed"))
        with pytest.raises(ImmutableTemplateError):
            await template_service.update_content(
                template.id, parse_content(room_content), "Changed", AUTHOR_ID
            )
        with pytest.raises(ImmutableTemplateError):
            await template_service.delete(template.id)
        with pytest.raises(ImmutableTemplateError):
            await template_service.promote(template.id, TemplatePromote(scope="org"))

    async def test_delete_removes_history(self, create_template, template_service, room_content):
        template = await create_template(room_content)
        template_id = template.id

        await template_service.delete(template_id)

        assert await template_service.get_by_id(template_id) is None
        assert await template_service.versions.get_versions(template_id) == []

    async def test_delete_keeps_forks(self, create_template, template_service, room_content):
        """Forks survive their source and drop the lineage link."""
        source = await create_template(room_content, name="Source")
        fork = await template_service.fork(source.id, TemplateFork(name="Fork"), AUTHOR_ID, ORG_ID)

        await template_service.delete(source.id)

        loaded = await template_service.get_with_version(fork.id)
        assert loaded.template.forked_from_id is None
        assert loaded.content.width == 20


class TestForkAndDuplicate:
    """Tests for forking and duplicating templates."""

    async def test_fork_is_personal_unpublished_copy(self, create_template, template_service, room_content):
        source = await create_template(
            room_content,
            name="Team Boardroom",
            scope="team",
            team_id="team-1",
            category_tags=["boardroom"],
            is_published=True,
        )

        fork = await template_service.fork(source.id, TemplateFork(name="My Boardroom"), "user-2", "org-2")

        assert fork.id != source.id
        assert fork.scope == "personal"
        assert fork.owner_id == "user-2"
        assert fork.team_id is None
        assert fork.org_id == "org-2"
        assert fork.is_published is False
        assert fork.forked_from_id == source.id
        assert fork.category_tags == ["boardroom"]
        assert fork.current_version == 1

        fork_version = await template_service.versions.get_current_version(fork.id)
        source_version = await template_service.versions.get_current_version(source.id)
        assert fork_version.content == source_version.content
        assert fork_version.change_summary == 'Forked from "Team Boardroom"'

    async def test_fork_uses_current_content(self, create_template, template_service, room_content):
        source = await create_template(room_content)
        await template_service.update_content(
            source.id, parse_content({**room_content, "width": 35}), "Wider", AUTHOR_ID
        )

        fork = await template_service.fork(source.id, TemplateFork(name="Fork"), AUTHOR_ID, ORG_ID)

        loaded = await template_service.get_with_version(fork.id)
        assert loaded.content.width == 35

    async def test_fork_lineage_is_independent(self, create_template, template_service, room_content):
        source = await create_template(room_content)
        fork = await template_service.fork(source.id, TemplateFork(name="Fork"), AUTHOR_ID, ORG_ID)

        await template_service.update_content(
            source.id, parse_content({**room_content, "width": 50}), "Wider", AUTHOR_ID
        )

        loaded = await template_service.get_with_version(fork.id)
        assert loaded.content.width == 20
        assert loaded.template.current_version == 1

    async def test_fork_into_requested_scope(self, create_template, template_service, room_content):
        source = await create_template(room_content)

        fork = await template_service.fork(
            source.id,
            TemplateFork(name="Team fork", scope="team", team_id="team-3"),
            AUTHOR_ID,
            ORG_ID,
        )

        assert fork.scope == "team"
        assert fork.team_id == "team-3"

    def test_fork_into_system_scope_rejected(self):
        with pytest.raises(ValidationError):
            TemplateFork(name="Shipped", scope="system")

    async def test_fork_of_system_template_is_personal(self, create_template, template_service, room_content):
        source = await create_template(room_content, scope="system")

        fork = await template_service.fork(source.id, TemplateFork(name="Mine"), "user-2", ORG_ID)

        assert fork.scope == "personal"
        assert fork.owner_id == "user-2"
        assert fork.forked_from_id == source.id

    async def test_fork_missing_source(self, template_service):
        with pytest.raises(NotFoundError):
            await template_service.fork("missing", TemplateFork(name="x"), AUTHOR_ID, ORG_ID)

    async def test_duplicate_keeps_team_scope(self, create_template, template_service, room_content):
        source = await create_template(
            room_content, name="T", scope="team", team_id="team-1", is_published=True
        )

        copy = await template_service.duplicate(source.id, "Copy of T", "user-2")

        assert copy.name == "Copy of T"
        assert copy.scope == "team"
        assert copy.team_id == "team-1"
        assert copy.owner_id is None
        assert copy.org_id == source.org_id
        assert copy.forked_from_id is None
        assert copy.is_published is False

        version = await template_service.versions.get_current_version(copy.id)
        assert version.change_summary == 'Duplicated from "T"'

    async def test_duplicate_system_template_becomes_personal(self, create_template, template_service, room_content):
        source = await create_template(room_content, scope="system")

        copy = await template_service.duplicate(source.id, "Mine", "user-2")

        assert copy.scope == "personal"
        assert copy.owner_id == "user-2"


class TestPromote:
    """Tests for moving templates to broader scopes."""

    async def test_personal_to_team(self, create_template, template_service, room_content):
        template = await create_template(room_content)

        promoted = await template_service.promote(
            template.id, TemplatePromote(scope="team", team_id="team-1")
        )

        assert promoted.scope == "team"
        assert promoted.owner_id is None
        assert promoted.team_id == "team-1"

    async def test_team_to_org_clears_team(self, create_template, template_service, room_content):
        template = await create_template(room_content, scope="team", team_id="team-1")

        promoted = await template_service.promote(template.id, TemplatePromote(scope="org"))

        assert promoted.scope == "org"
        assert promoted.owner_id is None
        assert promoted.team_id is None

    async def test_personal_to_org(self, create_template, template_service, room_content):
        template = await create_template(room_content)

        promoted = await template_service.promote(template.id, TemplatePromote(scope="org"))

        assert promoted.owner_id is None
        assert promoted.team_id is None

    async def test_team_requires_team_id(self, create_template, template_service, room_content):
        template = await create_template(room_content)

        with pytest.raises(TemplateValidationError):
            await template_service.promote(template.id, TemplatePromote(scope="team"))

    @pytest.mark.parametrize("start,target", [
        ("org", "team"),
        ("org", "org"),
        ("team", "team"),
    ])
    async def test_never_downward_or_sideways(self, create_template, template_service, room_content, start, target):
        template = await create_template(room_content, scope=start, team_id="team-1")

        with pytest.raises(TemplateValidationError):
            await template_service.promote(
                template.id, TemplatePromote(scope=target, team_id="team-2")
            )

        assert (await template_service.get_by_id(template.id)).scope == start


class TestFilters:
    """Tests for listing templates."""

    async def _seed(self, create_template, room_content, package_content, quote_content):
        await create_template(room_content, name="Zoom Huddle", description="small")
        await create_template(
            {**room_content, "platform": "zoom", "tier": "premium"},
            name="Boardroom",
            description="Executive meeting space",
            scope="org",
            is_published=True,
        )
        await create_template(package_content, name="Audio Kit", is_published=True)
        await create_template(quote_content, name="Standard Quote", scope="team", team_id="team-1")
        archived = await create_template(room_content, name="Old Room")
        return archived

    async def test_default_excludes_archived(self, create_template, template_service, room_content, package_content, quote_content):
        archived = await self._seed(create_template, room_content, package_content, quote_content)
        await template_service.archive(archived.id)

        names = [t.name for t in await template_service.get_all()]
        assert names == ["Audio Kit", "Boardroom", "Standard Quote", "Zoom Huddle"]

        archived_names = [t.name for t in await template_service.get_all(TemplateFilters(is_archived=True))]
        assert archived_names == ["Old Room"]

    async def test_filter_by_type_scope_and_published(self, create_template, template_service, room_content, package_content, quote_content):
        await self._seed(create_template, room_content, package_content, quote_content)

        rooms = await template_service.get_all(TemplateFilters(type="room"))
        assert {t.name for t in rooms} == {"Zoom Huddle", "Boardroom", "Old Room"}

        team = await template_service.get_all(TemplateFilters(scope="team"))
        assert [t.name for t in team] == ["Standard Quote"]

        everything = await template_service.get_all(TemplateFilters(scope="all"))
        assert len(everything) == 5

        published = await template_service.get_all(TemplateFilters(is_published=True))
        assert [t.name for t in published] == ["Audio Kit", "Boardroom"]

    async def test_search_name_and_description(self, create_template, template_service, room_content, package_content, quote_content):
        await self._seed(create_template, room_content, package_content, quote_content)

        by_name = await template_service.get_all(TemplateFilters(search="huddle"))
        assert [t.name for t in by_name] == ["Zoom Huddle"]

        by_description = await template_service.get_all(TemplateFilters(search="EXECUTIVE"))
        assert [t.name for t in by_description] == ["Boardroom"]

    async def test_platform_filter_only_narrows_rooms(self, create_template, template_service, room_content, package_content, quote_content):
        await self._seed(create_template, room_content, package_content, quote_content)

        results = await template_service.get_all(TemplateFilters(platform="zoom"))

        assert [t.name for t in results] == ["Audio Kit", "Boardroom", "Standard Quote"]

    async def test_tier_filter_uses_current_version(self, create_template, template_service, room_content):
        template = await create_template(room_content, name="Upgradable")
        assert await template_service.get_all(TemplateFilters(type="room", tier="premium")) == []

        await template_service.update_content(
            template.id, parse_content({**room_content, "tier": "premium"}), "Upgrade", AUTHOR_ID
        )

        results = await template_service.get_all(TemplateFilters(type="room", tier="premium"))
        assert [t.name for t in results] == ["Upgradable"]

    async def test_platform_filter_ignored_for_other_types(self, create_template, template_service, room_content, package_content, quote_content):
        await self._seed(create_template, room_content, package_content, quote_content)

        results = await template_service.get_all(
            TemplateFilters(type="equipment_package", platform="webex", tier="all")
        )

        assert [t.name for t in results] == ["Audio Kit"]

    async def test_by_type_and_scope(self, create_template, template_service, room_content, package_content, quote_content):
        await self._seed(create_template, room_content, package_content, quote_content)

        assert [t.name for t in await template_service.get_by_type("room")] == ["Boardroom"]
        assert [t.name for t in await template_service.get_by_scope("personal")] == [
            "Audio Kit", "Old Room", "Zoom Huddle",
        ]

"""
Tests for equipment grid layout and id generation
"""

import uuid

import pytest

from avdesign.services.apply import build_grid_positions, generate_id


class TestGridLayout:
    """Tests for auto-placement of equipment package items."""

    def test_fills_rows_left_to_right(self):
        positions = build_grid_positions(7, width=10, length=8)

        assert positions == [
            (1, 1), (3, 1), (5, 1), (7, 1), (9, 1),
            (1, 3), (3, 3),
        ]

    def test_no_items(self):
        assert build_grid_positions(0, width=10, length=10) == []

    def test_custom_spacing(self):
        positions = build_grid_positions(3, width=12, length=12, spacing=4)

        assert positions == [(1, 1), (5, 1), (9, 1)]

    def test_narrow_room_uses_single_column(self):
        positions = build_grid_positions(3, width=1.5, length=20)

        assert [x for x, _ in positions] == [0.5, 0.5, 0.5]
        assert [y for _, y in positions] == [1, 3, 5]

    @pytest.mark.parametrize("width,length,count", [
        (2, 2, 5),
        (3, 3, 10),
        (20, 15, 200),
        (7.5, 4, 40),
    ])
    def test_positions_clamped_inside_room(self, width, length, count):
        """Overflowing grids never leave the room."""
        for x, y in build_grid_positions(count, width, length):
            assert 1 <= x <= width - 1
            assert 1 <= y <= length - 1

    def test_positions_unique_within_capacity(self):
        """Items fit on distinct points while the grid has room for them."""
        positions = build_grid_positions(20, width=20, length=15)

        assert len(set(positions)) == 20


class TestGenerateId:
    """Tests for placement and section id generation."""

    def test_prefix_and_uuid(self):
        value = generate_id("pe")

        assert value.startswith("pe-")
        uuid.UUID(value[len("pe-"):])

    def test_ids_differ(self):
        assert generate_id("section") != generate_id("section")

    def test_fallback_without_uuid_source(self, monkeypatch):
        def no_randomness():
            raise NotImplementedError

        monkeypatch.setattr(uuid, "uuid4", no_randomness)

        value = generate_id("section")

        prefix, millis, suffix = value.split("-")
        assert prefix == "section"
        assert millis.isdigit()
        assert 0 <= int(suffix) <= 9999

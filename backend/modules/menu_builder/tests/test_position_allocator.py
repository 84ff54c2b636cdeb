# backend/modules/menu_builder/tests/test_position_allocator.py

"""
Tests for dense position ranks within categories.
"""

import random

import pytest

from modules.menu_builder.schemas import MenuItem
from modules.menu_builder.services import position_allocator


def make_items(category, count, start_id=1):
    return [
        MenuItem(id=str(start_id + i), menu_id="m", dish_id=f"d{i}", category=category, position=i)
        for i in range(count)
    ]


def ids(items):
    return [item.id.value for item in items]


class TestPositionAllocator:
    """Test rank allocation helpers"""

    def test_next_position_empty_category(self):
        assert position_allocator.next_position([]) == 0

    def test_next_position_uses_max_plus_one(self):
        items = make_items("Mains", 3)
        items[1].position = 7

        assert position_allocator.next_position(items) == 8

    def test_renumber_closes_gaps(self):
        items = make_items("Mains", 3)
        items[0].position, items[1].position, items[2].position = 0, 4, 9

        position_allocator.renumber(position_allocator.sort_by_position(items))

        assert [i.position for i in items] == [0, 1, 2]

    def test_reorder_moves_down(self):
        """Array-move: item 1 dropped on item 3 lands in 3's slot"""
        items = make_items("Mains", 4)

        ordered = position_allocator.reorder_within(items, items[0], items[2])

        assert ids(ordered) == ["2", "3", "1", "4"]
        assert [i.position for i in ordered] == [0, 1, 2, 3]

    def test_reorder_moves_up(self):
        items = make_items("Mains", 4)

        ordered = position_allocator.reorder_within(items, items[3], items[1])

        assert ids(ordered) == ["1", "4", "2", "3"]
        assert position_allocator.positions_are_dense(ordered)

    def test_reorder_onto_itself_is_noop(self):
        items = make_items("Mains", 3)

        ordered = position_allocator.reorder_within(items, items[1], items[1])

        assert ids(ordered) == ["1", "2", "3"]
        assert [i.position for i in items] == [0, 1, 2]

    def test_reorder_rejects_foreign_item(self):
        items = make_items("Mains", 2)
        stranger = make_items("Desserts", 1, start_id=9)[0]

        with pytest.raises(ValueError):
            position_allocator.reorder_within(items, stranger, items[0])

    def test_move_across_appends_by_default(self):
        mains = make_items("Mains", 3)
        desserts = make_items("Desserts", 2, start_id=10)

        source, destination = position_allocator.move_across(mains, desserts, mains[1], "Desserts")

        assert ids(source) == ["1", "3"]
        assert [i.position for i in source] == [0, 1]
        assert ids(destination) == ["10", "11", "2"]
        assert mains[1].category == "Desserts"
        assert mains[1].position == 2

    def test_move_across_at_rank(self):
        mains = make_items("Mains", 2)
        desserts = make_items("Desserts", 3, start_id=10)

        _, destination = position_allocator.move_across(
            mains, desserts, mains[0], "Desserts", rank=1
        )

        assert ids(destination) == ["10", "1", "11", "12"]
        assert position_allocator.positions_are_dense(destination)

    def test_move_across_rank_clamped(self):
        mains = make_items("Mains", 1)

        _, destination = position_allocator.move_across(mains, [], mains[0], "Specials", rank=42)

        assert mains[0].position == 0
        assert destination == [mains[0]]

    def test_move_across_conserves_items(self):
        """Source loses exactly one, destination gains exactly one"""
        mains = make_items("Mains", 4)
        desserts = make_items("Desserts", 2, start_id=10)

        source, destination = position_allocator.move_across(mains, desserts, mains[2], "Desserts")

        assert len(source) == 3
        assert len(destination) == 3
        assert mains[2] not in source

    def test_random_sequences_stay_dense(self):
        rng = random.Random(7)
        categories = {
            "Mains": make_items("Mains", 5),
            "Desserts": make_items("Desserts", 4, start_id=20),
            "Drinks": make_items("Drinks", 3, start_id=40),
        }

        for _ in range(200):
            name = rng.choice([c for c, members in categories.items() if members])
            members = position_allocator.sort_by_position(categories[name])
            item = rng.choice(members)

            if rng.random() < 0.5:
                target = rng.choice(members)
                categories[name] = position_allocator.reorder_within(members, item, target)
            else:
                other = rng.choice([c for c in categories if c != name])
                rank = rng.randint(0, len(categories[other]) + 1)
                categories[name], categories[other] = position_allocator.move_across(
                    members, categories[other], item, other, rank=rank
                )

            for members in categories.values():
                assert position_allocator.positions_are_dense(members)

        assert sum(len(m) for m in categories.values()) == 12

"""Repartition Planner tests."""

import math

from slotting.config import SlottingSettings
from slotting.models.slotting import (
    InventoryRecord,
    LevelConfig,
    Location,
    Move,
    OverThreshold,
    PolicyViolation,
    Product,
    StoragePolicy,
)
from slotting.services.occupancy_analyzer import OccupancyAnalyzer
from slotting.services.repartition_planner import (
    REASON_OVER_THRESHOLD,
    REASON_SINGLE_PRODUCT_POLICY,
    RepartitionPlanner,
)
from slotting.store.memory import InMemoryStore


def _create_store(level_fields=None, levels: int = 3, capacity: int = 30) -> InMemoryStore:
    level_fields = level_fields or {}
    store = InMemoryStore()
    store.put_location(Location("LOC1", "A-01", capacity=capacity, levels=levels, zone="A"))
    store.put_product(Product("A", "Hammer", "tools", volume_per_unit=2.0, weight_per_unit=1.0))
    store.put_product(Product("B", "Wrench", "tools", volume_per_unit=1.0, weight_per_unit=0.5))
    store.put_product(Product("C", "Paint", "paint", volume_per_unit=5.0, weight_per_unit=6.0))
    for level in range(1, levels + 1):
        fields = {"enable_auto_repartition": True}
        fields.update(level_fields.get(level, {}))
        store.put_level_config(LevelConfig("LOC1", level, **fields))
    return store


def _plan(store: InMemoryStore, settings=None) -> list[Move]:
    settings = settings or SlottingSettings()
    analysis = OccupancyAnalyzer(store, settings=settings).analyze("LOC1")
    return RepartitionPlanner(store, settings=settings).plan("LOC1", analysis.issues, analysis.levels)


class TestOverThreshold:
    """Half of each product, bounded by destination space."""

    def test_scenario_moves_five_to_level_two(self):
        store = _create_store()
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 9))

        moves = _plan(store)

        assert moves == [
            Move("LOC1", "A", from_level=1, to_level=2, quantity=5, reason=REASON_OVER_THRESHOLD, product_name="Hammer")
        ]

    def test_half_move_bound(self):
        store = _create_store({1: {"items_capacity": 40}, 2: {"items_capacity": 100}})
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 21))
        store.add_inventory(InventoryRecord("B", "LOC1", "bottom", 15))

        moves = _plan(store)

        quantities = {m.product_id: m.quantity for m in moves}
        assert quantities == {"A": 11, "B": 8}
        for move in moves:
            assert move.quantity <= math.ceil(0.5 * {"A": 21, "B": 15}[move.product_id])

    def test_bounded_by_destination_space(self):
        store = _create_store({2: {"items_capacity": 3}, 3: {"items_capacity": 2}})
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 10))

        moves = _plan(store)

        assert len(moves) == 1
        assert moves[0].to_level == 2
        assert moves[0].quantity == 3

    def test_move_ratio_setting(self):
        store = _create_store()
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 9))
        moves = _plan(store, SlottingSettings(move_ratio=0.25))
        assert moves[0].quantity == 3

    def test_no_destination_is_skipped(self):
        store = _create_store({
            2: {"storage_policy": StoragePolicy.CATEGORY_RESTRICTED, "allowed_categories": ["food"]},
            3: {"storage_policy": StoragePolicy.CATEGORY_RESTRICTED, "allowed_categories": ["food"]},
        })
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 9))
        assert _plan(store) == []

    def test_full_destinations_are_skipped(self):
        store = _create_store()
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 9))
        store.add_inventory(InventoryRecord("B", "LOC1", "middle", 10))
        store.add_inventory(InventoryRecord("B", "LOC1", "top", 10))
        moves = _plan(store)
        assert all(m.from_level != 1 for m in moves)


class TestPolicyViolation:
    """Single product type: keep the largest occupant."""

    def test_scenario_moves_b_only(self):
        store = _create_store({1: {"storage_policy": StoragePolicy.SINGLE_PRODUCT_TYPE}})
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 5))
        store.add_inventory(InventoryRecord("B", "LOC1", "bottom", 3))

        moves = _plan(store)

        assert moves == [
            Move("LOC1", "B", from_level=1, to_level=2, quantity=3, reason=REASON_SINGLE_PRODUCT_POLICY, product_name="Wrench")
        ]

    def test_other_policies_not_planned_here(self):
        planner = RepartitionPlanner(_create_store())
        issue = PolicyViolation(level=1, policy=StoragePolicy.CATEGORY_RESTRICTED, product_count=2)
        assert planner.plan("LOC1", [issue], {}) == []


class TestPlacementViolation:
    """Full quantity to the best valid level."""

    def test_category_violation(self):
        store = _create_store({
            1: {"storage_policy": StoragePolicy.CATEGORY_RESTRICTED, "allowed_categories": ["tools"]},
            2: {"volume_max_liters": 3.0},
        })
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 2))
        store.add_inventory(InventoryRecord("C", "LOC1", "bottom", 4))

        moves = _plan(store)

        assert len(moves) == 1
        move = moves[0]
        assert (move.product_id, move.from_level, move.to_level, move.quantity) == ("C", 1, 3, 4)
        assert move.reason == "Product category not allowed on this level"

    def test_over_threshold_then_placement_does_not_double_move(self):
        store = _create_store({1: {"volume_max_liters": 3.0}})
        store.add_inventory(InventoryRecord("C", "LOC1", "bottom", 9))

        moves = _plan(store)

        assert [m.reason for m in moves] == [REASON_OVER_THRESHOLD, "Product volume too large for this level"]
        assert sum(m.quantity for m in moves) == 9
        assert [m.quantity for m in moves] == [5, 4]


class TestScoring:
    """Destination choice."""

    def test_prefers_larger_free_space(self):
        store = _create_store()
        store.add_inventory(InventoryRecord("B", "LOC1", "middle", 6))
        planner = RepartitionPlanner(store)
        analysis = OccupancyAnalyzer(store).analyze("LOC1")
        assert planner.find_best_target_level("LOC1", "A", 1, analysis.levels) == 3

    def test_tie_goes_to_first_level(self):
        store = _create_store()
        planner = RepartitionPlanner(store)
        analysis = OccupancyAnalyzer(store).analyze("LOC1")
        assert planner.find_best_target_level("LOC1", "A", 1, analysis.levels) == 2

    def test_aliased_level_is_not_a_destination(self):
        store = _create_store(levels=4, capacity=40)
        store.add_inventory(InventoryRecord("A", "LOC1", "middle", 9))
        planner = RepartitionPlanner(store)
        analysis = OccupancyAnalyzer(store).analyze("LOC1")
        assert planner.find_best_target_level("LOC1", "A", 2, analysis.levels) == 1

    def test_order_follows_issues(self):
        store = _create_store({3: {"storage_policy": StoragePolicy.SINGLE_PRODUCT_TYPE, "items_capacity": 20}})
        store.add_inventory(InventoryRecord("A", "LOC1", "top", 5))
        store.add_inventory(InventoryRecord("B", "LOC1", "top", 2))
        store.add_inventory(InventoryRecord("A", "LOC1", "bottom", 9))

        moves = _plan(store)

        assert [m.reason for m in moves] == [REASON_OVER_THRESHOLD, REASON_SINGLE_PRODUCT_POLICY]

    def test_unknown_issue_level(self):
        planner = RepartitionPlanner(_create_store())
        assert planner.plan("LOC1", [OverThreshold(level=7, occupancy=99.0, threshold=80.0)], {}) == []

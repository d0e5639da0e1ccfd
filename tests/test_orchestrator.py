"""Repartition Orchestrator tests."""

import copy
from unittest.mock import MagicMock

from botocore.exceptions import EndpointConnectionError

from slotting.errors import ListingError, StoreError
from slotting.models.slotting import InventoryRecord, LevelConfig, Location, Move, Product, StoragePolicy
from slotting.services.orchestrator import OrchestratorState, RepartitionOrchestrator
from slotting.services.occupancy_analyzer import OccupancyAnalyzer
from slotting.store.dynamodb import DynamoDBStore
from slotting.store.memory import InMemoryStore


def _create_store(level_fields=None, location_id: str = "LOC1", code: str = "A-01", store=None) -> InMemoryStore:
    level_fields = level_fields or {}
    store = store or InMemoryStore()
    store.put_location(Location(location_id, code, capacity=30, levels=3, zone="A"))
    store.put_product(Product("A", "Hammer", "tools"))
    store.put_product(Product("B", "Wrench", "tools"))
    store.put_product(Product("C", "Drill", "tools"))
    for level in (1, 2, 3):
        fields = {"enable_auto_repartition": True}
        fields.update(level_fields.get(level, {}))
        store.put_level_config(LevelConfig(location_id, level, **fields))
    return store


def _add(store: InMemoryStore, product_id: str, shelf_level: str, quantity: int, location_id: str = "LOC1"):
    store.add_inventory(InventoryRecord(product_id, location_id, shelf_level, quantity))


class TestProcessLocation:
    """Analyze -> plan -> execute for one location."""

    def test_over_threshold_scenario(self):
        store = _create_store()
        _add(store, "A", "bottom", 9)
        orchestrator = RepartitionOrchestrator(store)

        result = orchestrator.process_location("LOC1")

        assert result.errors == []
        assert result.moves_count == 1
        assert (result.moves[0].to_level, result.moves[0].quantity) == (2, 5)
        levels = OccupancyAnalyzer(store).analyze("LOC1").levels
        assert levels[1].total_items == 4
        assert levels[1].occupancy_percentage == 40.0
        assert levels[2].total_items == 5
        assert levels[2].occupancy_percentage == 50.0

    def test_single_product_convergence(self):
        store = _create_store({1: {"storage_policy": StoragePolicy.SINGLE_PRODUCT_TYPE}})
        _add(store, "A", "bottom", 5)
        _add(store, "B", "bottom", 3)

        result = RepartitionOrchestrator(store).process_location("LOC1")

        assert [(m.product_id, m.quantity) for m in result.moves] == [("B", 3)]
        bottom = {r.product_id for r in store.list_inventory("LOC1", "bottom") if r.quantity > 0}
        assert bottom == {"A"}
        assert store.sum_quantity("LOC1", "bottom", "A") == 5

    def test_no_issues(self):
        store = _create_store()
        _add(store, "A", "bottom", 2)
        orchestrator = RepartitionOrchestrator(store)
        result = orchestrator.process_location("LOC1")
        assert result.moves_count == 0
        assert result.moves == []
        assert orchestrator.state == OrchestratorState.IDLE

    def test_failed_move_does_not_stop_the_rest(self):
        store = _create_store()
        _add(store, "A", "bottom", 6)
        _add(store, "B", "bottom", 3)
        orchestrator = RepartitionOrchestrator(store)
        orchestrator.executor = MagicMock()
        orchestrator.executor.execute.side_effect = [False, True]

        result = orchestrator.process_location("LOC1")

        assert result.moves_count == 1
        assert result.errors == ["Failed to move product A from level 1 to level 2"]
        assert orchestrator.executor.execute.call_count == 2

    def test_store_error_recorded(self):
        store = _create_store()
        orchestrator = RepartitionOrchestrator(store)
        orchestrator.analyzer = MagicMock()
        orchestrator.analyzer.analyze.side_effect = StoreError("timeout")

        result = orchestrator.process_location("LOC1")

        assert result.errors == ["Error processing location LOC1: timeout"]

    def test_state_transitions(self):
        store = _create_store()
        _add(store, "A", "bottom", 9)
        orchestrator = RepartitionOrchestrator(store)
        orchestrator.process_location("LOC1")
        assert orchestrator.state_history == [
            OrchestratorState.ANALYZING,
            OrchestratorState.PLANNING,
            OrchestratorState.EXECUTING,
            OrchestratorState.DONE,
            OrchestratorState.IDLE,
        ]


class TestDryRun:
    """Plan only, identical proposals."""

    def test_dry_run_does_not_write(self):
        store = _create_store()
        _add(store, "A", "bottom", 9)
        orchestrator = RepartitionOrchestrator(store, dry_run=True)

        result = orchestrator.process_location("LOC1")

        assert result.dry_run is True
        assert result.moves_count == 1
        assert store.commit_count == 0
        assert store.sum_quantity("LOC1", "bottom") == 9
        assert OrchestratorState.DRY_RUN_DONE in orchestrator.state_history

    def test_dry_run_equivalence(self):
        store = _create_store({3: {"storage_policy": StoragePolicy.SINGLE_PRODUCT_TYPE}})
        _add(store, "A", "bottom", 9)
        _add(store, "B", "top", 4)
        _add(store, "C", "top", 1)
        twin = copy.deepcopy(store)

        planned = RepartitionOrchestrator(store).process_location("LOC1", dry_run=True).moves
        executed = RepartitionOrchestrator(twin).process_location("LOC1", dry_run=False).moves

        assert planned == executed
        assert len(planned) == 2

    def test_dry_run_override_is_per_call(self):
        store = _create_store()
        _add(store, "A", "bottom", 9)
        orchestrator = RepartitionOrchestrator(store)
        orchestrator.process_location("LOC1", dry_run=True)
        assert orchestrator.dry_run is False
        assert store.commit_count == 0

    def test_set_dry_run(self):
        orchestrator = RepartitionOrchestrator(_create_store())
        orchestrator.set_dry_run(True)
        assert orchestrator.process_all_locations().dry_run is True


class TestProcessAllLocations:
    """Summary over every eligible location."""

    def test_summary(self):
        store = _create_store()
        _create_store(location_id="LOC2", code="A-02", store=store)
        _add(store, "A", "bottom", 9)
        _add(store, "A", "top", 2, location_id="LOC2")

        summary = RepartitionOrchestrator(store).process_all_locations()

        assert summary.processed_locations == 2
        assert summary.total_moves == 1
        assert summary.errors == []
        assert list(summary.moves_details) == ["A-01"]
        assert summary.moves_details["A-01"][0] == Move(
            "LOC1", "A", 1, 2, 5, "Over threshold - redistributing load", product_name="Hammer"
        )

    def test_listing_failure_is_fatal(self):
        store = MagicMock()
        store.list_repartition_locations.side_effect = ListingError("table missing")
        orchestrator = RepartitionOrchestrator(store)

        summary = orchestrator.process_all_locations()

        assert summary.processed_locations == 0
        assert summary.errors == ["Database error: table missing"]
        assert orchestrator.state == OrchestratorState.IDLE

    def test_unreachable_database_is_reported(self):
        resource = MagicMock()
        locations = MagicMock()
        locations.scan.side_effect = EndpointConnectionError(endpoint_url="https://dynamodb.local")
        resource.Table.side_effect = lambda name: locations if name == "Locations" else MagicMock()
        store = DynamoDBStore(dynamodb_resource=resource, dynamodb_client=MagicMock())

        summary = RepartitionOrchestrator(store).process_all_locations()

        assert summary.processed_locations == 0
        assert len(summary.errors) == 1
        assert summary.errors[0].startswith("Database error: ")

    def test_second_pass_is_quiet(self):
        store = _create_store()
        _add(store, "A", "bottom", 9)
        orchestrator = RepartitionOrchestrator(store)
        orchestrator.process_all_locations()
        assert orchestrator.process_all_locations().total_moves == 0

    def test_process_single_location_summary(self):
        store = _create_store()
        _add(store, "A", "bottom", 9)
        summary = RepartitionOrchestrator(store).process("LOC1")
        assert summary.processed_locations == 1
        assert list(summary.moves_details) == ["A-01"]

"""Repartition Orchestrator - runs analyze -> plan -> execute per location.

States: IDLE -> LISTING -> per location (ANALYZING -> PLANNING ->
DRY_RUN_DONE | EXECUTING -> DONE) -> IDLE.

Locations are processed one after another, moves within a location in plan
order. Per-move and per-location failures are collected in the summary; only
a failed location listing ends the run early. The orchestrator is not
re-entrant: callers must not run two passes over the same location at once.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from slotting.config import SlottingSettings
from slotting.errors import StoreError
from slotting.models.levels import LevelNaming
from slotting.models.slotting import LocationResult, RepartitionSummary
from slotting.services.audit import RepartitionAuditLog
from slotting.services.base import BaseService
from slotting.services.move_executor import MoveExecutor
from slotting.services.occupancy_analyzer import OccupancyAnalyzer
from slotting.services.placement_validator import PlacementValidator
from slotting.services.repartition_planner import RepartitionPlanner
from slotting.store.base import SlottingStore

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    LISTING = "listing"
    ANALYZING = "analyzing"
    PLANNING = "planning"
    EXECUTING = "executing"
    DRY_RUN_DONE = "dry_run_done"
    DONE = "done"


class RepartitionOrchestrator(BaseService):
    """Entry point for a repartition pass over one or all eligible locations."""

    def __init__(
        self,
        store: SlottingStore,
        analyzer: Optional[OccupancyAnalyzer] = None,
        planner: Optional[RepartitionPlanner] = None,
        executor: Optional[MoveExecutor] = None,
        audit_log: Optional[RepartitionAuditLog] = None,
        settings: Optional[SlottingSettings] = None,
        naming: Optional[LevelNaming] = None,
        dry_run: bool = False,
    ):
        super().__init__("RepartitionOrchestrator", store, settings, naming)

        # One validator shared by every stage
        validator = PlacementValidator(store, self.settings, self.naming)
        self.analyzer = analyzer or OccupancyAnalyzer(store, validator, self.settings, self.naming)
        self.planner = planner or RepartitionPlanner(store, validator, self.settings, self.naming)
        self.executor = executor or MoveExecutor(
            store, validator, audit_log=audit_log, settings=self.settings, naming=self.naming
        )

        self.dry_run = dry_run
        self.state = OrchestratorState.IDLE
        self.state_history: list[OrchestratorState] = []

    def set_dry_run(self, dry_run: bool) -> None:
        """Dry run: analyze and plan only, report the plan as the moves."""
        self.dry_run = dry_run

    def _transition(self, state: OrchestratorState) -> None:
        logger.debug("%s: %s -> %s", self.service_name, self.state.value, state.value)
        self.state = state
        self.state_history.append(state)

    def process_all_locations(self) -> RepartitionSummary:
        summary = RepartitionSummary(dry_run=self.dry_run)

        self._transition(OrchestratorState.LISTING)
        try:
            locations = self.store.list_repartition_locations()
        except StoreError as e:
            logger.error("Listing repartition locations failed: %s", e)
            summary.errors.append(f"Database error: {e}")
            self._transition(OrchestratorState.IDLE)
            return summary

        logger.info("Repartition pass over %d location(s) (dry_run=%s)", len(locations), self.dry_run)
        for location in locations:
            result = self._process_location(location.location_id)
            summary.processed_locations += 1
            summary.total_moves += result.moves_count
            summary.errors.extend(result.errors)
            if result.moves:
                summary.moves_details[location.location_code] = result.moves

        self._transition(OrchestratorState.IDLE)
        logger.info(
            "Repartition pass finished: %d location(s), %d move(s), %d error(s)",
            summary.processed_locations,
            summary.total_moves,
            len(summary.errors),
        )
        return summary

    def process_location(self, location_id: str, dry_run: Optional[bool] = None) -> LocationResult:
        """One location; `dry_run` overrides the orchestrator's mode for this call."""
        previous = self.dry_run
        if dry_run is not None:
            self.dry_run = dry_run
        try:
            return self._process_location(location_id)
        finally:
            self.dry_run = previous
            self._transition(OrchestratorState.IDLE)

    def _process_location(self, location_id: str) -> LocationResult:
        result = LocationResult(location_id=location_id, dry_run=self.dry_run)
        try:
            self._transition(OrchestratorState.ANALYZING)
            analysis = self.analyzer.analyze(location_id)
            if not analysis.issues:
                self._transition(OrchestratorState.DONE)
                return result

            self._transition(OrchestratorState.PLANNING)
            plan = self.planner.plan(location_id, analysis.issues, analysis.levels)
            if not plan:
                self._transition(OrchestratorState.DONE)
                return result

            if self.dry_run:
                result.moves = list(plan)
                result.moves_count = len(plan)
                self._transition(OrchestratorState.DRY_RUN_DONE)
                return result

            self._transition(OrchestratorState.EXECUTING)
            for move in plan:
                if self.executor.execute(move):
                    result.moves.append(move)
                    result.moves_count += 1
                else:
                    result.errors.append(
                        f"Failed to move product {move.product_id} from level {move.from_level} "
                        f"to level {move.to_level}"
                    )
            self._transition(OrchestratorState.DONE)

        except Exception as e:
            logger.exception("Error processing location %s", location_id)
            result.errors.append(f"Error processing location {location_id}: {e}")

        return result

    def process(self, location_id: Optional[str] = None) -> RepartitionSummary:
        """Runs every eligible location, or a single one when an id is given."""
        if location_id is None:
            return self.process_all_locations()

        result = self.process_location(location_id)
        location = self.store.get_location(location_id)
        code = location.location_code if location else location_id
        summary = RepartitionSummary(
            processed_locations=1,
            total_moves=result.moves_count,
            errors=list(result.errors),
            dry_run=result.dry_run,
        )
        if result.moves:
            summary.moves_details[code] = result.moves
        return summary

"""Repartition Planner - turns violations into an ordered list of moves.

- Over threshold: move up to half of each product (never more than the destination's free space)
- Single product type: keep the largest occupant, move the others in full
- Placement violation: move the product's full quantity
- Destination = valid level with the highest capacity * free ratio

Scores come from the analysis snapshot and are not refreshed while planning;
MoveExecutor re-checks capacity when each move is applied.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from slotting.config import SlottingSettings
from slotting.models.levels import LevelNaming
from slotting.models.slotting import (
    LevelOccupant,
    Move,
    OccupancySnapshot,
    OverThreshold,
    PlacementViolation,
    PolicyViolation,
    StoragePolicy,
    Violation,
)
from slotting.services.base import BaseService
from slotting.services.placement_validator import PlacementValidator
from slotting.store.base import SlottingStore

logger = logging.getLogger(__name__)

REASON_OVER_THRESHOLD = "Over threshold - redistributing load"
REASON_SINGLE_PRODUCT_POLICY = "Single product type policy violation"


class RepartitionPlanner(BaseService):
    """Greedy planner over one analysis snapshot."""

    def __init__(
        self,
        store: SlottingStore,
        validator: Optional[PlacementValidator] = None,
        settings: Optional[SlottingSettings] = None,
        naming: Optional[LevelNaming] = None,
    ):
        super().__init__("RepartitionPlanner", store, settings, naming)
        self.validator = validator or PlacementValidator(store, self.settings, self.naming)

    def plan(
        self,
        location_id: str,
        issues: list[Violation],
        levels: dict[int, OccupancySnapshot],
    ) -> list[Move]:
        """Moves in issue order, which is also the order they must be executed in."""
        # Stock still unplanned per (level, product); a later issue never re-plans moved units.
        remaining: dict[tuple[int, str], int] = {}
        for level_number, snapshot in levels.items():
            for occupant in snapshot.products:
                remaining[(level_number, occupant.product_id)] = occupant.quantity

        moves: list[Move] = []
        for issue in issues:
            if isinstance(issue, OverThreshold):
                moves.extend(self._plan_over_threshold(location_id, issue, levels, remaining))
            elif isinstance(issue, PolicyViolation):
                moves.extend(self._plan_policy_violation(location_id, issue, levels, remaining))
            elif isinstance(issue, PlacementViolation):
                moves.extend(self._plan_placement_violation(location_id, issue, levels, remaining))

        logger.info("Location %s: %d move(s) planned for %d issue(s)", location_id, len(moves), len(issues))
        return moves

    def _plan_over_threshold(
        self,
        location_id: str,
        issue: OverThreshold,
        levels: dict[int, OccupancySnapshot],
        remaining: dict[tuple[int, str], int],
    ) -> list[Move]:
        source = levels.get(issue.level)
        if source is None:
            return []

        moves = []
        for occupant in source.products:
            available = remaining.get((issue.level, occupant.product_id), 0)
            if available <= 0:
                continue
            target = self.find_best_target_level(location_id, occupant.product_id, issue.level, levels)
            if target is None:
                logger.debug("No destination for %s on level %s", occupant.product_id, issue.level)
                continue

            quantity = min(
                available,
                math.ceil(occupant.quantity * self.settings.move_ratio),
                levels[target].available_space,
            )
            if quantity > 0:
                moves.append(self._move(location_id, occupant, issue.level, target, quantity, REASON_OVER_THRESHOLD))
                remaining[(issue.level, occupant.product_id)] = available - quantity
        return moves

    def _plan_policy_violation(
        self,
        location_id: str,
        issue: PolicyViolation,
        levels: dict[int, OccupancySnapshot],
        remaining: dict[tuple[int, str], int],
    ) -> list[Move]:
        # Category and dedicated-product violations are handled per product as placement violations.
        if issue.policy != StoragePolicy.SINGLE_PRODUCT_TYPE:
            return []
        source = levels.get(issue.level)
        if source is None:
            return []

        # Stable sort: equal quantities keep their snapshot order.
        ranked = sorted(source.products, key=lambda o: o.quantity, reverse=True)
        moves = []
        for occupant in ranked[1:]:
            available = remaining.get((issue.level, occupant.product_id), 0)
            if available <= 0:
                continue
            target = self.find_best_target_level(location_id, occupant.product_id, issue.level, levels)
            if target is None:
                continue
            moves.append(
                self._move(location_id, occupant, issue.level, target, available, REASON_SINGLE_PRODUCT_POLICY)
            )
            remaining[(issue.level, occupant.product_id)] = 0
        return moves

    def _plan_placement_violation(
        self,
        location_id: str,
        issue: PlacementViolation,
        levels: dict[int, OccupancySnapshot],
        remaining: dict[tuple[int, str], int],
    ) -> list[Move]:
        source = levels.get(issue.level)
        if source is None:
            return []
        occupant = next((o for o in source.products if o.product_id == issue.product_id), None)
        if occupant is None:
            return []

        available = remaining.get((issue.level, occupant.product_id), 0)
        if available <= 0:
            return []
        target = self.find_best_target_level(location_id, occupant.product_id, issue.level, levels)
        if target is None:
            return []

        remaining[(issue.level, occupant.product_id)] = 0
        return [self._move(location_id, occupant, issue.level, target, available, issue.reason)]

    def find_best_target_level(
        self,
        location_id: str,
        product_id: str,
        exclude_level: int,
        levels: dict[int, OccupancySnapshot],
    ) -> Optional[int]:
        """Valid level with free space and the highest capacity * free ratio.

        Ties go to the first level seen. Levels sharing the source's shelf
        rows are skipped, moving between them would change nothing.
        """
        best_level: Optional[int] = None
        best_score = -1.0
        for level_number, snapshot in levels.items():
            if level_number == exclude_level or self.naming.same_shelf(level_number, exclude_level):
                continue
            if snapshot.available_space <= 0:
                continue
            if not self.validator.validate(location_id, level_number, product_id).valid:
                continue

            space_ratio = snapshot.available_space / max(snapshot.level_capacity, 1)
            score = snapshot.level_capacity * space_ratio
            if score > best_score:
                best_level, best_score = level_number, score

        return best_level

    @staticmethod
    def _move(
        location_id: str,
        occupant: LevelOccupant,
        from_level: int,
        to_level: int,
        quantity: int,
        reason: str,
    ) -> Move:
        return Move(
            location_id=location_id,
            product_id=occupant.product_id,
            from_level=from_level,
            to_level=to_level,
            quantity=quantity,
            reason=reason,
            product_name=occupant.product_name,
        )

    def process(
        self,
        location_id: str,
        issues: list[Violation],
        levels: dict[int, OccupancySnapshot],
    ) -> list[Move]:
        return self.plan(location_id, issues, levels)

"""Occupancy Analyzer - per-level occupancy snapshots and violations.

- Occupancy snapshot of every configured level (items, capacity, %, free space, categories)
- Threshold, storage policy and placement violations
- Locations needing repartition, recommended level for a new receipt

Reads only; the same store state always yields the same analysis.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from slotting.config import SlottingSettings
from slotting.models.levels import LevelNaming
from slotting.models.slotting import (
    CategoryRestricted,
    DedicatedProduct,
    LevelConfig,
    LevelOccupant,
    Location,
    LocationAnalysis,
    OccupancySnapshot,
    OverThreshold,
    PlacementViolation,
    PolicyViolation,
    Product,
    SingleProductType,
    Violation,
)
from slotting.services.base import BaseService
from slotting.services.placement_validator import REASON_SINGLE_PRODUCT, PlacementValidator
from slotting.store.base import SlottingStore

logger = logging.getLogger(__name__)

# Score weights for recommended_level
PRIORITY_WEIGHT = 100
VOLUME_PREFERENCE_BONUS = 50


class OccupancyAnalyzer(BaseService):
    """Derives occupancy and violations from the current inventory."""

    def __init__(
        self,
        store: SlottingStore,
        validator: Optional[PlacementValidator] = None,
        settings: Optional[SlottingSettings] = None,
        naming: Optional[LevelNaming] = None,
    ):
        super().__init__("OccupancyAnalyzer", store, settings, naming)
        self.validator = validator or PlacementValidator(store, self.settings, self.naming)

    # --- Snapshots ---

    def snapshot(
        self,
        config: LevelConfig,
        location: Optional[Location],
        products: Optional[dict[str, Optional[Product]]] = None,
    ) -> OccupancySnapshot:
        """Occupancy of one level; `products` is a lookup cache for this pass only."""
        products = {} if products is None else products
        shelf_level = self.naming.shelf_level(config.level_number)

        # One occupant per product, batches summed, in first-seen order.
        occupants: dict[str, LevelOccupant] = {}
        for record in self.store.list_inventory(config.location_id, shelf_level):
            if record.quantity <= 0:
                continue
            occupant = occupants.get(record.product_id)
            if occupant is None:
                product = self._product(record.product_id, products)
                occupant = LevelOccupant(
                    product_id=record.product_id,
                    product_name=product.name if product else record.product_id,
                    category=product.category if product else "",
                    quantity=0,
                    volume_per_unit=product.volume_per_unit if product else 0.0,
                    weight_per_unit=product.weight_per_unit if product else 0.0,
                )
                occupants[record.product_id] = occupant
            occupant.quantity += record.quantity

        return OccupancySnapshot.build(
            level_number=config.level_number,
            shelf_level=shelf_level,
            occupants=list(occupants.values()),
            level_capacity=config.level_capacity(location),
        )

    def _product(self, product_id: str, cache: dict[str, Optional[Product]]) -> Optional[Product]:
        if product_id not in cache:
            cache[product_id] = self.store.get_product(product_id)
            if cache[product_id] is None:
                logger.warning("Inventory references unknown product %s", product_id)
        return cache[product_id]

    def level_occupancy(self, location_id: str, level_number: int) -> Optional[OccupancySnapshot]:
        config = self.store.get_level_config(location_id, level_number)
        if config is None:
            return None
        return self.snapshot(config, self.store.get_location(location_id))

    # --- Analysis ---

    def analyze(self, location_id: str) -> LocationAnalysis:
        """Snapshots every configured level and lists its violations.

        Issues are ordered by kind (threshold, policy, placement), each kind
        in level order; the planner emits moves in this order.
        """
        location = self.store.get_location(location_id)
        if location is None:
            logger.warning("Location %s not found, level capacities default to 0", location_id)

        analysis = LocationAnalysis(location_id=location_id)
        products: dict[str, Optional[Product]] = {}
        over_threshold: list[Violation] = []
        policy: list[Violation] = []
        placement: list[Violation] = []

        for config in self.store.get_level_configs(location_id):
            snapshot = self.snapshot(config, location, products)
            analysis.levels[config.level_number] = snapshot

            if snapshot.occupancy_percentage > config.repartition_trigger_threshold:
                over_threshold.append(
                    OverThreshold(
                        level=config.level_number,
                        occupancy=snapshot.occupancy_percentage,
                        threshold=config.repartition_trigger_threshold,
                    )
                )

            policy_issue = self._policy_violated(config, snapshot)
            if policy_issue is not None:
                policy.append(policy_issue)

            for occupant in snapshot.products:
                product = products.get(occupant.product_id)
                if product is None:
                    result = self.validator.validate(location_id, config.level_number, occupant.product_id)
                else:
                    result = self.validator.check(config, product)
                if result.valid:
                    continue
                # Already covered by the policy violation; the planner keeps the largest occupant.
                if (
                    result.reason == REASON_SINGLE_PRODUCT
                    and policy_issue is not None
                    and isinstance(config.policy_rule, SingleProductType)
                ):
                    continue
                placement.append(
                    PlacementViolation(
                        level=config.level_number,
                        product_id=occupant.product_id,
                        reason=result.reason,
                    )
                )

        analysis.issues = over_threshold + policy + placement
        if analysis.issues:
            logger.info("Location %s: %d issue(s) found", location_id, len(analysis.issues))
        return analysis

    @staticmethod
    def _policy_violated(config: LevelConfig, snapshot: OccupancySnapshot) -> Optional[PolicyViolation]:
        rule = config.policy_rule
        violated = False
        if isinstance(rule, SingleProductType):
            violated = snapshot.unique_products > 1
        elif isinstance(rule, CategoryRestricted):
            violated = bool(rule.allowed) and any(c not in rule.allowed for c in snapshot.categories)
        elif isinstance(rule, DedicatedProduct):
            violated = (
                bool(rule.product_id)
                and not rule.allow_others
                and any(p.product_id != rule.product_id for p in snapshot.products)
            )

        if not violated:
            return None
        return PolicyViolation(
            level=config.level_number,
            policy=config.storage_policy,
            product_count=snapshot.unique_products,
        )

    def needs_repartition(self, location_id: str) -> bool:
        """True when a level with auto-repartition enabled has any issue."""
        enabled = {
            c.level_number
            for c in self.store.get_level_configs(location_id)
            if c.enable_auto_repartition
        }
        if not enabled:
            return False
        return any(issue.level in enabled for issue in self.analyze(location_id).issues)

    def locations_needing_repartition(self) -> list[Location]:
        return [
            location
            for location in self.store.list_repartition_locations()
            if self.needs_repartition(location.location_id)
        ]

    def location_overview(self, location_id: str) -> Optional[dict[str, Any]]:
        """Location plus each level's settings and current occupancy, for reporting."""
        location = self.store.get_location(location_id)
        if location is None:
            return None

        levels = []
        for config in self.store.get_level_configs(location_id):
            level = config.to_dict()
            level["current_occupancy"] = self.snapshot(config, location).to_dict()
            levels.append(level)

        return {
            "location_id": location.location_id,
            "location_code": location.location_code,
            "zone": location.zone,
            "capacity": location.capacity,
            "levels": location.levels,
            "status": location.status.value,
            "current_occupancy": location.current_occupancy,
            "level_settings": levels,
        }

    # --- Receiving ---

    def recommended_level(
        self, location_id: str, product_id: str, exclude_level: Optional[int] = None
    ) -> Optional[int]:
        """Best level for a new receipt of a product, or None if no level accepts it.

        Score = priority_order * 100 + free percentage, plus a bonus when the
        product's volume falls inside the level's configured volume range.
        """
        location = self.store.get_location(location_id)
        product = self.store.get_product(product_id)

        best_level: Optional[int] = None
        best_score = float("-inf")
        for config in self.store.get_level_configs(location_id):
            if exclude_level is not None and config.level_number == exclude_level:
                continue
            if not self.validator.validate(location_id, config.level_number, product_id).valid:
                continue

            occupancy = self.snapshot(config, location).occupancy_percentage
            score = config.priority_order * PRIORITY_WEIGHT + (100 - occupancy)
            if product is not None and self._prefers_volume(config, product):
                score += VOLUME_PREFERENCE_BONUS

            if score > best_score:
                best_level, best_score = config.level_number, score

        return best_level

    @staticmethod
    def _prefers_volume(config: LevelConfig, product: Product) -> bool:
        if not (config.volume_min_liters and config.volume_max_liters):
            return False
        return config.volume_min_liters <= product.volume_per_unit <= config.volume_max_liters

    def process(self, location_id: str) -> LocationAnalysis:
        return self.analyze(location_id)

"""Placement Validator - may a product sit on a given level?

Rules are evaluated in a fixed order and the first failure wins:
single product type, category allow-list, dedicated product, volume bounds,
weight bounds. A level without configuration has no restrictions.

Nothing is cached between calls; occupancy changes between passes.
"""

from __future__ import annotations

import logging
from typing import Optional

from slotting.config import SlottingSettings
from slotting.models.levels import LevelNaming
from slotting.models.slotting import (
    CategoryRestricted,
    DedicatedProduct,
    LevelConfig,
    PlacementResult,
    Product,
    SingleProductType,
)
from slotting.services.base import BaseService
from slotting.store.base import SlottingStore

logger = logging.getLogger(__name__)

REASON_NO_RESTRICTIONS = "No specific restrictions"
REASON_OK = "All constraints satisfied"
REASON_PRODUCT_NOT_FOUND = "Product not found"
REASON_SINGLE_PRODUCT = "Level restricted to single product type"
REASON_CATEGORY = "Product category not allowed on this level"
REASON_DEDICATED = "Level is dedicated to a different product"
REASON_VOLUME_TOO_SMALL = "Product volume too small for this level"
REASON_VOLUME_TOO_LARGE = "Product volume too large for this level"
REASON_WEIGHT_TOO_LIGHT = "Product weight too light for this level"
REASON_WEIGHT_TOO_HEAVY = "Product weight too heavy for this level"


class PlacementValidator(BaseService):
    """Evaluates one (location, level, product) placement."""

    def __init__(
        self,
        store: SlottingStore,
        settings: Optional[SlottingSettings] = None,
        naming: Optional[LevelNaming] = None,
    ):
        super().__init__("PlacementValidator", store, settings, naming)

    def validate(self, location_id: str, level_number: int, product_id: str) -> PlacementResult:
        config = self.store.get_level_config(location_id, level_number)
        if config is None:
            return PlacementResult(True, REASON_NO_RESTRICTIONS)

        product = self.store.get_product(product_id)
        if product is None:
            return PlacementResult(False, REASON_PRODUCT_NOT_FOUND)

        return self.check(config, product)

    def check(self, config: LevelConfig, product: Product) -> PlacementResult:
        """Runs the rules for an already loaded config and product."""
        rule = config.policy_rule

        if isinstance(rule, SingleProductType) and self._has_other_occupants(config, product.product_id):
            return PlacementResult(False, REASON_SINGLE_PRODUCT)

        if isinstance(rule, CategoryRestricted) and rule.allowed and product.category not in rule.allowed:
            return PlacementResult(False, REASON_CATEGORY)

        if (
            isinstance(rule, DedicatedProduct)
            and rule.product_id
            and rule.product_id != product.product_id
            and not rule.allow_others
        ):
            return PlacementResult(False, REASON_DEDICATED)

        # Zero or unset bounds mean "not configured".
        if config.volume_min_liters and product.volume_per_unit < config.volume_min_liters:
            return PlacementResult(False, REASON_VOLUME_TOO_SMALL)
        if config.volume_max_liters and product.volume_per_unit > config.volume_max_liters:
            return PlacementResult(False, REASON_VOLUME_TOO_LARGE)

        if config.weight_min_kg and product.weight_per_unit < config.weight_min_kg:
            return PlacementResult(False, REASON_WEIGHT_TOO_LIGHT)
        if config.weight_max_kg and product.weight_per_unit > config.weight_max_kg:
            return PlacementResult(False, REASON_WEIGHT_TOO_HEAVY)

        return PlacementResult(True, REASON_OK)

    def _has_other_occupants(self, config: LevelConfig, product_id: str) -> bool:
        shelf_level = self.naming.shelf_level(config.level_number)
        return any(
            r.quantity > 0 and r.product_id != product_id
            for r in self.store.list_inventory(config.location_id, shelf_level)
        )

    def process(self, location_id: str, level_number: int, product_id: str) -> PlacementResult:
        return self.validate(location_id, level_number, product_id)

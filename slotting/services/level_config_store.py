"""Level Config Store - per-level configuration of shelf locations.

- Reads level settings ordered by level number
- Insert-or-update on (location_id, level_number)
- Seeds default settings for new locations (bottom level gets the highest priority)
- Subdivision toggling and subdivision layout validation
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional

from slotting.config import SlottingSettings
from slotting.errors import ConfigurationError, StoreError
from slotting.models.levels import LevelNaming
from slotting.models.slotting import LevelConfig, StoragePolicy, ValidationResult
from slotting.services.base import BaseService
from slotting.store.base import SlottingStore

logger = logging.getLogger(__name__)


class LevelConfigStore(BaseService):
    """CRUD over LevelConfig rows."""

    def __init__(
        self,
        store: SlottingStore,
        settings: Optional[SlottingSettings] = None,
        naming: Optional[LevelNaming] = None,
    ):
        super().__init__("LevelConfigStore", store, settings, naming)

    def get(self, location_id: str) -> list[LevelConfig]:
        """All level configs of a location, ordered by level number."""
        return self.store.get_level_configs(location_id)

    def get_one(self, location_id: str, level_number: int) -> Optional[LevelConfig]:
        return self.store.get_level_config(location_id, level_number)

    def upsert(self, location_id: str, level_number: int, fields: dict[str, Any]) -> bool:
        """Creates or replaces the config of one level.

        Fields not given fall back to their defaults, so an upsert always
        describes the full level. Returns False on invalid input or store errors.
        """
        try:
            config = LevelConfig.from_record(location_id, level_number, fields, strict=True)
            self._check_level_range(location_id, level_number)
        except ConfigurationError as e:
            logger.error("Rejected level settings %s/%s: %s", location_id, level_number, e)
            return False
        except StoreError as e:
            logger.error("Error reading location %s: %s", location_id, e)
            return False

        if self.naming.is_aliased(level_number):
            logger.warning(
                "Level %s of %s shares shelf rows with '%s'",
                level_number,
                location_id,
                self.naming.shelf_level(level_number),
            )

        try:
            self.store.put_level_config(config)
        except StoreError as e:
            logger.error("Error updating level settings: %s", e)
            return False
        return True

    def _check_level_range(self, location_id: str, level_number: int) -> None:
        # Unknown locations are written anyway; referential checks belong to the caller.
        location = self.store.get_location(location_id)
        if location is not None and level_number > location.levels:
            raise ConfigurationError(
                f"level_number {level_number} exceeds the {location.levels} levels of {location_id}"
            )

    def default_fields(self, level_number: int, total_levels: int) -> dict[str, Any]:
        return {
            "level_name": self.naming.display_name(level_number),
            "storage_policy": StoragePolicy.MULTIPLE_PRODUCTS.value,
            "length_mm": 0,
            "depth_mm": 0,
            "height_mm": 0,
            "max_weight_kg": 0,
            "items_capacity": None,
            "dedicated_product_id": None,
            "allow_other_products": True,
            "enable_auto_repartition": False,
            "repartition_trigger_threshold": self.settings.default_trigger_threshold,
            "priority_order": total_levels - level_number + 1,
            "subdivision_count": 1,
        }

    def create_defaults(self, location_id: str, total_levels: int) -> bool:
        """Seeds levels 1..total_levels with default settings."""
        success = True
        for level_number in range(1, total_levels + 1):
            if not self.upsert(location_id, level_number, self.default_fields(level_number, total_levels)):
                success = False
        return success

    def delete(self, location_id: str, level_number: int) -> bool:
        try:
            return self.store.delete_level_config(location_id, level_number)
        except StoreError as e:
            logger.error("Error deleting level settings: %s", e)
            return False

    def resize(self, location_id: str, total_levels: int) -> bool:
        """Adds default configs for new levels and drops configs above total_levels.

        Existing levels keep their settings. Stock on removed levels is not moved.
        """
        if total_levels < 1:
            logger.error("Cannot resize %s to %s levels", location_id, total_levels)
            return False

        existing = {c.level_number for c in self.get(location_id)}
        success = True
        for level_number in range(1, total_levels + 1):
            if level_number not in existing:
                fields = self.default_fields(level_number, total_levels)
                success = self.upsert(location_id, level_number, fields) and success
        for level_number in sorted(existing):
            if level_number > total_levels:
                success = self.delete(location_id, level_number) and success
        return success

    # --- Subdivisions ---

    def toggle_subdivisions(self, location_id: str, level_number: int, enabled: bool) -> bool:
        """Turns subdivisions on/off; enabling forces the multiple_products policy."""
        config = self.get_one(location_id, level_number)
        if config is None:
            logger.warning("No settings for %s/%s, cannot toggle subdivisions", location_id, level_number)
            return False

        config = replace(config, subdivisions_enabled=enabled)
        if enabled:
            config = replace(config, storage_policy=StoragePolicy.MULTIPLE_PRODUCTS)
        try:
            self.store.put_level_config(config)
        except StoreError as e:
            logger.error("Error toggling subdivisions: %s", e)
            return False
        return True

    def subdivision_enabled_levels(self, location_id: str) -> list[LevelConfig]:
        return [c for c in self.get(location_id) if c.subdivisions_enabled]

    @staticmethod
    def validate_subdivisions(subdivisions: list[dict[str, Any]]) -> ValidationResult:
        """Checks a subdivision layout before it is saved."""
        errors: list[str] = []
        if not subdivisions:
            errors.append("At least one subdivision is required when subdivisions are enabled")
            return ValidationResult(is_valid=False, errors=errors)

        seen_products: set[str] = set()
        for index, subdivision in enumerate(subdivisions, start=1):
            product_id = subdivision.get("product_id")
            if not product_id:
                errors.append(f"Subdivision {index}: Product is required")

            capacity = subdivision.get("capacity") or 0
            if capacity < 1:
                errors.append(f"Subdivision {index}: Capacity must be at least 1")

            if product_id:
                if product_id in seen_products:
                    errors.append(
                        f"Subdivision {index}: Same product cannot be in multiple subdivisions on the same level"
                    )
                seen_products.add(product_id)

        return ValidationResult(is_valid=not errors, errors=errors)

    def process(self, location_id: str) -> list[LevelConfig]:
        return self.get(location_id)

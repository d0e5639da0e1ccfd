"""In-process store backed by dictionaries.

Used by tests and local dry runs. `commit` snapshots the inventory and the
location aggregates first and restores them if any operation fails.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from slotting.errors import TransactionConflictError
from slotting.models.slotting import (
    InventoryRecord,
    LevelConfig,
    Location,
    LocationStatus,
    Product,
    utc_now,
)
from slotting.store.base import (
    DecrementRecord,
    DeleteRecord,
    IncrementRecord,
    InsertRecord,
    SetOccupancy,
    SlottingStore,
    WriteOperation,
)

logger = logging.getLogger(__name__)


class InMemoryStore(SlottingStore):
    def __init__(self) -> None:
        self._locations: dict[str, Location] = {}
        # {(location_id, level_number): LevelConfig}
        self._level_configs: dict[tuple[str, int], LevelConfig] = {}
        self._products: dict[str, Product] = {}
        # {(location_id, record_key): InventoryRecord}
        self._records: dict[tuple[str, str], InventoryRecord] = {}
        self.commit_count = 0

    # --- Locations ---

    def get_location(self, location_id: str) -> Optional[Location]:
        location = self._locations.get(location_id)
        return replace(location) if location else None

    def put_location(self, location: Location) -> None:
        self._locations[location.location_id] = replace(location)

    def list_repartition_locations(self) -> list[Location]:
        eligible = []
        for location in self._locations.values():
            if location.status != LocationStatus.ACTIVE or location.type != "shelf":
                continue
            if any(c.enable_auto_repartition for c in self.get_level_configs(location.location_id)):
                eligible.append(replace(location))
        eligible.sort(key=lambda loc: (loc.zone, loc.location_code))
        return eligible

    # --- Level configuration ---

    def get_level_configs(self, location_id: str) -> list[LevelConfig]:
        configs = [
            replace(c) for (loc_id, _), c in self._level_configs.items() if loc_id == location_id
        ]
        configs.sort(key=lambda c: c.level_number)
        return configs

    def get_level_config(self, location_id: str, level_number: int) -> Optional[LevelConfig]:
        config = self._level_configs.get((location_id, level_number))
        return replace(config) if config else None

    def put_level_config(self, config: LevelConfig) -> None:
        self._level_configs[(config.location_id, config.level_number)] = replace(config)

    def delete_level_config(self, location_id: str, level_number: int) -> bool:
        return self._level_configs.pop((location_id, level_number), None) is not None

    # --- Products ---

    def get_product(self, product_id: str) -> Optional[Product]:
        product = self._products.get(product_id)
        return replace(product) if product else None

    def put_product(self, product: Product) -> None:
        self._products[product.product_id] = replace(product)

    # --- Inventory ---

    def add_inventory(self, record: InventoryRecord) -> InventoryRecord:
        """Seeds a receipt batch directly (zero-quantity batches are not stored)."""
        if record.quantity < 0:
            raise ValueError(f"Negative quantity: {record.quantity}")
        if record.quantity > 0:
            self._records[(record.location_id, record.record_key)] = replace(record)
        return record

    def list_inventory(
        self, location_id: str, shelf_level: Optional[str] = None
    ) -> list[InventoryRecord]:
        return [
            replace(r)
            for (loc_id, _), r in self._records.items()
            if loc_id == location_id and (shelf_level is None or r.shelf_level == shelf_level)
        ]

    def commit(self, operations: list[WriteOperation]) -> None:
        records_before = dict(self._records)
        locations_before = dict(self._locations)

        try:
            for operation in operations:
                self._apply(operation)
        except Exception:
            self._records = records_before
            self._locations = locations_before
            logger.warning("In-memory transaction rolled back (%s operations)", len(operations))
            raise

        self.commit_count += 1

    def _apply(self, operation: WriteOperation) -> None:
        now = utc_now()

        if isinstance(operation, SetOccupancy):
            location = self._locations.get(operation.location_id)
            if location is None:
                raise TransactionConflictError(f"Unknown location {operation.location_id}")
            self._locations[operation.location_id] = replace(
                location, current_occupancy=operation.total
            )
            return

        key = (operation.record.location_id, operation.record.record_key)
        current = self._records.get(key)

        if isinstance(operation, InsertRecord):
            if current is not None:
                raise TransactionConflictError(f"Record already exists: {key}")
            self._records[key] = replace(operation.record)
            return

        if current is None:
            raise TransactionConflictError(f"Record not found: {key}")

        if isinstance(operation, DecrementRecord):
            if current.quantity < operation.amount:
                raise TransactionConflictError(
                    f"Record {key} holds {current.quantity}, cannot take {operation.amount}"
                )
            self._records[key] = replace(
                current, quantity=current.quantity - operation.amount, updated_at=now
            )
        elif isinstance(operation, IncrementRecord):
            self._records[key] = replace(
                current, quantity=current.quantity + operation.amount, updated_at=now
            )
        elif isinstance(operation, DeleteRecord):
            if current.quantity != operation.expected_quantity:
                raise TransactionConflictError(
                    f"Record {key} changed: {current.quantity} != {operation.expected_quantity}"
                )
            del self._records[key]
        else:
            raise TransactionConflictError(f"Unsupported operation: {operation!r}")

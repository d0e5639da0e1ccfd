"""Move Executor - applies one planned move as a single store transaction.

1. Take the quantity from the source level's batches, oldest first
2. Add it to the destination's oldest batch, or insert a new batch
3. Delete source batches left at zero
4. Recompute the location's occupancy aggregate
5. Audit the move (best-effort, after commit)

The move is re-checked against live stock before anything is written:
source quantity, destination capacity and placement rules. Any failure
leaves the store untouched.
"""

from __future__ import annotations

import logging
from typing import Optional

from slotting.config import SlottingSettings
from slotting.errors import (
    CapacityExceededError,
    ExecutionError,
    InsufficientStockError,
    SlottingError,
)
from slotting.models.levels import LevelNaming
from slotting.models.slotting import InventoryRecord, Location, Move, utc_now
from slotting.services.audit import RepartitionAuditLog
from slotting.services.base import BaseService
from slotting.services.placement_validator import PlacementValidator
from slotting.services.stock_validator import StockValidator, stock_by_level
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


class MoveExecutor(BaseService):
    """Executes moves one at a time; a failed move is rolled back and reported as False."""

    def __init__(
        self,
        store: SlottingStore,
        validator: Optional[PlacementValidator] = None,
        audit_log: Optional[RepartitionAuditLog] = None,
        stock_validator: Optional[StockValidator] = None,
        settings: Optional[SlottingSettings] = None,
        naming: Optional[LevelNaming] = None,
    ):
        super().__init__("MoveExecutor", store, settings, naming)
        self.validator = validator or PlacementValidator(store, self.settings, self.naming)
        self.audit_log = audit_log or RepartitionAuditLog(self.settings)
        self.stock_validator = stock_validator or StockValidator()

    def execute(self, move: Move) -> bool:
        try:
            self.apply(move)
        except SlottingError as e:
            logger.error(
                "Move failed (%s %s: level %s -> %s x%s): %s",
                move.location_id,
                move.product_id,
                move.from_level,
                move.to_level,
                move.quantity,
                e,
            )
            return False
        except Exception:
            logger.exception("Unexpected error executing move %s", move)
            return False

        try:
            self.audit_log.record(move)
        except Exception as e:
            logger.warning("Audit logging failed for committed move: %s", e)
        return True

    def apply(self, move: Move) -> list[WriteOperation]:
        """Builds, checks and commits the move; raises on any failure."""
        source_shelf = self.naming.shelf_level(move.from_level)
        target_shelf = self.naming.shelf_level(move.to_level)

        location = self.store.get_location(move.location_id)
        records = self.store.list_inventory(move.location_id)
        stock_before = stock_by_level(records)

        capacity = self._destination_capacity(move, location)
        check = self.stock_validator.validate_move(move, source_shelf, target_shelf, stock_before, capacity)
        if not check.is_valid:
            message = "; ".join(check.errors)
            if stock_before.get((source_shelf, move.product_id), 0) < move.quantity:
                raise InsufficientStockError(message)
            destination_total = sum(q for (shelf, _), q in stock_before.items() if shelf == target_shelf)
            if destination_total + move.quantity > capacity:
                raise CapacityExceededError(message)
            raise ExecutionError(message)

        placement = self.validator.validate(move.location_id, move.to_level, move.product_id)
        if not placement.valid:
            raise ExecutionError(f"Level {move.to_level} no longer accepts {move.product_id}: {placement.reason}")

        operations = self._source_operations(move, records, source_shelf)
        operations.append(self._destination_operation(move, records, target_shelf))

        stock_after = dict(stock_before)
        stock_after[(source_shelf, move.product_id)] -= move.quantity
        stock_after[(target_shelf, move.product_id)] = (
            stock_after.get((target_shelf, move.product_id), 0) + move.quantity
        )
        for result in (
            self.stock_validator.verify_conservation(stock_before, stock_after),
            self.stock_validator.check_no_negative_stock(stock_after),
        ):
            if not result.is_valid:
                raise ExecutionError("; ".join(result.errors))

        if location is not None:
            operations.append(SetOccupancy(move.location_id, sum(q for q in stock_after.values() if q > 0)))

        self.store.commit(operations)
        logger.debug("Committed %d operation(s) for %s", len(operations), move)
        return operations

    def _destination_capacity(self, move: Move, location: Optional[Location]) -> int:
        config = self.store.get_level_config(move.location_id, move.to_level)
        if config is not None:
            return config.level_capacity(location)
        return location.default_level_capacity if location else 0

    @staticmethod
    def _source_operations(move: Move, records: list[InventoryRecord], source_shelf: str) -> list[WriteOperation]:
        batches = sorted(
            (r for r in records if r.shelf_level == source_shelf and r.product_id == move.product_id),
            key=lambda r: r.received_at,
        )

        operations: list[WriteOperation] = []
        remaining = move.quantity
        for batch in batches:
            if batch.quantity <= 0:
                # Stale empty rows are dropped along with the move.
                operations.append(DeleteRecord(batch, batch.quantity))
                continue
            if remaining <= 0:
                continue
            taken = min(batch.quantity, remaining)
            if taken == batch.quantity:
                operations.append(DeleteRecord(batch, batch.quantity))
            else:
                operations.append(DecrementRecord(batch, taken))
            remaining -= taken
        return operations

    @staticmethod
    def _destination_operation(move: Move, records: list[InventoryRecord], target_shelf: str) -> WriteOperation:
        existing = sorted(
            (
                r
                for r in records
                if r.shelf_level == target_shelf and r.product_id == move.product_id and r.quantity > 0
            ),
            key=lambda r: r.received_at,
        )
        if existing:
            return IncrementRecord(existing[0], move.quantity)
        return InsertRecord(
            InventoryRecord(
                product_id=move.product_id,
                location_id=move.location_id,
                shelf_level=target_shelf,
                quantity=move.quantity,
                received_at=utc_now(),
            )
        )

    def process(self, move: Move) -> bool:
        return self.execute(move)

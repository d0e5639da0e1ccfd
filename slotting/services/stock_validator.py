"""Stock invariants checked before a move is committed.

- Move validation (quantity, distinct shelves, source stock, destination capacity)
- Negative stock check
- Quantity conservation before/after a move

Stock maps are keyed by (shelf_level, product_id) for a single location.
"""

from __future__ import annotations

import logging
from typing import Iterable

from slotting.models.slotting import InventoryRecord, Move, ValidationResult

logger = logging.getLogger(__name__)

StockMap = dict[tuple[str, str], int]


def stock_by_level(records: Iterable[InventoryRecord]) -> StockMap:
    """Sums batch quantities per (shelf_level, product_id)."""
    stock: StockMap = {}
    for record in records:
        key = (record.shelf_level, record.product_id)
        stock[key] = stock.get(key, 0) + record.quantity
    return stock


class StockValidator:
    """Stock consistency checks for a single location."""

    def validate_move(
        self,
        move: Move,
        source_shelf: str,
        target_shelf: str,
        stock: StockMap,
        destination_capacity: int,
    ) -> ValidationResult:
        """Checks that a move can be applied to the given stock."""
        errors = []
        warnings = []

        if move.quantity <= 0:
            errors.append(f"Move quantity must be positive: {move.quantity}")

        if move.from_level == move.to_level:
            errors.append("Source and destination level cannot be the same")
        elif source_shelf == target_shelf:
            errors.append(
                f"Levels {move.from_level} and {move.to_level} share the '{source_shelf}' shelf rows"
            )

        source_stock = stock.get((source_shelf, move.product_id), 0)
        if source_stock < move.quantity:
            errors.append(
                f"Insufficient stock: {move.product_id} on level {move.from_level} "
                f"available={source_stock}, requested={move.quantity}"
            )

        destination_total = sum(q for (shelf, _), q in stock.items() if shelf == target_shelf)
        if destination_total > destination_capacity:
            # Already overfilled; only refuse to make it worse.
            warnings.append(
                f"Level {move.to_level} is already over capacity: {destination_total}/{destination_capacity}"
            )
        if destination_total + move.quantity > destination_capacity:
            errors.append(
                f"Capacity exceeded on level {move.to_level}: "
                f"{destination_total} + {move.quantity} > {destination_capacity}"
            )

        return ValidationResult(is_valid=len(errors) == 0, errors=errors, warnings=warnings)

    def check_no_negative_stock(self, stock: StockMap) -> ValidationResult:
        errors = []
        for (shelf_level, product_id), quantity in stock.items():
            if quantity < 0:
                errors.append(f"Negative stock detected: {shelf_level}/{product_id} = {quantity}")
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def verify_conservation(self, stock_before: StockMap, stock_after: StockMap) -> ValidationResult:
        """Per-product totals across all levels must not change."""
        totals_before = _product_totals(stock_before)
        totals_after = _product_totals(stock_after)

        errors = []
        for product_id in sorted(set(totals_before) | set(totals_after)):
            before = totals_before.get(product_id, 0)
            after = totals_after.get(product_id, 0)
            if before != after:
                errors.append(
                    f"Stock conservation violated: {product_id} total before={before}, after={after}"
                )
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def _product_totals(stock: StockMap) -> dict[str, int]:
    totals: dict[str, int] = {}
    for (_, product_id), quantity in stock.items():
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals

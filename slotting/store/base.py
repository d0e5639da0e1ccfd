"""Data store contract for the slotting engine.

Reads return plain model objects. Writes to inventory go through `commit`,
which applies a batch of conditional operations atomically: either every
condition holds and every write lands, or nothing is persisted.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from slotting.models.slotting import InventoryRecord, LevelConfig, Location, Product


@dataclass(frozen=True)
class DecrementRecord:
    """quantity -= amount, requires quantity >= amount."""

    record: InventoryRecord
    amount: int


@dataclass(frozen=True)
class DeleteRecord:
    """Removes a row, requires the stored quantity to still equal expected_quantity."""

    record: InventoryRecord
    expected_quantity: int


@dataclass(frozen=True)
class IncrementRecord:
    """quantity += amount on an existing row."""

    record: InventoryRecord
    amount: int


@dataclass(frozen=True)
class InsertRecord:
    """Creates a new row, requires the key to be unused."""

    record: InventoryRecord


@dataclass(frozen=True)
class SetOccupancy:
    location_id: str
    total: int


WriteOperation = Union[DecrementRecord, DeleteRecord, IncrementRecord, InsertRecord, SetOccupancy]


class SlottingStore(ABC):
    """Storage backend used by every slotting service."""

    # --- Locations ---

    @abstractmethod
    def get_location(self, location_id: str) -> Optional[Location]:
        ...

    @abstractmethod
    def put_location(self, location: Location) -> None:
        ...

    @abstractmethod
    def list_repartition_locations(self) -> list[Location]:
        """Active shelf locations with at least one auto-repartition level, by zone then code."""
        ...

    # --- Level configuration ---

    @abstractmethod
    def get_level_configs(self, location_id: str) -> list[LevelConfig]:
        ...

    @abstractmethod
    def get_level_config(self, location_id: str, level_number: int) -> Optional[LevelConfig]:
        ...

    @abstractmethod
    def put_level_config(self, config: LevelConfig) -> None:
        ...

    @abstractmethod
    def delete_level_config(self, location_id: str, level_number: int) -> bool:
        ...

    # --- Products ---

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    def put_product(self, product: Product) -> None:
        ...

    # --- Inventory ---

    @abstractmethod
    def list_inventory(
        self, location_id: str, shelf_level: Optional[str] = None
    ) -> list[InventoryRecord]:
        ...

    @abstractmethod
    def commit(self, operations: list[WriteOperation]) -> None:
        """Applies all operations atomically or raises TransactionConflictError."""
        ...

    def sum_quantity(
        self, location_id: str, shelf_level: str, product_id: Optional[str] = None
    ) -> int:
        return sum(
            r.quantity
            for r in self.list_inventory(location_id, shelf_level)
            if product_id is None or r.product_id == product_id
        )

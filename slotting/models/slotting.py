"""Shelf slotting data models: locations, level configuration, inventory and moves."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Mapping, Optional, Union

from slotting.errors import ConfigurationError

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StoragePolicy(str, Enum):
    MULTIPLE_PRODUCTS = "multiple_products"
    SINGLE_PRODUCT_TYPE = "single_product_type"
    CATEGORY_RESTRICTED = "category_restricted"
    DEDICATED_PRODUCT = "dedicated_product"


class LocationStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ViolationType(str, Enum):
    OVER_THRESHOLD = "over_threshold"
    POLICY_VIOLATION = "policy_violation"
    PLACEMENT_VIOLATION = "placement_violation"


# --- Storage policy payloads ---


@dataclass(frozen=True)
class MultipleProducts:
    pass


@dataclass(frozen=True)
class SingleProductType:
    pass


@dataclass(frozen=True)
class CategoryRestricted:
    allowed: frozenset[str] = frozenset()


@dataclass(frozen=True)
class DedicatedProduct:
    product_id: Optional[str] = None
    allow_others: bool = True


PolicyRule = Union[MultipleProducts, SingleProductType, CategoryRestricted, DedicatedProduct]


@dataclass
class Location:
    location_id: str
    location_code: str
    capacity: int
    levels: int
    zone: str = ""
    status: LocationStatus = LocationStatus.ACTIVE
    type: str = "shelf"
    current_occupancy: int = 0

    @property
    def default_level_capacity(self) -> int:
        if self.levels <= 0:
            return 0
        return self.capacity // self.levels


@dataclass
class LevelConfig:
    location_id: str
    level_number: int
    level_name: Optional[str] = None
    storage_policy: StoragePolicy = StoragePolicy.MULTIPLE_PRODUCTS
    allowed_categories: Optional[list[str]] = None
    length_mm: float = 0
    depth_mm: float = 0
    height_mm: float = 0
    max_weight_kg: float = 0
    items_capacity: Optional[int] = None
    dedicated_product_id: Optional[str] = None
    allow_other_products: bool = True
    volume_min_liters: Optional[float] = None
    volume_max_liters: Optional[float] = None
    weight_min_kg: Optional[float] = None
    weight_max_kg: Optional[float] = None
    enable_auto_repartition: bool = False
    repartition_trigger_threshold: float = 80
    priority_order: int = 0
    subdivision_count: int = 1
    subdivisions_enabled: bool = False
    requires_special_handling: bool = False
    temperature_controlled: bool = False
    notes: Optional[str] = None
    updated_at: str = field(default_factory=utc_now)

    @property
    def policy_rule(self) -> PolicyRule:
        """Policy plus the payload that policy needs."""
        if self.storage_policy == StoragePolicy.SINGLE_PRODUCT_TYPE:
            return SingleProductType()
        if self.storage_policy == StoragePolicy.CATEGORY_RESTRICTED:
            return CategoryRestricted(allowed=frozenset(self.allowed_categories or []))
        if self.storage_policy == StoragePolicy.DEDICATED_PRODUCT:
            return DedicatedProduct(
                product_id=self.dedicated_product_id,
                allow_others=self.allow_other_products,
            )
        return MultipleProducts()

    def level_capacity(self, location: Optional[Location]) -> int:
        if self.items_capacity is not None:
            return max(0, int(self.items_capacity))
        if location is None:
            return 0
        return location.default_level_capacity

    def to_dict(self) -> dict:
        data = asdict(self)
        data["storage_policy"] = self.storage_policy.value
        return data

    @classmethod
    def from_record(
        cls,
        location_id: str,
        level_number: int,
        record: Mapping[str, Any],
        strict: bool = False,
    ) -> "LevelConfig":
        """Builds a config from a stored row or an admin field dict.

        strict=True raises ConfigurationError on bad values (admin input);
        otherwise bad values are logged and replaced by permissive defaults.
        """

        def invalid(message: str) -> None:
            if strict:
                raise ConfigurationError(message)
            logger.warning("Level %s/%s config: %s", location_id, level_number, message)

        if level_number < 1:
            invalid(f"level_number must be >= 1, got {level_number}")

        policy = StoragePolicy.MULTIPLE_PRODUCTS
        raw_policy = record.get("storage_policy") or StoragePolicy.MULTIPLE_PRODUCTS.value
        try:
            policy = StoragePolicy(raw_policy)
        except ValueError:
            invalid(f"unknown storage_policy {raw_policy!r}")

        allowed = record.get("allowed_categories", record.get("allowed_product_types"))
        if isinstance(allowed, str):
            try:
                allowed = json.loads(allowed) if allowed else None
            except json.JSONDecodeError:
                invalid(f"allowed_categories is not valid JSON: {allowed!r}")
                allowed = None
        if allowed is not None and not isinstance(allowed, (list, tuple, set, frozenset)):
            invalid(f"allowed_categories must be a list, got {type(allowed).__name__}")
            allowed = None

        def number(key: str, convert: Callable[[Any], Any], default: Any) -> Any:
            value = record.get(key)
            if value is None or value == "":
                return default
            try:
                return convert(value)
            except (TypeError, ValueError):
                invalid(f"{key} is not a number: {value!r}")
                return default

        def flag(key: str, default: bool) -> bool:
            try:
                return parse_flag(record.get(key), default)
            except ValueError:
                invalid(f"{key} is not a boolean: {record.get(key)!r}")
                return default

        threshold = number("repartition_trigger_threshold", float, 80.0)
        if not 0 <= threshold <= 100:
            invalid(f"repartition_trigger_threshold out of range: {threshold}")
            threshold = min(100.0, max(0.0, threshold))

        subdivision_count = number("subdivision_count", int, 1)
        if subdivision_count < 1:
            invalid(f"subdivision_count must be >= 1, got {subdivision_count}")
            subdivision_count = 1

        dedicated = record.get("dedicated_product_id")

        return cls(
            location_id=location_id,
            level_number=level_number,
            level_name=record.get("level_name"),
            storage_policy=policy,
            allowed_categories=[str(c) for c in allowed] if allowed is not None else None,
            length_mm=number("length_mm", float, 0),
            depth_mm=number("depth_mm", float, 0),
            height_mm=number("height_mm", float, 0),
            max_weight_kg=number("max_weight_kg", float, 0),
            items_capacity=number("items_capacity", int, None),
            dedicated_product_id=str(dedicated) if dedicated is not None else None,
            allow_other_products=flag("allow_other_products", True),
            volume_min_liters=number("volume_min_liters", float, None),
            volume_max_liters=number("volume_max_liters", float, None),
            weight_min_kg=number("weight_min_kg", float, None),
            weight_max_kg=number("weight_max_kg", float, None),
            enable_auto_repartition=flag("enable_auto_repartition", False),
            repartition_trigger_threshold=threshold,
            priority_order=number("priority_order", int, 0),
            subdivision_count=subdivision_count,
            subdivisions_enabled=flag("subdivisions_enabled", False),
            requires_special_handling=flag("requires_special_handling", False),
            temperature_controlled=flag("temperature_controlled", False),
            notes=record.get("notes"),
            updated_at=record.get("updated_at") or utc_now(),
        )


_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off", ""})


def parse_flag(value: Any, default: bool) -> bool:
    """Reads a stored boolean; strings such as "false" or "0" are False.

    Raises ValueError for values that are not recognisably true or false.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean: {value!r}")


@dataclass
class Product:
    product_id: str
    name: str
    category: str = ""
    volume_per_unit: float = 0.0
    weight_per_unit: float = 0.0


@dataclass
class InventoryRecord:
    product_id: str
    location_id: str
    shelf_level: str
    quantity: int
    received_at: str = field(default_factory=utc_now)
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    updated_at: Optional[str] = None

    @property
    def record_key(self) -> str:
        return f"{self.shelf_level}#{self.product_id}#{self.batch_id}"


@dataclass
class LevelOccupant:
    product_id: str
    product_name: str
    category: str
    quantity: int
    volume_per_unit: float = 0.0
    weight_per_unit: float = 0.0


@dataclass
class OccupancySnapshot:
    level_number: int
    shelf_level: str
    unique_products: int
    total_items: int
    level_capacity: int
    occupancy_percentage: float
    available_space: int
    categories: list[str] = field(default_factory=list)
    products: list[LevelOccupant] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        level_number: int,
        shelf_level: str,
        occupants: list[LevelOccupant],
        level_capacity: int,
    ) -> "OccupancySnapshot":
        total_items = sum(o.quantity for o in occupants)
        occupancy = (total_items / level_capacity) * 100 if level_capacity > 0 else 0.0
        categories: list[str] = []
        for occupant in occupants:
            if occupant.category and occupant.category not in categories:
                categories.append(occupant.category)
        return cls(
            level_number=level_number,
            shelf_level=shelf_level,
            unique_products=len(occupants),
            total_items=total_items,
            level_capacity=level_capacity,
            occupancy_percentage=occupancy,
            available_space=max(0, level_capacity - total_items),
            categories=categories,
            products=occupants,
        )

    def quantity_of(self, product_id: str) -> int:
        return sum(o.quantity for o in self.products if o.product_id == product_id)

    def to_dict(self) -> dict:
        return {
            "level_number": self.level_number,
            "shelf_level": self.shelf_level,
            "unique_products": self.unique_products,
            "total_items": self.total_items,
            "level_capacity": self.level_capacity,
            "occupancy_percentage": round(self.occupancy_percentage, 1),
            "available_space": self.available_space,
            "categories": list(self.categories),
        }


# --- Violations ---


@dataclass(frozen=True)
class OverThreshold:
    type: ClassVar[ViolationType] = ViolationType.OVER_THRESHOLD

    level: int
    occupancy: float
    threshold: float

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "level": self.level,
            "occupancy": self.occupancy,
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class PolicyViolation:
    type: ClassVar[ViolationType] = ViolationType.POLICY_VIOLATION

    level: int
    policy: StoragePolicy
    product_count: int

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "level": self.level,
            "policy": self.policy.value,
            "product_count": self.product_count,
        }


@dataclass(frozen=True)
class PlacementViolation:
    type: ClassVar[ViolationType] = ViolationType.PLACEMENT_VIOLATION

    level: int
    product_id: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "level": self.level,
            "product_id": self.product_id,
            "reason": self.reason,
        }


Violation = Union[OverThreshold, PolicyViolation, PlacementViolation]


@dataclass
class LocationAnalysis:
    location_id: str
    levels: dict[int, OccupancySnapshot] = field(default_factory=dict)
    issues: list[Violation] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return sum(s.total_items for s in self.levels.values())


@dataclass(frozen=True)
class Move:
    location_id: str
    product_id: str
    from_level: int
    to_level: int
    quantity: int
    reason: str
    product_name: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PlacementResult:
    valid: bool
    reason: str


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class LocationResult:
    location_id: str
    moves_count: int = 0
    moves: list[Move] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "moves_count": self.moves_count,
            "moves": [m.to_dict() for m in self.moves],
            "errors": list(self.errors),
            "dry_run": self.dry_run,
        }


@dataclass
class RepartitionSummary:
    processed_locations: int = 0
    total_moves: int = 0
    errors: list[str] = field(default_factory=list)
    moves_details: dict[str, list[Move]] = field(default_factory=dict)
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "processed_locations": self.processed_locations,
            "total_moves": self.total_moves,
            "errors": list(self.errors),
            "moves_details": {
                code: [m.to_dict() for m in moves]
                for code, moves in self.moves_details.items()
            },
            "dry_run": self.dry_run,
        }

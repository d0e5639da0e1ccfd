"""DynamoDB backed slotting store.

Tables (names optionally prefixed via settings):
- Locations      PK location_id
- LevelSettings  PK location_id, SK level_number (allowed_categories as JSON string)
- Products       PK product_id
- ProductUnits   PK product_id (volume_per_unit, weight_per_unit)
- Inventory      PK location_id, SK record_key = shelf_level#product_id#batch_id

Reads go through the boto3 resource; `commit` goes through the low-level
client's transact_write_items so that every condition is checked by DynamoDB
at write time.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from slotting.config import SlottingSettings
from slotting.errors import ExecutionError, ListingError, StoreError, TransactionConflictError
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

# DynamoDB transact_write_items limit
MAX_TRANSACTION_ITEMS = 100

_serializer = TypeSerializer()


def _to_native(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, dict):
        return {k: _to_native(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_to_native(i) for i in obj]
    return obj


def _to_dynamo(obj: Any) -> Any:
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _to_dynamo(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, (list, tuple)):
        return [_to_dynamo(i) for i in obj]
    return obj


def _typed(values: dict[str, Any]) -> dict[str, dict]:
    return {k: _serializer.serialize(_to_dynamo(v)) for k, v in values.items() if v is not None}


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class DynamoDBStore(SlottingStore):
    def __init__(
        self,
        settings: Optional[SlottingSettings] = None,
        dynamodb_resource: Optional[Any] = None,
        dynamodb_client: Optional[Any] = None,
    ) -> None:
        self.settings = settings or SlottingSettings()
        region = self.settings.region_name

        self.dynamodb = dynamodb_resource or boto3.resource("dynamodb", region_name=region)
        self.client = dynamodb_client or boto3.client("dynamodb", region_name=region)

        self.locations_table_name = self.settings.table_name("Locations")
        self.level_settings_table_name = self.settings.table_name("LevelSettings")
        self.inventory_table_name = self.settings.table_name("Inventory")

        self.locations_table = self.dynamodb.Table(self.locations_table_name)
        self.level_settings_table = self.dynamodb.Table(self.level_settings_table_name)
        self.products_table = self.dynamodb.Table(self.settings.table_name("Products"))
        self.product_units_table = self.dynamodb.Table(self.settings.table_name("ProductUnits"))
        self.inventory_table = self.dynamodb.Table(self.inventory_table_name)

    # --- Helpers ---

    @staticmethod
    def _collect(operation: Any, **kwargs: Any) -> list[dict]:
        """Runs a query/scan to exhaustion, following LastEvaluatedKey."""
        items: list[dict] = []
        while True:
            response = operation(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    # --- Locations ---

    @staticmethod
    def _location_from_item(item: dict) -> Location:
        item = _to_native(item)
        try:
            status = LocationStatus(item.get("status", "active"))
        except ValueError:
            status = LocationStatus.INACTIVE
        return Location(
            location_id=str(item["location_id"]),
            location_code=item.get("location_code", str(item["location_id"])),
            capacity=int(item.get("capacity", 0)),
            levels=int(item.get("levels", 0)),
            zone=item.get("zone", ""),
            status=status,
            type=item.get("type", "shelf"),
            current_occupancy=int(item.get("current_occupancy", 0)),
        )

    def get_location(self, location_id: str) -> Optional[Location]:
        try:
            response = self.locations_table.get_item(Key={"location_id": location_id})
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Location lookup failed for {location_id}: {e}") from e
        item = response.get("Item")
        return self._location_from_item(item) if item else None

    def put_location(self, location: Location) -> None:
        item = {
            "location_id": location.location_id,
            "location_code": location.location_code,
            "capacity": location.capacity,
            "levels": location.levels,
            "zone": location.zone,
            "status": location.status.value,
            "type": location.type,
            "current_occupancy": location.current_occupancy,
        }
        try:
            self.locations_table.put_item(Item=_to_dynamo(item))
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Location write failed for {location.location_id}: {e}") from e

    def list_repartition_locations(self) -> list[Location]:
        try:
            items = self._collect(
                self.locations_table.scan,
                FilterExpression=Attr("type").eq("shelf") & Attr("status").eq("active"),
            )
            eligible = []
            for item in items:
                location = self._location_from_item(item)
                configs = self._collect(
                    self.level_settings_table.query,
                    KeyConditionExpression=Key("location_id").eq(location.location_id),
                )
                if any(self._config_from_item(c).enable_auto_repartition for c in configs):
                    eligible.append(location)
        except (ClientError, BotoCoreError) as e:
            raise ListingError(f"Listing repartition locations failed: {e}") from e

        eligible.sort(key=lambda loc: (loc.zone, loc.location_code))
        return eligible

    # --- Level configuration ---

    @staticmethod
    def _config_from_item(item: dict) -> LevelConfig:
        item = _to_native(item)
        return LevelConfig.from_record(
            str(item["location_id"]), int(item["level_number"]), item, strict=False
        )

    @staticmethod
    def _config_to_item(config: LevelConfig) -> dict:
        item = config.to_dict()
        if config.allowed_categories is not None:
            item["allowed_categories"] = json.dumps(config.allowed_categories)
        return _to_dynamo(item)

    def get_level_configs(self, location_id: str) -> list[LevelConfig]:
        try:
            items = self._collect(
                self.level_settings_table.query,
                KeyConditionExpression=Key("location_id").eq(location_id),
                ScanIndexForward=True,
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Level settings query failed for {location_id}: {e}") from e
        configs = [self._config_from_item(item) for item in items]
        configs.sort(key=lambda c: c.level_number)
        return configs

    def get_level_config(self, location_id: str, level_number: int) -> Optional[LevelConfig]:
        try:
            response = self.level_settings_table.get_item(
                Key={"location_id": location_id, "level_number": level_number}
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Level settings lookup failed for {location_id}/{level_number}: {e}") from e
        item = response.get("Item")
        return self._config_from_item(item) if item else None

    def put_level_config(self, config: LevelConfig) -> None:
        try:
            self.level_settings_table.put_item(Item=self._config_to_item(config))
        except (ClientError, BotoCoreError) as e:
            raise StoreError(
                f"Level settings write failed for {config.location_id}/{config.level_number}: {e}"
            ) from e

    def delete_level_config(self, location_id: str, level_number: int) -> bool:
        try:
            response = self.level_settings_table.delete_item(
                Key={"location_id": location_id, "level_number": level_number},
                ReturnValues="ALL_OLD",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Level settings delete failed for {location_id}/{level_number}: {e}") from e
        return bool(response.get("Attributes"))

    # --- Products ---

    def get_product(self, product_id: str) -> Optional[Product]:
        try:
            response = self.products_table.get_item(Key={"product_id": product_id})
            item = response.get("Item")
            if not item:
                return None
            units = self.product_units_table.get_item(Key={"product_id": product_id}).get("Item") or {}
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Product lookup failed for {product_id}: {e}") from e

        item = _to_native(item)
        units = _to_native(units)
        return Product(
            product_id=str(item["product_id"]),
            name=item.get("name", ""),
            category=item.get("category", ""),
            volume_per_unit=float(units.get("volume_per_unit") or 0),
            weight_per_unit=float(units.get("weight_per_unit") or 0),
        )

    def put_product(self, product: Product) -> None:
        try:
            self.products_table.put_item(
                Item={"product_id": product.product_id, "name": product.name, "category": product.category}
            )
            self.product_units_table.put_item(
                Item=_to_dynamo(
                    {
                        "product_id": product.product_id,
                        "volume_per_unit": float(product.volume_per_unit),
                        "weight_per_unit": float(product.weight_per_unit),
                    }
                )
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Product write failed for {product.product_id}: {e}") from e

    # --- Inventory ---

    @staticmethod
    def _record_from_item(item: dict) -> InventoryRecord:
        item = _to_native(item)
        return InventoryRecord(
            product_id=str(item["product_id"]),
            location_id=str(item["location_id"]),
            shelf_level=item["shelf_level"],
            quantity=int(item.get("quantity", 0)),
            received_at=item.get("received_at", ""),
            batch_id=str(item.get("batch_id", "")),
            updated_at=item.get("updated_at"),
        )

    @staticmethod
    def _record_to_item(record: InventoryRecord) -> dict:
        return {
            "location_id": record.location_id,
            "record_key": record.record_key,
            "product_id": record.product_id,
            "shelf_level": record.shelf_level,
            "batch_id": record.batch_id,
            "quantity": record.quantity,
            "received_at": record.received_at,
            "updated_at": record.updated_at,
        }

    def list_inventory(
        self, location_id: str, shelf_level: Optional[str] = None
    ) -> list[InventoryRecord]:
        condition = Key("location_id").eq(location_id)
        if shelf_level is not None:
            condition = condition & Key("record_key").begins_with(f"{shelf_level}#")
        try:
            items = self._collect(self.inventory_table.query, KeyConditionExpression=condition)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Inventory query failed for {location_id}: {e}") from e
        return [self._record_from_item(item) for item in items]

    def _record_key(self, record: InventoryRecord) -> dict:
        return _typed({"location_id": record.location_id, "record_key": record.record_key})

    def _transact_item(self, operation: WriteOperation, timestamp: str) -> dict:
        if isinstance(operation, DecrementRecord):
            return {"Update": {
                "TableName": self.inventory_table_name,
                "Key": self._record_key(operation.record),
                "UpdateExpression": "SET quantity = quantity - :qty, updated_at = :ts",
                "ConditionExpression": "quantity >= :qty",
                "ExpressionAttributeValues": _typed({":qty": operation.amount, ":ts": timestamp}),
            }}
        if isinstance(operation, DeleteRecord):
            return {"Delete": {
                "TableName": self.inventory_table_name,
                "Key": self._record_key(operation.record),
                "ConditionExpression": "quantity = :expected",
                "ExpressionAttributeValues": _typed({":expected": operation.expected_quantity}),
            }}
        if isinstance(operation, IncrementRecord):
            return {"Update": {
                "TableName": self.inventory_table_name,
                "Key": self._record_key(operation.record),
                "UpdateExpression": "SET quantity = quantity + :qty, updated_at = :ts",
                "ConditionExpression": "attribute_exists(record_key)",
                "ExpressionAttributeValues": _typed({":qty": operation.amount, ":ts": timestamp}),
            }}
        if isinstance(operation, InsertRecord):
            return {"Put": {
                "TableName": self.inventory_table_name,
                "Item": _typed(self._record_to_item(operation.record)),
                "ConditionExpression": "attribute_not_exists(record_key)",
            }}
        if isinstance(operation, SetOccupancy):
            return {"Update": {
                "TableName": self.locations_table_name,
                "Key": _typed({"location_id": operation.location_id}),
                "UpdateExpression": "SET current_occupancy = :total, updated_at = :ts",
                "ConditionExpression": "attribute_exists(location_id)",
                "ExpressionAttributeValues": _typed({":total": operation.total, ":ts": timestamp}),
            }}
        raise StoreError(f"Unsupported write operation: {operation!r}")

    def commit(self, operations: list[WriteOperation]) -> None:
        if not operations:
            return
        if len(operations) > MAX_TRANSACTION_ITEMS:
            raise ExecutionError(
                f"Transaction needs {len(operations)} writes, limit is {MAX_TRANSACTION_ITEMS}"
            )

        timestamp = utc_now()
        items = [self._transact_item(op, timestamp) for op in operations]
        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException":
                raise TransactionConflictError(
                    f"Transaction cancelled - stock changed or condition not met: {e}"
                ) from e
            raise StoreError(f"Transaction failed: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Transaction failed: {e}") from e

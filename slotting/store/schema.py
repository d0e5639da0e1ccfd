"""DynamoDB table definitions for the slotting store.

6 tables: Locations, LevelSettings, Products, ProductUnits, Inventory, RepartitionLog
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from botocore.exceptions import ClientError

from slotting.config import SlottingSettings

logger = logging.getLogger(__name__)

TABLE_DEFINITIONS = [
    {
        "TableName": "Locations",
        "KeySchema": [
            {"AttributeName": "location_id", "KeyType": "HASH"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "location_id", "AttributeType": "S"},
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": "LevelSettings",
        "KeySchema": [
            {"AttributeName": "location_id", "KeyType": "HASH"},
            {"AttributeName": "level_number", "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "location_id", "AttributeType": "S"},
            {"AttributeName": "level_number", "AttributeType": "N"},
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": "Products",
        "KeySchema": [
            {"AttributeName": "product_id", "KeyType": "HASH"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "product_id", "AttributeType": "S"},
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": "ProductUnits",
        "KeySchema": [
            {"AttributeName": "product_id", "KeyType": "HASH"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "product_id", "AttributeType": "S"},
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": "Inventory",
        "KeySchema": [
            {"AttributeName": "location_id", "KeyType": "HASH"},
            {"AttributeName": "record_key", "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "location_id", "AttributeType": "S"},
            {"AttributeName": "record_key", "AttributeType": "S"},
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": "RepartitionLog",
        "KeySchema": [
            {"AttributeName": "entry_id", "KeyType": "HASH"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "entry_id", "AttributeType": "S"},
            {"AttributeName": "location_id", "AttributeType": "S"},
            {"AttributeName": "timestamp", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "LocationTimeIndex",
                "KeySchema": [
                    {"AttributeName": "location_id", "KeyType": "HASH"},
                    {"AttributeName": "timestamp", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
]


def table_definitions(settings: SlottingSettings) -> list[dict]:
    """Table definitions with the configured name prefix applied."""
    definitions = copy.deepcopy(TABLE_DEFINITIONS)
    for definition in definitions:
        definition["TableName"] = settings.table_name(definition["TableName"])
    return definitions


def create_tables(client: Any, settings: SlottingSettings, wait: bool = True) -> list[str]:
    """Creates missing tables, returns the names that were created."""
    created = []
    for table_def in table_definitions(settings):
        table_name = table_def["TableName"]
        try:
            client.describe_table(TableName=table_name)
            logger.info("%s already exists, skipping", table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise
            logger.info("Creating %s", table_name)
            client.create_table(**table_def)
            if wait:
                client.get_waiter("table_exists").wait(TableName=table_name)
            created.append(table_name)
    return created


def delete_tables(client: Any, settings: SlottingSettings) -> list[str]:
    """Deletes every slotting table that exists (use with care)."""
    deleted = []
    for table_def in table_definitions(settings):
        table_name = table_def["TableName"]
        try:
            client.delete_table(TableName=table_name)
            deleted.append(table_name)
        except ClientError:
            logger.info("%s not found, skipping", table_name)
    return deleted

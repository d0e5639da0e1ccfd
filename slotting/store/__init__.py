from slotting.store.base import SlottingStore
from slotting.store.dynamodb import DynamoDBStore
from slotting.store.memory import InMemoryStore

__all__ = [
    "DynamoDBStore",
    "InMemoryStore",
    "SlottingStore",
]

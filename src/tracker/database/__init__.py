"""Database layer for the collection tracker."""

from .connection import get_connection
from .migrations import MIGRATIONS, Migration, MigrationError, SchemaMigrator
from .models import CollectionMembership, Item, Observation, SchemaVersion, WantEntry
from .store import PriceStore

__all__ = [
    "MIGRATIONS",
    "CollectionMembership",
    "Item",
    "Migration",
    "MigrationError",
    "Observation",
    "PriceStore",
    "SchemaMigrator",
    "SchemaVersion",
    "WantEntry",
    "get_connection",
]

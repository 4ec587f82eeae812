"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from supportflow.core.config import AppSettings
from supportflow.persistence.protocols import IDirectory, IRecordStore
from supportflow.persistence.dynamodb_backend import DynamoDBDirectory, DynamoDBRecordStore
from supportflow.persistence.memory_backend import MemoryDirectory, MemoryRecordStore


def create_persistence(settings: AppSettings | None = None) -> tuple[IRecordStore, IDirectory]:
    """Create wired-up persistence backends from application settings.

    Returns:
        Tuple of (record_store, directory).
    """
    if settings is None:
        settings = AppSettings()

    if settings.store == "memory":
        return MemoryRecordStore(), MemoryDirectory()

    records = DynamoDBRecordStore(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )
    directory = DynamoDBDirectory(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )
    return records, directory

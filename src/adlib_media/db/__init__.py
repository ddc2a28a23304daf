"""Database helpers for the batch pipeline."""

from .postgres import (
    COMPETITOR_ADS_DDL,
    UPSERT_FIELDS,
    PostgresAdStore,
    ensure_schema,
    sql_connect,
    upsert_competitor_ad,
)

__all__ = [
    "COMPETITOR_ADS_DDL",
    "PostgresAdStore",
    "UPSERT_FIELDS",
    "ensure_schema",
    "sql_connect",
    "upsert_competitor_ad",
]

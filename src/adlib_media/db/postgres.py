"""Postgres persistence for competitor ads and their resolved media."""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Mapping, Optional

import psycopg2

from ..logging import jlog

COMPETITOR_ADS_DDL = """
CREATE TABLE IF NOT EXISTS competitor_ads (
    id                 TEXT PRIMARY KEY,
    page_id            TEXT,
    page_name          TEXT,
    snapshot_url       TEXT,
    body               TEXT,
    media_type         TEXT,
    media_url          TEXT,
    original_media_url TEXT,
    ad_creation_time   TIMESTAMPTZ,
    eu_total_reach     BIGINT,
    resolver_version   TEXT,
    created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

UPSERT_FIELDS = (
    "page_id",
    "page_name",
    "snapshot_url",
    "body",
    "media_type",
    "media_url",
    "original_media_url",
    "ad_creation_time",
    "eu_total_reach",
    "resolver_version",
)


def sql_connect(sql_conn: str | None, db_host: str | None = None, db_port: int | None = None):
    """Return a psycopg2 connection over TCP or a Cloud SQL unix socket."""

    dbname = os.getenv("DB_NAME", "adlib")
    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD")
    if not password:
        raise RuntimeError("DB_PASSWORD environment variable is required for database connections")

    if db_host:
        return psycopg2.connect(
            host=db_host,
            port=db_port or 5432,
            dbname=dbname,
            user=user,
            password=password,
            connect_timeout=10,
            sslmode=os.getenv("DB_SSLMODE", "prefer"),
        )

    if not sql_conn:
        raise RuntimeError("sql_conn must be provided when db_host is not set")
    return psycopg2.connect(
        host=f"/cloudsql/{sql_conn}",
        dbname=dbname,
        user=user,
        password=password,
        connect_timeout=10,
    )


def ensure_schema(con) -> None:
    with con.cursor() as cur:
        cur.execute(COMPETITOR_ADS_DDL)
    con.commit()


def upsert_competitor_ad(
    con,
    *,
    ad_id: str,
    page_id: Optional[str] = None,
    page_name: Optional[str] = None,
    snapshot_url: Optional[str] = None,
    body: Optional[str] = None,
    media_type: Optional[str] = None,
    media_url: Optional[str] = None,
    original_media_url: Optional[str] = None,
    ad_creation_time: Optional[datetime | str] = None,
    eu_total_reach: Optional[int] = None,
    resolver_version: Optional[str] = None,
    dry_run: bool = False,
) -> None:
    """Insert or refresh one ad row keyed by ``id``.

    A refresh without media never clears media saved by an earlier run.
    """

    if dry_run:
        jlog("info", event="dry_run_upsert_ad", ad_id=ad_id, media_type=media_type, media_url=media_url)
        return
    assert ad_id, "ad_id required"
    try:
        with con.cursor() as cur:
            cur.execute(
                """
                INSERT INTO competitor_ads(id, page_id, page_name, snapshot_url, body, media_type, media_url,
                                           original_media_url, ad_creation_time, eu_total_reach, resolver_version)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE
                   SET page_id            = COALESCE(EXCLUDED.page_id, competitor_ads.page_id),
                       page_name          = COALESCE(EXCLUDED.page_name, competitor_ads.page_name),
                       snapshot_url       = COALESCE(EXCLUDED.snapshot_url, competitor_ads.snapshot_url),
                       body               = COALESCE(EXCLUDED.body, competitor_ads.body),
                       media_type         = COALESCE(EXCLUDED.media_type, competitor_ads.media_type),
                       media_url          = COALESCE(EXCLUDED.media_url, competitor_ads.media_url),
                       original_media_url = COALESCE(EXCLUDED.original_media_url, competitor_ads.original_media_url),
                       ad_creation_time   = COALESCE(EXCLUDED.ad_creation_time, competitor_ads.ad_creation_time),
                       eu_total_reach     = COALESCE(EXCLUDED.eu_total_reach, competitor_ads.eu_total_reach),
                       resolver_version   = EXCLUDED.resolver_version,
                       updated_at         = NOW()
                """,
                (
                    ad_id,
                    page_id,
                    page_name,
                    snapshot_url,
                    body,
                    media_type,
                    media_url,
                    original_media_url,
                    ad_creation_time,
                    eu_total_reach,
                    resolver_version,
                ),
            )
        con.commit()
    except Exception:
        con.rollback()
        raise
    jlog("info", event="ad_upserted", ad_id=ad_id, media_type=media_type, has_media=bool(media_url))


class PostgresAdStore:
    """``upsert(id, fields)`` record store used by the batch pipeline."""

    def __init__(self, con, *, dry_run: bool = False):
        self.con = con
        self.dry_run = dry_run

    def upsert(self, ad_id: str, fields: Mapping[str, Any]) -> None:
        unknown = set(fields) - set(UPSERT_FIELDS)
        if unknown:
            raise ValueError(f"unknown competitor_ads fields: {sorted(unknown)}")
        upsert_competitor_ad(self.con, ad_id=ad_id, dry_run=self.dry_run, **fields)

    def close(self) -> None:
        try:
            self.con.close()
        except psycopg2.Error as exc:
            jlog("warning", event="db_close_failed", error=str(exc))


__all__ = [
    "COMPETITOR_ADS_DDL",
    "PostgresAdStore",
    "UPSERT_FIELDS",
    "ensure_schema",
    "sql_connect",
    "upsert_competitor_ad",
]

"""Command-line entry point.

    resolve  resolve one snapshot URL through the fallback chain
    ads      fetch a page's ads from the ads archive and resolve each one
    sync     run the managed-job sync pipeline for one or more pages
    check    probe the job-runner credential
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, dataclass
from typing import Any, Sequence

from google.cloud import storage  # type: ignore[attr-defined]

from .ads_archive import AdsArchiveClient
from .config import DEFAULT_STRATEGY_ORDER, Settings
from .db.postgres import PostgresAdStore, ensure_schema, sql_connect
from .jobs import check_job_runner_connectivity
from .logging import jlog
from .models import AdRecord, MediaRef
from .orchestrator import STRATEGY_NAMES, MediaResolver
from .pipeline import SyncProgress, sync_competitors
from .storage import DurableCopier
from .urls import parse_ad_id, strip_access_token


@dataclass(frozen=True)
class CliArgs:
    command: str
    snapshot_url: str | None
    ad_id: str | None
    page_ids: list[str]
    access_token: str | None
    apify_token: str | None
    country: str | None
    strategies: list[str] | None
    extractor_url: str | None
    max_items: int | None
    max_polls: int | None
    poll_interval_s: float | None
    gcs_bucket: str | None
    sql_conn: str | None
    db_host: str | None
    db_port: int | None
    force_refresh: bool
    dry_run: bool
    debug_html: bool
    no_store: bool


def validate_args(ns: argparse.Namespace) -> None:
    if ns.command == "resolve" and not ns.snapshot_url:
        raise ValueError("resolve requires --snapshot-url")
    if ns.command in ("sync", "ads") and not ns.page_ids:
        raise ValueError(f"{ns.command} requires at least one --page-id")
    for name in ns.strategies or []:
        if name not in STRATEGY_NAMES:
            raise ValueError(f"unknown strategy {name!r}; expected one of {', '.join(STRATEGY_NAMES)}")
    if ns.command == "sync" and not ns.dry_run and not (ns.gcs_bucket or ns.no_store):
        jlog(
            "warning",
            event="sync_without_bucket",
            message="No --gcs-bucket/GCS_BUCKET supplied; media URLs will stay on the CDN and may expire.",
        )


def parse_args(argv: Sequence[str] | None = None) -> CliArgs:
    p = argparse.ArgumentParser(description="Resolve Meta ad snapshot media")
    p.add_argument("command", choices=["resolve", "ads", "sync", "check"])
    p.add_argument("--snapshot-url", help="Ad snapshot URL (resolve)")
    p.add_argument("--ad-id", help="Ad id; parsed from --snapshot-url when omitted")
    p.add_argument("--page-id", dest="page_ids", action="append", default=[], help="Competitor page id (repeatable)")
    p.add_argument("--access-token", help="Graph API token for the ads archive (ads)")
    p.add_argument("--apify-token", help="Job-runner token (default from APIFY_TOKEN env)")
    p.add_argument("--country", help="Ad Library country code (default from ADLIB_COUNTRY env or FR)")
    p.add_argument(
        "--strategies",
        type=lambda raw: [part.strip() for part in raw.split(",") if part.strip()],
        help=f"Comma-separated strategy order (default: {','.join(DEFAULT_STRATEGY_ORDER)})",
    )
    p.add_argument("--extractor-url", help="Base URL of a remote extractor service")
    p.add_argument("--max-items", type=int, help="Item cap for the sync job (default 30)")
    p.add_argument("--max-polls", type=int, help="Polling ceiling for managed jobs (default 30)")
    p.add_argument("--poll-interval-s", type=float, help="Seconds between job polls (default 5)")
    p.add_argument("--gcs-bucket", help="Bucket for durable media copies (default from GCS_BUCKET env)")
    p.add_argument("--sql-conn", help="Cloud SQL connection name (default from SQL_CONN env)")
    p.add_argument("--db-host")
    p.add_argument("--db-port", type=int)
    p.add_argument("--force-refresh", action="store_true", help="Ignore cached media and re-resolve")
    p.add_argument("--dry-run", action="store_true", help="Do not write to GCS or Postgres")
    p.add_argument("--debug-html", action="store_true", help="Dump snapshot HTML to media/debug/ when no media is found")
    p.add_argument("--no-store", action="store_true", help="Skip durable copies and upserts entirely")

    ns = p.parse_args(argv)
    validate_args(ns)
    return CliArgs(
        command=ns.command,
        snapshot_url=ns.snapshot_url,
        ad_id=ns.ad_id,
        page_ids=list(ns.page_ids or []),
        access_token=ns.access_token,
        apify_token=ns.apify_token,
        country=ns.country,
        strategies=ns.strategies,
        extractor_url=ns.extractor_url,
        max_items=ns.max_items,
        max_polls=ns.max_polls,
        poll_interval_s=ns.poll_interval_s,
        gcs_bucket=ns.gcs_bucket,
        sql_conn=ns.sql_conn,
        db_host=ns.db_host,
        db_port=ns.db_port,
        force_refresh=ns.force_refresh,
        dry_run=ns.dry_run,
        debug_html=ns.debug_html,
        no_store=ns.no_store,
    )


def settings_from_args(args: CliArgs, base: Settings | None = None) -> Settings:
    base = base or Settings.from_env()
    return base.with_overrides(
        apify_token=args.apify_token,
        country=args.country,
        strategy_order=tuple(args.strategies) if args.strategies else None,
        extractor_url=args.extractor_url,
        max_items=args.max_items,
        max_polls=args.max_polls,
        poll_interval_s=args.poll_interval_s,
        gcs_bucket=args.gcs_bucket,
        sql_conn=args.sql_conn,
        db_host=args.db_host,
        db_port=args.db_port,
        dry_run=args.dry_run or None,
        debug_html=args.debug_html or None,
    )


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=lambda v: getattr(v, "value", None) or str(v)))


def _ad_summary(ad: AdRecord) -> dict[str, Any]:
    media = ad.resolved_media
    return {
        "id": ad.id,
        "page_id": ad.page_id,
        "active": ad.is_active,
        "media_type": media.media_type if media else "UNKNOWN",
        "source": media.source if media else None,
        "media_url": media.url if media else None,
    }


def _media_ref(ref: MediaRef) -> dict[str, Any]:
    return asdict(ref)


async def _run_resolve(args: CliArgs, settings: Settings) -> int:
    resolver = MediaResolver.from_settings(settings)
    try:
        result = await resolver.resolve_single(
            args.snapshot_url,
            ad_id=args.ad_id or parse_ad_id(args.snapshot_url),
            force_refresh=args.force_refresh,
        )
    finally:
        await resolver.close()
    payload: dict[str, Any] = {"snapshot_url": strip_access_token(args.snapshot_url), "ok": result.ok}
    payload.update(asdict(result))
    payload["media_type"] = result.media_type
    _emit(payload)
    return 0 if result.ok else 2


async def _run_ads(args: CliArgs, settings: Settings) -> int:
    client = AdsArchiveClient(timeout_s=settings.http_timeout_s)
    resolver = MediaResolver.from_settings(settings)
    try:
        for page_id in args.page_ids:
            ads = await client.fetch_ads(page_id, args.access_token or "", settings.country)
            resolved = await resolver.resolve_many(ads, force_refresh=args.force_refresh)
            _emit({"page_id": page_id, "ads": [_ad_summary(ad) for ad in resolved]})
    finally:
        await resolver.close()
    return 0


async def _run_sync(args: CliArgs, settings: Settings) -> int:
    copier = None
    store = None
    if not args.no_store:
        if settings.gcs_bucket:
            copier = DurableCopier(
                storage.Client(),
                settings.gcs_bucket,
                prefix=settings.media_prefix,
                timeout_s=settings.http_timeout_s * 2,
                dry_run=settings.dry_run,
            )
        if settings.db_host or settings.sql_conn:
            con = sql_connect(settings.sql_conn, settings.db_host, settings.db_port)
            if not settings.dry_run:
                ensure_schema(con)
            store = PostgresAdStore(con, dry_run=settings.dry_run)

    def on_progress(page_id: str, progress: SyncProgress) -> None:
        print(f"[{page_id}] {progress.message}", file=sys.stderr)

    try:
        results = await sync_competitors(
            args.page_ids,
            settings.apify_token,
            on_progress,
            settings=settings,
            copier=copier,
            store=store,
        )
    finally:
        if store is not None:
            store.close()
    _emit(
        [
            {
                "page_id": r.page_id,
                "error": r.error,
                "media": {ad_id: _media_ref(ref) for ad_id, ref in r.media.items()},
            }
            for r in results
        ]
    )
    return 0 if all(r.ok for r in results) else 1


async def _run_check(args: CliArgs, settings: Settings) -> int:
    status = await check_job_runner_connectivity(settings.apify_token)
    _emit(asdict(status))
    return 0 if status.valid else 1


async def run(args: CliArgs, *, settings: Settings | None = None) -> int:
    """Execute one CLI command and return the process exit code."""

    settings = settings_from_args(args, settings)
    jlog(
        "info",
        event="cli_start",
        command=args.command,
        strategies=list(settings.strategy_order),
        country=settings.country,
        dry_run=settings.dry_run,
    )
    handlers = {
        "resolve": _run_resolve,
        "ads": _run_ads,
        "sync": _run_sync,
        "check": _run_check,
    }
    return await handlers[args.command](args, settings)


__all__ = ["CliArgs", "parse_args", "run", "settings_from_args", "validate_args"]

"""Batch sync: one managed job per competitor, then durable copies and upserts.

submit -> poll -> fetch -> rank -> durable copy -> upsert -> ``{ad_id: MediaRef}``

Records are processed one at a time.  A failed durable copy keeps the
original CDN URL; a failed upsert is logged and the batch goes on.  Job-level
errors (``RemoteJobError``, ``CredentialInvalid``) abort the run after a final
progress event.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from .config import Settings, get_resolver_version, sanitize_token
from .errors import CredentialInvalid, PersistenceFailure, RemoteJobError
from .jobs import ApifyJobRunner, build_run_input, poll_job
from .logging import jlog, logging_context
from .models import BatchJob, MediaRef, MediaType
from .ranking import select_from_record
from .records import (
    record_ad_id,
    record_body,
    record_creation_time,
    record_page_id,
    record_page_name,
    record_reach,
    record_snapshot_url,
)
from .storage import DurableCopier
from .urls import page_library_url

STAGE_SUBMITTED = "submitted"
STAGE_WAITING = "waiting"
STAGE_FETCHING = "fetching"
STAGE_DOWNLOADING = "downloading"
STAGE_SAVED = "saved"
STAGE_DONE = "done"
STAGE_ERROR = "error"


@dataclass(frozen=True)
class SyncProgress:
    stage: str
    message: str
    processed: int = 0
    total: int = 0


ProgressCallback = Callable[[SyncProgress], None]


class SyncPipeline:
    def __init__(
        self,
        runner: Any,
        *,
        settings: Settings,
        copier: DurableCopier | None = None,
        store: Any | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.runner = runner
        self.settings = settings
        self.copier = copier
        self.store = store
        self.sleep = sleep

    async def run(self, page_ids: Sequence[str], on_progress: Optional[ProgressCallback] = None) -> dict[str, MediaRef]:
        page_ids = [str(p).strip() for p in page_ids if str(p).strip()]
        if not page_ids:
            raise ValueError("at least one page id is required")

        last = {"processed": 0, "total": 0}

        def emit(stage: str, message: str, processed: int | None = None, total: int | None = None) -> None:
            processed = last["processed"] if processed is None else processed
            total = last["total"] if total is None else total
            last.update(processed=processed, total=total)
            jlog("info", event="sync_progress", stage=stage, message=message, processed=processed, total=total)
            if on_progress is not None:
                on_progress(SyncProgress(stage, message, processed, total))

        try:
            s = self.settings
            run_input = build_run_input(
                [page_library_url(pid, s.country) for pid in page_ids],
                max_items=s.max_items,
                include_ad_details=True,
                country=s.country,
            )
            job: BatchJob = await self.runner.submit(run_input, page_ids)
            emit(STAGE_SUBMITTED, f"Scrape job {job.job_id} submitted for {len(page_ids)} page(s)")

            def on_poll(j: BatchJob) -> None:
                emit(STAGE_WAITING, f"Waiting for job {j.job_id} (poll {j.polls}/{s.max_polls}, {j.status.value})")

            await poll_job(
                self.runner,
                job,
                interval_s=s.poll_interval_s,
                max_polls=s.max_polls,
                on_poll=on_poll,
                sleep=self.sleep,
            )
            emit(STAGE_FETCHING, "Fetching results")
            records = await self.runner.fetch_results(job)

            total = len(records)
            emit(STAGE_DOWNLOADING, f"Processing {total} ad(s)", 0, total)
            results: dict[str, MediaRef] = {}
            fallback_page_id = page_ids[0] if len(page_ids) == 1 else None
            for processed, record in enumerate(records, start=1):
                ad_id = record_ad_id(record)
                ref = await self._process_record(record, ad_id, fallback_page_id)
                if ad_id and ref is not None:
                    results[ad_id] = ref
                emit(STAGE_SAVED, f"Saved {processed}/{total}", processed, total)

            emit(STAGE_DONE, f"Sync complete: {len(results)} ad(s) with media", total, total)
            return results
        except Exception as exc:
            emit(STAGE_ERROR, f"Error: {exc}")
            raise

    async def _process_record(
        self,
        record: Mapping[str, Any],
        ad_id: str | None,
        fallback_page_id: str | None,
    ) -> MediaRef | None:
        picked = select_from_record(record)
        page_id = record_page_id(record) or fallback_page_id
        original_url: str | None = None
        media_type: MediaType | None = None
        final_url: str | None = None
        durable: bool | None = None

        if picked is not None:
            original_url, media_type = picked
            final_url = original_url
            if self.copier is not None and ad_id:
                try:
                    copied = await asyncio.to_thread(self.copier.copy, ad_id, original_url, media_type, page_id=page_id)
                except PersistenceFailure as exc:
                    jlog("warning", event="durable_copy_failed", ad_id=ad_id, error=str(exc)[:300])
                else:
                    if copied:
                        final_url, durable = copied, True

        persisted = False
        if self.store is not None and ad_id:
            fields = {
                "page_id": page_id,
                "page_name": record_page_name(record),
                "snapshot_url": record_snapshot_url(record),
                "body": record_body(record),
                "media_type": media_type.value if media_type else None,
                "media_url": final_url,
                "original_media_url": original_url,
                "ad_creation_time": record_creation_time(record),
                "eu_total_reach": record_reach(record),
                "resolver_version": get_resolver_version(),
            }
            try:
                await asyncio.to_thread(self.store.upsert, ad_id, fields)
                persisted = True
            except Exception as exc:
                jlog("error", event="record_upsert_failed", ad_id=ad_id, error=f"{type(exc).__name__}: {exc}")

        if picked is None or final_url is None or media_type is None:
            jlog("info", event="record_without_media", ad_id=ad_id)
            return None
        return MediaRef(
            media_url=final_url,
            media_type=media_type,
            original_url=original_url or final_url,
            durable=durable,
            persisted=persisted,
        )


def build_runner(credential: str, settings: Settings) -> ApifyJobRunner:
    return ApifyJobRunner(
        sanitize_token(credential),
        actor_id=settings.actor_id,
        memory_mbytes=settings.job_memory_mbytes,
    )


async def run_sync_pipeline(
    page_ids: Sequence[str],
    credential: str | None,
    on_progress: Optional[ProgressCallback] = None,
    *,
    settings: Settings | None = None,
    runner: Any | None = None,
    copier: DurableCopier | None = None,
    store: Any | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> dict[str, MediaRef]:
    """Run one full sync cycle for ``page_ids`` and return ``{ad_id: MediaRef}``."""

    settings = settings or Settings.from_env()
    runner = runner or build_runner(credential or settings.apify_token or "", settings)
    pipeline = SyncPipeline(runner, settings=settings, copier=copier, store=store, sleep=sleep)
    return await pipeline.run(page_ids, on_progress)


async def resolve_batch(
    target_ids: Sequence[str],
    credential: str | None,
    on_progress: Optional[ProgressCallback] = None,
    **kwargs: Any,
) -> dict[str, MediaRef]:
    return await run_sync_pipeline(target_ids, credential, on_progress, **kwargs)


@dataclass
class CompetitorSyncResult:
    page_id: str
    media: dict[str, MediaRef] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def sync_competitors(
    page_ids: Sequence[str],
    credential: str | None,
    on_progress: Optional[Callable[[str, SyncProgress], None]] = None,
    **kwargs: Any,
) -> list[CompetitorSyncResult]:
    """One full cycle per competitor, strictly one after the other.

    A job failure is recorded and the next competitor runs; a rejected
    credential stops the whole sync.
    """

    out: list[CompetitorSyncResult] = []
    for page_id in page_ids:
        callback = (lambda p, pid=page_id: on_progress(pid, p)) if on_progress else None
        with logging_context(competitor=page_id):
            try:
                media = await run_sync_pipeline([page_id], credential, callback, **kwargs)
            except CredentialInvalid:
                raise
            except (RemoteJobError, PersistenceFailure) as exc:
                jlog("error", event="competitor_sync_failed", page_id=page_id, error=str(exc))
                out.append(CompetitorSyncResult(page_id, error=str(exc)))
                continue
        out.append(CompetitorSyncResult(page_id, media=media))
    return out


__all__ = [
    "CompetitorSyncResult",
    "SyncPipeline",
    "SyncProgress",
    "build_runner",
    "resolve_batch",
    "run_sync_pipeline",
    "sync_competitors",
]

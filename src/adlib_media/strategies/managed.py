"""Last-resort strategy: a paid one-item job on the managed scraper."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from ..errors import NoCandidateFound
from ..jobs import build_run_input, poll_job
from ..models import ExtractionSource, Success
from ..ranking import select_from_record
from ..records import record_ad_id
from ..urls import direct_target_url, parse_ad_id
from .base import ExtractionStrategy

# Slack on top of the polling ceiling for submit and result fetch.
SUBMIT_FETCH_GRACE_S = 60.0


class ManagedJobStrategy(ExtractionStrategy):
    name = "managed"

    def __init__(
        self,
        runner: Any | None,
        *,
        max_items: int = 1,
        poll_interval_s: float = 5.0,
        max_polls: int = 30,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.runner = runner
        self.max_items = max_items
        self.poll_interval_s = poll_interval_s
        self.max_polls = max_polls
        self.sleep = sleep
        self.timeout_s = poll_interval_s * max_polls + SUBMIT_FETCH_GRACE_S

    def is_available(self) -> bool:
        return self.runner is not None

    async def _resolve(self, snapshot_url: str, *, ad_id: str | None = None) -> Success:
        target = direct_target_url(snapshot_url)
        wanted = ad_id or parse_ad_id(snapshot_url)
        job = await self.runner.submit(
            build_run_input([target], max_items=self.max_items),
            [wanted or target],
        )
        await poll_job(
            self.runner,
            job,
            interval_s=self.poll_interval_s,
            max_polls=self.max_polls,
            sleep=self.sleep,
        )
        records = await self.runner.fetch_results(job)

        # Prefer the record for the requested ad; a one-item job usually has only that one.
        if wanted:
            records = sorted(records, key=lambda r: record_ad_id(r) != wanted)
        for record in records:
            picked = select_from_record(record)
            if picked is not None:
                url, media_type = picked
                return Success(url=url, media_type=media_type, source=ExtractionSource.MANAGED_JOB)
        raise NoCandidateFound(f"job {job.job_id} returned {len(records)} record(s) without media")


__all__ = ["ManagedJobStrategy"]

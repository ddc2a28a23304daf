"""Managed scrape jobs on the Apify platform.

A job is submitted once, polled at a fixed interval up to a ceiling, and its
dataset is fetched once after success.  The runner is an explicit object so
the pipeline and the managed strategy can be tested against fakes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from apify_client import ApifyClientAsync
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from .config import sanitize_token
from .errors import CredentialInvalid, RemoteJobError, is_auth_error
from .logging import jlog
from .models import BatchJob, JobStatus

RUNNER_SERVICE = "job runner"


def build_run_input(
    target_urls: list[str],
    *,
    max_items: int,
    include_ad_details: bool = True,
    country: str | None = None,
) -> dict[str, Any]:
    """Input document for the ads-library scraper actor."""

    run_input: dict[str, Any] = {
        "urls": [{"url": url} for url in target_urls],
        "count": max_items,
        "scrapeAdDetails": include_ad_details,
        "scrapePageAds.activeStatus": "all",
    }
    if country:
        run_input["scrapePageAds.countryCode"] = country
    return run_input


class ApifyJobRunner:
    """Thin async wrapper over ``ApifyClientAsync`` for one actor."""

    def __init__(
        self,
        token: str,
        *,
        actor_id: str,
        memory_mbytes: int = 1024,
        timeout_s: int = 600,
        client: Any = None,
    ):
        if not token:
            raise CredentialInvalid(RUNNER_SERVICE, "APIFY_TOKEN not configured")
        self.actor_id = actor_id
        self.memory_mbytes = memory_mbytes
        self.timeout_s = timeout_s
        self.client = client or ApifyClientAsync(token)
        jlog("info", event="job_runner_init", actor_id=actor_id, token_prefix=token[:4] + "...")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=2, min=2, max=8),
        retry=retry_if_not_exception_type(CredentialInvalid),
        reraise=True,
    )
    async def submit(self, run_input: dict[str, Any], target_ids: list[str]) -> BatchJob:
        try:
            run = await self.client.actor(self.actor_id).start(
                run_input=run_input,
                memory_mbytes=self.memory_mbytes,
                timeout_secs=self.timeout_s,
            )
        except Exception as exc:
            if is_auth_error(exc):
                raise CredentialInvalid(RUNNER_SERVICE) from exc
            jlog("warning", event="job_submit_error", actor_id=self.actor_id, error=f"{type(exc).__name__}: {exc}")
            raise
        job = BatchJob(
            job_id=run["id"],
            target_ids=list(target_ids),
            status=JobStatus.parse(run.get("status")),
            result_locator=run.get("defaultDatasetId"),
        )
        jlog("info", event="job_submitted", job_id=job.job_id, actor_id=self.actor_id, targets=len(job.target_ids))
        return job

    async def get_status(self, job: BatchJob) -> JobStatus:
        try:
            run = await self.client.run(job.job_id).get()
        except Exception as exc:
            if is_auth_error(exc):
                raise CredentialInvalid(RUNNER_SERVICE) from exc
            raise
        if not run:
            raise RemoteJobError(JobStatus.FAILED, job.job_id, f"scrape job {job.job_id} not found")
        job.status = JobStatus.parse(run.get("status"))
        job.result_locator = run.get("defaultDatasetId") or job.result_locator
        return job.status

    async def fetch_results(self, job: BatchJob) -> list[dict[str, Any]]:
        if not job.result_locator:
            raise RemoteJobError(job.status, job.job_id, f"scrape job {job.job_id} has no result dataset")
        try:
            page = await self.client.dataset(job.result_locator).list_items(clean=True)
        except Exception as exc:
            if is_auth_error(exc):
                raise CredentialInvalid(RUNNER_SERVICE) from exc
            raise RemoteJobError(job.status, job.job_id, f"could not fetch results: {exc}") from exc
        items = list(page.items or [])
        jlog("info", event="job_results_fetched", job_id=job.job_id, items=len(items))
        return items

    async def probe_identity(self) -> str:
        """Return the account label behind the token; raises CredentialInvalid on 401."""

        try:
            me = await self.client.user().get()
        except Exception as exc:
            if is_auth_error(exc):
                raise CredentialInvalid(RUNNER_SERVICE) from exc
            raise
        if not me:
            raise CredentialInvalid(RUNNER_SERVICE)
        return str(me.get("username") or me.get("email") or me.get("id") or "unknown")


async def poll_job(
    runner: Any,
    job: BatchJob,
    *,
    interval_s: float,
    max_polls: int,
    on_poll: Optional[Callable[[BatchJob], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> BatchJob:
    """Poll until the job is terminal; returns the job only when it SUCCEEDED.

    FAILED, ABORTED and a remote TIMED-OUT raise :class:`RemoteJobError` with
    that status; exhausting ``max_polls`` raises it with ``TIMED_OUT``.
    """

    while job.polls < max_polls:
        await sleep(interval_s)
        job.polls += 1
        status = await runner.get_status(job)
        jlog("info", event="job_poll", job_id=job.job_id, poll=job.polls, status=status)
        if on_poll is not None:
            on_poll(job)
        if status == JobStatus.SUCCEEDED:
            return job
        if status.is_terminal:
            raise RemoteJobError(status, job.job_id)
    job.status = JobStatus.TIMED_OUT
    jlog("error", event="job_poll_ceiling", job_id=job.job_id, polls=job.polls)
    raise RemoteJobError(JobStatus.TIMED_OUT, job.job_id)


@dataclass(frozen=True)
class ConnectivityStatus:
    valid: bool
    account_label: str | None = None
    error: str | None = None


async def check_job_runner_connectivity(
    token: str | None,
    *,
    runner_factory: Optional[Callable[[str], Any]] = None,
) -> ConnectivityStatus:
    """Probe the job runner's identity endpoint. Never raises."""

    token = sanitize_token(token)
    if not token:
        return ConnectivityStatus(valid=False, error="no job-runner token configured")
    try:
        runner = runner_factory(token) if runner_factory else ApifyJobRunner(token, actor_id="")
        label = await runner.probe_identity()
    except CredentialInvalid as exc:
        return ConnectivityStatus(valid=False, error=str(exc))
    except Exception as exc:
        jlog("warning", event="job_runner_probe_error", error=f"{type(exc).__name__}: {exc}")
        return ConnectivityStatus(valid=False, error=f"{type(exc).__name__}: {exc}")
    jlog("info", event="job_runner_probe_ok", account=label)
    return ConnectivityStatus(valid=True, account_label=label)


__all__ = [
    "ApifyJobRunner",
    "ConnectivityStatus",
    "build_run_input",
    "check_job_runner_connectivity",
    "poll_job",
]

"""Value types shared across strategies, ranking, the orchestrator and the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

UTC = getattr(datetime, "UTC", timezone.utc)


class MediaType(str, Enum):
    VIDEO = "VIDEO"
    IMAGE = "IMAGE"
    DYNAMIC_IMAGE = "DYNAMIC_IMAGE"
    SCREENSHOT = "SCREENSHOT"
    UNKNOWN = "UNKNOWN"


class ExtractionSource(str, Enum):
    NETWORK_OBSERVED = "NETWORK_OBSERVED"
    DOM_VIDEO_TAG = "DOM_VIDEO_TAG"
    DOM_EMBEDDED_JSON = "DOM_EMBEDDED_JSON"
    DOM_IMG_TAG = "DOM_IMG_TAG"
    NETWORK_FALLBACK = "NETWORK_FALLBACK"
    META_TAG_FALLBACK = "META_TAG_FALLBACK"
    MANAGED_JOB = "MANAGED_JOB"
    SCREENSHOT_CAPTURE = "SCREENSHOT_CAPTURE"


class FailureReason(str, Enum):
    UNREACHABLE = "UNREACHABLE"
    NO_CANDIDATE = "NO_CANDIDATE"
    TIMEOUT = "TIMEOUT"
    NAVIGATION_ERROR = "NAVIGATION_ERROR"
    NOT_CONFIGURED = "NOT_CONFIGURED"


class JobStatus(str, Enum):
    READY = "READY"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    TIMED_OUT = "TIMED_OUT"

    @classmethod
    def parse(cls, raw: str | None) -> "JobStatus":
        # The job runner spells its own timeout "TIMED-OUT"; transitional
        # states (TIMING-OUT, ABORTING) are still running from our side.
        value = (raw or "").strip().upper().replace("-", "_")
        if value in ("TIMING_OUT", "ABORTING"):
            return cls.RUNNING
        try:
            return cls(value)
        except ValueError:
            return cls.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self not in (JobStatus.READY, JobStatus.RUNNING)


# Higher wins in the merge layer.  Screenshots carry no canonical URL and are
# always replaceable; managed-job results are durable copies.
SOURCE_CONFIDENCE: dict[ExtractionSource, int] = {
    ExtractionSource.SCREENSHOT_CAPTURE: 0,
    ExtractionSource.META_TAG_FALLBACK: 1,
    ExtractionSource.NETWORK_FALLBACK: 2,
    ExtractionSource.DOM_IMG_TAG: 2,
    ExtractionSource.NETWORK_OBSERVED: 3,
    ExtractionSource.DOM_EMBEDDED_JSON: 3,
    ExtractionSource.DOM_VIDEO_TAG: 4,
    ExtractionSource.MANAGED_JOB: 5,
}


@dataclass(frozen=True)
class Candidate:
    """A media reference seen during one extraction attempt, not yet selected."""

    url: str
    media_type: MediaType
    source: ExtractionSource
    size_hint: int | None = None


@dataclass(frozen=True)
class Success:
    url: str
    media_type: MediaType
    source: ExtractionSource

    ok = True


@dataclass(frozen=True)
class Failure:
    reason: FailureReason
    detail: str = ""

    ok = False

    @property
    def media_type(self) -> MediaType:
        return MediaType.UNKNOWN


ExtractionResult = Union[Success, Failure]


@dataclass(frozen=True)
class ResolvedMedia:
    url: str
    media_type: MediaType
    source: ExtractionSource
    resolved_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_success(cls, result: Success) -> "ResolvedMedia":
        return cls(url=result.url, media_type=result.media_type, source=result.source)

    def to_success(self) -> Success:
        return Success(url=self.url, media_type=self.media_type, source=self.source)

    @property
    def confidence(self) -> int:
        return SOURCE_CONFIDENCE.get(self.source, 0)

    @property
    def is_screenshot(self) -> bool:
        return self.media_type == MediaType.SCREENSHOT or self.source == ExtractionSource.SCREENSHOT_CAPTURE


@dataclass(frozen=True)
class AdRecord:
    """One observed advertisement, owned by the caller's competitor aggregate."""

    id: str
    snapshot_url: str
    creation_time: datetime | None = None
    stop_time: datetime | None = None
    page_id: str | None = None
    page_name: str | None = None
    bodies: tuple[str, ...] = ()
    resolved_media: ResolvedMedia | None = None

    @property
    def is_active(self) -> bool:
        return self.stop_time is None

    def with_media(self, media: ResolvedMedia | None) -> "AdRecord":
        return replace(self, resolved_media=media)


@dataclass
class BatchJob:
    job_id: str
    target_ids: list[str]
    status: JobStatus = JobStatus.READY
    result_locator: Optional[str] = None
    polls: int = 0


@dataclass(frozen=True)
class MediaRef:
    """Batch pipeline output entry for one ad id."""

    media_url: str
    media_type: MediaType
    original_url: str
    # None: the durable copy failed or was skipped, so media_url is the CDN
    # original and may expire.
    durable: bool | None = None
    persisted: bool = False


__all__ = [
    "AdRecord",
    "BatchJob",
    "Candidate",
    "ExtractionResult",
    "ExtractionSource",
    "Failure",
    "FailureReason",
    "JobStatus",
    "MediaRef",
    "MediaType",
    "ResolvedMedia",
    "SOURCE_CONFIDENCE",
    "Success",
]

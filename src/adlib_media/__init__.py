"""Media resolution for Meta ad snapshots: strategies, ranking, fallback chain and batch sync."""

from .config import Settings, get_resolver_version, sanitize_token
from .errors import (
    CredentialInvalid,
    MediaResolutionError,
    NoCandidateFound,
    PersistenceFailure,
    RemoteJobError,
    StrategyTimeout,
    Unreachable,
)
from .jobs import ConnectivityStatus, check_job_runner_connectivity
from .logging import adlog, configure_logging, jlog
from .merge import apply_batch_results, merge_refreshed_ads, merge_resolved_media
from .models import (
    AdRecord,
    Candidate,
    ExtractionResult,
    ExtractionSource,
    Failure,
    FailureReason,
    JobStatus,
    MediaRef,
    MediaType,
    ResolvedMedia,
    Success,
)
from .orchestrator import MediaResolver
from .pipeline import SyncProgress, resolve_batch, run_sync_pipeline, sync_competitors
from .ranking import select_candidate, select_from_record

__all__ = [
    "AdRecord",
    "Candidate",
    "ConnectivityStatus",
    "CredentialInvalid",
    "ExtractionResult",
    "ExtractionSource",
    "Failure",
    "FailureReason",
    "JobStatus",
    "MediaRef",
    "MediaResolutionError",
    "MediaResolver",
    "MediaType",
    "NoCandidateFound",
    "PersistenceFailure",
    "RemoteJobError",
    "ResolvedMedia",
    "Settings",
    "StrategyTimeout",
    "Success",
    "SyncProgress",
    "Unreachable",
    "adlog",
    "apply_batch_results",
    "check_job_runner_connectivity",
    "configure_logging",
    "get_resolver_version",
    "jlog",
    "merge_refreshed_ads",
    "merge_resolved_media",
    "resolve_batch",
    "run_sync_pipeline",
    "sanitize_token",
    "select_candidate",
    "select_from_record",
    "sync_competitors",
]

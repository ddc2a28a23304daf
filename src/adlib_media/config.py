"""Runtime configuration resolved from environment variables.

Every knob has an ``ADLIB_*`` environment override so the same code runs from
the CLI, a worker, or tests.  CLI flags in :mod:`adlib_media.cli` take
precedence over the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any

SCRIPT_NAME = "adlib_media"
SCRIPT_VERSION = "2026-10-18.1"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
DEFAULT_RELAYS = (
    "https://api.allorigins.win/raw?url=",
    "https://corsproxy.io/?",
    "https://api.codetabs.com/v1/proxy?quest=",
)
# Cheapest first; the managed job is paid and runs last.
DEFAULT_STRATEGY_ORDER = ("proxy", "headless", "remote", "managed")
DEFAULT_ACTOR_ID = "curious_coder/facebook-ads-library-scraper"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def sanitize_token(token: str | None) -> str:
    """Strip whitespace, a leading "Bearer " and surrounding quotes from a pasted credential."""

    clean = (token or "").strip()
    if clean.lower().startswith("bearer "):
        clean = clean[7:].strip()
    return clean.strip("\"'")


def get_resolver_version() -> str:
    """Version string stamped on uploads and rows; ``ADLIB_VERSION`` overrides."""

    return os.getenv("ADLIB_VERSION", f"{SCRIPT_NAME}:{SCRIPT_VERSION}")


@dataclass(frozen=True)
class Settings:
    user_agent: str = DEFAULT_USER_AGENT
    strategy_order: tuple[str, ...] = DEFAULT_STRATEGY_ORDER
    relays: tuple[str, ...] = DEFAULT_RELAYS

    # Per-strategy hard ceilings (seconds).
    proxy_timeout_s: float = 20.0
    headless_timeout_s: float = 40.0
    remote_timeout_s: float = 30.0
    http_timeout_s: float = 15.0

    # Headless session tuning.
    page_timeout_ms: int = 25000
    settle_ms: int = 4000
    post_scroll_settle_ms: int = 1500
    scroll_px: int = 300
    viewport_width: int = 1080
    viewport_height: int = 1080
    device_scale_factor: int = 2
    locale: str = "fr-FR"
    min_img_px: int = 400
    debug_html: bool = False

    # Remote extractor endpoint (local service or serverless function).
    extractor_url: str | None = None

    # Managed job runner.
    apify_token: str | None = None
    actor_id: str = DEFAULT_ACTOR_ID
    country: str = "FR"
    max_items: int = 30
    single_max_items: int = 1
    poll_interval_s: float = 5.0
    max_polls: int = 30
    job_memory_mbytes: int = 1024

    # Durable copy + record store.
    gcs_bucket: str | None = None
    media_prefix: str = "ads-media"
    db_host: str | None = None
    db_port: int | None = None
    sql_conn: str | None = None
    dry_run: bool = False

    # Screenshots have no stable URL; after this age they are re-resolved.
    screenshot_ttl_s: int = 7 * 24 * 3600

    @classmethod
    def from_env(cls) -> "Settings":
        db_port = os.getenv("DB_PORT")
        return cls(
            user_agent=os.getenv("ADLIB_USER_AGENT", DEFAULT_USER_AGENT),
            strategy_order=_env_list("ADLIB_STRATEGIES", DEFAULT_STRATEGY_ORDER),
            relays=_env_list("ADLIB_RELAYS", DEFAULT_RELAYS),
            proxy_timeout_s=_env_float("ADLIB_PROXY_TIMEOUT_S", 20.0),
            headless_timeout_s=_env_float("ADLIB_HEADLESS_TIMEOUT_S", 40.0),
            remote_timeout_s=_env_float("ADLIB_REMOTE_TIMEOUT_S", 30.0),
            http_timeout_s=_env_float("ADLIB_HTTP_TIMEOUT_S", 15.0),
            page_timeout_ms=_env_int("ADLIB_PAGE_TIMEOUT_MS", 25000),
            settle_ms=_env_int("ADLIB_SETTLE_MS", 4000),
            post_scroll_settle_ms=_env_int("ADLIB_POST_SCROLL_SETTLE_MS", 1500),
            device_scale_factor=_env_int("DEVICE_SCALE_FACTOR", 2),
            locale=os.getenv("ADLIB_LOCALE", "fr-FR"),
            debug_html=_env_bool("ADLIB_DEBUG_HTML"),
            extractor_url=os.getenv("ADLIB_EXTRACTOR_URL") or None,
            apify_token=os.getenv("APIFY_TOKEN") or None,
            actor_id=os.getenv("ADLIB_ACTOR_ID", DEFAULT_ACTOR_ID),
            country=os.getenv("ADLIB_COUNTRY", "FR"),
            max_items=_env_int("ADLIB_MAX_ITEMS", 30),
            poll_interval_s=_env_float("ADLIB_POLL_INTERVAL_S", 5.0),
            max_polls=_env_int("ADLIB_MAX_POLLS", 30),
            gcs_bucket=os.getenv("GCS_BUCKET") or None,
            media_prefix=os.getenv("ADLIB_MEDIA_PREFIX", "ads-media"),
            db_host=os.getenv("DB_HOST") or None,
            db_port=int(db_port) if db_port else None,
            sql_conn=os.getenv("SQL_CONN") or None,
            dry_run=_env_bool("ADLIB_DRY_RUN"),
            screenshot_ttl_s=_env_int("ADLIB_SCREENSHOT_TTL_S", 7 * 24 * 3600),
        )

    def with_overrides(self, **fields: Any) -> "Settings":
        """Return a copy with the non-None ``fields`` applied."""

        return replace(self, **{k: v for k, v in fields.items() if v is not None})


__all__ = [
    "DEFAULT_ACTOR_ID",
    "DEFAULT_RELAYS",
    "DEFAULT_STRATEGY_ORDER",
    "DEFAULT_USER_AGENT",
    "Settings",
    "get_resolver_version",
    "sanitize_token",
]

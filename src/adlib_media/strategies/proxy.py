"""Cheapest strategy: fetch raw snapshot HTML through public CORS relays."""

from __future__ import annotations

import asyncio
import time
import urllib.parse
from collections.abc import Sequence
from typing import Callable

import requests

from ..errors import NoCandidateFound, Unreachable
from ..logging import jlog
from ..models import Success
from ..patterns import scan_html
from ..ranking import select_candidate
from .base import ExtractionStrategy, success_from_candidate


# Part of the strategy budget never handed to relay requests.
RELAY_BUDGET_SLACK_S = 1.0


def relay_url(relay: str, snapshot_url: str) -> str:
    return relay + urllib.parse.quote(snapshot_url, safe="")


class ProxyScrapeStrategy(ExtractionStrategy):
    name = "proxy"

    def __init__(
        self,
        relays: Sequence[str],
        *,
        timeout_s: float = 20.0,
        http_timeout_s: float = 15.0,
        user_agent: str | None = None,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.relays = tuple(relays)
        self.clock = clock
        self.timeout_s = timeout_s
        self.http_timeout_s = http_timeout_s
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers.update({"User-Agent": user_agent})

    def is_available(self) -> bool:
        return bool(self.relays)

    def _fetch_sync(self, snapshot_url: str) -> str:
        errors: list[str] = []
        deadline = self.clock() + max(self.timeout_s - RELAY_BUDGET_SLACK_S, 0.0)
        for index, relay in enumerate(self.relays):
            host = urllib.parse.urlparse(relay).netloc
            remaining = deadline - self.clock()
            if remaining <= 0:
                errors.append(f"{host}: skipped, budget exhausted")
                jlog("info", event="proxy_relay_skipped", relay=host)
                continue
            # Split what is left evenly over the relays not yet tried.
            per_relay = min(self.http_timeout_s, remaining / (len(self.relays) - index))
            try:
                resp = self.session.get(relay_url(relay, snapshot_url), timeout=per_relay)
            except requests.RequestException as exc:
                errors.append(f"{host}: {type(exc).__name__}")
                jlog("info", event="proxy_relay_failed", relay=host, error=str(exc)[:200])
                continue
            if 200 <= resp.status_code < 300 and resp.text:
                jlog("info", event="proxy_relay_ok", relay=host, bytes=len(resp.text))
                return resp.text
            errors.append(f"{host}: HTTP {resp.status_code}")
            jlog("info", event="proxy_relay_failed", relay=host, status=resp.status_code)
        raise Unreachable("all relays failed (" + "; ".join(errors) + ")")

    async def fetch_html(self, snapshot_url: str) -> str:
        return await asyncio.to_thread(self._fetch_sync, snapshot_url)

    async def _resolve(self, snapshot_url: str, *, ad_id: str | None = None) -> Success:
        html_text = await self.fetch_html(snapshot_url)
        winner = select_candidate(scan_html(html_text))
        if winner is None:
            raise NoCandidateFound("no media pattern in relayed HTML")
        return success_from_candidate(winner)


__all__ = ["ProxyScrapeStrategy", "relay_url"]

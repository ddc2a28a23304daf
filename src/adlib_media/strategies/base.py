"""Common contract for media extraction strategies."""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod

from ..errors import CredentialInvalid, RemoteJobError, StrategyError
from ..logging import adlog
from ..models import ExtractionResult, Failure, FailureReason, Success
from ..urls import strip_access_token


class ExtractionStrategy(ABC):
    """One technique for turning a snapshot URL into a single media reference.

    Subclasses implement :meth:`_resolve` and raise :class:`StrategyError`
    subclasses for expected misses.  :meth:`resolve` enforces the hard
    timeout and turns every error into a :class:`Failure`, except
    :class:`CredentialInvalid`, which callers must see.
    """

    name: str = "strategy"
    timeout_s: float = 30.0

    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def _resolve(self, snapshot_url: str, *, ad_id: str | None = None) -> Success:
        raise NotImplementedError

    async def resolve(self, snapshot_url: str, *, ad_id: str | None = None) -> ExtractionResult:
        log_url = strip_access_token(snapshot_url)
        if not self.is_available():
            adlog("strategy_skipped", ad_id=ad_id, url=log_url, strategy=self.name, reason="not_configured")
            return Failure(FailureReason.NOT_CONFIGURED, f"{self.name} is not configured")

        started = time.monotonic()
        adlog("strategy_attempt", ad_id=ad_id, url=log_url, strategy=self.name, timeout_s=self.timeout_s)
        try:
            result: ExtractionResult = await asyncio.wait_for(self._resolve(snapshot_url, ad_id=ad_id), self.timeout_s)
        except asyncio.TimeoutError:
            result = Failure(FailureReason.TIMEOUT, f"{self.name} exceeded {self.timeout_s}s")
        except CredentialInvalid:
            adlog("strategy_credential_rejected", ad_id=ad_id, url=log_url, level="error", strategy=self.name)
            raise
        except StrategyError as exc:
            result = Failure(exc.reason, str(exc))
        except RemoteJobError as exc:
            result = Failure(FailureReason.UNREACHABLE, str(exc))
        except Exception as exc:
            result = Failure(FailureReason.UNREACHABLE, f"{type(exc).__name__}: {exc}")

        elapsed_ms = int((time.monotonic() - started) * 1000)
        if result.ok:
            adlog(
                "strategy_success",
                ad_id=ad_id,
                url=log_url,
                strategy=self.name,
                media_type=result.media_type,
                source=result.source,
                elapsed_ms=elapsed_ms,
            )
        else:
            adlog(
                "strategy_failure",
                ad_id=ad_id,
                url=log_url,
                level="warning",
                strategy=self.name,
                reason=result.reason,
                detail=result.detail[:300],
                elapsed_ms=elapsed_ms,
            )
        return result


def success_from_candidate(candidate) -> Success:
    return Success(url=candidate.url, media_type=candidate.media_type, source=candidate.source)


__all__ = ["ExtractionStrategy", "success_from_candidate"]

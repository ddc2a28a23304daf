"""Structured JSON logging shared by the resolver, strategies and batch pipeline."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

UTC = getattr(datetime, "UTC", timezone.utc)
LOGGER_NAME = "adlib_media"
_configured = False
_base_context: dict[str, Any] = {}
_context_stack: list[dict[str, Any]] = []


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the root formatter once; later calls are no-ops."""

    global _configured
    if _configured:
        return
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")
    _configured = True


def set_global_context(**fields: Any) -> None:
    """Attach fields (app, pipeline, version...) to every subsequent record."""

    _base_context.update({k: v for k, v in fields.items() if v is not None})


@contextmanager
def logging_context(**fields: Any) -> Iterator[None]:
    """Scope extra fields (competitor id, job id) to the ``with`` block."""

    ctx = {k: v for k, v in fields.items() if v is not None}
    _context_stack.append(ctx)
    try:
        yield
    finally:
        _context_stack.pop()


def _merged_context() -> dict[str, Any]:
    merged: dict[str, Any] = dict(_base_context)
    for ctx in _context_stack:
        merged.update(ctx)
    return merged


def _jsonable(value: Any) -> Any:
    # Enums and dataclass-ish values are logged by their string form.
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return getattr(value, "value", None) or str(value)


def jlog(level: str, /, **fields: Any) -> None:
    """Emit one JSON object on the ``adlib_media`` logger."""

    log = logging.getLogger(LOGGER_NAME)
    record = {"ts": datetime.now(UTC).isoformat(), **_merged_context(), **fields}
    getattr(log, level.lower())(json.dumps(_jsonable(record), ensure_ascii=False, sort_keys=True))


def adlog(event: str, *, ad_id: str | None, url: str, level: str = "info", **kw: Any) -> None:
    """Shortcut for records scoped to a single ad snapshot."""

    jlog(level, event=event, ad_id=ad_id, url=url, **kw)


__all__ = ["LOGGER_NAME", "adlog", "configure_logging", "jlog", "logging_context", "set_global_context"]

"""Debug artifacts for snapshot pages that yielded no media."""

from __future__ import annotations

import os
import re

from playwright.async_api import Page

from .logging import jlog

DEBUG_DIR = os.getenv("ADLIB_DEBUG_DIR", "media/debug")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def ensure_debug_dir() -> str:
    """Create the debug directory if it does not exist and return the path."""

    try:
        os.makedirs(DEBUG_DIR, exist_ok=True)
    except OSError as exc:
        jlog("warning", event="debug_dir_unavailable", path=DEBUG_DIR, error=str(exc))
    return DEBUG_DIR


def debug_html_path(key: str) -> str:
    return os.path.join(DEBUG_DIR, f"snapshot_{_UNSAFE_CHARS.sub('_', key)[:80]}.html")


async def ensure_debug_html(page: Page, key: str) -> str | None:
    """Persist the rendered snapshot HTML (best effort); return the file path."""

    try:
        ensure_debug_dir()
        html = await page.content()
        path = debug_html_path(key)
        with open(path, "w", encoding="utf-8") as f:
            f.write(html)
        jlog("info", event="debug_html_saved", key=key, path=path)
        return path
    except Exception as exc:  # pragma: no cover - logging only
        jlog("error", event="debug_save_html_error", key=key, error=str(exc))
        return None


__all__ = ["DEBUG_DIR", "debug_html_path", "ensure_debug_dir", "ensure_debug_html"]

#!/usr/bin/env python3
"""CLI shim for the media resolver.

Keeps ``scripts/resolve_media.py`` runnable from cron jobs and containers
while delegating to :mod:`adlib_media.cli`.
"""
from __future__ import annotations

from adlib_media.__main__ import main

if __name__ == "__main__":
    main()

"""Extraction strategies, cheapest first."""

from .base import ExtractionStrategy
from .headless import HeadlessBrowserStrategy, classify_response
from .managed import ManagedJobStrategy
from .proxy import ProxyScrapeStrategy
from .remote import RemoteExtractorStrategy

__all__ = [
    "ExtractionStrategy",
    "HeadlessBrowserStrategy",
    "ManagedJobStrategy",
    "ProxyScrapeStrategy",
    "RemoteExtractorStrategy",
    "classify_response",
]

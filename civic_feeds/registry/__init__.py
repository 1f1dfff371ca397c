"""Calendar source registry."""

from .seeds import load_sources_from_json, seed_registry
from .source_registry import FeedTester, SourceRegistry

__all__ = [
    "FeedTester",
    "SourceRegistry",
    "load_sources_from_json",
    "seed_registry",
]

# Ingestion pipeline
#
# CollectionOrchestrator is imported from .orchestrator directly; it depends
# on the crawlers package, which itself imports the normalizer from here.

from .in_run_dedupe import (
    InRunDeduplicator,
    DedupeStats,
    create_event_deduplicator,
)
from .normalizer import EventNormalizer, clean_text

__all__ = [
    'InRunDeduplicator',
    'DedupeStats',
    'create_event_deduplicator',
    'EventNormalizer',
    'clean_text',
]

"""Static source seeding from a JSON file.

The file holds a list of CalendarSource dicts (see CalendarSource.to_dict),
or an object with a "sources" list.
"""

import json
import logging
from pathlib import Path

from ..models.source import CalendarSource
from .source_registry import SourceRegistry

logger = logging.getLogger(__name__)


def load_sources_from_json(path: str) -> list[CalendarSource]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("sources", [])

    sources = []
    for entry in data:
        try:
            sources.append(CalendarSource.from_dict(entry))
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping invalid seed source {entry.get('id', '?')}: {e}")
    return sources


def seed_registry(registry: SourceRegistry, path: str) -> int:
    """Load seeds into the registry; returns how many were added."""
    added = sum(1 for source in load_sources_from_json(path) if registry.add_seed(source))
    logger.info(f"Seeded {added} calendar sources from {path}")
    return added

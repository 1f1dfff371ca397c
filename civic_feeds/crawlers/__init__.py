# Crawlers

from .content_type_detector import detect_feed_type, body_matches_feed_type
from .date_extractor import DateExtractor, DateMatch
from .feed_parser import FeedParser
from .heuristic_extractor import ExtractionStrategy, HeuristicExtractor, PageDocument
from .http_client import FetchResult, HttpFetcher, normalize_feed_url

__all__ = [
    'detect_feed_type',
    'body_matches_feed_type',
    'DateExtractor',
    'DateMatch',
    'FeedParser',
    'ExtractionStrategy',
    'HeuristicExtractor',
    'PageDocument',
    'FetchResult',
    'HttpFetcher',
    'normalize_feed_url',
]

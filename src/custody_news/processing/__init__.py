"""Processing package for relevance filtering, normalization, deduplication and ranking."""

from .deduplicator import Deduplicator, dedup_key
from .normalizer import Normalizer, clean_summary, guess_category, host_of, unwrap_redirect
from .ranker import ArticleRanker, merge_policy
from .relevance import RelevanceFilter

__all__ = [
    'ArticleRanker',
    'Deduplicator',
    'Normalizer',
    'RelevanceFilter',
    'clean_summary',
    'dedup_key',
    'guess_category',
    'host_of',
    'merge_policy',
    'unwrap_redirect'
]

"""Data module for collecting and joining upstream user data."""

from .aggregator import CollectionResult, SourceAggregator
from .batching import BatchScheduler, FetchOutcome
from .schemas import CHATBOT_CATEGORIES, CollectionError, CombinedUserProfile

__all__ = [
    "SourceAggregator",
    "CollectionResult",
    "BatchScheduler",
    "FetchOutcome",
    "CombinedUserProfile",
    "CollectionError",
    "CHATBOT_CATEGORIES",
]

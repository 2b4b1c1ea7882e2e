"""Result cache with eligibility policy."""

from .models import (
    CACHE_ALLOWED,
    CACHE_DISABLED,
    CACHE_EXPLORATION_MODE,
    CACHE_IRREVERSIBLE,
    CACHE_NOVELTY_TOO_HIGH,
    CacheContext,
    CacheEntry,
    CachePolicy,
    CachePolicyDecision,
    CachePreference,
    evaluate_cache_policy,
)
from .store import CacheStore, build_cache_key, cache_key_for, hash_cache_input

__all__ = [
    "CACHE_ALLOWED",
    "CACHE_DISABLED",
    "CACHE_EXPLORATION_MODE",
    "CACHE_IRREVERSIBLE",
    "CACHE_NOVELTY_TOO_HIGH",
    "CacheContext",
    "CacheEntry",
    "CachePolicy",
    "CachePolicyDecision",
    "CachePreference",
    "evaluate_cache_policy",
    "CacheStore",
    "build_cache_key",
    "cache_key_for",
    "hash_cache_input",
]

"""In-memory caches for the stats read path and session-local profiles."""

from .profile_cache import SessionProfileCache
from .stats_cache import CacheEntry, StatsCache

__all__ = ["CacheEntry", "SessionProfileCache", "StatsCache"]

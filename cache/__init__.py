"""
Result cache for discovered recipes and raw provider responses.
"""

from .store import CacheBackend, FileCacheBackend, MemoryCacheBackend, RecipeCache

__all__ = ["CacheBackend", "FileCacheBackend", "MemoryCacheBackend", "RecipeCache"]

"""Profile cache with a freshness window over a pluggable key-value store.

The cache is constructed once (per process, or per test) and handed to the
profile client; nothing in here is module-global state.
"""

import hashlib
import json
import logging
import os
import tempfile
import time
from typing import Callable

from models import DeveloperProfile, ProfileCacheEntry

logger = logging.getLogger("packagescout")

CACHE_DIR = os.environ.get("CACHE_DIR", "/tmp/packagescout_cache")
DEFAULT_TTL = int(os.environ.get("PROFILE_CACHE_TTL", "86400"))  # 24 hours


class MemoryStore:
    """Dict-backed store. Each set is a single key assignment."""

    def __init__(self):
        self._data: dict[str, dict] = {}

    def get(self, key: str) -> dict | None:
        return self._data.get(key)

    def set(self, key: str, value: dict) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileStore:
    """One JSON file per key under *cache_dir*."""

    def __init__(self, cache_dir: str = CACHE_DIR):
        self.cache_dir = cache_dir

    def _key_path(self, key: str) -> str:
        hashed = hashlib.sha256(key.encode()).hexdigest()[:16]
        return os.path.join(self.cache_dir, f"{hashed}.json")

    def get(self, key: str) -> dict | None:
        path = self._key_path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError):
            return None

    def set(self, key: str, value: dict) -> None:
        os.makedirs(self.cache_dir, exist_ok=True)
        # Temp file plus rename: readers see the old entry or the new one, never a partial write
        fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(value, f)
            os.replace(tmp_path, self._key_path(key))
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def delete(self, key: str) -> None:
        path = self._key_path(key)
        if os.path.exists(path):
            os.remove(path)


class ProfileCache:
    """Username-keyed profile cache; entries older than *ttl* seconds are misses."""

    def __init__(self, store=None, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.time):
        self.store = store if store is not None else MemoryStore()
        self.ttl = ttl
        self.clock = clock

    @staticmethod
    def _key(username: str) -> str:
        return f"gh:user:{username.lower()}"

    def get(self, username: str) -> ProfileCacheEntry | None:
        """Return the live entry for *username*, or None on a miss.

        A live entry whose profile is None is a cached "no such user".
        """
        raw = self.store.get(self._key(username))
        if raw is None:
            return None
        try:
            entry = ProfileCacheEntry.model_validate(raw)
        except ValueError:
            logger.warning("cache CORRUPT_ENTRY user=%s", username)
            return None
        if self.clock() - entry.fetched_at > self.ttl:
            return None
        return entry

    def set(self, username: str, profile: DeveloperProfile | None) -> ProfileCacheEntry:
        entry = ProfileCacheEntry(profile=profile, fetched_at=self.clock())
        self.store.set(self._key(username), entry.model_dump(mode="json"))
        return entry

    def invalidate(self, username: str) -> None:
        self.store.delete(self._key(username))

"""
Settings storage for AuthGate.

Settings are plain JSON-compatible values keyed by name, either for one
site (``Scope.SINGLE``) or for the whole network (``Scope.NETWORK``).
Writes replace the whole value; concurrent read-modify-write callers get
last-write-wins semantics.
"""

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.errors import SettingsStoreError


logger = logging.getLogger(__name__)


class Scope(str, Enum):
    """Where a setting lives"""
    SINGLE = "single"
    NETWORK = "network"


class SettingsStore(ABC):
    """Abstract base class for settings storage bound to one site"""

    def __init__(self, site_id: str = "1"):
        self.site_id = str(site_id)

    @abstractmethod
    async def get(self, key: str, scope: Scope = Scope.SINGLE, default: Any = None) -> Any:
        """Get a setting, or ``default`` when it was never written"""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, scope: Scope = Scope.SINGLE) -> None:
        """Write a setting, replacing any previous value"""
        pass

    @abstractmethod
    async def delete(self, key: str, scope: Scope = Scope.SINGLE) -> bool:
        """Delete a setting"""
        pass

    @abstractmethod
    async def list_sites(self) -> List[str]:
        """List the ids of every site in the network"""
        pass

    @abstractmethod
    def for_site(self, site_id: str) -> "SettingsStore":
        """Return a view of the same storage bound to another site"""
        pass

    async def close(self) -> None:
        """Close the settings store and release resources"""
        pass


class MemorySettingsStore(SettingsStore):
    """In-memory settings store for development and testing"""

    def __init__(self, site_id: str = "1", sites: Optional[List[str]] = None, _shared: Optional[Dict] = None):
        super().__init__(site_id)
        if _shared is None:
            _shared = {"sites": {}, "network": {}, "lock": asyncio.Lock()}
        self._shared = _shared
        self._shared["sites"].setdefault(self.site_id, {})
        for site in sites or []:
            self._shared["sites"].setdefault(str(site), {})
        self._lock = _shared["lock"]

    def _bucket(self, scope: Scope) -> Dict[str, Any]:
        if Scope(scope) == Scope.NETWORK:
            return self._shared["network"]
        return self._shared["sites"][self.site_id]

    async def get(self, key: str, scope: Scope = Scope.SINGLE, default: Any = None) -> Any:
        async with self._lock:
            bucket = self._bucket(scope)
            if key not in bucket:
                return default
            return copy.deepcopy(bucket[key])

    async def set(self, key: str, value: Any, scope: Scope = Scope.SINGLE) -> None:
        async with self._lock:
            self._bucket(scope)[key] = copy.deepcopy(value)

    async def delete(self, key: str, scope: Scope = Scope.SINGLE) -> bool:
        async with self._lock:
            return self._bucket(scope).pop(key, None) is not None

    async def list_sites(self) -> List[str]:
        async with self._lock:
            return list(self._shared["sites"].keys())

    def for_site(self, site_id: str) -> "MemorySettingsStore":
        return MemorySettingsStore(site_id, _shared=self._shared)


class RedisSettingsStore(SettingsStore):
    """Redis-based settings store for production use"""

    def __init__(self, redis_client, site_id: str = "1", prefix: str = "authgate:settings:"):
        """
        Initialize Redis settings store

        Args:
            redis_client: ``redis.asyncio`` client instance
            site_id: Site this view is bound to
            prefix: Key prefix for every setting
        """
        super().__init__(site_id)
        self.redis = redis_client
        self.prefix = prefix
        self.sites_key = f"{prefix}sites"

    def _key(self, key: str, scope: Scope) -> str:
        owner = "network" if Scope(scope) == Scope.NETWORK else self.site_id
        return f"{self.prefix}{owner}:{key}"

    async def get(self, key: str, scope: Scope = Scope.SINGLE, default: Any = None) -> Any:
        try:
            raw = await self.redis.get(self._key(key, scope))
        except Exception as e:
            raise SettingsStoreError(f"Failed to read setting {key}: {e}") from e
        if raw is None:
            return default
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding malformed setting {key} for site {self.site_id}")
            return default

    async def set(self, key: str, value: Any, scope: Scope = Scope.SINGLE) -> None:
        try:
            await self.redis.set(self._key(key, scope), json.dumps(value))
            if Scope(scope) == Scope.SINGLE:
                await self.redis.sadd(self.sites_key, self.site_id)
        except Exception as e:
            raise SettingsStoreError(f"Failed to write setting {key}: {e}") from e

    async def delete(self, key: str, scope: Scope = Scope.SINGLE) -> bool:
        try:
            result = await self.redis.delete(self._key(key, scope))
        except Exception as e:
            raise SettingsStoreError(f"Failed to delete setting {key}: {e}") from e
        return result > 0

    async def list_sites(self) -> List[str]:
        try:
            members = await self.redis.smembers(self.sites_key)
        except Exception as e:
            raise SettingsStoreError(f"Failed to list sites: {e}") from e
        sites = {m.decode("utf-8") if isinstance(m, bytes) else str(m) for m in members}
        sites.add(self.site_id)
        return sorted(sites)

    def for_site(self, site_id: str) -> "RedisSettingsStore":
        return RedisSettingsStore(self.redis, site_id, self.prefix)

    async def close(self) -> None:
        await self.redis.aclose()


def create_settings_store(store_type: str = "memory", **kwargs) -> SettingsStore:
    """
    Factory function to create settings stores

    Args:
        store_type: Type of store ("memory" or "redis")
        **kwargs: Additional arguments for the store

    Returns:
        SettingsStore instance
    """
    site_id = kwargs.get("site_id", "1")
    if store_type == "memory":
        return MemorySettingsStore(site_id, kwargs.get("sites"))
    elif store_type == "redis":
        redis_client = kwargs.get("redis_client")
        if redis_client is None and kwargs.get("redis_url"):
            import redis.asyncio as aioredis
            redis_client = aioredis.from_url(kwargs["redis_url"])
        if not redis_client:
            raise ValueError("redis_client or redis_url is required for Redis settings store")
        return RedisSettingsStore(redis_client, site_id)
    else:
        raise ValueError(f"Unknown store type: {store_type}")
